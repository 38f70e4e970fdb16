"""
bizops/extensions.py

Flask extension singletons (unbound).

They are bound to the app in create_app(); services and models import them
from here so nothing imports the app factory itself.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()

# Session-cookie auth for the mobile client; JSON 401 handler set in create_app()
login_manager = LoginManager()
login_manager.session_protection = "basic"
