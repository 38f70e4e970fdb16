"""
bizops/__init__.py

Flask application factory for the Business Operations backend.

Serves a mobile client over JSON:
- accounts with role-gated approval
- sale/purchase orders with server-side pricing
- bills (order snapshots) with a payment lifecycle
- client feedback on bills

Production mindset:
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev/tests.
- Clients are never trusted; access control and pricing are server-side.
- Every error leaves the app as the same JSON envelope.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from .errors import BizOpsError, StorageUnavailable
from .extensions import db, login_manager, migrate
from .models import Account
from .security import unauthorized
from .utils import ok

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    """Route the package loggers through one handler at LOG_LEVEL."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)

    package_logger = logging.getLogger("bizops")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)


def _configure_sqlite(app: Flask) -> None:
    """
    SQLite needs two connection tweaks:
    - foreign keys are off by default (SET NULL / CASCADE / RESTRICT rely on them)
    - pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    """
    with app.app_context():
        engine = db.engine

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _error_response(error: BizOpsError):
    return jsonify({"success": False, "error": error.to_dict()}), error.http_status


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(BizOpsError)
    def handle_business_error(error: BizOpsError):
        if error.http_status >= 500:
            logger.error("%s: %s", error.code, error.message)
        else:
            logger.debug("%s: %s", error.code, error.message)
        return _error_response(error)

    @app.errorhandler(OperationalError)
    def handle_storage_error(error: OperationalError):
        db.session.rollback()
        logger.exception("storage unavailable: %s", error)
        return _error_response(StorageUnavailable())

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        code = (error.name or "HTTP_ERROR").upper().replace(" ", "_")
        payload = {"success": False, "error": {"code": code, "message": error.description}}
        return jsonify(payload), error.code


def create_app(config_object: str | type = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = False

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    login_manager.init_app(app)
    login_manager.unauthorized_handler(unauthorized)

    @login_manager.user_loader
    def load_user(user_id: str) -> Account | None:
        """Load account for Flask-Login."""
        try:
            return db.session.get(Account, int(user_id))
        except (TypeError, ValueError):
            return None

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        _configure_sqlite(app)

    _register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.accounts import accounts_bp
    from .blueprints.auth import auth_bp
    from .blueprints.bills import bills_bp
    from .blueprints.feedback import feedback_bp
    from .blueprints.orders import orders_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(bills_bp)
    app.register_blueprint(feedback_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (development only; use migrations elsewhere)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("create-admin")
    @click.option("--full-name", prompt=True)
    @click.option("--phone", prompt=True)
    @click.option("--email", prompt=True)
    @click.password_option()
    def create_admin_command(full_name, phone, email, password):
        """Create (or promote) an approved admin account."""
        from .seed import create_admin_account

        account = create_admin_account(full_name, phone, email, password)
        click.echo(f"Admin account {account.account_code} ready ({account.email}).")

    @app.route("/health")
    def health():
        return ok({"status": "ok", "app": app.config.get("APP_NAME")})

    return app
