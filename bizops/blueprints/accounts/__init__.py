"""
bizops/blueprints/accounts/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import accounts_bp  # noqa: F401
