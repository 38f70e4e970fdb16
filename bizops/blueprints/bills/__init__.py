"""
bizops/blueprints/bills/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import bills_bp  # noqa: F401
