"""
bizops/blueprints/feedback/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import feedback_bp  # noqa: F401
