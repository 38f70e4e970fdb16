"""
bizops/security.py

Access control helpers for the JSON API.

Key rules:
- Clients are never trusted; all permission checks are server-side.
- Admin: full access (admins are created out of band with `flask create-admin`).
- Staff: admin, or an APPROVED field/office/sales-purchase employee. Staff may
  manage orders.
- Customers: client and dealer accounts. They only ever see their own bills and
  feedback; the owner id always comes from the session, never from the body.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
- Decorators expect to run AFTER flask_login.login_required.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Tuple

from flask import jsonify
from flask_login import current_user


def _forbidden(message: str = "You do not have permission to perform this action") -> Tuple[Any, int]:
    """Consistent JSON 403."""
    return jsonify({"success": False, "error": {"code": "FORBIDDEN", "message": message}}), 403


def unauthorized() -> Tuple[Any, int]:
    """Consistent JSON 401 (wired as the Flask-Login unauthorized handler)."""
    return jsonify({"success": False, "error": {"code": "UNAUTHORIZED", "message": "Login required"}}), 401


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def is_staff() -> bool:
    if not current_user.is_authenticated:
        return False
    check = getattr(current_user, "is_staff", None)
    return bool(callable(check) and check())


def is_customer() -> bool:
    if not current_user.is_authenticated:
        return False
    check = getattr(current_user, "is_customer", None)
    return bool(callable(check) and check())


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def staff_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin or approved employee."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not (is_admin() or is_staff()):
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def customer_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: client or dealer accounts (bill owners)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_customer():
            return _forbidden("Only client accounts can access bills")
        return view_func(*args, **kwargs)

    return wrapper
