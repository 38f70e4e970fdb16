"""
Authentication Routes

Provides:
- POST /api/auth/signup
- POST /api/auth/login
- POST /api/auth/logout
- GET  /api/auth/me
- POST /api/auth/change-password
- GET  /api/auth/status/<identifier>
- PATCH /api/auth/profile

Rules:
- Signup never creates admins; roles outside the known set are rejected.
- Gated employee accounts cannot log in until an admin approves them.
- The session cookie (Flask-Login) identifies the caller for every other blueprint.
"""

from flask import Blueprint
from flask_login import current_user, login_required, login_user, logout_user

from ...services import accounts as account_service
from ...utils import json_body, ok

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# ============================================================
# SIGNUP
# ============================================================

@auth_bp.route("/signup", methods=["POST"])
def signup():
    """
    Register a new account.

    Client/dealer accounts are approved immediately and logged in.
    Employee accounts are stored as pending and must wait for an admin.
    """
    data = json_body()
    draft = {
        "full_name": data.get("full_name") or data.get("fullname"),
        "phone": data.get("phone"),
        "email": data.get("email"),
        "password": data.get("password"),
        "role": data.get("role") or data.get("type"),
        "department": data.get("department"),
        "employee_id": data.get("employee_id"),
    }
    account = account_service.submit_account(draft)

    if account.can_login:
        login_user(account)
        message = "User registered and logged in successfully."
    else:
        message = "Registration successful. Your account is pending admin approval."

    return ok(account.to_dict(), 201, message=message, requires_approval=not account.can_login)


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate with phone + password and start a session."""
    data = json_body()
    account = account_service.authenticate(data.get("phone"), data.get("password"))
    login_user(account)
    return ok(account.to_dict(), message="Login successful")


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return ok(None, message="Logged out successfully")


# ============================================================
# PROFILE
# ============================================================

@auth_bp.route("/me")
@login_required
def me():
    return ok(current_user.to_dict())


@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    data = json_body()
    account = account_service.change_password(
        current_user.id,
        data.get("current_password") or "",
        data.get("new_password") or "",
    )
    return ok(account.to_dict(), message="Password changed")


@auth_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    """Edit the caller's own name, email or phone."""
    data = json_body()
    account = account_service.update_profile(
        current_user.id,
        {
            "full_name": data.get("full_name") or data.get("fullname"),
            "email": data.get("email"),
            "phone": data.get("phone"),
        },
    )
    return ok(account.to_dict(), message="Profile updated successfully")


@auth_bp.route("/status/<identifier>")
def approval_status(identifier: str):
    """Public approval-status lookup by phone, email or account code."""
    return ok(account_service.approval_status(identifier))
