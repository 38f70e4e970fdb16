"""
Account administration (Admin only).

Rules enforced:
- Only pending accounts can be approved or rejected; rejection needs a reason.
- Reopening an approved/rejected account is an explicit action.
- The approver is always the logged-in admin (never read from the body).
"""

from flask import Blueprint, request
from flask_login import current_user, login_required

from ...security import admin_required
from ...services import accounts as account_service
from ...utils import json_body, ok

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


# ---------------------------------------------------------------------
# LIST / DETAIL
# ---------------------------------------------------------------------

@accounts_bp.route("/")
@login_required
@admin_required
def list_accounts():
    """Admin view: all accounts, optionally filtered by role/status."""
    accounts = account_service.list_accounts(
        role=(request.args.get("role") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
    )
    return ok([a.to_dict() for a in accounts])


@accounts_bp.route("/pending")
@login_required
@admin_required
def list_pending():
    accounts = account_service.list_pending_accounts()
    return ok([a.to_dict() for a in accounts])


@accounts_bp.route("/<int:account_id>")
@login_required
@admin_required
def get_account(account_id: int):
    return ok(account_service.get_account(account_id).to_dict())


# ---------------------------------------------------------------------
# APPROVAL WORKFLOW
# ---------------------------------------------------------------------

@accounts_bp.route("/<int:account_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve(account_id: int):
    data = json_body()
    account = account_service.approve_account(account_id, current_user.id, note=data.get("note"))
    return ok(account.to_dict(), message="User approved successfully")


@accounts_bp.route("/<int:account_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject(account_id: int):
    data = json_body()
    account = account_service.reject_account(account_id, current_user.id, data.get("reason"))
    return ok(account.to_dict(), message="User rejected successfully")


@accounts_bp.route("/<int:account_id>/reopen", methods=["POST"])
@login_required
@admin_required
def reopen(account_id: int):
    account = account_service.reopen_account(account_id, current_user.id)
    return ok(account.to_dict(), message="Account moved back to pending")


@accounts_bp.route("/<int:account_id>", methods=["DELETE"])
@login_required
@admin_required
def delete(account_id: int):
    account_service.delete_account(account_id, current_user.id)
    return ok(None, message="Account deleted")
