"""
Account signup and role-gated approval.

Lifecycle:
    pending --approve--> approved
    pending --reject---> rejected
    approved/rejected --reopen (admin)--> pending

Rules:
- client / dealer accounts are approved at signup.
- field-employee / office-employee / sales-purchase-employee accounts start
  pending and cannot log in until approved, even with correct credentials.
- Role strings are mapped to the closed Role enum at signup; unknown roles are
  rejected there and never reach the database.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AccountNotApproved,
    DuplicatePhoneOrEmail,
    InvalidCredentials,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..identifiers import generate_account_code, persist_unique
from ..models import Account, ApprovalStatus, Role
from ..utils import normalize_digits, parse_text
from . import compare_and_set, get_or_raise, reload, transactional

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_DIGITS = 10

# Spellings seen in the mobile client, mapped onto the closed role set.
_ROLE_ALIASES = {
    "client": Role.CLIENT,
    "dealer": Role.DEALER,
    "field_employee": Role.FIELD_EMPLOYEE,
    "office_employee": Role.OFFICE_EMPLOYEE,
    "sales_purchase_employee": Role.SALES_PURCHASE_EMPLOYEE,
    "sales_purchase": Role.SALES_PURCHASE_EMPLOYEE,
    "sale_purchase": Role.SALES_PURCHASE_EMPLOYEE,
    "sale_parchase": Role.SALES_PURCHASE_EMPLOYEE,
}


def parse_role(raw: Any) -> Role:
    """Map a role string (any known spelling) to Role or raise ValidationError."""
    if isinstance(raw, Role):
        return raw
    key = re.sub(r"[\s_\-&]+", "_", str(raw or "").strip().lower()).strip("_")
    role = _ROLE_ALIASES.get(key)
    if role is None:
        raise ValidationError("role", f"Unknown role: {raw!r}")
    return role


def _min_password_length() -> int:
    return int(current_app.config.get("PASSWORD_MIN_LENGTH", 6))


def _clean_phone(raw: Any) -> str:
    if isinstance(raw, bool) or not isinstance(raw, (str, int, type(None))):
        raise ValidationError("phone", "phone must be a string")
    phone = normalize_digits(raw)
    if len(phone) != PHONE_DIGITS:
        raise ValidationError("phone", f"Phone number must have exactly {PHONE_DIGITS} digits")
    return phone


def _password(raw: Any, field: str = "password") -> str:
    if raw is not None and not isinstance(raw, str):
        raise ValidationError(field, f"{field} must be a string")
    password = raw or ""
    min_len = _min_password_length()
    if len(password) < min_len:
        raise ValidationError(field, f"Password must be at least {min_len} characters long")
    return password


def _clean_email(raw: Any) -> str:
    email = (parse_text(raw, "email") or "").lower()
    if not email or not EMAIL_RE.match(email):
        raise ValidationError("email", "Please enter a valid email address")
    return email


def _validate_draft(draft: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate signup input in a fixed field order; first failure wins."""
    full_name = parse_text(draft.get("full_name"), "full_name")
    if not full_name:
        raise ValidationError("full_name", "Full name is required")

    phone = _clean_phone(draft.get("phone"))
    email = _clean_email(draft.get("email"))
    password = _password(draft.get("password"))
    role = parse_role(draft.get("role"))

    return {
        "full_name": full_name,
        "phone": phone,
        "email": email,
        "password": password,
        "role": role,
        "department": parse_text(draft.get("department"), "department"),
        "employee_id": parse_text(draft.get("employee_id"), "employee_id"),
    }


def _duplicate_field(exc: IntegrityError) -> str:
    return "phone" if "phone" in str(getattr(exc, "orig", exc)) else "email"


# ---------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------
@transactional
def submit_account(draft: Mapping[str, Any]) -> Account:
    """Validate and store a new account; gated roles start pending."""
    data = _validate_draft(draft)

    if Account.query.filter_by(email=data["email"]).first():
        raise DuplicatePhoneOrEmail("email")
    if Account.query.filter_by(phone=data["phone"]).first():
        raise DuplicatePhoneOrEmail("phone")

    role: Role = data["role"]
    needs_approval = role.requires_approval
    now = datetime.utcnow()

    def build() -> Account:
        account = Account(
            account_code=generate_account_code(),
            full_name=data["full_name"],
            phone=data["phone"],
            email=data["email"],
            role=role.value,
            is_admin=False,
            department=data["department"],
            employee_id=data["employee_id"],
            approval_required=needs_approval,
            status=(ApprovalStatus.PENDING if needs_approval else ApprovalStatus.APPROVED).value,
            submitted_at=now,
            approved_at=None if needs_approval else now,
        )
        account.set_password(data["password"])
        return account

    try:
        account = persist_unique(build, column="account_code", kind="account code")
    except IntegrityError as exc:
        # lost a race against a concurrent signup with the same phone/email
        raise DuplicatePhoneOrEmail(_duplicate_field(exc)) from exc

    logger.info(
        "account %s registered as %s (status=%s)",
        account.account_code,
        account.role,
        account.status,
    )
    return account


# ---------------------------------------------------------------------
# Approval workflow (admin)
# ---------------------------------------------------------------------
def _transition_failed(account_id: int, target: str) -> InvalidTransition:
    current = get_or_raise(Account, account_id, "Account")
    return InvalidTransition("Account", current.status, target)


@transactional
def approve_account(account_id: int, approver_id: int, note: Optional[str] = None) -> Account:
    account = get_or_raise(Account, account_id, "Account")
    now = datetime.utcnow()

    changed = compare_and_set(
        Account,
        account.id,
        column="status",
        expected=[ApprovalStatus.PENDING.value],
        values={
            "status": ApprovalStatus.APPROVED.value,
            "approved_by_id": approver_id,
            "approved_at": now,
            "approval_note": parse_text(note, "note") or "Approved by admin",
            "rejected_at": None,
            "rejection_reason": None,
        },
    )
    if not changed:
        raise _transition_failed(account.id, ApprovalStatus.APPROVED.value)

    logger.info("account %s approved by %s", account.account_code, approver_id)
    return reload(Account, account.id)


@transactional
def reject_account(account_id: int, approver_id: int, reason: Optional[str]) -> Account:
    reason = parse_text(reason, "reason")
    if not reason:
        raise ValidationError("reason", "Rejection reason is required")

    account = get_or_raise(Account, account_id, "Account")

    changed = compare_and_set(
        Account,
        account.id,
        column="status",
        expected=[ApprovalStatus.PENDING.value],
        values={
            "status": ApprovalStatus.REJECTED.value,
            "approved_by_id": approver_id,
            "rejected_at": datetime.utcnow(),
            "rejection_reason": reason,
        },
    )
    if not changed:
        raise _transition_failed(account.id, ApprovalStatus.REJECTED.value)

    logger.info("account %s rejected by %s", account.account_code, approver_id)
    return reload(Account, account.id)


@transactional
def reopen_account(account_id: int, admin_id: int) -> Account:
    """Explicitly send an approved/rejected account back to pending."""
    account = get_or_raise(Account, account_id, "Account")

    changed = compare_and_set(
        Account,
        account.id,
        column="status",
        expected=[ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value],
        values={
            "status": ApprovalStatus.PENDING.value,
            "approved_by_id": None,
            "approved_at": None,
            "rejected_at": None,
            "rejection_reason": None,
            "approval_note": None,
            "submitted_at": datetime.utcnow(),
        },
    )
    if not changed:
        raise _transition_failed(account.id, ApprovalStatus.PENDING.value)

    logger.info("account %s reopened by %s", account.account_code, admin_id)
    return reload(Account, account.id)


# ---------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------
@transactional
def authenticate(phone: Any, password: Any) -> Account:
    """
    Verify phone + password.

    Unknown phone, wrong password and a password that is not a string all
    raise the same InvalidCredentials.
    Gated accounts that are not approved raise AccountNotApproved.
    """
    digits = normalize_digits(phone) if isinstance(phone, (str, int)) and not isinstance(phone, bool) else ""
    account = Account.query.filter_by(phone=digits).first() if digits else None

    if (
        account is None
        or not isinstance(password, str)
        or not password
        or not account.check_password(password)
    ):
        logger.warning("failed login for phone ending %s", digits[-4:] if digits else "----")
        raise InvalidCredentials()

    if not account.can_login:
        logger.warning("login blocked for account %s (status=%s)", account.account_code, account.status)
        raise AccountNotApproved(account.status)

    account.last_login_at = datetime.utcnow()
    return account


@transactional
def change_password(account_id: int, current_password: Any, new_password: Any) -> Account:
    account = get_or_raise(Account, account_id, "Account")
    if (
        not isinstance(current_password, str)
        or not current_password
        or not account.check_password(current_password)
    ):
        raise InvalidCredentials()

    account.set_password(_password(new_password, "new_password"))
    logger.info("password changed for account %s", account.account_code)
    return account


@transactional
def update_profile(account_id: int, changes: Mapping[str, Any]) -> Account:
    """
    Self-service profile edit: full_name, email and phone.

    Absent or blank fields are left as they are; at least one field must
    change. Email and phone stay unique across accounts.
    """
    account = get_or_raise(Account, account_id, "Account")

    updates: Dict[str, Any] = {}
    full_name = parse_text(changes.get("full_name"), "full_name")
    if full_name:
        updates["full_name"] = full_name
    if parse_text(changes.get("email"), "email") is not None:
        updates["email"] = _clean_email(changes.get("email"))
    if changes.get("phone") not in (None, ""):
        updates["phone"] = _clean_phone(changes.get("phone"))

    if not updates:
        raise ValidationError("profile", "No valid fields to update")

    for field in ("email", "phone"):
        if field not in updates:
            continue
        taken = Account.query.filter(
            getattr(Account, field) == updates[field], Account.id != account.id
        ).first()
        if taken is not None:
            raise DuplicatePhoneOrEmail(field)

    for field, value in updates.items():
        setattr(account, field, value)

    try:
        db.session.flush()
    except IntegrityError as exc:
        raise DuplicatePhoneOrEmail(_duplicate_field(exc)) from exc

    logger.info("profile updated for account %s (%s)", account.account_code, ", ".join(sorted(updates)))
    return account


@transactional
def delete_account(account_id: int, admin_id: int) -> None:
    """Explicit admin deletion. References from orders/bills/feedback are nulled."""
    account = get_or_raise(Account, account_id, "Account")
    if account.id == admin_id:
        raise ValidationError("account_id", "You cannot delete your own account")

    db.session.delete(account)
    logger.info("account %s deleted by %s", account.account_code, admin_id)


# ---------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------
def get_account(account_id: int) -> Account:
    return get_or_raise(Account, account_id, "Account")


def list_accounts(role: Optional[str] = None, status: Optional[str] = None) -> List[Account]:
    query = Account.query
    if role:
        query = query.filter(Account.role == parse_role(role).value)
    if status:
        if status not in {s.value for s in ApprovalStatus}:
            raise ValidationError("status", f"Unknown status: {status!r}")
        query = query.filter(Account.status == status)
    return query.order_by(Account.created_at.desc(), Account.id.desc()).all()


def list_pending_accounts() -> List[Account]:
    """Gated accounts waiting for a decision, oldest first."""
    return (
        Account.query.filter(Account.status == ApprovalStatus.PENDING.value)
        .order_by(Account.submitted_at.asc(), Account.id.asc())
        .all()
    )


def approval_status(identifier: Any) -> Dict[str, Any]:
    """Public status lookup by phone, email or account code (signup screen polling)."""
    raw = str(identifier or "").strip()
    if not raw:
        raise NotFound("Account")

    conditions = []
    if "@" in raw:
        conditions.append(Account.email == raw.lower())
    else:
        digits = normalize_digits(raw)
        if len(digits) == PHONE_DIGITS:
            conditions.append(Account.phone == digits)
        elif digits.isdigit() and len(digits) == 4:
            conditions.append(Account.account_code == int(digits))

    account = Account.query.filter(or_(*conditions)).first() if conditions else None
    if account is None:
        raise NotFound("Account")

    return {
        "account_code": account.account_code,
        "full_name": account.full_name,
        "role": account.role,
        "status": account.status,
        "approval_required": account.approval_required,
        "can_login": account.can_login,
        "rejection_reason": account.rejection_reason,
    }
