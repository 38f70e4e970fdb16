"""
bizops/seed.py

Out-of-band admin provisioning (used by `flask create-admin`).

Rules:
- Signup never creates admins; this is the only way to get one.
- Safe to run multiple times (idempotent): an existing account with the same
  phone or email is promoted instead of duplicated.
- Admins are office-employee accounts, approved at creation.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .extensions import db
from .identifiers import generate_account_code
from .models import Account, ApprovalStatus, Role
from .services.accounts import _clean_email, _clean_phone, _password
from .utils import parse_text

logger = logging.getLogger(__name__)


def create_admin_account(full_name: str, phone: str, email: str, password: str) -> Account:
    """Create an approved admin, or promote the account that owns phone/email."""
    full_name = parse_text(full_name, "full_name", required=True)
    phone = _clean_phone(phone)
    email = _clean_email(email)
    password = _password(password)

    now = datetime.utcnow()
    account = Account.query.filter((Account.phone == phone) | (Account.email == email)).first()
    if account is None:
        account = Account(
            account_code=generate_account_code(),
            full_name=full_name,
            phone=phone,
            email=email,
            role=Role.OFFICE_EMPLOYEE.value,
            submitted_at=now,
        )
        db.session.add(account)
        logger.info("creating admin account for %s", email)
    else:
        logger.info("promoting account %s to admin", account.account_code)

    account.is_admin = True
    account.approval_required = False
    account.status = ApprovalStatus.APPROVED.value
    account.approved_at = account.approved_at or now
    account.set_password(password)

    db.session.commit()
    return account
