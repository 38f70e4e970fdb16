"""
Human-facing identifiers: account codes, order numbers, bill numbers.

Rules:
- Account codes are 4-digit numbers checked against existing accounts before use.
- Order/bill numbers are prefix + minute timestamp + random part. They are only
  *probably* unique; the unique constraints on the tables are the real guard.
- persist_unique() inserts inside a SAVEPOINT and rebuilds the row with a fresh
  identifier when the insert collides on the generated column.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Callable, Optional, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError

from .errors import DuplicateIdentifier, ExhaustedRetries
from .extensions import db
from .models import Account, OrderType

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCOUNT_CODE_MIN = 1000
ACCOUNT_CODE_MAX = 9999

ORDER_PREFIXES = {
    OrderType.SALE.value: "SO",
    OrderType.PURCHASE.value: "PO",
}
BILL_PREFIX = "BILL"


def _config_int(key: str, fallback: int) -> int:
    try:
        return int(current_app.config.get(key, fallback))
    except RuntimeError:
        # outside an application context (plain unit use)
        return fallback


def _time_component(now: Optional[datetime] = None) -> str:
    return (now or datetime.utcnow()).strftime("%Y%m%d%H%M")


def _random_component() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def generate_account_code(attempts: Optional[int] = None) -> int:
    """Return a 4-digit code not assigned to any account."""
    attempts = attempts or _config_int("ACCOUNT_CODE_ATTEMPTS", 20)

    for attempt in range(1, attempts + 1):
        code = ACCOUNT_CODE_MIN + secrets.randbelow(ACCOUNT_CODE_MAX - ACCOUNT_CODE_MIN + 1)
        taken = db.session.query(Account.id).filter(Account.account_code == code).first()
        if taken is None:
            return code
        logger.warning("account code %s already taken (attempt %s/%s)", code, attempt, attempts)

    logger.error("account code space exhausted after %s attempts", attempts)
    raise ExhaustedRetries("account code", attempts)


def generate_order_number(kind: str, now: Optional[datetime] = None) -> str:
    """SO-<yyyymmddHHMM>-<random> for sales, PO-... for purchases."""
    kind_value = getattr(kind, "value", kind)
    prefix = ORDER_PREFIXES.get(kind_value)
    if prefix is None:
        raise ValueError(f"unknown order kind: {kind!r}")
    return f"{prefix}-{_time_component(now)}-{_random_component()}"


def generate_bill_number(now: Optional[datetime] = None) -> str:
    return f"{BILL_PREFIX}-{_time_component(now)}-{_random_component()}"


def _collides_on(exc: IntegrityError, column: str) -> bool:
    """True if the integrity error was raised by the unique constraint on `column`."""
    return column in str(getattr(exc, "orig", exc))


def persist_unique(
    build: Callable[[], T],
    *,
    column: str,
    kind: str,
    attempts: Optional[int] = None,
) -> T:
    """
    Add build() to the session inside a SAVEPOINT and flush it.

    On a unique violation of `column` the savepoint is rolled back and build()
    is called again (it must generate a fresh identifier). Any other integrity
    error is re-raised for the caller to translate.
    """
    attempts = attempts or _config_int("IDENTIFIER_ATTEMPTS", 5)

    for attempt in range(1, attempts + 1):
        instance = build()
        try:
            with db.session.begin_nested():
                db.session.add(instance)
        except IntegrityError as exc:
            if not _collides_on(exc, column):
                raise
            logger.warning("%s collision on insert (attempt %s/%s)", kind, attempt, attempts)
            continue
        return instance

    logger.error("could not store a unique %s after %s attempts", kind, attempts)
    raise DuplicateIdentifier(kind, attempts)
