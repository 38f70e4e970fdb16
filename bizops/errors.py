"""
bizops/errors.py

Typed business errors.

Every error carries:
- code: machine-readable identifier (stable, API-safe)
- http_status: status used by the JSON error handler registered in create_app()
- field: the offending input field (validation errors only)

Services RAISE these; routes never catch them. The app factory converts them
into the JSON error envelope:

    {"success": false, "error": {"code": "...", "message": "...", "field": ...}}

IMPORTANT:
- Owner mismatch (e.g. a client asking for somebody else's bill) is raised as
  NotFound with the same message as an unknown id.
- DuplicateIdentifier / ExhaustedRetries / StorageUnavailable are transient:
  clients may retry after re-reading state.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BizOpsError(Exception):
    """Base class for all business errors."""

    code: str = "BIZOPS_ERROR"
    http_status: int = 400

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field:
            data["field"] = self.field
        return data


# ---------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------
class ValidationError(BizOpsError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)


class NotFound(BizOpsError):
    """Unknown id, or an id the caller does not own."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InvalidTransition(BizOpsError):
    """State-machine precondition does not hold."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, entity: str, current: Optional[str], target: Optional[str] = None, message: str | None = None):
        self.entity = entity
        self.current = current
        self.target = target
        if message is None:
            if target:
                message = f"{entity} cannot move from '{current}' to '{target}'"
            else:
                message = f"{entity} is '{current}'; operation not allowed"
        super().__init__(message)


class DuplicatePhoneOrEmail(BizOpsError):
    code = "DUPLICATE_PHONE_OR_EMAIL"
    http_status = 409

    def __init__(self, field: str):
        super().__init__(f"{field} is already registered", field=field)


class InvalidCredentials(BizOpsError):
    code = "INVALID_CREDENTIALS"
    http_status = 401

    def __init__(self):
        super().__init__("Invalid credentials")


class AccountNotApproved(BizOpsError):
    code = "ACCOUNT_NOT_APPROVED"
    http_status = 403

    def __init__(self, status: str):
        self.status = status
        if status == "rejected":
            message = "Your account has been rejected. Please contact admin for more information."
        else:
            message = "Your account is pending approval from admin."
        super().__init__(message)


class OrderNotBillable(BizOpsError):
    code = "ORDER_NOT_BILLABLE"
    http_status = 409

    def __init__(self, order_id: int, reason: str):
        self.order_id = order_id
        super().__init__(reason)


class HasDependentBill(BizOpsError):
    code = "HAS_DEPENDENT_BILL"
    http_status = 409

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order has a bill and cannot be deleted")


class ConcurrentUpdate(BizOpsError):
    """Row was modified by another request between read and write."""

    code = "CONCURRENT_UPDATE"
    http_status = 409

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        label = entity if entity_id is None else f"{entity} {entity_id}"
        super().__init__(f"{label} was modified by another request; reload and retry")


# ---------------------------------------------------------------------
# Transient / infrastructure errors
# ---------------------------------------------------------------------
class DuplicateIdentifier(BizOpsError):
    """A generated identifier kept colliding at insert time."""

    code = "DUPLICATE_IDENTIFIER"
    http_status = 503

    def __init__(self, kind: str, attempts: int):
        self.kind = kind
        self.attempts = attempts
        super().__init__(f"Could not store a unique {kind} after {attempts} attempts; try again")


class ExhaustedRetries(BizOpsError):
    """Generator could not find an unused value."""

    code = "EXHAUSTED_RETRIES"
    http_status = 503

    def __init__(self, kind: str, attempts: int):
        self.kind = kind
        self.attempts = attempts
        super().__init__(f"No unused {kind} found after {attempts} attempts")


class StorageUnavailable(BizOpsError):
    code = "STORAGE_UNAVAILABLE"
    http_status = 503

    def __init__(self):
        super().__init__("Storage is temporarily unavailable; try again")
