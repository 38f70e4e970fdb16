"""
Order lifecycle.

Status flow (forward moves may skip steps, never go back):

    draft -> pending -> confirmed -> processing -> shipped -> delivered

`cancelled` is reachable from every non-terminal status. delivered and
cancelled are terminal.

Amounts:
- subtotal / discount_amount / total_amount are recomputed through
  compute_amounts() whenever quantity, unit_price or discount change.
- Callers cannot send them; a patch containing a derived field is rejected.

Concurrency:
- Order rows carry a version counter (version_id_col). A concurrent edit makes
  the losing UPDATE match zero rows, which surfaces as ConcurrentUpdate.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import HasDependentBill, InvalidTransition, ValidationError
from ..extensions import db
from ..identifiers import generate_order_number, persist_unique
from ..models import Account, Bill, Order, OrderStatus, OrderType, Priority
from ..pricing import compute_amounts, to_decimal
from ..utils import parse_date, parse_optional_int, parse_text
from . import get_or_raise, transactional

logger = logging.getLogger(__name__)

ORDER_FLOW = [
    OrderStatus.DRAFT.value,
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
]
TERMINAL = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}
INITIAL_STATUSES = {OrderStatus.DRAFT.value, OrderStatus.PENDING.value}

DERIVED_FIELDS = {"subtotal", "discount_amount", "total_amount"}
AMOUNT_FIELDS = {"quantity", "unit_price", "discount"}
TEXT_FIELDS = {
    "product_name",
    "product_category",
    "description",
    "unit",
    "delivery_address",
    "pincode",
    "vehicle_name",
    "vehicle_number",
}
CREATE_FIELDS = (
    TEXT_FIELDS
    | AMOUNT_FIELDS
    | {"order_type", "priority", "status", "customer_id", "expected_delivery_date"}
)
PATCH_FIELDS = (
    TEXT_FIELDS
    | AMOUNT_FIELDS
    | {"priority", "status", "customer_id", "expected_delivery_date", "actual_delivery_date"}
)
REQUIRED_TEXT = {"product_name", "unit"}

CENT = Decimal("0.01")


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------
def _check_fields(data: Mapping[str, Any], allowed: set) -> None:
    for key in data:
        if key in DERIVED_FIELDS:
            raise ValidationError(key, f"{key} is calculated and cannot be set")
        if key not in allowed:
            raise ValidationError(key, f"Unknown or read-only field: {key}")


def _enum_value(enum_cls, raw: Any, field: str) -> str:
    try:
        return enum_cls(str(raw).strip().lower()).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(field, f"Invalid {field}. Valid values are: {allowed}") from None


def _positive_amount(raw: Any, field: str) -> Decimal:
    value = to_decimal(raw, field).quantize(CENT, rounding=ROUND_HALF_UP)
    if value <= 0:
        raise ValidationError(field, f"{field} must be greater than 0")
    return value


def _discount(raw: Any) -> Decimal:
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return Decimal("0.00")
    value = to_decimal(raw, "discount").quantize(CENT, rounding=ROUND_HALF_UP)
    if value < 0 or value > 100:
        raise ValidationError("discount", "discount must be between 0 and 100")
    return value


def _text(raw: Any, field: str) -> Optional[str]:
    # pincodes and vehicle numbers arrive as JSON numbers from some clients
    if isinstance(raw, int) and not isinstance(raw, bool):
        raw = str(raw)
    return parse_text(raw, field, required=field in REQUIRED_TEXT)


def _customer_id(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    customer_id = parse_optional_int(raw)
    if customer_id is None or db.session.get(Account, customer_id) is None:
        raise ValidationError("customer_id", "Unknown customer")
    return customer_id


def _apply_amounts(order: Order) -> None:
    amounts = compute_amounts(order.quantity, order.unit_price, order.discount)
    order.subtotal = amounts.subtotal
    order.discount_amount = amounts.discount_amount
    order.total_amount = amounts.total_amount


def can_transition(current: str, target: str) -> bool:
    if current in TERMINAL:
        return False
    if target == OrderStatus.CANCELLED.value:
        return True
    return ORDER_FLOW.index(target) > ORDER_FLOW.index(current)


def _move_to(order: Order, target: str) -> None:
    if target == order.status:
        return
    if not can_transition(order.status, target):
        raise InvalidTransition("Order", order.status, target)
    order.status = target
    if target == OrderStatus.DELIVERED.value and order.actual_delivery_date is None:
        order.actual_delivery_date = datetime.utcnow()


def _insert_order(values: Dict[str, Any]) -> Order:
    def build() -> Order:
        order = Order(order_number=generate_order_number(values["order_type"]), **values)
        _apply_amounts(order)
        return order

    return persist_unique(build, column="order_number", kind="order number")


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------
@transactional
def create_order(draft: Mapping[str, Any], created_by_id: Optional[int]) -> Order:
    """Validate, price and store a new order (status pending unless draft requested)."""
    _check_fields(draft, CREATE_FIELDS)

    values: Dict[str, Any] = {field: _text(draft.get(field), field) for field in TEXT_FIELDS}
    values["quantity"] = _positive_amount(draft.get("quantity"), "quantity")
    values["unit_price"] = _positive_amount(draft.get("unit_price"), "unit_price")
    values["discount"] = _discount(draft.get("discount"))
    values["order_type"] = _enum_value(OrderType, draft.get("order_type") or OrderType.SALE.value, "order_type")
    values["priority"] = _enum_value(Priority, draft.get("priority") or Priority.MEDIUM.value, "priority")

    status = _enum_value(OrderStatus, draft.get("status") or OrderStatus.PENDING.value, "status")
    if status not in INITIAL_STATUSES:
        raise ValidationError("status", "New orders start as 'pending' or 'draft'")
    values["status"] = status

    values["customer_id"] = _customer_id(draft.get("customer_id"))
    values["expected_delivery_date"] = parse_date(draft.get("expected_delivery_date"), "expected_delivery_date")
    values["created_by_id"] = created_by_id

    order = _insert_order(values)
    logger.info("order %s created (%s, total=%s)", order.order_number, order.order_type, order.total_amount)
    return order


@transactional
def update_order(order_id: int, patch: Mapping[str, Any]) -> Order:
    """Apply a partial update; amounts are recomputed when their inputs change."""
    _check_fields(patch, PATCH_FIELDS)
    order = get_or_raise(Order, order_id, "Order")

    edits_content = any(key != "status" for key in patch)
    if edits_content and order.is_terminal:
        raise InvalidTransition("Order", order.status, message=f"Order is '{order.status}' and can no longer be edited")

    for field in TEXT_FIELDS & patch.keys():
        setattr(order, field, _text(patch[field], field))

    if AMOUNT_FIELDS & patch.keys():
        if "quantity" in patch:
            order.quantity = _positive_amount(patch["quantity"], "quantity")
        if "unit_price" in patch:
            order.unit_price = _positive_amount(patch["unit_price"], "unit_price")
        if "discount" in patch:
            order.discount = _discount(patch["discount"])
        _apply_amounts(order)

    if "priority" in patch:
        order.priority = _enum_value(Priority, patch["priority"], "priority")
    if "customer_id" in patch:
        order.customer_id = _customer_id(patch["customer_id"])
    if "expected_delivery_date" in patch:
        order.expected_delivery_date = parse_date(patch["expected_delivery_date"], "expected_delivery_date")
    if "actual_delivery_date" in patch:
        delivered_on = parse_date(patch["actual_delivery_date"], "actual_delivery_date")
        order.actual_delivery_date = (
            datetime.combine(delivered_on, datetime.min.time()) if delivered_on else None
        )

    if "status" in patch:
        _move_to(order, _enum_value(OrderStatus, patch["status"], "status"))

    db.session.flush()
    logger.info("order %s updated (%s)", order.order_number, ", ".join(sorted(patch.keys())))
    return order


@transactional
def set_order_status(order_id: int, status: Any) -> Order:
    target = _enum_value(OrderStatus, status, "status")
    order = get_or_raise(Order, order_id, "Order")
    previous = order.status
    _move_to(order, target)
    db.session.flush()
    logger.info("order %s status %s -> %s", order.order_number, previous, order.status)
    return order


@transactional
def cancel_order(order_id: int) -> Order:
    """Cancel unless delivered. Cancelling a cancelled order is a no-op."""
    order = get_or_raise(Order, order_id, "Order")
    if order.status == OrderStatus.CANCELLED.value:
        return order
    _move_to(order, OrderStatus.CANCELLED.value)
    db.session.flush()
    logger.info("order %s cancelled", order.order_number)
    return order


@transactional
def delete_order(order_id: int) -> None:
    """Delete an order that was never billed."""
    order = get_or_raise(Order, order_id, "Order", for_update=True)

    has_bill = db.session.query(Bill.id).filter(Bill.order_id == order.id).first() is not None
    if has_bill:
        raise HasDependentBill(order.id)

    db.session.delete(order)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # a bill was created between the check and the delete
        raise HasDependentBill(order.id) from exc

    logger.info("order %s deleted", order.order_number)


@transactional
def duplicate_order(order_id: int, created_by_id: Optional[int]) -> Order:
    """Copy an order under a new number; the copy starts pending."""
    source = get_or_raise(Order, order_id, "Order")

    values: Dict[str, Any] = {field: getattr(source, field) for field in TEXT_FIELDS}
    values.update(
        product_name=f"{source.product_name} (Copy)",
        quantity=source.quantity,
        unit_price=source.unit_price,
        discount=source.discount,
        order_type=source.order_type,
        priority=source.priority,
        status=OrderStatus.PENDING.value,
        customer_id=source.customer_id,
        expected_delivery_date=source.expected_delivery_date,
        created_by_id=created_by_id,
    )

    order = _insert_order(values)
    logger.info("order %s duplicated as %s", source.order_number, order.order_number)
    return order


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def get_order(order_id: int) -> Order:
    return get_or_raise(Order, order_id, "Order")


def list_orders(
    status: Optional[str] = None,
    order_type: Optional[str] = None,
    priority: Optional[str] = None,
    customer_id: Optional[int] = None,
    search: Optional[str] = None,
) -> List[Order]:
    query = Order.query
    if status:
        query = query.filter(Order.status == _enum_value(OrderStatus, status, "status"))
    if order_type:
        query = query.filter(Order.order_type == _enum_value(OrderType, order_type, "order_type"))
    if priority:
        query = query.filter(Order.priority == _enum_value(Priority, priority, "priority"))
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.product_name.ilike(pattern),
                Order.order_number.ilike(pattern),
                Order.description.ilike(pattern),
            )
        )
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def order_stats() -> Dict[str, Any]:
    """Counts per status and the value of all non-cancelled orders."""
    rows = db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    by_status = {status.value: 0 for status in OrderStatus}
    by_status.update({status: count for status, count in rows})

    total_value = (
        db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.status != OrderStatus.CANCELLED.value)
        .scalar()
    )

    return {
        "total_orders": sum(by_status.values()),
        "by_status": by_status,
        "total_value": str(Decimal(str(total_value)).quantize(CENT)),
    }
