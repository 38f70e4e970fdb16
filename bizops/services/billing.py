"""
Billing: order -> bill snapshot, and the bill payment sub-lifecycle.

Snapshot rules:
- A bill copies the order's commercial fields (name, description, quantity,
  unit, unit price, subtotal, discount %, discount amount, total) and delivery
  fields at creation time. Later order edits never touch the bill.
- One bill per order (unique bills.order_id). Cancelled orders are not billable.
- The order row is locked while the snapshot is taken.

Payment:
    pending --record_payment / confirm_payment--> successful   (exactly once, never reverts)

Client-facing reads and writes always filter by client_id in the query itself,
so a guessed bill id of another client is indistinguishable from an unknown id.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidTransition, NotFound, OrderNotBillable, ValidationError
from ..extensions import db
from ..identifiers import generate_bill_number, persist_unique
from ..models import Account, Bill, Order, OrderStatus, PaymentStatus
from ..utils import parse_date, parse_optional_int, parse_text
from . import compare_and_set, get_or_raise, reload, transactional

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _payment_status(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return PaymentStatus(str(value).strip().lower()).value
    except ValueError:
        raise ValidationError("payment_status", "payment_status must be 'pending' or 'successful'") from None


def _money(value: Any) -> str:
    return str(Decimal(str(value or 0)).quantize(CENT))


# ---------------------------------------------------------------------
# Bill creation (admin)
# ---------------------------------------------------------------------
@transactional
def create_bill_from_order(
    order_id: int,
    client_id: Any,
    created_by_id: Optional[int],
    due_date: Any = None,
    notes: Optional[str] = None,
) -> Bill:
    """Snapshot an order into a new pending bill for `client_id`."""
    order = get_or_raise(Order, order_id, "Order", for_update=True)

    if order.status == OrderStatus.CANCELLED.value:
        raise OrderNotBillable(order.id, "Cancelled orders cannot be billed")

    client_key = parse_optional_int(client_id)
    if client_key is None:
        raise ValidationError("client_id", "Client ID is required")
    client = db.session.get(Account, client_key)
    if client is None:
        raise NotFound("Client", client_id)
    if not client.is_customer():
        raise ValidationError("client_id", "Bills can only be sent to client or dealer accounts")

    if db.session.query(Bill.id).filter(Bill.order_id == order.id).first() is not None:
        raise OrderNotBillable(order.id, "Bill already exists for this order")

    due = parse_date(due_date, "due_date")
    additional_notes = parse_text(notes, "notes")

    def build() -> Bill:
        return Bill(
            bill_number=generate_bill_number(),
            order_id=order.id,
            client_id=client.id,
            material_name=order.product_name,
            description=order.description,
            quantity=order.quantity,
            unit=order.unit,
            unit_price=order.unit_price,
            subtotal=order.subtotal,
            discount_percentage=order.discount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            delivery_address=order.delivery_address,
            pincode=order.pincode,
            vehicle_name=order.vehicle_name,
            vehicle_number=order.vehicle_number,
            payment_status=PaymentStatus.PENDING.value,
            sent_at=datetime.utcnow(),
            due_date=due,
            additional_notes=additional_notes,
            created_by_id=created_by_id,
        )

    try:
        bill = persist_unique(build, column="bill_number", kind="bill number")
    except IntegrityError as exc:
        # concurrent request billed the same order first
        raise OrderNotBillable(order.id, "Bill already exists for this order") from exc

    logger.info(
        "bill %s created from order %s for client %s (total=%s)",
        bill.bill_number,
        order.order_number,
        client.account_code,
        bill.total_amount,
    )
    return bill


# ---------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------
def _payment_values(payment_method: Any, transaction_id: Any, notes: Any) -> Dict[str, Any]:
    method = parse_text(payment_method, "payment_method")
    if not method:
        raise ValidationError("payment_method", "Payment method is required")
    return {
        "payment_status": PaymentStatus.SUCCESSFUL.value,
        "payment_method": method,
        "transaction_id": parse_text(transaction_id, "transaction_id"),
        "payment_notes": parse_text(notes, "notes"),
        "payment_date": datetime.utcnow(),
    }


def _already_paid(bill: Bill) -> InvalidTransition:
    return InvalidTransition(
        "Bill",
        bill.payment_status,
        PaymentStatus.SUCCESSFUL.value,
        message="Bill is already marked as paid",
    )


@transactional
def record_payment(
    bill_id: Any,
    client_id: int,
    payment_method: Any,
    transaction_id: Any = None,
    notes: Any = None,
) -> Bill:
    """Mark the client's own bill as paid. Only legal while payment is pending."""
    values = _payment_values(payment_method, transaction_id, notes)

    key = parse_optional_int(bill_id)
    if key is None:
        raise NotFound("Bill", bill_id)

    changed = compare_and_set(
        Bill,
        key,
        column="payment_status",
        expected=[PaymentStatus.PENDING.value],
        values=values,
        extra_where=[Bill.client_id == client_id],
    )
    if not changed:
        bill = Bill.query.filter_by(id=key, client_id=client_id).first()
        if bill is None:
            raise NotFound("Bill", bill_id)
        raise _already_paid(bill)

    bill = reload(Bill, key)
    logger.info("payment recorded for bill %s via %s", bill.bill_number, values["payment_method"])
    return bill


@transactional
def confirm_payment(
    bill_id: Any,
    admin_id: int,
    payment_method: Any,
    transaction_id: Any = None,
    notes: Any = None,
) -> Bill:
    """
    Admin-side confirmation of a payment received outside the app
    (cash, cheque, bank transfer).

    Same one-way move as record_payment(): pending -> successful, once.
    A paid bill is never set back to pending.
    """
    values = _payment_values(payment_method, transaction_id, notes)
    bill = get_or_raise(Bill, bill_id, "Bill")

    values["payment_confirmed_by_id"] = admin_id
    changed = compare_and_set(
        Bill,
        bill.id,
        column="payment_status",
        expected=[PaymentStatus.PENDING.value],
        values=values,
    )
    if not changed:
        raise _already_paid(get_or_raise(Bill, bill.id, "Bill"))

    bill = reload(Bill, bill.id)
    logger.info("payment for bill %s confirmed by %s via %s", bill.bill_number, admin_id, values["payment_method"])
    return bill


# ---------------------------------------------------------------------
# Client reads
# ---------------------------------------------------------------------
def list_bills_for_client(client_id: int, payment_status: Optional[str] = None) -> List[Bill]:
    query = Bill.query.filter(Bill.client_id == client_id)
    status = _payment_status(payment_status)
    if status:
        query = query.filter(Bill.payment_status == status)
    return query.order_by(Bill.sent_at.desc(), Bill.id.desc()).all()


def get_bill_detail(bill_id: Any, client_id: int) -> Bill:
    key = parse_optional_int(bill_id)
    bill = Bill.query.filter_by(id=key, client_id=client_id).first() if key is not None else None
    if bill is None:
        raise NotFound("Bill", bill_id)
    return bill


# ---------------------------------------------------------------------
# Admin reads / maintenance
# ---------------------------------------------------------------------
def get_bill(bill_id: Any) -> Bill:
    return get_or_raise(Bill, bill_id, "Bill")


def list_bills(payment_status: Optional[str] = None, client_id: Optional[int] = None) -> List[Bill]:
    query = Bill.query
    status = _payment_status(payment_status)
    if status:
        query = query.filter(Bill.payment_status == status)
    if client_id is not None:
        query = query.filter(Bill.client_id == client_id)
    return query.order_by(Bill.sent_at.desc(), Bill.id.desc()).all()


def bill_stats() -> Dict[str, Any]:
    """Bill counts and revenue split by payment status."""
    rows = (
        db.session.query(
            Bill.payment_status,
            func.count(Bill.id),
            func.coalesce(func.sum(Bill.total_amount), 0),
        )
        .group_by(Bill.payment_status)
        .all()
    )
    counts = {status.value: 0 for status in PaymentStatus}
    sums = {status.value: Decimal("0") for status in PaymentStatus}
    for status, count, total in rows:
        counts[status] = count
        sums[status] = Decimal(str(total))

    return {
        "total_bills": sum(counts.values()),
        "pending_bills": counts[PaymentStatus.PENDING.value],
        "successful_bills": counts[PaymentStatus.SUCCESSFUL.value],
        "total_revenue": _money(sums[PaymentStatus.SUCCESSFUL.value]),
        "pending_revenue": _money(sums[PaymentStatus.PENDING.value]),
    }


def outstanding_bills(today: Optional[date] = None) -> Dict[str, Any]:
    """Unpaid bills whose due date has passed, oldest due date first."""
    today = today or datetime.utcnow().date()
    bills = (
        Bill.query.filter(
            Bill.payment_status == PaymentStatus.PENDING.value,
            Bill.due_date.isnot(None),
            Bill.due_date < today,
        )
        .order_by(Bill.due_date.asc(), Bill.id.asc())
        .all()
    )
    total = sum((Decimal(str(b.total_amount)) for b in bills), Decimal("0"))
    return {"bills": bills, "total_outstanding": _money(total)}


@transactional
def delete_bill(bill_id: Any) -> None:
    """Delete an unpaid bill (and its feedback). Paid bills are kept."""
    bill = get_or_raise(Bill, bill_id, "Bill", for_update=True)
    if bill.payment_status == PaymentStatus.SUCCESSFUL.value:
        raise InvalidTransition("Bill", bill.payment_status, message="Cannot delete bill with successful payment")

    db.session.delete(bill)
    logger.info("bill %s deleted", bill.bill_number)
