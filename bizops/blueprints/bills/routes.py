"""
bizops/blueprints/bills/routes.py

Bill routes.

Admin:
- POST   /api/bills/orders/<order_id>      bill an order for a client
- GET    /api/bills/admin                  list (?payment_status=&client_id=)
- GET    /api/bills/admin/stats
- GET    /api/bills/admin/outstanding      unpaid and past due
- GET    /api/bills/admin/<bill_id>
- DELETE /api/bills/admin/<bill_id>        unpaid bills only
- PATCH  /api/bills/admin/<bill_id>/payment confirm an offline payment (never reverts)

Client (session account is the owner):
- GET    /api/bills/mine
- GET    /api/bills/mine/<bill_id>
- POST   /api/bills/mine/<bill_id>/payment

IMPORTANT:
- Bill creation is not idempotent. After a timeout, re-read the order's bill
  before retrying.
"""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from ...errors import ValidationError
from ...models import PaymentStatus
from ...security import admin_required, customer_required
from ...services import billing as billing_service
from ...utils import json_body, ok, parse_optional_int

bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


# ---------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------
@bills_bp.route("/orders/<int:order_id>", methods=["POST"])
@login_required
@admin_required
def create_bill(order_id: int):
    data = json_body()
    bill = billing_service.create_bill_from_order(
        order_id,
        client_id=data.get("client_id"),
        created_by_id=current_user.id,
        due_date=data.get("due_date"),
        notes=data.get("additional_notes") or data.get("notes"),
    )
    return ok(bill.to_dict(), 201, message="Bill created and sent to client successfully")


@bills_bp.route("/admin")
@login_required
@admin_required
def list_bills():
    bills = billing_service.list_bills(
        payment_status=(request.args.get("payment_status") or "").strip() or None,
        client_id=parse_optional_int(request.args.get("client_id")),
    )
    return ok([b.to_dict() for b in bills])


@bills_bp.route("/admin/stats")
@login_required
@admin_required
def bill_stats():
    return ok(billing_service.bill_stats())


@bills_bp.route("/admin/outstanding")
@login_required
@admin_required
def outstanding():
    report = billing_service.outstanding_bills()
    return ok(
        {
            "bills": [b.to_dict() for b in report["bills"]],
            "total_outstanding": report["total_outstanding"],
        }
    )


@bills_bp.route("/admin/<int:bill_id>", methods=["GET"])
@login_required
@admin_required
def get_bill(bill_id: int):
    return ok(billing_service.get_bill(bill_id).to_dict())


@bills_bp.route("/admin/<int:bill_id>", methods=["DELETE"])
@login_required
@admin_required
def delete_bill(bill_id: int):
    billing_service.delete_bill(bill_id)
    return ok(None, message="Bill deleted successfully")


@bills_bp.route("/admin/<int:bill_id>/payment", methods=["PATCH"])
@login_required
@admin_required
def confirm_payment(bill_id: int):
    """Mark a bill paid on the client's behalf (cash, cheque, bank transfer)."""
    data = json_body()
    requested = data.get("payment_status")
    if requested not in (None, "", PaymentStatus.SUCCESSFUL.value):
        raise ValidationError("payment_status", "Payments can only be confirmed; a paid bill never reverts to pending")
    bill = billing_service.confirm_payment(
        bill_id,
        current_user.id,
        payment_method=data.get("payment_method"),
        transaction_id=data.get("transaction_id"),
        notes=data.get("payment_notes") or data.get("notes"),
    )
    return ok(bill.to_dict(), message="Bill payment confirmed successfully")


# ---------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------
@bills_bp.route("/mine")
@login_required
@customer_required
def my_bills():
    bills = billing_service.list_bills_for_client(
        current_user.id,
        payment_status=(request.args.get("payment_status") or "").strip() or None,
    )
    return ok([b.to_dict() for b in bills])


@bills_bp.route("/mine/<int:bill_id>")
@login_required
@customer_required
def my_bill(bill_id: int):
    return ok(billing_service.get_bill_detail(bill_id, current_user.id).to_dict())


@bills_bp.route("/mine/<int:bill_id>/payment", methods=["POST"])
@login_required
@customer_required
def pay_bill(bill_id: int):
    data = json_body()
    bill = billing_service.record_payment(
        bill_id,
        current_user.id,
        payment_method=data.get("payment_method"),
        transaction_id=data.get("transaction_id"),
        notes=data.get("payment_notes") or data.get("notes"),
    )
    return ok(bill.to_dict(), message="Payment marked as completed successfully")
