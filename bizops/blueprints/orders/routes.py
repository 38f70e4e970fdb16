"""
bizops/blueprints/orders/routes.py

Order routes (staff only).

Includes:
- create / list / detail / stats
- partial update (amounts are always recomputed server-side)
- status change, cancel, duplicate, delete

IMPORTANT:
- Clients are never trusted. subtotal / discount_amount / total_amount in a
  request body are rejected, not ignored.
"""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from ...security import staff_required
from ...services import orders as order_service
from ...utils import json_body, ok, parse_optional_int

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("/", methods=["POST"])
@login_required
@staff_required
def create_order():
    order = order_service.create_order(json_body(), created_by_id=current_user.id)
    return ok(order.to_dict(), 201, message="Order created successfully")


@orders_bp.route("/", methods=["GET"])
@login_required
@staff_required
def list_orders():
    """Filterable order list: ?status=&order_type=&priority=&customer_id=&search="""
    args = request.args
    orders = order_service.list_orders(
        status=(args.get("status") or "").strip() or None,
        order_type=(args.get("order_type") or "").strip() or None,
        priority=(args.get("priority") or "").strip() or None,
        customer_id=parse_optional_int(args.get("customer_id")),
        search=(args.get("search") or "").strip() or None,
    )
    return ok([o.to_dict() for o in orders])


@orders_bp.route("/stats")
@login_required
@staff_required
def order_stats():
    return ok(order_service.order_stats())


@orders_bp.route("/<int:order_id>", methods=["GET"])
@login_required
@staff_required
def get_order(order_id: int):
    return ok(order_service.get_order(order_id).to_dict())


@orders_bp.route("/<int:order_id>", methods=["PATCH", "PUT"])
@login_required
@staff_required
def update_order(order_id: int):
    order = order_service.update_order(order_id, json_body())
    return ok(order.to_dict(), message="Order updated successfully")


@orders_bp.route("/<int:order_id>/status", methods=["PATCH"])
@login_required
@staff_required
def set_status(order_id: int):
    order = order_service.set_order_status(order_id, json_body().get("status"))
    return ok(order.to_dict(), message="Order status updated successfully")


@orders_bp.route("/<int:order_id>/cancel", methods=["POST"])
@login_required
@staff_required
def cancel_order(order_id: int):
    order = order_service.cancel_order(order_id)
    return ok(order.to_dict(), message="Order cancelled")


@orders_bp.route("/<int:order_id>/duplicate", methods=["POST"])
@login_required
@staff_required
def duplicate_order(order_id: int):
    order = order_service.duplicate_order(order_id, created_by_id=current_user.id)
    return ok(order.to_dict(), 201, message="Order duplicated successfully")


@orders_bp.route("/<int:order_id>", methods=["DELETE"])
@login_required
@staff_required
def delete_order(order_id: int):
    order_service.delete_order(order_id)
    return ok(None, message="Order deleted successfully")
