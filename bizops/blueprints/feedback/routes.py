"""
bizops/blueprints/feedback/routes.py

Feedback routes.

- Clients submit feedback on their own bills and list what they submitted.
- Admins list/filter feedback, respond, and move it through
  submitted -> reviewed -> resolved (resolved -> reviewed to reopen),
  and delete entries.
"""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from ...security import admin_required, customer_required
from ...services import feedback as feedback_service
from ...utils import json_body, ok

feedback_bp = Blueprint("feedback", __name__, url_prefix="/api/feedback")


# ----------------------------------------------------------------------
# CLIENT
# ----------------------------------------------------------------------
@feedback_bp.route("/", methods=["POST"])
@login_required
@customer_required
def submit():
    data = json_body()
    feedback = feedback_service.submit_feedback(
        data.get("bill_id"),
        current_user.id,
        rating=data.get("rating"),
        comments=data.get("comments") or data.get("feedback_text"),
        suggestions=data.get("suggestions") or data.get("recommendations"),
        service_quality=data.get("service_quality"),
        delivery_time=data.get("delivery_time"),
        product_quality=data.get("product_quality"),
    )
    return ok(feedback.to_dict(), 201, message="Feedback submitted successfully")


@feedback_bp.route("/mine")
@login_required
@customer_required
def my_feedback():
    items = feedback_service.list_feedback_for_client(current_user.id)
    return ok([f.to_dict() for f in items])


# ----------------------------------------------------------------------
# ADMIN
# ----------------------------------------------------------------------
@feedback_bp.route("/admin")
@login_required
@admin_required
def list_feedback():
    """Admin-only list, filterable by ?status= and ?rating=."""
    items = feedback_service.list_feedback(
        status=(request.args.get("status") or "").strip() or None,
        rating=(request.args.get("rating") or "").strip() or None,
    )
    return ok([f.to_dict() for f in items])


@feedback_bp.route("/admin/stats")
@login_required
@admin_required
def feedback_stats():
    return ok(feedback_service.feedback_stats())


@feedback_bp.route("/admin/<int:feedback_id>")
@login_required
@admin_required
def get_feedback(feedback_id: int):
    return ok(feedback_service.get_feedback(feedback_id).to_dict())


@feedback_bp.route("/admin/<int:feedback_id>/respond", methods=["POST"])
@login_required
@admin_required
def respond(feedback_id: int):
    data = json_body()
    feedback = feedback_service.respond_feedback(
        feedback_id,
        current_user.id,
        data.get("response") or data.get("admin_response"),
    )
    return ok(feedback.to_dict(), message="Response submitted successfully")


@feedback_bp.route("/admin/<int:feedback_id>/status", methods=["PATCH"])
@login_required
@admin_required
def set_status(feedback_id: int):
    feedback = feedback_service.set_feedback_status(feedback_id, json_body().get("status"))
    return ok(feedback.to_dict(), message="Feedback status updated successfully")


@feedback_bp.route("/admin/<int:feedback_id>", methods=["DELETE"])
@login_required
@admin_required
def delete(feedback_id: int):
    feedback_service.delete_feedback(feedback_id, current_user.id)
    return ok(None, message="Feedback deleted successfully")
