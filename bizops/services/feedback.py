"""
Client feedback attached to a bill.

Status flow:
    submitted -> reviewed -> resolved
    resolved  -> reviewed            (reopen)

respond_feedback() stores/overwrites the admin response and moves
submitted/reviewed feedback to reviewed. Admins may delete feedback outright.

Policy: by default feedback may be left on unpaid bills. Set
FEEDBACK_REQUIRES_PAYMENT to require a successful payment first.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Bill, Feedback, FeedbackStatus, PaymentStatus
from ..utils import parse_optional_int, parse_text
from . import compare_and_set, get_or_raise, reload, transactional

logger = logging.getLogger(__name__)

TRANSITIONS = {
    FeedbackStatus.SUBMITTED.value: {FeedbackStatus.REVIEWED.value},
    FeedbackStatus.REVIEWED.value: {FeedbackStatus.RESOLVED.value},
    FeedbackStatus.RESOLVED.value: {FeedbackStatus.REVIEWED.value},
}
RESPONDABLE = [FeedbackStatus.SUBMITTED.value, FeedbackStatus.REVIEWED.value]


def _rating(raw: Any, field: str, required: bool = True) -> Optional[int]:
    """Integer in [1, 5]. Optional sub-ratings may be omitted."""
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        if required:
            raise ValidationError(field, f"{field} is required")
        return None
    if isinstance(raw, bool):
        raise ValidationError(field, f"{field} must be an integer between 1 and 5")
    if isinstance(raw, float) and not raw.is_integer():
        raise ValidationError(field, f"{field} must be an integer between 1 and 5")
    try:
        value = int(str(raw).strip()) if not isinstance(raw, (int, float)) else int(raw)
    except ValueError:
        raise ValidationError(field, f"{field} must be an integer between 1 and 5") from None
    if value < 1 or value > 5:
        raise ValidationError(field, f"{field} must be between 1 and 5")
    return value


def _status(raw: Any) -> str:
    try:
        return FeedbackStatus(str(raw or "").strip().lower()).value
    except ValueError:
        allowed = ", ".join(s.value for s in FeedbackStatus)
        raise ValidationError("status", f"Invalid status. Valid statuses are: {allowed}") from None


def _requires_payment() -> bool:
    return bool(current_app.config.get("FEEDBACK_REQUIRES_PAYMENT", False))


@transactional
def submit_feedback(
    bill_id: Any,
    client_id: int,
    rating: Any,
    comments: Any,
    suggestions: Any = None,
    service_quality: Any = None,
    delivery_time: Any = None,
    product_quality: Any = None,
) -> Feedback:
    """Store the client's feedback on one of their own bills."""
    score = _rating(rating, "rating")
    text = parse_text(comments, "comments")
    if not text:
        raise ValidationError("comments", "Feedback comments are required")
    sub_ratings = {
        "service_quality": _rating(service_quality, "service_quality", required=False),
        "delivery_time": _rating(delivery_time, "delivery_time", required=False),
        "product_quality": _rating(product_quality, "product_quality", required=False),
    }

    key = parse_optional_int(bill_id)
    bill = Bill.query.filter_by(id=key, client_id=client_id).first() if key is not None else None
    if bill is None:
        raise NotFound("Bill", bill_id)

    if _requires_payment() and bill.payment_status != PaymentStatus.SUCCESSFUL.value:
        raise InvalidTransition("Bill", bill.payment_status, message="Feedback can only be left on paid bills")

    if bill.feedback is not None:
        raise InvalidTransition("Feedback", bill.feedback.status, message="Feedback already submitted for this bill")

    feedback = Feedback(
        bill_id=bill.id,
        client_id=client_id,
        rating=score,
        comments=text,
        suggestions=parse_text(suggestions, "suggestions"),
        status=FeedbackStatus.SUBMITTED.value,
        **sub_ratings,
    )
    db.session.add(feedback)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise InvalidTransition(
            "Feedback", FeedbackStatus.SUBMITTED.value, message="Feedback already submitted for this bill"
        ) from exc

    logger.info("feedback %s submitted on bill %s (rating=%s)", feedback.id, bill.bill_number, score)
    return feedback


@transactional
def respond_feedback(feedback_id: Any, admin_id: int, response_text: Any) -> Feedback:
    """Store (or overwrite) the admin response; feedback becomes reviewed."""
    text = parse_text(response_text, "response")
    if not text:
        raise ValidationError("response", "Admin response is required")

    feedback = get_or_raise(Feedback, feedback_id, "Feedback")
    changed = compare_and_set(
        Feedback,
        feedback.id,
        column="status",
        expected=RESPONDABLE,
        values={
            "status": FeedbackStatus.REVIEWED.value,
            "admin_response": text,
            "responded_by_id": admin_id,
            "responded_at": datetime.utcnow(),
        },
    )
    if not changed:
        current = get_or_raise(Feedback, feedback.id, "Feedback")
        raise InvalidTransition("Feedback", current.status, FeedbackStatus.REVIEWED.value)

    logger.info("feedback %s answered by %s", feedback.id, admin_id)
    return reload(Feedback, feedback.id)


@transactional
def set_feedback_status(feedback_id: Any, new_status: Any) -> Feedback:
    target = _status(new_status)
    feedback = get_or_raise(Feedback, feedback_id, "Feedback")

    sources = [source for source, targets in TRANSITIONS.items() if target in targets]
    changed = compare_and_set(
        Feedback,
        feedback.id,
        column="status",
        expected=sources,
        values={"status": target},
    )
    if not changed:
        current = get_or_raise(Feedback, feedback.id, "Feedback")
        raise InvalidTransition("Feedback", current.status, target)

    logger.info("feedback %s status %s -> %s", feedback.id, feedback.status, target)
    return reload(Feedback, feedback.id)


@transactional
def delete_feedback(feedback_id: Any, admin_id: int) -> None:
    """Admin removal of a feedback entry; the bill can then receive new feedback."""
    feedback = get_or_raise(Feedback, feedback_id, "Feedback")
    db.session.delete(feedback)
    logger.info("feedback %s on bill %s deleted by %s", feedback.id, feedback.bill_id, admin_id)


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def get_feedback(feedback_id: Any) -> Feedback:
    return get_or_raise(Feedback, feedback_id, "Feedback")


def list_feedback(status: Optional[str] = None, rating: Any = None) -> List[Feedback]:
    query = Feedback.query
    if status:
        query = query.filter(Feedback.status == _status(status))
    if rating not in (None, ""):
        query = query.filter(Feedback.rating == _rating(rating, "rating"))
    return query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()


def list_feedback_for_client(client_id: int) -> List[Feedback]:
    return (
        Feedback.query.filter(Feedback.client_id == client_id)
        .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        .all()
    )


def feedback_stats() -> Dict[str, Any]:
    """Counts per status, per rating and the average rating."""
    by_status = {status.value: 0 for status in FeedbackStatus}
    for status, count in db.session.query(Feedback.status, func.count(Feedback.id)).group_by(Feedback.status):
        by_status[status] = count

    by_rating = {str(score): 0 for score in range(1, 6)}
    for score, count in db.session.query(Feedback.rating, func.count(Feedback.id)).group_by(Feedback.rating):
        by_rating[str(score)] = count

    average = db.session.query(func.avg(Feedback.rating)).scalar()
    average_rating = (
        str(Decimal(str(average)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)) if average is not None else None
    )

    return {
        "total_feedback": sum(by_status.values()),
        "by_status": by_status,
        "by_rating": by_rating,
        "average_rating": average_rating,
    }
