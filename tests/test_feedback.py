"""Tests for client feedback on bills and the admin review flow."""

import pytest

from bizops.errors import InvalidTransition, NotFound, ValidationError
from bizops.models import Feedback
from bizops.services import billing as billing_service
from bizops.services import feedback as feedback_service


class TestSubmit:
    def test_feedback_on_pending_bill_allowed_by_default(self, make_bill, customer):
        bill = make_bill()
        assert bill.payment_status == "pending"
        feedback = feedback_service.submit_feedback(bill.id, customer.id, 4, "Good service", service_quality=5)
        assert feedback.status == "submitted"
        assert feedback.rating == 4
        assert feedback.service_quality == 5
        assert feedback.client_id == customer.id

    def test_payment_required_when_configured(self, app, make_bill, customer):
        app.config["FEEDBACK_REQUIRES_PAYMENT"] = True
        bill = make_bill()
        with pytest.raises(InvalidTransition):
            feedback_service.submit_feedback(bill.id, customer.id, 4, "Good service")

        billing_service.record_payment(bill.id, customer.id, "UPI")
        assert feedback_service.submit_feedback(bill.id, customer.id, 4, "Good service").rating == 4

    @pytest.mark.parametrize("rating", [0, 6, "five", 4.5, True, None])
    def test_invalid_rating(self, make_bill, customer, rating):
        bill = make_bill()
        with pytest.raises(ValidationError) as exc:
            feedback_service.submit_feedback(bill.id, customer.id, rating, "Text")
        assert exc.value.field == "rating"

    def test_invalid_sub_rating(self, make_bill, customer):
        bill = make_bill()
        with pytest.raises(ValidationError) as exc:
            feedback_service.submit_feedback(bill.id, customer.id, 4, "Text", delivery_time=9)
        assert exc.value.field == "delivery_time"

    def test_comments_required(self, make_bill, customer):
        bill = make_bill()
        with pytest.raises(ValidationError) as exc:
            feedback_service.submit_feedback(bill.id, customer.id, 4, "   ")
        assert exc.value.field == "comments"

    def test_only_own_bills(self, make_bill, make_account):
        bill = make_bill()
        stranger = make_account("client")
        with pytest.raises(NotFound):
            feedback_service.submit_feedback(bill.id, stranger.id, 4, "Text")

    def test_one_feedback_per_bill(self, make_bill, customer):
        bill = make_bill()
        feedback_service.submit_feedback(bill.id, customer.id, 4, "First")
        with pytest.raises(InvalidTransition):
            feedback_service.submit_feedback(bill.id, customer.id, 2, "Second")


class TestReview:
    @pytest.fixture
    def feedback(self, make_bill, customer):
        bill = make_bill()
        return feedback_service.submit_feedback(bill.id, customer.id, 3, "Late delivery")

    def test_respond_moves_to_reviewed(self, feedback, admin):
        answered = feedback_service.respond_feedback(feedback.id, admin.id, "Sorry, fixed")
        assert answered.status == "reviewed"
        assert answered.admin_response == "Sorry, fixed"
        assert answered.responded_by_id == admin.id
        assert answered.responded_at is not None

    def test_respond_overwrites(self, feedback, admin):
        feedback_service.respond_feedback(feedback.id, admin.id, "First")
        assert feedback_service.respond_feedback(feedback.id, admin.id, "Second").admin_response == "Second"

    def test_empty_response_rejected(self, feedback, admin):
        with pytest.raises(ValidationError) as exc:
            feedback_service.respond_feedback(feedback.id, admin.id, "")
        assert exc.value.field == "response"

    def test_respond_on_resolved_is_invalid(self, feedback, admin):
        feedback_service.set_feedback_status(feedback.id, "reviewed")
        feedback_service.set_feedback_status(feedback.id, "resolved")
        with pytest.raises(InvalidTransition):
            feedback_service.respond_feedback(feedback.id, admin.id, "Too late")

    def test_status_flow(self, feedback):
        assert feedback_service.set_feedback_status(feedback.id, "reviewed").status == "reviewed"
        assert feedback_service.set_feedback_status(feedback.id, "resolved").status == "resolved"
        assert feedback_service.set_feedback_status(feedback.id, "reviewed").status == "reviewed"

    def test_cannot_skip_to_resolved(self, feedback):
        with pytest.raises(InvalidTransition):
            feedback_service.set_feedback_status(feedback.id, "resolved")

    def test_unknown_status(self, feedback):
        with pytest.raises(ValidationError):
            feedback_service.set_feedback_status(feedback.id, "closed")


class TestQueries:
    def test_stats_and_filters(self, make_bill, customer):
        for rating in (5, 4, 4):
            bill = make_bill()
            feedback_service.submit_feedback(bill.id, customer.id, rating, "ok")

        stats = feedback_service.feedback_stats()
        assert stats["total_feedback"] == 3
        assert stats["by_status"]["submitted"] == 3
        assert stats["by_rating"]["4"] == 2
        assert stats["average_rating"] == "4.33"

        assert len(feedback_service.list_feedback(rating=4)) == 2
        assert len(feedback_service.list_feedback(status="reviewed")) == 0
        assert len(feedback_service.list_feedback_for_client(customer.id)) == 3

    def test_empty_stats(self, app):
        stats = feedback_service.feedback_stats()
        assert stats["total_feedback"] == 0
        assert stats["average_rating"] is None


class TestTextInput:
    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"comments": 5}, "comments"),
            ({"comments": ["Good"]}, "comments"),
            ({"comments": "Good", "suggestions": {"more": "stock"}}, "suggestions"),
        ],
    )
    def test_non_string_submit_fields(self, make_bill, customer, kwargs, field):
        bill = make_bill()
        with pytest.raises(ValidationError) as exc:
            feedback_service.submit_feedback(bill.id, customer.id, 4, **kwargs)
        assert exc.value.field == field
        assert Feedback.query.count() == 0

    @pytest.mark.parametrize("response", [42, ["Thanks"], {"text": "Thanks"}])
    def test_non_string_response(self, make_bill, customer, admin, response):
        bill = make_bill()
        feedback = feedback_service.submit_feedback(bill.id, customer.id, 4, "Good")
        with pytest.raises(ValidationError) as exc:
            feedback_service.respond_feedback(feedback.id, admin.id, response)
        assert exc.value.field == "response"
        assert feedback_service.get_feedback(feedback.id).status == "submitted"


class TestDelete:
    def test_admin_deletes_feedback(self, make_bill, customer, admin):
        bill = make_bill()
        feedback_id = feedback_service.submit_feedback(bill.id, customer.id, 2, "Late").id
        feedback_service.delete_feedback(feedback_id, admin.id)

        assert Feedback.query.count() == 0
        with pytest.raises(NotFound):
            feedback_service.get_feedback(feedback_id)
        assert billing_service.get_bill(bill.id).id == bill.id

    def test_bill_accepts_new_feedback_after_delete(self, make_bill, customer, admin):
        bill = make_bill()
        first = feedback_service.submit_feedback(bill.id, customer.id, 2, "Late")
        feedback_service.delete_feedback(first.id, admin.id)
        assert feedback_service.submit_feedback(bill.id, customer.id, 4, "Sorted out").rating == 4

    def test_unknown_feedback(self, admin):
        with pytest.raises(NotFound):
            feedback_service.delete_feedback(999, admin.id)
