"""
Tests for the order lifecycle.

Covers:
- derived amounts on create and on every relevant update
- rejection of derived / unknown fields and out-of-range discounts
- forward-only status flow, cancel, terminal orders
- delete refused once billed, duplicate under a new number
"""

from decimal import Decimal

import pytest

from bizops.errors import HasDependentBill, InvalidTransition, NotFound, ValidationError
from bizops.models import Order
from bizops.services import orders as order_service


class TestCreate:
    def test_steel_rod_amounts(self, make_order):
        order = make_order()
        assert order.subtotal == Decimal("500.00")
        assert order.discount_amount == Decimal("50.00")
        assert order.total_amount == Decimal("450.00")
        assert order.status == "pending"
        assert order.order_number.startswith("SO-")

    def test_purchase_order_prefix(self, make_order):
        assert make_order(order_type="purchase").order_number.startswith("PO-")

    def test_derived_field_in_draft_rejected(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(total_amount="1.00")
        assert exc.value.field == "total_amount"

    def test_unknown_field_rejected(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(colour="red")
        assert exc.value.field == "colour"

    @pytest.mark.parametrize("discount", ["-5", "101"])
    def test_discount_out_of_range(self, make_order, discount):
        with pytest.raises(ValidationError) as exc:
            make_order(discount=discount)
        assert exc.value.field == "discount"
        assert Order.query.count() == 0

    @pytest.mark.parametrize("field", ["quantity", "unit_price"])
    def test_non_positive_amounts(self, make_order, field):
        with pytest.raises(ValidationError) as exc:
            make_order(**{field: "0"})
        assert exc.value.field == field

    def test_product_name_required(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(product_name="  ")
        assert exc.value.field == "product_name"

    def test_unit_required(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(unit=None)
        assert exc.value.field == "unit"

    @pytest.mark.parametrize(
        "field, value",
        [("product_name", ["Steel Rod"]), ("unit", {"name": "pcs"}), ("description", True), ("vehicle_name", 1.5)],
    )
    def test_non_string_text_rejected(self, make_order, field, value):
        with pytest.raises(ValidationError) as exc:
            make_order(**{field: value})
        assert exc.value.field == field

    def test_numeric_pincode_stored_as_text(self, make_order):
        assert make_order(pincode=560001).pincode == "560001"

    def test_cannot_start_past_pending(self, make_order):
        with pytest.raises(ValidationError):
            make_order(status="shipped")

    def test_unknown_customer(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(customer_id=999)
        assert exc.value.field == "customer_id"

    def test_invalid_priority(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(priority="urgent")
        assert exc.value.field == "priority"


class TestUpdate:
    def test_quantity_change_recomputes(self, make_order):
        order = make_order()
        updated = order_service.update_order(order.id, {"quantity": 20})
        assert updated.subtotal == Decimal("1000.00")
        assert updated.discount_amount == Decimal("100.00")
        assert updated.total_amount == Decimal("900.00")

    def test_discount_change_recomputes(self, make_order):
        order = make_order()
        updated = order_service.update_order(order.id, {"discount": "0"})
        assert updated.total_amount == Decimal("500.00")

    def test_text_only_edit_keeps_amounts(self, make_order):
        order = make_order()
        updated = order_service.update_order(order.id, {"description": "12mm rods"})
        assert updated.description == "12mm rods"
        assert updated.total_amount == Decimal("450.00")

    def test_derived_field_in_patch_rejected(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"subtotal": "1"})
        assert order_service.get_order(order.id).subtotal == Decimal("500.00")

    def test_discount_out_of_range_on_update(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"discount": 150})
        assert order_service.get_order(order.id).discount == Decimal("10.00")

    def test_order_type_cannot_be_patched(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"order_type": "purchase"})

    def test_terminal_order_rejects_edits(self, make_order):
        order = make_order()
        order_service.cancel_order(order.id)
        with pytest.raises(InvalidTransition):
            order_service.update_order(order.id, {"quantity": 2})

    def test_unknown_order(self, app):
        with pytest.raises(NotFound):
            order_service.update_order(12345, {"quantity": 1})


class TestStatus:
    def test_forward_moves_may_skip(self, make_order):
        order = make_order()
        assert order_service.set_order_status(order.id, "shipped").status == "shipped"

    def test_backward_move_rejected(self, make_order):
        order = make_order()
        order_service.set_order_status(order.id, "processing")
        with pytest.raises(InvalidTransition):
            order_service.set_order_status(order.id, "confirmed")

    def test_delivered_stamps_actual_date(self, make_order):
        order = make_order()
        delivered = order_service.set_order_status(order.id, "delivered")
        assert delivered.actual_delivery_date is not None

    def test_delivered_cannot_be_cancelled(self, make_order):
        order = make_order()
        order_service.set_order_status(order.id, "delivered")
        with pytest.raises(InvalidTransition):
            order_service.cancel_order(order.id)

    def test_cancel_is_idempotent(self, make_order):
        order = make_order()
        assert order_service.cancel_order(order.id).status == "cancelled"
        assert order_service.cancel_order(order.id).status == "cancelled"

    def test_unknown_status(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.set_order_status(order.id, "lost")

    def test_can_transition(self):
        assert order_service.can_transition("draft", "delivered")
        assert order_service.can_transition("shipped", "cancelled")
        assert not order_service.can_transition("shipped", "pending")
        assert not order_service.can_transition("cancelled", "pending")


class TestDeleteAndDuplicate:
    def test_delete_unbilled(self, make_order):
        order = make_order()
        order_service.delete_order(order.id)
        assert Order.query.count() == 0

    def test_delete_billed_is_refused(self, make_bill):
        bill = make_bill()
        with pytest.raises(HasDependentBill):
            order_service.delete_order(bill.order_id)
        assert order_service.get_order(bill.order_id) is not None

    def test_duplicate(self, admin, make_order):
        order = make_order()
        order_service.set_order_status(order.id, "shipped")
        copy = order_service.duplicate_order(order.id, admin.id)
        assert copy.id != order.id
        assert copy.order_number != order.order_number
        assert copy.product_name == "Steel Rod (Copy)"
        assert copy.status == "pending"
        assert copy.total_amount == Decimal("450.00")


class TestQueries:
    def test_filters_and_search(self, make_order):
        make_order(product_name="Copper Wire", order_type="purchase", priority="high")
        make_order()
        assert [o.product_name for o in order_service.list_orders(order_type="purchase")] == ["Copper Wire"]
        assert len(order_service.list_orders(priority="high")) == 1
        assert len(order_service.list_orders(search="steel")) == 1
        assert len(order_service.list_orders(status="pending")) == 2

    def test_stats_exclude_cancelled_value(self, make_order):
        make_order()
        cancelled = make_order()
        order_service.cancel_order(cancelled.id)
        stats = order_service.order_stats()
        assert stats["total_orders"] == 2
        assert stats["by_status"]["cancelled"] == 1
        assert stats["by_status"]["pending"] == 1
        assert stats["total_value"] == "450.00"
