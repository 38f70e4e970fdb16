"""
Tests for signup and the role-gated approval workflow.

- client / dealer accounts are approved at signup
- employee roles start pending and cannot log in until approved
- approve / reject only from pending; reopen goes back to pending
"""

import pytest

from bizops.errors import (
    AccountNotApproved,
    DuplicatePhoneOrEmail,
    InvalidCredentials,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from bizops.models import Account, Role
from bizops.services import accounts as account_service
from bizops.services import orders as order_service

PASSWORD = "secret123"


def _draft(**overrides):
    draft = {
        "full_name": "Asha Rao",
        "phone": "98765 43210",
        "email": "Asha@Example.com",
        "password": PASSWORD,
        "role": "client",
    }
    draft.update(overrides)
    return draft


class TestSignup:
    def test_client_is_approved_immediately(self, app):
        account = account_service.submit_account(_draft())
        assert account.status == "approved"
        assert account.approval_required is False
        assert account.can_login
        assert account.phone == "9876543210"
        assert account.email == "asha@example.com"
        assert 1000 <= account.account_code <= 9999

    def test_password_is_hashed(self, app):
        account = account_service.submit_account(_draft())
        assert account.password_hash != PASSWORD
        assert account.check_password(PASSWORD)
        assert "password_hash" not in account.to_dict()

    def test_field_employee_starts_pending(self, app):
        account = account_service.submit_account(_draft(role="field-employee"))
        assert account.status == "pending"
        assert account.approval_required is True
        assert not account.can_login

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Sales & Purchase", Role.SALES_PURCHASE_EMPLOYEE),
            ("sale_parchase", Role.SALES_PURCHASE_EMPLOYEE),
            ("Office Employee", Role.OFFICE_EMPLOYEE),
            ("DEALER", Role.DEALER),
        ],
    )
    def test_role_spellings(self, raw, expected):
        assert account_service.parse_role(raw) is expected

    def test_unknown_role_rejected(self, app):
        with pytest.raises(ValidationError) as exc:
            account_service.submit_account(_draft(role="admin"))
        assert exc.value.field == "role"
        assert Account.query.count() == 0

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"full_name": "  "}, "full_name"),
            ({"phone": "12345"}, "phone"),
            ({"email": "not-an-email"}, "email"),
            ({"password": "123"}, "password"),
        ],
    )
    def test_validation_errors_name_the_field(self, app, overrides, field):
        with pytest.raises(ValidationError) as exc:
            account_service.submit_account(_draft(**overrides))
        assert exc.value.field == field

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"full_name": 123}, "full_name"),
            ({"full_name": ["Asha"]}, "full_name"),
            ({"phone": {"number": "9876543210"}}, "phone"),
            ({"phone": True}, "phone"),
            ({"email": 42}, "email"),
            ({"password": 123456}, "password"),
            ({"password": ["secret123"]}, "password"),
            ({"department": 7}, "department"),
            ({"employee_id": 1001}, "employee_id"),
        ],
    )
    def test_non_string_input_is_a_validation_error(self, app, overrides, field):
        with pytest.raises(ValidationError) as exc:
            account_service.submit_account(_draft(**overrides))
        assert exc.value.field == field
        assert Account.query.count() == 0

    def test_first_invalid_field_wins(self, app):
        with pytest.raises(ValidationError) as exc:
            account_service.submit_account(_draft(full_name="", phone="1", email="x"))
        assert exc.value.field == "full_name"

    def test_duplicate_email(self, app):
        account_service.submit_account(_draft())
        with pytest.raises(DuplicatePhoneOrEmail) as exc:
            account_service.submit_account(_draft(phone="9000000000"))
        assert exc.value.field == "email"

    def test_duplicate_phone(self, app):
        account_service.submit_account(_draft())
        with pytest.raises(DuplicatePhoneOrEmail) as exc:
            account_service.submit_account(_draft(email="other@example.com"))
        assert exc.value.field == "phone"


class TestApproval:
    def test_pending_employee_cannot_log_in_until_approved(self, app, admin):
        account = account_service.submit_account(_draft(role="field-employee"))

        with pytest.raises(AccountNotApproved):
            account_service.authenticate(account.phone, PASSWORD)

        approved = account_service.approve_account(account.id, admin.id, note="Welcome")
        assert approved.status == "approved"
        assert approved.approved_by_id == admin.id
        assert approved.approved_at is not None
        assert approved.approval_note == "Welcome"

        assert account_service.authenticate(account.phone, PASSWORD).id == account.id

    def test_approve_twice_is_invalid(self, app, admin):
        account = account_service.submit_account(_draft(role="office-employee"))
        account_service.approve_account(account.id, admin.id)
        with pytest.raises(InvalidTransition):
            account_service.approve_account(account.id, admin.id)

    def test_reject_requires_reason(self, app, admin):
        account = account_service.submit_account(_draft(role="office-employee"))
        with pytest.raises(ValidationError) as exc:
            account_service.reject_account(account.id, admin.id, "  ")
        assert exc.value.field == "reason"

    def test_rejected_account_cannot_log_in(self, app, admin):
        account = account_service.submit_account(_draft(role="sales-purchase-employee"))
        rejected = account_service.reject_account(account.id, admin.id, "Unknown employee")
        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "Unknown employee"

        with pytest.raises(AccountNotApproved) as exc:
            account_service.authenticate(account.phone, PASSWORD)
        assert "rejected" in exc.value.message

    def test_cannot_approve_rejected_without_reopen(self, app, admin):
        account = account_service.submit_account(_draft(role="field-employee"))
        account_service.reject_account(account.id, admin.id, "No")
        with pytest.raises(InvalidTransition):
            account_service.approve_account(account.id, admin.id)

        reopened = account_service.reopen_account(account.id, admin.id)
        assert reopened.status == "pending"
        assert reopened.rejection_reason is None
        assert account_service.approve_account(account.id, admin.id).status == "approved"

    def test_reopen_pending_is_invalid(self, app, admin):
        account = account_service.submit_account(_draft(role="field-employee"))
        with pytest.raises(InvalidTransition):
            account_service.reopen_account(account.id, admin.id)

    def test_unknown_account(self, app, admin):
        with pytest.raises(NotFound):
            account_service.approve_account(424242, admin.id)

    def test_pending_list_is_oldest_first(self, app, make_account):
        first = make_account("field-employee")
        second = make_account("office-employee")
        make_account("client")
        assert [a.id for a in account_service.list_pending_accounts()] == [first.id, second.id]


class TestAuthenticate:
    def test_wrong_password_and_unknown_phone_look_the_same(self, app, customer):
        with pytest.raises(InvalidCredentials) as wrong:
            account_service.authenticate(customer.phone, "nope-nope")
        with pytest.raises(InvalidCredentials) as unknown:
            account_service.authenticate("1112223334", PASSWORD)
        assert wrong.value.message == unknown.value.message

    def test_login_stamps_last_login(self, app, customer):
        account = account_service.authenticate(customer.phone, PASSWORD)
        assert account.last_login_at is not None

    def test_change_password(self, app, customer):
        account_service.change_password(customer.id, PASSWORD, "new-secret")
        with pytest.raises(InvalidCredentials):
            account_service.authenticate(customer.phone, PASSWORD)
        assert account_service.authenticate(customer.phone, "new-secret").id == customer.id

    @pytest.mark.parametrize("password", [123456, 123.5, ["secret123"], {"value": "secret123"}, True])
    def test_non_string_password_is_invalid_credentials(self, app, customer, password):
        with pytest.raises(InvalidCredentials):
            account_service.authenticate(customer.phone, password)

    def test_non_string_phone_is_invalid_credentials(self, app, customer):
        with pytest.raises(InvalidCredentials):
            account_service.authenticate([customer.phone], PASSWORD)

    def test_change_password_rejects_non_strings(self, app, customer):
        with pytest.raises(InvalidCredentials):
            account_service.change_password(customer.id, 123456, "new-secret")
        with pytest.raises(ValidationError) as exc:
            account_service.change_password(customer.id, PASSWORD, 12345678)
        assert exc.value.field == "new_password"
        assert account_service.authenticate(customer.phone, PASSWORD).id == customer.id


class TestUpdateProfile:
    def test_updates_name_email_and_phone(self, app, customer):
        account = account_service.update_profile(
            customer.id,
            {"full_name": "  Client Renamed ", "email": "New@Example.com", "phone": "(912) 345-6789"},
        )
        assert account.full_name == "Client Renamed"
        assert account.email == "new@example.com"
        assert account.phone == "9123456789"
        assert account_service.authenticate("9123456789", PASSWORD).id == customer.id

    def test_blank_fields_are_left_alone(self, app, customer):
        email = customer.email
        account = account_service.update_profile(customer.id, {"full_name": "Only Name", "email": "", "phone": None})
        assert account.full_name == "Only Name"
        assert account.email == email

    def test_nothing_to_update(self, app, customer):
        with pytest.raises(ValidationError) as exc:
            account_service.update_profile(customer.id, {"full_name": "  "})
        assert exc.value.field == "profile"

    def test_keeping_own_email_is_not_a_duplicate(self, app, customer):
        account = account_service.update_profile(customer.id, {"email": customer.email})
        assert account.email == customer.email

    @pytest.mark.parametrize("field", ["email", "phone"])
    def test_taken_by_another_account(self, app, customer, make_account, field):
        other = make_account("dealer")
        with pytest.raises(DuplicatePhoneOrEmail) as exc:
            account_service.update_profile(customer.id, {field: getattr(other, field)})
        assert exc.value.field == field

    @pytest.mark.parametrize(
        "changes, field",
        [
            ({"email": "not-an-email"}, "email"),
            ({"phone": "12345"}, "phone"),
            ({"full_name": 99}, "full_name"),
            ({"email": ["a@b.co"]}, "email"),
        ],
    )
    def test_invalid_values(self, app, customer, changes, field):
        with pytest.raises(ValidationError) as exc:
            account_service.update_profile(customer.id, changes)
        assert exc.value.field == field


class TestApprovalStatusLookup:
    def test_lookup_by_phone_email_and_code(self, app, make_account):
        account = make_account("field-employee")
        for identifier in (account.phone, account.email, str(account.account_code)):
            status = account_service.approval_status(identifier)
            assert status["status"] == "pending"
            assert status["can_login"] is False

    def test_unknown_identifier(self, app):
        with pytest.raises(NotFound):
            account_service.approval_status("nobody@example.com")


class TestDeleteAccount:
    def test_references_are_nulled(self, app, admin, customer, make_order):
        order = make_order(customer_id=customer.id)
        account_service.delete_account(customer.id, admin.id)
        assert order_service.get_order(order.id).customer_id is None

    def test_admin_cannot_delete_self(self, app, admin):
        with pytest.raises(ValidationError):
            account_service.delete_account(admin.id, admin.id)
