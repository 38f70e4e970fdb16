"""
Business Operations - Domain Models

Tables:
- accounts: signup / role-gated approval
- orders:   sale & purchase orders with derived amounts
- bills:    point-in-time snapshot of an order, plus payment sub-lifecycle
- feedback: client rating attached to a bill

IMPORTANT:
- Derived order amounts (subtotal, discount_amount, total_amount) are written
  only by the order service through bizops.pricing.compute_amounts().
- Bill commercial fields are frozen at creation; nothing updates them.
- Status columns are plain strings; the allowed values live in the enums
  below and transitions are enforced by the services.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Closed value sets
# ---------------------------------------------------------------------
class Role(str, Enum):
    CLIENT = "client"
    DEALER = "dealer"
    FIELD_EMPLOYEE = "field-employee"
    OFFICE_EMPLOYEE = "office-employee"
    SALES_PURCHASE_EMPLOYEE = "sales-purchase-employee"

    @property
    def requires_approval(self) -> bool:
        return self in GATED_ROLES


GATED_ROLES = frozenset({Role.FIELD_EMPLOYEE, Role.OFFICE_EMPLOYEE, Role.SALES_PURCHASE_EMPLOYEE})
CUSTOMER_ROLES = frozenset({Role.CLIENT, Role.DEALER})


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrderType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESSFUL = "successful"


class FeedbackStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


# ---------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------
def _money_str(value) -> str | None:
    if value is None:
        return None
    return str(Decimal(str(value)).quantize(Decimal("0.01")))


def _iso(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


# ---------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------
class Account(UserMixin, db.Model):
    """Signed-up user. Admins are flagged out of band (CLI), never via signup."""

    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)

    account_code = db.Column(db.Integer, nullable=False, unique=True, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(10), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(40), nullable=False, index=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False, index=True)

    department = db.Column(db.String(120), nullable=True)
    employee_id = db.Column(db.String(50), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=ApprovalStatus.PENDING.value, index=True)
    approval_required = db.Column(db.Boolean, default=False, nullable=False)

    approved_by_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    submitted_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    approval_note = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    approved_by = db.relationship("Account", remote_side=[id], foreign_keys=[approved_by_id])

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    @property
    def can_login(self) -> bool:
        """Gated roles must be approved; everybody else may log in."""
        if self.is_admin:
            return True
        if self.approval_required or self.role_enum.requires_approval:
            return self.status == ApprovalStatus.APPROVED.value
        return True

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses login_user() for inactive accounts
        return self.can_login

    def is_staff(self) -> bool:
        if self.is_admin:
            return True
        return self.role_enum in GATED_ROLES and self.status == ApprovalStatus.APPROVED.value

    def is_customer(self) -> bool:
        return self.role_enum in CUSTOMER_ROLES

    def to_dict(self) -> dict:
        """Public representation (never includes the password hash)."""
        return {
            "id": self.id,
            "account_code": self.account_code,
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "role": self.role,
            "is_admin": self.is_admin,
            "department": self.department,
            "employee_id": self.employee_id,
            "status": self.status,
            "approval_required": self.approval_required,
            "approved_by_id": self.approved_by_id,
            "submitted_at": _iso(self.submitted_at),
            "approved_at": _iso(self.approved_at),
            "rejected_at": _iso(self.rejected_at),
            "approval_note": self.approval_note,
            "rejection_reason": self.rejection_reason,
            "last_login_at": _iso(self.last_login_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Account {self.account_code} {self.role}>"


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_category = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))

    # Derived (see bizops.pricing)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False)

    order_type = db.Column(db.String(20), nullable=False, default=OrderType.SALE.value, index=True)
    priority = db.Column(db.String(20), nullable=False, default=Priority.MEDIUM.value, index=True)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)

    # Delivery details (copied into bills)
    delivery_address = db.Column(db.Text, nullable=True)
    pincode = db.Column(db.String(10), nullable=True)
    vehicle_name = db.Column(db.String(255), nullable=True)
    vehicle_number = db.Column(db.String(50), nullable=True)

    expected_delivery_date = db.Column(db.Date, nullable=True)
    actual_delivery_date = db.Column(db.DateTime, nullable=True)

    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = db.relationship("Account", foreign_keys=[customer_id])
    created_by = db.relationship("Account", foreign_keys=[created_by_id])

    bills = db.relationship("Bill", back_populates="order", lazy=True, passive_deletes="all")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "product_name": self.product_name,
            "product_category": self.product_category,
            "description": self.description,
            "quantity": _money_str(self.quantity),
            "unit": self.unit,
            "unit_price": _money_str(self.unit_price),
            "discount": _money_str(self.discount),
            "subtotal": _money_str(self.subtotal),
            "discount_amount": _money_str(self.discount_amount),
            "total_amount": _money_str(self.total_amount),
            "order_type": self.order_type,
            "priority": self.priority,
            "status": self.status,
            "delivery_address": self.delivery_address,
            "pincode": self.pincode,
            "vehicle_name": self.vehicle_name,
            "vehicle_number": self.vehicle_number,
            "expected_delivery_date": _iso(self.expected_delivery_date),
            "actual_delivery_date": _iso(self.actual_delivery_date),
            "customer_id": self.customer_id,
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Order {self.order_number} {self.status}>"


# ---------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------
class Bill(db.Model):
    """Client-facing snapshot of one order. Commercial columns never change after insert."""

    __tablename__ = "bills"

    id = db.Column(db.Integer, primary_key=True)

    bill_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    # One bill per order
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True,
    )
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Frozen order details
    material_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(14, 2), nullable=False)

    # Frozen delivery details
    delivery_address = db.Column(db.Text, nullable=True)
    pincode = db.Column(db.String(10), nullable=True)
    vehicle_name = db.Column(db.String(255), nullable=True)
    vehicle_number = db.Column(db.String(50), nullable=True)

    # Payment
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_method = db.Column(db.String(100), nullable=True)
    transaction_id = db.Column(db.String(255), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=True)
    payment_notes = db.Column(db.Text, nullable=True)
    # Set when an admin confirmed the payment instead of the client recording it
    payment_confirmed_by_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )

    sent_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    due_date = db.Column(db.Date, nullable=True, index=True)
    additional_notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    order = db.relationship("Order", back_populates="bills")
    client = db.relationship("Account", foreign_keys=[client_id])
    created_by = db.relationship("Account", foreign_keys=[created_by_id])
    payment_confirmed_by = db.relationship("Account", foreign_keys=[payment_confirmed_by_id])

    feedback = db.relationship(
        "Feedback",
        back_populates="bill",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "order_id": self.order_id,
            "client_id": self.client_id,
            "material_name": self.material_name,
            "description": self.description,
            "quantity": _money_str(self.quantity),
            "unit": self.unit,
            "unit_price": _money_str(self.unit_price),
            "subtotal": _money_str(self.subtotal),
            "discount_percentage": _money_str(self.discount_percentage),
            "discount_amount": _money_str(self.discount_amount),
            "total_amount": _money_str(self.total_amount),
            "delivery_address": self.delivery_address,
            "pincode": self.pincode,
            "vehicle_name": self.vehicle_name,
            "vehicle_number": self.vehicle_number,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "payment_date": _iso(self.payment_date),
            "payment_notes": self.payment_notes,
            "payment_confirmed_by_id": self.payment_confirmed_by_id,
            "sent_at": _iso(self.sent_at),
            "due_date": _iso(self.due_date),
            "additional_notes": self.additional_notes,
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Bill {self.bill_number} {self.payment_status}>"


# ---------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------
class Feedback(db.Model):
    __tablename__ = "feedback"

    id = db.Column(db.Integer, primary_key=True)

    # Zero-or-one feedback per bill
    bill_id = db.Column(
        db.Integer,
        db.ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    rating = db.Column(db.Integer, nullable=False, index=True)
    service_quality = db.Column(db.Integer, nullable=True)
    delivery_time = db.Column(db.Integer, nullable=True)
    product_quality = db.Column(db.Integer, nullable=True)

    comments = db.Column(db.Text, nullable=False)
    suggestions = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=FeedbackStatus.SUBMITTED.value, index=True)

    admin_response = db.Column(db.Text, nullable=True)
    responded_by_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    responded_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bill = db.relationship("Bill", back_populates="feedback")
    client = db.relationship("Account", foreign_keys=[client_id])
    responded_by = db.relationship("Account", foreign_keys=[responded_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "client_id": self.client_id,
            "rating": self.rating,
            "service_quality": self.service_quality,
            "delivery_time": self.delivery_time,
            "product_quality": self.product_quality,
            "comments": self.comments,
            "suggestions": self.suggestions,
            "status": self.status,
            "admin_response": self.admin_response,
            "responded_by_id": self.responded_by_id,
            "responded_at": _iso(self.responded_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Feedback bill={self.bill_id} {self.status}>"
