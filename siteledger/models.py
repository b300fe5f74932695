# siteledger/models.py
from __future__ import annotations

from datetime import date, datetime

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy.dialects.postgresql import JSONB

from .extensions import db
from .services.records import invoice_amounts, to_money


# Use **naive UTC** everywhere because the DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.utcnow()


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")

ROLES = ("admin", "supervisor", "viewer")


class SiteTransitionError(ValueError):
    """Raised when a site cannot move to the requested lifecycle state."""


class ApprovalTransitionError(ValueError):
    """Raised when an expense/advance review would break the approval workflow."""


# =========================================================
# User model (identity + role; credentials live with the auth provider)
# =========================================================
class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)

    # admin / supervisor / viewer
    role = db.Column(db.String(30), nullable=False, default="supervisor")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    sites = db.relationship("Site", back_populates="supervisor", lazy="select")

    __table_args__ = (
        db.UniqueConstraint("email", name="user_email_key"),
        db.CheckConstraint("role in ('admin','supervisor','viewer')", name="ck_user_role"),
    )

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} {self.role}>"


# =========================================================
# Approval workflow (expenses + advances)
# =========================================================
APPROVAL_STATUSES = {"pending", "approved", "rejected"}

ALLOWED_TRANSITIONS = {
    "pending": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class ReviewableMixin:
    """Shared review step for rows carrying an approval ``status``."""

    def review(self, target: str, reviewer: User | None = None) -> None:
        target = (target or "").strip().lower()
        current = (self.status or "").strip().lower()
        if target not in APPROVAL_STATUSES:
            raise ApprovalTransitionError(f"Unknown approval status '{target}'.")
        if not can_transition(current, target):
            raise ApprovalTransitionError(f"Cannot move from '{current}' to '{target}'.")

        self.status = target
        self.reviewed_by_user_id = reviewer.id if reviewer is not None else None
        self.reviewed_at = utcnow_naive()


# =========================================================
# Site
# =========================================================
class Site(db.Model):
    __tablename__ = "site"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    job_name = db.Column(db.String(160), nullable=False)
    pos_no = db.Column(db.String(60), nullable=False)

    start_date = db.Column(db.Date, nullable=False, default=date.today)
    completion_date = db.Column(db.Date, nullable=True)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)

    supervisor_id = db.Column(
        db.Integer,
        db.ForeignKey("user.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    supervisor = db.relationship("User", back_populates="sites", lazy="joined")

    # Denormalized running total of funds received; see services.site_data.
    funds = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    expenses = db.relationship("Expense", back_populates="site", lazy="select", cascade="all, delete-orphan")
    advances = db.relationship("Advance", back_populates="site", lazy="select", cascade="all, delete-orphan")
    funds_received = db.relationship(
        "FundsReceived", back_populates="site", lazy="select", cascade="all, delete-orphan"
    )
    invoices = db.relationship("Invoice", back_populates="site", lazy="select", cascade="all, delete-orphan")

    @property
    def state(self) -> str:
        return "completed" if self.is_completed else "active"

    def mark_completed(self, completion_date: date, today: date | None = None) -> None:
        """
        One-way ``active -> completed`` transition.

        The completion date may not precede the start date nor lie in the future.
        Aggregation is unaffected; completed sites keep reporting their history.
        """
        today = today or date.today()
        if self.is_completed:
            raise SiteTransitionError("Site is already completed.")
        if completion_date is None:
            raise SiteTransitionError("Completion date is required.")
        if self.start_date and completion_date < self.start_date:
            raise SiteTransitionError("Completion date cannot be before the start date.")
        if completion_date > today:
            raise SiteTransitionError("Completion date cannot be in the future.")

        self.is_completed = True
        self.completion_date = completion_date

    def __repr__(self) -> str:
        return f"<Site {self.id} {self.name} {self.state}>"


# =========================================================
# Expense
# =========================================================
EXPENSE_CATEGORIES = (
    "STAFF TRAVELLING CHARGES",
    "STATIONARY & PRINTING",
    "DIESEL & FUEL CHARGES",
    "LABOUR TRAVELLING EXP.",
    "LOADGING & BOARDING FOR STAFF",
    "FOOD CHARGES FOR LABOUR",
    "SITE EXPENSES",
    "ROOM RENT FOR LABOUR",
)


class Expense(ReviewableMixin, db.Model):
    __tablename__ = "expense"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("site.id", ondelete="CASCADE"), nullable=False, index=True)
    site = db.relationship("Site", back_populates="expenses")

    date = db.Column(db.Date, nullable=False, default=date.today)
    description = db.Column(db.Text, nullable=False, default="")
    category = db.Column(db.String(60), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(120), nullable=True)
    supervisor_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Expense {self.id} site={self.site_id} {self.amount} {self.status}>"


# =========================================================
# Advance
# =========================================================
ADVANCE_PURPOSES = ("advance", "safety_shoes", "tools", "other")
RECIPIENT_TYPES = ("worker", "subcontractor", "supervisor")


class Advance(ReviewableMixin, db.Model):
    __tablename__ = "advance"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("site.id", ondelete="CASCADE"), nullable=False, index=True)
    site = db.relationship("Site", back_populates="advances")

    date = db.Column(db.Date, nullable=False, default=date.today)
    recipient_id = db.Column(db.String(64), nullable=True)
    recipient_name = db.Column(db.String(160), nullable=False)
    recipient_type = db.Column(db.String(20), nullable=False, default="worker")
    purpose = db.Column(db.String(20), nullable=False, default="advance")
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    remarks = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_advance_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Advance {self.id} site={self.site_id} {self.purpose} {self.amount}>"


# =========================================================
# FundsReceived (no approval workflow)
# =========================================================
class FundsReceived(db.Model):
    __tablename__ = "funds_received"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("site.id", ondelete="CASCADE"), nullable=False, index=True)
    site = db.relationship("Site", back_populates="funds_received")

    date = db.Column(db.Date, nullable=False, default=date.today)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    reference = db.Column(db.String(120), nullable=True)
    method = db.Column(db.String(30), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_funds_received_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<FundsReceived {self.id} site={self.site_id} {self.amount}>"


# =========================================================
# Invoice + InvoiceItem
# =========================================================
PAYMENT_STATUSES = ("pending", "paid")
APPROVER_TYPES = ("ho", "supervisor")


class Invoice(db.Model):
    __tablename__ = "invoice"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("site.id", ondelete="CASCADE"), nullable=False, index=True)
    site = db.relationship("Site", back_populates="invoices")

    date = db.Column(db.Date, nullable=False, default=date.today)
    party_id = db.Column(db.String(64), nullable=False)
    party_name = db.Column(db.String(160), nullable=False)
    vendor_name = db.Column(db.String(160), nullable=True)
    invoice_number = db.Column(db.String(60), nullable=True)

    # Header copy of the first line item, kept for list views.
    material = db.Column(db.String(255), nullable=False, default="")
    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    rate = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    gst_percentage = db.Column(db.Numeric(6, 2), nullable=False, default=0)

    gross_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # accountNumber / bankName / ifscCode / email / mobile
    bank_details = db.Column(JSONType, nullable=True)
    bill_url = db.Column(db.String(500), nullable=True)
    invoice_image_url = db.Column(db.String(500), nullable=True)

    payment_status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    approver_type = db.Column(db.String(20), nullable=True)

    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="InvoiceItem.id",
    )

    __table_args__ = (
        db.CheckConstraint("payment_status in ('pending','paid')", name="ck_invoice_payment_status"),
    )

    def recalculate_totals(self) -> None:
        """Refresh header fields and gross/net amounts from the line items."""
        if self.items:
            first = self.items[0]
            self.material = first.material
            self.quantity = first.quantity
            self.rate = first.rate
            self.gst_percentage = first.gst_percentage

        gross, net = invoice_amounts(
            [(i.quantity, i.rate, i.gst_percentage) for i in self.items]
            or [(self.quantity, self.rate, self.gst_percentage)]
        )
        self.gross_amount = gross
        self.net_amount = net

    def mark_paid(self) -> None:
        if (self.payment_status or "").strip().lower() == "paid":
            raise ApprovalTransitionError("Invoice is already paid.")
        self.payment_status = "paid"
        self.paid_at = utcnow_naive()

    def __repr__(self) -> str:
        return f"<Invoice {self.id} site={self.site_id} {to_money(self.net_amount)} {self.payment_status}>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_item"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice = db.relationship("Invoice", back_populates="items")

    material = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    rate = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    gst_percentage = db.Column(db.Numeric(6, 2), nullable=False, default=0)
