"""create_site_ledger_tables

Revision ID: 5c1e7a90d2b4
Revises:
Create Date: 2026-10-19 09:12:40.218311

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '5c1e7a90d2b4'
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=False, default=None):
    kwargs = {"nullable": nullable}
    if default is not None:
        kwargs["server_default"] = default
    return sa.Column(name, sa.Numeric(precision=14, scale=2), **kwargs)


def _review_columns():
    return [
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["reviewed_by_user_id"], ["user.id"], ondelete="SET NULL"),
    ]


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="supervisor"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role in ('admin','supervisor','viewer')", name="ck_user_role"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="user_email_key"),
    )

    op.create_table(
        "site",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("job_name", sa.String(length=160), nullable=False),
        sa.Column("pos_no", sa.String(length=60), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("completion_date", sa.Date(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("supervisor_id", sa.Integer(), nullable=True),
        _money("funds", default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["supervisor_id"], ["user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_site_supervisor_id", "site", ["supervisor_id"])

    op.create_table(
        "expense",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=60), nullable=False),
        _money("amount"),
        *_review_columns(),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        sa.Column("supervisor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        sa.ForeignKeyConstraint(["site_id"], ["site.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["supervisor_id"], ["user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_expense_site_id", "expense", ["site_id"])
    op.create_index("ix_expense_status", "expense", ["status"])

    op.create_table(
        "advance",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=True),
        sa.Column("recipient_name", sa.String(length=160), nullable=False),
        sa.Column("recipient_type", sa.String(length=20), nullable=False, server_default="worker"),
        sa.Column("purpose", sa.String(length=20), nullable=False, server_default="advance"),
        _money("amount"),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_review_columns(),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_advance_amount_positive"),
        sa.ForeignKeyConstraint(["site_id"], ["site.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_advance_site_id", "advance", ["site_id"])
    op.create_index("ix_advance_status", "advance", ["status"])

    op.create_table(
        "funds_received",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("reference", sa.String(length=120), nullable=True),
        sa.Column("method", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_funds_received_amount_positive"),
        sa.ForeignKeyConstraint(["site_id"], ["site.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_funds_received_site_id", "funds_received", ["site_id"])

    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("party_id", sa.String(length=64), nullable=False),
        sa.Column("party_name", sa.String(length=160), nullable=False),
        sa.Column("vendor_name", sa.String(length=160), nullable=True),
        sa.Column("invoice_number", sa.String(length=60), nullable=True),
        sa.Column("material", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("quantity", sa.Numeric(precision=14, scale=3), nullable=False, server_default="0"),
        _money("rate", default="0"),
        sa.Column("gst_percentage", sa.Numeric(precision=6, scale=2), nullable=False, server_default="0"),
        _money("gross_amount", default="0"),
        _money("net_amount", default="0"),
        sa.Column(
            "bank_details",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=True,
        ),
        sa.Column("bill_url", sa.String(length=500), nullable=True),
        sa.Column("invoice_image_url", sa.String(length=500), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("approver_type", sa.String(length=20), nullable=True),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("payment_status in ('pending','paid')", name="ck_invoice_payment_status"),
        sa.ForeignKeyConstraint(["site_id"], ["site.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoice_site_id", "invoice", ["site_id"])
    op.create_index("ix_invoice_payment_status", "invoice", ["payment_status"])

    op.create_table(
        "invoice_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("material", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Numeric(precision=14, scale=3), nullable=False, server_default="0"),
        _money("rate", default="0"),
        sa.Column("gst_percentage", sa.Numeric(precision=6, scale=2), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoice.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoice_item_invoice_id", "invoice_item", ["invoice_id"])


def downgrade():
    op.drop_index("ix_invoice_item_invoice_id", table_name="invoice_item")
    op.drop_table("invoice_item")

    op.drop_index("ix_invoice_payment_status", table_name="invoice")
    op.drop_index("ix_invoice_site_id", table_name="invoice")
    op.drop_table("invoice")

    op.drop_index("ix_funds_received_site_id", table_name="funds_received")
    op.drop_table("funds_received")

    op.drop_index("ix_advance_status", table_name="advance")
    op.drop_index("ix_advance_site_id", table_name="advance")
    op.drop_table("advance")

    op.drop_index("ix_expense_status", table_name="expense")
    op.drop_index("ix_expense_site_id", table_name="expense")
    op.drop_table("expense")

    op.drop_index("ix_site_supervisor_id", table_name="site")
    op.drop_table("site")

    op.drop_table("user")
