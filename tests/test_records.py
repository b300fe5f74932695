from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from siteledger.services.records import (
    AdvancePurpose,
    AdvanceRecord,
    ApprovalStatus,
    ApproverType,
    ExpenseRecord,
    FundsRecord,
    InvoiceRecord,
    PaymentStatus,
    RecipientType,
    SiteTransactions,
    invoice_amounts,
    parse_enum,
    to_decimal,
    to_money,
)


# ---------- Money ----------
@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, Decimal("0.00")),
        ("", Decimal("0.00")),
        ("abc", Decimal("0.00")),
        ("1,250.5", Decimal("1250.50")),
        (0.1, Decimal("0.10")),
        ("2.005", Decimal("2.01")),
        (Decimal("NaN"), Decimal("0.00")),
        (True, Decimal("0.00")),
    ],
)
def test_to_money(raw, expected):
    assert to_money(raw) == expected


def test_to_decimal_keeps_precision():
    assert to_decimal("0.125") == Decimal("0.125")


def test_small_amounts_sum_without_drift():
    total = sum((ExpenseRecord(id=i, site_id=1, amount=0.1).amount for i in range(10)), Decimal("0"))

    assert total == Decimal("1.00")


def test_invoice_amounts_multi_line_with_gst():
    gross, net = invoice_amounts([(10, "100", 18), ("2.5", "40", 0), (1, "0.99", "12")])

    assert gross == Decimal("1100.99")
    assert net == Decimal("1281.11")


# ---------- Enums ----------
def test_parse_enum_is_case_insensitive():
    assert parse_enum(ApprovalStatus, " Approved ", field="status") is ApprovalStatus.APPROVED


def test_parse_enum_unknown_logs_warning(caplog):
    caplog.set_level(logging.WARNING)

    result = parse_enum(PaymentStatus, "partial", field="payment status", record_id=42)

    assert result is PaymentStatus.UNKNOWN
    assert "Unrecognized payment status 'partial' on record 42" in caplog.text


def test_parse_enum_blank_uses_default():
    assert parse_enum(ApproverType, "", field="approver", default=None) is None
    assert parse_enum(ApproverType, "", field="approver") is ApproverType.UNKNOWN


# ---------- Records ----------
def test_expense_defaults():
    e = ExpenseRecord(id=1, site_id=1, amount=None, status=None)

    assert e.amount == Decimal("0.00")
    assert e.status is ApprovalStatus.PENDING


def test_negative_amount_is_clamped_with_warning(caplog):
    caplog.set_level(logging.WARNING)

    e = ExpenseRecord(id=5, site_id=1, amount="-20", status="approved")

    assert e.amount == Decimal("0.00")
    assert "Negative amount -20.00 on expense 5" in caplog.text


def test_advance_from_row_defaults():
    a = AdvanceRecord.from_row({"id": 3, "site_id": 1, "amount": "100", "recipient_name": "Mohan"})

    assert a.purpose is AdvancePurpose.UNKNOWN
    assert a.status is ApprovalStatus.PENDING
    assert a.recipient_type is RecipientType.WORKER
    assert a.date is None


def test_advance_from_orm_like_object():
    row = SimpleNamespace(
        id=4,
        site_id=1,
        amount=Decimal("250.00"),
        purpose="SAFETY_SHOES",
        status="approved",
        date=date(2024, 3, 2),
        recipient_name="Mohan",
        recipient_type="subcontractor",
        recipient_id="W-12",
        remarks=None,
        created_by="Ravi Kumar",
        created_at=datetime(2024, 3, 2, 9, 30),
    )

    a = AdvanceRecord.from_row(row)

    assert a.purpose is AdvancePurpose.SAFETY_SHOES
    assert a.recipient_type is RecipientType.SUBCONTRACTOR
    assert a.created_at == datetime(2024, 3, 2, 9, 30)


def test_records_are_frozen():
    f = FundsRecord(id=1, site_id=1, amount="10")

    with pytest.raises(AttributeError):
        f.amount = Decimal("20")


def test_dates_parse_from_iso_strings():
    e = ExpenseRecord.from_row({
        "id": 1,
        "site_id": 1,
        "amount": 1,
        "date": "2024-03-15T00:00:00",
        "created_at": "2024-03-15T10:00:00+05:30",
    })

    assert e.date == date(2024, 3, 15)
    # stored as naive UTC
    assert e.created_at == datetime(2024, 3, 15, 4, 30)


def test_aware_created_at_is_converted_to_naive_utc():
    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    f = FundsRecord.from_row({"id": 1, "site_id": 1, "amount": 5, "created_at": aware.isoformat()})

    assert f.created_at == datetime(2024, 1, 1, 10, 0)
    assert f.created_at.tzinfo is None


def test_invoice_without_approver_keeps_it_unset():
    i = InvoiceRecord.from_row({"id": 1, "site_id": 1, "net_amount": "10", "gross_amount": "10"})

    assert i.approver_type is None
    assert i.payment_status is PaymentStatus.PENDING


def test_invoice_amounts_derived_from_items():
    row = {
        "id": 1,
        "site_id": 1,
        "gross_amount": None,
        "net_amount": None,
        "items": [
            {"quantity": 2, "rate": "100", "gst_percentage": 18},
            {"quantity": 1, "rate": "50", "gst_percentage": 5},
        ],
        "vendor_name": "Shree Cement",
    }

    i = InvoiceRecord.from_row(row)

    assert i.gross_amount == Decimal("250.00")
    assert i.net_amount == Decimal("288.50")
    assert i.party_name == "Shree Cement"


def test_invoice_stored_amounts_win_over_items():
    i = InvoiceRecord.from_row({
        "id": 1,
        "site_id": 1,
        "gross_amount": "100",
        "net_amount": "105",
        "items": [{"quantity": 1, "rate": "999", "gst_percentage": 18}],
    })

    assert i.net_amount == Decimal("105.00")


# ---------- SiteTransactions ----------
def test_from_rows_normalizes_every_stream():
    tx = SiteTransactions.from_rows(
        1,
        expenses=[{"id": 1, "site_id": 1, "amount": "1"}],
        advances=[{"id": 1, "site_id": 1, "amount": "2", "purpose": "tools"}],
        funds_received=[{"id": 1, "site_id": 1, "amount": "3"}],
        invoices=[{"id": 1, "site_id": 1, "net_amount": "4", "gross_amount": "4"}],
    )

    assert isinstance(tx.expenses, tuple)
    assert isinstance(tx.advances[0], AdvanceRecord)
    assert not tx.is_empty


def test_empty_transactions():
    assert SiteTransactions(site_id=1).is_empty


def test_service_modules_carry_docstrings():
    from siteledger.services import balance, classification, insights, records, site_data

    for module in (records, classification, balance, insights, site_data):
        assert module.__doc__ and module.__doc__.strip(), module.__name__
