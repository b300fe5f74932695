from __future__ import annotations

import pytest

from siteledger.services.classification import (
    counts_toward_totals,
    invoice_approver,
    invoice_bucket,
    is_worker_debit,
)
from siteledger.services.records import (
    AdvanceRecord,
    ApproverType,
    ExpenseRecord,
    FundsRecord,
    InvoiceRecord,
    PaymentStatus,
)


@pytest.mark.parametrize(
    "purpose, expected",
    [
        ("advance", False),
        ("safety_shoes", True),
        ("tools", True),
        ("other", True),
        ("uniform", False),
        (None, False),
    ],
)
def test_is_worker_debit(purpose, expected):
    assert is_worker_debit(AdvanceRecord(id=1, site_id=1, amount=10, purpose=purpose)) is expected


@pytest.mark.parametrize(
    "status, expected",
    [
        ("paid", PaymentStatus.PAID),
        ("PAID", PaymentStatus.PAID),
        ("pending", PaymentStatus.PENDING),
        ("cancelled", PaymentStatus.PENDING),
        (None, PaymentStatus.PENDING),
    ],
)
def test_invoice_bucket(status, expected):
    assert invoice_bucket(InvoiceRecord(id=1, site_id=1, net_amount=1, payment_status=status)) is expected


@pytest.mark.parametrize(
    "approver, expected",
    [
        ("ho", ApproverType.HO),
        ("supervisor", ApproverType.SUPERVISOR),
        (None, ApproverType.SUPERVISOR),
        ("regional", ApproverType.SUPERVISOR),
    ],
)
def test_invoice_approver(approver, expected):
    assert invoice_approver(InvoiceRecord(id=1, site_id=1, net_amount=1, approver_type=approver)) is expected


def test_only_approved_rows_count():
    assert counts_toward_totals(ExpenseRecord(id=1, site_id=1, amount=1, status="approved"))
    assert not counts_toward_totals(ExpenseRecord(id=1, site_id=1, amount=1, status="pending"))
    assert not counts_toward_totals(AdvanceRecord(id=1, site_id=1, amount=1, status="rejected"))
    assert not counts_toward_totals(AdvanceRecord(id=1, site_id=1, amount=1, status="on-hold"))


def test_funds_have_no_status():
    assert not counts_toward_totals(FundsRecord(id=1, site_id=1, amount=1))
