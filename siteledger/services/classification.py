# siteledger/services/classification.py
"""
Inclusion rules for the balance engine.

All functions are total over the canonical records: an UNKNOWN variant falls
into the safe bucket (regular advance / pending invoice / supervisor approver)
instead of raising.
"""

from __future__ import annotations

from .records import (
    AdvancePurpose,
    AdvanceRecord,
    ApprovalStatus,
    ApproverType,
    InvoiceRecord,
    PaymentStatus,
)

# Closed set. A new purpose needs an explicit decision here, not a default.
WORKER_DEBIT_PURPOSES = frozenset(
    {
        AdvancePurpose.SAFETY_SHOES,
        AdvancePurpose.TOOLS,
        AdvancePurpose.OTHER,
    }
)


def is_worker_debit(advance: AdvanceRecord) -> bool:
    return advance.purpose in WORKER_DEBIT_PURPOSES


def invoice_bucket(invoice: InvoiceRecord) -> PaymentStatus:
    if invoice.payment_status is PaymentStatus.PAID:
        return PaymentStatus.PAID
    return PaymentStatus.PENDING


def invoice_approver(invoice: InvoiceRecord) -> ApproverType:
    if invoice.approver_type is ApproverType.HO:
        return ApproverType.HO
    return ApproverType.SUPERVISOR


def counts_toward_totals(record) -> bool:
    """Only approved expenses/advances have actually left site funds."""
    return getattr(record, "status", None) is ApprovalStatus.APPROVED
