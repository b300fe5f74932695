# siteledger/services/balance.py
"""
Site balance aggregation.

One pure reduction turns a site's four transaction streams into a
``BalanceSummary``. Every consumer (site view, dashboard, admin rollup) calls
``summarize``/``compute_balance``; nothing re-derives totals inline.

    totalBalance = fundsReceived - totalExpenditure - totalAdvances - invoicesPaid

Debits to worker and pending invoices are reported but not subtracted: they are
amounts owed to/by a worker or obligations not yet paid out of site funds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Iterable

from .classification import counts_toward_totals, invoice_approver, invoice_bucket, is_worker_debit
from .records import (
    ZERO,
    AdvanceRecord,
    ApproverType,
    ExpenseRecord,
    FundsRecord,
    InvoiceRecord,
    PaymentStatus,
    SiteTransactions,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSummary:
    funds_received: Decimal = ZERO
    total_expenditure: Decimal = ZERO
    total_advances: Decimal = ZERO
    debits_to_worker: Decimal = ZERO
    invoices_paid: Decimal = ZERO
    pending_invoices: Decimal = ZERO
    total_balance: Decimal = ZERO

    @classmethod
    def zero(cls) -> "BalanceSummary":
        return cls()

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "fundsReceived": self.funds_received,
            "totalExpenditure": self.total_expenditure,
            "totalAdvances": self.total_advances,
            "debitsToWorker": self.debits_to_worker,
            "invoicesPaid": self.invoices_paid,
            "pendingInvoices": self.pending_invoices,
            "totalBalance": self.total_balance,
        }


def _total(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def summarize(transactions: SiteTransactions) -> BalanceSummary:
    funds = _total(f.amount for f in transactions.funds_received)
    expenditure = _total(e.amount for e in transactions.expenses if counts_toward_totals(e))

    regular = ZERO
    debits = ZERO
    for advance in transactions.advances:
        if not counts_toward_totals(advance):
            continue
        if is_worker_debit(advance):
            debits += advance.amount
        else:
            regular += advance.amount

    paid = ZERO
    pending = ZERO
    for invoice in transactions.invoices:
        if invoice_bucket(invoice) is PaymentStatus.PAID:
            paid += invoice.net_amount
        else:
            pending += invoice.net_amount

    summary = BalanceSummary(
        funds_received=funds,
        total_expenditure=expenditure,
        total_advances=regular,
        debits_to_worker=debits,
        invoices_paid=paid,
        pending_invoices=pending,
        total_balance=funds - expenditure - regular - paid,
    )

    for problem in validate_summary(summary, transactions):
        logger.error("Balance summary for site %s is inconsistent: %s", transactions.site_id, problem)

    return summary


def _as_records(record_cls, items: Iterable[Any]) -> tuple:
    return tuple(i if isinstance(i, record_cls) else record_cls.from_row(i) for i in (items or ()))


def compute_balance(
    site_id: Any,
    expenses: Iterable[Any] = (),
    advances: Iterable[Any] = (),
    funds_received: Iterable[Any] = (),
    invoices: Iterable[Any] = (),
) -> BalanceSummary:
    """
    Reduce one site's already-scoped records to a ``BalanceSummary``.

    Accepts canonical records or raw store rows. Raises ``ValueError`` only when
    the caller hands over records from a different site.
    """
    transactions = SiteTransactions(
        site_id=site_id,
        expenses=_as_records(ExpenseRecord, expenses),
        advances=_as_records(AdvanceRecord, advances),
        funds_received=_as_records(FundsRecord, funds_received),
        invoices=_as_records(InvoiceRecord, invoices),
    )
    return summarize(transactions)


# =========================================================
# Consistency checks
# =========================================================
_NON_NEGATIVE = (
    "funds_received",
    "total_expenditure",
    "total_advances",
    "debits_to_worker",
    "invoices_paid",
    "pending_invoices",
)


def validate_summary(summary: BalanceSummary, transactions: SiteTransactions | None = None) -> list[str]:
    """
    Return a list of invariant violations (empty when consistent).

    ``total_balance`` may be negative; every other figure may not. With the
    inputs at hand the partitions are also checked for completeness.
    """
    problems: list[str] = []

    for name in _NON_NEGATIVE:
        if getattr(summary, name) < ZERO:
            problems.append(f"{name} is negative ({getattr(summary, name)})")

    expected = (
        summary.funds_received
        - summary.total_expenditure
        - summary.total_advances
        - summary.invoices_paid
    )
    if summary.total_balance != expected:
        problems.append(f"total_balance {summary.total_balance} != {expected}")

    if transactions is None:
        return problems

    funds = _total(f.amount for f in transactions.funds_received)
    if summary.funds_received != funds:
        problems.append(f"funds_received {summary.funds_received} != {funds}")

    approved_advances = _total(a.amount for a in transactions.advances if counts_toward_totals(a))
    if summary.total_advances + summary.debits_to_worker != approved_advances:
        problems.append(
            f"advance partitions {summary.total_advances} + {summary.debits_to_worker} != {approved_advances}"
        )

    all_invoices = _total(i.net_amount for i in transactions.invoices)
    if summary.invoices_paid + summary.pending_invoices != all_invoices:
        problems.append(
            f"invoice partitions {summary.invoices_paid} + {summary.pending_invoices} != {all_invoices}"
        )

    return problems


# =========================================================
# Rollups
# =========================================================
def combine_summaries(summaries: Iterable[BalanceSummary]) -> BalanceSummary:
    """Field-wise sum; the balance identity is linear so it still holds."""
    totals = {f.name: ZERO for f in fields(BalanceSummary)}
    for summary in summaries:
        for name in totals:
            totals[name] += getattr(summary, name)
    return BalanceSummary(**totals)


def paid_by_approver(invoices: Iterable[InvoiceRecord]) -> dict[ApproverType, Decimal]:
    """Paid invoice totals split into head-office vs supervisor attribution."""
    split = {ApproverType.HO: ZERO, ApproverType.SUPERVISOR: ZERO}
    for invoice in invoices:
        if invoice_bucket(invoice) is PaymentStatus.PAID:
            split[invoice_approver(invoice)] += invoice.net_amount
    return split
