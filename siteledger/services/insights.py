# siteledger/services/insights.py
"""
Dashboard figures derived from the same canonical records the balance engine
uses: monthly expenditure, category shares and a recent-activity feed.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from .classification import counts_toward_totals, invoice_bucket, is_worker_debit
from .records import ZERO, ExpenseRecord, PaymentStatus, SiteTransactions

UNCATEGORISED = "UNCATEGORISED"


@dataclass(frozen=True)
class MonthTotal:
    month: str  # YYYY-MM
    label: str  # "Mar 2024"
    total: Decimal

    def as_dict(self) -> dict:
        return {"month": self.month, "label": self.label, "total": self.total}


@dataclass(frozen=True)
class CategoryShare:
    category: str
    total: Decimal
    percentage: int

    def as_dict(self) -> dict:
        return {"category": self.category, "total": self.total, "percentage": self.percentage}


@dataclass(frozen=True)
class ActivityItem:
    kind: str  # expense / advance / funds / invoice
    record_id: Any
    site_id: Any
    description: str
    amount: Decimal
    date: date | None
    user: str
    created_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "type": self.kind,
            "id": self.record_id,
            "siteId": self.site_id,
            "description": self.description,
            "amount": self.amount,
            "date": self.date.isoformat() if self.date else None,
            "user": self.user,
        }


def monthly_expenditure(expenses: Iterable[ExpenseRecord], limit: int = 7) -> list[MonthTotal]:
    """Approved expenditure per calendar month, most recent month first."""
    buckets: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        if expense.date is None or not counts_toward_totals(expense):
            continue
        buckets[(expense.date.year, expense.date.month)] += expense.amount

    months = sorted(buckets, reverse=True)[: max(limit, 0)]
    return [
        MonthTotal(
            month=f"{year:04d}-{month:02d}",
            label=date(year, month, 1).strftime("%b %Y"),
            total=buckets[(year, month)],
        )
        for year, month in months
    ]


def category_breakdown(expenses: Iterable[ExpenseRecord], top: int = 5) -> list[CategoryShare]:
    """Approved expenditure per category with whole-number percentage shares, largest first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        if not counts_toward_totals(expense):
            continue
        totals[expense.category.strip() or UNCATEGORISED] += expense.amount

    grand_total = sum(totals.values(), ZERO)
    if grand_total <= ZERO:
        return []

    ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))[: max(top, 0)]
    return [
        CategoryShare(
            category=name,
            total=amount,
            percentage=int((amount * 100 / grand_total).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
        )
        for name, amount in ranked
    ]


def _activity_key(item: ActivityItem):
    return (item.date or date.min, item.created_at or datetime.min)


def recent_activity(transactions: Iterable[SiteTransactions], limit: int = 10) -> list[ActivityItem]:
    """Newest-first feed across all four streams of the given sites."""
    items: list[ActivityItem] = []

    for tx in transactions:
        for e in tx.expenses:
            items.append(ActivityItem(
                kind="expense",
                record_id=e.id,
                site_id=tx.site_id,
                description=f"Expense for {e.category or UNCATEGORISED}",
                amount=e.amount,
                date=e.date,
                user=e.created_by,
                created_at=e.created_at,
            ))

        for a in tx.advances:
            label = "Debit to worker" if is_worker_debit(a) else "Advance"
            items.append(ActivityItem(
                kind="advance",
                record_id=a.id,
                site_id=tx.site_id,
                description=f"{label}: {a.recipient_name}".rstrip(": "),
                amount=a.amount,
                date=a.date,
                user=a.created_by,
                created_at=a.created_at,
            ))

        for f in tx.funds_received:
            items.append(ActivityItem(
                kind="funds",
                record_id=f.id,
                site_id=tx.site_id,
                description=f"Funds received ({f.reference})" if f.reference else "Funds received",
                amount=f.amount,
                date=f.date,
                user="",
                created_at=f.created_at,
            ))

        for i in tx.invoices:
            verb = "paid" if invoice_bucket(i) is PaymentStatus.PAID else "received"
            party = f" from {i.party_name}" if i.party_name else ""
            items.append(ActivityItem(
                kind="invoice",
                record_id=i.id,
                site_id=tx.site_id,
                description=f"Invoice {verb}{party}",
                amount=i.net_amount,
                date=i.date,
                user=i.created_by,
                created_at=i.created_at,
            ))

    items.sort(key=_activity_key, reverse=True)
    return items[: max(limit, 0)]
