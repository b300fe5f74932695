# siteledger/services/site_data.py
"""
Store-facing side of the balance engine.

Reads a site's committed rows, normalizes them into ``SiteTransactions`` and
hands them to the pure aggregator. Every call is a full re-read; nothing is
cached between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

import sqlalchemy as sa

from siteledger.extensions import db
from siteledger.models import Advance, Expense, FundsReceived, Invoice, Site, User

from .balance import BalanceSummary, combine_summaries, summarize
from .records import SiteTransactions, to_money

logger = logging.getLogger(__name__)


def load_site_transactions(site_id: int) -> SiteTransactions:
    """Fetch all four streams for one site, newest first."""
    expenses = (
        Expense.query.filter_by(site_id=site_id)
        .order_by(Expense.date.desc(), Expense.id.desc())
        .all()
    )
    advances = (
        Advance.query.filter_by(site_id=site_id)
        .order_by(Advance.date.desc(), Advance.id.desc())
        .all()
    )
    funds = (
        FundsReceived.query.filter_by(site_id=site_id)
        .order_by(FundsReceived.date.desc(), FundsReceived.id.desc())
        .all()
    )
    invoices = (
        Invoice.query.filter_by(site_id=site_id)
        .order_by(Invoice.date.desc(), Invoice.id.desc())
        .all()
    )

    logger.debug(
        "Loaded site %s: %d expenses, %d advances, %d funds, %d invoices",
        site_id, len(expenses), len(advances), len(funds), len(invoices),
    )
    return SiteTransactions.from_rows(site_id, expenses, advances, funds, invoices)


def site_balance(site_id: int) -> BalanceSummary:
    """A site with no rows yields the all-zero summary."""
    return summarize(load_site_transactions(site_id))


# =========================================================
# Funds counter
# =========================================================
def record_funds_received(
    site: Site,
    amount,
    received_on: date | None = None,
    reference: str | None = None,
    method: str | None = None,
) -> FundsReceived:
    """
    Add a FundsReceived row and bump ``site.funds`` in the same session.
    The caller commits.

    The counter is incremented in SQL (``funds = funds + :amount``) so two
    concurrent posts for one site can't overwrite each other's increment.
    """
    amount = to_money(amount)
    row = FundsReceived(
        site_id=site.id,
        date=received_on or date.today(),
        amount=amount,
        reference=reference,
        method=method,
    )
    db.session.add(row)
    Site.query.filter_by(id=site.id).update(
        {Site.funds: Site.funds + amount},
        synchronize_session=False,
    )
    db.session.expire(site, ["funds"])
    return row


def refresh_funds_counter(site: Site) -> Decimal:
    """Rewrite ``site.funds`` from the aggregated funds total. The caller commits."""
    total = site_balance(site.id).funds_received
    if to_money(site.funds) != total:
        logger.warning("Site %s funds counter drifted: %s stored, %s aggregated", site.id, site.funds, total)
    site.funds = total
    return total


def complete_site(site: Site, completion_date: date, today: date | None = None) -> None:
    site.mark_completed(completion_date, today=today)
    logger.info("Site %s marked completed on %s", site.id, completion_date)


# =========================================================
# Visibility + rollups
# =========================================================
def visible_sites_query(user: User):
    """Supervisors see their own sites; admins and viewers see all of them. Any other role sees none."""
    role = (user.role or "").strip().lower()
    query = Site.query
    if role == "supervisor":
        query = query.filter(Site.supervisor_id == user.id)
    elif role not in ("admin", "viewer"):
        query = query.filter(sa.false())
    return query.order_by(Site.created_at.desc(), Site.id.desc())


def can_view_site(user: User, site: Site) -> bool:
    role = (user.role or "").strip().lower()
    if role in ("admin", "viewer"):
        return True
    return role == "supervisor" and site.supervisor_id == user.id


def can_edit_site(user: User, site: Site) -> bool:
    role = (user.role or "").strip().lower()
    if role == "admin":
        return True
    return role == "supervisor" and site.supervisor_id == user.id


@dataclass
class SiteOverview:
    site: Site
    transactions: SiteTransactions
    summary: BalanceSummary


@dataclass
class Rollup:
    sites: list[SiteOverview] = field(default_factory=list)
    total: BalanceSummary = field(default_factory=BalanceSummary.zero)


def build_rollup(sites: Iterable[Site]) -> Rollup:
    overviews = []
    for site in sites:
        tx = load_site_transactions(site.id)
        overviews.append(SiteOverview(site=site, transactions=tx, summary=summarize(tx)))
    return Rollup(sites=overviews, total=combine_summaries(o.summary for o in overviews))


def supervisor_rollup(supervisor_id: int) -> Rollup:
    sites = Site.query.filter_by(supervisor_id=supervisor_id).order_by(Site.name.asc()).all()
    return build_rollup(sites)


def all_sites_rollup() -> Rollup:
    return build_rollup(Site.query.order_by(Site.name.asc()).all())
