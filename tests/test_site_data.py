from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

import sqlalchemy as sa

from siteledger.extensions import db
from siteledger.models import Advance, Expense, FundsReceived, Invoice, InvoiceItem, Site, User
from siteledger.services.balance import BalanceSummary
from siteledger.services.site_data import (
    all_sites_rollup,
    can_edit_site,
    can_view_site,
    complete_site,
    load_site_transactions,
    record_funds_received,
    refresh_funds_counter,
    site_balance,
    supervisor_rollup,
    visible_sites_query,
)


def _seed_scenario(site):
    db.session.add_all([
        Expense(site_id=site.id, date=date(2024, 2, 1), category="SITE EXPENSES",
                amount=Decimal("30000"), status="approved"),
        Expense(site_id=site.id, date=date(2024, 2, 2), category="SITE EXPENSES",
                amount=Decimal("1000"), status="pending"),
        Advance(site_id=site.id, date=date(2024, 2, 3), recipient_name="Mohan",
                purpose="advance", amount=Decimal("20000"), status="approved"),
        Advance(site_id=site.id, date=date(2024, 2, 4), recipient_name="Mohan",
                purpose="tools", amount=Decimal("5000"), status="approved"),
    ])
    record_funds_received(site, "100000", received_on=date(2024, 1, 15), reference="NEFT-1")

    invoice = Invoice(site_id=site.id, date=date(2024, 2, 5), party_id="P-1", party_name="Shree Cement",
                      payment_status="paid", approver_type="ho")
    invoice.items = [InvoiceItem(material="Cement", quantity=Decimal("1"), rate=Decimal("10000"),
                                 gst_percentage=Decimal("0"))]
    invoice.recalculate_totals()
    db.session.add(invoice)
    db.session.commit()


def test_site_balance_reads_committed_rows(site):
    _seed_scenario(site)

    s = site_balance(site.id)

    assert s.funds_received == Decimal("100000.00")
    assert s.total_expenditure == Decimal("30000.00")
    assert s.total_advances == Decimal("20000.00")
    assert s.debits_to_worker == Decimal("5000.00")
    assert s.invoices_paid == Decimal("10000.00")
    assert s.total_balance == Decimal("40000.00")


def test_site_without_rows_is_zero(site):
    assert site_balance(site.id) == BalanceSummary.zero()


def test_load_site_transactions_newest_first(site):
    _seed_scenario(site)

    tx = load_site_transactions(site.id)

    assert [e.date for e in tx.expenses] == [date(2024, 2, 2), date(2024, 2, 1)]
    assert len(tx.invoices) == 1
    assert tx.invoices[0].net_amount == Decimal("10000.00")


def test_transactions_stay_scoped_to_their_site(make_site, supervisor, site):
    other = make_site(supervisor, name="Harbour Wall")
    record_funds_received(site, "10")
    record_funds_received(other, "99")
    db.session.commit()

    assert site_balance(site.id).funds_received == Decimal("10.00")
    assert site_balance(other.id).funds_received == Decimal("99.00")


# ---------- Funds counter ----------
def test_record_funds_received_bumps_counter(site):
    record_funds_received(site, "1500.50")
    record_funds_received(site, "499.50", method="cheque")
    db.session.commit()

    assert site.funds == Decimal("2000.00")
    assert FundsReceived.query.filter_by(site_id=site.id).count() == 2
    assert site_balance(site.id).funds_received == site.funds


def test_refresh_funds_counter_repairs_drift(site, caplog):
    record_funds_received(site, "300")
    site.funds = Decimal("1")
    db.session.commit()
    caplog.set_level(logging.WARNING)

    total = refresh_funds_counter(site)
    db.session.commit()

    assert total == Decimal("300.00")
    assert site.funds == Decimal("300.00")
    assert "funds counter drifted" in caplog.text


# ---------- Completion ----------
def test_completed_site_still_aggregates(site):
    _seed_scenario(site)

    complete_site(site, date(2024, 3, 1), today=date(2024, 3, 2))
    db.session.commit()

    assert site.is_completed
    assert site_balance(site.id).total_balance == Decimal("40000.00")


# ---------- Visibility ----------
def test_visibility_rules(make_site, admin, supervisor, other_supervisor, viewer):
    mine = make_site(supervisor, name="Mine")
    theirs = make_site(other_supervisor, name="Theirs")

    assert {s.id for s in visible_sites_query(supervisor)} == {mine.id}
    assert {s.id for s in visible_sites_query(admin)} == {mine.id, theirs.id}
    assert {s.id for s in visible_sites_query(viewer)} == {mine.id, theirs.id}

    assert can_view_site(supervisor, mine) and not can_view_site(supervisor, theirs)
    assert can_view_site(viewer, theirs) and not can_edit_site(viewer, theirs)
    assert can_edit_site(admin, theirs)
    assert can_edit_site(supervisor, mine) and not can_edit_site(supervisor, theirs)


# ---------- Rollups ----------
def test_supervisor_rollup_totals(make_site, supervisor, other_supervisor):
    a = make_site(supervisor, name="Alpha")
    b = make_site(supervisor, name="Bravo")
    c = make_site(other_supervisor, name="Charlie")
    record_funds_received(a, "100")
    record_funds_received(b, "50")
    record_funds_received(c, "7")
    db.session.add(Expense(site_id=b.id, category="SITE EXPENSES", amount=Decimal("80"), status="approved"))
    db.session.commit()

    rollup = supervisor_rollup(supervisor.id)

    assert [o.site.name for o in rollup.sites] == ["Alpha", "Bravo"]
    assert rollup.total.funds_received == Decimal("150.00")
    assert rollup.total.total_balance == Decimal("70.00")
    assert all_sites_rollup().total.funds_received == Decimal("157.00")


def test_rollup_without_sites_is_zero(supervisor):
    rollup = supervisor_rollup(supervisor.id)

    assert rollup.sites == []
    assert rollup.total == BalanceSummary.zero()


def test_funds_increment_happens_in_sql(site):
    statements = []

    def _capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(" ".join(statement.split()))

    engine = db.engine
    sa.event.listen(engine, "before_cursor_execute", _capture)
    try:
        record_funds_received(site, "40")
        db.session.commit()
    finally:
        sa.event.remove(engine, "before_cursor_execute", _capture)

    updates = [s.replace(" ", "") for s in statements if s.startswith("UPDATE site SET funds")]
    assert len(updates) == 1
    # the new value is computed from the column, not from a value read earlier
    assert "site.funds+" in updates[0]


def test_concurrent_funds_posts_keep_both_increments(site):
    assert site.funds == Decimal("0.00")

    # an increment from another request lands while this session still holds funds=0
    db.session.execute(
        sa.text("UPDATE site SET funds = funds + 50 WHERE id = :id"),
        {"id": site.id},
    )

    record_funds_received(site, "30")
    db.session.commit()

    assert site.funds == Decimal("80.00")


def test_unknown_role_sees_no_sites(make_site, supervisor):
    make_site(supervisor, name="Mine")
    contractor = User(id=999, name="Outsider", email="out@example.com", role="contractor")

    assert visible_sites_query(contractor).all() == []
    assert not can_view_site(contractor, Site.query.first())
