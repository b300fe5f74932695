# siteledger/routes.py
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from siteledger.extensions import db, limiter
from siteledger.models import (
    ADVANCE_PURPOSES,
    APPROVER_TYPES,
    EXPENSE_CATEGORIES,
    PAYMENT_STATUSES,
    RECIPIENT_TYPES,
    Advance,
    ApprovalTransitionError,
    Expense,
    Invoice,
    InvoiceItem,
    Site,
    SiteTransitionError,
    User,
    utcnow_naive,
)
from siteledger.services.balance import paid_by_approver, summarize
from siteledger.services.insights import category_breakdown, monthly_expenditure, recent_activity
from siteledger.services.records import (
    AdvanceRecord,
    ExpenseRecord,
    FundsRecord,
    InvoiceRecord,
    AdvancePurpose,
    ApprovalStatus,
    RecipientType,
    SiteTransactions,
    parse_enum,
    to_money,
)
from siteledger.services.site_data import (
    build_rollup,
    complete_site,
    load_site_transactions,
    record_funds_received,
    visible_sites_query,
)
from siteledger.utils.guards import admin_required, get_site_or_abort, role_required

main = Blueprint("main", __name__)


# =========================================================
# Small DB helper (SAFE)
# =========================================================
def _commit_or_rollback(action: str) -> bool:
    try:
        db.session.commit()
        return True
    except Exception:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        return False


def _error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


# ======================
# Role Helpers
# ======================
def _role() -> str:
    return (getattr(current_user, "role", "") or "").strip().lower()


def _is_admin() -> bool:
    return _role() == "admin"


# ======================
# Parsers
# ======================
def _parse_decimal(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        d = Decimal(str(val).strip())
        return d if d.is_finite() else None
    except (InvalidOperation, TypeError, ValueError):
        return None


def _parse_int(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        return int(val)
    except (TypeError, ValueError):
        return None


def _parse_date(val):
    try:
        if not val:
            return None
        return date.fromisoformat(str(val)[:10])
    except (TypeError, ValueError):
        return None


def _clean_str(value) -> str:
    return ("" if value is None else str(value)).strip()


def _positive_amount(data: dict, key: str = "amount"):
    # Stored at cents; anything that rounds to 0.00 is not a positive amount.
    amount = _parse_decimal(data.get(key))
    if amount is None:
        return None
    amount = to_money(amount)
    if amount <= 0:
        return None
    return amount


# ======================
# Serializers
# ======================
def _site_dict(site: Site, summary=None) -> dict:
    out = {
        "id": site.id,
        "name": site.name,
        "jobName": site.job_name,
        "posNo": site.pos_no,
        "startDate": site.start_date.isoformat() if site.start_date else None,
        "completionDate": site.completion_date.isoformat() if site.completion_date else None,
        "isCompleted": bool(site.is_completed),
        "state": site.state,
        "supervisorId": site.supervisor_id,
        "funds": site.funds,
    }
    if summary is not None:
        out["summary"] = summary.as_dict()
    return out


def _iso(value):
    return value.isoformat() if value else None


def _expense_dict(e: ExpenseRecord) -> dict:
    return {
        "id": e.id,
        "date": _iso(e.date),
        "description": e.description,
        "category": e.category,
        "amount": e.amount,
        "status": e.status.value,
        "createdBy": e.created_by,
        "createdAt": _iso(e.created_at),
    }


def _advance_dict(a: AdvanceRecord) -> dict:
    return {
        "id": a.id,
        "date": _iso(a.date),
        "recipientId": a.recipient_id,
        "recipientName": a.recipient_name,
        "recipientType": a.recipient_type.value,
        "purpose": a.purpose.value,
        "amount": a.amount,
        "remarks": a.remarks,
        "status": a.status.value,
        "createdBy": a.created_by,
        "createdAt": _iso(a.created_at),
    }


def _funds_dict(f: FundsRecord) -> dict:
    return {
        "id": f.id,
        "date": _iso(f.date),
        "amount": f.amount,
        "reference": f.reference,
        "method": f.method,
        "createdAt": _iso(f.created_at),
    }


def _invoice_dict(i: InvoiceRecord) -> dict:
    return {
        "id": i.id,
        "date": _iso(i.date),
        "partyName": i.party_name,
        "material": i.material,
        "invoiceNumber": i.invoice_number,
        "grossAmount": i.gross_amount,
        "netAmount": i.net_amount,
        "paymentStatus": i.payment_status.value,
        "approverType": i.approver_type.value if i.approver_type else None,
        "createdBy": i.created_by,
        "createdAt": _iso(i.created_at),
    }


def _insights(transactions: list[SiteTransactions]) -> dict:
    cfg = current_app.config
    expenses = [e for tx in transactions for e in tx.expenses]
    return {
        "monthlyExpenditure": [
            m.as_dict() for m in monthly_expenditure(expenses, limit=cfg.get("DASHBOARD_MONTHS", 7))
        ],
        "categoryBreakdown": [
            c.as_dict() for c in category_breakdown(expenses, top=cfg.get("DASHBOARD_TOP_CATEGORIES", 5))
        ],
        "recentActivity": [
            a.as_dict() for a in recent_activity(transactions, limit=cfg.get("DASHBOARD_ACTIVITY_LIMIT", 10))
        ],
    }


# =========================================================
# Sites
# =========================================================
@main.route("/sites", methods=["GET"])
@login_required
def list_sites():
    rollup = build_rollup(visible_sites_query(current_user).all())
    return jsonify({
        "sites": [_site_dict(o.site, o.summary) for o in rollup.sites],
        "total": rollup.total.as_dict(),
    })


@main.route("/sites", methods=["POST"])
@role_required("admin", "supervisor")
@limiter.limit("30 per minute")
def create_site():
    data = _payload()

    name = _clean_str(data.get("name"))
    job_name = _clean_str(data.get("job_name"))
    pos_no = _clean_str(data.get("pos_no"))
    start_date = _parse_date(data.get("start_date")) or date.today()

    if len(name) < 2 or len(job_name) < 2 or not pos_no:
        return _error("name, job_name and pos_no are required.")

    supervisor_id = current_user.id
    if _is_admin() and data.get("supervisor_id") not in (None, ""):
        supervisor_id = _parse_int(data.get("supervisor_id"))
        supervisor = db.session.get(User, supervisor_id) if supervisor_id else None
        if supervisor is None or supervisor.role != "supervisor":
            return _error("supervisor_id must reference a supervisor.")

    site = Site(
        name=name,
        job_name=job_name,
        pos_no=pos_no,
        start_date=start_date,
        supervisor_id=supervisor_id,
        funds=Decimal("0.00"),
    )
    db.session.add(site)
    if not _commit_or_rollback("Create site"):
        return _error("Could not create site.", 500)

    return jsonify({"site": _site_dict(site, summarize(SiteTransactions(site_id=site.id)))}), 201


@main.route("/sites/<int:site_id>", methods=["GET"])
@login_required
def view_site(site_id):
    site = get_site_or_abort(site_id)
    tx = load_site_transactions(site.id)
    split = paid_by_approver(tx.invoices)
    return jsonify({
        "site": _site_dict(site, summarize(tx)),
        "invoicesPaidByApprover": {k.value: v for k, v in split.items()},
        "counts": {
            "expenses": len(tx.expenses),
            "advances": len(tx.advances),
            "fundsReceived": len(tx.funds_received),
            "invoices": len(tx.invoices),
        },
    })


@main.route("/sites/<int:site_id>/summary", methods=["GET"])
@login_required
def site_summary(site_id):
    site = get_site_or_abort(site_id)
    summary = summarize(load_site_transactions(site.id))
    return jsonify({"siteId": site.id, "summary": summary.as_dict()})


@main.route("/sites/<int:site_id>/transactions", methods=["GET"])
@login_required
def site_transactions(site_id):
    site = get_site_or_abort(site_id)

    filters = {}
    for arg, enum_cls in (
        ("status", ApprovalStatus),
        ("recipient_type", RecipientType),
        ("purpose", AdvancePurpose),
    ):
        raw = _clean_str(request.args.get(arg)).lower()
        if not raw or raw == "all":
            continue
        value = parse_enum(enum_cls, raw, field=f"{arg} filter")
        if value is enum_cls.UNKNOWN:
            return _error(f"Unknown {arg} filter '{raw}'.")
        filters[arg] = value

    status = filters.get("status")
    recipient_type = filters.get("recipient_type")
    purpose = filters.get("purpose")

    tx = load_site_transactions(site.id)
    expenses = [e for e in tx.expenses if status is None or e.status is status]
    advances = [
        a for a in tx.advances
        if (status is None or a.status is status)
        and (recipient_type is None or a.recipient_type is recipient_type)
        and (purpose is None or a.purpose is purpose)
    ]

    return jsonify({
        "siteId": site.id,
        "expenses": [_expense_dict(e) for e in expenses],
        "advances": [_advance_dict(a) for a in advances],
        "fundsReceived": [_funds_dict(f) for f in tx.funds_received],
        "invoices": [_invoice_dict(i) for i in tx.invoices],
    })


@main.route("/sites/<int:site_id>/insights", methods=["GET"])
@login_required
def site_insights(site_id):
    site = get_site_or_abort(site_id)
    return jsonify({"siteId": site.id, **_insights([load_site_transactions(site.id)])})


@main.route("/sites/<int:site_id>/complete", methods=["POST"])
@role_required("admin", "supervisor")
def complete_site_view(site_id):
    site = get_site_or_abort(site_id, edit=True)
    completion_date = _parse_date(_payload().get("completion_date"))
    if completion_date is None:
        return _error("completion_date is required (YYYY-MM-DD).")

    try:
        complete_site(site, completion_date)
    except SiteTransitionError as exc:
        return _error(str(exc), 409)

    if not _commit_or_rollback("Complete site"):
        return _error("Could not complete site.", 500)
    return jsonify({"site": _site_dict(site)})


# =========================================================
# Recording transactions
# =========================================================
def _initial_status(data: dict) -> str:
    # Only admins may record an already-reviewed row.
    status = _clean_str(data.get("status")).lower()
    if _is_admin() and status in ("approved", "rejected"):
        return status
    return "pending"


@main.route("/sites/<int:site_id>/expenses", methods=["POST"])
@role_required("admin", "supervisor")
@limiter.limit("60 per minute")
def add_expense(site_id):
    site = get_site_or_abort(site_id, edit=True)
    data = _payload()

    amount = _positive_amount(data)
    if amount is None:
        return _error("amount must be a positive number.")

    category = _clean_str(data.get("category"))
    if category not in EXPENSE_CATEGORIES:
        return _error("Unknown expense category.")

    expense = Expense(
        site_id=site.id,
        date=_parse_date(data.get("date")) or date.today(),
        description=_clean_str(data.get("description")),
        category=category,
        amount=amount,
        status=_initial_status(data),
        created_by=current_user.name,
        supervisor_id=site.supervisor_id,
    )
    db.session.add(expense)
    if not _commit_or_rollback("Add expense"):
        return _error("Failed to add expense. Please try again.", 500)

    return jsonify({"expense": _expense_dict(ExpenseRecord.from_row(expense))}), 201


@main.route("/sites/<int:site_id>/advances", methods=["POST"])
@role_required("admin", "supervisor")
@limiter.limit("60 per minute")
def add_advance(site_id):
    site = get_site_or_abort(site_id, edit=True)
    data = _payload()

    amount = _positive_amount(data)
    if amount is None:
        return _error("amount must be a positive number.")

    recipient_name = _clean_str(data.get("recipient_name"))
    if len(recipient_name) < 2:
        return _error("recipient_name is required.")

    recipient_type = _clean_str(data.get("recipient_type")).lower() or "worker"
    if recipient_type not in RECIPIENT_TYPES:
        return _error("Unknown recipient type.")

    purpose = _clean_str(data.get("purpose")).lower() or "advance"
    if purpose not in ADVANCE_PURPOSES:
        return _error("Unknown advance purpose.")

    advance = Advance(
        site_id=site.id,
        date=_parse_date(data.get("date")) or date.today(),
        recipient_id=_clean_str(data.get("recipient_id")) or None,
        recipient_name=recipient_name,
        recipient_type=recipient_type,
        purpose=purpose,
        amount=amount,
        remarks=_clean_str(data.get("remarks")) or None,
        status=_initial_status(data),
        created_by=current_user.name,
    )
    db.session.add(advance)
    if not _commit_or_rollback("Add advance"):
        return _error("Failed to add advance. Please try again.", 500)

    return jsonify({"advance": _advance_dict(AdvanceRecord.from_row(advance))}), 201


@main.route("/sites/<int:site_id>/funds", methods=["POST"])
@role_required("admin", "supervisor")
@limiter.limit("60 per minute")
def add_funds(site_id):
    site = get_site_or_abort(site_id, edit=True)
    data = _payload()

    amount = _positive_amount(data)
    if amount is None:
        return _error("amount must be a positive number.")

    row = record_funds_received(
        site,
        amount,
        received_on=_parse_date(data.get("date")),
        reference=_clean_str(data.get("reference")) or None,
        method=_clean_str(data.get("method")) or None,
    )
    if not _commit_or_rollback("Add funds"):
        return _error("Failed to add funds. Please try again.", 500)

    return jsonify({"funds": _funds_dict(FundsRecord.from_row(row)), "siteFunds": site.funds}), 201


def _invoice_lines(data: dict) -> list[dict] | None:
    raw_items = data.get("items")
    if not raw_items:
        raw_items = [{
            "material": data.get("material"),
            "quantity": data.get("quantity"),
            "rate": data.get("rate"),
            "gst_percentage": data.get("gst_percentage"),
        }]
    if not isinstance(raw_items, list):
        return None

    lines = []
    for item in raw_items:
        if not isinstance(item, dict):
            return None
        material = _clean_str(item.get("material"))
        quantity = _parse_decimal(item.get("quantity"))
        rate = _parse_decimal(item.get("rate"))
        gst = _parse_decimal(item.get("gst_percentage"))
        if not material or quantity is None or quantity <= 0 or rate is None or rate < 0:
            return None
        if gst is None:
            gst = Decimal("0")
        if gst < 0 or gst > 100:
            return None
        lines.append({"material": material, "quantity": quantity, "rate": rate, "gst_percentage": gst})
    return lines


@main.route("/sites/<int:site_id>/invoices", methods=["POST"])
@role_required("admin", "supervisor")
@limiter.limit("60 per minute")
def add_invoice(site_id):
    site = get_site_or_abort(site_id, edit=True)
    data = _payload()

    party_id = _clean_str(data.get("party_id"))
    party_name = _clean_str(data.get("party_name"))
    if not party_id or not party_name:
        return _error("party_id and party_name are required.")

    lines = _invoice_lines(data)
    if not lines:
        return _error("Each invoice line needs material, a positive quantity, a rate and a GST % of 0-100.")

    payment_status = _clean_str(data.get("payment_status")).lower() or "pending"
    if payment_status not in PAYMENT_STATUSES:
        return _error("Unknown payment status.")

    approver_type = _clean_str(data.get("approver_type")).lower() or None
    if approver_type is not None and approver_type not in APPROVER_TYPES:
        return _error("Unknown approver type.")

    bank_details = data.get("bank_details")
    if bank_details is not None and not isinstance(bank_details, dict):
        return _error("bank_details must be an object.")

    invoice = Invoice(
        site_id=site.id,
        date=_parse_date(data.get("date")) or date.today(),
        party_id=party_id,
        party_name=party_name,
        vendor_name=_clean_str(data.get("vendor_name")) or None,
        invoice_number=_clean_str(data.get("invoice_number")) or None,
        bank_details=bank_details,
        bill_url=_clean_str(data.get("bill_url")) or None,
        invoice_image_url=_clean_str(data.get("invoice_image_url")) or None,
        payment_status=payment_status,
        approver_type=approver_type,
        created_by=current_user.name,
    )
    invoice.items = [InvoiceItem(**line) for line in lines]
    invoice.recalculate_totals()
    if payment_status == "paid":
        invoice.paid_at = utcnow_naive()

    db.session.add(invoice)
    if not _commit_or_rollback("Add invoice"):
        return _error("Failed to add invoice. Please try again.", 500)

    return jsonify({"invoice": _invoice_dict(InvoiceRecord.from_row(invoice))}), 201


# =========================================================
# Review / payment
# =========================================================
def _review(model, record_cls, serialize, key: str, row_id: int):
    row = db.session.get(model, row_id)
    if row is None:
        return _error("Not found.", 404)

    target = _clean_str(_payload().get("status")).lower()
    try:
        row.review(target, reviewer=current_user)
    except ApprovalTransitionError as exc:
        return _error(str(exc), 409)

    if not _commit_or_rollback(f"Review {key}"):
        return _error(f"Could not update {key}.", 500)
    return jsonify({key: serialize(record_cls.from_row(row))})


@main.route("/expenses/<int:expense_id>/status", methods=["POST"])
@admin_required
def review_expense(expense_id):
    return _review(Expense, ExpenseRecord, _expense_dict, "expense", expense_id)


@main.route("/advances/<int:advance_id>/status", methods=["POST"])
@admin_required
def review_advance(advance_id):
    return _review(Advance, AdvanceRecord, _advance_dict, "advance", advance_id)


@main.route("/invoices/<int:invoice_id>/payment", methods=["POST"])
@role_required("admin", "supervisor")
def pay_invoice(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        return _error("Not found.", 404)
    get_site_or_abort(invoice.site_id, edit=True)

    try:
        invoice.mark_paid()
    except ApprovalTransitionError as exc:
        return _error(str(exc), 409)

    if not _commit_or_rollback("Pay invoice"):
        return _error("Could not update invoice.", 500)
    return jsonify({"invoice": _invoice_dict(InvoiceRecord.from_row(invoice))})


# =========================================================
# Dashboard (all sites visible to the user)
# =========================================================
@main.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    rollup = build_rollup(visible_sites_query(current_user).all())
    return jsonify({
        "summary": rollup.total.as_dict(),
        "siteCount": len(rollup.sites),
        **_insights([o.transactions for o in rollup.sites]),
    })
