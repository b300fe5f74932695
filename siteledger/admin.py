# siteledger/admin.py
from __future__ import annotations

from flask import Blueprint, abort, jsonify
from sqlalchemy import func

from siteledger.extensions import db
from siteledger.models import Site, User
from siteledger.services.balance import paid_by_approver
from siteledger.services.site_data import all_sites_rollup, supervisor_rollup

from .utils.guards import admin_required

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _supervisor_dict(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email}


def _overview_dict(overview) -> dict:
    site = overview.site
    split = paid_by_approver(overview.transactions.invoices)
    return {
        "id": site.id,
        "name": site.name,
        "jobName": site.job_name,
        "posNo": site.pos_no,
        "state": site.state,
        "summary": overview.summary.as_dict(),
        "invoicesPaidByApprover": {k.value: v for k, v in split.items()},
    }


# -------------------------------------------------------------------
# Supervisors + their sites
# -------------------------------------------------------------------
@admin_bp.route("/supervisors", methods=["GET"])
@admin_required
def supervisors():
    rows = User.query.filter_by(role="supervisor").order_by(User.name.asc()).all()

    site_counts = dict(
        db.session.query(Site.supervisor_id, func.count(Site.id))
        .group_by(Site.supervisor_id)
        .all()
    )

    out = []
    for user in rows:
        rollup = supervisor_rollup(user.id)
        out.append({
            **_supervisor_dict(user),
            "siteCount": site_counts.get(user.id, 0),
            "summary": rollup.total.as_dict(),
        })
    return jsonify({"supervisors": out})


@admin_bp.route("/supervisors/<int:user_id>/sites", methods=["GET"])
@admin_required
def supervisor_sites(user_id):
    user = db.session.get(User, user_id)
    if user is None or user.role != "supervisor":
        abort(404)

    rollup = supervisor_rollup(user.id)
    return jsonify({
        "supervisor": _supervisor_dict(user),
        "sites": [_overview_dict(o) for o in rollup.sites],
        "total": rollup.total.as_dict(),
    })


@admin_bp.route("/sites", methods=["GET"])
@admin_required
def all_sites():
    rollup = all_sites_rollup()
    return jsonify({
        "sites": [_overview_dict(o) for o in rollup.sites],
        "total": rollup.total.as_dict(),
    })
