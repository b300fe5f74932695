from __future__ import annotations

from decimal import Decimal

from siteledger.extensions import db
from siteledger.models import Invoice
from siteledger.services.site_data import record_funds_received


def test_admin_endpoints_require_admin(client, login, supervisor, viewer):
    assert client.get("/admin/supervisors").status_code == 401
    assert login(supervisor).get("/admin/supervisors").status_code == 403
    assert login(viewer).get("/admin/sites").status_code == 403


def test_supervisor_listing_with_rollups(login, admin, make_site, supervisor, other_supervisor):
    a = make_site(supervisor, name="Alpha")
    make_site(supervisor, name="Bravo")
    record_funds_received(a, "500")
    db.session.commit()

    data = login(admin).get("/admin/supervisors").get_json()["supervisors"]
    by_email = {row["email"]: row for row in data}

    assert by_email["ravi@example.com"]["siteCount"] == 2
    assert Decimal(by_email["ravi@example.com"]["summary"]["fundsReceived"]) == Decimal("500")
    assert by_email["anil@example.com"]["siteCount"] == 0
    assert Decimal(by_email["anil@example.com"]["summary"]["totalBalance"]) == 0


def test_supervisor_sites(login, admin, make_site, supervisor, viewer):
    site = make_site(supervisor, name="Alpha")
    db.session.add(Invoice(site_id=site.id, party_id="P", party_name="Vendor", payment_status="paid",
                           approver_type="supervisor", gross_amount=Decimal("10"), net_amount=Decimal("12")))
    db.session.commit()
    client = login(admin)

    data = client.get(f"/admin/supervisors/{supervisor.id}/sites").get_json()

    assert data["supervisor"]["id"] == supervisor.id
    assert [s["name"] for s in data["sites"]] == ["Alpha"]
    assert Decimal(data["sites"][0]["invoicesPaidByApprover"]["supervisor"]) == Decimal("12")
    assert Decimal(data["total"]["totalBalance"]) == Decimal("-12")
    assert client.get(f"/admin/supervisors/{viewer.id}/sites").status_code == 404
    assert client.get("/admin/supervisors/999/sites").status_code == 404


def test_all_sites_rollup(login, admin, make_site, supervisor, other_supervisor):
    a = make_site(supervisor, name="Alpha")
    b = make_site(other_supervisor, name="Bravo")
    record_funds_received(a, "100")
    record_funds_received(b, "25.50")
    db.session.commit()

    data = login(admin).get("/admin/sites").get_json()

    assert [s["name"] for s in data["sites"]] == ["Alpha", "Bravo"]
    assert Decimal(data["total"]["fundsReceived"]) == Decimal("125.50")
