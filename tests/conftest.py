# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - One fresh in-memory SQLite database per test (db.create_all)
# - The app context stays pushed for the whole test, so ORM rows created
#   by fixtures remain usable after requests commit
# - Rate limiting is off; login is simulated by writing _user_id into the
#   Flask-Login session
# ---------------------------------------------------------------------

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from flask import g

from siteledger import create_app
from siteledger.extensions import db
from siteledger.models import Site, User


@pytest.fixture()
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "RATELIMIT_ENABLED": False,
        "LOG_LEVEL": "WARNING",
    })

    # The app context outlives each request here, and so does `g`; drop the
    # cached user so every request resolves `_user_id` afresh.
    @app.teardown_request
    def _forget_login_user(exc):
        g.pop("_login_user", None)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


# ---------- Users ----------
def _user(name: str, email: str, role: str) -> User:
    user = User(name=name, email=email, role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def admin(app):
    return _user("Head Office", "admin@example.com", "admin")


@pytest.fixture()
def supervisor(app):
    return _user("Ravi Kumar", "ravi@example.com", "supervisor")


@pytest.fixture()
def other_supervisor(app):
    return _user("Anil Shah", "anil@example.com", "supervisor")


@pytest.fixture()
def viewer(app):
    return _user("Auditor", "auditor@example.com", "viewer")


@pytest.fixture()
def login(client):
    """login(user) makes every following request from `client` run as `user`."""
    def _login(user: User):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
        return client

    return _login


# ---------- Sites ----------
@pytest.fixture()
def make_site(app):
    def _make(supervisor: User | None = None, name: str = "Metro Depot", **kwargs) -> Site:
        site = Site(
            name=name,
            job_name=kwargs.pop("job_name", "Civil works"),
            pos_no=kwargs.pop("pos_no", "POS-001"),
            start_date=kwargs.pop("start_date", date(2024, 1, 1)),
            supervisor_id=supervisor.id if supervisor else None,
            funds=Decimal("0.00"),
            **kwargs,
        )
        db.session.add(site)
        db.session.commit()
        return site

    return _make


@pytest.fixture()
def site(make_site, supervisor):
    return make_site(supervisor)
