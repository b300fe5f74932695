# siteledger/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask import abort
from flask_login import login_required, current_user

from siteledger.extensions import db
from siteledger.models import Site
from siteledger.services.site_data import can_edit_site, can_view_site


def _role() -> str:
    return (getattr(current_user, "role", "") or "").strip().lower()


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Allow only admins.
    Returns 403 for all other logged-in roles.
    """
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if _role() != "admin":
            abort(403)
        return view(*args, **kwargs)

    return wrapped


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("admin", "supervisor")
        def view(): ...
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if _role() not in allowed_roles:
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def get_site_or_abort(site_id: int, *, edit: bool = False) -> Site:
    """
    Load a site for the current user.
    404 if it doesn't exist, 403 if the user may not see (or edit) it.
    """
    site = db.session.get(Site, site_id)
    if site is None:
        abort(404)

    allowed = can_edit_site(current_user, site) if edit else can_view_site(current_user, site)
    if not allowed:
        abort(403)
    return site
