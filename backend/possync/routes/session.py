# Overview: Flask API routes for the active company / point-of-sale session.

"""
Session routes.

The session is the tenant identity every other route operates in. Logging in
derives comp_<slug> / pos_<slug> ids from the names and persists them locally,
so the scope survives a restart.
"""
from flask import Blueprint, request

from ..decorators import handle_domain_errors
from ..services.tenant_service import get_session_provider

session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.get("")
def current_session():
    active = get_session_provider().current()
    if active is None:
        return {"session": None}
    return {"session": active.to_dict()}


@session_bp.post("/login")
@handle_domain_errors
def login():
    """
    Body: {"company_name": str, "pos_name": str}
    """
    payload = request.get_json(silent=True) or {}
    active = get_session_provider().login(
        payload.get("company_name", ""),
        payload.get("pos_name", ""),
    )
    return {"session": active.to_dict()}, 200


@session_bp.post("/logout")
def logout():
    get_session_provider().logout()
    return {"ok": True}
