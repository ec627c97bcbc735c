# Overview: Flask API routes for sync engine status and manual flush.

from flask import Blueprint

from ..decorators import handle_domain_errors
from ..services.sync_service import get_sync_engine

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@handle_domain_errors
def sync_status():
    return get_sync_engine().status()


@sync_bp.post("/flush")
@handle_domain_errors
def sync_flush():
    """
    Push pending changes now instead of waiting for the debounce window.
    A failed push is reported in the result, not as an HTTP error: the
    records stay pending and are retried.
    """
    result = get_sync_engine().flush()
    return {"result": result.to_dict()}
