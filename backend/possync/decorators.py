# Overview: Request decorators for API routes; tenant scope resolution and domain error mapping.

from functools import wraps
from flask import current_app, g

from .errors import (
    PosError,
    SessionInvalidError,
    EntityNotFoundError,
    InvalidStateError,
    InvalidOperationError,
)
from .services.tenant_service import get_session_provider
from .validation import ValidationError


# Domain error -> HTTP status
ERROR_STATUS = (
    (ValidationError, 400),
    (SessionInvalidError, 401),
    (EntityNotFoundError, 404),
    (InvalidStateError, 409),
    (InvalidOperationError, 409),
)


def error_body(exc: Exception) -> dict:
    body = {"error": str(exc)}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return body


def require_scope(f):
    """
    Resolve the active tenant scope once per request.

    Sets g.scope (TenantScope) and g.session (ActiveSession). Returns 401 when
    no session is active; nothing downstream runs without a scope.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        provider = get_session_provider()
        active = provider.current()
        if active is None:
            return {"error": "No active session: log in to a company and point of sale first"}, 401

        g.session = active
        g.scope = active.scope
        return f(*args, **kwargs)

    return decorated_function


def handle_domain_errors(f):
    """
    Map domain errors raised by the services to JSON error responses:
    400 validation, 401 session, 404 not found, 409 state/operation.
    Anything else is logged and answered with a generic 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ValidationError, PosError) as exc:
            for error_type, status in ERROR_STATUS:
                if isinstance(exc, error_type):
                    return error_body(exc), status
            current_app.logger.exception("Unmapped domain error")
            return {"error": "Internal server error"}, 500
        except Exception:
            current_app.logger.exception("Unhandled error in %s", f.__name__)
            return {"error": "Internal server error"}, 500

    return decorated_function
