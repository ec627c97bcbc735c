"""
Tenant Service: Session Context and Scoping Helpers

WHY: Every read and write belongs to exactly one (company_id, pos_id) pair.
The active pair comes from a login step and is persisted locally so it
survives a restart.

SCOPING INVARIANTS:
1. Mutators receive an explicit TenantScope; none of them reads the session
   lazily mid-operation.
2. The scope is resolved once per operation (ensure_scope) and captured for
   its whole duration, so a logout or switch cannot redirect in-flight writes.
3. Queries touching synchronized data filter on both company_id and pos_id and
   exclude soft-deleted rows unless asked otherwise.

USAGE:
    from possync.services.tenant_service import get_session_provider, scoped_query

    scope = get_session_provider().ensure_scope()
    products = scoped_query(Product, scope).all()
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import SessionInvalidError
from ..models import LocalSetting
from ..validation import ValidationError


SESSION_KEY = "session"


@dataclass(frozen=True)
class TenantScope:
    company_id: str
    pos_id: str

    def stamp(self) -> dict:
        return {"company_id": self.company_id, "pos_id": self.pos_id}


@dataclass(frozen=True)
class ActiveSession:
    company_id: str
    company_name: str
    pos_id: str
    pos_name: str

    @property
    def scope(self) -> TenantScope:
        return TenantScope(company_id=self.company_id, pos_id=self.pos_id)

    def to_dict(self) -> dict:
        return {
            "company": {"id": self.company_id, "name": self.company_name},
            "pos": {"id": self.pos_id, "name": self.pos_name, "company_id": self.company_id},
        }


def slugify(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def company_id_for(name: str) -> str:
    return f"comp_{slugify(name)}"


def pos_id_for(name: str) -> str:
    return f"pos_{slugify(name)}"


class SessionProvider:
    """
    Holds the active company / point-of-sale identity.

    Persisted in local_settings under the fixed key 'session'. Identity ids are
    derived deterministically from the names, so logging in with the same names
    on another day lands in the same scope.
    """

    def __init__(self, key: str = SESSION_KEY):
        self.key = key

    def login(self, company_name: str, pos_name: str) -> ActiveSession:
        company_name = (company_name or "").strip()
        pos_name = (pos_name or "").strip()
        if not company_name:
            raise ValidationError("company name is required")
        if not pos_name:
            raise ValidationError("point-of-sale name is required")

        active = ActiveSession(
            company_id=company_id_for(company_name),
            company_name=company_name,
            pos_id=pos_id_for(pos_name),
            pos_name=pos_name,
        )

        setting = db.session.get(LocalSetting, self.key)
        if setting is None:
            setting = LocalSetting(key=self.key)
            db.session.add(setting)
        setting.value = active.to_dict()
        db.session.commit()
        return active

    def logout(self) -> None:
        setting = db.session.get(LocalSetting, self.key)
        if setting is not None:
            db.session.delete(setting)
            db.session.commit()

    def current(self) -> ActiveSession | None:
        setting = db.session.get(LocalSetting, self.key)
        if setting is None or not setting.value:
            return None
        value = setting.value
        try:
            return ActiveSession(
                company_id=value["company"]["id"],
                company_name=value["company"]["name"],
                pos_id=value["pos"]["id"],
                pos_name=value["pos"]["name"],
            )
        except (KeyError, TypeError):
            return None

    def ensure_scope(self) -> TenantScope:
        """
        Snapshot the active scope.

        Raises:
            SessionInvalidError if no session is active
        """
        active = self.current()
        if active is None:
            raise SessionInvalidError("No active session: log in to a company and point of sale first")
        return active.scope


def get_session_provider() -> SessionProvider:
    return current_app.extensions["session_provider"]


def require_scope_arg(scope) -> TenantScope:
    """Mutators reject calls without a valid scope before touching storage."""
    if not isinstance(scope, TenantScope) or not scope.company_id or not scope.pos_id:
        raise SessionInvalidError("A valid tenant scope is required")
    return scope


def scoped_query(model, scope: TenantScope, *, include_deleted: bool = False):
    """
    Base query for a synchronized model restricted to one tenant scope.

    Soft-deleted rows are excluded unless include_deleted=True.
    """
    q = db.session.query(model).filter(
        model.company_id == scope.company_id,
        model.pos_id == scope.pos_id,
    )
    if not include_deleted:
        q = q.filter(model.deleted.is_(False))
    return q
