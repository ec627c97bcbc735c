from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


SYNC_STATUSES = ("pending", "synced", "error")

# Never part of the pushed record
LOCAL_ONLY_FIELDS = ("sync_status", "version_id")


def scoped_table_args(tablename: str, *extra, **kwargs) -> tuple:
    """
    Table args shared by every synced table: a (company_id, pos_id) scope index
    and a sync_status index, plus any model-specific constraints.
    """
    args = (
        db.Index(f"ix_{tablename}_scope", "company_id", "pos_id"),
        db.Index(f"ix_{tablename}_sync_status", "sync_status"),
        db.CheckConstraint(
            "sync_status IN ('pending', 'synced', 'error')",
            name=f"ck_{tablename}_sync_status",
        ),
    ) + tuple(extra)
    if kwargs:
        args = args + (kwargs,)
    return args


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _camel_value(value):
    if isinstance(value, dict):
        return {_camel(k): _camel_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camel_value(v) for v in value]
    return value


class SyncedMixin:
    """
    Base shape shared by every synchronized entity.

    MULTI-TENANT: every row belongs to exactly one (company_id, pos_id) pair.
    Reads must filter on both; writes are stamped from the operation's scope.

    SOFT DELETE: `deleted` is set instead of removing the row, so the deletion
    itself is a pending change. The sync engine purges the row once the remote
    authority acknowledged it.

    version_id is bumped by SQLAlchemy on every UPDATE; the sync engine uses it
    to detect rows that changed while a push was in flight.
    """

    # Prefix for client-generated ids: "{prefix}_{timestamp}_{random}"
    id_prefix: str = ""
    # Attribute that carries the stable sync identity
    sync_key: str = "id"

    company_id = db.Column(db.String(128), nullable=False)
    pos_id = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    sync_status = db.Column(db.String(16), nullable=False, default="pending")
    deleted = db.Column(db.Boolean, nullable=False, default=False)

    @declared_attr
    def version_id(cls):
        return db.Column(db.Integer, nullable=False, default=1)

    @declared_attr
    def __mapper_args__(cls):
        return {"version_id_col": cls.version_id}

    @property
    def sync_identity(self) -> str:
        return getattr(self, self.sync_key)

    def _base_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "pos_id": self.pos_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "sync_status": self.sync_status,
            "deleted": bool(self.deleted),
            "version_id": self.version_id,
        }

    def to_dict(self) -> dict:
        raise NotImplementedError

    def to_wire(self) -> dict:
        """
        Record shape pushed to the remote authority (camelCase, `_deleted`).

        Local bookkeeping stays local: sync_status, version_id, and the
        autoincrement key of kinds identified by a separate sync key.
        """
        local_only = set(LOCAL_ONLY_FIELDS)
        if self.sync_key != "id":
            local_only.add("id")
        record = {}
        for key, value in self.to_dict().items():
            if key in local_only:
                continue
            if key == "deleted":
                record["_deleted"] = value
            else:
                record[_camel(key)] = _camel_value(value)
        return record
