from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class LocalSetting(db.Model):
    """
    Device-local key/value storage (JSON values).

    Holds state that must survive a restart but is never synchronized,
    such as the active session under the fixed key 'session'.
    """
    __tablename__ = "local_settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
