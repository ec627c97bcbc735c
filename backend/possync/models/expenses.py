from __future__ import annotations

from ..extensions import db
from .base import SyncedMixin, scoped_table_args


EXPENSE_CATEGORIES = (
    "rent",
    "salaries",
    "supplies",
    "marketing",
    "utilities",
    "transport",
    "maintenance",
    "taxes",
    "other",
)


class Expense(SyncedMixin, db.Model):
    __tablename__ = "expenses"
    __table_args__ = scoped_table_args("expenses")

    id_prefix = "exp"

    id = db.Column(db.String(64), primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(32), nullable=False, default="other", index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            **self._base_dict(),
        }
