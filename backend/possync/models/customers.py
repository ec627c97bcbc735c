from __future__ import annotations

from ..extensions import db
from .base import SyncedMixin, scoped_table_args


class Customer(SyncedMixin, db.Model):
    """
    Customer contact record. Required on credit sales.

    Sales reference customers by id without owning them; deleting a customer
    unlinks its sales instead of cascading.
    """
    __tablename__ = "customers"
    __table_args__ = scoped_table_args("customers")

    id_prefix = "cust"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Customer id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            **self._base_dict(),
        }
