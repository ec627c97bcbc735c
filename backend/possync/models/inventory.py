from __future__ import annotations

from ..extensions import db
from .base import SyncedMixin, scoped_table_args


PRODUCT_TYPES = ("product", "service")


class Product(SyncedMixin, db.Model):
    """
    Catalog entry: a stocked product or a service.

    INVARIANTS:
    - stock is an integer >= 0 (also enforced by a CHECK constraint)
    - type='service' always carries stock=0 and an empty barcode
    - supplier_id is a non-owning reference; deleting the supplier clears it
    """
    __tablename__ = "products"
    __table_args__ = scoped_table_args(
        "products",
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("type IN ('product', 'service')", name="ck_products_type"),
    )

    id_prefix = "prod"

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    barcode = db.Column(db.String(64), nullable=False, default="", index=True)

    # Integer money in the smallest currency unit
    price = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    type = db.Column(db.String(16), nullable=False, default="product")

    supplier_id = db.Column(db.String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "price": self.price,
            "stock": self.stock,
            "type": self.type,
            "supplier_id": self.supplier_id,
            **self._base_dict(),
        }


class StockMovement(SyncedMixin, db.Model):
    """
    Append-only log of stock changes made outside of sale processing.

    The integer primary key is local only; movement_id is the stable identity
    used by the remote authority.
    """
    __tablename__ = "stock_movements"
    __table_args__ = scoped_table_args(
        "stock_movements",
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        sqlite_autoincrement=True,
    )

    id_prefix = "mov"
    sync_key = "movement_id"

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(db.String(64), nullable=False, unique=True)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False, default="")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_id": self.movement_id,
            "product_id": self.product_id,
            "quantity_change": self.quantity_change,
            "reason": self.reason,
            **self._base_dict(),
        }


class Supplier(SyncedMixin, db.Model):
    __tablename__ = "suppliers"
    __table_args__ = scoped_table_args("suppliers")

    id_prefix = "sup"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            **self._base_dict(),
        }
