from __future__ import annotations

from ..extensions import db
from .base import SyncedMixin, scoped_table_args


PAYMENT_METHODS = ("cash", "mobile_money", "card", "credit")
CREDIT_PAYMENT_METHODS = ("cash", "mobile_money", "card")
MOBILE_MONEY_PROVIDERS = ("orange_money", "mvola", "airtel_money")
SALE_STATUSES = ("paid", "unpaid")


class Sale(SyncedMixin, db.Model):
    """
    A completed checkout.

    `items` is a snapshot of each line at sale time (id, name, price, quantity,
    type), never a live reference, so later product edits do not rewrite
    history. Totals are computed by the caller and stored as given.

    status is 'unpaid' for credit sales until the credit payments recorded
    against the sale reach its total.
    """
    __tablename__ = "sales"
    __table_args__ = scoped_table_args(
        "sales",
        db.Index("ix_sales_scope_created", "company_id", "pos_id", "created_at"),
        db.CheckConstraint("status IN ('paid', 'unpaid')", name="ck_sales_status"),
    )

    id_prefix = "sale"

    id = db.Column(db.String(64), primary_key=True)

    items = db.Column(db.JSON, nullable=False, default=list)

    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    vat = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_details = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(16), nullable=False, default="paid")
    customer_id = db.Column(db.String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Sale id={self.id!r} total={self.total} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": list(self.items or []),
            "subtotal": self.subtotal,
            "discount": self.discount,
            "vat": self.vat,
            "total": self.total,
            "payment_method": self.payment_method,
            "payment_details": dict(self.payment_details or {}),
            "status": self.status,
            "customer_id": self.customer_id,
            **self._base_dict(),
        }


class CreditPayment(SyncedMixin, db.Model):
    """
    A payment collected against an unpaid credit sale.

    The integer primary key is local only; payment_id is the stable identity
    used by the remote authority.
    """
    __tablename__ = "credit_payments"
    __table_args__ = scoped_table_args("credit_payments", sqlite_autoincrement=True)

    id_prefix = "cpay"
    sync_key = "payment_id"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.String(64), nullable=False, unique=True)

    sale_id = db.Column(db.String(64), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "sale_id": self.sale_id,
            "amount": self.amount,
            "payment_method": self.payment_method,
            **self._base_dict(),
        }
