"""initial local store

Revision ID: 0001_initial
Revises:
Create Date: 2026-09-01 00:00:00.000000

Creates the first local store schema:
- products, sales, stock_movements, expenses, suppliers: one table per
  synchronized kind, every row scoped by (company_id, pos_id) and carrying
  sync_status / deleted / version_id
- local_settings: device-local key/value storage (active session)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _synced_columns():
    return [
        sa.Column("company_id", sa.String(128), nullable=False),
        sa.Column("pos_id", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("sync_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
    ]


def _sync_constraints(table: str):
    return [
        sa.CheckConstraint(
            "sync_status IN ('pending', 'synced', 'error')",
            name=f"ck_{table}_sync_status",
        ),
    ]


def _sync_indexes(table: str):
    op.create_index(f"ix_{table}_scope", table, ["company_id", "pos_id"], unique=False)
    op.create_index(f"ix_{table}_sync_status", table, ["sync_status"], unique=False)


def upgrade():
    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        "products",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=False, server_default=""),
        sa.Column("price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("supplier_id", sa.String(64), nullable=True),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        *_sync_constraints("products"),
    )
    _sync_indexes("products")
    op.create_index("ix_products_name", "products", ["name"], unique=False)
    op.create_index("ix_products_barcode", "products", ["barcode"], unique=False)
    op.create_index("ix_products_supplier_id", "products", ["supplier_id"], unique=False)

    # ============================================================================
    # sales: line items are a JSON snapshot taken at sale time
    # ============================================================================
    op.create_table(
        "sales",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("vat", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("payment_details", sa.JSON(), nullable=False),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        *_sync_constraints("sales"),
    )
    _sync_indexes("sales")
    op.create_index("ix_sales_scope_created", "sales", ["company_id", "pos_id", "created_at"], unique=False)

    # ============================================================================
    # stock_movements: local integer key, movement_id is the sync identity
    # ============================================================================
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("movement_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False, server_default=""),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("movement_id", name="uq_stock_movements_movement_id"),
        *_sync_constraints("stock_movements"),
        sqlite_autoincrement=True,
    )
    _sync_indexes("stock_movements")
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"], unique=False)
    op.create_index(
        "ix_stock_movements_product_created",
        "stock_movements",
        ["product_id", "created_at"],
        unique=False,
    )

    # ============================================================================
    # expenses
    # ============================================================================
    op.create_table(
        "expenses",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("category", sa.String(32), nullable=False, server_default="other"),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        *_sync_constraints("expenses"),
    )
    _sync_indexes("expenses")
    op.create_index("ix_expenses_category", "expenses", ["category"], unique=False)

    # ============================================================================
    # suppliers
    # ============================================================================
    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        *_sync_constraints("suppliers"),
    )
    _sync_indexes("suppliers")
    op.create_index("ix_suppliers_name", "suppliers", ["name"], unique=False)

    # ============================================================================
    # local_settings: never synchronized
    # ============================================================================
    op.create_table(
        "local_settings",
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade():
    op.drop_table("local_settings")
    for table in ("suppliers", "expenses", "stock_movements", "sales", "products"):
        op.drop_table(table)
