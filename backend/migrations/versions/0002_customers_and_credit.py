"""customers and credit sales

Revision ID: 0002_customers_credit
Revises: 0001_initial
Create Date: 2026-09-15 00:00:00.000000

Additive only; existing local data migrates forward untouched:
- customers, credit_payments tables
- products.type ('product' | 'service'), existing rows become 'product'
- sales.status ('paid' | 'unpaid'), existing rows become 'paid'
- sales.customer_id (nullable, non-owning)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_customers_credit'
down_revision = '0001_initial'
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


def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "sync_status IN ('pending', 'synced', 'error')",
            name="ck_customers_sync_status",
        ),
    )
    op.create_index("ix_customers_scope", "customers", ["company_id", "pos_id"], unique=False)
    op.create_index("ix_customers_sync_status", "customers", ["sync_status"], unique=False)
    op.create_index("ix_customers_name", "customers", ["name"], unique=False)

    op.create_table(
        "credit_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.String(64), nullable=False),
        sa.Column("sale_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        *_synced_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id", name="uq_credit_payments_payment_id"),
        sa.CheckConstraint(
            "sync_status IN ('pending', 'synced', 'error')",
            name="ck_credit_payments_sync_status",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_credit_payments_scope", "credit_payments", ["company_id", "pos_id"], unique=False)
    op.create_index("ix_credit_payments_sync_status", "credit_payments", ["sync_status"], unique=False)
    op.create_index("ix_credit_payments_sale_id", "credit_payments", ["sale_id"], unique=False)

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(sa.Column("type", sa.String(16), nullable=False, server_default="product"))
        batch_op.create_check_constraint("ck_products_type", "type IN ('product', 'service')")

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.add_column(sa.Column("status", sa.String(16), nullable=False, server_default="paid"))
        batch_op.add_column(sa.Column("customer_id", sa.String(64), nullable=True))
        batch_op.create_check_constraint("ck_sales_status", "status IN ('paid', 'unpaid')")
        batch_op.create_index("ix_sales_customer_id", ["customer_id"], unique=False)


def downgrade():
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.drop_index("ix_sales_customer_id")
        batch_op.drop_constraint("ck_sales_status", type_="check")
        batch_op.drop_column("customer_id")
        batch_op.drop_column("status")

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_constraint("ck_products_type", type_="check")
        batch_op.drop_column("type")

    op.drop_table("credit_payments")
    op.drop_table("customers")
