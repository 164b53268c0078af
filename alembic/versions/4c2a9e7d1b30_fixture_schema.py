"""Fixture schema

Revision ID: 4c2a9e7d1b30
Revises:
Create Date: 2026-10-19 09:12:03.514211

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c2a9e7d1b30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    # Table: accounts (caller-supplied TEXT key)
    op.create_table(
        "accounts",
        sa.Column("id", sa.Text(), nullable=False, primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("base_currency", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.Text(), nullable=True),
    )

    # Table: customers
    op.create_table(
        "customers",
        sa.Column(
            "id", sa.Integer(), nullable=False, primary_key=True, autoincrement=True
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("status", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("visits", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_customers_status", "customers", ["status"])

    # Table: profiles (one per customer)
    op.create_table(
        "profiles",
        sa.Column(
            "id", sa.Integer(), nullable=False, primary_key=True, autoincrement=True
        ),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
    )

    # Table: orders
    op.create_table(
        "orders",
        sa.Column(
            "id", sa.Integer(), nullable=False, primary_key=True, autoincrement=True
        ),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("total", sa.REAL(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])

    # Table: items
    op.create_table(
        "items",
        sa.Column(
            "id", sa.Integer(), nullable=False, primary_key=True, autoincrement=True
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("price", sa.REAL(), nullable=True),
    )

    # Table: order_items (junction, composite key)
    op.create_table(
        "order_items",
        sa.Column("order_id", sa.Integer(), nullable=False, primary_key=True),
        sa.Column("item_id", sa.Integer(), nullable=False, primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="CASCADE"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("order_items")
    op.drop_table("items")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_table("profiles")
    op.drop_index("ix_customers_status", table_name="customers")
    op.drop_table("customers")
    op.drop_table("accounts")
