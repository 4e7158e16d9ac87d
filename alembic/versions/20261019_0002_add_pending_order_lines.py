"""add pending order lines

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 15:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0002"
down_revision: Union[str, None] = "20261019_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "pending_order_lines"):
        op.create_table(
            "pending_order_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=255), nullable=False),
            sa.Column("order_id", sa.String(length=120), nullable=False),
            sa.Column("order_name", sa.String(length=120), nullable=True),
            sa.Column("inventory_item_id", sa.String(length=120), nullable=False),
            sa.Column("variant_id", sa.String(length=120), nullable=True),
            sa.Column("sku", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("ordered_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "tenant_id",
                "order_id",
                "inventory_item_id",
                name="uq_pending_order_lines_tenant_order_item",
            ),
        )

    inspector = sa.inspect(bind)
    index_name = "ix_pending_order_lines_tenant_item_ordered_at"
    if not _index_exists(inspector, "pending_order_lines", index_name):
        op.create_index(
            index_name,
            "pending_order_lines",
            ["tenant_id", "inventory_item_id", "ordered_at"],
            unique=False,
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if _table_exists(inspector, "pending_order_lines"):
        op.drop_table("pending_order_lines")
