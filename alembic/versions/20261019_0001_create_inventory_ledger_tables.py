"""create inventory ledger and purchase tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "inventory_change_logs"):
        op.create_table(
            "inventory_change_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=255), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.Column("calendar_date", sa.String(length=10), nullable=False),
            sa.Column("inventory_item_id", sa.String(length=120), nullable=False),
            sa.Column("variant_id", sa.String(length=120), nullable=True),
            sa.Column("sku", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("location_id", sa.String(length=120), nullable=False),
            sa.Column("location_name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("activity", sa.String(length=40), nullable=False),
            sa.Column("delta", sa.Integer(), nullable=True),
            sa.Column("quantity_after", sa.Integer(), nullable=True),
            sa.Column("source_type", sa.String(length=40), nullable=False),
            sa.Column("source_id", sa.String(length=255), nullable=True),
            sa.Column("adjustment_group_id", sa.String(length=255), nullable=True),
            sa.Column("idempotency_key", sa.String(length=512), nullable=False),
            sa.Column("note", sa.String(length=500), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "tenant_id",
                "idempotency_key",
                name="uq_inventory_change_logs_tenant_idempotency_key",
            ),
        )

    if not _table_exists(inspector, "purchase_entries"):
        op.create_table(
            "purchase_entries",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=255), nullable=False),
            sa.Column("location_id", sa.String(length=120), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("adjustment_group_id", sa.String(length=255), nullable=True),
            sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "purchase_entry_items"):
        op.create_table(
            "purchase_entry_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("purchase_entry_id", sa.String(length=36), nullable=False),
            sa.Column("inventory_item_id", sa.String(length=120), nullable=False),
            sa.Column("variant_id", sa.String(length=120), nullable=True),
            sa.Column("sku", sa.String(length=255), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.CheckConstraint("quantity > 0", name="ck_purchase_entry_items_quantity_positive"),
            sa.ForeignKeyConstraint(["purchase_entry_id"], ["purchase_entries.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)
    indexes = {
        "inventory_change_logs": [
            ("ix_inventory_change_logs_tenant_id", ["tenant_id"]),
            (
                "ix_inventory_change_logs_tenant_item_location_timestamp",
                ["tenant_id", "inventory_item_id", "location_id", "timestamp"],
            ),
            ("ix_inventory_change_logs_tenant_calendar_date", ["tenant_id", "calendar_date"]),
            ("ix_inventory_change_logs_tenant_activity_timestamp", ["tenant_id", "activity", "timestamp"]),
        ],
        "purchase_entries": [
            ("ix_purchase_entries_tenant_id", ["tenant_id"]),
            ("ix_purchase_entries_tenant_status_created_at", ["tenant_id", "status", "created_at"]),
        ],
        "purchase_entry_items": [
            ("ix_purchase_entry_items_purchase_entry_id", ["purchase_entry_id"]),
        ],
    }
    for table_name, table_indexes in indexes.items():
        if not _table_exists(inspector, table_name):
            continue
        for index_name, columns in table_indexes:
            if not _index_exists(inspector, table_name, index_name):
                op.create_index(index_name, table_name, columns, unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in ("purchase_entry_items", "purchase_entries", "inventory_change_logs"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
