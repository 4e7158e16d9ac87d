from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base


class InventoryChangeLog(Base):
    """
    One row per physical stock change at a location. Append-only: a row is
    never deleted, and only a ``generic_webhook`` row is ever rewritten (once,
    when the authoritative signal for the same change arrives).
    """
    __tablename__ = "inventory_change_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)  # shop domain

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)  # event time
    calendar_date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD, shop timezone

    inventory_item_id: Mapped[str] = mapped_column(String(120), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    sku: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")

    location_id: Mapped[str] = mapped_column(String(120), nullable=False)
    location_name: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")

    activity: Mapped[str] = mapped_column(String(40), nullable=False)
    delta: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quantity_after: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    source_type: Mapped[str] = mapped_column(String(40), nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # e.g., order_123, purchase id
    adjustment_group_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    idempotency_key: Mapped[str] = mapped_column(String(512), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_inventory_change_logs_tenant_idempotency_key"),
        Index(
            "ix_inventory_change_logs_tenant_item_location_timestamp",
            "tenant_id",
            "inventory_item_id",
            "location_id",
            "timestamp",
        ),
        Index("ix_inventory_change_logs_tenant_calendar_date", "tenant_id", "calendar_date"),
        Index("ix_inventory_change_logs_tenant_activity_timestamp", "tenant_id", "activity", "timestamp"),
    )
