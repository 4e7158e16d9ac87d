from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base


class PurchaseEntry(Base):
    __tablename__ = "purchase_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", server_default="pending")
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    adjustment_group_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_purchase_entries_tenant_status_created_at", "tenant_id", "status", "created_at"),
    )


class PurchaseEntryItem(Base):
    __tablename__ = "purchase_entry_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    purchase_entry_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("purchase_entries.id"),
        nullable=False,
        index=True,
    )
    inventory_item_id: Mapped[str] = mapped_column(String(120), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_entry_items_quantity_positive"),
    )
