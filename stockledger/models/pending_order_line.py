from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base


class PendingOrderLine(Base):
    """A fulfilled order line whose location was not known when the order arrived.

    The next level change for the same item claims it and is recorded as a sale.
    """

    __tablename__ = "pending_order_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str] = mapped_column(String(120), nullable=False)
    order_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    inventory_item_id: Mapped[str] = mapped_column(String(120), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    sku: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "order_id",
            "inventory_item_id",
            name="uq_pending_order_lines_tenant_order_item",
        ),
        Index("ix_pending_order_lines_tenant_item_ordered_at", "tenant_id", "inventory_item_id", "ordered_at"),
    )
