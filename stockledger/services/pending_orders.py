"""Order lines fulfilled before their location was known.

The order webhook parks such a line here; the next ``inventory_levels/update``
for the same item, close enough in time, is recorded as the sale and the
parked line is released.
"""
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.id_utils import INVENTORY_ITEM, generate_shortuuid, id_spellings, to_gid
from stockledger.models.pending_order_line import PendingOrderLine
from stockledger.services.idempotency import as_utc


def hold_line(
    db: Session,
    *,
    tenant_id: str,
    order_id: str,
    order_name: str | None,
    inventory_item_id: str,
    variant_id: str | None,
    sku: str,
    quantity: int,
    ordered_at: datetime,
) -> bool:
    """Park a line; ``False`` when the same order line is already parked."""
    item_id = to_gid(inventory_item_id, INVENTORY_ITEM)
    existing = db.execute(
        select(PendingOrderLine.id).where(
            PendingOrderLine.tenant_id == tenant_id,
            PendingOrderLine.order_id == order_id,
            PendingOrderLine.inventory_item_id == item_id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return False

    db.add(
        PendingOrderLine(
            id=generate_shortuuid(),
            tenant_id=tenant_id,
            order_id=order_id,
            order_name=order_name,
            inventory_item_id=item_id,
            variant_id=variant_id,
            sku=sku or "",
            quantity=quantity,
            ordered_at=as_utc(ordered_at),
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def find_line(db: Session, *, tenant_id: str, inventory_item_id: str, changed_at: datetime) -> PendingOrderLine | None:
    """Most recent parked line for the item ordered shortly before (or just after) ``changed_at``."""
    changed_at = as_utc(changed_at)
    start = changed_at - timedelta(minutes=settings.pending_order_lookback_minutes)
    end = changed_at + timedelta(minutes=settings.pending_order_lookahead_minutes)
    return db.execute(
        select(PendingOrderLine)
        .where(
            PendingOrderLine.tenant_id == tenant_id,
            PendingOrderLine.inventory_item_id.in_(id_spellings(inventory_item_id, INVENTORY_ITEM)),
            PendingOrderLine.ordered_at >= start,
            PendingOrderLine.ordered_at <= end,
        )
        .order_by(PendingOrderLine.ordered_at.desc())
        .limit(1)
    ).scalars().first()


def release_line(db: Session, line: PendingOrderLine) -> None:
    db.delete(line)
    db.commit()
