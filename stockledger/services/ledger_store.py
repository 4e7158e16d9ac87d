from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.core.id_utils import INVENTORY_ITEM, LOCATION, generate_shortuuid, id_spellings
from stockledger.models.inventory_change import InventoryChangeLog
from stockledger.services.idempotency import as_utc


@dataclass(frozen=True)
class LedgerEntryDraft:
    """An observed change on its way into the ledger.

    ``observed_magnitude`` and ``sign`` describe the change as the source
    reported it; they let the writer re-derive ``delta`` against a different
    baseline when the entry ends up upgrading an earlier provisional row.
    Drafts whose ``delta`` is exact (direct actions) leave them unset.
    """
    tenant_id: str
    timestamp: datetime
    calendar_date: str
    inventory_item_id: str
    location_id: str
    activity: str
    idempotency_key: str
    variant_id: str | None = None
    sku: str = ""
    location_name: str = ""
    delta: int | None = None
    quantity_after: int | None = None
    observed_magnitude: int | None = None
    sign: int = -1
    source_type: str | None = None
    source_id: str | None = None
    adjustment_group_id: str | None = None
    note: str | None = None


def _item_location_filters(*, tenant_id: str, inventory_item_id: str, location_id: str) -> list:
    return [
        InventoryChangeLog.tenant_id == tenant_id,
        InventoryChangeLog.inventory_item_id.in_(id_spellings(inventory_item_id, INVENTORY_ITEM)),
        InventoryChangeLog.location_id.in_(id_spellings(location_id, LOCATION)),
    ]


def get_by_idempotency_key(db: Session, *, tenant_id: str, idempotency_key: str) -> InventoryChangeLog | None:
    return db.execute(
        select(InventoryChangeLog).where(
            InventoryChangeLog.tenant_id == tenant_id,
            InventoryChangeLog.idempotency_key == idempotency_key,
        )
    ).scalar_one_or_none()


def latest_entry(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    at_or_before: datetime | None = None,
    exclude_id: str | None = None,
) -> InventoryChangeLog | None:
    stmt = select(InventoryChangeLog).where(
        *_item_location_filters(
            tenant_id=tenant_id,
            inventory_item_id=inventory_item_id,
            location_id=location_id,
        )
    )
    if at_or_before is not None:
        stmt = stmt.where(InventoryChangeLog.timestamp <= as_utc(at_or_before))
    if exclude_id is not None:
        stmt = stmt.where(InventoryChangeLog.id != exclude_id)
    stmt = stmt.order_by(InventoryChangeLog.timestamp.desc(), InventoryChangeLog.created_at.desc()).limit(1)
    return db.execute(stmt).scalars().first()


def previous_quantity_after(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    at_or_before: datetime | None = None,
    exclude_id: str | None = None,
) -> int | None:
    previous = latest_entry(
        db,
        tenant_id=tenant_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        at_or_before=at_or_before,
        exclude_id=exclude_id,
    )
    return previous.quantity_after if previous else None


def find_in_window(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    start: datetime,
    end: datetime,
    activities: frozenset[str] | set[str],
) -> InventoryChangeLog | None:
    """Most recent entry of one of ``activities`` with ``start <= timestamp <= end``."""
    stmt = (
        select(InventoryChangeLog)
        .where(
            *_item_location_filters(
                tenant_id=tenant_id,
                inventory_item_id=inventory_item_id,
                location_id=location_id,
            ),
            InventoryChangeLog.activity.in_(sorted(activities)),
            InventoryChangeLog.timestamp >= as_utc(start),
            InventoryChangeLog.timestamp <= as_utc(end),
        )
        .order_by(InventoryChangeLog.timestamp.desc(), InventoryChangeLog.created_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def insert_entry(db: Session, draft: LedgerEntryDraft) -> InventoryChangeLog:
    entry = InventoryChangeLog(
        id=generate_shortuuid(),
        tenant_id=draft.tenant_id,
        timestamp=as_utc(draft.timestamp),
        calendar_date=draft.calendar_date,
        inventory_item_id=draft.inventory_item_id,
        variant_id=draft.variant_id,
        sku=draft.sku or "",
        location_id=draft.location_id,
        location_name=draft.location_name or draft.location_id,
        activity=draft.activity,
        delta=draft.delta,
        quantity_after=draft.quantity_after,
        source_type=draft.source_type or draft.activity,
        source_id=draft.source_id,
        adjustment_group_id=draft.adjustment_group_id,
        idempotency_key=draft.idempotency_key,
        note=draft.note,
    )
    db.add(entry)
    return entry


def list_entries(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str | None = None,
    location_id: str | None = None,
    activity: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[InventoryChangeLog]]:
    filters = [InventoryChangeLog.tenant_id == tenant_id]
    if inventory_item_id:
        filters.append(InventoryChangeLog.inventory_item_id.in_(id_spellings(inventory_item_id, INVENTORY_ITEM)))
    if location_id:
        filters.append(InventoryChangeLog.location_id.in_(id_spellings(location_id, LOCATION)))
    if activity:
        filters.append(InventoryChangeLog.activity == activity)
    if start:
        filters.append(InventoryChangeLog.timestamp >= as_utc(start))
    if end:
        filters.append(InventoryChangeLog.timestamp <= as_utc(end))
    if start_date:
        filters.append(InventoryChangeLog.calendar_date >= start_date)
    if end_date:
        filters.append(InventoryChangeLog.calendar_date <= end_date)

    total = int(db.execute(select(func.count(InventoryChangeLog.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(InventoryChangeLog)
        .where(*filters)
        .order_by(InventoryChangeLog.timestamp.desc(), InventoryChangeLog.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return total, list(rows)
