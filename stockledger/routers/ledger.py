from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from stockledger.core.activities import normalize_activity
from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.errors import PlatformError
from stockledger.core.id_utils import ADJUSTMENT_GROUP, INVENTORY_ITEM, LOCATION, PRODUCT_VARIANT, to_gid
from stockledger.core.security import get_current_tenant
from stockledger.schemas.common import PaginationMeta
from stockledger.schemas.ledger import (
    LedgerBatchIn,
    LedgerBatchOut,
    LedgerEntryIn,
    LedgerEntryOut,
    LedgerListOut,
    LedgerWriteOut,
)
from stockledger.services import ledger_writer
from stockledger.services.calendar_service import local_calendar_date
from stockledger.services.delta_calculator import compute_delta
from stockledger.services.idempotency import as_utc, derive_key
from stockledger.services.inventory_platform import InventoryPlatform, get_platform
from stockledger.services.ledger_store import LedgerEntryDraft, list_entries, previous_quantity_after

router = APIRouter(prefix="/ledger", tags=["ledger"])


def _draft_from_payload(
    db: Session,
    *,
    tenant_id: str,
    tz_name: str | None,
    entry: LedgerEntryIn,
) -> LedgerEntryDraft:
    item_id = to_gid(entry.inventory_item_id, INVENTORY_ITEM)
    location_id = to_gid(entry.location_id, LOCATION)
    group_id = to_gid(entry.adjustment_group_id, ADJUSTMENT_GROUP) or None
    timestamp = as_utc(entry.timestamp) if entry.timestamp else datetime.now(timezone.utc)

    delta = entry.delta
    if delta is None and entry.quantity_after is not None:
        previous = previous_quantity_after(db, tenant_id=tenant_id, inventory_item_id=item_id, location_id=location_id)
        delta = compute_delta(previous, entry.quantity_after, None, -1)

    return LedgerEntryDraft(
        tenant_id=tenant_id,
        timestamp=timestamp,
        calendar_date=local_calendar_date(timestamp, tz_name),
        inventory_item_id=item_id,
        location_id=location_id,
        activity=entry.activity,
        idempotency_key=derive_key(
            tenant_id,
            entry.activity,
            item_id,
            location_id,
            entry.source_id,
            group_id,
            timestamp,
        ),
        variant_id=to_gid(entry.variant_id, PRODUCT_VARIANT) or None,
        sku=entry.sku or "",
        location_name=entry.location_name or "",
        delta=delta,
        quantity_after=entry.quantity_after,
        source_type=entry.activity,
        source_id=entry.source_id,
        adjustment_group_id=group_id,
        note=entry.note,
    )


@router.post(
    "/entries",
    response_model=LedgerBatchOut,
    summary="Record stock changes already applied by a client",
    responses=error_responses(400, 401, 422, 500),
)
def log_entries(
    payload: LedgerBatchIn,
    db: Session = Depends(get_db),
    platform: InventoryPlatform = Depends(get_platform),
    tenant_id: str = Depends(get_current_tenant),
):
    try:
        tz_name = platform.shop_timezone(tenant_id)
    except PlatformError:
        tz_name = None
    results = []
    for entry in payload.entries:
        draft = _draft_from_payload(db, tenant_id=tenant_id, tz_name=tz_name, entry=entry)
        results.append(ledger_writer.write(db, draft))

    return LedgerBatchOut(
        ok=all(result.ok for result in results),
        results=[
            LedgerWriteOut(outcome=result.outcome, entry_id=result.entry_id, error=result.error)
            for result in results
        ],
    )


@router.get(
    "",
    response_model=LedgerListOut,
    summary="List stock change history",
    responses=error_responses(400, 401, 422, 500),
)
def list_ledger(
    inventory_item_id: str | None = Query(default=None, description="Any spelling of the item id"),
    location_id: str | None = Query(default=None, description="Any spelling of the location id"),
    activity: str | None = Query(default=None),
    start: datetime | None = Query(default=None, description="Earliest event time"),
    end: datetime | None = Query(default=None, description="Latest event time"),
    start_date: date | None = Query(default=None, description="Earliest shop-local calendar date"),
    end_date: date | None = Query(default=None, description="Latest shop-local calendar date"),
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_current_tenant),
):
    try:
        normalized_activity = normalize_activity(activity)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if start and end and as_utc(start) > as_utc(end):
        raise HTTPException(status_code=400, detail="start must be before end")
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be before end_date")

    total, rows = list_entries(
        db,
        tenant_id=tenant_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        activity=normalized_activity,
        start=start,
        end=end,
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
        limit=limit,
        offset=offset,
    )
    items = [LedgerEntryOut.model_validate(row) for row in rows]
    count = len(items)
    return LedgerListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )
