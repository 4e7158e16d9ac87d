import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from stockledger.core.activities import (
    COUNT_CORRECTION,
    DIRECT_ACTION_ACTIVITIES,
    LOSS_ENTRY,
    PURCHASE_RECEIVE,
    TRANSFER_RECEIVE,
    TRANSFER_SHIP,
)
from stockledger.core.errors import ExternalMutationError, PlatformError, ValidationError
from stockledger.core.id_utils import INVENTORY_ITEM, LOCATION, PRODUCT_VARIANT, to_gid
from stockledger.core.observability import log_event
from stockledger.services import ledger_writer
from stockledger.services.calendar_service import local_calendar_date
from stockledger.services.idempotency import derive_key
from stockledger.services.inventory_platform import AdjustmentChange, InventoryPlatform
from stockledger.services.ledger_store import LedgerEntryDraft

logger = logging.getLogger("stockledger.mutation")

T = TypeVar("T")

_PLATFORM_REASONS = {
    PURCHASE_RECEIVE: "received",
    TRANSFER_RECEIVE: "movement_received",
    TRANSFER_SHIP: "movement_created",
    LOSS_ENTRY: "shrinkage",
    COUNT_CORRECTION: "cycle_count_available",
}


@dataclass(frozen=True)
class LineChange:
    inventory_item_id: str
    quantity: int
    variant_id: str | None = None
    sku: str | None = None


@dataclass
class MutationResult:
    ok: bool
    error: str | None = None
    adjustment_group_id: str | None = None
    ledger: list[ledger_writer.WriteResult] = field(default_factory=list)

    @property
    def ledger_counts(self) -> dict[str, int]:
        return ledger_writer.summarize(self.ledger)


def normalize_line_changes(line_changes: list[LineChange]) -> list[LineChange]:
    """Canonical ids, duplicate items merged, zero-quantity lines dropped; input order kept."""
    merged: dict[str, LineChange] = {}
    for line in line_changes:
        item_id = to_gid(line.inventory_item_id, INVENTORY_ITEM)
        if not item_id:
            continue
        current = merged.get(item_id)
        if current is None:
            merged[item_id] = LineChange(
                inventory_item_id=item_id,
                quantity=int(line.quantity),
                variant_id=to_gid(line.variant_id, PRODUCT_VARIANT) or None,
                sku=line.sku,
            )
        else:
            merged[item_id] = LineChange(
                inventory_item_id=item_id,
                quantity=current.quantity + int(line.quantity),
                variant_id=current.variant_id or to_gid(line.variant_id, PRODUCT_VARIANT) or None,
                sku=current.sku or line.sku,
            )
    return [line for line in merged.values() if line.quantity != 0]


def _best_effort(lookup: Callable[[], T], *, tenant_id: str, what: str) -> T | None:
    try:
        return lookup()
    except PlatformError as exc:
        log_event(logger, "mutation.lookup_failed", level=logging.WARNING, tenant_id=tenant_id, lookup=what, error=str(exc))
        return None


def apply(
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    location_id: str | None,
    line_changes: list[LineChange],
    activity: str,
    source_id: str | None = None,
    note: str | None = None,
) -> MutationResult:
    """Change on-hand stock in one platform call, then record one ledger row per line.

    Raises :class:`ValidationError` before touching the platform. A rejected
    mutation comes back as ``ok=False`` with nothing recorded; ledger write
    failures after a successful mutation do not change ``ok``.
    """
    if activity not in DIRECT_ACTION_ACTIVITIES:
        raise ValidationError(f"Activity '{activity}' cannot be applied as a direct action")
    location_gid = to_gid(location_id, LOCATION)
    if not location_gid:
        raise ValidationError("location_id is required")
    lines = normalize_line_changes(line_changes)
    if not lines:
        raise ValidationError("At least one line with a non-zero quantity is required")

    reference = f"gid://stockledger/{activity}/{source_id}" if source_id else None
    try:
        outcome = platform.adjust(
            tenant_id,
            location_gid,
            [AdjustmentChange(inventory_item_id=line.inventory_item_id, delta=line.quantity) for line in lines],
            _PLATFORM_REASONS.get(activity, "correction"),
            reference=reference,
        )
        if not outcome.ok:
            raise ExternalMutationError(outcome.errors)
    except PlatformError as exc:
        error = ExternalMutationError([str(exc)])
        log_event(logger, "mutation.rejected", level=logging.WARNING, tenant_id=tenant_id, activity=activity, error=str(error))
        return MutationResult(ok=False, error=str(error))
    except ExternalMutationError as exc:
        log_event(logger, "mutation.rejected", level=logging.WARNING, tenant_id=tenant_id, activity=activity, error=str(exc))
        return MutationResult(ok=False, error=str(exc))

    mutated_at = datetime.now(timezone.utc)
    tz_name = _best_effort(lambda: platform.shop_timezone(tenant_id), tenant_id=tenant_id, what="shop_timezone")
    location_name = _best_effort(
        lambda: platform.location_name(tenant_id, location_gid), tenant_id=tenant_id, what="location_name"
    )
    calendar_date = local_calendar_date(mutated_at, tz_name)

    results: list[ledger_writer.WriteResult] = []
    for line in lines:
        variant_id, sku = line.variant_id, line.sku
        if not variant_id or not sku:
            info = _best_effort(
                lambda: platform.resolve_inventory_item(tenant_id, line.inventory_item_id),
                tenant_id=tenant_id,
                what="resolve_inventory_item",
            )
            if info is not None:
                variant_id = variant_id or info.variant_id
                sku = sku or info.sku
        quantity_after = _best_effort(
            lambda: platform.read_available(tenant_id, line.inventory_item_id, location_gid),
            tenant_id=tenant_id,
            what="read_available",
        )
        draft = LedgerEntryDraft(
            tenant_id=tenant_id,
            timestamp=mutated_at,
            calendar_date=calendar_date,
            inventory_item_id=line.inventory_item_id,
            location_id=location_gid,
            activity=activity,
            idempotency_key=derive_key(
                tenant_id,
                activity,
                line.inventory_item_id,
                location_gid,
                source_id,
                outcome.correlation_id,
                mutated_at,
            ),
            variant_id=variant_id,
            sku=sku or "",
            location_name=location_name or "",
            delta=line.quantity,
            quantity_after=quantity_after,
            source_type=activity,
            source_id=source_id,
            adjustment_group_id=outcome.correlation_id,
            note=note,
        )
        results.append(ledger_writer.write(db, draft))

    log_event(
        logger,
        "mutation.applied",
        tenant_id=tenant_id,
        activity=activity,
        source_id=source_id,
        adjustment_group_id=outcome.correlation_id,
        lines=len(lines),
        ledger=ledger_writer.summarize(results),
    )
    return MutationResult(ok=True, adjustment_group_id=outcome.correlation_id, ledger=results)
