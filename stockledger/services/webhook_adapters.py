"""Translate platform webhook payloads into ledger drafts.

Each adapter works line by line: a line whose lookups fail is skipped and
logged, the rest of the event is still recorded. Structural problems with
the event itself raise :class:`ValidationError` so the transport can reject
the delivery.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from stockledger.core.activities import GENERIC_WEBHOOK, ORDER_SALES, REFUND
from stockledger.core.errors import LookupFailure, ValidationError
from stockledger.core.id_utils import (
    ADJUSTMENT_GROUP,
    INVENTORY_ITEM,
    LOCATION,
    PRODUCT_VARIANT,
    to_gid,
    to_raw_id,
)
from stockledger.core.observability import log_event
from stockledger.services import ledger_writer, pending_orders
from stockledger.services.calendar_service import local_calendar_date
from stockledger.services.delta_calculator import compute_delta
from stockledger.services.idempotency import as_utc, derive_key
from stockledger.services.inventory_platform import InventoryPlatform, ItemInfo
from stockledger.services.ledger_store import LedgerEntryDraft, previous_quantity_after

logger = logging.getLogger("stockledger.webhooks")

ORDERS_UPDATED = "orders/updated"
ORDERS_FULFILLED = "orders/fulfilled"
REFUNDS_CREATE = "refunds/create"
INVENTORY_LEVELS_UPDATE = "inventory_levels/update"

_TOPICS = {
    re.sub(r"[^a-z0-9]", "", topic): topic
    for topic in (ORDERS_UPDATED, ORDERS_FULFILLED, REFUNDS_CREATE, INVENTORY_LEVELS_UPDATE)
}

_COUNTED_FULFILLMENT_STATUSES = {"success", "open"}


def normalize_topic(value: str | None) -> str | None:
    """``ORDERS_UPDATED``, ``orders/updated`` and ``Orders-Updated`` are one topic."""
    if not value:
        return None
    return _TOPICS.get(re.sub(r"[^a-z0-9]", "", value.lower()))


@dataclass
class WebhookReport:
    topic: str
    results: list[ledger_writer.WriteResult] = field(default_factory=list)
    skipped: int = 0
    pending: int = 0

    def counts(self) -> dict[str, int]:
        counts = ledger_writer.summarize(self.results)
        counts["skipped"] = self.skipped
        counts["pending"] = self.pending
        return counts


class _TenantLookups:
    """Per-event cache of tenant-level lookups; failures surface on the line that needs them."""

    def __init__(self, platform: InventoryPlatform, tenant_id: str) -> None:
        self.platform = platform
        self.tenant_id = tenant_id
        self._timezone_loaded = False
        self._timezone: str | None = None
        self._location_names: dict[str, str] = {}

    def calendar_date(self, instant: datetime) -> str:
        if not self._timezone_loaded:
            self._timezone = self.platform.shop_timezone(self.tenant_id)
            self._timezone_loaded = True
        return local_calendar_date(instant, self._timezone)

    def location_name(self, location_id: str) -> str:
        if location_id not in self._location_names:
            name = self.platform.location_name(self.tenant_id, location_id)
            self._location_names[location_id] = name or location_id
        return self._location_names[location_id]


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _run_line(report: WebhookReport, tenant_id: str, line_ref: str, build: Callable[[], LedgerEntryDraft | None], db: Session) -> None:
    try:
        draft = build()
    except LookupFailure as exc:
        report.skipped += 1
        log_event(
            logger,
            "webhook.line_skipped",
            level=logging.ERROR,
            topic=report.topic,
            tenant_id=tenant_id,
            line=line_ref,
            error=str(exc),
        )
        return
    if draft is None:
        report.skipped += 1
        return
    report.results.append(ledger_writer.write(db, draft))


def _stock_delta(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    quantity_after: int | None,
    magnitude: int,
    sign: int,
) -> int | None:
    previous = previous_quantity_after(
        db,
        tenant_id=tenant_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
    )
    return compute_delta(previous, quantity_after, magnitude, sign)


def _quantity_after(platform: InventoryPlatform, tenant_id: str, inventory_item_id: str, location_id: str) -> int | None:
    try:
        return platform.read_available(tenant_id, inventory_item_id, location_id)
    except LookupFailure as exc:
        log_event(
            logger,
            "webhook.quantity_unavailable",
            level=logging.WARNING,
            tenant_id=tenant_id,
            inventory_item_id=inventory_item_id,
            location_id=location_id,
            error=str(exc),
        )
        return None


def _hold_line(
    report: WebhookReport,
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    order_raw_id: str,
    order_name: str,
    variant_id: Any,
    quantity: int,
    ordered_at: datetime,
    line_ref: str,
) -> None:
    try:
        info = platform.resolve_variant(tenant_id, to_gid(variant_id, PRODUCT_VARIANT))
    except LookupFailure as exc:
        report.skipped += 1
        log_event(
            logger,
            "webhook.line_skipped",
            level=logging.ERROR,
            topic=report.topic,
            tenant_id=tenant_id,
            line=line_ref,
            error=str(exc),
        )
        return
    if info is None:
        report.skipped += 1
        return

    held = pending_orders.hold_line(
        db,
        tenant_id=tenant_id,
        order_id=order_raw_id,
        order_name=order_name,
        inventory_item_id=info.inventory_item_id,
        variant_id=info.variant_id or to_gid(variant_id, PRODUCT_VARIANT),
        sku=info.sku,
        quantity=quantity,
        ordered_at=ordered_at,
    )
    if held:
        report.pending += 1
        log_event(logger, "webhook.line_pending_location", tenant_id=tenant_id, order_id=order_raw_id, line=line_ref)


def process_order_event(
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    payload: dict[str, Any],
    topic: str = ORDERS_UPDATED,
) -> WebhookReport:
    report = WebhookReport(topic=topic)
    order_id = payload.get("id")
    if order_id is None:
        raise ValidationError("Order payload is missing id")
    if payload.get("cancelled_at"):
        log_event(logger, "webhook.order_cancelled", tenant_id=tenant_id, order_id=order_id)
        return report

    lookups = _TenantLookups(platform, tenant_id)
    order_raw_id = to_raw_id(order_id)
    order_name = payload.get("name") or order_raw_id
    order_location = payload.get("location_id")
    ordered_at = _parse_time(payload.get("created_at"))

    for fulfillment in payload.get("fulfillments") or []:
        if (fulfillment.get("status") or "").lower() not in _COUNTED_FULFILLMENT_STATUSES:
            continue
        location_id = to_gid(fulfillment.get("location_id") or order_location, LOCATION)
        fulfilled_at = _parse_time(fulfillment.get("created_at")) or datetime.now(timezone.utc)
        fulfillment_raw_id = to_raw_id(fulfillment.get("id"))

        for line_item in fulfillment.get("line_items") or []:
            quantity = _as_int(line_item.get("quantity")) or 0
            variant_id = line_item.get("variant_id")
            if quantity <= 0 or not variant_id:
                continue
            line_raw_id = to_raw_id(line_item.get("id"))
            if not location_id:
                _hold_line(
                    report,
                    db,
                    platform,
                    tenant_id=tenant_id,
                    order_raw_id=order_raw_id,
                    order_name=order_name,
                    variant_id=variant_id,
                    quantity=quantity,
                    ordered_at=ordered_at or fulfilled_at,
                    line_ref=f"fulfillment_{fulfillment_raw_id}:line_item_{line_raw_id}",
                )
                continue

            def build(variant_id=variant_id, quantity=quantity, line_raw_id=line_raw_id) -> LedgerEntryDraft | None:
                info = platform.resolve_variant(tenant_id, to_gid(variant_id, PRODUCT_VARIANT))
                if info is None:
                    return None
                quantity_after = _quantity_after(platform, tenant_id, info.inventory_item_id, location_id)
                return LedgerEntryDraft(
                    tenant_id=tenant_id,
                    timestamp=fulfilled_at,
                    calendar_date=lookups.calendar_date(fulfilled_at),
                    inventory_item_id=to_gid(info.inventory_item_id, INVENTORY_ITEM),
                    location_id=location_id,
                    activity=ORDER_SALES,
                    idempotency_key=derive_key(
                        tenant_id,
                        ORDER_SALES,
                        to_gid(info.inventory_item_id, INVENTORY_ITEM),
                        location_id,
                        f"order_{order_raw_id}",
                        f"fulfillment_{fulfillment_raw_id}:line_item_{line_raw_id}",
                        fulfilled_at,
                    ),
                    variant_id=info.variant_id or to_gid(variant_id, PRODUCT_VARIANT),
                    sku=info.sku or line_item.get("sku") or "",
                    location_name=lookups.location_name(location_id),
                    delta=_stock_delta(
                        db,
                        tenant_id=tenant_id,
                        inventory_item_id=info.inventory_item_id,
                        location_id=location_id,
                        quantity_after=quantity_after,
                        magnitude=quantity,
                        sign=-1,
                    ),
                    quantity_after=quantity_after,
                    observed_magnitude=quantity,
                    sign=-1,
                    source_type=ORDER_SALES,
                    source_id=f"order_{order_raw_id}",
                    note=f"Order {order_name}",
                )

            _run_line(report, tenant_id, f"fulfillment_{fulfillment_raw_id}:line_item_{line_raw_id}", build, db)

    return report


def _refund_item(platform: InventoryPlatform, tenant_id: str, order_id: Any, refund_line: dict[str, Any]) -> ItemInfo | None:
    line_item = refund_line.get("line_item") or {}
    variant_id = line_item.get("variant_id")
    if variant_id:
        info = platform.resolve_variant(tenant_id, to_gid(variant_id, PRODUCT_VARIANT))
        if info is not None:
            return info
    line_item_id = refund_line.get("line_item_id") or line_item.get("id")
    if order_id is None or not line_item_id:
        return None
    return platform.resolve_order_line(tenant_id, str(order_id), str(line_item_id))


def process_refund_event(
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    payload: dict[str, Any],
    topic: str = REFUNDS_CREATE,
) -> WebhookReport:
    report = WebhookReport(topic=topic)
    refund_id = payload.get("id")
    if refund_id is None:
        raise ValidationError("Refund payload is missing id")

    lookups = _TenantLookups(platform, tenant_id)
    order_id = payload.get("order_id")
    order_raw_id = to_raw_id(order_id)
    refund_raw_id = to_raw_id(refund_id)
    refunded_at = _parse_time(payload.get("created_at")) or datetime.now(timezone.utc)

    for refund_line in payload.get("refund_line_items") or []:
        quantity = _as_int(refund_line.get("quantity")) or 0
        location_id = to_gid(refund_line.get("location_id"), LOCATION)
        if refund_line.get("restock_type") == "no_restock" or not location_id or quantity <= 0:
            continue
        line_raw_id = to_raw_id(refund_line.get("line_item_id") or refund_line.get("id"))

        def build(refund_line=refund_line, quantity=quantity, location_id=location_id, line_raw_id=line_raw_id) -> LedgerEntryDraft | None:
            info = _refund_item(platform, tenant_id, order_id, refund_line)
            if info is None:
                return None
            item_id = to_gid(info.inventory_item_id, INVENTORY_ITEM)
            quantity_after = _quantity_after(platform, tenant_id, item_id, location_id)
            return LedgerEntryDraft(
                tenant_id=tenant_id,
                timestamp=refunded_at,
                calendar_date=lookups.calendar_date(refunded_at),
                inventory_item_id=item_id,
                location_id=location_id,
                activity=REFUND,
                idempotency_key=derive_key(
                    tenant_id,
                    REFUND,
                    item_id,
                    location_id,
                    f"order_{order_raw_id}",
                    f"refund_{refund_raw_id}:line_item_{line_raw_id}",
                    refunded_at,
                ),
                variant_id=info.variant_id,
                sku=info.sku,
                location_name=lookups.location_name(location_id),
                delta=_stock_delta(
                    db,
                    tenant_id=tenant_id,
                    inventory_item_id=item_id,
                    location_id=location_id,
                    quantity_after=quantity_after,
                    magnitude=quantity,
                    sign=1,
                ),
                quantity_after=quantity_after,
                observed_magnitude=quantity,
                sign=1,
                source_type=REFUND,
                source_id=f"order_{order_raw_id}",
                note=f"Refund for order #{order_raw_id}",
            )

        _run_line(report, tenant_id, f"refund_{refund_raw_id}:line_item_{line_raw_id}", build, db)

    return report


def _group_delta(
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    group_id: str,
    inventory_item_id: str,
    location_id: str,
) -> int | None:
    try:
        return platform.adjustment_group_delta(tenant_id, group_id, inventory_item_id, location_id)
    except LookupFailure as exc:
        log_event(
            logger,
            "webhook.group_delta_unavailable",
            level=logging.WARNING,
            tenant_id=tenant_id,
            adjustment_group_id=group_id,
            error=str(exc),
        )
        return None


def process_inventory_level_event(
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    payload: dict[str, Any],
    topic: str = INVENTORY_LEVELS_UPDATE,
) -> WebhookReport:
    """Record a bare level change as a provisional row for a later authoritative event to claim.

    A parked order line for the same item claims the change instead, and it is
    recorded as that order's sale.
    """
    report = WebhookReport(topic=topic)
    item_id = to_gid(payload.get("inventory_item_id"), INVENTORY_ITEM)
    location_id = to_gid(payload.get("location_id"), LOCATION)
    if not item_id or not location_id:
        raise ValidationError("inventory_item_id and location_id are required")

    available = _as_int(payload.get("available"))
    updated_at = _parse_time(payload.get("updated_at")) or datetime.now(timezone.utc)
    group_id = to_gid(payload.get("inventory_adjustment_group_id"), ADJUSTMENT_GROUP) or None
    lookups = _TenantLookups(platform, tenant_id)
    held = pending_orders.find_line(db, tenant_id=tenant_id, inventory_item_id=item_id, changed_at=updated_at)

    def build() -> LedgerEntryDraft | None:
        previous = previous_quantity_after(
            db,
            tenant_id=tenant_id,
            inventory_item_id=item_id,
            location_id=location_id,
        )
        if previous is not None and available is not None:
            delta = available - previous
        elif group_id:
            delta = _group_delta(
                platform,
                tenant_id=tenant_id,
                group_id=group_id,
                inventory_item_id=item_id,
                location_id=location_id,
            )
        else:
            delta = None
        if delta == 0:
            return None

        if held is not None:
            activity, source_id = ORDER_SALES, f"order_{held.order_id}"
            note = f"Order {held.order_name or held.order_id}"
            variant_id, sku = held.variant_id, held.sku
            if delta is None:
                delta = -abs(held.quantity)
        else:
            activity, source_id, note = GENERIC_WEBHOOK, None, None
            info = platform.resolve_inventory_item(tenant_id, item_id)
            variant_id, sku = (info.variant_id, info.sku) if info else (None, "")

        return LedgerEntryDraft(
            tenant_id=tenant_id,
            timestamp=updated_at,
            calendar_date=lookups.calendar_date(updated_at),
            inventory_item_id=item_id,
            location_id=location_id,
            activity=activity,
            idempotency_key=derive_key(tenant_id, activity, item_id, location_id, source_id, None, updated_at),
            variant_id=variant_id,
            sku=sku,
            location_name=lookups.location_name(location_id),
            delta=delta,
            quantity_after=available,
            observed_magnitude=held.quantity if held is not None else None,
            sign=-1,
            source_type=activity,
            source_id=source_id,
            adjustment_group_id=group_id,
            note=note,
        )

    _run_line(report, tenant_id, f"{item_id}@{location_id}", build, db)
    if held is not None and report.results and report.results[-1].ok:
        pending_orders.release_line(db, held)
    return report


_ADAPTERS = {
    ORDERS_UPDATED: process_order_event,
    ORDERS_FULFILLED: process_order_event,
    REFUNDS_CREATE: process_refund_event,
    INVENTORY_LEVELS_UPDATE: process_inventory_level_event,
}


def dispatch(
    db: Session,
    platform: InventoryPlatform,
    *,
    topic: str,
    tenant_id: str,
    payload: dict[str, Any],
) -> WebhookReport:
    adapter = _ADAPTERS.get(topic)
    if adapter is None:
        raise ValidationError(f"Unsupported webhook topic '{topic}'")
    report = adapter(db, platform, tenant_id=tenant_id, payload=payload, topic=topic)
    log_event(logger, "webhook.processed", topic=topic, tenant_id=tenant_id, **report.counts())
    return report
