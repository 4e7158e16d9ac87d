"""Matching of two signals that describe the same physical stock change.

A provisional ``generic_webhook`` row recorded at time T describes the same
change as an authoritative event whose time lies in
``[T - lookback, T + lookahead]`` (30 and 5 minutes by default). Order and
refund events are stamped when the business object was created, which can
be well before the platform reports the level change, rarely after it.
"""
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from stockledger.core.activities import AUTHORITATIVE_ACTIVITIES, PROVISIONAL_ACTIVITIES
from stockledger.core.config import settings
from stockledger.models.inventory_change import InventoryChangeLog
from stockledger.services.delta_calculator import compute_delta
from stockledger.services.idempotency import as_utc
from stockledger.services.ledger_store import LedgerEntryDraft, find_in_window, previous_quantity_after


def _lookback() -> timedelta:
    return timedelta(minutes=settings.reconciliation_lookback_minutes)


def _lookahead() -> timedelta:
    return timedelta(minutes=settings.reconciliation_lookahead_minutes)


def find_upgrade_candidate(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    around: datetime,
) -> InventoryChangeLog | None:
    """Provisional row an authoritative event at ``around`` should upgrade in place."""
    around = as_utc(around)
    return find_in_window(
        db,
        tenant_id=tenant_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        start=around - _lookahead(),
        end=around + _lookback(),
        activities=PROVISIONAL_ACTIVITIES,
    )


def find_recorded_counterpart(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    provisional_at: datetime,
) -> InventoryChangeLog | None:
    """Authoritative row already covering a provisional signal observed at ``provisional_at``."""
    provisional_at = as_utc(provisional_at)
    return find_in_window(
        db,
        tenant_id=tenant_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        start=provisional_at - _lookback(),
        end=provisional_at + _lookahead(),
        activities=AUTHORITATIVE_ACTIVITIES,
    )


def find_provisional_duplicate(
    db: Session,
    *,
    tenant_id: str,
    inventory_item_id: str,
    location_id: str,
    provisional_at: datetime,
) -> InventoryChangeLog | None:
    """Another provisional row for the same level change, reported a few seconds apart."""
    provisional_at = as_utc(provisional_at)
    tolerance = timedelta(seconds=settings.provisional_duplicate_seconds)
    return find_in_window(
        db,
        tenant_id=tenant_id,
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        start=provisional_at - tolerance,
        end=provisional_at + tolerance,
        activities=PROVISIONAL_ACTIVITIES,
    )


def _upgraded_delta(db: Session, candidate: InventoryChangeLog, entry: LedgerEntryDraft) -> int | None:
    if entry.quantity_after is None or entry.observed_magnitude is None:
        return entry.delta
    # Baseline is whatever preceded the provisional row, never the row itself.
    baseline = previous_quantity_after(
        db,
        tenant_id=candidate.tenant_id,
        inventory_item_id=candidate.inventory_item_id,
        location_id=candidate.location_id,
        at_or_before=candidate.timestamp,
        exclude_id=candidate.id,
    )
    recomputed = compute_delta(baseline, entry.quantity_after, entry.observed_magnitude, entry.sign)
    return recomputed if recomputed is not None else entry.delta


def apply_upgrade(db: Session, candidate: InventoryChangeLog, entry: LedgerEntryDraft) -> InventoryChangeLog:
    delta = _upgraded_delta(db, candidate, entry)

    candidate.activity = entry.activity
    candidate.source_type = entry.source_type or entry.activity
    candidate.source_id = entry.source_id
    candidate.idempotency_key = entry.idempotency_key
    candidate.note = entry.note
    if delta is not None:
        candidate.delta = delta
    if entry.quantity_after is not None:
        candidate.quantity_after = entry.quantity_after

    if not candidate.variant_id and entry.variant_id:
        candidate.variant_id = entry.variant_id
    if not candidate.sku and entry.sku:
        candidate.sku = entry.sku
    if entry.location_name and candidate.location_name in {"", candidate.location_id}:
        candidate.location_name = entry.location_name
    if not candidate.adjustment_group_id and entry.adjustment_group_id:
        candidate.adjustment_group_id = entry.adjustment_group_id
    return candidate
