"""Single entry point into the ledger.

Every signal, from a webhook or a direct action, ends up in :func:`write`.
The unique ``(tenant_id, idempotency_key)`` constraint is the only lock; a
concurrent writer that loses the insert race resolves to ``deduplicated``.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.activities import is_provisional
from stockledger.core.errors import LedgerWriteError
from stockledger.core.observability import log_event
from stockledger.models.inventory_change import InventoryChangeLog
from stockledger.services.ledger_store import LedgerEntryDraft, get_by_idempotency_key, insert_entry
from stockledger.services.reconciliation import (
    apply_upgrade,
    find_provisional_duplicate,
    find_recorded_counterpart,
    find_upgrade_candidate,
)

logger = logging.getLogger("stockledger.ledger")

WRITTEN = "written"
DEDUPLICATED = "deduplicated"
UPGRADED = "upgraded"
FAILED = "failed"

OUTCOMES = (WRITTEN, DEDUPLICATED, UPGRADED, FAILED)


@dataclass(frozen=True)
class WriteResult:
    outcome: str
    entry_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != FAILED


def _absorb_provisional(db: Session, draft: LedgerEntryDraft) -> InventoryChangeLog | None:
    scope = {
        "tenant_id": draft.tenant_id,
        "inventory_item_id": draft.inventory_item_id,
        "location_id": draft.location_id,
        "provisional_at": draft.timestamp,
    }
    counterpart = find_recorded_counterpart(db, **scope)
    # A level that disagrees with the recorded one is a later, separate change.
    if counterpart is not None and counterpart.quantity_after in (None, draft.quantity_after):
        if counterpart.quantity_after is None and draft.quantity_after is not None:
            counterpart.quantity_after = draft.quantity_after
        return counterpart

    duplicate = find_provisional_duplicate(db, **scope)
    if duplicate is not None:
        if draft.quantity_after is not None:
            duplicate.quantity_after = draft.quantity_after
        return duplicate
    return None


def _decide(db: Session, draft: LedgerEntryDraft) -> tuple[str, InventoryChangeLog]:
    existing = get_by_idempotency_key(db, tenant_id=draft.tenant_id, idempotency_key=draft.idempotency_key)
    if existing is not None:
        return DEDUPLICATED, existing

    if is_provisional(draft.activity):
        absorbed = _absorb_provisional(db, draft)
        if absorbed is not None:
            return DEDUPLICATED, absorbed
    else:
        candidate = find_upgrade_candidate(
            db,
            tenant_id=draft.tenant_id,
            inventory_item_id=draft.inventory_item_id,
            location_id=draft.location_id,
            around=draft.timestamp,
        )
        if candidate is not None:
            return UPGRADED, apply_upgrade(db, candidate, draft)

    return WRITTEN, insert_entry(db, draft)


def _log_result(draft: LedgerEntryDraft, result: WriteResult) -> None:
    fields = {
        "outcome": result.outcome,
        "tenant_id": draft.tenant_id,
        "activity": draft.activity,
        "idempotency_key": draft.idempotency_key,
        "entry_id": result.entry_id,
    }
    if result.outcome == FAILED:
        log_event(logger, "ledger.write_failed", level=logging.ERROR, error=result.error, **fields)
    else:
        log_event(logger, "ledger.write", **fields)


def _failed(error: LedgerWriteError) -> WriteResult:
    return WriteResult(outcome=FAILED, error=str(error))


def write(db: Session, draft: LedgerEntryDraft) -> WriteResult:
    """Record ``draft`` and commit. Store errors come back as a ``failed`` result."""
    try:
        outcome, row = _decide(db, draft)
        db.commit()
        result = WriteResult(outcome=outcome, entry_id=row.id)
    except IntegrityError:
        db.rollback()
        existing = get_by_idempotency_key(db, tenant_id=draft.tenant_id, idempotency_key=draft.idempotency_key)
        if existing is not None:
            result = WriteResult(outcome=DEDUPLICATED, entry_id=existing.id)
        else:
            result = _failed(LedgerWriteError("Ledger entry violated a store constraint"))
    except SQLAlchemyError as exc:
        db.rollback()
        result = _failed(LedgerWriteError(str(exc)))

    _log_result(draft, result)
    return result


def summarize(results: list[WriteResult]) -> dict[str, int]:
    counts = {outcome: 0 for outcome in OUTCOMES}
    for result in results:
        counts[result.outcome] += 1
    return counts
