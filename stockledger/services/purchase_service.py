from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.activities import PURCHASE_CANCEL, PURCHASE_RECEIVE
from stockledger.core.errors import ValidationError
from stockledger.core.id_utils import INVENTORY_ITEM, LOCATION, PRODUCT_VARIANT, generate_shortuuid, to_gid
from stockledger.models.purchase import PurchaseEntry, PurchaseEntryItem
from stockledger.services import inventory_mutation
from stockledger.services.inventory_mutation import LineChange, MutationResult
from stockledger.services.inventory_platform import InventoryPlatform

PENDING = "pending"
RECEIVED = "received"
CANCELLED = "cancelled"


def get_purchase(db: Session, *, tenant_id: str, purchase_id: str) -> PurchaseEntry | None:
    return db.execute(
        select(PurchaseEntry).where(PurchaseEntry.id == purchase_id, PurchaseEntry.tenant_id == tenant_id)
    ).scalar_one_or_none()


def list_purchase_items(db: Session, *, purchase_id: str) -> list[PurchaseEntryItem]:
    return list(
        db.execute(
            select(PurchaseEntryItem)
            .where(PurchaseEntryItem.purchase_entry_id == purchase_id)
            .order_by(PurchaseEntryItem.inventory_item_id.asc())
        ).scalars().all()
    )


def create_purchase(
    db: Session,
    *,
    tenant_id: str,
    location_id: str,
    lines: list[dict],
    note: str | None = None,
) -> PurchaseEntry:
    """Persist a pending purchase. Lines with a non-positive quantity are dropped."""
    location_gid = to_gid(location_id, LOCATION)
    if not location_gid:
        raise ValidationError("location_id is required")

    kept = [line for line in lines if int(line.get("quantity") or 0) > 0 and line.get("inventory_item_id")]
    if not kept:
        raise ValidationError("At least one line with a positive quantity is required")

    purchase = PurchaseEntry(
        id=generate_shortuuid(),
        tenant_id=tenant_id,
        location_id=location_gid,
        status=PENDING,
        note=note,
    )
    db.add(purchase)
    db.flush()
    for line in kept:
        db.add(
            PurchaseEntryItem(
                id=generate_shortuuid(),
                purchase_entry_id=purchase.id,
                inventory_item_id=to_gid(line["inventory_item_id"], INVENTORY_ITEM),
                variant_id=to_gid(line.get("variant_id"), PRODUCT_VARIANT) or None,
                sku=line.get("sku"),
                quantity=int(line["quantity"]),
            )
        )
    return purchase


def _line_changes(items: list[PurchaseEntryItem], sign: int) -> list[LineChange]:
    return [
        LineChange(
            inventory_item_id=item.inventory_item_id,
            quantity=sign * item.quantity,
            variant_id=item.variant_id,
            sku=item.sku,
        )
        for item in items
    ]


def receive_purchase(
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    purchase: PurchaseEntry,
) -> MutationResult:
    if purchase.status == RECEIVED:
        return MutationResult(ok=True, adjustment_group_id=purchase.adjustment_group_id)
    if purchase.status == CANCELLED:
        raise ValidationError("Cancelled purchase cannot be received")

    result = inventory_mutation.apply(
        db,
        platform,
        tenant_id=tenant_id,
        location_id=purchase.location_id,
        line_changes=_line_changes(list_purchase_items(db, purchase_id=purchase.id), 1),
        activity=PURCHASE_RECEIVE,
        source_id=purchase.id,
        note=purchase.note,
    )
    if result.ok:
        purchase.status = RECEIVED
        purchase.received_at = datetime.now(timezone.utc)
        purchase.adjustment_group_id = result.adjustment_group_id
        db.commit()
    return result


def cancel_purchase(
    db: Session,
    platform: InventoryPlatform,
    *,
    tenant_id: str,
    purchase: PurchaseEntry,
) -> MutationResult:
    """Undo a purchase. Only a received purchase touches stock; repeated calls are no-ops."""
    if purchase.status == CANCELLED:
        return MutationResult(ok=True)

    if purchase.status == PENDING:
        purchase.status = CANCELLED
        purchase.cancelled_at = datetime.now(timezone.utc)
        db.commit()
        return MutationResult(ok=True)

    result = inventory_mutation.apply(
        db,
        platform,
        tenant_id=tenant_id,
        location_id=purchase.location_id,
        line_changes=_line_changes(list_purchase_items(db, purchase_id=purchase.id), -1),
        activity=PURCHASE_CANCEL,
        source_id=purchase.id,
        note=purchase.note,
    )
    if result.ok:
        purchase.status = CANCELLED
        purchase.cancelled_at = datetime.now(timezone.utc)
        db.commit()
    return result
