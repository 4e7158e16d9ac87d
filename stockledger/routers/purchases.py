from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.errors import ValidationError
from stockledger.core.security import get_current_tenant
from stockledger.models.purchase import PurchaseEntry
from stockledger.routers.adjustments import mutation_out
from stockledger.schemas.purchase import PurchaseActionOut, PurchaseCreate, PurchaseLineOut, PurchaseOut
from stockledger.services.inventory_platform import InventoryPlatform, get_platform
from stockledger.services.purchase_service import (
    cancel_purchase,
    create_purchase,
    get_purchase,
    list_purchase_items,
    receive_purchase,
)

router = APIRouter(prefix="/purchases", tags=["purchases"])


def _purchase_or_404(db: Session, *, tenant_id: str, purchase_id: str) -> PurchaseEntry:
    purchase = get_purchase(db, tenant_id=tenant_id, purchase_id=purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Purchase not found")
    return purchase


def _purchase_out(db: Session, purchase: PurchaseEntry) -> PurchaseOut:
    items = list_purchase_items(db, purchase_id=purchase.id)
    return PurchaseOut(
        id=purchase.id,
        location_id=purchase.location_id,
        status=purchase.status,
        note=purchase.note,
        adjustment_group_id=purchase.adjustment_group_id,
        received_at=purchase.received_at,
        cancelled_at=purchase.cancelled_at,
        lines=[
            PurchaseLineOut(
                inventory_item_id=item.inventory_item_id,
                variant_id=item.variant_id,
                sku=item.sku,
                quantity=item.quantity,
            )
            for item in items
        ],
    )


@router.post(
    "",
    response_model=PurchaseOut,
    summary="Create a pending purchase",
    responses=error_responses(400, 401, 422, 500, path="/purchases"),
)
def create_purchase_entry(
    payload: PurchaseCreate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_current_tenant),
):
    try:
        purchase = create_purchase(
            db,
            tenant_id=tenant_id,
            location_id=payload.location_id,
            lines=[line.model_dump() for line in payload.lines],
            note=payload.note,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    db.refresh(purchase)
    return _purchase_out(db, purchase)


@router.get(
    "/{purchase_id}",
    response_model=PurchaseOut,
    summary="Get a purchase",
    responses=error_responses(401, 404, 422, 500, path="/purchases/{purchase_id}"),
)
def get_purchase_entry(
    purchase_id: str,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_current_tenant),
):
    return _purchase_out(db, _purchase_or_404(db, tenant_id=tenant_id, purchase_id=purchase_id))


@router.post(
    "/{purchase_id}/receive",
    response_model=PurchaseActionOut,
    summary="Receive a purchase into stock",
    responses=error_responses(400, 401, 404, 422, 500, path="/purchases/{purchase_id}/receive"),
)
def receive_purchase_entry(
    purchase_id: str,
    db: Session = Depends(get_db),
    platform: InventoryPlatform = Depends(get_platform),
    tenant_id: str = Depends(get_current_tenant),
):
    purchase = _purchase_or_404(db, tenant_id=tenant_id, purchase_id=purchase_id)
    try:
        result = receive_purchase(db, platform, tenant_id=tenant_id, purchase=purchase)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    out = mutation_out(result)
    return PurchaseActionOut(**out.model_dump(), purchase=_purchase_out(db, purchase))


@router.post(
    "/{purchase_id}/cancel",
    response_model=PurchaseActionOut,
    summary="Cancel a purchase, removing received stock",
    responses=error_responses(400, 401, 404, 422, 500, path="/purchases/{purchase_id}/cancel"),
)
def cancel_purchase_entry(
    purchase_id: str,
    db: Session = Depends(get_db),
    platform: InventoryPlatform = Depends(get_platform),
    tenant_id: str = Depends(get_current_tenant),
):
    purchase = _purchase_or_404(db, tenant_id=tenant_id, purchase_id=purchase_id)
    try:
        result = cancel_purchase(db, platform, tenant_id=tenant_id, purchase=purchase)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    out = mutation_out(result)
    return PurchaseActionOut(**out.model_dump(), purchase=_purchase_out(db, purchase))
