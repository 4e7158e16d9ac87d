from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.errors import ValidationError
from stockledger.core.security import get_current_tenant
from stockledger.schemas.adjustment import InventoryAdjustmentIn, MutationOut
from stockledger.schemas.common import LedgerCountsOut
from stockledger.services import inventory_mutation
from stockledger.services.inventory_mutation import LineChange, MutationResult
from stockledger.services.inventory_platform import InventoryPlatform, get_platform

router = APIRouter(prefix="/inventory-adjustments", tags=["inventory"])


def mutation_out(result: MutationResult) -> MutationOut:
    if not result.ok:
        raise HTTPException(status_code=400, detail=result.error or "Inventory mutation failed")
    return MutationOut(
        ok=True,
        adjustment_group_id=result.adjustment_group_id,
        ledger=LedgerCountsOut(**result.ledger_counts),
    )


@router.post(
    "",
    response_model=MutationOut,
    summary="Adjust on-hand stock and record the change",
    responses=error_responses(400, 401, 422, 500, path="/inventory-adjustments"),
)
def create_adjustment(
    payload: InventoryAdjustmentIn,
    db: Session = Depends(get_db),
    platform: InventoryPlatform = Depends(get_platform),
    tenant_id: str = Depends(get_current_tenant),
):
    try:
        result = inventory_mutation.apply(
            db,
            platform,
            tenant_id=tenant_id,
            location_id=payload.location_id,
            line_changes=[
                LineChange(
                    inventory_item_id=line.inventory_item_id,
                    quantity=line.quantity,
                    variant_id=line.variant_id,
                    sku=line.sku,
                )
                for line in payload.lines
            ],
            activity=payload.activity,
            source_id=payload.source_id,
            note=payload.note,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return mutation_out(result)
