from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockledger.core.activities import DIRECT_ACTION_ACTIVITIES, MANUAL_ADJUSTMENT, normalize_activity
from stockledger.schemas.common import LedgerCountsOut


class AdjustmentLineIn(BaseModel):
    inventory_item_id: str = Field(min_length=1, max_length=120)
    quantity: int = Field(description="Signed change; zero lines are ignored.")
    variant_id: str | None = Field(default=None, max_length=120)
    sku: str | None = Field(default=None, max_length=255)


class InventoryAdjustmentIn(BaseModel):
    location_id: str | None = Field(default=None, max_length=120)
    activity: str = MANUAL_ADJUSTMENT
    source_id: str | None = Field(default=None, max_length=255)
    note: str | None = Field(default=None, max_length=500)
    lines: list[AdjustmentLineIn] = Field(default_factory=list, max_length=250)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "location_id": "gid://shopify/Location/2001",
                "activity": "loss_entry",
                "source_id": "loss-7",
                "note": "Damaged in storage",
                "lines": [{"inventory_item_id": "gid://shopify/InventoryItem/1001", "quantity": -2}],
            }
        }
    )

    @field_validator("activity")
    @classmethod
    def validate_activity(cls, value: str) -> str:
        normalized = normalize_activity(value) or MANUAL_ADJUSTMENT
        if normalized not in DIRECT_ACTION_ACTIVITIES:
            allowed = ", ".join(sorted(DIRECT_ACTION_ACTIVITIES))
            raise ValueError(f"Activity cannot be applied directly. Allowed: {allowed}")
        return normalized


class MutationOut(BaseModel):
    ok: bool
    adjustment_group_id: str | None = None
    ledger: LedgerCountsOut = Field(default_factory=LedgerCountsOut)
