from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockledger.core.activities import AUTHORITATIVE_ACTIVITIES, normalize_activity
from stockledger.schemas.common import PaginationMeta


class LedgerEntryOut(BaseModel):
    id: str
    timestamp: datetime
    calendar_date: str
    inventory_item_id: str
    variant_id: str | None = None
    sku: str
    location_id: str
    location_name: str
    activity: str
    delta: int | None = None
    quantity_after: int | None = None
    source_type: str
    source_id: str | None = None
    adjustment_group_id: str | None = None
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class LedgerListOut(BaseModel):
    items: list[LedgerEntryOut]
    pagination: PaginationMeta


class LedgerEntryIn(BaseModel):
    inventory_item_id: str = Field(min_length=1, max_length=120)
    location_id: str = Field(min_length=1, max_length=120)
    activity: str
    delta: int | None = None
    quantity_after: int | None = None
    source_id: str | None = Field(default=None, max_length=255)
    adjustment_group_id: str | None = Field(default=None, max_length=255)
    timestamp: datetime | None = None
    variant_id: str | None = Field(default=None, max_length=120)
    sku: str | None = Field(default=None, max_length=255)
    location_name: str | None = Field(default=None, max_length=255)
    note: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "inventory_item_id": "gid://shopify/InventoryItem/1001",
                "location_id": "gid://shopify/Location/2001",
                "activity": "loss_entry",
                "delta": -2,
                "quantity_after": 8,
                "source_id": "loss-7",
                "adjustment_group_id": "gid://shopify/InventoryAdjustmentGroup/55",
                "note": "Damaged in storage",
            }
        }
    )

    @field_validator("activity")
    @classmethod
    def validate_activity(cls, value: str) -> str:
        normalized = normalize_activity(value)
        if normalized not in AUTHORITATIVE_ACTIVITIES:
            raise ValueError("Only authoritative activities can be logged directly")
        return normalized


class LedgerBatchIn(BaseModel):
    entries: list[LedgerEntryIn] = Field(min_length=1, max_length=250)

    @model_validator(mode="before")
    @classmethod
    def accept_single_entry(cls, data):
        if isinstance(data, dict) and "entries" not in data:
            return {"entries": [data]}
        return data


class LedgerWriteOut(BaseModel):
    outcome: str
    entry_id: str | None = None
    error: str | None = None


class LedgerBatchOut(BaseModel):
    ok: bool
    results: list[LedgerWriteOut]
