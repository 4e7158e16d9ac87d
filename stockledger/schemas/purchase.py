from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from stockledger.schemas.adjustment import MutationOut


class PurchaseLineIn(BaseModel):
    inventory_item_id: str = Field(min_length=1, max_length=120)
    quantity: int = Field(gt=0)
    variant_id: str | None = Field(default=None, max_length=120)
    sku: str | None = Field(default=None, max_length=255)


class PurchaseCreate(BaseModel):
    location_id: str = Field(min_length=1, max_length=120)
    note: str | None = Field(default=None, max_length=255)
    lines: list[PurchaseLineIn] = Field(min_length=1, max_length=250)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "location_id": "gid://shopify/Location/2001",
                "note": "Supplier delivery #88",
                "lines": [{"inventory_item_id": "gid://shopify/InventoryItem/1001", "quantity": 12}],
            }
        }
    )


class PurchaseLineOut(BaseModel):
    inventory_item_id: str
    variant_id: str | None = None
    sku: str | None = None
    quantity: int


class PurchaseOut(BaseModel):
    id: str
    location_id: str
    status: str
    note: str | None = None
    adjustment_group_id: str | None = None
    received_at: datetime | None = None
    cancelled_at: datetime | None = None
    lines: list[PurchaseLineOut]


class PurchaseActionOut(MutationOut):
    purchase: PurchaseOut
