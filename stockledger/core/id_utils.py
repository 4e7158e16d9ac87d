import re

import shortuuid

GID_PREFIX = "gid://shopify/"

INVENTORY_ITEM = "InventoryItem"
LOCATION = "Location"
PRODUCT_VARIANT = "ProductVariant"
ORDER = "Order"
ORDER_LINE_ITEM = "OrderLineItem"
ADJUSTMENT_GROUP = "InventoryAdjustmentGroup"


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def to_raw_id(value: str | int | None) -> str:
    """Bare id of a resource: ``gid://shopify/Location/42`` and ``42`` both give ``42``."""
    if value is None:
        return ""
    cleaned = str(value).strip()
    if cleaned.startswith("gid://"):
        tail = cleaned.rstrip("/").split("/")[-1]
        # Some ids carry a query string, e.g. ``.../InventoryItem/1?inventory_item_id=1``.
        tail = tail.split("?", 1)[0]
        return tail or cleaned
    return cleaned


def to_gid(value: str | int | None, resource: str) -> str:
    """Canonical fully-qualified form used for storage, keys and platform calls."""
    if value is None:
        return ""
    cleaned = str(value).strip()
    if not cleaned:
        return ""
    prefix = f"{GID_PREFIX}{resource}/"
    if cleaned.startswith(prefix):
        return f"{prefix}{to_raw_id(cleaned)}"
    if cleaned.isdigit():
        return f"{prefix}{cleaned}"
    match = re.search(rf"{resource}/(\d+)", cleaned)
    if match:
        return f"{prefix}{match.group(1)}"
    return cleaned


def id_spellings(value: str | int | None, resource: str) -> list[str]:
    """Every stored spelling that refers to the same resource id."""
    canonical = to_gid(value, resource)
    if not canonical:
        return []
    spellings = [canonical]
    raw = to_raw_id(canonical)
    if raw and raw not in spellings:
        spellings.append(raw)
    return spellings
