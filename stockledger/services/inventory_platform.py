import itertools
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from stockledger.core.config import settings
from stockledger.core.errors import PlatformError
from stockledger.core.id_utils import (
    ADJUSTMENT_GROUP,
    INVENTORY_ITEM,
    LOCATION,
    ORDER,
    ORDER_LINE_ITEM,
    PRODUCT_VARIANT,
    to_gid,
)


@dataclass(frozen=True)
class AdjustmentChange:
    inventory_item_id: str
    delta: int


@dataclass(frozen=True)
class AdjustmentResult:
    ok: bool
    errors: list[str] = field(default_factory=list)
    correlation_id: str | None = None


@dataclass(frozen=True)
class ItemInfo:
    inventory_item_id: str
    variant_id: str | None = None
    sku: str = ""


class InventoryPlatform(Protocol):
    name: str

    def adjust(
        self,
        tenant_id: str,
        location_id: str,
        changes: list[AdjustmentChange],
        reason: str,
        *,
        reference: str | None = None,
    ) -> AdjustmentResult:
        ...

    def read_available(self, tenant_id: str, inventory_item_id: str, location_id: str) -> int | None:
        ...

    def resolve_variant(self, tenant_id: str, variant_id: str) -> ItemInfo | None:
        ...

    def resolve_inventory_item(self, tenant_id: str, inventory_item_id: str) -> ItemInfo | None:
        ...

    def resolve_order_line(self, tenant_id: str, order_id: str, line_item_id: str) -> ItemInfo | None:
        ...

    def location_name(self, tenant_id: str, location_id: str) -> str | None:
        ...

    def shop_timezone(self, tenant_id: str) -> str | None:
        ...

    def adjustment_group_delta(
        self,
        tenant_id: str,
        group_id: str,
        inventory_item_id: str,
        location_id: str,
    ) -> int | None:
        ...


class StubInventoryPlatform:
    """In-memory platform used in development and tests.

    Levels move when ``adjust`` succeeds. ``reject_next_adjust`` queues
    per-item errors for the next call and ``failing`` names lookups that
    raise :class:`PlatformError`.
    """

    name = "stub"

    def __init__(self) -> None:
        self._group_counter = itertools.count(1)
        self.reset()

    def reset(self) -> None:
        self.levels: dict[tuple[str, str, str], int] = {}
        self.variants: dict[tuple[str, str], ItemInfo] = {}
        self.items: dict[tuple[str, str], ItemInfo] = {}
        self.order_lines: dict[tuple[str, str, str], ItemInfo] = {}
        self.location_names: dict[tuple[str, str], str] = {}
        self.timezones: dict[str, str] = {}
        self.group_deltas: dict[tuple[str, str, str, str], int] = {}
        self.adjust_calls: list[dict[str, Any]] = []
        self.pending_adjust_errors: list[str] = []
        self.failing: set[str] = set()

    # configuration helpers

    def set_level(self, tenant_id: str, inventory_item_id: str, location_id: str, available: int) -> None:
        self.levels[(tenant_id, to_gid(inventory_item_id, INVENTORY_ITEM), to_gid(location_id, LOCATION))] = available

    def add_variant(self, tenant_id: str, variant_id: str, inventory_item_id: str, sku: str = "") -> ItemInfo:
        info = ItemInfo(
            inventory_item_id=to_gid(inventory_item_id, INVENTORY_ITEM),
            variant_id=to_gid(variant_id, PRODUCT_VARIANT),
            sku=sku,
        )
        self.variants[(tenant_id, info.variant_id)] = info
        self.items[(tenant_id, info.inventory_item_id)] = info
        return info

    def add_order_line(self, tenant_id: str, order_id: str, line_item_id: str, variant_id: str) -> None:
        info = self.variants[(tenant_id, to_gid(variant_id, PRODUCT_VARIANT))]
        self.order_lines[(tenant_id, to_gid(order_id, ORDER), to_gid(line_item_id, ORDER_LINE_ITEM))] = info

    def set_location_name(self, tenant_id: str, location_id: str, name: str) -> None:
        self.location_names[(tenant_id, to_gid(location_id, LOCATION))] = name

    def set_group_delta(
        self,
        tenant_id: str,
        group_id: str,
        inventory_item_id: str,
        location_id: str,
        delta: int,
    ) -> None:
        key = (
            tenant_id,
            to_gid(group_id, ADJUSTMENT_GROUP),
            to_gid(inventory_item_id, INVENTORY_ITEM),
            to_gid(location_id, LOCATION),
        )
        self.group_deltas[key] = delta

    def reject_next_adjust(self, *messages: str) -> None:
        self.pending_adjust_errors = list(messages)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise PlatformError(f"{operation} unavailable")

    # InventoryPlatform

    def adjust(
        self,
        tenant_id: str,
        location_id: str,
        changes: list[AdjustmentChange],
        reason: str,
        *,
        reference: str | None = None,
    ) -> AdjustmentResult:
        self._check("adjust")
        location_gid = to_gid(location_id, LOCATION)
        self.adjust_calls.append(
            {
                "tenant_id": tenant_id,
                "location_id": location_gid,
                "changes": list(changes),
                "reason": reason,
                "reference": reference,
            }
        )
        if self.pending_adjust_errors:
            errors, self.pending_adjust_errors = self.pending_adjust_errors, []
            return AdjustmentResult(ok=False, errors=errors)

        for change in changes:
            key = (tenant_id, to_gid(change.inventory_item_id, INVENTORY_ITEM), location_gid)
            self.levels[key] = self.levels.get(key, 0) + change.delta
        return AdjustmentResult(ok=True, correlation_id=f"gid://shopify/{ADJUSTMENT_GROUP}/{next(self._group_counter)}")

    def read_available(self, tenant_id: str, inventory_item_id: str, location_id: str) -> int | None:
        self._check("read_available")
        return self.levels.get((tenant_id, to_gid(inventory_item_id, INVENTORY_ITEM), to_gid(location_id, LOCATION)))

    def resolve_variant(self, tenant_id: str, variant_id: str) -> ItemInfo | None:
        self._check("resolve_variant")
        return self.variants.get((tenant_id, to_gid(variant_id, PRODUCT_VARIANT)))

    def resolve_inventory_item(self, tenant_id: str, inventory_item_id: str) -> ItemInfo | None:
        self._check("resolve_inventory_item")
        return self.items.get((tenant_id, to_gid(inventory_item_id, INVENTORY_ITEM)))

    def resolve_order_line(self, tenant_id: str, order_id: str, line_item_id: str) -> ItemInfo | None:
        self._check("resolve_order_line")
        return self.order_lines.get((tenant_id, to_gid(order_id, ORDER), to_gid(line_item_id, ORDER_LINE_ITEM)))

    def location_name(self, tenant_id: str, location_id: str) -> str | None:
        self._check("location_name")
        return self.location_names.get((tenant_id, to_gid(location_id, LOCATION)))

    def shop_timezone(self, tenant_id: str) -> str | None:
        self._check("shop_timezone")
        return self.timezones.get(tenant_id)

    def adjustment_group_delta(
        self,
        tenant_id: str,
        group_id: str,
        inventory_item_id: str,
        location_id: str,
    ) -> int | None:
        self._check("adjustment_group_delta")
        key = (
            tenant_id,
            to_gid(group_id, ADJUSTMENT_GROUP),
            to_gid(inventory_item_id, INVENTORY_ITEM),
            to_gid(location_id, LOCATION),
        )
        return self.group_deltas.get(key)


_ADJUST_MUTATION = """
mutation Adjust($input: InventoryAdjustQuantitiesInput!) {
  inventoryAdjustQuantities(input: $input) {
    inventoryAdjustmentGroup { id }
    userErrors { field message }
  }
}
"""

_AVAILABLE_QUERY = """
query CurrentQuantity($id: ID!, $loc: ID!) {
  inventoryItem(id: $id) {
    inventoryLevel(locationId: $loc) {
      quantities(names: ["available"]) { name quantity }
    }
  }
}
"""

_VARIANT_QUERY = """
query GetVariant($id: ID!) {
  productVariant(id: $id) {
    id
    sku
    inventoryItem { id }
  }
}
"""

_INVENTORY_ITEM_QUERY = """
query GetInventoryItem($id: ID!) {
  inventoryItem(id: $id) {
    id
    sku
    variant { id sku }
  }
}
"""

_ORDER_LINES_QUERY = """
query GetOrderLines($id: ID!) {
  order(id: $id) {
    lineItems(first: 250) {
      nodes {
        id
        variant {
          id
          sku
          inventoryItem { id }
        }
      }
    }
  }
}
"""

_LOCATION_QUERY = """
query GetLocation($id: ID!) {
  location(id: $id) { id name }
}
"""

_TIMEZONE_QUERY = "query GetShopTimezone { shop { ianaTimezone } }"

_ADJUSTMENT_GROUP_QUERY = """
query GetInventoryAdjustmentGroup($id: ID!, $itemId: ID!, $locationId: ID!) {
  node(id: $id) {
    ... on InventoryAdjustmentGroup {
      changes(inventoryItemIds: [$itemId], locationIds: [$locationId]) {
        name
        delta
        item { id }
        location { id }
      }
    }
  }
}
"""


class ShopifyGraphQLPlatform:
    """Thin client for the Shopify Admin GraphQL API."""

    name = "shopify"

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session or requests.Session()

    def _access_token(self, tenant_id: str) -> str:
        token = settings.shopify_access_tokens.get(tenant_id.lower())
        if not token:
            raise PlatformError(f"No access token configured for {tenant_id}")
        return token

    def _execute(self, tenant_id: str, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"https://{tenant_id}/admin/api/{settings.shopify_api_version}/graphql.json"
        try:
            response = self._session.post(
                url,
                json={"query": query, "variables": variables or {}},
                headers={"X-Shopify-Access-Token": self._access_token(tenant_id)},
                timeout=settings.platform_request_timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise PlatformError(f"Shopify request failed: {exc}") from exc
        except ValueError as exc:
            raise PlatformError("Shopify returned a non-JSON response") from exc

        errors = payload.get("errors")
        if errors:
            messages = [str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors]
            raise PlatformError(" / ".join(messages))
        return payload.get("data") or {}

    def adjust(
        self,
        tenant_id: str,
        location_id: str,
        changes: list[AdjustmentChange],
        reason: str,
        *,
        reference: str | None = None,
    ) -> AdjustmentResult:
        location_gid = to_gid(location_id, LOCATION)
        input_payload: dict[str, Any] = {
            "reason": reason,
            "name": "available",
            "changes": [
                {
                    "inventoryItemId": to_gid(change.inventory_item_id, INVENTORY_ITEM),
                    "locationId": location_gid,
                    "delta": change.delta,
                }
                for change in changes
            ],
        }
        if reference:
            input_payload["referenceDocumentUri"] = reference

        data = self._execute(tenant_id, _ADJUST_MUTATION, {"input": input_payload})
        result = data.get("inventoryAdjustQuantities")
        if not result:
            raise PlatformError("Shopify returned an invalid inventoryAdjustQuantities response")
        user_errors = [err.get("message", "") for err in result.get("userErrors") or []]
        if user_errors:
            return AdjustmentResult(ok=False, errors=user_errors)
        group = result.get("inventoryAdjustmentGroup") or {}
        return AdjustmentResult(ok=True, correlation_id=group.get("id"))

    def read_available(self, tenant_id: str, inventory_item_id: str, location_id: str) -> int | None:
        data = self._execute(
            tenant_id,
            _AVAILABLE_QUERY,
            {"id": to_gid(inventory_item_id, INVENTORY_ITEM), "loc": to_gid(location_id, LOCATION)},
        )
        level = (data.get("inventoryItem") or {}).get("inventoryLevel") or {}
        for quantity in level.get("quantities") or []:
            if quantity.get("name") == "available" and quantity.get("quantity") is not None:
                return int(quantity["quantity"])
        return None

    def resolve_variant(self, tenant_id: str, variant_id: str) -> ItemInfo | None:
        data = self._execute(tenant_id, _VARIANT_QUERY, {"id": to_gid(variant_id, PRODUCT_VARIANT)})
        variant = data.get("productVariant")
        if not variant or not (variant.get("inventoryItem") or {}).get("id"):
            return None
        return ItemInfo(
            inventory_item_id=variant["inventoryItem"]["id"],
            variant_id=variant.get("id"),
            sku=variant.get("sku") or "",
        )

    def resolve_inventory_item(self, tenant_id: str, inventory_item_id: str) -> ItemInfo | None:
        data = self._execute(tenant_id, _INVENTORY_ITEM_QUERY, {"id": to_gid(inventory_item_id, INVENTORY_ITEM)})
        item = data.get("inventoryItem")
        if not item:
            return None
        variant = item.get("variant") or {}
        return ItemInfo(
            inventory_item_id=item["id"],
            variant_id=variant.get("id"),
            sku=item.get("sku") or variant.get("sku") or "",
        )

    def resolve_order_line(self, tenant_id: str, order_id: str, line_item_id: str) -> ItemInfo | None:
        data = self._execute(tenant_id, _ORDER_LINES_QUERY, {"id": to_gid(order_id, ORDER)})
        wanted = to_gid(line_item_id, ORDER_LINE_ITEM)
        nodes = (((data.get("order") or {}).get("lineItems") or {}).get("nodes")) or []
        for node in nodes:
            if node.get("id") != wanted:
                continue
            variant = node.get("variant") or {}
            item_id = (variant.get("inventoryItem") or {}).get("id")
            if not item_id:
                return None
            return ItemInfo(inventory_item_id=item_id, variant_id=variant.get("id"), sku=variant.get("sku") or "")
        return None

    def location_name(self, tenant_id: str, location_id: str) -> str | None:
        data = self._execute(tenant_id, _LOCATION_QUERY, {"id": to_gid(location_id, LOCATION)})
        return (data.get("location") or {}).get("name")

    def shop_timezone(self, tenant_id: str) -> str | None:
        data = self._execute(tenant_id, _TIMEZONE_QUERY)
        return (data.get("shop") or {}).get("ianaTimezone")

    def adjustment_group_delta(
        self,
        tenant_id: str,
        group_id: str,
        inventory_item_id: str,
        location_id: str,
    ) -> int | None:
        item_gid = to_gid(inventory_item_id, INVENTORY_ITEM)
        location_gid = to_gid(location_id, LOCATION)
        data = self._execute(
            tenant_id,
            _ADJUSTMENT_GROUP_QUERY,
            {"id": to_gid(group_id, ADJUSTMENT_GROUP), "itemId": item_gid, "locationId": location_gid},
        )
        for change in (data.get("node") or {}).get("changes") or []:
            if change.get("name") not in (None, "available"):
                continue
            if (change.get("item") or {}).get("id") != item_gid:
                continue
            if (change.get("location") or {}).get("id") != location_gid:
                continue
            if change.get("delta") is not None:
                return int(change["delta"])
        return None


_INVENTORY_PLATFORMS: dict[str, InventoryPlatform] = {
    "stub": StubInventoryPlatform(),
    "shopify": ShopifyGraphQLPlatform(),
}


def get_inventory_platform(name: str) -> InventoryPlatform:
    normalized = (name or "").strip().lower()
    platform = _INVENTORY_PLATFORMS.get(normalized)
    if not platform:
        available = ", ".join(sorted(_INVENTORY_PLATFORMS.keys()))
        raise ValueError(f"Unknown inventory platform '{name}'. Available: {available}")
    return platform


def get_platform() -> InventoryPlatform:
    return get_inventory_platform(settings.inventory_platform_default)
