import base64
import hashlib
import hmac
import json

from sqlalchemy import select

from stockledger.core.errors import PlatformError
from stockledger.models.inventory_change import InventoryChangeLog
from stockledger.models.pending_order_line import PendingOrderLine
from stockledger.services.webhook_adapters import normalize_topic

SHOP = "demo-shop.myshopify.com"
ITEM_GID = "gid://shopify/InventoryItem/1"
LOC_GID = "gid://shopify/Location/1"


def _signed_headers(body: bytes, *, topic: str, shop: str | None = SHOP, secret: str = "test-webhook-secret") -> dict[str, str]:
    signature = base64.b64encode(hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()).decode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Topic": topic,
        "X-Shopify-Hmac-Sha256": signature,
    }
    if shop:
        headers["X-Shopify-Shop-Domain"] = shop
    return headers


def _post_webhook(client, topic: str, payload: dict, **kwargs):
    body = json.dumps(payload).encode("utf-8")
    return client.post("/webhooks", content=body, headers=_signed_headers(body, topic=topic, **kwargs))


def _rows(session_local) -> list[InventoryChangeLog]:
    db = session_local()
    try:
        return list(db.execute(select(InventoryChangeLog).order_by(InventoryChangeLog.timestamp)).scalars().all())
    finally:
        db.close()


def _seed_catalog(platform) -> None:
    platform.add_variant(SHOP, "11", "1", sku="TEE-RED-M")
    platform.add_variant(SHOP, "12", "2", sku="TEE-RED-L")
    platform.set_location_name(SHOP, "1", "Main Warehouse")


def _level_payload(available: int, updated_at: str, **extra) -> dict:
    payload = {
        "inventory_item_id": 1,
        "location_id": 1,
        "available": available,
        "updated_at": updated_at,
    }
    payload.update(extra)
    return payload


def _order_payload(created_at: str = "2024-01-01T10:03:00Z", **extra) -> dict:
    payload = {
        "id": 123,
        "name": "#1001",
        "cancelled_at": None,
        "location_id": None,
        "fulfillments": [
            {
                "id": 9,
                "status": "success",
                "location_id": 1,
                "created_at": created_at,
                "line_items": [{"id": 5, "variant_id": 11, "quantity": 3}],
            }
        ],
    }
    payload.update(extra)
    return payload


def test_normalize_topic_variants():
    assert normalize_topic("ORDERS_UPDATED") == "orders/updated"
    assert normalize_topic("orders/updated") == "orders/updated"
    assert normalize_topic("Orders-Updated") == "orders/updated"
    assert normalize_topic("INVENTORY_LEVELS_UPDATE") == "inventory_levels/update"
    assert normalize_topic("products/update") is None
    assert normalize_topic(None) is None


def test_end_to_end_generic_signal_upgraded_by_order_and_redelivery_ignored(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    platform.set_level(SHOP, "1", "1", 7)

    level_res = _post_webhook(client, "inventory_levels/update", _level_payload(7, "2024-01-01T10:00:00Z"))
    assert level_res.status_code == 200, level_res.text
    assert level_res.json()["written"] == 1

    rows = _rows(session_local)
    assert len(rows) == 1
    assert rows[0].activity == "generic_webhook"
    assert rows[0].delta is None
    assert rows[0].location_name == "Main Warehouse"

    order_res = _post_webhook(client, "orders/updated", _order_payload())
    assert order_res.status_code == 200, order_res.text
    assert order_res.json()["upgraded"] == 1

    rows = _rows(session_local)
    assert len(rows) == 1
    row = rows[0]
    assert row.activity == "order_sales"
    assert row.source_id == "order_123"
    assert row.delta == -3
    assert row.quantity_after == 7
    assert row.sku == "TEE-RED-M"
    assert row.variant_id == "gid://shopify/ProductVariant/11"
    assert row.note == "Order #1001"

    redelivery = _post_webhook(client, "ORDERS_UPDATED", _order_payload())
    assert redelivery.status_code == 200, redelivery.text
    body = redelivery.json()
    assert body["deduplicated"] == 1
    assert body["written"] == 0
    assert len(_rows(session_local)) == 1


def test_order_fulfilled_after_window_adds_second_row(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    platform.set_level(SHOP, "1", "1", 7)

    _post_webhook(client, "inventory_levels/update", _level_payload(7, "2024-01-01T10:00:00Z"))
    res = _post_webhook(client, "orders/fulfilled", _order_payload(created_at="2024-01-01T10:10:00Z"))

    assert res.status_code == 200, res.text
    assert res.json()["written"] == 1
    assert [row.activity for row in _rows(session_local)] == ["generic_webhook", "order_sales"]


def test_order_without_level_history_uses_fulfilled_quantity(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)

    res = _post_webhook(client, "orders/updated", _order_payload())

    assert res.status_code == 200, res.text
    rows = _rows(session_local)
    assert len(rows) == 1
    assert rows[0].delta == -3
    assert rows[0].quantity_after is None
    assert rows[0].location_id == LOC_GID
    assert rows[0].inventory_item_id == ITEM_GID


def test_cancelled_order_and_open_states(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)

    cancelled = _post_webhook(client, "orders/updated", _order_payload(cancelled_at="2024-01-01T11:00:00Z"))
    assert cancelled.status_code == 200, cancelled.text
    assert cancelled.json()["written"] == 0

    payload = _order_payload(location_id=1)
    payload["fulfillments"] = [
        {
            "id": 10,
            "status": "cancelled",
            "location_id": 1,
            "created_at": "2024-01-01T10:03:00Z",
            "line_items": [{"id": 5, "variant_id": 11, "quantity": 3}],
        },
        {
            "id": 11,
            "status": "open",
            "location_id": None,
            "created_at": "2024-01-01T10:04:00Z",
            "line_items": [{"id": 6, "variant_id": 12, "quantity": 1}],
        },
    ]
    res = _post_webhook(client, "orders/updated", payload)
    assert res.status_code == 200, res.text
    assert res.json()["written"] == 1

    rows = _rows(session_local)
    assert len(rows) == 1
    assert rows[0].inventory_item_id == "gid://shopify/InventoryItem/2"
    assert rows[0].location_id == LOC_GID
    assert rows[0].delta == -1


def test_lookup_failure_skips_only_that_line(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)

    real_resolve = platform.resolve_variant

    def flaky_resolve(tenant_id, variant_id):
        if variant_id.endswith("/12"):
            raise PlatformError("read timeout")
        return real_resolve(tenant_id, variant_id)

    platform.resolve_variant = flaky_resolve
    payload = _order_payload()
    payload["fulfillments"][0]["line_items"].append({"id": 6, "variant_id": 12, "quantity": 2})
    payload["fulfillments"][0]["line_items"].append({"id": 7, "variant_id": 99, "quantity": 1})

    res = _post_webhook(client, "orders/updated", payload)

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["written"] == 1
    assert body["skipped"] == 2
    assert [row.inventory_item_id for row in _rows(session_local)] == [ITEM_GID]


def test_refund_records_restocked_lines_only(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    platform.add_order_line(SHOP, "123", "6", "12")
    platform.set_level(SHOP, "2", "1", 4)

    payload = {
        "id": 700,
        "order_id": 123,
        "created_at": "2024-01-02T09:00:00Z",
        "refund_line_items": [
            {"id": 1, "line_item_id": 5, "quantity": 1, "restock_type": "no_restock", "location_id": 1, "line_item": {"variant_id": 11}},
            {"id": 2, "line_item_id": 6, "quantity": 2, "restock_type": "return", "location_id": 1, "line_item": {}},
        ],
    }
    res = _post_webhook(client, "refunds/create", payload)

    assert res.status_code == 200, res.text
    assert res.json()["written"] == 1
    rows = _rows(session_local)
    assert len(rows) == 1
    assert rows[0].activity == "refund"
    assert rows[0].delta == 2
    assert rows[0].quantity_after == 4
    assert rows[0].sku == "TEE-RED-L"
    assert rows[0].source_id == "order_123"
    assert rows[0].note == "Refund for order #123"


def test_level_updates_compute_delta_from_history(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)

    first = _post_webhook(client, "inventory_levels/update", _level_payload(7, "2024-01-01T10:00:00Z"))
    second = _post_webhook(client, "inventory_levels/update", _level_payload(5, "2024-01-01T11:00:00Z"))
    unchanged = _post_webhook(client, "inventory_levels/update", _level_payload(5, "2024-01-01T12:00:00Z"))

    assert first.json()["written"] == 1
    assert second.json()["written"] == 1
    assert unchanged.json()["written"] == 0
    assert unchanged.json()["skipped"] == 1
    assert [row.delta for row in _rows(session_local)] == [None, -2]


def test_level_update_without_history_uses_adjustment_group(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    platform.set_group_delta(SHOP, "77", "1", "1", -4)
    platform.timezones[SHOP] = "Asia/Tokyo"

    res = _post_webhook(
        client,
        "inventory_levels/update",
        _level_payload(6, "2024-01-01T20:00:00Z", inventory_adjustment_group_id=77),
    )

    assert res.status_code == 200, res.text
    row = _rows(session_local)[0]
    assert row.delta == -4
    assert row.adjustment_group_id == "gid://shopify/InventoryAdjustmentGroup/77"
    assert row.calendar_date == "2024-01-02"
    assert row.sku == "TEE-RED-M"


def test_webhook_rejects_bad_signature(test_context):
    client, session_local, _ = test_context
    body = json.dumps(_level_payload(7, "2024-01-01T10:00:00Z")).encode("utf-8")

    res = client.post(
        "/webhooks",
        content=body,
        headers=_signed_headers(body, topic="inventory_levels/update", secret="wrong-secret"),
    )
    assert res.status_code == 401, res.text
    assert res.json()["error"]["code"] == "unauthorized"

    headers = _signed_headers(body, topic="inventory_levels/update")
    headers.pop("X-Shopify-Hmac-Sha256")
    missing = client.post("/webhooks", content=body, headers=headers)
    assert missing.status_code == 401, missing.text
    assert _rows(session_local) == []


def test_webhook_rejects_unknown_topic_missing_shop_and_bad_body(test_context):
    client, _, _ = test_context

    unknown = _post_webhook(client, "products/update", {"id": 1})
    assert unknown.status_code == 400, unknown.text

    no_shop = _post_webhook(client, "orders/updated", _order_payload(), shop=None)
    assert no_shop.status_code == 400, no_shop.text

    body = b"{not-json"
    malformed = client.post("/webhooks", content=body, headers=_signed_headers(body, topic="orders/updated"))
    assert malformed.status_code == 400, malformed.text

    missing_ids = _post_webhook(client, "inventory_levels/update", {"available": 3})
    assert missing_ids.status_code == 400, missing_ids.text


def test_quantity_read_failure_still_records_sale_and_refund(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    platform.failing.add("read_available")

    order = _post_webhook(client, "orders/updated", _order_payload())
    assert order.status_code == 200, order.text
    assert order.json()["written"] == 1
    assert order.json()["skipped"] == 0

    refund = _post_webhook(
        client,
        "refunds/create",
        {
            "id": 701,
            "order_id": 123,
            "created_at": "2024-01-02T09:00:00Z",
            "refund_line_items": [
                {"id": 2, "line_item_id": 6, "quantity": 2, "restock_type": "return", "location_id": 1, "line_item": {"variant_id": 12}},
            ],
        },
    )
    assert refund.status_code == 200, refund.text
    assert refund.json()["written"] == 1

    rows = _rows(session_local)
    assert [(row.activity, row.delta, row.quantity_after) for row in rows] == [
        ("order_sales", -3, None),
        ("refund", 2, None),
    ]


def test_order_line_without_location_is_claimed_by_next_level_change(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    payload = _order_payload()
    payload["created_at"] = "2024-01-01T10:02:00Z"
    payload["fulfillments"][0]["location_id"] = None

    held = _post_webhook(client, "orders/updated", payload)
    assert held.status_code == 200, held.text
    assert held.json()["written"] == 0
    assert held.json()["pending"] == 1
    assert _rows(session_local) == []

    redelivery = _post_webhook(client, "orders/updated", payload)
    assert redelivery.json()["pending"] == 0
    assert redelivery.json()["skipped"] == 0

    level = _post_webhook(client, "inventory_levels/update", _level_payload(4, "2024-01-01T10:05:00Z"))
    assert level.status_code == 200, level.text
    assert level.json()["written"] == 1

    rows = _rows(session_local)
    assert len(rows) == 1
    sale = rows[0]
    assert sale.activity == "order_sales"
    assert sale.source_id == "order_123"
    assert sale.delta == -3
    assert sale.quantity_after == 4
    assert sale.location_id == LOC_GID
    assert sale.sku == "TEE-RED-M"
    assert sale.note == "Order #1001"

    db = session_local()
    try:
        assert db.execute(select(PendingOrderLine)).scalars().all() == []
    finally:
        db.close()

    later = _post_webhook(client, "inventory_levels/update", _level_payload(2, "2024-01-01T10:06:00Z"))
    assert later.json()["written"] == 1
    assert [(row.activity, row.delta) for row in _rows(session_local)] == [
        ("order_sales", -3),
        ("generic_webhook", -2),
    ]


def test_parked_order_line_outside_time_window_is_not_claimed(test_context):
    client, session_local, platform = test_context
    _seed_catalog(platform)
    payload = _order_payload()
    payload["created_at"] = "2024-01-01T10:02:00Z"
    payload["fulfillments"][0]["location_id"] = None
    _post_webhook(client, "orders/updated", payload)

    level = _post_webhook(client, "inventory_levels/update", _level_payload(4, "2024-01-01T11:00:00Z"))

    assert level.json()["written"] == 1
    assert [row.activity for row in _rows(session_local)] == ["generic_webhook"]
