from datetime import datetime, timezone

from stockledger.services import ledger_writer
from stockledger.services.idempotency import derive_key
from stockledger.services.ledger_store import LedgerEntryDraft

SHOP = "demo-shop.myshopify.com"


def _entry(**overrides) -> dict:
    payload = {
        "inventory_item_id": "1",
        "location_id": "1",
        "activity": "transfer_receive",
        "delta": 4,
        "quantity_after": 14,
        "source_id": "transfer-31",
        "adjustment_group_id": "900",
        "timestamp": "2024-03-05T08:15:00Z",
        "sku": "TEE-RED-M",
        "location_name": "Back Room",
    }
    payload.update(overrides)
    return payload


def test_direct_action_endpoints_require_app_credentials(test_context, app_headers):
    client, _, _ = test_context

    missing = client.get("/ledger", headers={"X-Shop-Domain": SHOP})
    assert missing.status_code == 401, missing.text
    assert missing.json()["error"]["code"] == "unauthorized"

    wrong = client.get("/ledger", headers={"X-Shop-Domain": SHOP, "X-App-Token": "nope"})
    assert wrong.status_code == 401, wrong.text

    no_shop = client.get("/ledger", headers={"X-App-Token": app_headers["X-App-Token"]})
    assert no_shop.status_code == 400, no_shop.text


def test_log_entry_is_idempotent(test_context, app_headers):
    client, _, _ = test_context

    first = client.post("/ledger/entries", json=_entry(), headers=app_headers)
    assert first.status_code == 200, first.text
    assert first.json()["results"][0]["outcome"] == "written"

    again = client.post("/ledger/entries", json=_entry(note="retry"), headers=app_headers)
    assert again.status_code == 200, again.text
    assert again.json()["results"][0]["outcome"] == "deduplicated"
    assert again.json()["results"][0]["entry_id"] == first.json()["results"][0]["entry_id"]

    history = client.get("/ledger", headers=app_headers).json()
    assert history["pagination"]["total"] == 1
    item = history["items"][0]
    assert item["inventory_item_id"] == "gid://shopify/InventoryItem/1"
    assert item["adjustment_group_id"] == "gid://shopify/InventoryAdjustmentGroup/900"
    assert item["location_name"] == "Back Room"
    assert item["calendar_date"] == "2024-03-05"


def test_log_entry_upgrades_generic_row(test_context, app_headers):
    client, session_local, _ = test_context
    generic = client.post("/ledger/entries", json=_entry(activity="generic_webhook"), headers=app_headers)
    assert generic.status_code == 422, generic.text

    at = datetime(2024, 3, 5, 8, 14, 30, tzinfo=timezone.utc)
    item, location = "gid://shopify/InventoryItem/1", "gid://shopify/Location/1"
    db = session_local()
    try:
        ledger_writer.write(
            db,
            LedgerEntryDraft(
                tenant_id=SHOP,
                timestamp=at,
                calendar_date="2024-03-05",
                inventory_item_id=item,
                location_id=location,
                activity="generic_webhook",
                idempotency_key=derive_key(SHOP, "generic_webhook", item, location, None, None, at),
                quantity_after=14,
            ),
        )
    finally:
        db.close()

    res = client.post("/ledger/entries", json=_entry(), headers=app_headers)
    assert res.status_code == 200, res.text
    assert res.json()["results"][0]["outcome"] == "upgraded"

    history = client.get("/ledger", headers=app_headers).json()
    assert history["pagination"]["total"] == 1
    assert history["items"][0]["activity"] == "transfer_receive"
    assert history["items"][0]["delta"] == 4
    assert history["items"][0]["source_id"] == "transfer-31"


def test_log_entry_batch_and_delta_from_quantity(test_context, app_headers):
    client, _, _ = test_context

    res = client.post(
        "/ledger/entries",
        json={
            "entries": [
                _entry(activity="count_correction", delta=None, quantity_after=20, source_id="count-1", timestamp="2024-03-05T07:00:00Z"),
                _entry(activity="count_correction", delta=None, quantity_after=17, source_id="count-2", timestamp="2024-03-05T09:00:00Z"),
            ]
        },
        headers=app_headers,
    )

    assert res.status_code == 200, res.text
    assert res.json()["ok"] is True
    assert [result["outcome"] for result in res.json()["results"]] == ["written", "written"]

    items = client.get("/ledger", params={"activity": "count_correction"}, headers=app_headers).json()["items"]
    assert [(item["source_id"], item["delta"]) for item in items] == [("count-2", -3), ("count-1", None)]


def test_history_filters_and_pagination(test_context, app_headers):
    client, _, _ = test_context
    entries = [
        _entry(source_id="t-1", timestamp="2024-03-01T10:00:00Z"),
        _entry(source_id="t-2", timestamp="2024-03-02T10:00:00Z", activity="loss_entry", delta=-1),
        _entry(source_id="t-3", timestamp="2024-03-03T10:00:00Z", inventory_item_id="2"),
        _entry(source_id="t-4", timestamp="2024-03-04T10:00:00Z", location_id="gid://shopify/Location/2"),
    ]
    res = client.post("/ledger/entries", json={"entries": entries}, headers=app_headers)
    assert res.status_code == 200, res.text

    other_shop = dict(app_headers, **{"X-Shop-Domain": "other-shop.myshopify.com"})
    client.post("/ledger/entries", json=_entry(source_id="elsewhere"), headers=other_shop)

    by_raw_item = client.get("/ledger", params={"inventory_item_id": "1"}, headers=app_headers).json()
    assert {item["source_id"] for item in by_raw_item["items"]} == {"t-1", "t-2", "t-4"}

    by_location = client.get(
        "/ledger",
        params={"location_id": "gid://shopify/Location/2"},
        headers=app_headers,
    ).json()
    assert [item["source_id"] for item in by_location["items"]] == ["t-4"]

    by_activity = client.get("/ledger", params={"activity": "Loss-Entry"}, headers=app_headers).json()
    assert [item["source_id"] for item in by_activity["items"]] == ["t-2"]

    by_dates = client.get(
        "/ledger",
        params={"start_date": "2024-03-02", "end_date": "2024-03-03"},
        headers=app_headers,
    ).json()
    assert [item["source_id"] for item in by_dates["items"]] == ["t-3", "t-2"]

    by_time = client.get("/ledger", params={"start": "2024-03-03T00:00:00Z"}, headers=app_headers).json()
    assert [item["source_id"] for item in by_time["items"]] == ["t-4", "t-3"]

    page = client.get("/ledger", params={"limit": 3, "offset": 0}, headers=app_headers).json()
    assert page["pagination"] == {"total": 4, "limit": 3, "offset": 0, "count": 3, "has_next": True}

    bad_activity = client.get("/ledger", params={"activity": "teleport"}, headers=app_headers)
    assert bad_activity.status_code == 400, bad_activity.text

    bad_range = client.get(
        "/ledger",
        params={"start_date": "2024-03-05", "end_date": "2024-03-01"},
        headers=app_headers,
    )
    assert bad_range.status_code == 400, bad_range.text


def test_health_endpoints(test_context):
    client, _, _ = test_context

    assert client.get("/health").json() == {"ok": True}
    root = client.get("/")
    assert root.status_code == 200
    assert root.headers["X-Request-ID"]
    assert "X-API-Timeout-Hint-Ms" not in root.headers
