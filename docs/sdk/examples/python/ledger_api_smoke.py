import os
import sys

import requests

base_url = os.getenv("STOCKLEDGER_BASE_URL", "http://localhost:8000").rstrip("/")
shop_domain = os.getenv("STOCKLEDGER_SHOP_DOMAIN")
app_token = os.getenv("STOCKLEDGER_APP_TOKEN")

if not shop_domain or not app_token:
    raise RuntimeError("STOCKLEDGER_SHOP_DOMAIN and STOCKLEDGER_APP_TOKEN are required")

headers = {"X-Shop-Domain": shop_domain, "X-App-Token": app_token}


def main() -> int:
    ready_response = requests.get(f"{base_url}/ready", timeout=15)
    ready_response.raise_for_status()

    ledger_response = requests.get(
        f"{base_url}/ledger",
        headers=headers,
        params={"limit": 5, "offset": 0},
        timeout=15,
    )
    ledger_response.raise_for_status()

    ledger = ledger_response.json()
    print(f"Shop: {shop_domain}")
    print(f"Ledger entries total: {ledger['pagination']['total']}")
    for entry in ledger["items"]:
        print(f"  {entry['timestamp']} {entry['activity']} {entry['inventory_item_id']} delta={entry['delta']}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except requests.RequestException as exc:
        print(f"Ledger API smoke check failed: {exc}", file=sys.stderr)
        raise SystemExit(1)
