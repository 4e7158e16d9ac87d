"""Closed vocabulary of ledger activities.

``generic_webhook`` marks a provisional row: a stock level changed but the
cause was not known when it was recorded. Every other activity is
authoritative and final once written.
"""

MANUAL_ADJUSTMENT = "manual_adjustment"
ORDER_SALES = "order_sales"
REFUND = "refund"
PURCHASE_RECEIVE = "purchase_receive"
PURCHASE_CANCEL = "purchase_cancel"
TRANSFER_RECEIVE = "transfer_receive"
TRANSFER_CANCEL = "transfer_cancel"
TRANSFER_SHIP = "transfer_ship"
LOSS_ENTRY = "loss_entry"
COUNT_CORRECTION = "count_correction"
GENERIC_WEBHOOK = "generic_webhook"

PROVISIONAL_ACTIVITIES = frozenset({GENERIC_WEBHOOK})

AUTHORITATIVE_ACTIVITIES = frozenset(
    {
        MANUAL_ADJUSTMENT,
        ORDER_SALES,
        REFUND,
        PURCHASE_RECEIVE,
        PURCHASE_CANCEL,
        TRANSFER_RECEIVE,
        TRANSFER_CANCEL,
        TRANSFER_SHIP,
        LOSS_ENTRY,
        COUNT_CORRECTION,
    }
)

ALL_ACTIVITIES = AUTHORITATIVE_ACTIVITIES | PROVISIONAL_ACTIVITIES

# Activities a direct action (UI, POS extension) may record through the mutation orchestrator.
DIRECT_ACTION_ACTIVITIES = frozenset(
    {
        MANUAL_ADJUSTMENT,
        PURCHASE_RECEIVE,
        PURCHASE_CANCEL,
        TRANSFER_RECEIVE,
        TRANSFER_CANCEL,
        TRANSFER_SHIP,
        LOSS_ENTRY,
        COUNT_CORRECTION,
    }
)


def is_provisional(activity: str) -> bool:
    return activity in PROVISIONAL_ACTIVITIES


def normalize_activity(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower().replace("-", "_")
    if not cleaned:
        return None
    if cleaned not in ALL_ACTIVITIES:
        allowed = ", ".join(sorted(ALL_ACTIVITIES))
        raise ValueError(f"Invalid activity. Allowed: {allowed}")
    return cleaned
