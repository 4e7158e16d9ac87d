from datetime import datetime, timezone


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate_to_second(value: datetime) -> datetime:
    return as_utc(value).replace(microsecond=0)


def _segment(value: str | None) -> str:
    if value is None:
        return "-"
    cleaned = str(value).strip()
    return cleaned or "-"


def derive_key(
    tenant_id: str,
    activity_class: str,
    inventory_item_id: str,
    location_id: str,
    source_id: str | None,
    sub_source_id: str | None,
    timestamp: datetime,
) -> str:
    """Deterministic dedup key for one logical event.

    Ids must already be normalized. The timestamp is truncated to whole seconds
    so redeliveries that differ only by sub-second jitter collide.
    """
    second = truncate_to_second(timestamp).strftime("%Y-%m-%dT%H:%M:%SZ")
    return ":".join(
        [
            _segment(tenant_id),
            _segment(activity_class),
            _segment(inventory_item_id),
            _segment(location_id),
            _segment(source_id),
            _segment(sub_source_id),
            second,
        ]
    )
