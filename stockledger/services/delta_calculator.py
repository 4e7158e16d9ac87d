def compute_delta(
    previous_quantity_after: int | None,
    new_quantity_after: int | None,
    observed_magnitude: int | None,
    sign: int,
) -> int | None:
    """Signed change for one ledger entry.

    An absolute before/after pair is always preferred; otherwise the event's own
    reported quantity is taken as the whole change. ``None`` when neither is known.
    """
    if sign not in (1, -1):
        raise ValueError("sign must be +1 or -1")
    if previous_quantity_after is not None and new_quantity_after is not None:
        return int(new_quantity_after) - int(previous_quantity_after)
    if observed_magnitude is None:
        return None
    return sign * abs(int(observed_magnitude))
