"""Activity predicates and subscription window selection.

Pure helpers shared by the provider adapter, the reconciler and the sweeper.
"""

import math
from datetime import datetime
from typing import Any, Iterable, Optional, Tuple

START_FIELDS = ("startTimeMillis", "startTime")
END_FIELDS = ("expiryTimeMillis", "expiryTime")


def _now_millis() -> int:
    from play_reconciler.services.clock import get_clock

    return get_clock().now_millis()


def is_active(expiry_time_millis: Any, now_millis: Optional[int] = None) -> bool:
    """Check whether a subscription with the given expiry is active.

    Active iff the expiry is a finite number strictly greater than now. There
    is no grace period; absent, non-numeric or non-finite expiries are inactive.

    Args:
        expiry_time_millis: Expiry as Unix millis
        now_millis: Reference time (defaults to the service clock)

    Returns:
        True if the subscription is active
    """
    if isinstance(expiry_time_millis, bool) or not isinstance(expiry_time_millis, (int, float)):
        return False
    if not math.isfinite(expiry_time_millis):
        return False
    if now_millis is None:
        now_millis = _now_millis()
    return expiry_time_millis > now_millis


def to_millis(value: Any) -> int:
    """Coerce a provider timestamp to Unix millis.

    Accepts numbers, numeric strings ("1700000000000") and RFC 3339 strings
    ("2024-01-01T00:00:00.000Z"). Anything unparseable yields 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else 0

    text = str(value).strip()
    if not text:
        return 0
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return int(number) if math.isfinite(number) else 0

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return 0
    return int(parsed.timestamp() * 1000)


def _first_positive(item: dict, nested_field: str, fields: Tuple[str, ...]) -> int:
    interval = item.get("validTimeInterval")
    candidates = [interval.get(nested_field)] if isinstance(interval, dict) else []
    candidates.extend(item.get(field) for field in fields)
    for candidate in candidates:
        millis = to_millis(candidate)
        if millis > 0:
            return millis
    return 0


def pick_window(line_items: Optional[Iterable[Any]]) -> Tuple[Optional[int], Optional[int]]:
    """Compute the governing subscription window from provider line items.

    Upgrades and downgrades can leave several line items; the window is their
    union: earliest start and latest end.

    Args:
        line_items: Provider line items (dicts); legacy field names are accepted

    Returns:
        Tuple of (start_millis, end_millis), each None when no valid value exists
    """
    starts = []
    ends = []
    for item in line_items or []:
        if not isinstance(item, dict):
            continue
        start = _first_positive(item, "startTimeMillis", START_FIELDS)
        end = _first_positive(item, "endTimeMillis", END_FIELDS)
        if start > 0:
            starts.append(start)
        if end > 0:
            ends.append(end)

    return (min(starts) if starts else None, max(ends) if ends else None)
