"""Utility functions for the reconciler.

Provides:
- Activity predicate (is_active)
- Timestamp coercion (to_millis)
- Subscription window selection (pick_window)
"""

from play_reconciler.utils.activity import (
    is_active,
    pick_window,
    to_millis,
)

__all__ = [
    "is_active",
    "pick_window",
    "to_millis",
]
