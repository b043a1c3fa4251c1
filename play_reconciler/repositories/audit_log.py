"""Audit log - append-only archive of raw events and anomalies.

Holds payloads that could not be processed (test notifications, one-time
products, malformed messages, provider fetch errors) and identity
mismatches, for offline inspection. The archive is bounded; once full,
each new entry evicts the oldest.
"""

import threading
from collections import deque
from typing import Any, Deque, List, Optional

from play_reconciler.config import get_config
from play_reconciler.logging_config import get_logger, short_token
from play_reconciler.models.events import AuditEntry

logger = get_logger(__name__)


class AuditLog:
    """Thread-safe in-memory audit trail."""

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is None:
            max_entries = get_config().audit.max_entries
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.RLock()

    def record(
        self,
        entry_type: str,
        received_at: str,
        payload: Any = None,
        package_name: Optional[str] = None,
        purchase_token: Optional[str] = None,
        error: Optional[str] = None,
    ) -> AuditEntry:
        """Append an entry.

        Args:
            entry_type: Archive reason (e.g. "fetch_error")
            received_at: Archive time (ISO 8601)
            payload: Payload exactly as received
            package_name: Android package name, if known
            purchase_token: Purchase token, if known
            error: Error message, if any

        Returns:
            The stored AuditEntry
        """
        entry = AuditEntry(
            type=entry_type,
            received_at=received_at,
            package_name=package_name,
            purchase_token=purchase_token,
            error=error,
            payload=payload,
        )
        with self._lock:
            evicted = len(self._entries) == self._entries.maxlen
            self._entries.append(entry)
        if evicted:
            logger.debug("audit_entry_evicted", max_entries=self._entries.maxlen)

        logger.info(
            "audit_entry_recorded",
            entry_type=entry_type,
            package_name=package_name,
            purchase_token=short_token(purchase_token),
            error=error,
        )
        return entry

    def entries(self, entry_type: Optional[str] = None) -> List[AuditEntry]:
        """Get entries, optionally filtered by type."""
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._entries
                if entry_type is None or e.type == entry_type
            ]

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return self.count()


_log_instance: Optional[AuditLog] = None
_log_lock = threading.Lock()


def get_audit_log() -> AuditLog:
    """Get global audit log instance (singleton)."""
    global _log_instance
    if _log_instance is None:
        with _log_lock:
            if _log_instance is None:
                _log_instance = AuditLog()
    return _log_instance


def reset_audit_log() -> None:
    """Replace the global audit log with an empty one (for testing)."""
    global _log_instance
    with _log_lock:
        _log_instance = AuditLog()
