"""
Observability & Audit Layer

RESPONSIBILITY: Logging configuration and append-only audit logs
ALLOWED INPUTS: Audit entries from any layer
OUTPUTS: Read-only views of collected entries

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Filter or interpret events beyond simple selection
- Block or delay other layer operations
"""

from __future__ import annotations
from collections import deque
from typing import Deque, List, Optional, Tuple
import hashlib
import logging
import sys

from ..contracts.base import AuditEventType, AuditLogEntry, Timestamp

DEFAULT_AUDIT_MAX_ENTRIES = 10000

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the package loggers. Idempotent."""
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO

    for name in ("evidence", "generative"):
        pkg_logger = logging.getLogger(name)
        pkg_logger.setLevel(resolved)
        if not any(getattr(h, "_evidence_handler", False) for h in pkg_logger.handlers):
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            handler._evidence_handler = True
            pkg_logger.addHandler(handler)


class AuditLog:
    """
    Bounded audit log for one layer.

    Entries are immutable. At most max_entries are retained; once full the
    oldest entry is evicted for each new one. None keeps every entry.
    """

    def __init__(self, layer_name: str, max_entries: Optional[int] = DEFAULT_AUDIT_MAX_ENTRIES):
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._layer_name = layer_name
        self._entries: Deque[AuditLogEntry] = deque(maxlen=max_entries)
        self._recorded = 0

    def record(
        self,
        event_type: AuditEventType,
        action: str,
        entity_id: Optional[str] = None,
        metadata: Tuple[Tuple[str, str], ...] = ()
    ) -> AuditLogEntry:
        timestamp = Timestamp.now()
        seed = f"{self._layer_name}|{self._recorded}|{action}|{timestamp.to_iso()}"
        entry = AuditLogEntry(
            entry_id=f"audit_{hashlib.sha256(seed.encode()).hexdigest()[:16]}",
            event_type=event_type,
            timestamp=timestamp,
            layer=self._layer_name,
            action=action,
            entity_id=entity_id,
            metadata=tuple((k, str(v)) for k, v in metadata),
        )
        self._entries.append(entry)
        self._recorded += 1
        return entry

    def get_entries(self, event_type: Optional[AuditEventType] = None) -> List[AuditLogEntry]:
        if event_type is None:
            return list(self._entries)
        return [e for e in self._entries if e.event_type == event_type]

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def max_entries(self) -> Optional[int]:
        return self._entries.maxlen

    @property
    def entry_count(self) -> int:
        """Entries currently retained."""
        return len(self._entries)

    @property
    def total_recorded(self) -> int:
        """Entries recorded since creation, evicted ones included."""
        return self._recorded
