"""Per-subscription polling state and record change detection."""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .cursor import CursorField, CursorResolution


def record_checksum(record: Dict[str, Any]) -> str:
    """Deterministic checksum of a record's content."""
    json_str = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()


@dataclass
class PollState:
    """Mutable state of one degraded subscription's poll engine.

    ``cursor_field`` is None until discovery succeeds. ``checksums`` holds
    the records seen on the previous tick and is only used when no ordered
    cursor exists.
    """

    cursor_field: Optional[CursorResolution] = None
    last_cursor_value: Any = None
    ticks: int = 0
    skipped_ticks: int = 0
    consecutive_errors: int = 0
    last_polled: Optional[datetime] = None
    checksums: Dict[str, str] = field(default_factory=dict)

    @property
    def uses_cursor(self) -> bool:
        """True when a timestamp or sequence cursor filters queries."""
        return isinstance(self.cursor_field, CursorField) and self.cursor_field.is_ordered

    def is_newer(self, value: Any) -> bool:
        """Check whether a cursor value is strictly after the last one."""
        if value is None:
            return False
        if self.last_cursor_value is None:
            return True
        try:
            return value > self.last_cursor_value
        except TypeError:
            return str(value) > str(self.last_cursor_value)

    def advance(self, value: Any) -> bool:
        """Move the cursor forward; never moves it backwards.

        Returns:
            True if the cursor changed
        """
        if not self.is_newer(value):
            return False
        self.last_cursor_value = value
        return True

    def changed_records(
        self, records: List[Dict[str, Any]], key_field: str
    ) -> List[Dict[str, Any]]:
        """Return records that are new or changed since the previous tick.

        The stored window is replaced by the records of this tick.
        """
        previous = self.checksums
        current: Dict[str, str] = {}
        changed = []

        for record in records:
            checksum = record_checksum(record)
            key = str(record[key_field]) if record.get(key_field) is not None else checksum
            current[key] = checksum
            if previous.get(key) != checksum:
                changed.append(record)

        self.checksums = current
        return changed
