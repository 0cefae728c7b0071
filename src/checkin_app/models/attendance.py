from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Mapping, Optional

RECENT_SCAN_LIMIT = 10


class VerificationMethod(str, Enum):
    QR_SCAN = "qr_scan"
    MANUAL = "manual"


@dataclass(slots=True, frozen=True)
class Registration:
    id: str
    event_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Registration":
        """Build a registration from camelCase or snake_case input."""

        def _pick(*keys: str) -> Optional[str]:
            for key in keys:
                value = data.get(key)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return None

        registration_id = _pick("id", "registrationId", "registration_id")
        event_id = _pick("eventId", "event_id")
        name = _pick("name", "full_name", "fullName")
        if not registration_id or not event_id or not name:
            raise ValueError("Registration requires non-empty id, eventId and name.")

        return cls(
            id=registration_id,
            event_id=event_id,
            name=name,
            email=_pick("email"),
            phone=_pick("phone"),
            college=_pick("college"),
        )


@dataclass(slots=True, frozen=True)
class AttendanceRecord:
    registration_id: str
    event_id: str
    marked_by: str
    marked_at: datetime
    verification_method: VerificationMethod

    def slot(self) -> tuple[str, str]:
        return self.registration_id, self.event_id


@dataclass(slots=True, frozen=True)
class RecentScan:
    timestamp: datetime
    name: str
    event: str
    success: bool


@dataclass(slots=True)
class ScanSession:
    """Device-local state for one coordinator's scanning session."""

    last_decoded_text: Optional[str] = None
    processing: bool = False
    current_result: Any = None
    checked_in_count: int = 0
    recent_scans: Deque[RecentScan] = field(default_factory=lambda: deque(maxlen=RECENT_SCAN_LIMIT))

    def remember(self, scan: RecentScan) -> None:
        self.recent_scans.appendleft(scan)
        if scan.success:
            self.checked_in_count += 1
