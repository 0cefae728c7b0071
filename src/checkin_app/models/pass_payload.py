from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(slots=True, frozen=True)
class QRPayload:
    """Attendee identity sealed inside a pass.

    ``issued_at`` and ``expires_at`` are epoch milliseconds.
    """

    registration_id: str
    event_id: str
    name: str
    issued_at: int
    email: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None
    event_name: Optional[str] = None
    expires_at: Optional[int] = None

    def slot(self) -> tuple[str, str]:
        return self.registration_id, self.event_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "registrationId": self.registration_id,
            "eventId": self.event_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "college": self.college,
            "eventName": self.event_name,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
        }
