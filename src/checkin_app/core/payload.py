from __future__ import annotations

import math
from datetime import timedelta
from numbers import Real
from typing import Any, Mapping, Optional

from checkin_app.models.attendance import Registration
from checkin_app.models.pass_payload import QRPayload
from checkin_app.models.results import Err, Ok
from checkin_app.utils.time import now_ms

DEFAULT_VALIDITY = timedelta(days=30)

_REQUIRED_TEXT_FIELDS = ("registrationId", "eventId", "name")
_OPTIONAL_TEXT_FIELDS = ("email", "phone", "college", "eventName")


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


class PayloadCodec:
    def __init__(self, *, validity: Optional[timedelta] = DEFAULT_VALIDITY) -> None:
        self._validity = validity

    def build(self, registration: Registration, event_name: Optional[str], *, issued_at: Optional[int] = None) -> QRPayload:
        issued = int(issued_at) if issued_at is not None else now_ms()
        expires = issued + int(self._validity.total_seconds() * 1000) if self._validity is not None else None
        return QRPayload(
            registration_id=registration.id,
            event_id=registration.event_id,
            name=registration.name,
            issued_at=issued,
            email=registration.email,
            phone=registration.phone,
            college=registration.college,
            event_name=event_name or None,
            expires_at=expires,
        )

    def validate(self, candidate: Any, *, now: Optional[int] = None) -> Ok[QRPayload] | Err[str]:
        """Check a decrypted object and turn it into a ``QRPayload``.

        Accepts the legacy ``timestamp`` key in place of ``issuedAt``.
        """

        if not isinstance(candidate, Mapping):
            return Err("Payload is not an object.")

        for key in _REQUIRED_TEXT_FIELDS:
            value = candidate.get(key)
            if not isinstance(value, str) or not value.strip():
                return Err(f"Field '{key}' must be a non-empty string.")

        for key in _OPTIONAL_TEXT_FIELDS:
            value = candidate.get(key)
            if value is not None and not isinstance(value, str):
                return Err(f"Field '{key}' must be a string.")

        issued_at = candidate.get("issuedAt", candidate.get("timestamp"))
        if not _is_number(issued_at):
            return Err("Field 'issuedAt' must be a number.")

        expires_at = candidate.get("expiresAt")
        if expires_at is not None:
            if not _is_number(expires_at):
                return Err("Field 'expiresAt' must be a number.")
            reference = now if now is not None else now_ms()
            if reference > expires_at:
                return Err("Pass has expired.")

        return Ok(
            QRPayload(
                registration_id=candidate["registrationId"],
                event_id=candidate["eventId"],
                name=candidate["name"],
                issued_at=int(issued_at),
                email=candidate.get("email"),
                phone=candidate.get("phone"),
                college=candidate.get("college"),
                event_name=candidate.get("eventName"),
                expires_at=int(expires_at) if expires_at is not None else None,
            )
        )
