from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from checkin_app.models import AttendanceRecord, CommitError, Err, Ok, QRPayload, ScanResult, VerificationMethod
from checkin_app.models import results
from checkin_app.services.attendance_store import (
    AttendanceStorageError,
    AttendanceStore,
    DuplicateAttendanceError,
)
from checkin_app.utils.time import utcnow

logger = logging.getLogger(__name__)

STORAGE_FAILURE_MESSAGE = "Could not save attendance. Check the connection and retry."


class AttendanceCommitter:
    """Boundary to the shared attendance store.

    ``check_duplicate`` is a read-path shortcut that lets the operator see an
    "already checked in" answer without a write. It is not a guard: two
    devices can both pass it before either commits, so only the store's
    unique constraint, surfaced through ``commit``, decides.
    """

    def __init__(self, store: AttendanceStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def check_duplicate(self, registration_id: str, event_id: str) -> Optional[AttendanceRecord]:
        try:
            return self._store.find(registration_id, event_id)
        except AttendanceStorageError as exc:
            logger.warning("Duplicate pre-check unavailable, relying on commit: %s", exc)
            return None

    def commit(
        self,
        registration_id: str,
        event_id: str,
        coordinator_id: str,
        method: VerificationMethod,
    ) -> Ok[AttendanceRecord] | Err[CommitError]:
        record = AttendanceRecord(
            registration_id=registration_id,
            event_id=event_id,
            marked_by=coordinator_id,
            marked_at=self._clock(),
            verification_method=method,
        )
        try:
            return Ok(self._store.insert(record))
        except DuplicateAttendanceError:
            logger.info("Commit rejected as duplicate for registration %s", registration_id)
            return Err(CommitError.DUPLICATE)
        except AttendanceStorageError as exc:
            logger.error("Commit failed for registration %s: %s", registration_id, exc)
            return Err(CommitError.STORAGE)

    def check_in(
        self,
        *,
        registration_id: str,
        event_id: str,
        attendee_name: str,
        coordinator_id: str,
        method: VerificationMethod,
        payload: Optional[QRPayload] = None,
    ) -> ScanResult:
        existing = self.check_duplicate(registration_id, event_id)
        if existing is not None:
            return results.duplicate(
                "Attendance already marked for this registration.",
                name=attendee_name,
                payload=payload,
                record=existing,
            )

        outcome = self.commit(registration_id, event_id, coordinator_id, method)
        if isinstance(outcome, Ok):
            return results.success(
                "Attendance marked successfully!",
                payload=payload,
                record=outcome.value,
                name=attendee_name,
            )
        if outcome.reason is CommitError.DUPLICATE:
            return results.duplicate(
                "Attendance already marked for this registration.",
                name=attendee_name,
                payload=payload,
                record=self.check_duplicate(registration_id, event_id),
            )
        return results.storage_error(STORAGE_FAILURE_MESSAGE, name=attendee_name, payload=payload)
