from __future__ import annotations

import logging
from typing import Optional

from checkin_app.core import CodeDeriver, is_well_formed, normalize
from checkin_app.models import RecentScan, Registration, ResultKind, ScanResult, ScanSession, VerificationMethod
from checkin_app.models import results
from checkin_app.services.attendance_committer import AttendanceCommitter
from checkin_app.services.registrations import RegistrationDirectory, RegistrationLookupError
from checkin_app.utils.time import utcnow

logger = logging.getLogger(__name__)


class ManualLookupPipeline:
    """Check attendees in from the verification code printed on their pass.

    Codes are never stored, so resolving one means recomputing the code of
    every registration in the event until one matches. The cost grows with
    the number of registrants per event.
    """

    def __init__(
        self,
        *,
        deriver: CodeDeriver,
        registrations: RegistrationDirectory,
        committer: AttendanceCommitter,
        coordinator_id: str,
        session: Optional[ScanSession] = None,
    ) -> None:
        self._deriver = deriver
        self._registrations = registrations
        self._committer = committer
        self._coordinator_id = coordinator_id
        self._session = session

    def resolve(self, event_id: str, typed_code: str) -> Optional[Registration]:
        """Return the registration of ``event_id`` whose code matches, if any.

        Raises ``RegistrationLookupError`` when registrations cannot be read.
        """

        code = normalize(typed_code)
        if not is_well_formed(code):
            return None

        for registration in self._registrations.list_for_event(event_id):
            if self._deriver.matches(code, registration.id):
                return registration
        return None

    def check_in(self, event_id: str, typed_code: str) -> ScanResult:
        if not event_id:
            return results.invalid("Please select an event first.")

        code = normalize(typed_code)
        if not is_well_formed(code):
            return results.invalid("Verification codes are 8 letters or digits.")

        try:
            registration = self.resolve(event_id, code)
        except RegistrationLookupError as exc:
            logger.error("Manual lookup failed for event %s: %s", event_id, exc)
            return results.storage_error("Could not load registrations. Check the connection and retry.")

        if registration is None:
            logger.info("No registration in event %s matches the typed code", event_id)
            return results.invalid("No registration for this event matches that code.")

        result = self._committer.check_in(
            registration_id=registration.id,
            event_id=event_id,
            attendee_name=registration.name,
            coordinator_id=self._coordinator_id,
            method=VerificationMethod.MANUAL,
        )
        if self._session is not None and result.kind in (ResultKind.SUCCESS, ResultKind.DUPLICATE):
            self._session.remember(
                RecentScan(timestamp=utcnow(), name=registration.name, event=event_id, success=result.is_success)
            )
        return result
