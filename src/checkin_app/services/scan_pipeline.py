"""Camera check-in state machine.

::

    IDLE -> INITIALIZING -> SCANNING -> PROCESSING -> RESULT -> SCANNING
                 |                                       |
                 +-> IDLE (device failure)               +-> (cooldown or scan_next)

Decoded text arrives from the camera thread through ``on_decoded``. Only one
scan is ever in ``PROCESSING``; anything decoded meanwhile (the same pass still
in frame, typically) is dropped. The camera is paused for the whole of
``PROCESSING`` and ``RESULT`` and resumed when scanning restarts.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping, Optional, Protocol

from checkin_app.core import CipherEngine, PayloadCodec
from checkin_app.models import (
    Err,
    FailureKind,
    QRPayload,
    RecentScan,
    ResultKind,
    ScanResult,
    ScanSession,
    ScanState,
    StartRejected,
    VerificationMethod,
)
from checkin_app.models import results
from checkin_app.services.attendance_committer import AttendanceCommitter
from checkin_app.services.qr_scanner import CameraError, classify_camera_failure
from checkin_app.services.registrations import RegistrationDirectory, RegistrationLookupError
from checkin_app.utils.time import utcnow

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 2.0
INVALID_PASS_MESSAGE = "Invalid QR code. This may not be a valid event pass."
PROCESSING_FAILURE_MESSAGE = "An error occurred while processing. Please try again."


class CameraSource(Protocol):
    def start(self, on_payload: Callable[[str], None], *, on_error: Optional[Callable[[str], None]] = None) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class TimerScheduler:
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class ScanPipeline:
    def __init__(
        self,
        *,
        cipher: CipherEngine,
        codec: PayloadCodec,
        committer: AttendanceCommitter,
        camera: CameraSource,
        coordinator_id: str,
        event_id: Optional[str] = None,
        event_names: Optional[Mapping[str, str]] = None,
        registrations: Optional[RegistrationDirectory] = None,
        cooldown_seconds: Optional[float] = DEFAULT_COOLDOWN_SECONDS,
        scheduler: Optional[Scheduler] = None,
        on_state_change: Optional[Callable[[ScanState], None]] = None,
        on_result: Optional[Callable[[ScanResult], None]] = None,
    ) -> None:
        self._cipher = cipher
        self._codec = codec
        self._committer = committer
        self._camera = camera
        self._coordinator_id = coordinator_id
        self._event_id = event_id
        self._event_names = dict(event_names or {})
        self._registrations = registrations
        self._cooldown_seconds = cooldown_seconds
        self._scheduler = scheduler or TimerScheduler()
        self._on_state_change = on_state_change
        self._on_result = on_result

        self._lock = threading.RLock()
        self._state = ScanState.IDLE
        self._session = ScanSession()
        self._cooldown: Optional[Cancellable] = None
        self._cooldown_generation = 0
        self._stop_requested = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def session(self) -> ScanSession:
        return self._session

    @property
    def event_id(self) -> Optional[str]:
        return self._event_id

    def select_event(self, event_id: str) -> bool:
        """Switch the selected event. Refused while processing or for an empty id."""

        if not event_id:
            return False
        with self._lock:
            if self._state is ScanState.PROCESSING:
                return False
            self._event_id = event_id
            return True

    def start(self, event_id: Optional[str] = None) -> Optional[ScanResult | StartRejected]:
        """Acquire the camera and begin scanning.

        Returns ``None`` once scanning, a ``StartRejected`` when no event is
        selected or a scan is still being processed, or a device-failure
        ``ScanResult`` when the camera cannot be acquired.
        """

        with self._lock:
            if event_id:
                self._event_id = event_id
            if not self._event_id:
                return StartRejected("Please select an event first.")
            if self._state is ScanState.PROCESSING:
                return StartRejected("Still processing the previous scan.")
            if self._state is not ScanState.IDLE:
                return None
            self._stop_requested = False
            self._set_state(ScanState.INITIALIZING)

        try:
            self._camera.start(self.on_decoded, on_error=self._handle_camera_error)
        except Exception as exc:
            reason = exc.reason if isinstance(exc, CameraError) else classify_camera_failure(exc)
            message = str(exc) if isinstance(exc, CameraError) else "Failed to start camera. Use manual code entry instead."
            logger.warning("Camera acquisition failed (%s)", reason.value)
            result = results.device_failure(message, reason=reason)
            with self._lock:
                self._session.current_result = result
                self._set_state(ScanState.IDLE)
            self._emit_result(result)
            return result

        with self._lock:
            if self._state is ScanState.INITIALIZING:
                self._set_state(ScanState.SCANNING)
        logger.info("Scanner started for event %s", self._event_id)
        return None

    def on_decoded(self, raw_text: str) -> Optional[ScanResult]:
        """Handle one decoded QR string. Returns ``None`` when it was ignored."""

        raw = raw_text.strip() if isinstance(raw_text, str) else raw_text
        if not raw:
            return None

        with self._lock:
            if self._state is ScanState.PROCESSING:
                if raw == self._session.last_decoded_text:
                    logger.debug("Ignoring repeated decode while processing")
                else:
                    logger.debug("Ignoring decode while another scan is processing")
                return None
            if self._state is not ScanState.SCANNING:
                return None
            event_id = self._event_id
            self._begin_processing(raw)

        return self._finish(self._process(raw, event_id))

    def scan_next(self) -> bool:
        with self._lock:
            if self._state is not ScanState.RESULT:
                return False
            self._cancel_cooldown()
            self._resume_scanning()
            return True

    def retry(self) -> Optional[ScanResult]:
        """Re-run the last scan after a storage failure."""

        with self._lock:
            current = self._session.current_result
            if self._state is not ScanState.RESULT or current is None or current.kind is not ResultKind.STORAGE_ERROR:
                return None
            raw = self._session.last_decoded_text
            if not raw:
                return None
            self._cancel_cooldown()
            event_id = self._event_id
            self._begin_processing(raw)

        return self._finish(self._process(raw, event_id))

    def stop(self) -> None:
        """Cancel the camera stream. An in-flight commit still completes."""

        with self._lock:
            self._cancel_cooldown()
            if self._state is ScanState.PROCESSING:
                self._stop_requested = True
            elif self._state is not ScanState.IDLE:
                self._set_state(ScanState.IDLE)
        self._camera.stop()
        logger.info("Scanner stopped")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def _process(self, raw: str, event_id: Optional[str]) -> ScanResult:
        try:
            return self._evaluate(raw, event_id)
        except Exception:
            logger.exception("Unexpected failure while processing a scan")
            return results.storage_error(PROCESSING_FAILURE_MESSAGE)

    def _evaluate(self, raw: str, event_id: Optional[str]) -> ScanResult:
        decrypted = self._cipher.decrypt(raw)
        if isinstance(decrypted, Err):
            return results.invalid(INVALID_PASS_MESSAGE, failure=FailureKind.DECRYPTION_FAILURE)

        validated = self._codec.validate(decrypted.value)
        if isinstance(validated, Err):
            logger.info("Rejected pass payload: %s", validated.reason)
            return results.invalid(f"{INVALID_PASS_MESSAGE} {validated.reason}")

        payload = validated.value
        if payload.event_id != event_id:
            return results.mismatch(
                f"This pass is for {self._event_label(payload)}, not the selected event.",
                payload=payload,
            )

        if self._registrations is not None:
            try:
                registration = self._registrations.get(payload.registration_id)
            except RegistrationLookupError as exc:
                logger.error("Registration lookup failed: %s", exc)
                return results.storage_error(
                    "Could not verify the registration. Check the connection and retry.",
                    name=payload.name,
                    payload=payload,
                )
            if registration is None or registration.event_id != payload.event_id:
                return results.invalid("Registration not found in system.", payload=payload)

        return self._committer.check_in(
            registration_id=payload.registration_id,
            event_id=payload.event_id,
            attendee_name=payload.name,
            coordinator_id=self._coordinator_id,
            method=VerificationMethod.QR_SCAN,
            payload=payload,
        )

    def _event_label(self, payload: QRPayload) -> str:
        return self._event_names.get(payload.event_id) or payload.event_name or "another event"

    # ------------------------------------------------------------------
    # State helpers (call with the lock held)
    # ------------------------------------------------------------------
    def _begin_processing(self, raw: str) -> None:
        self._session.last_decoded_text = raw
        self._session.processing = True
        self._camera.pause()
        self._set_state(ScanState.PROCESSING)

    def _finish(self, result: ScanResult) -> ScanResult:
        with self._lock:
            self._session.processing = False
            self._session.current_result = result
            if result.payload is not None:
                self._session.remember(
                    RecentScan(
                        timestamp=utcnow(),
                        name=result.payload.name,
                        event=self._event_label(result.payload),
                        success=result.is_success,
                    )
                )

            if self._stop_requested:
                self._stop_requested = False
                self._set_state(ScanState.IDLE)
            else:
                self._set_state(ScanState.RESULT)
                if result.auto_resumes and self._cooldown_seconds is not None:
                    self._schedule_cooldown()

        logger.info("Scan finished: %s", result.kind.value)
        self._emit_result(result)
        return result

    def _schedule_cooldown(self) -> None:
        self._cooldown_generation += 1
        generation = self._cooldown_generation
        self._cooldown = self._scheduler.call_later(
            float(self._cooldown_seconds or 0.0),
            lambda: self._cooldown_elapsed(generation),
        )

    def _cooldown_elapsed(self, generation: int) -> None:
        with self._lock:
            if generation != self._cooldown_generation or self._state is not ScanState.RESULT:
                return
            self._cooldown = None
            self._resume_scanning()

    def _cancel_cooldown(self) -> None:
        self._cooldown_generation += 1
        if self._cooldown is not None:
            self._cooldown.cancel()
            self._cooldown = None

    def _resume_scanning(self) -> None:
        self._set_state(ScanState.SCANNING)
        self._camera.resume()

    def _set_state(self, state: ScanState) -> None:
        if state is self._state:
            return
        logger.debug("Scanner state %s -> %s", self._state.value, state.value)
        self._state = state
        if self._on_state_change:
            try:
                self._on_state_change(state)
            except Exception:  # pragma: no cover - listener faults
                logger.exception("State listener failed")

    def _emit_result(self, result: ScanResult) -> None:
        if self._on_result:
            try:
                self._on_result(result)
            except Exception:  # pragma: no cover - listener faults
                logger.exception("Result listener failed")

    def _handle_camera_error(self, message: str) -> None:
        result = results.device_failure(message, reason=classify_camera_failure(message))
        with self._lock:
            self._cancel_cooldown()
            if self._state is ScanState.PROCESSING:
                self._stop_requested = True
                return
            self._session.current_result = result
            self._set_state(ScanState.IDLE)
        self._emit_result(result)
