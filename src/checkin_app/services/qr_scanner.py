from __future__ import annotations

import logging
import threading
import time
import unicodedata
from contextlib import suppress
from typing import Any, Callable, Optional

from checkin_app.models import DeviceErrorReason

logger = logging.getLogger(__name__)

SCAN_INTERVAL_SECONDS = 0.08
DEDUP_INTERVAL_SECONDS = 0.8
PREVIEW_INTERVAL_SECONDS = 0.07
PREVIEW_MAX_WIDTH = 480

_PERMISSION_HINTS = ("permission", "denied", "not authorized", "notallowed")
_BUSY_HINTS = ("busy", "in use", "resource", "notreadable")


class CameraError(RuntimeError):
    def __init__(self, reason: DeviceErrorReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


def classify_camera_failure(error: BaseException | str | None) -> DeviceErrorReason:
    if isinstance(error, PermissionError):
        return DeviceErrorReason.PERMISSION
    text = str(error or "").lower()
    if any(hint in text for hint in _PERMISSION_HINTS):
        return DeviceErrorReason.PERMISSION
    if any(hint in text for hint in _BUSY_HINTS):
        return DeviceErrorReason.DEVICE_BUSY
    return DeviceErrorReason.NO_CAMERA


def _decode_symbol_data(raw: bytes | str) -> str:
    if not raw:
        return ""

    if isinstance(raw, str):
        decoded = raw
    else:
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError:
            decoded = raw.decode("utf-8", errors="ignore")

    normalized = unicodedata.normalize("NFC", decoded)
    return normalized.strip()


class QRScanner:
    """Camera capture plus QR decoding on a background thread."""

    def __init__(self, camera_index: int = 0) -> None:
        self._camera_index = camera_index
        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._paused = threading.Event()
        self._lock = threading.Lock()
        self._capture: Any = None
        self._cv2: Any = None
        self._zxing: Any = None

    def open(self) -> None:
        """Acquire the camera or raise ``CameraError`` with a typed reason."""

        with self._lock:
            if self._capture is not None:
                return

            try:
                import cv2  # type: ignore[import-not-found]
                import zxingcpp  # type: ignore[import-not-found]
            except ImportError as exc:
                raise CameraError(
                    DeviceErrorReason.NO_CAMERA,
                    "Missing QR scanner dependencies. Install OpenCV (cv2) and zxing-cpp to enable scanning.",
                ) from exc

            self._cv2 = cv2
            self._zxing = zxingcpp
            self._capture = self._open_capture(cv2)

    def start(
        self,
        on_payload: Callable[[str], None],
        *,
        on_error: Optional[Callable[[str], None]] = None,
        on_frame: Optional[Callable[[Any], None]] = None,
    ) -> None:
        """Start the background decode loop on an opened camera."""

        self.open()

        with self._lock:
            if self._running:
                return

            stop_event = threading.Event()
            self._stop_event = stop_event
            self._paused.clear()

            def _runner() -> None:
                self._run_loop(on_payload, on_error, on_frame, stop_event)

            self._thread = threading.Thread(target=_runner, name="qr-scanner", daemon=True)
            self._running = True
            self._thread.start()

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._stop_event.set()
            thread = self._thread

        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.5)
        self._thread = None
        self._release()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_loop(
        self,
        on_payload: Callable[[str], None],
        on_error: Optional[Callable[[str], None]],
        on_frame: Optional[Callable[[Any], None]],
        stop_event: threading.Event,
    ) -> None:
        cv2_module = self._cv2
        zxing_module = self._zxing
        capture = self._capture
        last_payload: Optional[str] = None
        last_timestamp: float = 0.0
        last_preview: float = 0.0

        try:
            while not stop_event.is_set():
                ok, frame = capture.read()
                if not ok:
                    time.sleep(SCAN_INTERVAL_SECONDS)
                    continue

                now = time.time()

                if on_frame and (now - last_preview) >= PREVIEW_INTERVAL_SECONDS:
                    preview_frame = frame
                    if PREVIEW_MAX_WIDTH and preview_frame.shape[1] > PREVIEW_MAX_WIDTH:
                        scale = PREVIEW_MAX_WIDTH / float(preview_frame.shape[1])
                        height = int(preview_frame.shape[0] * scale)
                        preview_frame = cv2_module.resize(preview_frame, (PREVIEW_MAX_WIDTH, height))
                    try:
                        on_frame(preview_frame.copy())
                    except Exception:  # pragma: no cover - preview consumer faults
                        logger.debug("Preview callback failed", exc_info=True)
                    last_preview = now

                if self._paused.is_set():
                    time.sleep(SCAN_INTERVAL_SECONDS)
                    continue

                try:
                    decoded = zxing_module.read_barcodes(
                        frame,
                        formats=zxing_module.BarcodeFormat.QRCode,
                        try_rotate=True,
                        try_downscale=True,
                        text_mode=zxing_module.TextMode.HRI,
                    )
                except Exception:
                    logger.debug("Frame decode failed", exc_info=True)
                    decoded = []

                for obj in decoded or []:
                    if hasattr(obj, "valid") and not obj.valid:
                        continue
                    if getattr(obj, "error", None):
                        continue

                    payload = _decode_symbol_data(getattr(obj, "text", ""))
                    if not payload:
                        payload_bytes = getattr(obj, "bytes", b"") or b""
                        if not isinstance(payload_bytes, (bytes, bytearray)):
                            payload_bytes = bytes(payload_bytes)
                        payload = _decode_symbol_data(payload_bytes)
                    if not payload:
                        continue

                    if last_payload == payload and (now - last_timestamp) < DEDUP_INTERVAL_SECONDS:
                        continue

                    last_payload = payload
                    last_timestamp = now

                    try:
                        on_payload(payload)
                    except Exception:  # pragma: no cover - guard callback faults
                        logger.exception("QR payload handler failed")

                    if self._paused.is_set() or stop_event.is_set():
                        break

                time.sleep(SCAN_INTERVAL_SECONDS)
        except Exception as exc:  # pragma: no cover - hardware faults
            logger.exception("Camera loop stopped unexpectedly")
            if on_error:
                on_error(f"Camera stopped: {type(exc).__name__}")
        finally:
            with self._lock:
                if self._capture is capture:
                    self._running = False
            self._release(capture)

    def _release(self, owned: Any = None) -> None:
        """Release the open capture, or only ``owned`` when a loop is shutting down."""

        with self._lock:
            if owned is None:
                capture, self._capture = self._capture, None
            elif owned is self._capture:
                capture, self._capture = owned, None
            else:
                capture = owned
        if capture is not None:
            with suppress(Exception):
                capture.release()

    def _open_capture(self, cv2_module):
        backend_preferences = [getattr(cv2_module, "CAP_DSHOW", None), getattr(cv2_module, "CAP_ANY", None)]
        last_error: BaseException | None = None

        for backend in backend_preferences:
            try:
                if backend is None:
                    capture = cv2_module.VideoCapture(self._camera_index)
                else:
                    capture = cv2_module.VideoCapture(self._camera_index, backend)
            except Exception as exc:
                last_error = exc
                continue

            if capture.isOpened():
                logger.info("Camera %s opened", self._camera_index)
                return capture

            capture.release()

        reason = classify_camera_failure(last_error)
        messages = {
            DeviceErrorReason.PERMISSION: "Camera permission denied. Allow camera access, or use manual code entry.",
            DeviceErrorReason.DEVICE_BUSY: "Camera is in use by another app. Close it and try again, or use manual code entry.",
            DeviceErrorReason.NO_CAMERA: "Unable to access the camera. Check that it is connected, or use manual code entry.",
        }
        raise CameraError(reason, messages[reason])
