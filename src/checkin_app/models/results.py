from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from checkin_app.models.attendance import AttendanceRecord
from checkin_app.models.pass_payload import QRPayload

T = TypeVar("T")
E = TypeVar("E")


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class Err(Generic[E]):
    reason: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


class ScanState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    PROCESSING = "processing"
    RESULT = "result"


class ResultKind(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    MISMATCH = "mismatch"
    STORAGE_ERROR = "storage_error"
    DEVICE_FAILURE = "device_failure"


class FailureKind(str, Enum):
    DECRYPTION_FAILURE = "decryption_failure"
    INVALID_PAYLOAD = "invalid_payload"
    EVENT_MISMATCH = "event_mismatch"
    DUPLICATE_ATTENDANCE = "duplicate_attendance"
    STORAGE_FAILURE = "storage_failure"
    DEVICE_FAILURE = "device_failure"


class DeviceErrorReason(str, Enum):
    PERMISSION = "permission"
    NO_CAMERA = "no_camera"
    DEVICE_BUSY = "device_busy"


class CommitError(str, Enum):
    DUPLICATE = "duplicate"
    STORAGE = "storage"


class ResultAction(str, Enum):
    SCAN_NEXT = "scan_next"
    RETRY = "retry"


@dataclass(slots=True, frozen=True)
class DecodeFailure:
    """Opaque decrypt failure; ``message`` is safe to show an operator."""

    message: str = "This QR code is not a valid event pass."


@dataclass(slots=True, frozen=True)
class StartRejected:
    message: str


@dataclass(slots=True, frozen=True)
class ScanResult:
    kind: ResultKind
    message: str
    failure: Optional[FailureKind] = None
    attendee_name: Optional[str] = None
    payload: Optional[QRPayload] = None
    record: Optional[AttendanceRecord] = None
    device_reason: Optional[DeviceErrorReason] = None

    @property
    def action(self) -> ResultAction:
        if self.kind is ResultKind.STORAGE_ERROR:
            return ResultAction.RETRY
        return ResultAction.SCAN_NEXT

    @property
    def is_success(self) -> bool:
        return self.kind is ResultKind.SUCCESS

    @property
    def auto_resumes(self) -> bool:
        return self.kind not in (ResultKind.STORAGE_ERROR, ResultKind.DEVICE_FAILURE)


def success(message: str, *, payload: Optional[QRPayload] = None, record: AttendanceRecord, name: str) -> ScanResult:
    return ScanResult(ResultKind.SUCCESS, message, attendee_name=name, payload=payload, record=record)


def duplicate(
    message: str,
    *,
    name: Optional[str],
    payload: Optional[QRPayload] = None,
    record: Optional[AttendanceRecord] = None,
) -> ScanResult:
    return ScanResult(
        ResultKind.DUPLICATE,
        message,
        failure=FailureKind.DUPLICATE_ATTENDANCE,
        attendee_name=name,
        payload=payload,
        record=record,
    )


def invalid(message: str, *, failure: FailureKind = FailureKind.INVALID_PAYLOAD, payload: Optional[QRPayload] = None) -> ScanResult:
    return ScanResult(
        ResultKind.INVALID,
        message,
        failure=failure,
        attendee_name=payload.name if payload else None,
        payload=payload,
    )


def mismatch(message: str, *, payload: QRPayload) -> ScanResult:
    return ScanResult(
        ResultKind.MISMATCH,
        message,
        failure=FailureKind.EVENT_MISMATCH,
        attendee_name=payload.name,
        payload=payload,
    )


def storage_error(message: str, *, name: Optional[str] = None, payload: Optional[QRPayload] = None) -> ScanResult:
    return ScanResult(
        ResultKind.STORAGE_ERROR,
        message,
        failure=FailureKind.STORAGE_FAILURE,
        attendee_name=name,
        payload=payload,
    )


def device_failure(message: str, *, reason: DeviceErrorReason) -> ScanResult:
    return ScanResult(
        ResultKind.DEVICE_FAILURE,
        message,
        failure=FailureKind.DEVICE_FAILURE,
        device_reason=reason,
    )
