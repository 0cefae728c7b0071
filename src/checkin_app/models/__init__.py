from .attendance import AttendanceRecord, RecentScan, Registration, ScanSession, VerificationMethod
from .pass_payload import QRPayload
from .results import (
    CommitError,
    DecodeFailure,
    DeviceErrorReason,
    Err,
    FailureKind,
    Ok,
    ResultAction,
    ResultKind,
    ScanResult,
    ScanState,
    StartRejected,
)

__all__ = [
    "AttendanceRecord",
    "CommitError",
    "DecodeFailure",
    "DeviceErrorReason",
    "Err",
    "FailureKind",
    "Ok",
    "QRPayload",
    "RecentScan",
    "Registration",
    "ResultAction",
    "ResultKind",
    "ScanResult",
    "ScanSession",
    "ScanState",
    "StartRejected",
    "VerificationMethod",
]
