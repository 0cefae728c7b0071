from .attendance_committer import AttendanceCommitter
from .attendance_store import (
    AttendanceStorageError,
    AttendanceStore,
    DuplicateAttendanceError,
    RestAttendanceStore,
    SqliteAttendanceStore,
)
from .manual_lookup import ManualLookupPipeline
from .pass_issuer import IssuedPass, PassIssuer, write_qr_png
from .qr_scanner import CameraError, QRScanner
from .registrations import (
    RegistrationDirectory,
    RegistrationLookupError,
    RestRegistrationDirectory,
    SqliteRegistrationDirectory,
    load_registrations_file,
)
from .rest import PostgrestClient, RestRequestError
from .scan_pipeline import ScanPipeline, TimerScheduler

__all__ = [
	"AttendanceCommitter",
	"AttendanceStorageError",
	"AttendanceStore",
	"CameraError",
	"DuplicateAttendanceError",
	"IssuedPass",
	"ManualLookupPipeline",
	"PassIssuer",
	"PostgrestClient",
	"QRScanner",
	"RegistrationDirectory",
	"RegistrationLookupError",
	"RestAttendanceStore",
	"RestRegistrationDirectory",
	"RestRequestError",
	"ScanPipeline",
	"SqliteAttendanceStore",
	"SqliteRegistrationDirectory",
	"TimerScheduler",
	"load_registrations_file",
	"write_qr_png",
]
