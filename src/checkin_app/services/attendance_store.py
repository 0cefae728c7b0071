from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol

from checkin_app.data import Database
from checkin_app.models import AttendanceRecord, VerificationMethod
from checkin_app.services.rest import PostgrestClient, RestRequestError
from checkin_app.utils.time import coerce_datetime

logger = logging.getLogger(__name__)

ATTENDANCE_TABLE = "attendance"


class DuplicateAttendanceError(RuntimeError):
    """Raised when the registration has already been checked in for the event."""


class AttendanceStorageError(RuntimeError):
    """Raised when the attendance store rejects a write or cannot be reached."""


class AttendanceStore(Protocol):
    """Shared attendance table.

    ``insert`` must be atomic insert-if-absent on ``(registration_id, event_id)``
    and raise ``DuplicateAttendanceError`` when the slot is already taken.
    """

    def find(self, registration_id: str, event_id: str) -> Optional[AttendanceRecord]: ...

    def insert(self, record: AttendanceRecord) -> AttendanceRecord: ...

    def count_marked_by(self, coordinator_id: str, since: datetime) -> int: ...

    def recent_for_coordinator(self, coordinator_id: str, limit: int = 10) -> list[AttendanceRecord]: ...


def _row_to_record(row: Mapping[str, Any]) -> AttendanceRecord:
    return AttendanceRecord(
        registration_id=str(row["registration_id"]),
        event_id=str(row["event_id"]),
        marked_by=str(row["marked_by"]),
        marked_at=coerce_datetime(row["marked_at"]),
        verification_method=VerificationMethod(row["verification_method"]),
    )


def _record_to_row(record: AttendanceRecord) -> dict[str, str]:
    return {
        "registration_id": record.registration_id,
        "event_id": record.event_id,
        "marked_by": record.marked_by,
        "marked_at": record.marked_at.isoformat(),
        "verification_method": record.verification_method.value,
    }


class SqliteAttendanceStore:
    def __init__(self, database: Database) -> None:
        self._database = database

    def initialize(self) -> None:
        self._database.initialize()

    def find(self, registration_id: str, event_id: str) -> Optional[AttendanceRecord]:
        try:
            with self._database.connect() as connection:
                row = connection.execute(
                    """
                    SELECT registration_id, event_id, marked_by, marked_at, verification_method
                      FROM attendance
                     WHERE registration_id = ?
                       AND event_id = ?
                    """,
                    (registration_id, event_id),
                ).fetchone()
        except sqlite3.Error as exc:
            raise AttendanceStorageError("Attendance lookup failed.") from exc

        return _row_to_record(row) if row else None

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        row = _record_to_row(record)
        try:
            with self._database.connect() as connection:
                connection.execute(
                    """
                    INSERT INTO attendance (
                        registration_id, event_id, marked_by, marked_at, verification_method
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        row["registration_id"],
                        row["event_id"],
                        row["marked_by"],
                        row["marked_at"],
                        row["verification_method"],
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise DuplicateAttendanceError("Attendance already marked for this registration.") from exc
            raise AttendanceStorageError("Attendance write was rejected.") from exc
        except sqlite3.Error as exc:
            raise AttendanceStorageError("Attendance write failed.") from exc

        return record

    def count_marked_by(self, coordinator_id: str, since: datetime) -> int:
        try:
            with self._database.connect() as connection:
                rows = connection.execute(
                    "SELECT marked_at FROM attendance WHERE marked_by = ?",
                    (coordinator_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise AttendanceStorageError("Attendance count failed.") from exc

        threshold = coerce_datetime(since)
        return sum(1 for row in rows if coerce_datetime(row["marked_at"]) >= threshold)

    def recent_for_coordinator(self, coordinator_id: str, limit: int = 10) -> list[AttendanceRecord]:
        try:
            with self._database.connect() as connection:
                rows = connection.execute(
                    """
                    SELECT registration_id, event_id, marked_by, marked_at, verification_method
                      FROM attendance
                     WHERE marked_by = ?
                  ORDER BY marked_at DESC, id DESC
                     LIMIT ?
                    """,
                    (coordinator_id, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise AttendanceStorageError("Attendance history lookup failed.") from exc

        return [_row_to_record(row) for row in rows]


class RestAttendanceStore:
    """Attendance table behind Supabase/PostgREST.

    The table must carry a unique constraint on ``(registration_id, event_id)``;
    PostgREST reports a violation as HTTP 409 with code ``23505``.
    """

    def __init__(self, client: PostgrestClient, *, table: str = ATTENDANCE_TABLE) -> None:
        self._client = client
        self._table = table

    def find(self, registration_id: str, event_id: str) -> Optional[AttendanceRecord]:
        try:
            rows = self._client.select(
                self._table,
                params={
                    "select": "registration_id,event_id,marked_by,marked_at,verification_method",
                    "registration_id": f"eq.{registration_id}",
                    "event_id": f"eq.{event_id}",
                    "limit": "1",
                },
            )
        except RestRequestError as exc:
            raise AttendanceStorageError(str(exc)) from exc

        return _row_to_record(rows[0]) if rows else None

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        try:
            self._client.insert(self._table, _record_to_row(record))
        except RestRequestError as exc:
            if exc.is_unique_violation:
                raise DuplicateAttendanceError("Attendance already marked for this registration.") from exc
            raise AttendanceStorageError(str(exc)) from exc
        return record

    def count_marked_by(self, coordinator_id: str, since: datetime) -> int:
        try:
            rows = self._client.select(
                self._table,
                params={
                    "select": "registration_id",
                    "marked_by": f"eq.{coordinator_id}",
                    "marked_at": f"gte.{coerce_datetime(since).isoformat()}",
                },
            )
        except RestRequestError as exc:
            raise AttendanceStorageError(str(exc)) from exc
        return len(rows)

    def recent_for_coordinator(self, coordinator_id: str, limit: int = 10) -> list[AttendanceRecord]:
        try:
            rows = self._client.select(
                self._table,
                params={
                    "select": "registration_id,event_id,marked_by,marked_at,verification_method",
                    "marked_by": f"eq.{coordinator_id}",
                    "order": "marked_at.desc",
                    "limit": str(limit),
                },
            )
        except RestRequestError as exc:
            raise AttendanceStorageError(str(exc)) from exc
        return [_row_to_record(row) for row in rows]
