from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from checkin_app.data import Database
from checkin_app.models import Registration
from checkin_app.services.rest import PostgrestClient, RestRequestError

logger = logging.getLogger(__name__)

REGISTRATIONS_TABLE = "registrations"
EVENTS_TABLE = "events"


class RegistrationLookupError(RuntimeError):
    """Raised when registrations cannot be read from the registration source."""


class RegistrationDirectory(Protocol):
    """Read-only view of the external registration subsystem."""

    def list_for_event(self, event_id: str) -> list[Registration]: ...

    def get(self, registration_id: str) -> Optional[Registration]: ...

    def event_names(self) -> dict[str, str]: ...


def load_registrations_file(path: Path) -> list[Registration]:
    """Read registrations exported as a JSON list (or ``{"registrations": [...]}``)."""

    with Path(path).open("r", encoding="utf-8") as handle:
        payload: Any = json.load(handle)

    if isinstance(payload, dict):
        payload = payload.get("registrations", [])
    if not isinstance(payload, list):
        raise ValueError("Registration file must contain a list of registrations.")

    return [Registration.from_mapping(entry) for entry in payload]


class SqliteRegistrationDirectory:
    """Local mirror of registrations, filled by ``import-registrations``."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def list_for_event(self, event_id: str) -> list[Registration]:
        try:
            with self._database.connect() as connection:
                rows = connection.execute(
                    """
                    SELECT id, event_id, name, email, phone, college
                      FROM registrations
                     WHERE event_id = ?
                  ORDER BY id
                    """,
                    (event_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise RegistrationLookupError("Could not read registrations.") from exc
        return [self._row_to_registration(row) for row in rows]

    def get(self, registration_id: str) -> Optional[Registration]:
        try:
            with self._database.connect() as connection:
                row = connection.execute(
                    "SELECT id, event_id, name, email, phone, college FROM registrations WHERE id = ?",
                    (registration_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise RegistrationLookupError("Could not read registration.") from exc
        return self._row_to_registration(row) if row else None

    def event_names(self) -> dict[str, str]:
        try:
            with self._database.connect() as connection:
                rows = connection.execute("SELECT id, name FROM events").fetchall()
        except sqlite3.Error as exc:
            raise RegistrationLookupError("Could not read events.") from exc
        return {row["id"]: row["name"] for row in rows}

    def upsert_many(self, registrations: Iterable[Registration]) -> int:
        count = 0
        with self._database.connect() as connection:
            for registration in registrations:
                connection.execute(
                    """
                    INSERT INTO registrations (id, event_id, name, email, phone, college)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        event_id = excluded.event_id,
                        name = excluded.name,
                        email = excluded.email,
                        phone = excluded.phone,
                        college = excluded.college
                    """,
                    (
                        registration.id,
                        registration.event_id,
                        registration.name,
                        registration.email,
                        registration.phone,
                        registration.college,
                    ),
                )
                count += 1
        logger.info("Imported %d registrations", count)
        return count

    def upsert_event(self, event_id: str, name: str) -> None:
        with self._database.connect() as connection:
            connection.execute(
                "INSERT INTO events (id, name) VALUES (?, ?) ON CONFLICT(id) DO UPDATE SET name = excluded.name",
                (event_id, name),
            )

    @staticmethod
    def _row_to_registration(row: sqlite3.Row) -> Registration:
        return Registration(
            id=row["id"],
            event_id=row["event_id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            college=row["college"],
        )


class RestRegistrationDirectory:
    def __init__(
        self,
        client: PostgrestClient,
        *,
        table: str = REGISTRATIONS_TABLE,
        events_table: str = EVENTS_TABLE,
    ) -> None:
        self._client = client
        self._table = table
        self._events_table = events_table

    def list_for_event(self, event_id: str) -> list[Registration]:
        rows = self._select(self._table, {"select": "*", "event_id": f"eq.{event_id}"})
        registrations: list[Registration] = []
        for row in rows:
            try:
                registrations.append(Registration.from_mapping(row))
            except ValueError:
                logger.warning("Skipping incomplete registration row for event %s", event_id)
        return registrations

    def get(self, registration_id: str) -> Optional[Registration]:
        rows = self._select(self._table, {"select": "*", "id": f"eq.{registration_id}", "limit": "1"})
        if not rows:
            return None
        try:
            return Registration.from_mapping(rows[0])
        except ValueError:
            return None

    def event_names(self) -> dict[str, str]:
        rows = self._select(self._events_table, {"select": "id,name"})
        return {str(row["id"]): str(row["name"]) for row in rows if row.get("id")}

    def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        try:
            return self._client.select(table, params=params)
        except RestRequestError as exc:
            raise RegistrationLookupError(str(exc)) from exc
