from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from checkin_app.config import ConfigurationError, Settings
from checkin_app.core import CipherEngine, CodeDeriver, PayloadCodec
from checkin_app.data import Database
from checkin_app.models import ScanResult, ScanState
from checkin_app.services import (
    AttendanceCommitter,
    AttendanceStore,
    ManualLookupPipeline,
    PassIssuer,
    PostgrestClient,
    QRScanner,
    RegistrationDirectory,
    RegistrationLookupError,
    RestAttendanceStore,
    RestRegistrationDirectory,
    ScanPipeline,
    SqliteAttendanceStore,
    SqliteRegistrationDirectory,
)

logger = logging.getLogger(__name__)


@dataclass
class CheckInComponents:
    cipher: CipherEngine
    codec: PayloadCodec
    deriver: CodeDeriver
    store: AttendanceStore
    registrations: RegistrationDirectory
    committer: AttendanceCommitter
    database: Optional[Database] = None


def build_components(settings: Settings) -> CheckInComponents:
    secret = settings.require_secret()
    validity = timedelta(days=settings.pass_validity_days) if settings.pass_validity_days else None

    database: Optional[Database] = None
    store: AttendanceStore
    registrations: RegistrationDirectory

    if settings.storage_backend == "rest":
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY are required for the rest storage backend.")
        client = PostgrestClient(settings.supabase_url, settings.supabase_key)
        store = RestAttendanceStore(client)
        registrations = RestRegistrationDirectory(client)
    else:
        database = Database(settings.database_path)
        database.initialize()
        store = SqliteAttendanceStore(database)
        registrations = SqliteRegistrationDirectory(database)

    logger.debug("Using %s storage backend", settings.storage_backend)
    return CheckInComponents(
        cipher=CipherEngine(secret),
        codec=PayloadCodec(validity=validity),
        deriver=CodeDeriver(secret),
        store=store,
        registrations=registrations,
        committer=AttendanceCommitter(store),
        database=database,
    )


def build_issuer(components: CheckInComponents) -> PassIssuer:
    return PassIssuer(codec=components.codec, cipher=components.cipher, deriver=components.deriver)


def build_scan_pipeline(
    components: CheckInComponents,
    settings: Settings,
    *,
    coordinator_id: str,
    event_id: Optional[str],
    verify_registrations: bool = False,
    on_state_change: Optional[Callable[[ScanState], None]] = None,
    on_result: Optional[Callable[[ScanResult], None]] = None,
) -> ScanPipeline:
    try:
        event_names = components.registrations.event_names()
    except RegistrationLookupError as exc:
        logger.warning("Event names unavailable: %s", exc)
        event_names = {}

    return ScanPipeline(
        cipher=components.cipher,
        codec=components.codec,
        committer=components.committer,
        camera=QRScanner(camera_index=settings.qr_camera_index),
        coordinator_id=coordinator_id,
        event_id=event_id,
        event_names=event_names,
        registrations=components.registrations if verify_registrations else None,
        cooldown_seconds=settings.scan_cooldown_seconds,
        on_state_change=on_state_change,
        on_result=on_result,
    )


def build_manual_pipeline(
    components: CheckInComponents,
    *,
    coordinator_id: str,
    pipeline: Optional[ScanPipeline] = None,
) -> ManualLookupPipeline:
    return ManualLookupPipeline(
        deriver=components.deriver,
        registrations=components.registrations,
        committer=components.committer,
        coordinator_id=coordinator_id,
        session=pipeline.session if pipeline is not None else None,
    )
