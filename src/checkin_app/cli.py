from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from checkin_app.bootstrap import (
    CheckInComponents,
    build_components,
    build_issuer,
    build_manual_pipeline,
    build_scan_pipeline,
)
from checkin_app.config import ConfigurationError
from checkin_app.config.settings import Settings, load_settings, user_settings_store
from checkin_app.models import ResultAction, ResultKind, ScanResult, ScanState, StartRejected
from checkin_app.services import (
    AttendanceStorageError,
    SqliteRegistrationDirectory,
    load_registrations_file,
    write_qr_png,
)
from checkin_app.utils import format_relative_time, start_of_day

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

_RESULT_LABELS = {
    ResultKind.SUCCESS: "CHECKED IN",
    ResultKind.DUPLICATE: "ALREADY CHECKED IN",
    ResultKind.INVALID: "INVALID",
    ResultKind.MISMATCH: "WRONG EVENT",
    ResultKind.STORAGE_ERROR: "NOT SAVED",
    ResultKind.DEVICE_FAILURE: "CAMERA UNAVAILABLE",
}


def format_result(result: ScanResult) -> str:
    label = _RESULT_LABELS[result.kind]
    name = f" {result.attendee_name}:" if result.attendee_name else ""
    if result.action is ResultAction.RETRY:
        hint = "press Enter to retry"
    elif result.kind is ResultKind.DEVICE_FAILURE:
        hint = "type 'm <code>' for manual entry"
    else:
        hint = "press Enter to scan next"
    return f"[{label}]{name} {result.message} ({hint})"


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _coordinator(args: argparse.Namespace, settings: Settings) -> str:
    coordinator_id = getattr(args, "coordinator", None) or settings.require_coordinator()
    if coordinator_id != user_settings_store.get("coordinator_id"):
        user_settings_store.update(coordinator_id=coordinator_id)
    return coordinator_id


def _event(args: argparse.Namespace) -> Optional[str]:
    event_id = getattr(args, "event", None) or user_settings_store.get("last_event_id")
    if event_id and event_id != user_settings_store.get("last_event_id"):
        user_settings_store.update(last_event_id=event_id)
    return event_id


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
def cmd_issue(args: argparse.Namespace, settings: Settings, components: CheckInComponents) -> int:
    registrations = load_registrations_file(args.registrations)
    issuer = build_issuer(components)

    for registration in registrations:
        issued = issuer.issue(registration, args.event_name)
        line = {"registrationId": registration.id, "verificationCode": issued.verification_code, "pass": issued.token}
        if args.png_dir:
            png_path = write_qr_png(issued.token, Path(args.png_dir) / f"{registration.id}.png")
            line["png"] = str(png_path)
        print(json.dumps(line))
    return EXIT_OK


def cmd_code(args: argparse.Namespace, settings: Settings, components: CheckInComponents) -> int:
    print(components.deriver.code(args.registration_id))
    return EXIT_OK


def cmd_import(args: argparse.Namespace, settings: Settings, components: CheckInComponents) -> int:
    if components.database is None:
        print("Importing registrations is only available with the sqlite backend.", file=sys.stderr)
        return EXIT_CONFIG

    directory = SqliteRegistrationDirectory(components.database)
    count = directory.upsert_many(load_registrations_file(args.registrations))
    for mapping in args.event_name or []:
        event_id, _, name = mapping.partition("=")
        if event_id and name:
            directory.upsert_event(event_id.strip(), name.strip())
    print(f"Imported {count} registrations.")
    return EXIT_OK


def cmd_manual(args: argparse.Namespace, settings: Settings, components: CheckInComponents) -> int:
    event_id = _event(args)
    if not event_id:
        print("Please select an event first (--event).", file=sys.stderr)
        return EXIT_FAILED

    pipeline = build_manual_pipeline(components, coordinator_id=_coordinator(args, settings))
    result = pipeline.check_in(event_id, args.code)
    print(format_result(result))
    return EXIT_OK if result.kind in (ResultKind.SUCCESS, ResultKind.DUPLICATE) else EXIT_FAILED


def cmd_scan(args: argparse.Namespace, settings: Settings, components: CheckInComponents) -> int:
    coordinator_id = _coordinator(args, settings)

    def _on_result(result: ScanResult) -> None:
        print(format_result(result), flush=True)

    def _on_state(state: ScanState) -> None:
        if state is ScanState.SCANNING:
            print("Scanning…", flush=True)

    pipeline = build_scan_pipeline(
        components,
        settings,
        coordinator_id=coordinator_id,
        event_id=_event(args),
        verify_registrations=args.verify_registrations,
        on_state_change=_on_state,
        on_result=_on_result,
    )
    manual = build_manual_pipeline(components, coordinator_id=coordinator_id, pipeline=pipeline)

    started = pipeline.start()
    if isinstance(started, StartRejected):
        print(started.message, file=sys.stderr)
        return EXIT_FAILED

    print("Commands: Enter = scan next / retry, 'm <code>' = manual entry, 'q' = quit.")
    try:
        for line in sys.stdin:
            command = line.strip()
            if command.lower() in ("q", "quit", "exit"):
                break
            if command.lower().startswith("m "):
                print(format_result(manual.check_in(pipeline.event_id or "", command[2:])), flush=True)
                continue
            current = pipeline.session.current_result
            if pipeline.state is ScanState.RESULT and current is not None and current.action is ResultAction.RETRY:
                pipeline.retry()
            elif pipeline.state is ScanState.IDLE:
                pipeline.start()
            else:
                pipeline.scan_next()
    except KeyboardInterrupt:
        pass
    finally:
        pipeline.stop()

    session = pipeline.session
    print(f"Checked in this session: {session.checked_in_count}")
    return EXIT_OK


def cmd_recent(args: argparse.Namespace, settings: Settings, components: CheckInComponents) -> int:
    coordinator_id = _coordinator(args, settings)
    try:
        today = components.store.count_marked_by(coordinator_id, start_of_day())
        records = components.store.recent_for_coordinator(coordinator_id, limit=args.limit)
    except AttendanceStorageError as exc:
        print(f"Could not load attendance: {exc}", file=sys.stderr)
        return EXIT_FAILED

    print(f"Checked in today by {coordinator_id}: {today}")
    for record in records:
        print(
            f"{format_relative_time(record.marked_at):>16}  {record.event_id}  "
            f"{record.registration_id}  {record.verification_method.value}"
        )
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="checkin-app", description="Event pass issuance and check-in.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    issue = subparsers.add_parser("issue", help="Issue encrypted passes for registrations in a JSON file")
    issue.add_argument("registrations", type=Path)
    issue.add_argument("--event-name", default=None)
    issue.add_argument("--png-dir", type=Path, default=None, help="Write one QR PNG per registration here")
    issue.set_defaults(handler=cmd_issue)

    code = subparsers.add_parser("code", help="Print the verification code of a registration")
    code.add_argument("registration_id")
    code.set_defaults(handler=cmd_code)

    importer = subparsers.add_parser("import-registrations", help="Load registrations into the local database")
    importer.add_argument("registrations", type=Path)
    importer.add_argument("--event-name", action="append", metavar="EVENT_ID=NAME")
    importer.set_defaults(handler=cmd_import)

    for name, handler, help_text in (
        ("scan", cmd_scan, "Scan passes with the camera"),
        ("manual", cmd_manual, "Check in with a typed verification code"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--event", default=None)
        sub.add_argument("--coordinator", default=None)
        sub.set_defaults(handler=handler)
        if name == "scan":
            sub.add_argument("--verify-registrations", action="store_true")
        else:
            sub.add_argument("code")

    recent = subparsers.add_parser("recent", help="Show recent check-ins for a coordinator")
    recent.add_argument("--coordinator", default=None)
    recent.add_argument("--limit", type=int, default=10)
    recent.set_defaults(handler=cmd_recent)

    return parser


def run(argv: Sequence[str] | None = None, *, settings: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = settings or load_settings()
        _configure_logging(settings.log_level)
        logger.debug("%s", settings.describe())
        components = build_components(settings)
        return args.handler(args, settings, components)
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED
