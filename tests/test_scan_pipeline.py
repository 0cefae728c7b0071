from __future__ import annotations

import pytest

from checkin_app.models import (
    DeviceErrorReason,
    FailureKind,
    Registration,
    ResultAction,
    ResultKind,
    ScanResult,
    ScanState,
    StartRejected,
)
from checkin_app.services import AttendanceCommitter, CameraError, ScanPipeline, SqliteRegistrationDirectory

from conftest import FakeCamera, FlakyStore, ManualScheduler, attendance_count

EVENT_ID = "evt-9"


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def flaky(store):
    return FlakyStore(store)


@pytest.fixture
def emitted():
    return {"states": [], "results": []}


@pytest.fixture
def pipeline(cipher, codec, flaky, camera, scheduler, emitted):
    return ScanPipeline(
        cipher=cipher,
        codec=codec,
        committer=AttendanceCommitter(flaky),
        camera=camera,
        coordinator_id="coord-1",
        event_names={EVENT_ID: "Robo Wars", "evt-2": "Hackathon"},
        scheduler=scheduler,
        on_state_change=emitted["states"].append,
        on_result=emitted["results"].append,
    )


@pytest.fixture
def token(cipher, codec, registration):
    return cipher.encrypt(codec.build(registration, "Robo Wars"))


def _started(pipeline) -> ScanPipeline:
    assert pipeline.start(EVENT_ID) is None
    assert pipeline.state is ScanState.SCANNING
    return pipeline


def test_start_requires_an_event(pipeline, camera):
    rejected = pipeline.start()

    assert isinstance(rejected, StartRejected)
    assert "select an event" in rejected.message
    assert pipeline.state is ScanState.IDLE
    assert not camera.started


def test_start_walks_through_initializing(pipeline, camera, emitted):
    _started(pipeline)

    assert emitted["states"] == [ScanState.INITIALIZING, ScanState.SCANNING]
    assert camera.started


@pytest.mark.parametrize(
    "error, reason",
    [
        (CameraError(DeviceErrorReason.NO_CAMERA, "No camera found."), DeviceErrorReason.NO_CAMERA),
        (PermissionError("access denied"), DeviceErrorReason.PERMISSION),
        (RuntimeError("Device or resource busy"), DeviceErrorReason.DEVICE_BUSY),
    ],
)
def test_camera_failure_returns_to_idle(cipher, codec, committer, scheduler, error, reason):
    pipeline = ScanPipeline(
        cipher=cipher,
        codec=codec,
        committer=committer,
        camera=FakeCamera(error=error),
        coordinator_id="coord-1",
        scheduler=scheduler,
    )

    result = pipeline.start(EVENT_ID)

    assert isinstance(result, ScanResult)
    assert result.kind is ResultKind.DEVICE_FAILURE
    assert result.device_reason is reason
    assert pipeline.state is ScanState.IDLE
    assert scheduler.calls == []


def test_successful_scan_commits_once(pipeline, token, database, camera, scheduler):
    _started(pipeline)

    result = pipeline.on_decoded(token)

    assert result.kind is ResultKind.SUCCESS
    assert result.attendee_name == "Priya Raman"
    assert result.action is ResultAction.SCAN_NEXT
    assert result.record.marked_by == "coord-1"
    assert pipeline.state is ScanState.RESULT
    assert camera.paused
    assert attendance_count(database) == 1
    assert [call.delay for call in scheduler.calls] == [2.0]


def test_decode_while_processing_is_ignored(pipeline, flaky, token, database, emitted):
    _started(pipeline)
    reentrant = []
    flaky.before_insert = lambda: reentrant.append(pipeline.on_decoded(token))

    result = pipeline.on_decoded(token)

    assert reentrant == [None]
    assert result.kind is ResultKind.SUCCESS
    assert len(emitted["results"]) == 1
    assert attendance_count(database) == 1


def test_decode_outside_scanning_is_ignored(pipeline, token, database):
    assert pipeline.on_decoded(token) is None

    _started(pipeline)
    pipeline.on_decoded(token)
    assert pipeline.state is ScanState.RESULT
    assert pipeline.on_decoded(token) is None
    assert attendance_count(database) == 1


def test_pass_for_other_event_is_a_mismatch(pipeline, cipher, codec, database):
    other = Registration(id="xyz-1", event_id="evt-2", name="Arjun Mehta")
    _started(pipeline)

    result = pipeline.on_decoded(cipher.encrypt(codec.build(other, "Hackathon")))

    assert result.kind is ResultKind.MISMATCH
    assert result.failure is FailureKind.EVENT_MISMATCH
    assert result.attendee_name == "Arjun Mehta"
    assert result.message == "This pass is for Hackathon, not the selected event."
    assert attendance_count(database) == 0


def test_garbage_is_invalid_and_cools_down(pipeline, camera, scheduler, database):
    _started(pipeline)

    result = pipeline.on_decoded("https://example.com/not-a-pass")

    assert result.kind is ResultKind.INVALID
    assert result.failure is FailureKind.DECRYPTION_FAILURE
    assert result.attendee_name is None
    assert attendance_count(database) == 0

    scheduler.fire_all()

    assert pipeline.state is ScanState.SCANNING
    assert not camera.paused


def test_foreign_json_is_invalid_payload(pipeline, cipher):
    _started(pipeline)

    result = pipeline.on_decoded(cipher.encrypt({"registrationId": "abc-123"}))

    assert result.kind is ResultKind.INVALID
    assert result.failure is FailureKind.INVALID_PAYLOAD


def test_expired_pass_is_rejected(pipeline, cipher, codec, registration, database):
    expired = codec.build(registration, "Robo Wars", issued_at=1_000)
    _started(pipeline)

    result = pipeline.on_decoded(cipher.encrypt(expired))

    assert result.kind is ResultKind.INVALID
    assert "expired" in result.message
    assert attendance_count(database) == 0


def test_storage_failure_waits_for_retry(pipeline, flaky, token, database, scheduler):
    _started(pipeline)
    flaky.failing = True

    failed = pipeline.on_decoded(token)

    assert failed.kind is ResultKind.STORAGE_ERROR
    assert failed.action is ResultAction.RETRY
    assert scheduler.calls == []
    assert pipeline.state is ScanState.RESULT
    assert attendance_count(database) == 0

    flaky.failing = False
    retried = pipeline.retry()

    assert retried.kind is ResultKind.SUCCESS
    assert attendance_count(database) == 1


def test_retry_only_follows_storage_failure(pipeline, token):
    _started(pipeline)
    pipeline.on_decoded(token)

    assert pipeline.retry() is None


def test_second_scan_after_cooldown_is_duplicate(pipeline, token, scheduler, database, camera):
    _started(pipeline)
    pipeline.on_decoded(token)
    scheduler.fire_all()

    result = pipeline.on_decoded(token)

    assert result.kind is ResultKind.DUPLICATE
    assert result.action is ResultAction.SCAN_NEXT
    assert result.record.marked_by == "coord-1"
    assert attendance_count(database) == 1


def test_scan_next_cancels_cooldown(pipeline, token, scheduler):
    _started(pipeline)
    pipeline.on_decoded(token)

    assert pipeline.scan_next()
    assert pipeline.state is ScanState.SCANNING
    assert scheduler.calls[0].cancelled

    stale = scheduler.calls[0].callback
    pipeline.on_decoded("garbage")
    assert pipeline.state is ScanState.RESULT
    stale()
    assert pipeline.state is ScanState.RESULT


def test_stop_during_processing_delivers_result(pipeline, flaky, token, camera, database, emitted):
    _started(pipeline)
    flaky.before_insert = pipeline.stop

    result = pipeline.on_decoded(token)

    assert result.kind is ResultKind.SUCCESS
    assert emitted["results"] == [result]
    assert pipeline.state is ScanState.IDLE
    assert camera.stopped
    assert attendance_count(database) == 1


def test_stop_from_result_returns_to_idle(pipeline, token, scheduler, camera):
    _started(pipeline)
    pipeline.on_decoded(token)

    pipeline.stop()

    assert pipeline.state is ScanState.IDLE
    assert scheduler.calls[0].cancelled
    assert camera.stopped


def test_camera_error_while_scanning_is_reported(pipeline, camera, emitted):
    _started(pipeline)

    camera.on_error("Camera is in use by another application.")

    assert pipeline.state is ScanState.IDLE
    assert emitted["results"][-1].kind is ResultKind.DEVICE_FAILURE
    assert emitted["results"][-1].device_reason is DeviceErrorReason.DEVICE_BUSY


def test_select_event_is_refused_while_processing(pipeline, flaky, token):
    _started(pipeline)
    answers = []
    flaky.before_insert = lambda: answers.append(pipeline.select_event("evt-2"))

    pipeline.on_decoded(token)

    assert answers == [False]
    assert pipeline.event_id == EVENT_ID
    assert pipeline.select_event("evt-2")


def test_session_tracks_recent_scans(pipeline, token, scheduler):
    _started(pipeline)
    pipeline.on_decoded(token)
    scheduler.fire_all()
    pipeline.on_decoded(token)

    recent = list(pipeline.session.recent_scans)
    assert [scan.success for scan in recent] == [False, True]
    assert recent[0].event == "Robo Wars"
    assert pipeline.session.checked_in_count == 1


def test_unknown_registration_is_rejected(cipher, codec, store, database, scheduler):
    directory = SqliteRegistrationDirectory(database)
    directory.upsert_many([Registration(id="someone-else", event_id=EVENT_ID, name="Someone")])
    pipeline = ScanPipeline(
        cipher=cipher,
        codec=codec,
        committer=AttendanceCommitter(store),
        camera=FakeCamera(),
        coordinator_id="coord-1",
        registrations=directory,
        scheduler=scheduler,
    )
    forged = Registration(id="abc-123", event_id=EVENT_ID, name="Priya Raman")
    _started(pipeline)

    result = pipeline.on_decoded(cipher.encrypt(codec.build(forged, None)))

    assert result.kind is ResultKind.INVALID
    assert result.message == "Registration not found in system."
    assert attendance_count(database) == 0


def test_unexpected_fault_becomes_retryable(pipeline, flaky, token, scheduler):
    _started(pipeline)

    def explode():
        raise KeyError("boom")

    flaky.before_insert = explode

    result = pipeline.on_decoded(token)

    assert result.kind is ResultKind.STORAGE_ERROR
    assert result.action is ResultAction.RETRY
    assert scheduler.calls == []


@pytest.mark.parametrize("empty", ["", None])
def test_select_event_refuses_empty_id(pipeline, token, empty, database):
    _started(pipeline)

    assert not pipeline.select_event(empty)
    assert pipeline.event_id == EVENT_ID
    assert pipeline.on_decoded(token).kind is ResultKind.SUCCESS
    assert attendance_count(database) == 1
