"""Tests for the status/log polling loop."""

from __future__ import annotations

import io

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from conftest import FakeECS, FakeLogs, task_response

import ecsrun.cloud.ecs as ecs_mod
from ecsrun.cloud.ecs import poll_task
from ecsrun.errors import LogFetchError, PollTimeoutError, StatusPollError, TaskNotFoundError


def _poll(ecs, logs, out=None, **kwargs):
    kwargs.setdefault("start_wait", 40)
    kwargs.setdefault("poll_interval", 3)
    return poll_task(
        ecs,
        logs,
        cluster="batch",
        task_id="abc-123",
        log_group="/ecs/family",
        log_stream="ecs/app/abc-123",
        out=out if out is not None else io.StringIO(),
        **kwargs,
    )


def test_stopped_returns_exit_code(no_sleep):
    ecs = FakeECS([task_response("RUNNING"), task_response("STOPPED", exit_code=5)])

    assert _poll(ecs, FakeLogs()) == 5


def test_stopped_without_exit_code_returns_zero(no_sleep):
    ecs = FakeECS([task_response("STOPPED")])

    assert _poll(ecs, FakeLogs()) == 0


def test_start_wait_precedes_first_status_check(no_sleep):
    ecs = FakeECS([task_response("RUNNING"), task_response("STOPPED", exit_code=0)])

    _poll(ecs, FakeLogs(), start_wait=40, poll_interval=3)

    assert no_sleep == [40, 3]


def test_not_found_on_first_poll_emits_nothing(no_sleep):
    ecs = FakeECS([{"tasks": [], "failures": [{"arn": "x", "reason": "MISSING"}]}])
    logs = FakeLogs({None: (["never"], "t1")})
    out = io.StringIO()

    with pytest.raises(TaskNotFoundError):
        _poll(ecs, logs, out)

    assert out.getvalue() == ""
    assert logs.sent == []


def test_empty_task_list_is_not_found(no_sleep):
    ecs = FakeECS([{"tasks": [], "failures": []}])

    with pytest.raises(TaskNotFoundError):
        _poll(ecs, FakeLogs())


def test_transport_error_aborts(no_sleep):
    ecs = FakeECS([EndpointConnectionError(endpoint_url="https://ecs.us-east-1.amazonaws.com")])

    with pytest.raises(StatusPollError):
        _poll(ecs, FakeLogs())


def test_no_log_fetch_while_pending(no_sleep, monkeypatch):
    fetches: list[str | None] = []

    def fake_fetch(logs_client, group, stream, cursor, out, *, print_time=False):
        fetches.append(cursor.next_token)
        cursor.next_token = "t1"

    monkeypatch.setattr(ecs_mod, "fetch_logs", fake_fetch)
    ecs = FakeECS(
        [
            task_response("PENDING"),
            task_response("PENDING"),
            task_response("RUNNING"),
            task_response("STOPPED", exit_code=0),
        ]
    )

    assert _poll(ecs, FakeLogs()) == 0
    assert fetches == [None, "t1"]


def test_lines_across_iterations_emitted_once(no_sleep):
    ecs = FakeECS(
        [
            task_response("RUNNING"),
            task_response("RUNNING"),
            task_response("STOPPED", exit_code=0),
        ]
    )
    logs = FakeLogs(
        {
            None: (["first", "second"], "t1"),
            "t1": ([], "t1"),
        }
    )
    out = io.StringIO()

    original = logs.get_log_events

    def growing(**kwargs):
        # Third line shows up once the first fetch has returned
        if len(logs.sent) == 2:
            logs.pages["t1"] = (["third"], "t2")
            logs.pages["t2"] = ([], "t2")
        return original(**kwargs)

    logs.get_log_events = growing

    _poll(ecs, logs, out)

    assert out.getvalue() == "first\nsecond\nthird\n"


def test_log_fetch_error_does_not_stop_polling(no_sleep, monkeypatch, caplog):
    calls = {"n": 0}

    def flaky_fetch(logs_client, group, stream, cursor, out, *, print_time=False):
        calls["n"] += 1
        if calls["n"] == 1:
            raise LogFetchError("throttled")

    monkeypatch.setattr(ecs_mod, "fetch_logs", flaky_fetch)
    ecs = FakeECS([task_response("RUNNING"), task_response("STOPPED", exit_code=7)])

    assert _poll(ecs, FakeLogs()) == 7
    assert calls["n"] == 2
    assert "throttled" in caplog.text


def test_failed_page_request_does_not_repeat_written_lines(no_sleep):
    throttled = ClientError(
        {"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "GetLogEvents"
    )
    logs = FakeLogs({None: (["a", "b"], "t1"), "t1": ([], "t1")}, fail_once={"t1": throttled})
    ecs = FakeECS([task_response("RUNNING"), task_response("STOPPED", exit_code=0)])
    out = io.StringIO()

    assert _poll(ecs, logs, out) == 0
    assert out.getvalue() == "a\nb\n"


def test_show_pending_logs_status(no_sleep, caplog):
    caplog.set_level("INFO", logger="ecsrun")
    ecs = FakeECS([task_response("PENDING"), task_response("STOPPED", exit_code=0)])

    _poll(ecs, FakeLogs(), show_pending=True)

    assert "Task Status: PENDING" in caplog.text


class _Clock:
    def __init__(self):
        self.now = 0.0

    def sleep(self, seconds):
        self.now += seconds

    def monotonic(self):
        return self.now


def test_max_wait_expiry_raises(monkeypatch):
    clock = _Clock()
    monkeypatch.setattr(ecs_mod.time, "sleep", clock.sleep)
    monkeypatch.setattr(ecs_mod.time, "monotonic", clock.monotonic)
    ecs = FakeECS([task_response("RUNNING") for _ in range(10)])

    with pytest.raises(PollTimeoutError):
        _poll(ecs, FakeLogs(), start_wait=0, poll_interval=3, max_wait=10)

    assert len(ecs.calls) == 4
