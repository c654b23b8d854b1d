"""Shared fixtures and fake AWS clients."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _aws_env(monkeypatch):
    """Keep tests away from real credentials and regions."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    for var in ("AWS_PROFILE", "AWS_DEFAULT_PROFILE", "AWS_REGION"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def no_sleep(monkeypatch):
    """Replace time.sleep with a recorder; returns the list of delays."""
    import ecsrun.cloud.ecs as ecs_mod

    delays: list[float] = []
    monkeypatch.setattr(ecs_mod.time, "sleep", delays.append)
    return delays


def task_response(status: str, exit_code: int | None = None, name: str = "app") -> dict:
    container: dict = {"name": name, "lastStatus": status}
    if exit_code is not None:
        container["exitCode"] = exit_code
    return {
        "tasks": [
            {
                "taskArn": "arn:aws:ecs:us-east-1:123456789012:task/abc-123",
                "lastStatus": status,
                "containers": [container],
            }
        ],
        "failures": [],
    }


class FakeECS:
    """describe_tasks/run_task/describe_task_definition from canned responses."""

    def __init__(self, statuses=(), run_response=None, container_names=("app",)):
        self.statuses = list(statuses)
        self.run_response = run_response
        self.container_names = list(container_names)
        self.calls: list[tuple[str, dict]] = []

    def describe_tasks(self, **kwargs):
        self.calls.append(("describe_tasks", kwargs))
        item = self.statuses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def run_task(self, **kwargs):
        self.calls.append(("run_task", kwargs))
        return self.run_response

    def describe_task_definition(self, **kwargs):
        self.calls.append(("describe_task_definition", kwargs))
        return {
            "taskDefinition": {
                "containerDefinitions": [{"name": n} for n in self.container_names],
            }
        }


class FakeLogs:
    """get_log_events keyed by the token sent.

    ``pages`` maps a sent token (None for the first request) to
    ``(messages, next_forward_token)``. ``fail_once`` maps a token to an
    exception raised the first time that token is sent.
    """

    def __init__(self, pages=None, error=None, fail_once=None):
        self.pages = pages or {}
        self.error = error
        self.fail_once = dict(fail_once or {})
        self.sent: list[str | None] = []

    def get_log_events(self, **kwargs):
        token = kwargs.get("nextToken")
        self.sent.append(token)
        if self.error is not None:
            raise self.error
        if token in self.fail_once:
            raise self.fail_once.pop(token)
        messages, next_token = self.pages.get(token, ([], token or "f/0"))
        return {
            "events": [
                {"timestamp": 1519556892000 + i, "message": m} for i, m in enumerate(messages)
            ],
            "nextForwardToken": next_token,
        }


class FakeSession:
    def __init__(self, ecs, logs):
        self._clients = {"ecs": ecs, "logs": logs}

    def client(self, name):
        return self._clients[name]
