"""Data models for ecsrun task runs."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LaunchType(enum.StrEnum):
    """Where ECS places the task."""

    FARGATE = "FARGATE"
    EC2 = "EC2"


class RunRequest(BaseModel):
    """Everything needed for a single RunTask call."""

    model_config = ConfigDict(frozen=True)

    task_definition: str
    cluster: str = ""  # empty means the account's default cluster
    subnets: list[str] = Field(default_factory=list)
    security_groups: list[str] = Field(default_factory=list)
    assign_public_ip: bool = True
    launch_type: LaunchType = LaunchType.FARGATE
    count: int = 1
    command: list[str] | None = None
    container_name: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)

    def to_run_task_kwargs(self) -> dict:
        """Render the keyword arguments for ``ecs.run_task``."""
        kwargs: dict = {
            "taskDefinition": self.task_definition,
            "launchType": self.launch_type.value,
            "count": self.count,
        }
        if self.cluster:
            kwargs["cluster"] = self.cluster

        # EC2 tasks use the instance's network, awsvpc settings are Fargate-only
        if self.launch_type == LaunchType.FARGATE:
            kwargs["networkConfiguration"] = {
                "awsvpcConfiguration": {
                    "subnets": list(self.subnets),
                    "securityGroups": list(self.security_groups),
                    "assignPublicIp": "ENABLED" if self.assign_public_ip else "DISABLED",
                },
            }

        if self.command:
            override: dict = {"command": list(self.command)}
            if self.container_name:
                override["name"] = self.container_name
            if self.environment:
                override["environment"] = [
                    {"name": k, "value": v} for k, v in self.environment.items()
                ]
            kwargs["overrides"] = {"containerOverrides": [override]}

        return kwargs


class LaunchedTask(BaseModel):
    """A task accepted by RunTask."""

    model_config = ConfigDict(frozen=True)

    task_arn: str
    container_name: str


class TaskStatus(BaseModel):
    """One DescribeTasks snapshot of the task's primary container."""

    model_config = ConfigDict(frozen=True)

    last_status: str
    exit_code: int | None = None
    stopped_reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.last_status == "PENDING"

    @property
    def is_stopped(self) -> bool:
        return self.last_status == "STOPPED"


class LogCursor(BaseModel):
    """Position in the log stream, carried between poll iterations.

    ``next_token`` is where the next request starts: the forward token of the
    last page that was fully handled. ``end_token`` is the forward token of
    the most recent response within the current fetch; GetLogEvents returns
    the token it was sent once no new data exists.
    """

    next_token: str | None = None
    end_token: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.next_token is not None and self.end_token == self.next_token


class LogLine(BaseModel):
    """A single CloudWatch Logs event."""

    model_config = ConfigDict(frozen=True)

    timestamp: int  # epoch milliseconds
    message: str

    def render(self, print_time: bool = False) -> str:
        msg = self.message.rstrip("\n")
        if not print_time:
            return msg + "\n"
        stamp = datetime.fromtimestamp(self.timestamp / 1000).astimezone()
        return f"{stamp.isoformat(timespec='seconds')} {msg}\n"


class ProfileConfig(BaseModel):
    """Role-assumption chain read from the shared AWS files."""

    model_config = ConfigDict(frozen=True)

    role_arn: str = ""
    source_profile: str = ""
    region: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.role_arn and self.source_profile)
