"""Runner configuration loaded from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from ecsrun.errors import ConfigError
from ecsrun.models import LaunchType

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

# (variable, description, default) — rendered by ``ecsrun -h``
ENV_USAGE: list[tuple[str, str, str]] = [
    ("AWS_SHARED_CREDENTIALS_FILE", "Shared credentials file", "~/.aws/credentials"),
    ("AWS_CONFIG_FILE", "Shared config file", "~/.aws/config"),
    ("AWS_DEFAULT_PROFILE", "Profile name, takes precedence over AWS_PROFILE", ""),
    ("AWS_PROFILE", "Profile name", "default"),
    ("AWS_DEFAULT_REGION", "Default region", ""),
    ("AWS_REGION", "Region, takes precedence over AWS_DEFAULT_REGION", ""),
    ("ENV_PREFIX", "Forward variables with this prefix (prefix stripped)", ""),
    ("HOME", "Home directory used to locate ~/.aws", "user home"),
    ("START_WAIT", "Wait before the first status check", "40s"),
    ("POLL_INTERVAL", "Wait between status checks", "3s"),
    ("MAX_WAIT", "Give up polling after this long, 0 waits forever", "0"),
    ("SHOW_STATUS", "Log PENDING status while waiting", "false"),
    ("PRINT_TIME", "Prefix each log line with an RFC3339 timestamp", "false"),
    ("PUBLICIP", "Assign a public IP to the task", "true"),
    ("CLUSTER", "Cluster name; the default cluster if empty", ""),
    ("LAUNCHTYPE", "FARGATE or EC2", "FARGATE"),
    ("SECGROUPS", "Comma-separated security groups of awsvpc network mode", ""),
    ("SUBNETS", "Comma-separated subnets of awsvpc network mode", ""),
    ("TASKDEF", "Task definition (family:revision or full ARN), required", ""),
    ("CONTAINER", "Container receiving the command override", "last definition"),
    ("LOG_GROUP", "CloudWatch log group", "/ecs/<family>"),
    ("LOG_STREAM_PREFIX", "awslogs stream prefix", "ecs"),
    ("ECSRUN_DEBUG", "Enable debug logging", ""),
]


def parse_duration(value: str | float | int) -> float:
    """Parse ``40``, ``40s``, ``500ms``, ``2m`` or ``1m30s`` into seconds."""
    if isinstance(value, int | float):
        return float(value)
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


def _split_list(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


class RunnerConfig(BaseModel):
    """All ecsrun settings, validated once at startup."""

    aws_shared_credentials_file: str = ""
    aws_config_file: str = ""
    aws_default_profile: str = ""
    aws_profile: str = ""
    aws_default_region: str = ""
    aws_region: str = ""
    env_prefix: str = ""
    home: str = ""

    start_wait: float = Field(default=40.0, ge=0)
    poll_interval: float = Field(default=3.0, ge=0)
    max_wait: float = Field(default=0.0, ge=0)
    show_pending: bool = False
    print_time: bool = False

    assign_public_ip: bool = True
    cluster: str = ""
    launch_type: LaunchType = LaunchType.FARGATE
    security_groups: list[str] = Field(default_factory=list)
    subnets: list[str] = Field(default_factory=list)
    task_definition: str = Field(min_length=1)
    container_name: str = ""
    log_group: str = ""
    log_stream_prefix: str = "ecs"

    @field_validator("start_wait", "poll_interval", "max_wait", mode="before")
    @classmethod
    def _duration(cls, v):
        return parse_duration(v)

    @field_validator("launch_type", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def region(self) -> str:
        """Region from the environment, AWS_REGION first."""
        return self.aws_region or self.aws_default_region

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RunnerConfig:
        """Load configuration from environment variables.

        Raises ConfigError for a missing TASKDEF or an unparseable value.
        """
        env = os.environ if environ is None else environ

        if not env.get("TASKDEF"):
            raise ConfigError("TASKDEF environment variable is required")

        values: dict = {
            "aws_shared_credentials_file": env.get("AWS_SHARED_CREDENTIALS_FILE", ""),
            "aws_config_file": env.get("AWS_CONFIG_FILE", ""),
            "aws_default_profile": env.get("AWS_DEFAULT_PROFILE", ""),
            "aws_profile": env.get("AWS_PROFILE", ""),
            "aws_default_region": env.get("AWS_DEFAULT_REGION", ""),
            "aws_region": env.get("AWS_REGION", ""),
            "env_prefix": env.get("ENV_PREFIX", ""),
            "home": env.get("HOME") or str(Path.home()),
            "cluster": env.get("CLUSTER", ""),
            "security_groups": _split_list(env.get("SECGROUPS", "")),
            "subnets": _split_list(env.get("SUBNETS", "")),
            "task_definition": env["TASKDEF"],
            "container_name": env.get("CONTAINER", ""),
            "log_group": env.get("LOG_GROUP", ""),
        }
        # Unset means "use the model default"; set-but-empty is validated as given
        optional = {
            "START_WAIT": "start_wait",
            "POLL_INTERVAL": "poll_interval",
            "MAX_WAIT": "max_wait",
            "SHOW_STATUS": "show_pending",
            "PRINT_TIME": "print_time",
            "PUBLICIP": "assign_public_ip",
            "LAUNCHTYPE": "launch_type",
            "LOG_STREAM_PREFIX": "log_stream_prefix",
        }
        for var, field in optional.items():
            if var in env:
                values[field] = env[var]

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc
