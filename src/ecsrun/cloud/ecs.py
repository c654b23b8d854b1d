"""ECS task launch and completion polling."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from typing import TextIO

from botocore.exceptions import BotoCoreError, ClientError

from ecsrun.cloud.logs import fetch_logs
from ecsrun.config import RunnerConfig
from ecsrun.errors import (
    LaunchError,
    LogFetchError,
    PollTimeoutError,
    StatusPollError,
    TaskNotFoundError,
)
from ecsrun.models import LaunchedTask, LogCursor, RunRequest, TaskStatus

logger = logging.getLogger(__name__)

_TASK_ID_RE = re.compile(r"task/(?:[^/]+/)?([^/]+)$")


def group_id(task_definition: str) -> str:
    """Family of a task definition: ``family:7`` -> ``family``."""
    return task_definition.split(":", 1)[0]


def task_id_from_arn(task_arn: str) -> str:
    """Extract the task ID from an ECS task ARN.

    ARN format: arn:aws:ecs:region:account:task/[cluster/]task-id
    Returns "" when the ARN has no task/ segment.
    """
    match = _TASK_ID_RE.search(task_arn or "")
    return match.group(1) if match else ""


def log_group_name(task_definition: str, override: str = "") -> str:
    return override or f"/ecs/{group_id(task_definition)}"


def log_stream_name(prefix: str, container_name: str, task_id: str) -> str:
    """awslogs stream name: <prefix>/<container>/<task-id>."""
    return f"{prefix}/{container_name}/{task_id}"


def forwarded_environment(prefix: str, environ: Mapping[str, str]) -> dict[str, str]:
    """Variables starting with ``prefix``, renamed with the prefix stripped."""
    if not prefix:
        return {}
    return {
        name[len(prefix) :]: value
        for name, value in environ.items()
        if name.startswith(prefix) and len(name) > len(prefix)
    }


def resolve_container_name(ecs_client, task_definition: str, explicit: str = "") -> str:
    """Pick the container that receives the command override.

    An explicit name must exist in the task definition. Without one, the
    last container definition wins.
    """
    try:
        response = ecs_client.describe_task_definition(taskDefinition=task_definition)
    except (ClientError, BotoCoreError) as exc:
        raise LaunchError(f"describe_task_definition {task_definition}: {exc}") from exc

    names = [
        c["name"]
        for c in response.get("taskDefinition", {}).get("containerDefinitions", [])
        if c and c.get("name")
    ]
    if not names:
        raise LaunchError(f"task definition {task_definition} has no containers")

    if explicit:
        if explicit not in names:
            raise LaunchError(
                f"container {explicit!r} not in task definition {task_definition} "
                f"(have: {', '.join(names)})"
            )
        return explicit

    if len(names) > 1:
        logger.warning(
            "Task definition %s has %d containers, overriding the last one (%s); "
            "set CONTAINER to choose",
            task_definition,
            len(names),
            names[-1],
        )
    return names[-1]


def build_run_request(
    ecs_client,
    config: RunnerConfig,
    command: list[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunRequest:
    """Build the RunTask request; overrides apply only when a command is given."""
    container_name = None
    environment: dict[str, str] = {}
    if command:
        container_name = resolve_container_name(
            ecs_client, config.task_definition, config.container_name
        )
        environment = forwarded_environment(config.env_prefix, environ or {})

    return RunRequest(
        task_definition=config.task_definition,
        cluster=config.cluster,
        subnets=config.subnets,
        security_groups=config.security_groups,
        assign_public_ip=config.assign_public_ip,
        launch_type=config.launch_type,
        command=list(command) if command else None,
        container_name=container_name,
        environment=environment,
    )


def launch_task(ecs_client, request: RunRequest) -> LaunchedTask:
    """Submit RunTask once and return the launched task.

    Any reported failure fails the launch, even if tasks were also started.
    """
    if request.count > 1:
        raise LaunchError("The count must be 1")

    try:
        response = ecs_client.run_task(**request.to_run_task_kwargs())
    except (ClientError, BotoCoreError) as exc:
        raise LaunchError(f"run_task failed: {exc}") from exc

    failures = response.get("failures", [])
    if failures:
        reasons = "; ".join(
            f"{f.get('arn', '')}: {f.get('reason', '')} {f.get('detail', '')}".strip()
            for f in failures
        )
        raise LaunchError(f"run_task failed: {reasons}")

    for task in response.get("tasks", []):
        if not task:
            continue
        containers = [c for c in task.get("containers", []) if c]
        container_name = request.container_name or (
            containers[0].get("name", "") if containers else ""
        )
        launched = LaunchedTask(task_arn=task["taskArn"], container_name=container_name)
        logger.info("Launched ECS task: %s", launched.task_arn)
        return launched

    raise LaunchError("task not found")


def describe_task_status(ecs_client, cluster: str, task_id: str) -> TaskStatus:
    """Snapshot the status of the task's first container."""
    kwargs: dict = {"tasks": [task_id]}
    if cluster:
        kwargs["cluster"] = cluster

    try:
        response = ecs_client.describe_tasks(**kwargs)
    except (ClientError, BotoCoreError) as exc:
        raise StatusPollError(f"describe_tasks failed: {exc}") from exc

    if response.get("failures"):
        raise TaskNotFoundError()

    for task in response.get("tasks") or []:
        for container in task.get("containers", []):
            if not container:
                continue
            return TaskStatus(
                last_status=container.get("lastStatus") or task.get("lastStatus", ""),
                exit_code=container.get("exitCode"),
                stopped_reason=container.get("reason") or task.get("stoppedReason"),
            )

    raise TaskNotFoundError()


def poll_task(
    ecs_client,
    logs_client,
    *,
    cluster: str,
    task_id: str,
    log_group: str,
    log_stream: str,
    out: TextIO,
    start_wait: float = 40.0,
    poll_interval: float = 3.0,
    max_wait: float = 0.0,
    show_pending: bool = False,
    print_time: bool = False,
) -> int:
    """Poll an ECS task until STOPPED, streaming its CloudWatch logs to ``out``.

    Logs are only fetched once the task has left PENDING, and one final time
    after it stops. A failed log fetch is logged and polling continues.

    Returns the container's exit code (0 if none was reported).
    Raises StatusPollError (or TaskNotFoundError) when the status cannot be
    read, and PollTimeoutError once ``max_wait`` seconds have passed (0 means
    no limit).
    """
    deadline = time.monotonic() + max_wait if max_wait > 0 else None
    cursor = LogCursor()
    last_status = ""

    # Give the scheduler time to place the task and create its log stream
    time.sleep(start_wait)

    while True:
        status = describe_task_status(ecs_client, cluster, task_id)

        if status.last_status != last_status:
            logger.debug("Task %s status: %s", task_id, status.last_status)
            last_status = status.last_status

        if status.is_pending:
            if show_pending:
                logger.info("Task Status: %s", status.last_status)
        else:
            _tail(logs_client, log_group, log_stream, cursor, out, print_time)

        if status.is_stopped:
            if status.stopped_reason:
                logger.debug("Task %s stopped: %s", task_id, status.stopped_reason)
            return status.exit_code if status.exit_code is not None else 0

        time.sleep(poll_interval)

        if deadline is not None and time.monotonic() >= deadline:
            raise PollTimeoutError(f"task {task_id} did not stop within {max_wait:g}s")


def _tail(
    logs_client,
    log_group: str,
    log_stream: str,
    cursor: LogCursor,
    out: TextIO,
    print_time: bool,
) -> None:
    """Fetch new log lines; errors only warn and the cursor keeps its place."""
    try:
        fetch_logs(logs_client, log_group, log_stream, cursor, out, print_time=print_time)
    except LogFetchError as exc:
        if exc.not_found:
            # Stream doesn't exist yet (container hasn't written anything)
            logger.debug("Log stream %s not available yet", log_stream)
        else:
            logger.warning("Log fetch failed: %s", exc)
