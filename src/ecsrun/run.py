"""Host-side CLI: run one ECS task and tail its logs.

Usage:
    ecsrun [-version] [-h] [--] [command ...]

Settings come from environment variables (see ``ecsrun -h``); a ``.env``
file in the working directory is loaded first. Any positional arguments
replace the container's command.

The process exits with the task's own exit code, 1 if the task could not be
launched, or 2 if its status could not be followed.
"""

# ruff: noqa: T201 — print is the correct output mechanism for a CLI

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Mapping
from importlib.metadata import PackageNotFoundError, version
from typing import TextIO

from botocore.exceptions import BotoCoreError

from ecsrun.cloud.ecs import (
    build_run_request,
    launch_task,
    log_group_name,
    log_stream_name,
    poll_task,
    task_id_from_arn,
)
from ecsrun.cloud.profile import create_session
from ecsrun.config import ENV_USAGE, RunnerConfig
from ecsrun.errors import ConfigError, LaunchError, ProfileError, StatusPollError

logger = logging.getLogger(__name__)

# Stamped by the release build
COMMIT = "none"
BUILD_DATE = "unknown"

EXIT_SETUP_FAILURE = 1
EXIT_POLL_FAILURE = 2


def _version() -> str:
    try:
        return version("ecsrun")
    except PackageNotFoundError:
        return "dev"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecsrun",
        description="Run a single ECS task, stream its logs, and exit with its exit code.",
        add_help=False,
    )
    parser.add_argument("-version", "--version", action="store_true", help="show version")
    parser.add_argument("-h", "--help", action="store_true", help="show help")
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="command override for the task's container",
    )
    return parser


def _print_env_usage(out: TextIO) -> None:
    print("\nThis application is configured via the environment:", file=out)
    width = max(len(name) for name, _, _ in ENV_USAGE)
    for name, desc, default in ENV_USAGE:
        suffix = f" (default: {default})" if default else ""
        print(f"  {name.ljust(width)}  {desc}{suffix}", file=out)


def _configure_logging(environ: Mapping[str, str]) -> None:
    debug = bool(environ.get("ECSRUN_DEBUG"))
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # Only show detailed logs for our own code
    logging.getLogger("ecsrun").setLevel(logging.DEBUG if debug else logging.INFO)


def run(
    command: list[str],
    *,
    environ: Mapping[str, str] | None = None,
    out: TextIO | None = None,
    session=None,
) -> int:
    """Launch the task, follow it to completion, and return the exit code."""
    env = os.environ if environ is None else environ
    out = out or sys.stdout

    try:
        config = RunnerConfig.from_env(env)
        session = session or create_session(config)
        ecs = session.client("ecs")
        logs = session.client("logs")
    except (ConfigError, ProfileError, BotoCoreError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_SETUP_FAILURE

    try:
        request = build_run_request(ecs, config, command, env)
        task = launch_task(ecs, request)
    except LaunchError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_SETUP_FAILURE

    task_id = task_id_from_arn(task.task_arn)
    log_group = log_group_name(config.task_definition, config.log_group)
    log_stream = log_stream_name(config.log_stream_prefix, task.container_name, task_id)
    logger.debug("Tailing %s %s", log_group, log_stream)

    try:
        code = poll_task(
            ecs,
            logs,
            cluster=config.cluster,
            task_id=task_id,
            log_group=log_group,
            log_stream=log_stream,
            out=out,
            start_wait=config.start_wait,
            poll_interval=config.poll_interval,
            max_wait=config.max_wait,
            show_pending=config.show_pending,
            print_time=config.print_time,
        )
    except StatusPollError as exc:
        logger.error("%s", exc)
        return EXIT_POLL_FAILURE

    out.flush()
    return code


def main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        prog = os.path.basename(sys.argv[0]) or "ecsrun"
        print(f"{prog} version {_version()}, commit {COMMIT}, built at {BUILD_DATE}")
        sys.exit(0)
    if args.help:
        parser.print_help()
        _print_env_usage(sys.stdout)
        sys.exit(0)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]

    _configure_logging(os.environ)
    sys.exit(run(command))


if __name__ == "__main__":
    main()
