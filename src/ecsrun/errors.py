"""Exception hierarchy for ecsrun.

Each failure class maps onto one process exit code in ``ecsrun.run``.
"""

from __future__ import annotations


class EcsRunError(Exception):
    """Base class for all ecsrun errors."""


class ConfigError(EcsRunError):
    """A required setting is missing or a value cannot be parsed."""


class ProfileError(EcsRunError):
    """A shared AWS config/credentials file is malformed."""


class ProfileNotFoundError(ProfileError):
    """The file or the profile section does not exist."""


class LaunchError(EcsRunError):
    """RunTask was rejected, failed, or returned no task."""


class StatusPollError(EcsRunError):
    """DescribeTasks failed; the poll loop cannot continue."""


class TaskNotFoundError(StatusPollError):
    def __init__(self, message: str = "task not found") -> None:
        super().__init__(message)


class PollTimeoutError(StatusPollError):
    """The task did not stop within the configured maximum wait."""


class LogFetchError(EcsRunError):
    """GetLogEvents failed or the output sink could not be written."""

    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found
