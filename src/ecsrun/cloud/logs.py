"""CloudWatch Logs tailing for a single ECS container stream."""

from __future__ import annotations

import logging
from typing import TextIO

from botocore.exceptions import BotoCoreError, ClientError

from ecsrun.errors import LogFetchError
from ecsrun.models import LogCursor, LogLine

logger = logging.getLogger(__name__)



def fetch_logs(
    logs_client,
    log_group: str,
    log_stream: str,
    cursor: LogCursor,
    out: TextIO,
    *,
    print_time: bool = False,
) -> None:
    """Write every event available after ``cursor.next_token`` to ``out``.

    Keeps requesting pages until GetLogEvents hands back the token it was
    just sent, which is how the API signals the end of the stream. The
    cursor moves past a page only once the page is written, so a failed
    request leaves it at the last complete page.

    Raises LogFetchError on an API error or a failed write. When a write
    fails the cursor still moves past that page: its remaining lines are
    lost rather than written twice.
    """
    cursor.end_token = None

    while True:
        if cursor.end_token is not None:
            if cursor.exhausted:
                return
            cursor.next_token = cursor.end_token

        request: dict = {
            "logGroupName": log_group,
            "logStreamName": log_stream,
            "startFromHead": True,
        }
        if cursor.next_token:
            request["nextToken"] = cursor.next_token

        try:
            response = logs_client.get_log_events(**request)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            raise LogFetchError(
                f"get_log_events {log_group}/{log_stream}: {exc}",
                not_found=code == "ResourceNotFoundException",
            ) from exc
        except BotoCoreError as exc:
            raise LogFetchError(f"get_log_events {log_group}/{log_stream}: {exc}") from exc

        token = response.get("nextForwardToken")
        events = response.get("events", [])
        logger.debug("%d events from %s", len(events), log_stream)
        for event in events:
            line = LogLine(timestamp=event.get("timestamp", 0), message=event.get("message", ""))
            try:
                out.write(line.render(print_time))
            except OSError as exc:
                if token is not None:
                    cursor.next_token = token
                raise LogFetchError(f"write log line: {exc}") from exc

        if token is None:
            # No cursor to advance to
            return
        cursor.end_token = token
