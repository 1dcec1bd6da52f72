import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from doc_batch_translator.config import settings
from doc_batch_translator.schemas import JobStatus

logger = logging.getLogger(__name__)

NOT_STARTED = "NotStarted"
_UNSEEN = object()


class JobState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    OTHER = "other"


_TERMINAL_STATES = {
    "succeeded": JobState.SUCCEEDED,
    "failed": JobState.FAILED,
    "validationfailed": JobState.FAILED,
    "cancelled": JobState.CANCELLED,
    "canceled": JobState.CANCELLED,
}


def is_terminal(status: JobStatus) -> bool:
    return status.status != NOT_STARTED and status.summary.in_progress == 0


def job_state(status: JobStatus) -> JobState:
    if status.status == NOT_STARTED:
        return JobState.NOT_STARTED
    if status.summary.in_progress > 0:
        return JobState.RUNNING
    return _TERMINAL_STATES.get(status.status.lower(), JobState.OTHER)


class PollCancelled(Exception):
    def __init__(self, last: JobStatus | None) -> None:
        self.last = last
        super().__init__("polling stopped by cancel signal")


async def poll_until_terminal(
    fetch: Callable[[], Awaitable[JobStatus]],
    on_change: Callable[[JobStatus], Awaitable[None]] | None = None,
    cancel: asyncio.Event | None = None,
    interval: float | None = None,
) -> JobStatus:
    """Query ``fetch`` every ``interval`` seconds until the job is terminal.

    ``on_change`` is awaited once for every snapshot whose
    ``lastActionDateTimeUtc`` differs from the previous one. Setting
    ``cancel`` stops the loop with :class:`PollCancelled`.
    """
    interval = settings.poll_interval_sec if interval is None else interval
    cancel = cancel or asyncio.Event()
    last_action: object = _UNSEEN
    status: JobStatus | None = None
    while True:
        try:
            await asyncio.wait_for(cancel.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        if cancel.is_set():
            raise PollCancelled(status)

        status = await fetch()
        if status.last_action_date_time_utc != last_action:
            last_action = status.last_action_date_time_utc
            logger.info(
                "Job status %s: %d/%d done, %d in progress",
                status.status,
                status.summary.success + status.summary.failed + status.summary.cancelled,
                status.summary.total,
                status.summary.in_progress,
            )
            if on_change is not None:
                await on_change(status)
        if is_terminal(status):
            return status
