"""Wait for the job runs of a payload to show up and finish."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol

from ci_tools.job_run_aggregator.errors import NoRelatedJobsError
from ci_tools.job_run_aggregator.job_run import JobRun

logger = logging.getLogger(__name__)

POLL_INTERVAL = 600.0

JobRunFinishedPredicate = Callable[[JobRun], Awaitable[bool]]


class JobRunGetter(Protocol):
    """Anything able to collect the job runs of a payload."""

    async def get_related_job_runs(self) -> list[JobRun]:
        """Return the job runs found so far."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def wait_until_time(
    ready_at: datetime, clock: Callable[[], datetime] = _utcnow
) -> None:
    """Sleep until ``ready_at``, returning at once if it has already passed."""
    now = clock()
    if now >= ready_at:
        return
    delay = (ready_at - now).total_seconds()
    logger.info(f"Waiting until {ready_at} ({delay:.0f}s) before looking for job runs")
    await asyncio.sleep(delay)


async def is_job_run_finished(job_run: JobRun) -> bool:
    """Whether the prow job of the job run has a completion time."""
    prow_job = await job_run.get_prow_job()
    return prow_job.is_finished


async def wait_and_get_all_finished_job_runs(
    time_to_stop_waiting: datetime,
    job_run_getter: JobRunGetter,
    is_finished: JobRunFinishedPredicate = is_job_run_finished,
    poll_interval: float = POLL_INTERVAL,
    clock: Callable[[], datetime] = _utcnow,
) -> tuple[list[JobRun], list[JobRun]]:
    """Collect job runs until all are finished or it is time to stop waiting.

    Returns:
        Tuple of (finished job runs, unfinished job runs)

    Raises:
        NoRelatedJobsError: If no job runs were found at all

    """
    while True:
        job_runs = await job_run_getter.get_related_job_runs()
        if not job_runs:
            raise NoRelatedJobsError()

        finished: list[JobRun] = []
        unfinished: list[JobRun] = []
        for job_run in job_runs:
            if await is_finished(job_run):
                finished.append(job_run)
            else:
                unfinished.append(job_run)

        logger.info(
            f"Found {len(job_runs)} job runs: {len(finished)} finished, "
            f"{len(unfinished)} unfinished"
        )
        if not unfinished:
            return finished, unfinished

        if clock() > time_to_stop_waiting:
            logger.warning(
                f"Stopped waiting at {time_to_stop_waiting} with "
                f"{len(unfinished)} unfinished job runs: {unfinished}"
            )
            return finished, unfinished

        logger.info(f"Waiting {poll_interval}s for unfinished job runs")
        await asyncio.sleep(poll_interval)
