"""Locate the job runs of one job that belong to a payload."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from ci_tools.job_run_aggregator.ci_gcs_client import CIGCSClient
from ci_tools.job_run_aggregator.errors import (
    MalformedJobRunIdError,
    NoJobRunsFoundError,
)
from ci_tools.job_run_aggregator.job_run import JobRun
from ci_tools.job_run_aggregator.models.prow_job import ProwJob

logger = logging.getLogger(__name__)

# Job runs of a payload start between these offsets around the start estimate
JOB_SEARCH_WINDOW_START_OFFSET = timedelta(hours=1)
JOB_SEARCH_WINDOW_END_OFFSET = timedelta(hours=4)

MAX_ERRORS_IN_A_ROW = 20
RETRY_INTERVAL = 60.0

JobRunMatcher = Callable[[ProwJob], bool]


def payload_tag_matcher(payload_tag: str) -> JobRunMatcher:
    """Match job runs started by the release controller for a payload tag."""

    def matches(prow_job: ProwJob) -> bool:
        return prow_job.payload_tag == payload_tag

    return matches


def payload_invocation_id_matcher(payload_invocation_id: str) -> JobRunMatcher:
    """Match job runs started for a PR payload by their aggregation id label."""

    def matches(prow_job: ProwJob) -> bool:
        return prow_job.payload_invocation_id == payload_invocation_id

    return matches


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRunLocator:
    """Finds the job runs of a single job that match a payload."""

    def __init__(
        self,
        job_name: str,
        storage_root: str,
        matcher: JobRunMatcher,
        job_run_start_estimate: datetime,
        ci_gcs_client: CIGCSClient,
        retry_interval: float = RETRY_INTERVAL,
        max_errors_in_a_row: int = MAX_ERRORS_IN_A_ROW,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize locator for one job."""
        self.job_name = job_name
        self.storage_root = storage_root
        self.matcher = matcher
        self.job_run_start_estimate = job_run_start_estimate
        self.ci_gcs_client = ci_gcs_client
        self.retry_interval = retry_interval
        self.max_errors_in_a_row = max_errors_in_a_row
        self.clock = clock

    async def find_related_job_runs(self) -> list[JobRun]:
        """Walk the job's storage once and return the matching job runs.

        Raises:
            NoJobRunsFoundError: If no job run matched

        """
        window_start = self.job_run_start_estimate - JOB_SEARCH_WINDOW_START_OFFSET
        window_end = self.job_run_start_estimate + JOB_SEARCH_WINDOW_END_OFFSET
        max_age = self.clock() - window_start

        job_runs: list[JobRun] = []
        stream = self.ci_gcs_client.list_job_run_ids(
            self.storage_root, max_age=max_age
        )
        async with stream:
            async for job_run_id in stream:
                job_run = await self.ci_gcs_client.read_job_run(
                    self.storage_root, self.job_name, job_run_id
                )
                if job_run is None:
                    continue

                prow_job = await job_run.get_prow_job()
                if not self.matcher(prow_job):
                    continue
                started = prow_job.status.start_time
                if started is not None and started > window_end:
                    logger.debug(f"Skipping {job_run!r}, started after {window_end}")
                    continue
                job_runs.append(job_run)

        if not job_runs:
            raise NoJobRunsFoundError(self.job_name)
        logger.info(f"Found {len(job_runs)} job runs for {self.job_name}")
        return job_runs

    async def find_job_runs_with_retry(self) -> list[JobRun]:
        """Find related job runs, retrying after any error.

        Listing failures and not-yet-existing job runs are retried alike.

        Raises:
            MalformedJobRunIdError: Immediately, it cannot be fixed by retrying
            Exception: The last error once more than ``max_errors_in_a_row``
                attempts failed in a row

        """
        errors_in_a_row = 0
        while True:
            try:
                return await self.find_related_job_runs()
            except MalformedJobRunIdError:
                raise
            except Exception as e:
                errors_in_a_row += 1
                if errors_in_a_row > self.max_errors_in_a_row:
                    logger.error(
                        f"Giving up finding job runs for {self.job_name} after "
                        f"{errors_in_a_row} errors in a row: {e}"
                    )
                    raise
                logger.warning(f"Error finding job runs for {self.job_name}: {e}")

            logger.info(
                f"Will attempt to find job runs for {self.job_name} again in "
                f"{self.retry_interval}s"
            )
            await asyncio.sleep(self.retry_interval)
