"""Analyze a test case across all job runs of a payload."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ci_tools.job_run_aggregator.checker import TestCaseChecker
from ci_tools.job_run_aggregator.ci_gcs_client import CIGCSClient
from ci_tools.job_run_aggregator.errors import (
    MalformedJobRunIdError,
    TestCheckerFailedError,
)
from ci_tools.job_run_aggregator.job_getter import TestCaseAnalyzerJobGetter
from ci_tools.job_run_aggregator.job_run import JobRun
from ci_tools.job_run_aggregator.junit import log_test_case_failures, suite_to_xml
from ci_tools.job_run_aggregator.locator import (
    RETRY_INTERVAL,
    JobRunLocator,
    payload_invocation_id_matcher,
    payload_tag_matcher,
)
from ci_tools.job_run_aggregator.models.job import Job, JobGCSPrefix
from ci_tools.job_run_aggregator.models.junit import TestSuite, TestSuites
from ci_tools.job_run_aggregator.waiting import (
    POLL_INTERVAL,
    JobRunFinishedPredicate,
    is_job_run_finished,
    wait_and_get_all_finished_job_runs,
    wait_until_time,
)

logger = logging.getLogger(__name__)

# The list of job runs is incomplete until this long after the payload started
READY_DELAY = timedelta(hours=1)
# Stop waiting for unfinished job runs this long before the timeout
STOP_WAITING_MARGIN = timedelta(minutes=20)

TOP_SUITE_NAME = "payload-cross-jobs"
OUTPUT_FILE_NAME = "junit-test-case-analysis.xml"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TestCaseAnalyzer:
    """Checks test cases across the job runs started for one payload.

    1. selects the jobs of the payload
    2. finds the job runs of those jobs for the payload tag or PR invocation id
    3. runs all test case checkers and writes a synthetic JUnit result
    """

    __test__ = False

    def __init__(
        self,
        job_getter: TestCaseAnalyzerJobGetter,
        ci_gcs_client: CIGCSClient,
        test_case_checkers: list[TestCaseChecker],
        working_dir: Path,
        job_run_start_estimate: datetime,
        timeout: timedelta,
        payload_tag: str = "",
        payload_invocation_id: str = "",
        job_gcs_prefixes: list[JobGCSPrefix] | None = None,
        is_finished: JobRunFinishedPredicate = is_job_run_finished,
        retry_interval: float = RETRY_INTERVAL,
        poll_interval: float = POLL_INTERVAL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize analyzer for a release payload tag or a PR invocation id."""
        self.job_getter = job_getter
        self.ci_gcs_client = ci_gcs_client
        self.test_case_checkers = test_case_checkers
        self.working_dir = working_dir
        self.job_run_start_estimate = job_run_start_estimate
        self.timeout = timeout
        self.payload_tag = payload_tag
        self.payload_invocation_id = payload_invocation_id
        self.job_gcs_prefixes = {
            prefix.job_name: prefix.gcs_prefix.strip("/")
            for prefix in job_gcs_prefixes or []
        }
        self.is_finished = is_finished
        self.retry_interval = retry_interval
        self.poll_interval = poll_interval
        self.clock = clock

    @property
    def match_id(self) -> str:
        """Payload tag or invocation id the job runs are selected by."""
        return self.payload_tag or self.payload_invocation_id

    def _new_job_run_locator(self, job: Job) -> JobRunLocator | None:
        if self.payload_tag:
            storage_root = f"logs/{job.job_name}"
            matcher = payload_tag_matcher(self.payload_tag)
        else:
            gcs_prefix = self.job_gcs_prefixes.get(job.job_name)
            if not gcs_prefix:
                logger.warning(f"No GCS prefix configured for {job.job_name}")
                return None
            storage_root = gcs_prefix
            matcher = payload_invocation_id_matcher(self.payload_invocation_id)

        return JobRunLocator(
            job.job_name,
            storage_root,
            matcher,
            self.job_run_start_estimate,
            self.ci_gcs_client,
            retry_interval=self.retry_interval,
            clock=self.clock,
        )

    async def get_related_job_runs(self) -> list[JobRun]:
        """Find the job runs of all selected jobs concurrently.

        A job whose job runs cannot be found is left out of the result.

        Raises:
            MalformedJobRunIdError: As soon as any job has a malformed run id,
                the search for the other jobs is cancelled

        """
        jobs = await self.job_getter.get_jobs()

        locators: list[JobRunLocator] = []
        for job in jobs:
            locator = self._new_job_run_locator(job)
            if locator is not None:
                locators.append(locator)

        logger.info(f"Finding job runs for {len(locators)} jobs")
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(self._find_job_runs(locator))
                    for locator in locators
                ]
        except ExceptionGroup as eg:
            # Only MalformedJobRunIdError gets out of _find_job_runs
            raise eg.exceptions[0]

        job_runs: list[JobRun] = []
        for task in tasks:
            job_runs.extend(task.result())
        return job_runs

    async def _find_job_runs(self, locator: JobRunLocator) -> list[JobRun]:
        try:
            return await locator.find_job_runs_with_retry()
        except MalformedJobRunIdError:
            raise
        except Exception as e:
            logger.warning(
                f"Leaving out {locator.job_name}: {type(e).__name__}: {e}"
            )
            return []

    async def run_test_case_checkers(
        self, finished_job_runs: list[JobRun], unfinished_job_runs: list[JobRun]
    ) -> TestSuite:
        """Run all checkers against the test results of all job runs."""
        top_suite = TestSuite(name=TOP_SUITE_NAME)

        job_run_junits: dict[JobRun, TestSuites] = {}
        for job_run in [*finished_job_runs, *unfinished_job_runs]:
            try:
                job_run_junits[job_run] = await job_run.get_combined_junit_test_suites()
            except Exception as e:
                logger.warning(f"Skipping test results of {job_run!r}: {e}")

        for checker in self.test_case_checkers:
            test_suite = checker.check_test_case(job_run_junits)
            top_suite.children.append(test_suite)
            top_suite.num_tests += test_suite.num_tests
            top_suite.num_failed += test_suite.num_failed
        return top_suite

    async def run(self) -> TestSuite:
        """Run the analysis within the timeout.

        Raises:
            NoRelatedJobsError: If no job runs were found
            TestCheckerFailedError: If any checker failed, after writing results
            TimeoutError: If the timeout expired

        """
        async with asyncio.timeout(self.timeout.total_seconds()):
            return await self._run()

    async def _run(self) -> TestSuite:
        output_dir = self.working_dir / self.match_id
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(
                f"Error creating output directory {output_dir}: {e}"
            ) from e

        ready_at = self.job_run_start_estimate + READY_DELAY
        time_to_stop_waiting = self.job_run_start_estimate + (
            self.timeout - STOP_WAITING_MARGIN
        )
        logger.info(
            f"Analyzing test status for job runs for {self.match_id}. "
            f"now={self.clock()}, ready_at={ready_at}, "
            f"time_to_stop_waiting={time_to_stop_waiting}"
        )

        await wait_until_time(ready_at, self.clock)
        finished, unfinished = await wait_and_get_all_finished_job_runs(
            time_to_stop_waiting,
            self,
            is_finished=self.is_finished,
            poll_interval=self.poll_interval,
            clock=self.clock,
        )

        test_suite = await self.run_test_case_checkers(finished, unfinished)
        log_test_case_failures(["root"], test_suite)

        output_file = output_dir / OUTPUT_FILE_NAME
        output_file.write_text(suite_to_xml(test_suite), encoding="utf-8")
        logger.info(f"Wrote test case analysis to {output_file}")

        if test_suite.num_failed > 0:
            raise TestCheckerFailedError(test_suite.num_failed)
        return test_suite
