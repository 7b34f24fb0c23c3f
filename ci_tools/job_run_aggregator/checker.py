"""Check a test case across the test results of many job runs."""

import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import yaml

from ci_tools.job_run_aggregator.job_run import JobRun
from ci_tools.job_run_aggregator.junit import update_test_counts
from ci_tools.job_run_aggregator.models.junit import (
    FailureOutput,
    TestCase,
    TestSuite,
    TestSuites,
)
from ci_tools.job_run_aggregator.models.test_case_details import (
    TEST_SUITES_SEPARATOR,
    JobRunReference,
    TestCaseDetails,
)

CHECKER_SUITE_NAME = "minimum-required-passes-checker"


@dataclass(frozen=True)
class TestIdentifier:
    """A test addressed by the chain of suite names leading to it."""

    __test__ = False

    test_suites: tuple[str, ...]
    test_name: str


INSTALL_TEST_IDENTIFIER = TestIdentifier(
    test_suites=("cluster install",), test_name="install should succeed: overall"
)


class TestStatus(Enum):
    """Verdict of a test in one job run."""

    __test__ = False

    SKIPPED = "skipped"
    PASSED = "passed"
    FAILED = "failed"


def get_test_status(test_id: TestIdentifier, test_suite: TestSuite) -> TestStatus:
    """Find the verdict of a test within a suite tree.

    The suite path must match exactly, level by level, starting at
    ``test_suite`` itself. When several sibling suites share the name of the
    next path element, the first one yielding a pass or a failure wins.
    """
    if not test_id.test_suites or test_id.test_suites[0] != test_suite.name:
        return TestStatus.SKIPPED

    if len(test_id.test_suites) == 1:
        for test_case in test_suite.test_cases:
            if test_case.name == test_id.test_name:
                if test_case.failure_output is None:
                    return TestStatus.PASSED
                return TestStatus.FAILED
        return TestStatus.SKIPPED

    next_id = TestIdentifier(test_id.test_suites[1:], test_id.test_name)
    for child in test_suite.children:
        if child.name != next_id.test_suites[0]:
            continue
        status = get_test_status(next_id, child)
        if status is not TestStatus.SKIPPED:
            return status
    return TestStatus.SKIPPED


def get_job_run_test_status(
    test_id: TestIdentifier, test_suites: TestSuites
) -> TestStatus:
    """Find the verdict of a test in the first top-level suite that has one."""
    for test_suite in test_suites.suites:
        status = get_test_status(test_id, test_suite)
        if status is not TestStatus.SKIPPED:
            return status
    return TestStatus.SKIPPED


def add_suites_from_names(top_suite: TestSuite, suite_names: tuple[str, ...]) -> TestSuite:
    """Nest one new suite per name under ``top_suite`` and return the deepest."""
    previous = top_suite
    for suite_name in suite_names:
        current = TestSuite(name=suite_name)
        previous.children.append(current)
        previous = current
    return previous


class TestCaseChecker(ABC):
    """Checks whether a test meets some criteria across job runs."""

    __test__ = False

    @abstractmethod
    def check_test_case(self, job_run_junits: Mapping[JobRun, TestSuites]) -> TestSuite:
        """Return a suite holding one synthetic test case with the verdict."""


class MinimumRequiredPassesTestCaseChecker(TestCaseChecker):
    """Requires a test to pass in at least a minimum number of job runs."""

    def __init__(
        self,
        test_id: TestIdentifier,
        required_number_of_passes: int,
        test_name_suffix: str = "",
    ) -> None:
        """Initialize checker.

        Args:
            test_id: Test to check
            required_number_of_passes: Minimum number of job runs it must pass in
            test_name_suffix: Qualifier appended to the synthetic test name,
                such as the platform and network the jobs were selected by

        """
        self.test_id = test_id
        self.required_number_of_passes = required_number_of_passes
        self.test_name_suffix = test_name_suffix

    def synthetic_test_name(self) -> str:
        """Name of the test case reporting the verdict."""
        name = (
            f"test '{self.test_id.test_name}' has required number of successful "
            "passes across payload jobs"
        )
        if self.test_name_suffix:
            name += f" for {self.test_name_suffix}"
        return name

    def check_test_case(self, job_run_junits: Mapping[JobRun, TestSuites]) -> TestSuite:
        """Count passes of the test across job runs and compare to the minimum."""
        top_suite = TestSuite(name=CHECKER_SUITE_NAME)
        bottom_suite = add_suites_from_names(top_suite, self.test_id.test_suites)
        test_case = TestCase(name=self.synthetic_test_name())
        bottom_suite.test_cases.append(test_case)

        start = time.monotonic()
        details = TestCaseDetails(
            name=self.test_id.test_name,
            test_suite_name=TEST_SUITES_SEPARATOR.join(self.test_id.test_suites),
        )
        for job_run, test_suites in job_run_junits.items():
            status = get_job_run_test_status(self.test_id, test_suites)
            reference = JobRunReference(
                job_run_id=job_run.job_run_id,
                human_url=job_run.human_url,
                gcs_artifact_url=job_run.gcs_artifact_url,
            )
            if status is TestStatus.PASSED:
                details.passes.append(reference)
            elif status is TestStatus.FAILED:
                details.failures.append(reference)
            else:
                details.skips.append(reference)

        success_count = len(details.passes)
        details.summary = (
            f"Total job runs: {len(job_run_junits)}, passes: {success_count}, "
            f"failures: {len(details.failures)}, skips {len(details.skips)}"
        )

        test_case.duration = time.monotonic() - start
        test_case.system_out = yaml.safe_dump(details.model_dump(), sort_keys=False)
        if success_count < self.required_number_of_passes:
            test_case.failure_output = FailureOutput(
                message=(
                    f"required minimum successful count "
                    f"{self.required_number_of_passes}, got {success_count}"
                )
            )

        update_test_counts(top_suite)
        return top_suite
