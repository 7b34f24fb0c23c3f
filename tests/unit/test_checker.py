"""Tests for test case checkers."""

import pytest
import yaml
from job_run_fakes import INSTALL_SUITE, INSTALL_TEST, InMemoryObjectStore

from ci_tools.job_run_aggregator.checker import (
    CHECKER_SUITE_NAME,
    INSTALL_TEST_IDENTIFIER,
    MinimumRequiredPassesTestCaseChecker,
    TestIdentifier,
    TestStatus,
    add_suites_from_names,
    get_job_run_test_status,
    get_test_status,
)
from ci_tools.job_run_aggregator.job_run import JobRun
from ci_tools.job_run_aggregator.models.junit import (
    FailureOutput,
    TestCase,
    TestSuite,
    TestSuites,
)
from ci_tools.job_run_aggregator.models.storage_config import GCSConfig

ROOT = "logs/periodic-ci-openshift-release-master-nightly-4.11-e2e-aws"


def _install_suites(status: TestStatus) -> TestSuites:
    if status is TestStatus.SKIPPED:
        return TestSuites(suites=[TestSuite(name=INSTALL_SUITE)])
    failure = FailureOutput(message="failed") if status is TestStatus.FAILED else None
    return TestSuites(
        suites=[
            TestSuite(
                name=INSTALL_SUITE,
                test_cases=[TestCase(name=INSTALL_TEST, failure_output=failure)],
            )
        ]
    )


def _job_runs(count: int) -> list[JobRun]:
    store = InMemoryObjectStore()
    return [
        JobRun(store, GCSConfig(), ROOT, "e2e-aws", str(100 + i)) for i in range(count)
    ]


def _network_suite(dns_check: TestCase) -> TestSuite:
    return TestSuite(
        name="install",
        children=[TestSuite(name="network", test_cases=[dns_check])],
    )


def test_get_test_status_nested_pass() -> None:
    """get_test_status finds a passing test along the suite path."""
    test_id = TestIdentifier(test_suites=("install", "network"), test_name="dns-check")

    status = get_test_status(test_id, _network_suite(TestCase(name="dns-check")))

    assert status is TestStatus.PASSED


def test_get_test_status_nested_failure() -> None:
    """get_test_status reports a failed test along the suite path."""
    test_id = TestIdentifier(test_suites=("install", "network"), test_name="dns-check")
    dns_check = TestCase(name="dns-check", failure_output=FailureOutput(message="x"))

    assert get_test_status(test_id, _network_suite(dns_check)) is TestStatus.FAILED


def test_get_test_status_wrong_root() -> None:
    """get_test_status skips a tree whose root suite is not on the path."""
    test_id = TestIdentifier(test_suites=("upgrade", "network"), test_name="dns-check")

    status = get_test_status(test_id, _network_suite(TestCase(name="dns-check")))

    assert status is TestStatus.SKIPPED


def test_get_test_status_missing_test() -> None:
    """get_test_status skips when the leaf suite lacks the test."""
    test_id = TestIdentifier(test_suites=("install", "network"), test_name="dns-check")

    status = get_test_status(test_id, _network_suite(TestCase(name="other")))

    assert status is TestStatus.SKIPPED


def test_get_test_status_empty_path() -> None:
    """get_test_status skips a test without a suite path."""
    test_id = TestIdentifier(test_suites=(), test_name="dns-check")

    status = get_test_status(test_id, _network_suite(TestCase(name="dns-check")))

    assert status is TestStatus.SKIPPED


def test_get_test_status_first_verdict_among_siblings_wins() -> None:
    """get_test_status moves past same-named siblings without a verdict."""
    test_id = TestIdentifier(test_suites=("install", "network"), test_name="dns-check")
    suite = TestSuite(
        name="install",
        children=[
            TestSuite(name="network", test_cases=[TestCase(name="other")]),
            TestSuite(
                name="network",
                test_cases=[
                    TestCase(
                        name="dns-check", failure_output=FailureOutput(message="x")
                    )
                ],
            ),
            TestSuite(name="network", test_cases=[TestCase(name="dns-check")]),
        ],
    )

    assert get_test_status(test_id, suite) is TestStatus.FAILED


def test_get_job_run_test_status_searches_all_top_suites() -> None:
    """get_job_run_test_status uses the first top-level suite with a verdict."""
    test_suites = TestSuites(
        suites=[
            TestSuite(name="openshift-tests"),
            *_install_suites(TestStatus.PASSED).suites,
        ]
    )

    status = get_job_run_test_status(INSTALL_TEST_IDENTIFIER, test_suites)

    assert status is TestStatus.PASSED
    assert get_job_run_test_status(INSTALL_TEST_IDENTIFIER, TestSuites()) is (
        TestStatus.SKIPPED
    )


def test_add_suites_from_names() -> None:
    """add_suites_from_names nests one suite per name."""
    top = TestSuite(name="top")

    bottom = add_suites_from_names(top, ("a", "b"))

    assert bottom.name == "b"
    assert top.children[0].name == "a"
    assert top.children[0].children[0] is bottom


def test_synthetic_test_name() -> None:
    """synthetic_test_name includes the optional suffix."""
    checker = MinimumRequiredPassesTestCaseChecker(INSTALL_TEST_IDENTIFIER, 3)
    qualified = MinimumRequiredPassesTestCaseChecker(
        INSTALL_TEST_IDENTIFIER, 3, "platform:aws network:ovn"
    )

    assert checker.synthetic_test_name() == (
        "test 'install should succeed: overall' has required number of "
        "successful passes across payload jobs"
    )
    assert qualified.synthetic_test_name() == (
        "test 'install should succeed: overall' has required number of "
        "successful passes across payload jobs for platform:aws network:ovn"
    )


def test_check_test_case_below_minimum() -> None:
    """check_test_case fails when too few job runs passed."""
    job_runs = _job_runs(4)
    junits = {
        job_runs[0]: _install_suites(TestStatus.PASSED),
        job_runs[1]: _install_suites(TestStatus.PASSED),
        job_runs[2]: _install_suites(TestStatus.FAILED),
        job_runs[3]: _install_suites(TestStatus.SKIPPED),
    }
    checker = MinimumRequiredPassesTestCaseChecker(INSTALL_TEST_IDENTIFIER, 3)

    suite = checker.check_test_case(junits)

    assert suite.name == CHECKER_SUITE_NAME
    assert (suite.num_tests, suite.num_failed) == (1, 1)
    (install_suite,) = suite.children
    assert install_suite.name == INSTALL_SUITE
    (test_case,) = install_suite.test_cases
    assert test_case.name == checker.synthetic_test_name()
    assert test_case.failure_output is not None
    assert test_case.failure_output.message == "required minimum successful count 3, got 2"

    details = yaml.safe_load(test_case.system_out)
    assert details["name"] == INSTALL_TEST
    assert details["test_suite_name"] == INSTALL_SUITE
    assert details["summary"] == (
        "Total job runs: 4, passes: 2, failures: 1, skips 1"
    )
    assert [ref["job_run_id"] for ref in details["passes"]] == ["100", "101"]
    assert [ref["job_run_id"] for ref in details["failures"]] == ["102"]
    assert [ref["job_run_id"] for ref in details["skips"]] == ["103"]
    assert details["passes"][0]["human_url"] == job_runs[0].human_url


@pytest.mark.parametrize("passes", [3, 4])
def test_check_test_case_meets_minimum(passes: int) -> None:
    """check_test_case passes when enough job runs passed."""
    job_runs = _job_runs(passes)
    junits = {job_run: _install_suites(TestStatus.PASSED) for job_run in job_runs}
    checker = MinimumRequiredPassesTestCaseChecker(INSTALL_TEST_IDENTIFIER, 3)

    suite = checker.check_test_case(junits)

    assert (suite.num_tests, suite.num_failed) == (1, 0)
    assert suite.children[0].test_cases[0].failure_output is None


def test_check_test_case_joins_nested_suite_names() -> None:
    """check_test_case records the suite path joined by the separator."""
    test_id = TestIdentifier(test_suites=("install", "network"), test_name="dns-check")
    checker = MinimumRequiredPassesTestCaseChecker(test_id, 1)
    (job_run,) = _job_runs(1)

    suite = checker.check_test_case(
        {job_run: TestSuites(suites=[_network_suite(TestCase(name="dns-check"))])}
    )

    bottom = suite.children[0].children[0]
    assert bottom.name == "network"
    details = yaml.safe_load(bottom.test_cases[0].system_out)
    assert details["test_suite_name"] == "install|||network"
    assert suite.num_failed == 0


def test_check_test_case_no_job_runs() -> None:
    """check_test_case fails a positive minimum without any job run."""
    checker = MinimumRequiredPassesTestCaseChecker(INSTALL_TEST_IDENTIFIER, 1)

    suite = checker.check_test_case({})

    assert suite.num_failed == 1
