"""Tests for JUnit XML handling."""

import logging

import pytest

from ci_tools.job_run_aggregator.junit import (
    log_test_case_failures,
    parse_test_suites,
    suite_to_xml,
    update_test_counts,
)
from ci_tools.job_run_aggregator.models.junit import (
    FailureOutput,
    TestCase,
    TestSuite,
)

NESTED_JUNIT = """<testsuites>
  <testsuite name="BackendDisruption" tests="2" failures="1" skipped="1" time="12.5">
    <properties>
      <property name="TestVersion" value="v1"/>
    </properties>
    <testcase name="kube-api-new-connections" time="3">
      <failure message="disruption over limit">90s &gt; 60s</failure>
      <system-out>sampled</system-out>
    </testcase>
    <testcase name="image-registry-new-connections">
      <skipped message="not on this platform"/>
    </testcase>
    <testsuite name="network" tests="1">
      <testcase name="dns-check">
        <error message="panic"/>
        <system-err>stack</system-err>
      </testcase>
    </testsuite>
  </testsuite>
</testsuites>
"""


def test_parse_test_suites_nested() -> None:
    """parse_test_suites reads cases, failures, skips, and child suites."""
    test_suites = parse_test_suites(NESTED_JUNIT)

    assert len(test_suites.suites) == 1
    suite = test_suites.suites[0]
    assert suite.name == "BackendDisruption"
    assert suite.num_tests == 2
    assert suite.num_failed == 1
    assert suite.num_skipped == 1
    assert suite.duration == 12.5
    assert suite.properties == {"TestVersion": "v1"}

    failed, skipped = suite.test_cases
    assert failed.failure_output == FailureOutput(
        message="disruption over limit", output="90s > 60s"
    )
    assert failed.duration == 3.0
    assert failed.system_out == "sampled"
    assert skipped.failure_output is None
    assert skipped.skip_message == "not on this platform"

    (child,) = suite.children
    assert child.name == "network"
    assert child.test_cases[0].failure_output == FailureOutput(message="panic")
    assert child.test_cases[0].system_err == "stack"


def test_parse_test_suites_single_suite_root() -> None:
    """parse_test_suites accepts a document rooted at a single suite."""
    test_suites = parse_test_suites(
        b'<testsuite name="cluster install"><testcase name="install"/></testsuite>'
    )

    assert [suite.name for suite in test_suites.suites] == ["cluster install"]
    assert test_suites.suites[0].test_cases[0].failure_output is None


def test_parse_test_suites_invalid_xml() -> None:
    """parse_test_suites rejects malformed XML."""
    with pytest.raises(ValueError, match="Invalid JUnit XML"):
        parse_test_suites("<testsuites><testsuite>")


def test_parse_test_suites_unexpected_root() -> None:
    """parse_test_suites rejects documents that are not JUnit."""
    with pytest.raises(ValueError, match="Unexpected JUnit root element <html>"):
        parse_test_suites("<html/>")


def test_update_test_counts() -> None:
    """update_test_counts sums test cases and failures bottom-up."""
    leaf = TestSuite(
        name="leaf",
        num_tests=99,
        test_cases=[
            TestCase(name="a"),
            TestCase(name="b", failure_output=FailureOutput(message="x")),
        ],
    )
    root = TestSuite(name="root", test_cases=[TestCase(name="c")], children=[leaf])

    update_test_counts(root)

    assert (leaf.num_tests, leaf.num_failed) == (2, 1)
    assert (root.num_tests, root.num_failed) == (3, 1)


def test_suite_to_xml() -> None:
    """suite_to_xml writes a document parse_test_suites reads back."""
    suite = TestSuite(
        name="payload-cross-jobs",
        num_tests=1,
        num_failed=1,
        children=[
            TestSuite(
                name="minimum-required-passes-checker",
                num_tests=1,
                num_failed=1,
                test_cases=[
                    TestCase(
                        name="test 'install' has required number of successful passes",
                        duration=0.5,
                        failure_output=FailureOutput(message="got 1"),
                        system_out="summary: Total job runs: 1",
                    )
                ],
            )
        ],
    )

    content = suite_to_xml(suite)
    (parsed,) = parse_test_suites(content).suites

    assert content.startswith('<testsuite name="payload-cross-jobs"')
    assert parsed.num_tests == 1
    assert parsed.num_failed == 1
    case = parsed.children[0].test_cases[0]
    assert case.name == "test 'install' has required number of successful passes"
    assert case.failure_output == FailureOutput(message="got 1")
    assert case.system_out == "summary: Total job runs: 1"


def test_log_test_case_failures(caplog: pytest.LogCaptureFixture) -> None:
    """log_test_case_failures logs each failed case with its suite path."""
    suite = parse_test_suites(NESTED_JUNIT).suites[0]

    with caplog.at_level(logging.ERROR):
        log_test_case_failures(["root"], suite)

    messages = [record.getMessage() for record in caplog.records]
    assert messages == [
        "Test failed: root / BackendDisruption / kube-api-new-connections: "
        "disruption over limit",
        "Test failed: root / BackendDisruption / network / dns-check: panic",
    ]
