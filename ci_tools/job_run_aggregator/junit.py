"""Read, write, and summarize JUnit XML test result trees."""

import logging
from xml.etree.ElementTree import Element, ParseError, SubElement, fromstring, tostring

from ci_tools.job_run_aggregator.models.junit import (
    FailureOutput,
    TestCase,
    TestSuite,
    TestSuites,
)

logger = logging.getLogger(__name__)


def parse_test_suites(content: bytes | str) -> TestSuites:
    """Parse a JUnit document rooted at <testsuites> or <testsuite>.

    Raises:
        ValueError: If the document is not valid JUnit XML

    """
    try:
        root = fromstring(content)
    except ParseError as e:
        raise ValueError(f"Invalid JUnit XML: {e}") from e

    if root.tag == "testsuites":
        return TestSuites(suites=[_parse_suite(e) for e in root.findall("testsuite")])
    if root.tag == "testsuite":
        return TestSuites(suites=[_parse_suite(root)])
    raise ValueError(f"Unexpected JUnit root element <{root.tag}>")


def _int_attr(element: Element, name: str) -> int:
    try:
        return int(float(element.attrib.get(name, "0") or 0))
    except ValueError:
        return 0


def _float_attr(element: Element, name: str) -> float:
    try:
        return float(element.attrib.get(name, "0") or 0)
    except ValueError:
        return 0.0


def _parse_suite(element: Element) -> TestSuite:
    properties = {
        prop.attrib.get("name", ""): prop.attrib.get("value", "")
        for prop in element.findall("./properties/property")
    }
    return TestSuite(
        name=element.attrib.get("name", ""),
        num_tests=_int_attr(element, "tests"),
        num_skipped=_int_attr(element, "skipped"),
        num_failed=_int_attr(element, "failures"),
        duration=_float_attr(element, "time"),
        properties=properties,
        test_cases=[_parse_case(e) for e in element.findall("testcase")],
        children=[_parse_suite(e) for e in element.findall("testsuite")],
    )


def _parse_case(element: Element) -> TestCase:
    failure_output = None
    failure = element.find("failure")
    if failure is None:
        failure = element.find("error")
    if failure is not None:
        failure_output = FailureOutput(
            message=failure.attrib.get("message", ""), output=failure.text or ""
        )

    skip_message = None
    skipped = element.find("skipped")
    if skipped is not None:
        skip_message = skipped.attrib.get("message", "")

    return TestCase(
        name=element.attrib.get("name", ""),
        duration=_float_attr(element, "time"),
        failure_output=failure_output,
        skip_message=skip_message,
        system_out=element.findtext("system-out") or "",
        system_err=element.findtext("system-err") or "",
    )


def _suite_element(suite: TestSuite, parent: Element | None = None) -> Element:
    attrs = {
        "name": suite.name,
        "tests": str(suite.num_tests),
        "skipped": str(suite.num_skipped),
        "failures": str(suite.num_failed),
        "time": f"{suite.duration:g}",
    }
    if parent is None:
        node = Element("testsuite", attrs)
    else:
        node = SubElement(parent, "testsuite", attrs)

    if suite.properties:
        props = SubElement(node, "properties")
        for name, value in suite.properties.items():
            SubElement(props, "property", name=name, value=value)

    for case in suite.test_cases:
        case_node = SubElement(
            node, "testcase", name=case.name, time=f"{case.duration:g}"
        )
        if case.failure_output is not None:
            failure = SubElement(
                case_node, "failure", message=case.failure_output.message
            )
            failure.text = case.failure_output.output
        if case.skip_message is not None:
            SubElement(case_node, "skipped", message=case.skip_message)
        if case.system_out:
            SubElement(case_node, "system-out").text = case.system_out
        if case.system_err:
            SubElement(case_node, "system-err").text = case.system_err

    for child in suite.children:
        _suite_element(child, node)

    return node


def suite_to_xml(suite: TestSuite) -> str:
    """Serialize a suite tree to a JUnit XML document."""
    return tostring(_suite_element(suite), encoding="unicode")


def update_test_counts(suite: TestSuite) -> None:
    """Recompute test and failure counts bottom-up from the test cases."""
    num_tests = 0
    num_failed = 0
    for case in suite.test_cases:
        num_tests += 1
        if case.failure_output is not None:
            num_failed += 1
    for child in suite.children:
        update_test_counts(child)
        num_tests += child.num_tests
        num_failed += child.num_failed
    suite.num_tests = num_tests
    suite.num_failed = num_failed


def log_test_case_failures(parents: list[str], suite: TestSuite) -> None:
    """Log every failed test case in the tree with its suite path."""
    path = [*parents, suite.name]
    for case in suite.test_cases:
        if case.failure_output is None:
            continue
        logger.error(
            f"Test failed: {' / '.join(path)} / {case.name}: "
            f"{case.failure_output.message}"
        )
    for child in suite.children:
        log_test_case_failures(path, child)
