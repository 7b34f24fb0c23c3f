"""Models for JUnit test result trees."""

from typing import ClassVar

from pydantic import BaseModel, Field


class FailureOutput(BaseModel):
    """Failure attached to a test case."""

    message: str = Field(default="", description="Short failure message")
    output: str = Field(default="", description="Failure details")


class TestCase(BaseModel):
    """Single test case of a suite."""

    __test__: ClassVar[bool] = False

    name: str = Field(..., description="Test case name")
    duration: float = Field(default=0.0, description="Duration in seconds")
    failure_output: FailureOutput | None = Field(
        default=None, description="Present when the test case failed"
    )
    skip_message: str | None = Field(
        default=None, description="Present when the test case was skipped"
    )
    system_out: str = Field(default="", description="Captured standard output")
    system_err: str = Field(default="", description="Captured standard error")


class TestSuite(BaseModel):
    """Test suite owning its test cases and nested child suites."""

    __test__: ClassVar[bool] = False

    name: str = Field(..., description="Suite name")
    num_tests: int = Field(default=0, description="Number of tests")
    num_skipped: int = Field(default=0, description="Number of skipped tests")
    num_failed: int = Field(default=0, description="Number of failed tests")
    duration: float = Field(default=0.0, description="Duration in seconds")
    properties: dict[str, str] = Field(default_factory=dict)
    test_cases: list[TestCase] = Field(default_factory=list)
    children: list["TestSuite"] = Field(default_factory=list)


class TestSuites(BaseModel):
    """Forest of top-level suites loaded from one or more result files."""

    __test__: ClassVar[bool] = False

    suites: list[TestSuite] = Field(default_factory=list)
