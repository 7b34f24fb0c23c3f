"""Errors raised while discovering and analyzing job runs."""


class JobRunAggregatorError(Exception):
    """Base class for job run aggregator errors."""


class SoftAnalysisError(JobRunAggregatorError):
    """Analysis could not produce a passing verdict, but nothing is broken."""


class NoRelatedJobsError(SoftAnalysisError):
    """No job runs were found for the payload."""

    def __init__(self) -> None:
        """Initialize with a fixed message."""
        super().__init__("no related jobs were found for the payload")


class TestCheckerFailedError(SoftAnalysisError):
    """At least one test case checker did not meet its criteria."""

    __test__ = False

    def __init__(self, num_failed: int) -> None:
        """Initialize with the number of failed synthetic test cases."""
        super().__init__(f"{num_failed} test case checks did not pass")
        self.num_failed = num_failed


class MalformedJobRunIdError(JobRunAggregatorError, ValueError):
    """A job run identifier is not a base-10 integer.

    Job run identifiers are assigned monotonically by the CI system. A
    non-numeric one means the storage layout is not what we expect, so it
    is never retried.
    """

    def __init__(self, job_run_id: str) -> None:
        """Initialize with the offending identifier."""
        super().__init__(f"job run id {job_run_id!r} is not a base-10 integer")
        self.job_run_id = job_run_id


class NoJobRunsFoundError(JobRunAggregatorError):
    """No job run of a job matched the payload (yet)."""

    def __init__(self, job_name: str) -> None:
        """Initialize with the job that has no matching job runs."""
        super().__init__(f"no matching job runs found for {job_name}")
        self.job_name = job_name
