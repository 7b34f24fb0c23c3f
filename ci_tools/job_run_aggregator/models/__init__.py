"""Data models for jobs, job run metadata, and test results."""

from ci_tools.job_run_aggregator.models.job import Job, JobGCSPrefix
from ci_tools.job_run_aggregator.models.junit import (
    FailureOutput,
    TestCase,
    TestSuite,
    TestSuites,
)
from ci_tools.job_run_aggregator.models.prow_job import ProwJob
from ci_tools.job_run_aggregator.models.storage_config import GCSConfig
from ci_tools.job_run_aggregator.models.test_case_details import (
    JobRunReference,
    TestCaseDetails,
)

__all__ = [
    "FailureOutput",
    "GCSConfig",
    "Job",
    "JobGCSPrefix",
    "JobRunReference",
    "ProwJob",
    "TestCase",
    "TestCaseDetails",
    "TestSuite",
    "TestSuites",
]
