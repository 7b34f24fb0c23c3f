"""A single execution of a CI job and its stored artifacts."""

import logging

from pydantic import ValidationError

from ci_tools.job_run_aggregator.junit import parse_test_suites
from ci_tools.job_run_aggregator.models.junit import TestSuites
from ci_tools.job_run_aggregator.models.prow_job import ProwJob
from ci_tools.job_run_aggregator.models.storage_config import GCSConfig
from ci_tools.job_run_aggregator.storage.base import ObjectStore

logger = logging.getLogger(__name__)


class JobRun:
    """Job run stored under ``<storage root>/<job run id>``.

    The metadata descriptor and test result files are loaded lazily and the
    metadata is cached after the first read.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: GCSConfig,
        storage_root: str,
        job_name: str,
        job_run_id: str,
    ) -> None:
        """Initialize job run without any resolved artifacts."""
        self.store = store
        self.config = config
        self.storage_root = storage_root
        self.job_name = job_name
        self.job_run_id = job_run_id
        self.prow_job_path = ""
        self.junit_paths: list[str] = []
        self._prow_job: ProwJob | None = None

    def __repr__(self) -> str:
        return f"JobRun({self.job_name}/{self.job_run_id})"

    @property
    def human_url(self) -> str:
        """Link to the job run page."""
        return (
            f"{self.config.human_url_base}/{self.config.bucket}/"
            f"{self.storage_root}/{self.job_run_id}"
        )

    @property
    def gcs_artifact_url(self) -> str:
        """Link to the job run artifacts."""
        return (
            f"{self.config.artifact_url_base}/{self.config.bucket}/"
            f"{self.storage_root}/{self.job_run_id}"
        )

    def add_junit_path(self, path: str) -> None:
        """Attach a test result file found for this job run."""
        self.junit_paths.append(path)

    async def get_prow_job(self) -> ProwJob:
        """Read and cache the metadata descriptor.

        Raises:
            ValueError: If the job run has no metadata descriptor or it is invalid

        """
        if self._prow_job is not None:
            return self._prow_job
        if not self.prow_job_path:
            raise ValueError(f"{self!r} has no prowjob.json")

        content = await self.store.read_object(self.prow_job_path)
        try:
            self._prow_job = ProwJob.model_validate_json(content)
        except ValidationError as e:
            raise ValueError(f"Invalid prowjob.json at {self.prow_job_path}: {e}") from e
        return self._prow_job

    async def get_combined_junit_test_suites(self) -> TestSuites:
        """Read all test result files and merge their top-level suites."""
        combined = TestSuites()
        for path in self.junit_paths:
            content = await self.store.read_object(path)
            try:
                test_suites = parse_test_suites(content)
            except ValueError as e:
                raise ValueError(f"Invalid test results at {path}: {e}") from e
            logger.debug(f"Loaded {len(test_suites.suites)} suites from {path}")
            combined.suites.extend(test_suites.suites)
        return combined
