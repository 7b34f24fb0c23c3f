"""Select the jobs whose runs are analyzed for a payload."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from ci_tools.job_run_aggregator.models.job import Job, JobGCSPrefix

logger = logging.getLogger(__name__)


class JobCatalog(ABC):
    """Read-only source of known CI jobs."""

    @abstractmethod
    async def list_all_jobs(self) -> list[Job]:
        """Return all known jobs."""


class _JobCatalogFile(BaseModel):
    jobs: list[Job] = Field(default_factory=list)


class YamlJobCatalog(JobCatalog):
    """Job catalog exported to a YAML file."""

    def __init__(self, path: Path) -> None:
        """Initialize catalog backed by a YAML file."""
        self.path = path

    async def list_all_jobs(self) -> list[Job]:
        """Load jobs from the YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If YAML is invalid or doesn't match schema

        """
        if not self.path.exists():
            raise FileNotFoundError(f"Job catalog not found: {self.path}")

        try:
            with self.path.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {self.path}: {e}") from e

        if data is None:
            return []

        try:
            return _JobCatalogFile.model_validate(data).jobs
        except ValidationError as e:
            raise ValueError(f"Invalid job catalog schema in {self.path}: {e}") from e


class TestCaseAnalyzerJobGetter:
    """Picks the jobs started for a payload out of the job catalog.

    For a PR payload only the jobs with an explicit storage prefix are used.
    Otherwise every job matching the platform, network, and infrastructure
    filters is used, except the ones whose name contains an excluded
    substring.
    """

    __test__ = False

    def __init__(
        self,
        job_catalog: JobCatalog,
        platform: str = "",
        network: str = "",
        infrastructure: str = "",
        exclude_job_names: list[str] | None = None,
        job_gcs_prefixes: list[JobGCSPrefix] | None = None,
    ) -> None:
        """Initialize job getter with selection criteria."""
        self.job_catalog = job_catalog
        self.platform = platform
        self.network = network
        self.infrastructure = infrastructure
        self.exclude_job_names = exclude_job_names or []
        self.job_gcs_prefixes = job_gcs_prefixes or []

    async def get_jobs(self) -> list[Job]:
        """Return the jobs to analyze."""
        try:
            jobs = await self.job_catalog.list_all_jobs()
        except (FileNotFoundError, ValueError) as e:
            raise RuntimeError(f"Failed to list all jobs: {e}") from e

        if self.job_gcs_prefixes:
            job_names = {prefix.job_name for prefix in self.job_gcs_prefixes}
            selected = [job for job in jobs if job.job_name in job_names]
        else:
            selected = [job for job in jobs if self._matches_payload_criteria(job)]

        logger.info(f"Selected {len(selected)} of {len(jobs)} jobs")
        return selected

    def _matches_payload_criteria(self, job: Job) -> bool:
        if self.platform and job.platform != self.platform:
            return False
        if self.network and job.network != self.network:
            return False
        if self.infrastructure and job.get_infrastructure() != self.infrastructure:
            return False
        return not self.is_job_name_excluded(job.job_name)

    def is_job_name_excluded(self, job_name: str) -> bool:
        """Whether the job name contains any excluded substring."""
        return any(excluded in job_name for excluded in self.exclude_job_names)
