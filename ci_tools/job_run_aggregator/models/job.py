"""Models for CI jobs read from the job catalog."""

from pydantic import BaseModel, Field


def infrastructure_from_job_name(job_name: str) -> str:
    """Guess the install infrastructure of a job from its name."""
    if "upi" in job_name:
        return "upi"
    return "ipi"


class Job(BaseModel):
    """A named CI job definition with its variant facets."""

    job_name: str = Field(..., description="Prow job name")
    platform: str | None = Field(default=None, description="Cloud platform, e.g. aws")
    network: str | None = Field(default=None, description="Network type, e.g. ovn")
    infrastructure: str | None = Field(
        default=None, description="Install infrastructure, upi or ipi"
    )

    model_config = {"frozen": True}

    def get_infrastructure(self) -> str:
        """Return the infrastructure, derived from the job name when unset."""
        if self.infrastructure:
            return self.infrastructure
        return infrastructure_from_job_name(self.job_name)


class JobGCSPrefix(BaseModel):
    """Explicit storage prefix for a job started by a PR payload."""

    job_name: str = Field(..., description="Prow job name")
    gcs_prefix: str = Field(..., description="Storage prefix holding the job runs")

    model_config = {"frozen": True}


def parse_job_gcs_prefixes(value: str) -> list[JobGCSPrefix]:
    """Parse ``job=prefix,job2=prefix2`` into job prefix pairs.

    Raises:
        ValueError: If an element is not a ``name=prefix`` pair

    """
    if not value:
        return []

    prefixes: list[JobGCSPrefix] = []
    for job_pair in value.split(","):
        parts = job_pair.split("=")
        if len(parts) != 2:
            raise ValueError(
                "GCS prefix should consist of job name and GCS prefix "
                f"separated by '=', got {job_pair!r}"
            )
        prefixes.append(JobGCSPrefix(job_name=parts[0], gcs_prefix=parts[1]))
    return prefixes
