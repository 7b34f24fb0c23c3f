"""Models for the prowjob.json metadata descriptor of a job run."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

PAYLOAD_INVOCATION_ID_LABEL = "release.openshift.io/aggregation-id"
RELEASE_IMAGE_ENV = "RELEASE_IMAGE_LATEST"


class EnvVar(BaseModel):
    """Environment variable of a job container."""

    name: str
    value: str = ""


class Container(BaseModel):
    """Container of the job pod."""

    name: str = ""
    env: list[EnvVar] = Field(default_factory=list)


class PodSpec(BaseModel):
    """Pod spec of the job."""

    containers: list[Container] = Field(default_factory=list)


class ProwJobMetadata(BaseModel):
    """Object metadata of a prow job."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    creation_timestamp: datetime | None = Field(
        default=None, alias="creationTimestamp"
    )


class ProwJobSpec(BaseModel):
    """Spec of a prow job."""

    job: str = ""
    cluster: str = ""
    pod_spec: PodSpec | None = None


class ProwJobStatus(BaseModel):
    """Status of a prow job."""

    model_config = ConfigDict(populate_by_name=True)

    state: str = ""
    start_time: datetime | None = Field(default=None, alias="startTime")
    completion_time: datetime | None = Field(default=None, alias="completionTime")
    url: str = ""


class ProwJob(BaseModel):
    """Run metadata descriptor stored as prowjob.json next to the run artifacts."""

    metadata: ProwJobMetadata = Field(default_factory=ProwJobMetadata)
    spec: ProwJobSpec = Field(default_factory=ProwJobSpec)
    status: ProwJobStatus = Field(default_factory=ProwJobStatus)

    @property
    def is_finished(self) -> bool:
        """Whether the job run has completed."""
        return self.status.completion_time is not None

    @property
    def payload_tag(self) -> str:
        """Release payload tag the job run tested, or an empty string."""
        if self.spec.pod_spec is None:
            return ""
        for container in self.spec.pod_spec.containers:
            for env in container.env:
                if env.name == RELEASE_IMAGE_ENV and ":" in env.value:
                    return env.value.rsplit(":", 1)[1]
        return ""

    @property
    def payload_invocation_id(self) -> str:
        """Aggregation id a PR payload run was labelled with."""
        return self.metadata.labels.get(PAYLOAD_INVOCATION_ID_LABEL, "")
