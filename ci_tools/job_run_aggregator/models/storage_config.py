"""Configuration for the CI artifact storage."""

from pydantic import BaseModel, Field


class GCSConfig(BaseModel):
    """Configuration for the GCS bucket holding CI job artifacts."""

    bucket: str = Field(default="origin-ci-test", description="Bucket name")
    base_url: str = Field(
        default="https://storage.googleapis.com", description="GCS JSON API base URL"
    )
    token: str | None = Field(
        default=None, description="Pre-acquired OAuth bearer token, if any"
    )
    human_url_base: str = Field(
        default="https://prow.ci.openshift.org/view/gs",
        description="Base URL of the job run pages",
    )
    artifact_url_base: str = Field(
        default="https://gcsweb-ci.apps.ci.l2s4.p1.openshiftapps.com/gcs",
        description="Base URL of the artifact browser",
    )
