"""Tests for prow job models."""

from datetime import datetime, timezone

from job_run_fakes import PAYLOAD_TAG, prow_job_json

from ci_tools.job_run_aggregator.models.prow_job import (
    PAYLOAD_INVOCATION_ID_LABEL,
    ProwJob,
)


def test_prow_job_from_json() -> None:
    """ProwJob reads the fields used to match and wait on job runs."""
    prow_job = ProwJob.model_validate_json(
        prow_job_json(
            labels={PAYLOAD_INVOCATION_ID_LABEL: "a9b1c2d3"},
            start_time=datetime(2022, 4, 28, 10, 28, 48, tzinfo=timezone.utc),
        )
    )

    assert prow_job.spec.job == (
        "periodic-ci-openshift-release-master-nightly-4.11-e2e-aws"
    )
    assert prow_job.status.start_time == datetime(
        2022, 4, 28, 10, 28, 48, tzinfo=timezone.utc
    )
    assert prow_job.metadata.creation_timestamp == prow_job.status.start_time
    assert prow_job.is_finished
    assert prow_job.payload_tag == PAYLOAD_TAG
    assert prow_job.payload_invocation_id == "a9b1c2d3"


def test_prow_job_unfinished() -> None:
    """ProwJob without completion time is not finished."""
    prow_job = ProwJob.model_validate_json(prow_job_json(finished=False))

    assert not prow_job.is_finished
    assert prow_job.status.state == "pending"


def test_prow_job_empty() -> None:
    """ProwJob tolerates a descriptor without spec or status."""
    prow_job = ProwJob.model_validate_json("{}")

    assert prow_job.payload_tag == ""
    assert prow_job.payload_invocation_id == ""
    assert not prow_job.is_finished


def test_prow_job_payload_tag_without_tag() -> None:
    """payload_tag is empty when the release image has no tag."""
    prow_job = ProwJob.model_validate(
        {
            "spec": {
                "pod_spec": {
                    "containers": [
                        {
                            "env": [
                                {
                                    "name": "RELEASE_IMAGE_LATEST",
                                    "value": "registry.ci.openshift.org/release",
                                }
                            ]
                        }
                    ]
                }
            }
        }
    )

    assert prow_job.payload_tag == ""
