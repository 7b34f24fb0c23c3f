"""CLI entry point for the test case analyzer."""

import asyncio
import json
import logging
import os
import re
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer

from ci_tools.job_run_aggregator.analyzer import OUTPUT_FILE_NAME, TestCaseAnalyzer
from ci_tools.job_run_aggregator.checker import (
    INSTALL_TEST_IDENTIFIER,
    MinimumRequiredPassesTestCaseChecker,
    TestCaseChecker,
    TestIdentifier,
)
from ci_tools.job_run_aggregator.ci_gcs_client import CIGCSClient
from ci_tools.job_run_aggregator.errors import (
    NoRelatedJobsError,
    TestCheckerFailedError,
)
from ci_tools.job_run_aggregator.job_getter import (
    TestCaseAnalyzerJobGetter,
    YamlJobCatalog,
)
from ci_tools.job_run_aggregator.models.job import parse_job_gcs_prefixes
from ci_tools.job_run_aggregator.models.storage_config import GCSConfig
from ci_tools.job_run_aggregator.storage.gcs import GCSObjectStore

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,  # Force reconfiguration even if already set up
)
logger = logging.getLogger(__name__)

app = typer.Typer()

KNOWN_PLATFORMS = {"aws", "azure", "gcp", "libvirt", "metal", "ovirt", "vsphere"}
KNOWN_NETWORKS = {"ovn", "sdn"}
KNOWN_INFRASTRUCTURES = {"upi", "ipi"}
KNOWN_TEST_GROUPS: dict[str, TestIdentifier] = {"install": INSTALL_TEST_IDENTIFIER}

DEFAULT_TIMEOUT = "3h30m"
# Our guess of the maximum duration of a job run
MAX_TIMEOUT = timedelta(hours=4, minutes=35)

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_DURATION_UNITS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``3h30m`` or ``90s``.

    Raises:
        ValueError: If the value is not a duration

    """
    value = value.strip()
    parts = _DURATION_PART_RE.findall(value)
    if not value or "".join(n + u for n, u in parts) != value:
        raise ValueError(f"Invalid duration: {value!r}")
    return timedelta(seconds=sum(float(n) * _DURATION_UNITS[u] for n, u in parts))


def parse_start_time(value: str) -> datetime:
    """Parse an RFC3339 timestamp such as ``2022-04-28T10:28:48Z``.

    Raises:
        ValueError: If the value is not an RFC3339 timestamp

    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid job start time {value!r}: {e}") from e
    if parsed.tzinfo is None:
        raise ValueError(f"Job start time {value!r} has no timezone offset")
    return parsed


def validate_flags(  # noqa: C901
    test_groups: list[str],
    working_dir: str,
    payload_tag: str,
    payload_invocation_id: str,
    explicit_gcs_prefixes: str,
    platform: str,
    network: str,
    infrastructure: str,
    timeout: timedelta,
) -> None:
    """Check the flags are likely to produce a functional analysis.

    Raises:
        ValueError: Describing the first invalid flag

    """
    if not working_dir:
        raise ValueError("missing --working-dir: like test-analyzer-working-dir")
    if not test_groups:
        raise ValueError("at least one test group has to be specified")
    for group in test_groups:
        if group not in KNOWN_TEST_GROUPS:
            raise ValueError(
                f"unknown test group {group}, valid values are: "
                f"{sorted(KNOWN_TEST_GROUPS)}"
            )
    if payload_tag and payload_invocation_id:
        raise ValueError("cannot specify both --payload-tag and --payload-invocation-id")
    if not payload_tag and not payload_invocation_id:
        raise ValueError(
            "exactly one of --payload-tag or --payload-invocation-id must be specified"
        )
    if payload_invocation_id and not explicit_gcs_prefixes:
        raise ValueError(
            "if --payload-invocation-id is specified, you must specify "
            "--explicit-gcs-prefixes"
        )
    if payload_invocation_id and (platform or network or infrastructure):
        raise ValueError(
            "if --payload-invocation-id is specified, --platform, --network or "
            "--infrastructure cannot be specified"
        )
    if platform and platform not in KNOWN_PLATFORMS:
        raise ValueError(
            f"unknown platform {platform}, valid values are: {sorted(KNOWN_PLATFORMS)}"
        )
    if network and network not in KNOWN_NETWORKS:
        raise ValueError(
            f"unknown network {network}, valid values are: {sorted(KNOWN_NETWORKS)}"
        )
    if infrastructure and infrastructure not in KNOWN_INFRASTRUCTURES:
        raise ValueError(
            f"unknown infrastructure {infrastructure}, valid values are: "
            f"{sorted(KNOWN_INFRASTRUCTURES)}"
        )
    if timeout > MAX_TIMEOUT:
        raise ValueError(
            f"timeout value of {timeout} is out of range, valid value should be "
            f"less than {MAX_TIMEOUT}"
        )


def checker_name_suffix(platform: str, network: str, infrastructure: str) -> str:
    """Describe the job filters so checkers can qualify their test names."""
    suffix = ""
    if platform:
        suffix += f"platform:{platform} "
    if network:
        suffix += f"network:{network} "
    if infrastructure:
        suffix += f"infrastructure:{infrastructure}"
    return suffix.strip()


@app.command()
def main(  # noqa: C901
    test_group: Optional[list[str]] = typer.Option(  # noqa: B008
        None, help="One or more test groups to analyze, like install"
    ),
    payload_tag: str = typer.Option(
        "", help="Release controller payload tag, like 4.11.0-0.nightly-2022-04-28-102605"
    ),
    payload_invocation_id: str = typer.Option(
        "",
        help="Mutually exclusive to --payload-tag. Matches the aggregation id "
        "label of PR payload job runs",
    ),
    job_start_time: str = typer.Option(
        "", help="Estimated payload start time in RFC3339, defaults to now"
    ),
    platform: str = typer.Option("", help="Only analyze jobs on this platform"),
    network: str = typer.Option("", help="Only analyze jobs with this network"),
    infrastructure: str = typer.Option(
        "", help="Only analyze jobs with this infrastructure, upi or ipi"
    ),
    minimum_successful_count: int = typer.Option(
        1, help="Minimum number of job runs the test must pass in"
    ),
    working_dir: str = typer.Option(
        "test-case-analyzer-working-dir",
        help="Directory to store output in",
    ),
    timeout: str = typer.Option(
        DEFAULT_TIMEOUT, help="Time to wait for the analysis to complete, like 3h30m"
    ),
    explicit_gcs_prefixes: str = typer.Option(
        "",
        help="Comma-separated job=gcs-prefix pairs for the jobs of a PR payload",
    ),
    exclude_job_names: Optional[list[str]] = typer.Option(  # noqa: B008
        None, help="Skip jobs whose name contains this substring"
    ),
    job_catalog: Path = typer.Option(  # noqa: B008
        ..., help="YAML file listing the known jobs"
    ),
    gcs_config: str = typer.Option("{}", help="JSON configuration for GCS"),
) -> None:
    """Check a test passed in enough job runs of a payload."""
    test_groups = test_group or []
    try:
        timeout_delta = parse_duration(timeout)
        validate_flags(
            test_groups,
            working_dir,
            payload_tag,
            payload_invocation_id,
            explicit_gcs_prefixes,
            platform,
            network,
            infrastructure,
            timeout_delta,
        )
        start_estimate = (
            parse_start_time(job_start_time)
            if job_start_time
            else datetime.now(timezone.utc)
        )
        job_gcs_prefixes = parse_job_gcs_prefixes(explicit_gcs_prefixes)
        config = _create_gcs_config(gcs_config)
    except ValueError as e:
        logger.error(f"Flags are invalid: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    suffix = checker_name_suffix(platform, network, infrastructure)
    checkers: list[TestCaseChecker] = [
        MinimumRequiredPassesTestCaseChecker(
            KNOWN_TEST_GROUPS[group], minimum_successful_count, suffix
        )
        for group in test_groups
    ]
    job_getter = TestCaseAnalyzerJobGetter(
        YamlJobCatalog(job_catalog),
        platform=platform,
        network=network,
        infrastructure=infrastructure,
        exclude_job_names=exclude_job_names,
        job_gcs_prefixes=job_gcs_prefixes,
    )
    analyzer = TestCaseAnalyzer(
        job_getter,
        CIGCSClient(GCSObjectStore(config), config),
        checkers,
        Path(working_dir),
        start_estimate,
        timeout_delta,
        payload_tag=payload_tag,
        payload_invocation_id=payload_invocation_id,
        job_gcs_prefixes=job_gcs_prefixes,
    )

    output: dict[str, object] = {
        "match_id": analyzer.match_id,
        "output_file": str(
            Path(working_dir) / analyzer.match_id / OUTPUT_FILE_NAME
        ),
    }
    try:
        logger.info("Starting test case analysis...")
        test_suite = asyncio.run(analyzer.run())
        output.update(status="success", tests=test_suite.num_tests, failed=0)
    except NoRelatedJobsError as e:
        logger.warning(f"Unable to perform test analysis: {e}")
        output.update(status="no-related-jobs")
    except TestCheckerFailedError as e:
        logger.warning(f"Unable to perform test analysis: {e}")
        output.update(status="gate-not-met", failed=e.num_failed)
    except Exception as e:
        logger.exception("Command failed")
        typer.echo(f"Error running analysis: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(output, indent=2))


def _create_gcs_config(config_json: str) -> GCSConfig:
    """Create GCS configuration from JSON, honoring GCS_API_URL."""
    try:
        config_dict = json.loads(config_json)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in gcs-config: {e}")
    if not isinstance(config_dict, dict):
        raise ValueError("gcs-config must be a JSON object")

    config = GCSConfig(**config_dict)
    if "GCS_API_URL" in os.environ:
        config.base_url = os.environ["GCS_API_URL"]
    return config


if __name__ == "__main__":  # pragma: no cover
    app()
