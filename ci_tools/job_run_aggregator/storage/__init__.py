"""Object stores holding CI job artifacts."""

from ci_tools.job_run_aggregator.storage.base import ObjectAttrs, ObjectStore
from ci_tools.job_run_aggregator.storage.gcs import GCSObjectStore

__all__ = ["GCSObjectStore", "ObjectAttrs", "ObjectStore"]
