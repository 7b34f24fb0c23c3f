"""Discover job runs in CI artifact storage.

Job runs of a job are stored as ``<storage root>/<job run id>/...`` where the
job run id is a monotonically assigned decimal number. The store can only
list objects by prefix starting at an offset, so finding job runs means
walking the listing and jumping the start offset past whole job runs instead
of reading every artifact they contain.
"""

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from datetime import datetime, timedelta, timezone
from types import TracebackType

from ci_tools.job_run_aggregator.errors import MalformedJobRunIdError
from ci_tools.job_run_aggregator.job_run import JobRun
from ci_tools.job_run_aggregator.models.storage_config import GCSConfig
from ci_tools.job_run_aggregator.storage.base import ObjectStore

logger = logging.getLogger(__name__)

PROW_JOB_FILE = "prowjob.json"
# Every job prefix holds a pointer to its most recent build
LATEST_BUILD_MARKER = "latest-build.txt"
# Max number of job run ids buffered before the listing task waits
JOB_RUN_ID_BUFFER_SIZE = 100

_JOB_RUN_ID_RE = re.compile(r"[0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_job_run_id(current: str) -> str:
    """Return the job run id following ``current``.

    Raises:
        MalformedJobRunIdError: If ``current`` is not a base-10 integer

    """
    if not current:
        return "0"
    if not _JOB_RUN_ID_RE.fullmatch(current):
        raise MalformedJobRunIdError(current)
    return str(int(current) + 1)


def _relative_parts(storage_root: str, name: str) -> list[str]:
    prefix = f"{storage_root}/"
    if not name.startswith(prefix):
        return []
    return name[len(prefix) :].split("/")


def job_run_id_from_name(storage_root: str, name: str) -> str:
    """Extract the job run id an object belongs to, or "" for root-level objects."""
    parts = _relative_parts(storage_root, name)
    if len(parts) < 2:
        return ""
    return parts[0]


class JobRunIdStream:
    """Job run ids produced by a background listing task.

    The listing task starts when the stream is entered as an async context
    manager and is cancelled on exit. Ids are buffered in a bounded queue, so
    the listing pauses while the consumer is busy. A listing error is raised
    from the iterator once the ids found before it have been consumed.
    """

    def __init__(
        self,
        job_run_ids: AsyncIterator[str],
        buffer_size: int = JOB_RUN_ID_BUFFER_SIZE,
    ) -> None:
        """Initialize stream over a job run id producer."""
        self._producer = job_run_ids
        self.job_run_ids: asyncio.Queue[str | None] = asyncio.Queue(buffer_size)
        self.errors: asyncio.Queue[Exception] = asyncio.Queue(buffer_size)
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    async def __aenter__(self) -> "JobRunIdStream":
        self._task = asyncio.create_task(self._produce())
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    def __aiter__(self) -> "JobRunIdStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        job_run_id = await self.job_run_ids.get()
        if job_run_id is None:
            self._closed = True
            if not self.errors.empty():
                raise self.errors.get_nowait()
            raise StopAsyncIteration
        return job_run_id

    async def _produce(self) -> None:
        try:
            async with aclosing(self._producer) as job_run_ids:
                async for job_run_id in job_run_ids:
                    await self.job_run_ids.put(job_run_id)
        except Exception as e:
            self.errors.put_nowait(e)
        # None closes the stream
        await self.job_run_ids.put(None)


class CIGCSClient:
    """Find and read job runs stored in CI artifact storage."""

    def __init__(
        self,
        store: ObjectStore,
        config: GCSConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize client on top of an object store."""
        self.store = store
        self.config = config
        self.clock = clock

    def list_job_run_ids(
        self,
        storage_root: str,
        starting_id: str = "",
        max_age: timedelta | None = None,
        min_age: timedelta = timedelta(0),
    ) -> JobRunIdStream:
        """Stream ids of the job runs under a storage root in ascending order.

        A job run is reported when its prowjob.json was created between
        ``min_age`` and ``max_age`` ago. Objects outside that band make the
        walk skip the rest of their job run.

        Args:
            storage_root: Prefix holding the job runs, e.g. ``logs/<job name>``
            starting_id: Job run id to start the walk at
            max_age: Objects older than this cannot be relevant
            min_age: Objects younger than this cannot be finished yet

        Returns:
            Stream to use with ``async with`` and ``async for``

        """
        walk = self._walk_job_run_ids(
            storage_root.rstrip("/"), starting_id, max_age, min_age
        )
        return JobRunIdStream(walk)

    async def _walk_job_run_ids(
        self,
        storage_root: str,
        starting_id: str,
        max_age: timedelta | None,
        min_age: timedelta,
    ) -> AsyncIterator[str]:
        now = self.clock()
        start_offset = f"{storage_root}/{starting_id}" if starting_id else ""
        num_listed = 0
        num_found = 0
        logger.info(f"Listing job runs under {storage_root} starting at {start_offset!r}")

        while True:
            next_offset = ""
            # A listing cannot seek, so moving the offset means a new listing
            async with aclosing(
                self.store.list_objects(f"{storage_root}/", start_offset)
            ) as objects:
                async for attrs in objects:
                    num_listed += 1
                    if attrs.name.endswith(LATEST_BUILD_MARKER):
                        continue

                    job_run_id = job_run_id_from_name(storage_root, attrs.name)
                    age = now - attrs.created
                    too_old = max_age is not None and age > max_age
                    too_young = age < min_age
                    if too_old or too_young:
                        if not job_run_id:
                            continue
                        band = "old" if too_old else "young"
                        logger.debug(
                            f"Skipping {storage_root}/{job_run_id}, too {band} "
                            f"(age={age})"
                        )
                        next_offset = f"{storage_root}/{next_job_run_id(job_run_id)}"
                        break

                    if attrs.name == f"{storage_root}/{job_run_id}/{PROW_JOB_FILE}":
                        num_found += 1
                        logger.debug(f"Found job run {storage_root}/{job_run_id}")
                        yield job_run_id
                        next_offset = f"{storage_root}/{next_job_run_id(job_run_id)}"
                        break

            if not next_offset:
                logger.info(
                    f"Done listing {storage_root}: listed={num_listed} "
                    f"found={num_found}"
                )
                return
            start_offset = next_offset

    async def read_job_run(
        self, storage_root: str, job_name: str, job_run_id: str
    ) -> JobRun | None:
        """Collect the artifacts of one job run.

        Returns:
            The job run, or None when it has no prowjob.json (yet)

        Raises:
            MalformedJobRunIdError: If the job run id is not a base-10 integer
            RuntimeError: If listing fails or the prowjob.json cannot be read

        """
        storage_root = storage_root.rstrip("/")
        if not _JOB_RUN_ID_RE.fullmatch(job_run_id):
            raise MalformedJobRunIdError(job_run_id)
        logger.debug(f"Reading job run {storage_root}/{job_run_id}")

        prow_job_path = f"{storage_root}/{job_run_id}/{PROW_JOB_FILE}"
        job_run: JobRun | None = None
        # The trailing slash keeps run 1010 out of the listing of run 101
        async with aclosing(
            self.store.list_objects(f"{storage_root}/{job_run_id}/")
        ) as objects:
            async for attrs in objects:
                is_prow_job = attrs.name == prow_job_path
                is_junit = attrs.name.endswith(".xml") and "/junit" in attrs.name
                if not is_prow_job and not is_junit:
                    continue

                if job_run is None:
                    job_run = JobRun(
                        self.store, self.config, storage_root, job_name, job_run_id
                    )
                if is_prow_job:
                    job_run.prow_job_path = attrs.name
                else:
                    job_run.add_junit_path(attrs.name)

        if job_run is None:
            logger.info(
                f"Ignoring {job_name}/{job_run_id}, it doesn't have a prowjob.json"
            )
            return None
        if not job_run.prow_job_path:
            logger.info(
                f"Ignoring {job_name}/{job_run_id}, it has test results "
                "but no prowjob.json"
            )
            return None

        try:
            await job_run.get_prow_job()
        except (RuntimeError, ValueError) as e:
            raise RuntimeError(
                f"Failed to get prowjob for {job_name}/{job_run_id}: {e}"
            ) from e

        return job_run
