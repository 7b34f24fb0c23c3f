"""GCS implementation of the object store using the JSON API."""

import asyncio
from collections.abc import AsyncIterator, Mapping
from datetime import datetime
from urllib.parse import quote

import aiohttp

from ci_tools.job_run_aggregator.models.storage_config import GCSConfig
from ci_tools.job_run_aggregator.storage.base import ObjectAttrs, ObjectStore

# Only name and creation time are needed, which keeps listing pages small
LIST_FIELDS = "items(name,timeCreated),nextPageToken"


class GCSObjectStore(ObjectStore):
    """Object store backed by a GCS bucket.

    Transport failures are raised as RuntimeError, like unexpected statuses.
    """

    def __init__(self, config: GCSConfig) -> None:
        """Initialize GCS object store with configuration."""
        self.config = config
        self.base_url = config.base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def list_objects(
        self,
        prefix: str,
        start_offset: str = "",
        end_offset: str = "",
    ) -> AsyncIterator[ObjectAttrs]:
        """List objects page by page, following nextPageToken."""
        url = f"{self.base_url}/storage/v1/b/{self.config.bucket}/o"
        params = {"prefix": prefix, "fields": LIST_FIELDS}
        if start_offset:
            params["startOffset"] = start_offset
        if end_offset:
            params["endOffset"] = end_offset

        async with aiohttp.ClientSession() as session:
            while True:
                data = await self._list_page(session, url, params, prefix)

                items = data.get("items", [])
                for item in items if isinstance(items, list) else []:
                    yield ObjectAttrs(
                        name=str(item["name"]),
                        created=_parse_timestamp(str(item["timeCreated"])),
                    )

                page_token = data.get("nextPageToken")
                if not isinstance(page_token, str) or not page_token:
                    return
                params["pageToken"] = page_token

    async def _list_page(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: dict[str, str],
        prefix: str,
    ) -> Mapping[str, object]:
        try:
            async with session.get(
                url, headers=self._headers(), params=params
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise RuntimeError(
                        f"Failed to list objects under {prefix}: "
                        f"{response.status} {text}"
                    )
                data: Mapping[str, object] = await response.json()
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RuntimeError(f"Failed to list objects under {prefix}: {e}") from e

    async def read_object(self, name: str) -> bytes:
        """Download object content."""
        url = f"{self.base_url}/{self.config.bucket}/{quote(name, safe='/')}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, headers=self._headers()) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise RuntimeError(
                            f"Failed to read object {name}: {response.status} {text}"
                        )
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RuntimeError(f"Failed to read object {name}: {e}") from e


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
