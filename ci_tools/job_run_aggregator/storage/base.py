"""Abstract object store holding CI job artifacts."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ObjectAttrs:
    """Name and creation time of a stored object."""

    name: str
    created: datetime


class ObjectStore(ABC):
    """Abstract base for prefix-ordered object stores."""

    @abstractmethod
    def list_objects(
        self,
        prefix: str,
        start_offset: str = "",
        end_offset: str = "",
    ) -> AsyncIterator[ObjectAttrs]:
        """List objects under a prefix in lexicographic name order.

        Every call starts a fresh listing; an iterator cannot be moved to a
        different offset once it has started.

        Args:
            prefix: Only objects whose name starts with this are listed
            start_offset: Only objects whose name is >= this are listed
            end_offset: Only objects whose name is < this are listed

        Returns:
            Async iterator over the matching objects

        """

    @abstractmethod
    async def read_object(self, name: str) -> bytes:
        """Read the content of an object.

        Args:
            name: Full object name

        Returns:
            Object content

        """
