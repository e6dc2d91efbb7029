"""
Search index interface (Abstract Base Class).

Defines the contract for the derived, eventually-consistent projection of
entities. Writes are acknowledged before they become searchable; callers that
need read-after-write visibility wait on the returned task id.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

INDEX_NAMES = ("users", "orgs", "matches", "meetings")


@dataclass
class SearchPage:
    """One page of raw index hits plus the total number of matches."""

    hits: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0


class ISearchIndex(ABC):
    """Abstract search index holding one index per entity kind."""

    @abstractmethod
    async def upsert(self, index_name: str, obj: dict[str, Any]) -> int:
        """
        Add or replace an object, keyed by its ``id``.

        Returns:
            Task id that can be passed to ``wait_until_visible``

        Raises:
            IndexException: If the write is not accepted
        """

    @abstractmethod
    async def upsert_many(self, index_name: str, objs: list[dict[str, Any]]) -> int:
        """Add or replace a batch of objects in one write; returns its task id."""

    @abstractmethod
    async def remove(self, index_name: str, object_id: str) -> int:
        """
        Remove an object by id. Removing an absent id is not an error.

        Raises:
            IndexException: On transport failure
        """

    @abstractmethod
    async def wait_until_visible(self, index_name: str, task_id: int) -> None:
        """
        Block until a previous write is searchable.

        Raises:
            IndexException: If the write failed or did not finish in time
        """

    @abstractmethod
    async def search(
        self,
        index_name: str,
        query: str = "",
        filter: Optional[str] = None,
        page: int = 0,
        hits_per_page: int = 20,
    ) -> SearchPage:
        """
        Run a filtered full-text search.

        Args:
            index_name: Index to search
            query: Full-text query (empty matches everything)
            filter: Filter expression
            page: 0-based page number
            hits_per_page: Page size

        Raises:
            IndexException: If the search fails
        """

    @abstractmethod
    async def list_ids(self, index_name: str) -> list[str]:
        """Return the id of every object in an index."""
