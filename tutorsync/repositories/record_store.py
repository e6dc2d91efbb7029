"""
Record store interface (Abstract Base Class).

Defines the contract for the authoritative entity store independent of the
underlying storage mechanism. Every operation touches exactly one entity,
keyed by id, in a single round trip; no cross-entity atomicity is offered.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Generic, TypeVar

from ..domain.entities import Entity

E = TypeVar("E", bound=Entity)


class IRecordStore(ABC, Generic[E]):
    """
    Abstract record store for one entity table.

    Implementations never retry automatically; the caller decides.
    """

    entity_cls: type[E]

    @abstractmethod
    async def insert(self, entity: E) -> E:
        """
        Insert a new entity.

        Assigns an id when the entity has none and sets ``created`` and
        ``updated``.

        Returns:
            The stored entity

        Raises:
            ConflictException: If an entity with this id already exists
            StoreException: If the write fails
        """

    @abstractmethod
    async def update(self, entity: E) -> E:
        """
        Replace an existing entity by id.

        Preserves ``created`` and refreshes ``updated``.

        Raises:
            StoreException: If the id does not exist or the write is rejected
        """

    @abstractmethod
    async def remove(self, entity_id: str) -> E:
        """
        Delete an entity by id.

        Returns:
            The removed entity

        Raises:
            StoreException: Non-retryable if the id does not exist,
                retryable on transport failure
        """

    @abstractmethod
    async def fetch(self, entity_id: str) -> E:
        """
        Fetch an entity by id.

        Raises:
            NotFoundException: If the id does not exist
            StoreException: If the read fails
        """

    @abstractmethod
    def iter_all(self) -> AsyncIterator[E]:
        """Yield every stored entity (used by the reconciliation sweep)."""
