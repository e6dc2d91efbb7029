"""
Two-phase mutation coordinator.

Applies every create, update and delete to the record store first and then
projects the result into the search index. Each operation walks

    validated -> stored -> indexed

A store failure aborts the operation with the index untouched. An index
failure after the store has committed is raised as ``IndexException`` with
the committed entity attached; the store write is never rolled back.

Concurrent writes to the same id are not serialized here: the record store's
last write wins.
"""

import asyncio
import functools
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional

from ..domain.exceptions import IndexException, StoreException, ValidationException
from ..metrics import track_mutation
from ..repositories.record_store import E, IRecordStore
from ..repositories.search_index import ISearchIndex

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """How far a mutation got before it returned or failed."""

    PENDING = "pending"
    VALIDATED = "validated"
    STORED = "stored"
    INDEXED = "indexed"


class MutationCoordinator(Generic[E]):
    """
    Generic create/update/delete/fetch for one entity kind.

    Holds no per-request state; one instance serves every request for its
    kind.
    """

    def __init__(
        self,
        entity_cls: type[E],
        store: IRecordStore[E],
        index: ISearchIndex,
        wait_for_index_on_update: bool = True,
    ):
        """
        Initialize coordinator.

        Args:
            entity_cls: Entity class handled by this coordinator
            store: Authoritative record store for the entity's table
            index: Search index holding the entity's projection
            wait_for_index_on_update: Block updates until the new projection
                is searchable
        """
        self.entity_cls = entity_cls
        self.store = store
        self.index = index
        self.wait_for_index_on_update = wait_for_index_on_update

    @property
    def kind(self) -> str:
        return self.entity_cls.kind

    @property
    def index_name(self) -> str:
        return self.entity_cls.index_name

    async def create(self, raw: Any) -> E:
        """
        Validate, insert and index a new entity.

        Returns:
            The stored entity with server-assigned ``id``, ``created`` and
            ``updated``

        Raises:
            ValidationException: Input is malformed; nothing was written
            ConflictException: The id already exists; nothing was written
            StoreException: Insert failed; nothing was written
            IndexException: Stored, but the index write failed
        """
        return await self._run("create", raw, self._create)

    async def update(self, raw: Any) -> E:
        """
        Validate, replace and re-index an existing entity.

        Raises:
            ValidationException: Input is malformed or has no id
            StoreException: The id does not exist or the write failed
            IndexException: Stored, but the index write failed
        """
        return await self._run("update", raw, self._update)

    async def delete(self, entity_id: str) -> E:
        """
        Remove an entity from the store and then from the index.

        Returns:
            The removed entity

        Raises:
            StoreException: The id does not exist or the delete failed; the
                index was not touched
            IndexException: Removed from the store but a stale index object
                may remain until the next sweep
        """
        return await self._run("delete", entity_id, self._delete)

    async def fetch(self, entity_id: str) -> E:
        """
        Fetch from the record store. The index is never consulted.

        Raises:
            NotFoundException: The id does not exist
        """
        return await self.store.fetch(entity_id)

    async def _run(
        self,
        operation: str,
        arg: Any,
        handler: Callable[[Any, dict], Awaitable[E]],
    ) -> E:
        start_time = time.time()
        progress: dict[str, Any] = {"state": SyncState.PENDING}
        try:
            result = await handler(arg, progress)
        except ValidationException:
            track_mutation(self.kind, operation, "validation_error", time.time() - start_time)
            raise
        except StoreException:
            track_mutation(self.kind, operation, "store_error", time.time() - start_time)
            raise
        except IndexException:
            track_mutation(self.kind, operation, "index_error", time.time() - start_time)
            raise

        duration = time.time() - start_time
        track_mutation(self.kind, operation, "success", duration)
        logger.info(
            "%s %s: %s (%.2fms)",
            operation.capitalize(),
            progress["state"].value,
            result,
            duration * 1000,
        )
        return result

    def _validate(self, raw: Any, progress: dict, require_id: bool = False) -> E:
        entity = self.entity_cls.parse(raw)
        if require_id and not entity.id:
            raise ValidationException(self.kind, "id is required")
        progress["state"] = SyncState.VALIDATED
        return entity.derive_tags()

    async def _create(self, raw: Any, progress: dict) -> E:
        entity = self._validate(raw, progress)
        stored = await self.store.insert(entity)
        progress["state"] = SyncState.STORED

        await self._propagate("creating", stored, lambda: self._upsert(stored, wait=False))
        progress["state"] = SyncState.INDEXED
        return stored

    async def _update(self, raw: Any, progress: dict) -> E:
        entity = self._validate(raw, progress, require_id=True)
        stored = await self.store.update(entity)
        progress["state"] = SyncState.STORED

        await self._propagate(
            "updating",
            stored,
            lambda: self._upsert(stored, wait=self.wait_for_index_on_update),
        )
        progress["state"] = SyncState.INDEXED
        return stored

    async def _delete(self, entity_id: str, progress: dict) -> E:
        entity_id = (entity_id or "").strip()
        if not entity_id:
            raise ValidationException(self.kind, "id is required")
        progress["state"] = SyncState.VALIDATED

        removed = await self.store.remove(entity_id)
        progress["state"] = SyncState.STORED

        await self._propagate(
            "deleting", removed, lambda: self.index.remove(self.index_name, removed.id)
        )
        progress["state"] = SyncState.INDEXED
        return removed

    async def _upsert(self, entity: E, wait: bool) -> None:
        task_id = await self.index.upsert(self.index_name, entity.to_index_object())
        if wait:
            await self.index.wait_until_visible(self.index_name, task_id)

    async def _propagate(
        self,
        verb: str,
        committed: E,
        write: Callable[[], Awaitable[Optional[Any]]],
    ) -> None:
        # The store write has committed: the index write runs to completion
        # even if the caller is cancelled.
        task = asyncio.ensure_future(write())
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(functools.partial(self._log_detached, verb, committed))
            raise
        except IndexException as e:
            reason = e.details.get("reason") or e.message
            logger.warning(
                "Stored %s but failed %s it in index '%s': %s",
                committed,
                verb,
                self.index_name,
                reason,
            )
            raise IndexException(
                verb, self.index_name, str(committed), reason=reason, committed=committed
            ) from e

    def _log_detached(self, verb: str, committed: E, task: asyncio.Future) -> None:
        """Report the outcome of an index write whose caller was cancelled."""
        if task.cancelled():
            logger.error(
                "Stored %s but %s it in index '%s' was cancelled",
                committed,
                verb,
                self.index_name,
            )
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Stored %s but failed %s it in index '%s' after the caller was cancelled: %s",
                committed,
                verb,
                self.index_name,
                error,
            )
