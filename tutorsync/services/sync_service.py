"""
Search index reconciliation.

Rebuilds one index from the record store: every stored entity is upserted
again in batches and index objects whose id is no longer stored are removed.
This clears stale objects left by deletes whose index removal failed. It
only runs when an operator asks for it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Generic

from ..domain.exceptions import IndexException, NotFoundException, StoreException
from ..metrics import track_sync_run
from ..repositories.record_store import E, IRecordStore
from ..repositories.search_index import ISearchIndex

logger = logging.getLogger(__name__)

SYNC_BATCH_SIZE = 500


class SyncService(Generic[E]):
    """Synchronizes one record-store table into its search index."""

    def __init__(
        self,
        entity_cls: type[E],
        store: IRecordStore[E],
        index: ISearchIndex,
        batch_size: int = SYNC_BATCH_SIZE,
    ):
        self.entity_cls = entity_cls
        self.store = store
        self.index = index
        self.batch_size = batch_size

    async def full_sync(self) -> dict[str, Any]:
        """
        Perform full index synchronization.

        Returns:
            Sync statistics. A failed sweep reports ``status: failed`` and
            the error instead of raising.
        """
        index_name = self.entity_cls.index_name
        start_time = datetime.now(timezone.utc)
        logger.info("Starting full sync of index '%s'", index_name)

        upserted = 0
        removed = 0
        try:
            stored_ids: set[str] = set()
            tasks: list[int] = []
            documents: list[dict[str, Any]] = []
            async for entity in self.store.iter_all():
                documents.append(entity.derive_tags().to_index_object())
                stored_ids.add(entity.id)
                if len(documents) >= self.batch_size:
                    tasks.append(await self.index.upsert_many(index_name, documents))
                    upserted += len(documents)
                    documents = []
            if documents:
                tasks.append(await self.index.upsert_many(index_name, documents))
                upserted += len(documents)

            for task_id in tasks:
                await self.index.wait_until_visible(index_name, task_id)

            for object_id in await self.index.list_ids(index_name):
                if object_id in stored_ids or await self._is_stored(object_id):
                    continue
                await self.index.remove(index_name, object_id)
                removed += 1
        except (StoreException, IndexException) as e:
            logger.error("Full sync of index '%s' failed: %s", index_name, e.message)
            track_sync_run(self.entity_cls.kind, False, upserted, removed)
            return {
                "status": "failed",
                "index": index_name,
                "documents_synced": upserted,
                "documents_removed": removed,
                "error": e.message,
            }

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        track_sync_run(self.entity_cls.kind, True, upserted, removed)
        logger.info(
            "Full sync of index '%s' completed: %d upserted, %d removed in %.2f seconds",
            index_name,
            upserted,
            removed,
            duration,
        )
        return {
            "status": "completed",
            "index": index_name,
            "documents_synced": upserted,
            "documents_removed": removed,
            "duration_seconds": duration,
            "synced_at": start_time.isoformat(),
        }

    async def _is_stored(self, object_id: str) -> bool:
        # Entities created while the sweep ran are absent from the snapshot.
        try:
            await self.store.fetch(object_id)
        except NotFoundException:
            return False
        logger.info(
            "Keeping %s in index '%s': stored after the sweep began",
            object_id,
            self.entity_cls.index_name,
        )
        return True
