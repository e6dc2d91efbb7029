"""
Meilisearch implementation of the search index.

One Meilisearch index per entity kind. Writes return task ids; visibility is
confirmed by polling the task until it settles.
"""

import logging
from typing import Any, Optional

import httpx
from meilisearch_python_sdk import AsyncClient
from meilisearch_python_sdk.errors import MeilisearchError
from meilisearch_python_sdk.models.settings import MeilisearchSettings

from ..config import Settings
from ..domain.exceptions import IndexException
from .search_index import INDEX_NAMES, ISearchIndex, SearchPage

logger = logging.getLogger(__name__)

INDEX_ERRORS = (MeilisearchError, httpx.HTTPError)

LIST_IDS_BATCH_SIZE = 1000

INDEX_SETTINGS: dict[str, dict[str, list[str]]] = {
    "users": {
        "searchable_attributes": [
            "name",
            "bio",
            "tutoring_subjects",
            "mentoring_subjects",
            "email",
        ],
        "filterable_attributes": [
            "orgs",
            "parents",
            "hit_tags",
            "langs",
            "visible",
            "featured",
            "tutoring_subjects",
            "mentoring_subjects",
        ],
        "sortable_attributes": ["name"],
    },
    "orgs": {
        "searchable_attributes": ["name", "bio", "email"],
        "filterable_attributes": ["members"],
        "sortable_attributes": ["name"],
    },
    "matches": {
        "searchable_attributes": ["people.name", "subjects", "message"],
        "filterable_attributes": ["org", "subjects", "people_ids", "hit_tags"],
        "sortable_attributes": ["created"],
    },
    "meetings": {
        "searchable_attributes": ["people.name", "subjects", "description"],
        "filterable_attributes": [
            "org",
            "match",
            "subjects",
            "people_ids",
            "hit_tags",
            "time_from",
            "time_last",
        ],
        "sortable_attributes": ["time_from"],
    },
}


class MeilisearchConfig:
    """Meilisearch connection settings."""

    def __init__(
        self,
        url: str = "http://localhost:7700",
        api_key: Optional[str] = None,
        index_prefix: str = "",
        timeout: int = 5,
        wait_timeout_ms: int = 5000,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.index_prefix = index_prefix
        self.timeout = timeout
        self.wait_timeout_ms = wait_timeout_ms

    @classmethod
    def from_settings(cls, settings: Settings) -> "MeilisearchConfig":
        return cls(
            url=settings.MEILISEARCH_URL,
            api_key=settings.MEILISEARCH_API_KEY,
            index_prefix=settings.MEILISEARCH_INDEX_PREFIX,
            timeout=settings.MEILISEARCH_TIMEOUT,
            wait_timeout_ms=settings.INDEX_WAIT_TIMEOUT_MS,
        )


class MeilisearchSearchIndex(ISearchIndex):
    """Search index backed by Meilisearch."""

    def __init__(self, client: AsyncClient, config: Optional[MeilisearchConfig] = None):
        """
        Initialize adapter.

        Args:
            client: Async Meilisearch client (owned by this adapter)
            config: Connection settings; only ``index_prefix`` and
                ``wait_timeout_ms`` are read here
        """
        self.client = client
        self.config = config or MeilisearchConfig()

    @classmethod
    def from_config(cls, config: MeilisearchConfig) -> "MeilisearchSearchIndex":
        client = AsyncClient(url=config.url, api_key=config.api_key, timeout=config.timeout)
        logger.info("Meilisearch client created: %s", config.url)
        return cls(client, config)

    def index_uid(self, index_name: str) -> str:
        """Physical index name, with the deployment prefix if one is set."""
        if self.config.index_prefix:
            return f"{self.config.index_prefix}-{index_name}"
        return index_name

    async def initialize_index(self, index_name: str) -> None:
        """
        Apply searchable, filterable and sortable attributes for one index.

        Meilisearch creates the index on the first settings update.
        """
        uid = self.index_uid(index_name)
        settings = MeilisearchSettings(
            **INDEX_SETTINGS[index_name],
            ranking_rules=["words", "typo", "proximity", "attribute", "sort", "exactness"],
            pagination={"max_total_hits": 10000},
        )
        try:
            await self.client.index(uid).update_settings(settings)
        except INDEX_ERRORS as e:
            logger.error("Failed to initialize Meilisearch index '%s': %s", uid, e)
            raise IndexException("configuring", uid, uid, reason=str(e)) from e
        logger.info("Meilisearch index '%s' initialized", uid)

    async def initialize_indexes(self) -> None:
        for index_name in INDEX_NAMES:
            await self.initialize_index(index_name)

    async def upsert(self, index_name: str, obj: dict[str, Any]) -> int:
        uid = self.index_uid(index_name)
        try:
            task = await self.client.index(uid).add_documents([obj], primary_key="id")
        except INDEX_ERRORS as e:
            logger.error("Failed to add %s to index '%s': %s", obj.get("id"), uid, e)
            raise IndexException("updating", uid, str(obj.get("id")), reason=str(e)) from e
        logger.debug("Queued %s in index '%s' (task: %s)", obj.get("id"), uid, task.task_uid)
        return task.task_uid

    async def upsert_many(self, index_name: str, objs: list[dict[str, Any]]) -> int:
        uid = self.index_uid(index_name)
        try:
            task = await self.client.index(uid).add_documents(objs, primary_key="id")
        except INDEX_ERRORS as e:
            logger.error("Failed to add %d documents to index '%s': %s", len(objs), uid, e)
            raise IndexException(
                "updating", uid, f"{len(objs)} documents", reason=str(e)
            ) from e
        logger.info(
            "Added %d documents to index '%s' (task: %s)", len(objs), uid, task.task_uid
        )
        return task.task_uid

    async def remove(self, index_name: str, object_id: str) -> int:
        uid = self.index_uid(index_name)
        try:
            task = await self.client.index(uid).delete_document(object_id)
        except INDEX_ERRORS as e:
            logger.error("Failed to delete %s from index '%s': %s", object_id, uid, e)
            raise IndexException("deleting", uid, object_id, reason=str(e)) from e
        logger.debug("Queued removal of %s from index '%s' (task: %s)", object_id, uid, task.task_uid)
        return task.task_uid

    async def wait_until_visible(self, index_name: str, task_id: int) -> None:
        uid = self.index_uid(index_name)
        try:
            result = await self.client.wait_for_task(
                task_id, timeout_in_ms=self.config.wait_timeout_ms
            )
        except INDEX_ERRORS as e:
            logger.error("Waiting on task %s for index '%s' failed: %s", task_id, uid, e)
            raise IndexException("waiting on", uid, f"task {task_id}", reason=str(e)) from e

        if result.status != "succeeded":
            reason = f"task {result.status}"
            if result.error:
                reason += f": {result.error.get('message', result.error)}"
            logger.error("Index task %s on '%s' did not succeed: %s", task_id, uid, reason)
            raise IndexException("waiting on", uid, f"task {task_id}", reason=reason)

    async def search(
        self,
        index_name: str,
        query: str = "",
        filter: Optional[str] = None,
        page: int = 0,
        hits_per_page: int = 20,
    ) -> SearchPage:
        uid = self.index_uid(index_name)
        try:
            results = await self.client.index(uid).search(
                query or None,
                filter=filter or None,
                page=page + 1,
                hits_per_page=hits_per_page,
            )
        except INDEX_ERRORS as e:
            logger.error("Search on index '%s' failed (filter=%r): %s", uid, filter, e)
            raise IndexException("searching", uid, repr(query), reason=str(e)) from e

        total = results.total_hits
        if total is None:
            total = results.estimated_total_hits or len(results.hits)
        return SearchPage(hits=list(results.hits), total=total)

    async def list_ids(self, index_name: str) -> list[str]:
        uid = self.index_uid(index_name)
        ids: list[str] = []
        offset = 0
        while True:
            try:
                batch = await self.client.index(uid).get_documents(
                    offset=offset, limit=LIST_IDS_BATCH_SIZE, fields=["id"]
                )
            except INDEX_ERRORS as e:
                logger.error("Listing documents of index '%s' failed: %s", uid, e)
                raise IndexException("listing", uid, "all", reason=str(e)) from e
            ids.extend(str(doc["id"]) for doc in batch.results)
            offset += len(batch.results)
            if not batch.results or offset >= batch.total:
                return ids

    async def health_check(self) -> dict[str, Any]:
        """
        Check Meilisearch health.

        Returns:
            Health status with connectivity info
        """
        try:
            health = await self.client.health()
        except INDEX_ERRORS as e:
            logger.error("Meilisearch health check failed: %s", e)
            return {"status": "unhealthy", "error": str(e), "url": self.config.url}
        return {
            "status": health.status if health else "unknown",
            "url": self.config.url,
        }

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Meilisearch client closed")
