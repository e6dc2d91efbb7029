"""
Tests for the Meilisearch search index adapter.

The Meilisearch client is mocked; index handles expose AsyncMock methods.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from meilisearch_python_sdk.errors import MeilisearchCommunicationError, MeilisearchTimeoutError

from tutorsync.config import Settings
from tutorsync.domain.exceptions import IndexException
from tutorsync.repositories.meilisearch_repository import (
    INDEX_SETTINGS,
    MeilisearchConfig,
    MeilisearchSearchIndex,
)


@pytest.fixture
def mock_index():
    """Create a mock index handle."""
    index = MagicMock()
    index.add_documents = AsyncMock(return_value=SimpleNamespace(task_uid=7))
    index.delete_document = AsyncMock(return_value=SimpleNamespace(task_uid=8))
    index.update_settings = AsyncMock()
    index.search = AsyncMock()
    index.get_documents = AsyncMock()
    return index


@pytest.fixture
def mock_client(mock_index):
    """Create a mock Meilisearch client."""
    client = MagicMock()
    client.index.return_value = mock_index
    client.wait_for_task = AsyncMock(
        return_value=SimpleNamespace(status="succeeded", error=None)
    )
    client.health = AsyncMock(return_value=SimpleNamespace(status="available"))
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def search_index(mock_client):
    return MeilisearchSearchIndex(
        mock_client, MeilisearchConfig(index_prefix="test", wait_timeout_ms=1000)
    )


class TestConfig:
    def test_from_settings(self):
        settings = Settings(
            MEILISEARCH_URL="http://search:7700",
            MEILISEARCH_API_KEY="key",
            MEILISEARCH_INDEX_PREFIX="staging",
            INDEX_WAIT_TIMEOUT_MS=250,
        )
        config = MeilisearchConfig.from_settings(settings)
        assert config.url == "http://search:7700"
        assert config.api_key == "key"
        assert config.index_prefix == "staging"
        assert config.wait_timeout_ms == 250

    def test_index_uid_prefix(self, mock_client):
        assert MeilisearchSearchIndex(mock_client).index_uid("users") == "users"
        prefixed = MeilisearchSearchIndex(mock_client, MeilisearchConfig(index_prefix="test"))
        assert prefixed.index_uid("users") == "test-users"


class TestWrites:
    @pytest.mark.asyncio
    async def test_upsert(self, search_index, mock_client, mock_index):
        task_id = await search_index.upsert("matches", {"id": "m1"})
        assert task_id == 7
        mock_client.index.assert_called_with("test-matches")
        mock_index.add_documents.assert_awaited_once_with([{"id": "m1"}], primary_key="id")

    @pytest.mark.asyncio
    async def test_upsert_failure(self, search_index, mock_index):
        mock_index.add_documents.side_effect = MeilisearchCommunicationError("unreachable")
        with pytest.raises(IndexException) as exc_info:
            await search_index.upsert("matches", {"id": "m1"})
        assert exc_info.value.operation == "updating"
        assert exc_info.value.index == "test-matches"
        assert exc_info.value.entity is None

    @pytest.mark.asyncio
    async def test_upsert_many_is_one_write(self, search_index, mock_index):
        docs = [{"id": "m1"}, {"id": "m2"}]
        assert await search_index.upsert_many("matches", docs) == 7
        mock_index.add_documents.assert_awaited_once_with(docs, primary_key="id")

    @pytest.mark.asyncio
    async def test_upsert_many_failure(self, search_index, mock_index):
        mock_index.add_documents.side_effect = MeilisearchCommunicationError("unreachable")
        with pytest.raises(IndexException) as exc_info:
            await search_index.upsert_many("matches", [{"id": "m1"}])
        assert "1 documents" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_remove(self, search_index, mock_index):
        assert await search_index.remove("matches", "m1") == 8
        mock_index.delete_document.assert_awaited_once_with("m1")

    @pytest.mark.asyncio
    async def test_remove_transport_failure(self, search_index, mock_index):
        mock_index.delete_document.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(IndexException) as exc_info:
            await search_index.remove("matches", "m1")
        assert exc_info.value.operation == "deleting"


class TestWaitUntilVisible:
    @pytest.mark.asyncio
    async def test_succeeded(self, search_index, mock_client):
        await search_index.wait_until_visible("matches", 7)
        mock_client.wait_for_task.assert_awaited_once_with(7, timeout_in_ms=1000)

    @pytest.mark.asyncio
    async def test_failed_task(self, search_index, mock_client):
        mock_client.wait_for_task.return_value = SimpleNamespace(
            status="failed", error={"message": "invalid document id"}
        )
        with pytest.raises(IndexException) as exc_info:
            await search_index.wait_until_visible("matches", 7)
        assert "invalid document id" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self, search_index, mock_client):
        mock_client.wait_for_task.side_effect = MeilisearchTimeoutError("task 7 timed out")
        with pytest.raises(IndexException):
            await search_index.wait_until_visible("matches", 7)


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_pages_are_one_based(self, search_index, mock_index):
        mock_index.search.return_value = SimpleNamespace(
            hits=[{"id": "m1"}], total_hits=41, estimated_total_hits=None
        )
        page = await search_index.search(
            "matches", query="algebra", filter='org = "gunn"', page=2, hits_per_page=20
        )
        assert page.hits == [{"id": "m1"}]
        assert page.total == 41
        mock_index.search.assert_awaited_once_with(
            "algebra", filter='org = "gunn"', page=3, hits_per_page=20
        )

    @pytest.mark.asyncio
    async def test_empty_query_and_filter(self, search_index, mock_index):
        mock_index.search.return_value = SimpleNamespace(
            hits=[], total_hits=None, estimated_total_hits=None
        )
        page = await search_index.search("matches")
        assert page.total == 0
        mock_index.search.assert_awaited_once_with(None, filter=None, page=1, hits_per_page=20)

    @pytest.mark.asyncio
    async def test_search_failure(self, search_index, mock_index):
        mock_index.search.side_effect = MeilisearchCommunicationError("unreachable")
        with pytest.raises(IndexException) as exc_info:
            await search_index.search("matches", query="x")
        assert exc_info.value.operation == "searching"


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_list_ids_pages(self, search_index, mock_index):
        mock_index.get_documents.side_effect = [
            SimpleNamespace(results=[{"id": "a"}, {"id": "b"}], total=3),
            SimpleNamespace(results=[{"id": "c"}], total=3),
        ]
        assert await search_index.list_ids("matches") == ["a", "b", "c"]
        assert mock_index.get_documents.await_count == 2

    @pytest.mark.asyncio
    async def test_list_ids_empty(self, search_index, mock_index):
        mock_index.get_documents.return_value = SimpleNamespace(results=[], total=0)
        assert await search_index.list_ids("matches") == []

    @pytest.mark.asyncio
    async def test_initialize_indexes(self, search_index, mock_client, mock_index):
        await search_index.initialize_indexes()
        assert mock_index.update_settings.await_count == 4
        uids = [call.args[0] for call in mock_client.index.call_args_list]
        assert uids == ["test-users", "test-orgs", "test-matches", "test-meetings"]

    @pytest.mark.asyncio
    async def test_meetings_filter_on_time_window(self, search_index, mock_index):
        await search_index.initialize_index("meetings")
        settings = mock_index.update_settings.await_args.args[0]
        assert "time_from" in settings.filterable_attributes
        assert "time_last" in settings.filterable_attributes

    def test_every_query_facet_is_filterable(self):
        assert "people_ids" in INDEX_SETTINGS["matches"]["filterable_attributes"]
        assert "hit_tags" in INDEX_SETTINGS["users"]["filterable_attributes"]
        assert "members" in INDEX_SETTINGS["orgs"]["filterable_attributes"]

    @pytest.mark.asyncio
    async def test_health_check(self, search_index):
        assert (await search_index.health_check())["status"] == "available"

    @pytest.mark.asyncio
    async def test_close(self, search_index, mock_client):
        await search_index.close()
        mock_client.aclose.assert_awaited_once()
