"""
Test configuration and fixtures
"""

from collections import defaultdict
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from tutorsync.app import create_app
from tutorsync.config import Settings
from tutorsync.database import create_db_engine, create_session_factory
from tutorsync.dependencies import build_container
from tutorsync.domain.entities import Match, Meeting, Org, User
from tutorsync.domain.exceptions import IndexException
from tutorsync.models import Base
from tutorsync.repositories.postgres_repository import SqlRecordStore
from tutorsync.repositories.search_index import ISearchIndex, SearchPage


class InMemorySearchIndex(ISearchIndex):
    """
    Search index double that keeps objects in dicts.

    Operations named in ``fail_on`` (``upsert``, ``remove``, ``wait``,
    ``search``, ``list_ids``) raise ``IndexException``. Filters are recorded
    but not evaluated.
    """

    def __init__(self):
        self.objects: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str, Any]] = []
        self.waited: list[int] = []
        self.searches: list[dict[str, Any]] = []
        self._task_id = 0

    def _check(self, operation: str, index_name: str, target: str) -> None:
        if operation in self.fail_on:
            raise IndexException(operation, index_name, target, reason="injected failure")

    def _next_task(self) -> int:
        self._task_id += 1
        return self._task_id

    async def upsert(self, index_name: str, obj: dict[str, Any]) -> int:
        self.calls.append(("upsert", index_name, obj["id"]))
        self._check("upsert", index_name, obj["id"])
        self.objects[index_name][obj["id"]] = obj
        return self._next_task()

    async def upsert_many(self, index_name: str, objs: list[dict[str, Any]]) -> int:
        self.calls.append(("upsert_many", index_name, [obj["id"] for obj in objs]))
        self._check("upsert", index_name, f"{len(objs)} documents")
        for obj in objs:
            self.objects[index_name][obj["id"]] = obj
        return self._next_task()

    async def remove(self, index_name: str, object_id: str) -> int:
        self.calls.append(("remove", index_name, object_id))
        self._check("remove", index_name, object_id)
        self.objects[index_name].pop(object_id, None)
        return self._next_task()

    async def wait_until_visible(self, index_name: str, task_id: int) -> None:
        self._check("wait", index_name, f"task {task_id}")
        self.waited.append(task_id)

    async def search(
        self,
        index_name: str,
        query: str = "",
        filter: Optional[str] = None,
        page: int = 0,
        hits_per_page: int = 20,
    ) -> SearchPage:
        self.searches.append(
            {"index": index_name, "query": query, "filter": filter, "page": page}
        )
        self._check("search", index_name, repr(query))
        hits = list(self.objects[index_name].values())
        start = page * hits_per_page
        return SearchPage(hits=hits[start:start + hits_per_page], total=len(hits))

    async def list_ids(self, index_name: str) -> list[str]:
        self._check("list_ids", index_name, "all")
        return list(self.objects[index_name])


@pytest.fixture
def settings():
    """Settings pointing at an in-memory SQLite record store"""
    return Settings(DATABASE_URL="sqlite:///:memory:", LOG_JSON=False)


@pytest.fixture(scope="function")
def engine(settings):
    """Create fresh tables for each test"""
    engine = create_db_engine(settings)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def search_index():
    return InMemorySearchIndex()


@pytest.fixture
def match_store(session_factory):
    return SqlRecordStore(Match, session_factory)


@pytest.fixture
def meeting_store(session_factory):
    return SqlRecordStore(Meeting, session_factory)


@pytest.fixture
def user_store(session_factory):
    return SqlRecordStore(User, session_factory)


@pytest.fixture
def org_store(session_factory):
    return SqlRecordStore(Org, session_factory)


@pytest.fixture
def container(settings, session_factory, search_index, engine):
    return build_container(settings, session_factory, search_index, engine=engine)


@pytest.fixture
def client(settings, container):
    """Create a test client backed by SQLite and the in-memory index"""
    app = create_app(settings, container=container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def match_data():
    """Sample match payload"""
    return {
        "id": "m1",
        "org": "gunn",
        "people": ["u1", "u2"],
        "subjects": ["Algebra"],
        "message": "Happy to help with homework.",
    }


@pytest.fixture
def meeting_data():
    """Sample meeting payload"""
    return {
        "id": "mtg1",
        "org": "gunn",
        "match": "m1",
        "people": [{"id": "u1", "name": "Ada"}, {"id": "u2", "name": "Grace"}],
        "subjects": ["Algebra"],
        "venue": "https://meet.example.org/abc",
        "time": {
            "id": "slot1",
            "from": "2024-01-07T17:00:00Z",
            "to": "2024-01-07T18:00:00Z",
        },
    }


@pytest.fixture
def user_data():
    """Sample user payload"""
    return {
        "id": "u1",
        "name": "Ada Lovelace",
        "email": "ada@example.org",
        "phone": "+16505550100",
        "orgs": ["gunn"],
        "roles": ["tutor", "mentor"],
        "tutoring": {"subjects": ["Algebra", "Geometry"], "searches": []},
        "visible": True,
    }


@pytest.fixture
def org_data():
    """Sample org payload"""
    return {
        "id": "gunn",
        "name": "Gunn High School",
        "members": ["u9"],
        "aspects": ["tutoring", "mentoring"],
    }
