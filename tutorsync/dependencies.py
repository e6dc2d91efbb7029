"""
Shared dependencies for the application.

The container is built once during startup and stored on ``app.state``;
routers reach it through the request, never through module globals.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from .config import Settings
from .domain.entities import ENTITY_TYPES
from .domain.queries import MatchesQuery, MeetingsQuery, OrgsQuery, Query, UsersQuery
from .repositories.postgres_repository import SqlRecordStore
from .repositories.search_index import ISearchIndex
from .services.list_service import ListService
from .services.mutation_coordinator import MutationCoordinator
from .services.sync_service import SyncService

QUERY_TYPES: dict[str, type[Query]] = {
    "users": UsersQuery,
    "orgs": OrgsQuery,
    "matches": MatchesQuery,
    "meetings": MeetingsQuery,
}


@dataclass
class EntityServices:
    """Everything the routers of one entity kind need."""

    coordinator: MutationCoordinator
    lister: ListService
    syncer: SyncService


@dataclass
class ServiceContainer:
    settings: Settings
    index: ISearchIndex
    engine: Optional[Engine] = None
    services: dict[str, EntityServices] = field(default_factory=dict)

    def for_index(self, index_name: str) -> EntityServices:
        return self.services[index_name]


def build_container(
    settings: Settings,
    session_factory: Any,
    index: ISearchIndex,
    engine: Optional[Engine] = None,
) -> ServiceContainer:
    """
    Wire one store, coordinator, list service and sweep per entity kind.

    Args:
        settings: Application settings
        session_factory: SQLAlchemy session factory shared by all stores
        index: Search index adapter shared by all kinds
        engine: Engine behind ``session_factory`` (disposed on shutdown)
    """
    container = ServiceContainer(settings=settings, index=index, engine=engine)
    for index_name, entity_cls in ENTITY_TYPES.items():
        store = SqlRecordStore(entity_cls, session_factory)
        container.services[index_name] = EntityServices(
            coordinator=MutationCoordinator(
                entity_cls,
                store,
                index,
                wait_for_index_on_update=settings.WAIT_FOR_INDEX_ON_UPDATE,
            ),
            lister=ListService(entity_cls, index, QUERY_TYPES[index_name]),
            syncer=SyncService(entity_cls, store, index),
        )
    return container


def get_container(request: Request) -> ServiceContainer:
    """Get the service container for dependency injection."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container not initialized")
    return container
