"""
Entity CRUD, search and sync routers.

One router per entity kind, all built by ``build_entity_router``. Writes go
through the mutation coordinator; when the store commits but the index write
fails, the committed entity is still returned, flagged with an
``X-Sync-Warning`` header.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from ..dependencies import EntityServices, ServiceContainer, get_container
from ..domain.entities import ENTITY_TYPES, Entity
from ..domain.exceptions import IndexException, ValidationException
from .schemas import ErrorResponse, ListResponse, SyncResponse

SYNC_WARNING_HEADER = "X-Sync-Warning"

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input or unknown id"},
    409: {"model": ErrorResponse, "description": "Id already exists"},
    500: {"model": ErrorResponse, "description": "Record store or search index failure"},
}


def render(entity: Entity) -> dict[str, Any]:
    return entity.model_dump(mode="json", by_alias=True)


def partial_success(exc: IndexException, status_code: int) -> JSONResponse:
    """Return the committed entity of a partially successful write."""
    return JSONResponse(
        status_code=status_code,
        content=render(exc.entity),
        headers={SYNC_WARNING_HEADER: exc.message},
    )


def build_entity_router(index_name: str) -> APIRouter:
    """Build the router for one entity kind (``users``, ``orgs``, ...)."""
    entity_cls = ENTITY_TYPES[index_name]
    router = APIRouter(
        prefix=f"/api/v1/{index_name}", tags=[index_name], responses=ERROR_RESPONSES
    )

    def get_services(container: ServiceContainer = Depends(get_container)) -> EntityServices:
        return container.for_index(index_name)

    @router.post(
        "",
        status_code=status.HTTP_201_CREATED,
        summary=f"Create {entity_cls.kind}",
    )
    async def create_entity(
        payload: dict[str, Any] = Body(...),
        services: EntityServices = Depends(get_services),
    ):
        try:
            entity = await services.coordinator.create(payload)
        except IndexException as e:
            if e.entity is None:
                raise
            return partial_success(e, status.HTTP_201_CREATED)
        return render(entity)

    @router.post(
        "/search",
        response_model=ListResponse,
        summary=f"List {index_name}",
    )
    async def list_entities(
        payload: Optional[dict[str, Any]] = Body(None),
        services: EntityServices = Depends(get_services),
    ):
        result = await services.lister.list(payload)
        return ListResponse(hits=result.hits, results=[render(e) for e in result.results])

    @router.post(
        "/sync",
        response_model=SyncResponse,
        summary=f"Rebuild the {index_name} index from the record store",
    )
    async def sync_entities(services: EntityServices = Depends(get_services)):
        return SyncResponse(**await services.syncer.full_sync())

    @router.get("/{entity_id}", summary=f"Fetch {entity_cls.kind}")
    async def get_entity(entity_id: str, services: EntityServices = Depends(get_services)):
        return render(await services.coordinator.fetch(entity_id))

    @router.put("/{entity_id}", summary=f"Update {entity_cls.kind}")
    async def update_entity(
        entity_id: str,
        payload: dict[str, Any] = Body(...),
        services: EntityServices = Depends(get_services),
    ):
        if payload.get("id", entity_id) != entity_id:
            raise ValidationException(
                entity_cls.kind, f"body id ({payload['id']}) does not match path ({entity_id})"
            )
        try:
            entity = await services.coordinator.update({**payload, "id": entity_id})
        except IndexException as e:
            if e.entity is None:
                raise
            return partial_success(e, status.HTTP_200_OK)
        return render(entity)

    @router.delete("/{entity_id}", summary=f"Delete {entity_cls.kind}")
    async def delete_entity(entity_id: str, services: EntityServices = Depends(get_services)):
        try:
            entity = await services.coordinator.delete(entity_id)
        except IndexException as e:
            if e.entity is None:
                raise
            return partial_success(e, status.HTTP_200_OK)
        return render(entity)

    return router


routers = [build_entity_router(index_name) for index_name in ENTITY_TYPES]
