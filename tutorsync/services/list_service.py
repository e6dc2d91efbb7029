"""
Query/list service.

Runs typed queries against the search index and re-validates every hit so
callers never see a raw index object.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Generic, Union

from pydantic import ValidationError

from ..domain.exceptions import IndexException, ValidationException
from ..domain.queries import Query
from ..metrics import track_corrupt_hit, track_list_query
from ..repositories.record_store import E
from ..repositories.search_index import ISearchIndex

logger = logging.getLogger(__name__)


@dataclass
class ListResult(Generic[E]):
    """Total number of index matches plus the parsed entities of one page."""

    hits: int = 0
    results: list[E] = field(default_factory=list)


class ListService(Generic[E]):
    """Lists one entity kind from its search index."""

    def __init__(self, entity_cls: type[E], index: ISearchIndex, query_cls: type[Query]):
        self.entity_cls = entity_cls
        self.index = index
        self.query_cls = query_cls

    def parse_query(self, raw: Union[Query, dict[str, Any], None]) -> Query:
        if isinstance(raw, self.query_cls):
            return raw
        try:
            return self.query_cls.model_validate(raw or {})
        except ValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in err["loc"]),
                    "message": err["msg"],
                }
                for err in e.errors()
            ]
            reason = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise ValidationException(
                f"{self.entity_cls.kind} query", reason, errors=errors
            ) from e

    async def list(self, raw: Union[Query, dict[str, Any], None] = None) -> ListResult[E]:
        """
        Search the index and parse each hit back into an entity.

        Hits that no longer validate (e.g. written by an older schema) are
        skipped and logged; ``hits`` still reports the index's total.

        Raises:
            ValidationException: The query is malformed
            IndexException: The search failed
        """
        query = self.parse_query(raw)
        filters = query.to_filter()
        start_time = time.time()

        try:
            page = await self.index.search(
                self.entity_cls.index_name,
                query=query.search,
                filter=filters,
                page=query.page,
                hits_per_page=query.hits_per_page,
            )
        except IndexException:
            track_list_query(self.entity_cls.kind, False, time.time() - start_time)
            raise

        results: list[E] = []
        for hit in page.hits:
            try:
                results.append(self.entity_cls.from_index_object(hit))
            except ValidationException as e:
                track_corrupt_hit(self.entity_cls.kind)
                logger.warning(
                    "Skipping unparsable %s hit (%s): %s",
                    self.entity_cls.kind,
                    hit.get("id"),
                    e.message,
                )

        track_list_query(self.entity_cls.kind, True, time.time() - start_time)
        logger.debug(
            "Listed %d of %d %s (filter=%r)",
            len(results),
            page.total,
            self.entity_cls.index_name,
            filters,
        )
        return ListResult(hits=page.total, results=results)
