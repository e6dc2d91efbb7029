"""
SQLAlchemy implementation of the record store.

Implements authoritative persistence for one entity table per instance.
Each call opens its own session, so no state is shared between requests.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from ..domain.entities import Entity, utcnow
from ..domain.exceptions import (
    ConflictException,
    NotFoundException,
    StoreException,
    ValidationException,
)
from ..models import ROW_MODELS
from .record_store import E, IRecordStore

logger = logging.getLogger(__name__)


def is_retryable(error: SQLAlchemyError) -> bool:
    """Transport-level failures may be retried by the caller."""
    if isinstance(error, (OperationalError, PoolTimeoutError)):
        return True
    return bool(getattr(error, "connection_invalidated", False))


class SqlRecordStore(IRecordStore[E]):
    """Record store backed by a SQLAlchemy table (PostgreSQL in production)."""

    def __init__(
        self,
        entity_cls: type[E],
        session_factory: sessionmaker[Session],
        row_model: Optional[Any] = None,
        batch_size: int = 500,
    ):
        """
        Initialize repository.

        Args:
            entity_cls: Entity class stored in this table
            session_factory: Factory producing one session per operation
            row_model: ORM model (defaults to the table named after the
                entity's index)
            batch_size: Rows loaded per query by ``iter_all``
        """
        self.entity_cls = entity_cls
        self.session_factory = session_factory
        self.row_model = row_model or ROW_MODELS[entity_cls.index_name]
        self.batch_size = batch_size
        self._columns = [column.name for column in self.row_model.__table__.columns]

    @property
    def kind(self) -> str:
        return self.entity_cls.kind

    async def insert(self, entity: E) -> E:
        """Insert a new row; an existing id is a conflict."""
        now = utcnow()
        stored = entity.model_copy(
            update={"id": entity.id or uuid.uuid4().hex, "created": now, "updated": now}
        )

        with self.session_factory() as session:
            try:
                session.add(self.row_model(**self._to_columns(stored)))
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if session.get(self.row_model, stored.id) is not None:
                    logger.warning("Refusing to re-create %s: id already exists", stored)
                    raise ConflictException(self.kind, stored.id) from e
                raise self._store_error("creating", stored, e) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise self._store_error("creating", stored, e) from e

        logger.debug("Inserted %s", stored)
        return stored

    async def update(self, entity: E) -> E:
        """Replace every column of an existing row except ``id`` and ``created``."""
        with self.session_factory() as session:
            try:
                row = session.get(self.row_model, entity.id)
                if row is None:
                    raise StoreException(
                        "updating", self.kind, str(entity), reason="id not found"
                    )

                stored = entity.model_copy(
                    update={"created": self._row_created(row), "updated": utcnow()}
                )
                for column, value in self._to_columns(stored).items():
                    if column not in ("id", "created"):
                        setattr(row, column, value)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._store_error("updating", entity, e) from e

        logger.debug("Updated %s", stored)
        return stored

    async def remove(self, entity_id: str) -> E:
        """Delete a row and return the entity it held."""
        with self.session_factory() as session:
            try:
                row = session.get(self.row_model, entity_id)
                if row is None:
                    raise StoreException(
                        "deleting", self.kind, entity_id, reason="id not found"
                    )
                removed = self._from_row(row)
                session.delete(row)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._store_error("deleting", entity_id, e) from e

        logger.debug("Removed %s", removed)
        return removed

    async def fetch(self, entity_id: str) -> E:
        """Fetch a row by id."""
        with self.session_factory() as session:
            try:
                row = session.get(self.row_model, entity_id)
            except SQLAlchemyError as e:
                raise self._store_error("getting", entity_id, e) from e
            if row is None:
                raise NotFoundException(self.kind, entity_id)
            return self._from_row(row)

    async def iter_all(self) -> AsyncIterator[E]:
        """Yield every row in id order, loading ``batch_size`` rows at a time."""
        last_id: Optional[str] = None
        while True:
            stmt = select(self.row_model).order_by(self.row_model.id).limit(self.batch_size)
            if last_id is not None:
                stmt = stmt.where(self.row_model.id > last_id)

            with self.session_factory() as session:
                try:
                    rows = session.execute(stmt).scalars().all()
                except SQLAlchemyError as e:
                    raise self._store_error("listing", "all", e) from e
                entities = [self._from_row(row) for row in rows]

            for entity in entities:
                yield entity

            if len(rows) < self.batch_size:
                return
            last_id = rows[-1].id

    def _to_columns(self, entity: Entity) -> dict[str, Any]:
        record = entity.to_record()
        return {column: record[column] for column in self._columns if column in record}

    def _from_row(self, row: Any) -> E:
        record = {column: getattr(row, column) for column in self._columns}
        try:
            return self.entity_cls.from_record(record)
        except ValidationException as e:
            logger.error("Corrupt %s row (%s): %s", self.kind, row.id, e.message)
            raise StoreException(
                "reading", self.kind, str(row.id), reason=f"corrupt record: {e.message}"
            ) from e

    @staticmethod
    def _row_created(row: Any) -> datetime:
        created = row.created
        if created is not None and created.tzinfo is None:
            return created.replace(tzinfo=timezone.utc)
        return created

    def _store_error(
        self, operation: str, entity: Any, error: SQLAlchemyError
    ) -> StoreException:
        retryable = is_retryable(error)
        logger.error(
            "Error %s %s (%s) in record store (retryable=%s): %s",
            operation,
            self.kind,
            entity,
            retryable,
            error,
        )
        cause = getattr(error, "orig", None) or error
        return StoreException(
            operation, self.kind, str(entity), reason=str(cause), retryable=retryable
        )
