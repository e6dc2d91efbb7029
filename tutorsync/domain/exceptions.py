"""
Custom exceptions for the synchronization domain.

These exceptions form the caller-facing error taxonomy of the mutation
pipeline and are independent of infrastructure concerns (HTTP, SQL,
Meilisearch). Each carries an HTTP-style ``status_code`` classification that
the calling layer may use.
"""

from typing import Any, Optional


class SyncServiceException(Exception):
    """Base exception for all synchronization errors."""

    status_code: int = 500
    error: str = "sync_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(SyncServiceException):
    """Raised when an entity or query fails validation.

    The operation is never attempted against any store.
    """

    status_code = 400
    error = "validation_error"

    def __init__(
        self,
        kind: str,
        reason: str,
        errors: Optional[list[dict[str, Any]]] = None,
    ):
        message = f"Invalid {kind}: {reason}"
        super().__init__(
            message=message,
            details={"kind": kind, "reason": reason, "errors": errors or []},
        )


class NotFoundException(SyncServiceException):
    """Raised when an entity does not exist in the record store."""

    status_code = 400
    error = "not_found"

    def __init__(self, kind: str, entity_id: str):
        message = f"{kind.capitalize()} ({entity_id}) does not exist"
        super().__init__(message=message, details={"kind": kind, "id": entity_id})


class StoreException(SyncServiceException):
    """Raised when an authoritative record store write or read fails.

    Always fatal to the operation. ``retryable`` is true only for transport
    failures, where the caller may retry the whole operation.
    """

    error = "store_error"

    def __init__(
        self,
        operation: str,
        kind: str,
        entity: str,
        reason: Optional[str] = None,
        retryable: bool = False,
    ):
        message = f"Error {operation} {kind} ({entity}) in record store"
        if reason:
            message += f": {reason}"
        self.operation = operation
        self.retryable = retryable
        super().__init__(
            message=message,
            details={
                "operation": operation,
                "kind": kind,
                "entity": entity,
                "reason": reason,
                "retryable": retryable,
            },
        )


class ConflictException(StoreException):
    """Raised when creating an entity whose id already exists."""

    status_code = 409
    error = "conflict"

    def __init__(self, kind: str, entity_id: str):
        super().__init__(
            "creating", kind, entity_id, reason="id already exists", retryable=False
        )


class IndexException(SyncServiceException):
    """Raised when a search index write fails.

    When raised by the mutation coordinator the authoritative write has
    already committed; ``entity`` holds the committed entity so callers can
    downgrade the failure to a warning.
    """

    error = "index_error"

    def __init__(
        self,
        operation: str,
        index: str,
        entity: str,
        reason: Optional[str] = None,
        committed: Any = None,
    ):
        message = f"Error {operation} {entity} in search index '{index}'"
        if reason:
            message += f": {reason}"
        self.operation = operation
        self.index = index
        self.entity = committed
        super().__init__(
            message=message,
            details={
                "operation": operation,
                "index": index,
                "entity": entity,
                "reason": reason,
                "partial": committed is not None,
            },
        )
