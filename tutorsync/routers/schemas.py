"""Response models shared by the routers."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: dict = Field(default_factory=dict, description="Additional error details")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")


class ListResponse(BaseModel):
    """One page of list results."""

    hits: int = Field(..., description="Total number of matches in the index")
    results: list[dict[str, Any]] = Field(default_factory=list)


class SyncResponse(BaseModel):
    """Reconciliation sweep statistics."""

    status: str
    index: str
    documents_synced: int = 0
    documents_removed: int = 0
    duration_seconds: Optional[float] = None
    synced_at: Optional[str] = None
    error: Optional[str] = None
