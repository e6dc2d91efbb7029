"""
Typed list/search queries and their index filter expressions.

Filters combine values within a facet with OR and facets with AND, e.g.
``org = "gunn" AND (subjects = "Algebra" OR subjects = "Geometry")``.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .entities import Aspect

UserHitTag = Literal[
    "tutor", "tutee", "mentor", "mentee", "parent", "vetted",
    "not-tutor", "not-tutee", "not-mentor", "not-mentee", "not-parent", "not-vetted",
]
MatchHitTag = Literal["meeting", "not-meeting"]
MeetingHitTag = Literal["recurring", "not-recurring"]

DEFAULT_HITS_PER_PAGE = 20
MAX_HITS_PER_PAGE = 1000


def quote(value: str) -> str:
    """Quote a filter value, escaping embedded quotes and backslashes."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def add_filter(base: str, expression: str) -> str:
    """
    Append an expression to a filter string with AND.

    Args:
        base: Existing filter string (may be empty)
        expression: Filter expression to add (may be empty)

    Returns:
        Combined filter string
    """
    if not expression:
        return base
    if not base:
        return expression
    return f"{base} AND {expression}"


def add_array_filter(
    base: str,
    values: Iterable[str],
    attribute: str,
    concat: Literal["OR", "AND"] = "OR",
) -> str:
    """
    Append a facet filter for several values of one attribute.

    Example:
        add_array_filter('org = "a"', ["x", "y"], "subjects")
        -> 'org = "a" AND (subjects = "x" OR subjects = "y")'
    """
    clauses = [f"{attribute} = {quote(value)}" for value in values]
    if not clauses:
        return base
    return add_filter(base, "(" + f" {concat} ".join(clauses) + ")")


class Query(BaseModel):
    """Base list query: full-text search plus 0-based pagination."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    search: str = ""
    page: int = Field(default=0, ge=0)
    hits_per_page: int = Field(default=DEFAULT_HITS_PER_PAGE, ge=1, le=MAX_HITS_PER_PAGE)

    def to_filter(self) -> str:
        return ""


class OrgsQuery(Query):
    members: list[str] = Field(default_factory=list)

    def to_filter(self) -> str:
        return add_array_filter("", self.members, "members")


class UsersQuery(Query):
    """
    Users search filters.

    ``subjects`` are matched against the subjects of the selected ``aspect``.
    ``visible`` is only applied when set, so org admins can list every user.
    """

    orgs: list[str] = Field(default_factory=list)
    parents: list[str] = Field(default_factory=list)
    tags: list[UserHitTag] = Field(default_factory=list)
    aspect: Aspect = "tutoring"
    subjects: list[str] = Field(default_factory=list)
    langs: list[str] = Field(default_factory=list)
    visible: Optional[bool] = None

    def to_filter(self) -> str:
        filters = ""
        if self.visible is not None:
            filters = add_filter(filters, f"visible = {str(self.visible).lower()}")
        filters = add_array_filter(filters, self.orgs, "orgs")
        filters = add_array_filter(filters, self.parents, "parents")
        filters = add_array_filter(filters, self.tags, "hit_tags")
        filters = add_array_filter(filters, self.subjects, f"{self.aspect}_subjects")
        filters = add_array_filter(filters, self.langs, "langs")
        return filters


class MatchesQuery(Query):
    org: Optional[str] = None
    people: list[str] = Field(default_factory=list)
    subjects: list[str] = Field(default_factory=list)
    tags: list[MatchHitTag] = Field(default_factory=list)

    def to_filter(self) -> str:
        filters = ""
        if self.org:
            filters = add_filter(filters, f"org = {quote(self.org)}")
        filters = add_array_filter(filters, self.subjects, "subjects")
        filters = add_array_filter(filters, self.people, "people_ids")
        filters = add_array_filter(filters, self.tags, "hit_tags")
        return filters


def _start_of_week() -> datetime:
    now = datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # isoweekday: Monday=1 ... Sunday=7; weeks start on Sunday.
    return today - timedelta(days=today.isoweekday() % 7)


class MeetingsQuery(MatchesQuery):
    """
    Meetings search filters.

    Defaults to the current week (Sunday to Sunday). A meeting matches when
    its time window (through its last recurrence) overlaps ``[from, to]``.
    """

    tags: list[MeetingHitTag] = Field(default_factory=list)  # type: ignore[assignment]
    from_: datetime = Field(default_factory=_start_of_week, alias="from")
    to: Optional[datetime] = None
    hits_per_page: int = Field(default=MAX_HITS_PER_PAGE, ge=1, le=MAX_HITS_PER_PAGE)

    @field_validator("from_", "to")
    @classmethod
    def ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def default_window(self) -> "MeetingsQuery":
        if self.to is None:
            self.to = self.from_ + timedelta(days=7)
        if self.to < self.from_:
            raise ValueError("Query window cannot end before it starts")
        return self

    def to_filter(self) -> str:
        filters = super().to_filter()
        filters = add_filter(filters, f"time_from <= {int(self.to.timestamp())}")
        filters = add_filter(filters, f"time_last >= {int(self.from_.timestamp())}")
        return filters

