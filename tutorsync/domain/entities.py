"""
Domain entities for the tutoring marketplace.

Core business objects (users, orgs, matches, meetings) and the value objects
they are built from. Each entity knows how to validate raw input, how to
render itself as a record-store row, and how to project itself into a flat
search index object.
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Any, ClassVar, Literal, Optional, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ValidationException

Aspect = Literal["mentoring", "tutoring"]
Role = Literal["tutor", "tutee", "mentor", "mentee", "parent"]
Check = Literal["email", "background-check", "academic-email", "training", "interview"]
SocialType = Literal[
    "website", "linkedin", "twitter", "facebook", "instagram", "github", "indiehackers"
]
MeetingStatus = Literal["created", "pending", "logged", "approved"]

UserTag = Literal["tutor", "tutee", "mentor", "mentee", "parent", "vetted"]
MatchTag = Literal["meeting"]
MeetingTag = Literal["recurring"]

ROLES: tuple[str, ...] = get_args(Role)
USER_TAGS: tuple[str, ...] = get_args(UserTag)
MATCH_TAGS: tuple[str, ...] = get_args(MatchTag)
MEETING_TAGS: tuple[str, ...] = get_args(MeetingTag)

# Validation patterns
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^(\+\d{1,3})\d{10}$")
URL_PATTERN = re.compile(r"^https?://\S+$")
# Search index document ids: alphanumerics, hyphens and underscores; the
# record-store id column holds 64 characters.
ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
RRULE_PATTERN = re.compile(
    r"^RRULE:FREQ=(WEEKLY|DAILY);?(INTERVAL=2;?)?"
    r"(UNTIL=(\d{4})(\d{2})(\d{2})(T(\d{2})(\d{2})(\d{2})Z?)?)?$"
)

WEEKLY_RULE = "RRULE:FREQ=WEEKLY"

# Upper bound used for open-ended recurring timeslots (9999-12-31T23:59:59Z)
MAX_TIMESTAMP = 253402300799


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _optional_match(pattern: re.Pattern, value: str, what: str) -> str:
    value = value.strip()
    if value and not pattern.match(value):
        raise ValueError(f"Invalid {what}: {value}")
    return value


class DomainModel(BaseModel):
    """Base for all value objects: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class Social(DomainModel):
    type: SocialType
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _optional_match(URL_PATTERN, v, "URL")


class Person(DomainModel):
    """
    A participant of a match or meeting.

    Denormalized copy of a user's display data; the user record stays the
    source of truth. A bare string is accepted as shorthand for ``{"id": ...}``.
    """

    id: str = ""
    name: str = ""
    photo: str = ""
    roles: list[Role] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def from_id(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"id": data}
        return data

    @field_validator("photo")
    @classmethod
    def validate_photo(cls, v: str) -> str:
        return _optional_match(URL_PATTERN, v, "photo URL")


class Subjects(DomainModel):
    subjects: list[str] = Field(default_factory=list)
    searches: list[str] = Field(default_factory=list)


class Verification(DomainModel):
    """A vetting record created by an org admin for a user."""

    creator: str = ""
    org: str = "default"
    notes: str = ""
    checks: list[Check] = Field(default_factory=list)
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)

    @field_validator("created", "updated")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        return _aware(v)


class Timeslot(DomainModel):
    """
    A window of time, optionally recurring.

    ``recur`` is an RFC 5545 RRULE (weekly or daily only); its DTSTART is
    always ``from``. ``recur=True`` is shorthand for a weekly rule.
    """

    id: str = Field(default_factory=lambda: secrets.token_hex(3)[:5])
    from_: datetime = Field(alias="from")
    to: datetime
    exdates: Optional[list[datetime]] = None
    recur: Optional[str] = None
    last: Optional[datetime] = None

    @field_validator("recur", mode="before")
    @classmethod
    def validate_recur(cls, v: Any) -> Any:
        if v is True:
            return WEEKLY_RULE
        if v is False or v == "":
            return None
        if isinstance(v, str) and not RRULE_PATTERN.match(v):
            raise ValueError(f"Invalid recurrence rule: {v}")
        return v

    @field_validator("from_", "to", "last")
    @classmethod
    def ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware(v)

    @field_validator("exdates")
    @classmethod
    def ensure_aware_exdates(cls, v: Optional[list[datetime]]) -> Optional[list[datetime]]:
        if v is None:
            return v
        return [_aware(d) for d in v]

    @model_validator(mode="after")
    def validate_window(self) -> "Timeslot":
        if self.to < self.from_:
            raise ValueError("Timeslot cannot end before it starts")
        return self

    @property
    def recurring(self) -> bool:
        return bool(self.recur)

    @property
    def end(self) -> datetime:
        """Last instant covered by this timeslot (open-ended rules excluded)."""
        return self.last or self.to

    def __str__(self) -> str:
        text = f"{self.from_.isoformat()} - {self.to.isoformat()}"
        if self.recur:
            text += f" ({self.recur})"
        return text


class Entity(DomainModel):
    """
    Base class for persisted entities.

    Subclasses set ``kind`` (singular name used in messages) and
    ``index_name`` (search index and record-store table name).
    """

    kind: ClassVar[str] = "entity"
    index_name: ClassVar[str] = ""
    # Fields that only exist on index objects (for filtering) and are
    # stripped before hits are re-parsed.
    INDEX_ONLY_FIELDS: ClassVar[tuple[str, ...]] = ("hit_tags",)

    id: str = ""
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.strip()
        if v and not ID_PATTERN.match(v):
            raise ValueError(
                f"Invalid id: {v!r} (use up to 64 letters, digits, hyphens or underscores)"
            )
        return v

    @field_validator("created", "updated")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        return _aware(v)

    @classmethod
    def parse(cls, raw: Any) -> "Entity":
        """
        Validate raw input into an entity.

        Args:
            raw: Mapping (e.g. a decoded JSON body) or an instance of this class

        Returns:
            Validated entity

        Raises:
            ValidationException: If the input is malformed or has unknown fields
        """
        if isinstance(raw, cls):
            raw = raw.model_dump(by_alias=True)
        if not isinstance(raw, dict):
            raise ValidationException(cls.kind, f"expected an object, got {type(raw).__name__}")
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in err["loc"]),
                    "message": err["msg"],
                }
                for err in e.errors()
            ]
            reason = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise ValidationException(cls.kind, reason, errors=errors) from e

    def derive_tags(self) -> "Entity":
        """Return a copy whose tags are recomputed from the entity's own state."""
        return self.model_copy()

    def hit_tags(self) -> list[str]:
        """Tags written to the index, including negated ``not-*`` tags."""
        return []

    def to_record(self) -> dict[str, Any]:
        """Render as a record-store row (column name to value)."""
        record = self.model_dump(mode="json", by_alias=True)
        record["created"] = self.created
        record["updated"] = self.updated
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Entity":
        return cls.parse(record)

    def to_index_object(self) -> dict[str, Any]:
        """Render as a flat, JSON-compatible search index object keyed by ``id``."""
        obj = self.model_dump(mode="json", by_alias=True)
        obj["hit_tags"] = self.hit_tags()
        return obj

    @classmethod
    def from_index_object(cls, hit: dict[str, Any]) -> "Entity":
        """Strip index-only and engine metadata fields, then validate."""
        data = {
            key: value
            for key, value in hit.items()
            if key not in cls.INDEX_ONLY_FIELDS and not key.startswith("_")
        }
        return cls.parse(data)

    def __str__(self) -> str:
        return f"{self.kind.capitalize()} ({self.id or 'new'})"


def _hit_tags(tags: list[str], vocabulary: tuple[str, ...]) -> list[str]:
    return list(tags) + [f"not-{tag}" for tag in vocabulary if tag not in tags]


class Account(Entity):
    """Fields shared by users and orgs."""

    name: str = ""
    photo: str = ""
    email: str = ""
    phone: str = ""
    bio: str = ""
    socials: list[Social] = Field(default_factory=list)

    @field_validator("photo")
    @classmethod
    def validate_photo(cls, v: str) -> str:
        return _optional_match(URL_PATTERN, v, "photo URL")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _optional_match(EMAIL_PATTERN, v, "email")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _optional_match(PHONE_PATTERN, v, "phone number")

    def __str__(self) -> str:
        return f"{self.name or self.kind.capitalize()} ({self.id or 'new'})"


class User(Account):
    """A tutor, tutee, mentor, mentee, or parent."""

    kind: ClassVar[str] = "user"
    index_name: ClassVar[str] = "users"
    INDEX_ONLY_FIELDS: ClassVar[tuple[str, ...]] = (
        "hit_tags",
        "tutoring_subjects",
        "mentoring_subjects",
    )

    age: Optional[int] = Field(default=None, ge=0)
    orgs: list[str] = Field(default_factory=list)
    availability: list[Timeslot] = Field(default_factory=list)
    mentoring: Subjects = Field(default_factory=Subjects)
    tutoring: Subjects = Field(default_factory=Subjects)
    langs: list[str] = Field(default_factory=lambda: ["en"])
    parents: list[str] = Field(default_factory=list)
    verifications: list[Verification] = Field(default_factory=list)
    visible: bool = False
    featured: list[Aspect] = Field(default_factory=list)
    roles: list[Role] = Field(default_factory=list)
    tags: list[UserTag] = Field(default_factory=list)
    reference: str = ""
    timezone: str = "America/Los_Angeles"

    def derive_tags(self) -> "User":
        tags = [role for role in ROLES if role in self.roles]
        if self.verifications:
            tags.append("vetted")
        return self.model_copy(update={"tags": tags})

    def hit_tags(self) -> list[str]:
        return _hit_tags(self.tags, USER_TAGS)

    def to_index_object(self) -> dict[str, Any]:
        obj = super().to_index_object()
        obj["tutoring_subjects"] = list(self.tutoring.subjects)
        obj["mentoring_subjects"] = list(self.mentoring.subjects)
        return obj


class Org(Account):
    """A non-profit organization running a tutoring or mentoring program."""

    kind: ClassVar[str] = "org"
    index_name: ClassVar[str] = "orgs"

    members: list[str] = Field(default_factory=list)
    aspects: list[Aspect] = Field(default_factory=lambda: ["tutoring"], min_length=1)
    domains: list[str] = Field(default_factory=list)
    profiles: list[str] = Field(
        default_factory=lambda: ["name", "email", "bio", "subjects", "langs", "availability"]
    )
    subjects: Optional[list[str]] = None


class Match(Entity):
    """
    A pairing of people (typically a student and a tutor or mentor).

    The only match tag (``meeting``) depends on other entities, so derived
    match tags are always empty.
    """

    kind: ClassVar[str] = "match"
    index_name: ClassVar[str] = "matches"
    INDEX_ONLY_FIELDS: ClassVar[tuple[str, ...]] = ("hit_tags", "people_ids")

    org: str = "default"
    subjects: list[str] = Field(default_factory=list)
    people: list[Person] = Field(default_factory=list)
    creator: Person = Field(default_factory=Person)
    message: str = ""
    tags: list[MatchTag] = Field(default_factory=list)

    def derive_tags(self) -> "Match":
        return self.model_copy(update={"tags": []})

    def hit_tags(self) -> list[str]:
        return _hit_tags(self.tags, MATCH_TAGS)

    def to_index_object(self) -> dict[str, Any]:
        obj = super().to_index_object()
        obj["people_ids"] = [person.id for person in self.people]
        return obj

    def __str__(self) -> str:
        people = ", ".join(person.id for person in self.people) or "nobody"
        return f"Match ({self.id or 'new'}) between {people}"


class Meeting(Entity):
    """A scheduled (optionally recurring) meeting for a match."""

    kind: ClassVar[str] = "meeting"
    index_name: ClassVar[str] = "meetings"
    INDEX_ONLY_FIELDS: ClassVar[tuple[str, ...]] = (
        "hit_tags",
        "people_ids",
        "time_from",
        "time_last",
    )

    org: str = "default"
    match: str
    status: MeetingStatus = "created"
    creator: Person = Field(default_factory=Person)
    people: list[Person] = Field(default_factory=list)
    subjects: list[str] = Field(default_factory=list)
    venue: str = ""
    time: Timeslot
    description: str = ""
    tags: list[MeetingTag] = Field(default_factory=list)
    parent_id: Optional[str] = None

    @field_validator("match")
    @classmethod
    def validate_match(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Meeting must reference a match id")
        return v

    @field_validator("venue")
    @classmethod
    def validate_venue(cls, v: str) -> str:
        return _optional_match(URL_PATTERN, v, "venue URL")

    def derive_tags(self) -> "Meeting":
        tags = ["recurring"] if self.time.recurring else []
        return self.model_copy(update={"tags": tags})

    def hit_tags(self) -> list[str]:
        return _hit_tags(self.tags, MEETING_TAGS)

    def to_index_object(self) -> dict[str, Any]:
        obj = super().to_index_object()
        obj["people_ids"] = [person.id for person in self.people]
        obj["time_from"] = int(self.time.from_.timestamp())
        if self.time.recurring and self.time.last is None:
            obj["time_last"] = MAX_TIMESTAMP
        else:
            obj["time_last"] = int(self.time.end.timestamp())
        return obj

    def __str__(self) -> str:
        return f"Meeting ({self.id or 'new'}) on {self.time}"


ENTITY_TYPES: dict[str, type[Entity]] = {
    entity.index_name: entity for entity in (User, Org, Match, Meeting)
}
