"""
Database models for the record store.

This module defines SQLAlchemy ORM models for the authoritative entity
tables. Nested value objects (people, timeslots, verifications, ...) are
stored as JSON columns; relationships are by-id only.
"""

from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base: Any = declarative_base()

ID_LENGTH = 64


class TimestampedRow:
    """Columns shared by every entity table."""

    id = Column(String(ID_LENGTH), primary_key=True, index=True)
    created = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated = Column(DateTime(timezone=True), default=func.now(), nullable=False)


class AccountRow(TimestampedRow):
    name = Column(String(255), nullable=False, default="")
    photo = Column(Text, nullable=False, default="")
    email = Column(String(255), nullable=False, default="", index=True)
    phone = Column(String(32), nullable=False, default="")
    bio = Column(Text, nullable=False, default="")
    socials = Column(JSON, nullable=False, default=list)


class UserRow(AccountRow, Base):
    """
    User record.

    Attributes:
        orgs: Ids of the orgs the user belongs to
        availability: Weekly timeslots the user is free
        mentoring / tutoring: Subjects the user can mentor / tutor
        verifications: Vetting records created by org admins
        tags: Derived tags (roles and ``vetted``)
    """

    __tablename__ = "users"

    age = Column(Integer, nullable=True)
    orgs = Column(JSON, nullable=False, default=list)
    availability = Column(JSON, nullable=False, default=list)
    mentoring = Column(JSON, nullable=False, default=dict)
    tutoring = Column(JSON, nullable=False, default=dict)
    langs = Column(JSON, nullable=False, default=list)
    parents = Column(JSON, nullable=False, default=list)
    verifications = Column(JSON, nullable=False, default=list)
    visible = Column(Boolean, nullable=False, default=False)
    featured = Column(JSON, nullable=False, default=list)
    roles = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    reference = Column(Text, nullable=False, default="")
    timezone = Column(String(64), nullable=False, default="America/Los_Angeles")


class OrgRow(AccountRow, Base):
    """Org record."""

    __tablename__ = "orgs"

    members = Column(JSON, nullable=False, default=list)
    aspects = Column(JSON, nullable=False, default=list)
    domains = Column(JSON, nullable=False, default=list)
    profiles = Column(JSON, nullable=False, default=list)
    subjects = Column(JSON, nullable=True)


class MatchRow(TimestampedRow, Base):
    """Match record."""

    __tablename__ = "matches"

    org = Column(String(ID_LENGTH), nullable=False, default="default", index=True)
    subjects = Column(JSON, nullable=False, default=list)
    people = Column(JSON, nullable=False, default=list)
    creator = Column(JSON, nullable=False, default=dict)
    message = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)


class MeetingRow(TimestampedRow, Base):
    """
    Meeting record.

    Attributes:
        match: Id of the match this meeting belongs to
        time: Timeslot (with optional recurrence rule)
        parent_id: Id of the recurring meeting this instance was split from
    """

    __tablename__ = "meetings"

    org = Column(String(ID_LENGTH), nullable=False, default="default", index=True)
    match = Column(String(ID_LENGTH), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="created")
    creator = Column(JSON, nullable=False, default=dict)
    people = Column(JSON, nullable=False, default=list)
    subjects = Column(JSON, nullable=False, default=list)
    venue = Column(Text, nullable=False, default="")
    time = Column(JSON, nullable=False)
    description = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    parent_id = Column(String(ID_LENGTH), nullable=True)


ROW_MODELS: dict[str, Any] = {
    row.__tablename__: row for row in (UserRow, OrgRow, MatchRow, MeetingRow)
}
