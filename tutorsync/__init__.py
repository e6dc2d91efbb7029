"""Keeps a record store and a search index in sync for a tutoring marketplace."""

__version__ = "1.0.0"
