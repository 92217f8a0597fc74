"""
Database Models Package
========================

SQLAlchemy ORM models for Courseboard. Schema only: no business logic,
`Mapped[]` syntax with `mapped_column()`, optimistic locking via a `version`
column on mutable rows.
"""

from courseboard.core.database.base import Base

from .ledger_entry import CourseLedgerEntry

__all__ = ["Base", "CourseLedgerEntry"]
