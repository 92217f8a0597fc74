"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
and give services a consistent query surface.

Design Notes
------------
This base repository provides:
- Primary-key and predicate lookups, optionally with SELECT FOR UPDATE
- Ordered, paginated multi-row queries
- Counting utilities
- Structured debug logging for every call

What this class does NOT do:
- Manage transactions (services/DatabaseService handle that)
- Contain business logic

Usage
-----
    class LedgerStore(BaseRepository[CourseLedgerEntry]):
        async def find_all_for_course(self, session, course_id):
            return await self.find_many_where(
                session,
                CourseLedgerEntry.course_id == course_id,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        """
        Initialize repository with model class and logger.

        Args:
            model_class: The SQLAlchemy model class
            logger: Structured logger instance
        """
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Get a single record by primary key.

        Args:
            session: Database session
            id_value: Primary key value
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(self.model_class.id == id_value)  # type: ignore[attr-defined]
        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.get: {self.model_name}",
            extra={
                "model": self.model_name,
                "id": id_value,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Find a single record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        for_update: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """
        Find multiple records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            order_by: Optional ordering clauses, applied in sequence
            for_update: If True, use SELECT FOR UPDATE
            limit: Optional maximum number of results
            offset: Optional number of rows to skip

        Returns:
            List of model instances
        """
        stmt: Select[Any] = select(self.model_class).where(*conditions)

        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "found_count": len(instances),
                "locked": for_update,
                "limit": limit,
                "offset": offset,
            },
        )

        return instances

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """
        Count records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions

        Returns:
            Number of matching records
        """
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        count = result.scalar_one()

        self.log.debug(
            f"Repository.count: {self.model_name}",
            extra={"model": self.model_name, "count": count},
        )

        return count

    def add(self, session: AsyncSession, instance: T) -> T:
        """Add a new instance to the session."""
        session.add(instance)
        self.log.debug(f"Repository.add: {self.model_name}", extra={"model": self.model_name})
        return instance

    async def flush(self, session: AsyncSession) -> None:
        """Flush pending changes to the database."""
        await session.flush()
        self.log.debug(f"Repository.flush: {self.model_name}", extra={"model": self.model_name})

    async def refresh(self, session: AsyncSession, instance: T) -> T:
        """Reload an instance's column values from the database."""
        await session.refresh(instance)
        self.log.debug(f"Repository.refresh: {self.model_name}", extra={"model": self.model_name})
        return instance
