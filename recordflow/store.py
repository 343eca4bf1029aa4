"""
RecordFlow - Store Adapter

Thin async persistence adapter over a SQLAlchemy AsyncSession.

Status transitions go through update(..., expected_status=...), which
issues UPDATE ... WHERE id = :id AND status = :expected. A zero row count
on an existing row means another writer got there first, and surfaces as
TransitionConflictException.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recordflow.utils.error_handling import StoreException, TransitionConflictException

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class RecordStore:
    """Id-scoped reads and writes for one unit of work."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, model: Type[ModelT], obj_id: UUID) -> Optional[ModelT]:
        """Fetch a row by id, refreshing any copy already in the session."""
        try:
            result = await self.session.execute(
                select(model)
                .where(model.id == obj_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreException("get", e) from e

    async def query(
        self,
        model: Type[ModelT],
        *criteria: Any,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> List[ModelT]:
        """Select rows matching equality filters and extra criteria."""
        stmt = select(model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, name) == value)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit:
            stmt = stmt.limit(limit)
        try:
            result = await self.session.execute(stmt.execution_options(populate_existing=True))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreException("query", e) from e

    async def exists(self, model: Type[ModelT], **filters: Any) -> bool:
        stmt = select(func.count()).select_from(model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, name) == value)
        try:
            result = await self.session.execute(stmt)
            return (result.scalar() or 0) > 0
        except SQLAlchemyError as e:
            raise StoreException("exists", e) from e

    async def insert(self, obj: ModelT) -> ModelT:
        """Add a new row and flush so its defaults are populated."""
        try:
            self.session.add(obj)
            await self.session.flush()
            return obj
        except SQLAlchemyError as e:
            raise StoreException("insert", e) from e

    async def insert_many(self, objs: Sequence[ModelT]) -> List[ModelT]:
        try:
            self.session.add_all(list(objs))
            await self.session.flush()
            return list(objs)
        except SQLAlchemyError as e:
            raise StoreException("insert", e) from e

    async def update(
        self,
        model: Type[ModelT],
        obj_id: UUID,
        values: Dict[str, Any],
        expected_status: Any = None,
    ) -> Optional[ModelT]:
        """
        Apply a patch to one row and return the refreshed row.

        With expected_status the update only applies while the row is still
        in that status; otherwise TransitionConflictException is raised.
        Returns None when the row does not exist.
        """
        stmt = update(model).where(model.id == obj_id)
        if expected_status is not None:
            stmt = stmt.where(model.status == expected_status)
        try:
            result = await self.session.execute(
                stmt.values(**values).execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise StoreException("update", e) from e

        if result.rowcount == 0:
            current = await self.get(model, obj_id)
            if current is None:
                return None
            if expected_status is not None:
                expected = getattr(expected_status, "value", expected_status)
                logger.warning(
                    f"Conditional update lost on {model.__name__} {obj_id}: "
                    f"expected '{expected}', found '{getattr(current.status, 'value', current.status)}'"
                )
                raise TransitionConflictException(model.__name__, obj_id, expected)
            return current

        return await self.get(model, obj_id)

    async def delete(self, model: Type[ModelT], obj_id: UUID) -> bool:
        try:
            result = await self.session.execute(
                delete(model).where(model.id == obj_id).execution_options(synchronize_session=False)
            )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreException("delete", e) from e

    async def delete_where(self, model: Type[ModelT], **filters: Any) -> int:
        """Delete every row matching equality filters; returns the row count."""
        stmt = delete(model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, name) == value)
        try:
            result = await self.session.execute(stmt.execution_options(synchronize_session=False))
            return result.rowcount
        except SQLAlchemyError as e:
            raise StoreException("delete", e) from e

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreException("commit", e) from e

    async def rollback(self) -> None:
        await self.session.rollback()
