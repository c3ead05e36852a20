"""Base repository with tenant-scoped queries.

Repositories flush but never commit; the calling service owns the unit of
work and commits once per state transition.
"""

from typing import Generic, TypeVar, Type
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from handoff.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with tenant-scoped query methods."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """Initialize repository with model and session."""
        self.model = model
        self.session = session

    async def get_by_id(self, tenant_id: int | None, id: int) -> ModelType | None:
        """Get entity by ID, scoped to tenant.

        Always refreshes from the database, since conditional updates bypass
        the identity map.
        """
        stmt = select(self.model).where(self.model.id == id)
        if tenant_id is not None:
            stmt = stmt.where(self.model.tenant_id == tenant_id)
        stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, tenant_id: int | None, **data) -> ModelType:
        """Create new entity with tenant_id (flushed, not committed)."""
        if tenant_id is not None:
            data["tenant_id"] = tenant_id
        instance = self.model(**data)
        self.session.add(instance)
        await self.session.flush()
        return instance
