"""Tenant routing config repository."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from handoff.persistence.models.tenant_routing_config import TenantRoutingConfig
from handoff.persistence.repositories.base import BaseRepository


class TenantRoutingConfigRepository(BaseRepository[TenantRoutingConfig]):
    """Repository for TenantRoutingConfig entities."""

    def __init__(self, session: AsyncSession):
        """Initialize tenant routing config repository."""
        super().__init__(TenantRoutingConfig, session)

    async def get_for_tenant(self, tenant_id: int) -> TenantRoutingConfig | None:
        stmt = select(TenantRoutingConfig).where(TenantRoutingConfig.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, tenant_id: int, **data: Any) -> TenantRoutingConfig:
        """Create or update the tenant's routing config (flushed, not committed)."""
        config = await self.get_for_tenant(tenant_id)
        if config is None:
            return await self.create(tenant_id, **data)

        for key, value in data.items():
            setattr(config, key, value)
        await self.session.flush()
        return config
