"""Operator availability repository.

``current_load`` is only changed through the single-statement conditional
updates below, so concurrent routing requests cannot push an operator past
``max_concurrent`` or below zero.
"""

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from handoff.domain.models.escalation import AvailableOperator, OperatorStatus
from handoff.persistence.database import utcnow
from handoff.persistence.models.operator_availability import OperatorAvailability
from handoff.persistence.models.tenant import User
from handoff.persistence.repositories.base import BaseRepository


class OperatorAvailabilityRepository(BaseRepository[OperatorAvailability]):
    """Repository for OperatorAvailability entities."""

    def __init__(self, session: AsyncSession):
        """Initialize operator availability repository."""
        super().__init__(OperatorAvailability, session)

    async def get_for_operator(self, tenant_id: int, operator_id: int) -> OperatorAvailability | None:
        """Get the availability row of an operator within a tenant."""
        stmt = (
            select(OperatorAvailability)
            .where(
                OperatorAvailability.tenant_id == tenant_id,
                OperatorAvailability.user_id == operator_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_available(
        self, tenant_id: int, operator_id: int | None = None
    ) -> list[AvailableOperator]:
        """Online operators with a free slot, lowest load first.

        Args:
            tenant_id: Tenant ID
            operator_id: Restrict to a single operator

        Returns:
            Candidates as read now; a slot is only held after claim_capacity
        """
        stmt = (
            select(OperatorAvailability, User.name, User.email)
            .join(User, User.id == OperatorAvailability.user_id)
            .where(
                OperatorAvailability.tenant_id == tenant_id,
                OperatorAvailability.status == OperatorStatus.ONLINE.value,
                OperatorAvailability.current_load < OperatorAvailability.max_concurrent,
            )
            .order_by(OperatorAvailability.current_load.asc(), OperatorAvailability.user_id.asc())
            .execution_options(populate_existing=True)
        )
        if operator_id is not None:
            stmt = stmt.where(OperatorAvailability.user_id == operator_id)

        result = await self.session.execute(stmt)
        return [
            AvailableOperator(
                operator_id=row.user_id,
                name=name or email,
                status=OperatorStatus.parse(row.status),
                current_load=row.current_load,
                max_concurrent=row.max_concurrent,
            )
            for row, name, email in result.all()
        ]

    async def claim_capacity(
        self, tenant_id: int, operator_id: int, require_online: bool = True
    ) -> bool:
        """Atomically take one slot from an operator.

        Returns:
            False when the operator is missing, at capacity or (with
            require_online) not online
        """
        conditions = [
            OperatorAvailability.tenant_id == tenant_id,
            OperatorAvailability.user_id == operator_id,
            OperatorAvailability.current_load < OperatorAvailability.max_concurrent,
        ]
        if require_online:
            conditions.append(OperatorAvailability.status == OperatorStatus.ONLINE.value)

        now = utcnow()
        stmt = (
            update(OperatorAvailability)
            .where(*conditions)
            .values(
                current_load=OperatorAvailability.current_load + 1,
                last_activity_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def release_capacity(self, tenant_id: int, operator_id: int) -> bool:
        """Atomically give back one slot, never going below zero.

        Returns:
            False when the operator has no availability row in the tenant
        """
        now = utcnow()
        stmt = (
            update(OperatorAvailability)
            .where(
                OperatorAvailability.tenant_id == tenant_id,
                OperatorAvailability.user_id == operator_id,
            )
            .values(
                current_load=case(
                    (OperatorAvailability.current_load > 0, OperatorAvailability.current_load - 1),
                    else_=0,
                ),
                last_activity_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
