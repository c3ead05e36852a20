"""Escalation repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from handoff.domain.models.escalation import EscalationPriority, EscalationStatus, TriggerType
from handoff.persistence.database import utcnow
from handoff.persistence.models.escalation import Escalation, priority_rank
from handoff.persistence.repositories.base import BaseRepository

_ACTIVE = [s.value for s in EscalationStatus.active()]

# Open work first when listing
_STATUS_ORDER = {
    EscalationStatus.PENDING.value: 0,
    EscalationStatus.ASSIGNED.value: 1,
    EscalationStatus.IN_PROGRESS.value: 2,
    EscalationStatus.RESOLVED.value: 3,
}


def _observed_assignee(escalation: Escalation):
    """Condition matching the assignee the escalation had when it was read."""
    if escalation.assigned_operator_id is None:
        return Escalation.assigned_operator_id.is_(None)
    return Escalation.assigned_operator_id == escalation.assigned_operator_id


class EscalationRepository(BaseRepository[Escalation]):
    """Repository for Escalation entities."""

    def __init__(self, session: AsyncSession):
        """Initialize escalation repository."""
        super().__init__(Escalation, session)

    async def get_active_for_conversation(
        self, tenant_id: int, conversation_id: int
    ) -> Escalation | None:
        """Get the open (pending, assigned or in progress) escalation of a conversation."""
        stmt = (
            select(Escalation)
            .where(
                Escalation.tenant_id == tenant_id,
                Escalation.conversation_id == conversation_id,
                Escalation.status.in_(_ACTIVE),
            )
            .order_by(Escalation.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_assigned(self, escalation_id: int, operator_id: int) -> bool:
        """Move a pending escalation to assigned.

        Guarded by ``status = 'pending'`` so two routing calls cannot both
        assign the same escalation.

        Returns:
            True if this call performed the transition
        """
        now = utcnow()
        stmt = (
            update(Escalation)
            .where(
                Escalation.id == escalation_id,
                Escalation.status == EscalationStatus.PENDING.value,
            )
            .values(
                status=EscalationStatus.ASSIGNED.value,
                assigned_operator_id=operator_id,
                assigned_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_in_progress(
        self,
        escalation: Escalation,
        operator_id: int,
    ) -> bool:
        """Move a pending or assigned escalation to in progress for an operator.

        Guarded by the status and assignee observed when the escalation was
        read, so a concurrent accept or resolve makes this a no-op.
        """
        now = utcnow()
        stmt = (
            update(Escalation)
            .where(
                Escalation.id == escalation.id,
                Escalation.status == escalation.status,
                Escalation.status.in_([EscalationStatus.PENDING.value, EscalationStatus.ASSIGNED.value]),
                _observed_assignee(escalation),
            )
            .values(
                status=EscalationStatus.IN_PROGRESS.value,
                assigned_operator_id=operator_id,
                assigned_at=func.coalesce(Escalation.assigned_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_resolved(
        self,
        escalation: Escalation,
        resolution: str | None,
        resolved_by: int | None,
        returned_to_automation: bool,
    ) -> bool:
        """Resolve an open escalation.

        Guarded by the status and assignee observed when the escalation was
        read, so the caller releases the slot of the operator that actually
        held it. A concurrent accept, route or resolve makes this a no-op.
        """
        now = utcnow()
        stmt = (
            update(Escalation)
            .where(
                Escalation.id == escalation.id,
                Escalation.status == escalation.status,
                Escalation.status != EscalationStatus.RESOLVED.value,
                _observed_assignee(escalation),
            )
            .values(
                status=EscalationStatus.RESOLVED.value,
                resolution=resolution,
                resolved_by=resolved_by,
                resolved_at=now,
                returned_to_automation=returned_to_automation,
                returned_at=now if returned_to_automation else None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_queued(self, escalation_id: int, priority: EscalationPriority | None) -> None:
        """Keep an escalation pending, optionally changing its priority."""
        values: dict[str, Any] = {"updated_at": utcnow()}
        if priority is not None:
            values["priority"] = priority.value
        stmt = (
            update(Escalation)
            .where(
                Escalation.id == escalation_id,
                Escalation.status == EscalationStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    def _pending_filter(self, tenant_id: int) -> Any:
        return and_(
            Escalation.tenant_id == tenant_id,
            Escalation.status == EscalationStatus.PENDING.value,
            Escalation.assigned_operator_id.is_(None),
        )

    async def queue_position(self, escalation: Escalation) -> int:
        """1-based position of a pending escalation in its tenant's queue.

        Queue order is priority rank descending, then created_at ascending,
        then id ascending.
        """
        rank = EscalationPriority.parse(escalation.priority).rank
        row_rank = priority_rank()
        earlier = or_(
            row_rank > rank,
            and_(
                row_rank == rank,
                or_(
                    Escalation.created_at < escalation.created_at,
                    and_(Escalation.created_at == escalation.created_at, Escalation.id < escalation.id),
                ),
            ),
        )
        stmt = (
            select(func.count())
            .select_from(Escalation)
            .where(self._pending_filter(escalation.tenant_id), Escalation.id != escalation.id, earlier)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one()) + 1

    async def list_pending(self, tenant_id: int, limit: int = 10) -> list[Escalation]:
        """Pending, unassigned escalations in queue order."""
        stmt = (
            select(Escalation)
            .where(self._pending_filter(tenant_id))
            .order_by(priority_rank().desc(), Escalation.created_at.asc(), Escalation.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def head_of_queue(self, tenant_id: int) -> Escalation | None:
        pending = await self.list_pending(tenant_id, limit=1)
        return pending[0] if pending else None

    async def list_filtered(
        self,
        tenant_id: int,
        status: EscalationStatus | None = None,
        priority: EscalationPriority | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[Escalation], int]:
        """List escalations for the tenant with open work first.

        Returns:
            Page of escalations and the total matching count
        """
        conditions = [Escalation.tenant_id == tenant_id]
        if status is not None:
            conditions.append(Escalation.status == status.value)
        if priority is not None:
            conditions.append(Escalation.priority == priority.value)

        status_order = case(_STATUS_ORDER, value=Escalation.status, else_=len(_STATUS_ORDER))
        stmt = (
            select(Escalation)
            .where(*conditions)
            .order_by(status_order, priority_rank().desc(), Escalation.created_at.desc(), Escalation.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        escalations = list(result.scalars().all())

        count_stmt = select(func.count()).select_from(Escalation).where(*conditions)
        total = int((await self.session.execute(count_stmt)).scalar_one())
        return escalations, total

    def _stats_conditions(self, tenant_id: int, start: datetime | None, end: datetime | None) -> list:
        conditions = [Escalation.tenant_id == tenant_id]
        if start is not None:
            conditions.append(Escalation.created_at >= start)
        if end is not None:
            conditions.append(Escalation.created_at <= end)
        return conditions

    def _seconds_between(self, start_column, end_column):
        """Elapsed seconds between two timestamp columns (NULL when either is NULL)."""
        if self.session.bind is not None and self.session.bind.dialect.name == "postgresql":
            return func.extract("epoch", end_column - start_column)
        return (func.julianday(end_column) - func.julianday(start_column)) * 86400.0

    async def stats_totals(
        self,
        tenant_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Any:
        """Counts by status, average assignment and resolution seconds, and returned count.

        Computed in one aggregate query, optionally within a created_at range.
        """

        def status_count(status: EscalationStatus):
            return func.count(case((Escalation.status == status.value, 1)))

        stmt = select(
            func.count(Escalation.id).label("total"),
            status_count(EscalationStatus.PENDING).label("pending"),
            status_count(EscalationStatus.ASSIGNED).label("assigned"),
            status_count(EscalationStatus.IN_PROGRESS).label("in_progress"),
            status_count(EscalationStatus.RESOLVED).label("resolved"),
            func.avg(self._seconds_between(Escalation.created_at, Escalation.assigned_at)).label(
                "avg_assignment_seconds"
            ),
            func.avg(self._seconds_between(Escalation.created_at, Escalation.resolved_at)).label(
                "avg_resolution_seconds"
            ),
            func.count(case((Escalation.returned_to_automation.is_(True), 1))).label("returned"),
        ).where(*self._stats_conditions(tenant_id, start, end))
        result = await self.session.execute(stmt)
        return result.one()

    async def count_by_trigger_type(
        self,
        tenant_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        """Escalation counts per trigger type; a missing type counts as manual."""
        trigger = func.coalesce(Escalation.trigger_type, TriggerType.MANUAL.value)
        stmt = (
            select(trigger.label("trigger_type"), func.count(Escalation.id).label("count"))
            .where(*self._stats_conditions(tenant_id, start, end))
            .group_by(trigger)
        )
        result = await self.session.execute(stmt)
        return {row.trigger_type: int(row.count) for row in result.all()}

    async def get_with_conversation(self, tenant_id: int, escalation_id: int) -> Escalation | None:
        """Get an escalation with its conversation loaded."""
        stmt = (
            select(Escalation)
            .options(selectinload(Escalation.conversation))
            .where(Escalation.id == escalation_id, Escalation.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
