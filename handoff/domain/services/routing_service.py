"""Capacity-aware routing of escalations to human operators.

An operator slot is only ever taken by ``claim_capacity``, a single
conditional UPDATE, so concurrent routing calls may race for the same
operator but never push ``current_load`` past ``max_concurrent``. A request
that loses the race moves on to the next candidate, and when no candidate
can be claimed the escalation stays pending in the tenant queue.
"""

import logging
import random

from sqlalchemy.ext.asyncio import AsyncSession

from handoff.core.errors import InvalidStateError, NotFoundError
from handoff.domain.models.escalation import (
    AvailableOperator,
    EscalationPriority,
    EscalationStatus,
    QueuedEscalation,
    RoutingOptions,
    RoutingOutcome,
    RoutingStrategy,
)
from handoff.infrastructure.notifications import NotificationPublisher
from handoff.persistence.models.escalation import Escalation
from handoff.persistence.repositories.escalation_repository import EscalationRepository
from handoff.persistence.repositories.operator_availability_repository import (
    OperatorAvailabilityRepository,
)
from handoff.persistence.repositories.tenant_routing_config_repository import (
    TenantRoutingConfigRepository,
)
from handoff.settings import settings

logger = logging.getLogger(__name__)

NO_OPERATORS_REASON = "No operators available"


class RoutingService:
    """Service for assigning escalations to operators and managing the pending queue."""

    def __init__(
        self,
        session: AsyncSession,
        publisher: NotificationPublisher | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize routing service."""
        self.session = session
        self.publisher = publisher
        self.rng = rng or random.Random()
        self.escalation_repo = EscalationRepository(session)
        self.operator_repo = OperatorAvailabilityRepository(session)
        self.config_repo = TenantRoutingConfigRepository(session)

    async def default_options(self, tenant_id: int) -> RoutingOptions:
        """Routing options from the tenant's config, falling back to settings.

        Raises:
            ValidationError: The stored strategy is not a known strategy
        """
        config = await self.config_repo.get_for_tenant(tenant_id)
        strategy = config.strategy if config and config.strategy else None
        return RoutingOptions.build(
            strategy=strategy,
            preferred_operator_id=config.preferred_operator_id if config else None,
            default_strategy=settings.routing_default_strategy,
        )

    async def route(
        self,
        tenant_id: int,
        escalation_id: int,
        options: RoutingOptions | None = None,
    ) -> RoutingOutcome:
        """Assign a pending escalation to an operator, or queue it.

        Args:
            tenant_id: Tenant ID
            escalation_id: Escalation to route
            options: Strategy, priority override and preferred operator

        Returns:
            Assignment outcome, or the queue position when nobody has capacity

        Raises:
            NotFoundError: Escalation does not exist for the tenant
            InvalidStateError: Escalation is no longer pending
        """
        if options is None:
            options = await self.default_options(tenant_id)

        escalation = await self.escalation_repo.get_by_id(tenant_id, escalation_id)
        if escalation is None:
            raise NotFoundError("escalation", escalation_id)
        if escalation.status != EscalationStatus.PENDING.value:
            raise InvalidStateError(
                f"Escalation {escalation_id} is {escalation.status}, only pending escalations can be routed"
            )

        operator = await self._claim_operator(tenant_id, options)
        if operator is None:
            return await self._enqueue(escalation, options.priority)

        assigned = await self.escalation_repo.mark_assigned(escalation.id, operator.operator_id)
        if not assigned:
            # Someone else moved the escalation on; give the slot back
            await self.operator_repo.release_capacity(tenant_id, operator.operator_id)
            await self.session.commit()
            raise InvalidStateError(f"Escalation {escalation_id} was modified while routing")

        await self.session.commit()
        logger.info(
            f"Escalation {escalation.id} assigned to operator {operator.operator_id}",
            extra={
                "escalation_id": escalation.id,
                "assigned_operator_id": operator.operator_id,
                "strategy": options.strategy.value,
            },
        )

        await self._notify_assigned(operator.operator_id, escalation)
        return RoutingOutcome(
            success=True,
            escalation_id=escalation.id,
            assigned_operator_id=operator.operator_id,
            assigned_operator_name=operator.name,
        )

    async def release_slot(self, tenant_id: int, operator_id: int) -> bool:
        """Decrement an operator's load within the caller's transaction (no commit)."""
        return await self.operator_repo.release_capacity(tenant_id, operator_id)

    async def release(self, tenant_id: int, operator_id: int, drain: bool = True) -> RoutingOutcome | None:
        """Free one slot of an operator and offer it to the head of the queue.

        Returns:
            Outcome of routing the queue head, or None when nothing was drained

        Raises:
            NotFoundError: Operator has no availability record in the tenant
        """
        released = await self.release_slot(tenant_id, operator_id)
        if not released:
            raise NotFoundError("operator", operator_id)
        await self.session.commit()

        if not drain:
            return None
        return await self.drain(tenant_id, operator_id)

    async def drain(self, tenant_id: int, operator_id: int) -> RoutingOutcome | None:
        """Route the head of the tenant queue, preferring the operator that just freed a slot."""
        head = await self.escalation_repo.head_of_queue(tenant_id)
        if head is None:
            return None

        options = RoutingOptions(strategy=RoutingStrategy.PREFERRED, preferred_operator_id=operator_id)
        try:
            return await self.route(tenant_id, head.id, options)
        except InvalidStateError as e:
            logger.info(f"Queue head {head.id} changed before it could be drained: {e}")
            return None

    async def process_queue(self, tenant_id: int, limit: int | None = None) -> list[RoutingOutcome]:
        """Route queued escalations in order until the limit or the first failure.

        Returns:
            One outcome per routing attempt; the last one is the failure, if any
        """
        if limit is None:
            limit = settings.routing_queue_batch_size
        options = await self.default_options(tenant_id)

        outcomes: list[RoutingOutcome] = []
        while len(outcomes) < limit:
            head = await self.escalation_repo.head_of_queue(tenant_id)
            if head is None:
                break
            outcome = await self.route(tenant_id, head.id, options)
            outcomes.append(outcome)
            if not outcome.success:
                break

        assigned = sum(1 for o in outcomes if o.success)
        if outcomes:
            logger.info(f"Processed queue for tenant {tenant_id}: {assigned} assigned")
        return outcomes

    async def pending_queue(self, tenant_id: int, limit: int = 10) -> list[QueuedEscalation]:
        """Pending escalations in queue order with their 1-based positions."""
        pending = await self.escalation_repo.list_pending(tenant_id, limit=limit)
        return [
            QueuedEscalation(
                escalation_id=e.id,
                conversation_id=e.conversation_id,
                priority=EscalationPriority.parse(e.priority),
                reason=e.reason,
                created_at=e.created_at,
                queue_position=position,
            )
            for position, e in enumerate(pending, start=1)
        ]

    async def available_operators(self, tenant_id: int) -> list[AvailableOperator]:
        return await self.operator_repo.list_available(tenant_id)

    async def _claim_operator(self, tenant_id: int, options: RoutingOptions) -> AvailableOperator | None:
        """Claim a slot from the first candidate that still has one."""
        preferred_id = None
        if options.strategy is RoutingStrategy.PREFERRED and options.preferred_operator_id is not None:
            preferred_id = options.preferred_operator_id
            for operator in await self.operator_repo.list_available(tenant_id, operator_id=preferred_id):
                if await self.operator_repo.claim_capacity(tenant_id, operator.operator_id):
                    return operator
            logger.debug(f"Preferred operator {preferred_id} unavailable, falling back")

        candidates = await self.operator_repo.list_available(tenant_id)
        for operator in self._order_candidates(candidates, options.strategy):
            if operator.operator_id == preferred_id:
                continue
            if await self.operator_repo.claim_capacity(tenant_id, operator.operator_id):
                return operator
            logger.debug(f"Operator {operator.operator_id} filled up before claim, trying next")
        return None

    def _order_candidates(
        self, candidates: list[AvailableOperator], strategy: RoutingStrategy
    ) -> list[AvailableOperator]:
        if strategy is RoutingStrategy.LEAST_BUSY:
            return sorted(candidates, key=lambda o: (-o.available_slots, o.current_load, o.operator_id))
        if strategy is RoutingStrategy.RANDOM:
            shuffled = list(candidates)
            self.rng.shuffle(shuffled)
            return shuffled
        # round_robin and preferred fallback
        return sorted(candidates, key=lambda o: (o.current_load, o.operator_id))

    async def _enqueue(self, escalation: Escalation, priority: EscalationPriority | None) -> RoutingOutcome:
        await self.escalation_repo.set_queued(escalation.id, priority)
        if priority is not None:
            escalation.priority = priority.value
        position = await self.escalation_repo.queue_position(escalation)
        await self.session.commit()

        logger.info(
            f"Escalation {escalation.id} queued at position {position}",
            extra={"escalation_id": escalation.id, "queue_position": position},
        )
        return RoutingOutcome(
            success=False,
            escalation_id=escalation.id,
            reason=NO_OPERATORS_REASON,
            queue_position=position,
        )

    async def _notify_assigned(self, operator_id: int, escalation: Escalation) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.escalation_assigned(
                operator_id,
                escalation.id,
                escalation.conversation_id,
                escalation.priority,
                escalation.reason,
            )
        except Exception as e:
            logger.warning(f"Failed to notify operator {operator_id} of escalation {escalation.id}: {e}")
