"""Escalation lifecycle: evaluate, create, accept, resolve and report."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from handoff.core.errors import InvalidStateError, NotFoundError, OperatorAtCapacityError
from handoff.domain.models.escalation import (
    AutoEscalationResult,
    ConversationContext,
    EscalationPriority,
    EscalationResult,
    EscalationStats,
    EscalationStatus,
    EvaluationResult,
    RoutingConfig,
    RoutingOutcome,
    RoutingStrategy,
    TriggerType,
)
from handoff.domain.services.routing_service import RoutingService
from handoff.domain.services.trigger_detector import (
    TriggerConfig,
    TriggerDetector,
    primary_evaluation,
    validate_trigger_overrides,
)
from handoff.infrastructure.notifications import NotificationPublisher
from handoff.persistence.models.conversation import Conversation
from handoff.persistence.models.escalation import Escalation
from handoff.persistence.models.tenant import User
from handoff.persistence.repositories.conversation_repository import ConversationRepository
from handoff.persistence.repositories.escalation_repository import EscalationRepository
from handoff.persistence.repositories.tenant_routing_config_repository import (
    TenantRoutingConfigRepository,
)
from handoff.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Escalated manually"
RETURNED_TO_AUTOMATION_RESOLUTION = "Returned to automation by operator"
ALREADY_EXISTS_REASON = "already exists"


def normalize_sentiment(value: int | float | None, scale: float | None = None) -> float | None:
    """Convert a stored sentiment score to the -1..1 range.

    Only None means "not scored"; a stored 0 is a neutral score.
    """
    if value is None:
        return None
    scale = scale or settings.sentiment_scale
    return max(-1.0, min(1.0, value / scale))


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an offset-aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class EscalationService:
    """Service for managing escalations from detection to resolution."""

    def __init__(
        self,
        session: AsyncSession,
        trigger_detector: TriggerDetector | None = None,
        routing_service: RoutingService | None = None,
        publisher: NotificationPublisher | None = None,
    ) -> None:
        """Initialize escalation service."""
        self.session = session
        self.detector = trigger_detector or TriggerDetector(TriggerConfig.from_settings(settings))
        self.publisher = publisher
        self.routing = routing_service or RoutingService(session, publisher)
        self.conversation_repo = ConversationRepository(session)
        self.escalation_repo = EscalationRepository(session)
        self.config_repo = TenantRoutingConfigRepository(session)

    # --- Detection ---

    async def evaluate(self, tenant_id: int, conversation_id: int) -> EvaluationResult:
        """Evaluate a conversation against the tenant's escalation triggers.

        Raises:
            NotFoundError: Conversation does not exist for the tenant
        """
        result, _ = await self._evaluate(tenant_id, conversation_id)
        return result

    async def _evaluate(self, tenant_id: int, conversation_id: int) -> tuple[EvaluationResult, TriggerDetector]:
        conversation = await self.conversation_repo.get_by_id(tenant_id, conversation_id)
        if conversation is None:
            raise NotFoundError("conversation", conversation_id)

        detector = await self._detector_for(tenant_id)
        context = await self._build_context(conversation)
        evaluations = detector.analyze(context)
        primary = primary_evaluation(evaluations)

        result = EvaluationResult(
            should_escalate=primary is not None,
            triggers=evaluations,
            reason=primary.reason if primary else None,
            primary_trigger=primary.type if primary else None,
        )
        return result, detector

    async def _build_context(self, conversation: Conversation) -> ConversationContext:
        messages = await self.conversation_repo.recent_user_messages(
            conversation.id, limit=settings.escalation_recent_message_limit
        )
        return ConversationContext(
            turn_count=conversation.user_message_count or 0,
            last_messages=tuple(messages),
            sentiment=normalize_sentiment(conversation.sentiment),
        )

    async def _detector_for(self, tenant_id: int) -> TriggerDetector:
        config = await self.config_repo.get_for_tenant(tenant_id)
        return self.detector.with_overrides(config.trigger_overrides if config else None)

    # --- Creation ---

    async def create_escalation(
        self,
        tenant_id: int,
        conversation_id: int,
        reason: str | None = None,
        trigger_type: TriggerType | str | None = None,
        priority: EscalationPriority | str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> EscalationResult:
        """Create an escalation for a conversation and route it.

        Returns the existing escalation, unrouted, when the conversation
        already has an open one.

        Args:
            tenant_id: Tenant ID
            conversation_id: Conversation ID
            reason: Human-readable reason
            trigger_type: What caused the escalation (manual by default)
            priority: Escalation priority (medium by default)
            metadata: Extra diagnostics stored with the escalation

        Returns:
            Escalation ID, routing outcome and whether a new record was created

        Raises:
            ValidationError: Unknown trigger type, priority or stored routing strategy
            NotFoundError: Conversation does not exist for the tenant
        """
        trigger = TriggerType.parse(trigger_type) if trigger_type is not None else TriggerType.MANUAL
        priority_value = EscalationPriority.parse(priority) if priority is not None else EscalationPriority.MEDIUM
        options = await self.routing.default_options(tenant_id)

        conversation = await self.conversation_repo.get_by_id(tenant_id, conversation_id)
        if conversation is None:
            raise NotFoundError("conversation", conversation_id)

        existing = await self.escalation_repo.get_active_for_conversation(tenant_id, conversation_id)
        if existing is not None:
            return self._existing_result(existing)

        try:
            escalation = await self.escalation_repo.create(
                tenant_id,
                conversation_id=conversation_id,
                status=EscalationStatus.PENDING.value,
                priority=priority_value.value,
                reason=reason or DEFAULT_REASON,
                trigger_type=trigger.value,
                escalation_metadata=metadata,
            )
            await self.conversation_repo.mark_waiting_for_human(tenant_id, conversation_id)
            await self.session.commit()
        except IntegrityError:
            # A concurrent request created the open escalation first
            await self.session.rollback()
            existing = await self.escalation_repo.get_active_for_conversation(tenant_id, conversation_id)
            if existing is None:
                raise
            return self._existing_result(existing)

        logger.info(
            f"Escalation {escalation.id} created for conversation {conversation_id}",
            extra={
                "escalation_id": escalation.id,
                "conversation_id": conversation_id,
                "trigger_type": trigger.value,
                "priority": priority_value.value,
            },
        )

        await self._notify(
            "escalation_created",
            tenant_id,
            escalation.id,
            conversation_id,
            escalation.priority,
            escalation.reason,
        )
        routing = await self.routing.route(tenant_id, escalation.id, options)
        return EscalationResult(escalation_id=escalation.id, routing=routing, created=True)

    def _existing_result(self, existing: Escalation) -> EscalationResult:
        logger.info(f"Conversation {existing.conversation_id} already has open escalation {existing.id}")
        return EscalationResult(
            escalation_id=existing.id,
            routing=RoutingOutcome(
                success=False,
                escalation_id=existing.id,
                assigned_operator_id=existing.assigned_operator_id,
                reason=ALREADY_EXISTS_REASON,
            ),
            created=False,
        )

    async def auto_escalate(self, tenant_id: int, conversation_id: int) -> AutoEscalationResult:
        """Evaluate a conversation and escalate it when any trigger fires."""
        evaluation, detector = await self._evaluate(tenant_id, conversation_id)
        if not evaluation.should_escalate:
            return AutoEscalationResult(escalated=False, evaluation=evaluation)

        priority = detector.determine_priority(evaluation.triggers)
        result = await self.create_escalation(
            tenant_id,
            conversation_id,
            reason=evaluation.reason,
            trigger_type=evaluation.primary_trigger,
            priority=priority,
            metadata={"triggers": [t.to_dict() for t in evaluation.triggered]},
        )
        return AutoEscalationResult(
            escalated=result.created,
            evaluation=evaluation,
            escalation_id=result.escalation_id,
            priority=priority,
            routing=result.routing,
        )

    # --- Lifecycle ---

    async def accept(self, tenant_id: int, escalation_id: int, operator_id: int) -> Escalation:
        """Operator takes over an escalation.

        A pending escalation, or one assigned to another operator, takes a
        slot from the accepting operator. A transfer gives the previous
        assignee's slot back and drains the queue into it.

        Raises:
            NotFoundError: Escalation or operator does not exist for the tenant
            InvalidStateError: Escalation is in progress or resolved
            OperatorAtCapacityError: Accepting operator has no free slot
        """
        escalation = await self.escalation_repo.get_by_id(tenant_id, escalation_id)
        if escalation is None:
            raise NotFoundError("escalation", escalation_id)
        if escalation.status not in (EscalationStatus.PENDING.value, EscalationStatus.ASSIGNED.value):
            raise InvalidStateError(f"Cannot accept escalation in {escalation.status} status")

        previous_operator_id = escalation.assigned_operator_id
        transferred = previous_operator_id is not None and previous_operator_id != operator_id

        if previous_operator_id != operator_id:
            claimed = await self.routing.operator_repo.claim_capacity(tenant_id, operator_id, require_online=False)
            if not claimed:
                availability = await self.routing.operator_repo.get_for_operator(tenant_id, operator_id)
                if availability is None:
                    raise NotFoundError("operator", operator_id)
                raise OperatorAtCapacityError(operator_id)

        updated = await self.escalation_repo.mark_in_progress(escalation, operator_id)
        if not updated:
            await self.session.rollback()
            raise InvalidStateError(f"Escalation {escalation_id} changed while being accepted")

        if transferred:
            await self.routing.release_slot(tenant_id, previous_operator_id)
        await self.conversation_repo.assign_operator(tenant_id, escalation.conversation_id, operator_id)
        await self.session.commit()

        logger.info(
            f"Operator {operator_id} accepted escalation {escalation_id}",
            extra={"escalation_id": escalation_id, "assignee_id": operator_id},
        )

        operator = await self.session.get(User, operator_id)
        await self._notify(
            "human_joined",
            escalation.conversation_id,
            operator_id,
            operator.name if operator else None,
        )

        if transferred:
            await self.routing.drain(tenant_id, previous_operator_id)

        return await self.escalation_repo.get_by_id(tenant_id, escalation_id)

    async def resolve(
        self,
        tenant_id: int,
        escalation_id: int,
        resolution: str | None = None,
        return_to_automation: bool = False,
        resolved_by: int | None = None,
    ) -> Escalation:
        """Close an escalation and free the operator's slot.

        Args:
            tenant_id: Tenant ID
            escalation_id: Escalation ID
            resolution: Resolution notes
            return_to_automation: Hand the conversation back to the automated agent
            resolved_by: Operator closing the escalation

        Returns:
            Resolved escalation

        Raises:
            NotFoundError: Escalation does not exist for the tenant
            InvalidStateError: Escalation is already resolved, or was accepted or
                routed while this call was resolving it
        """
        escalation = await self.escalation_repo.get_by_id(tenant_id, escalation_id)
        if escalation is None:
            raise NotFoundError("escalation", escalation_id)
        if escalation.status == EscalationStatus.RESOLVED.value:
            raise InvalidStateError(f"Escalation {escalation_id} is already resolved")

        updated = await self.escalation_repo.mark_resolved(
            escalation, resolution, resolved_by, return_to_automation
        )
        if not updated:
            await self.session.rollback()
            raise InvalidStateError(f"Escalation {escalation_id} changed while being resolved")

        if return_to_automation:
            await self.conversation_repo.return_to_automation(tenant_id, escalation.conversation_id)
        else:
            await self.conversation_repo.resolve_by_human(tenant_id, escalation.conversation_id, resolved_by)

        operator_id = escalation.assigned_operator_id
        released = False
        if operator_id is not None:
            released = await self.routing.release_slot(tenant_id, operator_id)
        await self.session.commit()

        logger.info(
            f"Escalation {escalation_id} resolved",
            extra={
                "escalation_id": escalation_id,
                "returned_to_automation": return_to_automation,
                "assignee_id": operator_id,
            },
        )

        if return_to_automation:
            await self._notify("human_exited", escalation.conversation_id)
        await self._notify(
            "escalation_resolved",
            tenant_id,
            escalation_id,
            escalation.conversation_id,
            return_to_automation,
        )

        if released:
            await self.routing.drain(tenant_id, operator_id)

        return await self.escalation_repo.get_by_id(tenant_id, escalation_id)

    async def return_to_automation(
        self, tenant_id: int, escalation_id: int, operator_id: int | None = None
    ) -> Escalation:
        """Resolve and hand the conversation back to the automated agent."""
        return await self.resolve(
            tenant_id,
            escalation_id,
            resolution=RETURNED_TO_AUTOMATION_RESOLUTION,
            return_to_automation=True,
            resolved_by=operator_id,
        )

    # --- Queries ---

    async def get_escalation(self, tenant_id: int, escalation_id: int) -> Escalation:
        """Get an escalation with its conversation loaded.

        Raises:
            NotFoundError: Escalation does not exist for the tenant
        """
        escalation = await self.escalation_repo.get_with_conversation(tenant_id, escalation_id)
        if escalation is None:
            raise NotFoundError("escalation", escalation_id)
        return escalation

    async def list_escalations(
        self,
        tenant_id: int,
        status: EscalationStatus | str | None = None,
        priority: EscalationPriority | str | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[Escalation], int]:
        """List escalations, open work first, then by priority and recency."""
        return await self.escalation_repo.list_filtered(
            tenant_id,
            status=EscalationStatus.parse(status) if status is not None else None,
            priority=EscalationPriority.parse(priority) if priority is not None else None,
            skip=skip,
            limit=limit,
        )

    async def stats(
        self,
        tenant_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> EscalationStats:
        """Aggregate escalation metrics for the tenant, optionally within a date range.

        Offset-aware bounds are converted to naive UTC, the form timestamps
        are stored in.
        """
        start = to_naive_utc(start)
        end = to_naive_utc(end)

        totals = await self.escalation_repo.stats_totals(tenant_id, start, end)
        by_trigger = await self.escalation_repo.count_by_trigger_type(tenant_id, start, end)

        stats = EscalationStats(
            total=totals.total,
            pending=totals.pending,
            assigned=totals.assigned,
            in_progress=totals.in_progress,
            resolved=totals.resolved,
            by_trigger_type=by_trigger,
        )
        if totals.avg_assignment_seconds is not None:
            stats.average_time_to_assignment_seconds = float(totals.avg_assignment_seconds)
        if totals.avg_resolution_seconds is not None:
            stats.average_time_to_resolution_seconds = float(totals.avg_resolution_seconds)
        if stats.total:
            stats.returned_to_automation_rate = totals.returned / stats.total
        return stats

    # --- Tenant routing config ---

    async def get_routing_config(self, tenant_id: int) -> RoutingConfig:
        config = await self.config_repo.get_for_tenant(tenant_id)
        if config is None:
            return RoutingConfig(strategy=RoutingStrategy.parse(settings.routing_default_strategy))
        return RoutingConfig(
            strategy=RoutingStrategy.parse(config.strategy or settings.routing_default_strategy),
            preferred_operator_id=config.preferred_operator_id,
            trigger_overrides=dict(config.trigger_overrides or {}),
        )

    async def update_routing_config(
        self,
        tenant_id: int,
        strategy: RoutingStrategy | str | None = None,
        preferred_operator_id: int | None = None,
        trigger_overrides: dict[str, Any] | None = None,
    ) -> RoutingConfig:
        """Replace the tenant's routing config.

        Raises:
            ValidationError: Unknown strategy or malformed trigger overrides
        """
        parsed_strategy = RoutingStrategy.parse(strategy) if strategy is not None else None
        overrides = validate_trigger_overrides(trigger_overrides)

        await self.config_repo.upsert(
            tenant_id,
            strategy=parsed_strategy.value if parsed_strategy else None,
            preferred_operator_id=preferred_operator_id,
            trigger_overrides=overrides or None,
        )
        await self.session.commit()
        logger.info(f"Routing config updated for tenant {tenant_id}")
        return await self.get_routing_config(tenant_id)

    async def _notify(self, event: str, *args: Any) -> None:
        """Publish a notification; failures are logged and never propagate."""
        if self.publisher is None:
            return
        try:
            await getattr(self.publisher, event)(*args)
        except Exception as e:
            logger.warning(f"Failed to publish {event} notification: {e}", exc_info=True)
