"""API routes for escalations, the pending queue and tenant routing config."""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query

from handoff.api.deps import EscalationServiceDep, OperatorId, RoutingServiceDep, TenantId
from handoff.api.schemas.escalation import (
    AutoEscalationResponse,
    CreateEscalationRequest,
    CreateEscalationResponse,
    EscalationDetailResponse,
    EscalationListResponse,
    EscalationResponse,
    EscalationStatsResponse,
    EvaluationResponse,
    ProcessQueueResponse,
    QueuedEscalationResponse,
    ResolveEscalationRequest,
    RouteEscalationRequest,
    RoutingConfigRequest,
    RoutingConfigResponse,
    RoutingOutcomeResponse,
)
from handoff.domain.models.escalation import (
    EscalationPriority,
    EscalationStatus,
    RoutingOptions,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=EscalationListResponse)
async def list_escalations(
    tenant_id: TenantId,
    service: EscalationServiceDep,
    status: EscalationStatus | None = None,
    priority: EscalationPriority | None = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> EscalationListResponse:
    """List escalations, open work first."""
    items, total = await service.list_escalations(
        tenant_id, status=status, priority=priority, skip=skip, limit=limit
    )
    return EscalationListResponse(
        items=[EscalationResponse.model_validate(e) for e in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("", response_model=CreateEscalationResponse)
async def create_escalation(
    request: CreateEscalationRequest,
    tenant_id: TenantId,
    service: EscalationServiceDep,
) -> CreateEscalationResponse:
    """Escalate a conversation to a human operator.

    Returns the existing escalation with ``created = false`` when the
    conversation already has an open one.
    """
    result = await service.create_escalation(
        tenant_id,
        request.conversation_id,
        reason=request.reason,
        trigger_type=request.trigger_type,
        priority=request.priority,
    )
    return CreateEscalationResponse.from_result(result)


@router.get("/queue", response_model=list[QueuedEscalationResponse])
async def get_queue(
    tenant_id: TenantId,
    routing: RoutingServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> list[QueuedEscalationResponse]:
    """Pending escalations in the order they will be assigned."""
    queued = await routing.pending_queue(tenant_id, limit=limit)
    return [QueuedEscalationResponse.model_validate(q) for q in queued]


@router.post("/queue/process", response_model=ProcessQueueResponse)
async def process_queue(
    tenant_id: TenantId,
    routing: RoutingServiceDep,
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> ProcessQueueResponse:
    """Assign queued escalations until operators run out of capacity."""
    outcomes = await routing.process_queue(tenant_id, limit=limit)
    return ProcessQueueResponse(
        assigned=sum(1 for o in outcomes if o.success),
        outcomes=[RoutingOutcomeResponse.from_outcome(o) for o in outcomes],
    )


@router.get("/stats", response_model=EscalationStatsResponse)
async def get_stats(
    tenant_id: TenantId,
    service: EscalationServiceDep,
    start: datetime | None = None,
    end: datetime | None = None,
) -> EscalationStatsResponse:
    """Escalation metrics, optionally limited to a created_at range."""
    stats = await service.stats(tenant_id, start=start, end=end)
    return EscalationStatsResponse.model_validate(stats)


@router.get("/routing-config", response_model=RoutingConfigResponse)
async def get_routing_config(
    tenant_id: TenantId,
    service: EscalationServiceDep,
) -> RoutingConfigResponse:
    config = await service.get_routing_config(tenant_id)
    return RoutingConfigResponse.model_validate(config)


@router.put("/routing-config", response_model=RoutingConfigResponse)
async def update_routing_config(
    request: RoutingConfigRequest,
    tenant_id: TenantId,
    service: EscalationServiceDep,
) -> RoutingConfigResponse:
    """Replace the tenant's routing strategy, preferred operator and trigger overrides."""
    config = await service.update_routing_config(
        tenant_id,
        strategy=request.strategy,
        preferred_operator_id=request.preferred_operator_id,
        trigger_overrides=request.trigger_overrides,
    )
    return RoutingConfigResponse.model_validate(config)


@router.post("/conversations/{conversation_id}/evaluate", response_model=EvaluationResponse)
async def evaluate_conversation(
    conversation_id: int,
    tenant_id: TenantId,
    service: EscalationServiceDep,
) -> EvaluationResponse:
    """Check a conversation against the escalation triggers without escalating."""
    result = await service.evaluate(tenant_id, conversation_id)
    return EvaluationResponse.from_result(result)


@router.post("/conversations/{conversation_id}/auto-escalate", response_model=AutoEscalationResponse)
async def auto_escalate_conversation(
    conversation_id: int,
    tenant_id: TenantId,
    service: EscalationServiceDep,
) -> AutoEscalationResponse:
    """Escalate a conversation if any trigger fires."""
    result = await service.auto_escalate(tenant_id, conversation_id)
    return AutoEscalationResponse.from_result(result)


@router.get("/{escalation_id}", response_model=EscalationDetailResponse)
async def get_escalation(
    escalation_id: int,
    tenant_id: TenantId,
    service: EscalationServiceDep,
) -> EscalationDetailResponse:
    escalation = await service.get_escalation(tenant_id, escalation_id)
    return EscalationDetailResponse.model_validate(escalation)


@router.post("/{escalation_id}/accept", response_model=EscalationResponse)
async def accept_escalation(
    escalation_id: int,
    tenant_id: TenantId,
    operator_id: OperatorId,
    service: EscalationServiceDep,
) -> EscalationResponse:
    """Operator takes over the conversation."""
    escalation = await service.accept(tenant_id, escalation_id, operator_id)
    return EscalationResponse.model_validate(escalation)


@router.post("/{escalation_id}/resolve", response_model=EscalationResponse)
async def resolve_escalation(
    escalation_id: int,
    request: ResolveEscalationRequest,
    tenant_id: TenantId,
    operator_id: OperatorId,
    service: EscalationServiceDep,
) -> EscalationResponse:
    escalation = await service.resolve(
        tenant_id,
        escalation_id,
        resolution=request.resolution,
        return_to_automation=request.return_to_automation,
        resolved_by=operator_id,
    )
    return EscalationResponse.model_validate(escalation)


@router.post("/{escalation_id}/return-to-automation", response_model=EscalationResponse)
async def return_to_automation(
    escalation_id: int,
    tenant_id: TenantId,
    operator_id: OperatorId,
    service: EscalationServiceDep,
) -> EscalationResponse:
    """Close the escalation and hand the conversation back to the automated agent."""
    escalation = await service.return_to_automation(tenant_id, escalation_id, operator_id)
    return EscalationResponse.model_validate(escalation)


@router.post("/{escalation_id}/route", response_model=RoutingOutcomeResponse)
async def route_escalation(
    escalation_id: int,
    tenant_id: TenantId,
    routing: RoutingServiceDep,
    request: RouteEscalationRequest | None = None,
) -> RoutingOutcomeResponse:
    """Route a pending escalation, using the tenant defaults for anything not given."""
    options = await routing.default_options(tenant_id)
    if request is not None:
        options = RoutingOptions.build(
            strategy=request.strategy or options.strategy,
            priority=request.priority,
            preferred_operator_id=(
                request.preferred_operator_id
                if request.preferred_operator_id is not None
                else options.preferred_operator_id
            ),
        )
    outcome = await routing.route(tenant_id, escalation_id, options)
    return RoutingOutcomeResponse.from_outcome(outcome)
