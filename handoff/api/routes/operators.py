"""API routes for operator capacity."""

import logging

from fastapi import APIRouter

from handoff.api.deps import RoutingServiceDep, TenantId
from handoff.api.schemas.escalation import (
    AvailableOperatorResponse,
    ReleaseResponse,
    RoutingOutcomeResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/available", response_model=list[AvailableOperatorResponse])
async def list_available_operators(
    tenant_id: TenantId,
    routing: RoutingServiceDep,
) -> list[AvailableOperatorResponse]:
    """Online operators with at least one free slot."""
    operators = await routing.available_operators(tenant_id)
    return [AvailableOperatorResponse.model_validate(o) for o in operators]


@router.post("/{operator_id}/release", response_model=ReleaseResponse)
async def release_operator_slot(
    operator_id: int,
    tenant_id: TenantId,
    routing: RoutingServiceDep,
    drain: bool = True,
) -> ReleaseResponse:
    """Free one of the operator's slots and offer it to the head of the queue."""
    outcome = await routing.release(tenant_id, operator_id, drain=drain)
    return ReleaseResponse(
        released=True,
        drained=RoutingOutcomeResponse.from_outcome(outcome) if outcome else None,
    )
