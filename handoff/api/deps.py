"""FastAPI dependencies for tenant resolution and service construction.

Identity comes from headers set by the upstream gateway, which owns
authentication.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from handoff.core.request_context import set_operator_context, set_tenant_context
from handoff.domain.services.escalation_service import EscalationService
from handoff.domain.services.routing_service import RoutingService
from handoff.persistence.database import get_db


async def get_current_tenant(
    x_tenant_id: Annotated[int | None, Header()] = None,
) -> int:
    """Get the tenant ID of the request.

    Raises:
        HTTPException: If the tenant header is missing
    """
    if x_tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-Id header is required",
        )
    set_tenant_context(x_tenant_id)
    return x_tenant_id


async def get_current_operator(
    x_operator_id: Annotated[int | None, Header()] = None,
) -> int:
    """Get the operator acting on the request.

    Raises:
        HTTPException: If the operator header is missing
    """
    if x_operator_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Operator-Id header is required",
        )
    set_operator_context(x_operator_id)
    return x_operator_id


def get_routing_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RoutingService:
    return RoutingService(db, publisher=request.app.state.publisher)


def get_escalation_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    routing_service: Annotated[RoutingService, Depends(get_routing_service)],
) -> EscalationService:
    return EscalationService(
        db,
        trigger_detector=request.app.state.trigger_detector,
        routing_service=routing_service,
        publisher=request.app.state.publisher,
    )


TenantId = Annotated[int, Depends(get_current_tenant)]
OperatorId = Annotated[int, Depends(get_current_operator)]
EscalationServiceDep = Annotated[EscalationService, Depends(get_escalation_service)]
RoutingServiceDep = Annotated[RoutingService, Depends(get_routing_service)]
