"""Repository layer for data access."""

from handoff.persistence.repositories.base import BaseRepository
from handoff.persistence.repositories.conversation_repository import ConversationRepository
from handoff.persistence.repositories.escalation_repository import EscalationRepository
from handoff.persistence.repositories.operator_availability_repository import (
    OperatorAvailabilityRepository,
)
from handoff.persistence.repositories.tenant_routing_config_repository import (
    TenantRoutingConfigRepository,
)

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "EscalationRepository",
    "OperatorAvailabilityRepository",
    "TenantRoutingConfigRepository",
]
