"""Database models."""

from handoff.persistence.models.conversation import Conversation, Message
from handoff.persistence.models.escalation import Escalation
from handoff.persistence.models.operator_availability import OperatorAvailability
from handoff.persistence.models.tenant import Tenant, User
from handoff.persistence.models.tenant_routing_config import TenantRoutingConfig

__all__ = [
    "Tenant",
    "User",
    "Conversation",
    "Message",
    "Escalation",
    "OperatorAvailability",
    "TenantRoutingConfig",
]
