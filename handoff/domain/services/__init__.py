"""Domain services."""

from handoff.domain.services.escalation_service import EscalationService
from handoff.domain.services.routing_service import RoutingService
from handoff.domain.services.trigger_detector import TriggerConfig, TriggerDetector

__all__ = ["EscalationService", "RoutingService", "TriggerConfig", "TriggerDetector"]
