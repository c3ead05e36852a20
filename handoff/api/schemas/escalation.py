"""Pydantic schemas for escalation and routing endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from handoff.domain.models.escalation import (
    AutoEscalationResult,
    EscalationPriority,
    EscalationResult,
    EvaluationResult,
    RoutingOutcome,
    RoutingStrategy,
    TriggerType,
)


# --- Requests ---

class CreateEscalationRequest(BaseModel):
    """Request to escalate a conversation."""

    conversation_id: int
    reason: str | None = Field(default=None, max_length=2000)
    trigger_type: TriggerType | None = None
    priority: EscalationPriority | None = None


class ResolveEscalationRequest(BaseModel):
    """Request to resolve an escalation."""

    resolution: str | None = Field(default=None, max_length=4000)
    return_to_automation: bool = False


class RouteEscalationRequest(BaseModel):
    """Request to route an escalation with explicit options."""

    strategy: RoutingStrategy | None = None
    priority: EscalationPriority | None = None
    preferred_operator_id: int | None = None


class RoutingConfigRequest(BaseModel):
    """Request to replace the tenant routing config."""

    strategy: RoutingStrategy | None = None
    preferred_operator_id: int | None = None
    trigger_overrides: dict[str, Any] | None = Field(
        default=None,
        description="sentiment_threshold, max_turns, extra_keywords, extra_request_phrases",
    )


# --- Responses ---

class ConversationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel: str
    status: str
    sentiment: int | None = None
    message_count: int = 0
    assigned_operator_id: int | None = None


class EscalationResponse(BaseModel):
    """Escalation record."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    conversation_id: int
    status: str
    priority: str
    reason: str | None = None
    trigger_type: str | None = None
    assigned_operator_id: int | None = None
    assigned_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: int | None = None
    resolution: str | None = None
    returned_to_automation: bool = False
    returned_at: datetime | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="escalation_metadata")
    created_at: datetime
    updated_at: datetime


class EscalationDetailResponse(EscalationResponse):
    conversation: ConversationSummary | None = None


class EscalationListResponse(BaseModel):
    items: list[EscalationResponse]
    total: int
    skip: int
    limit: int


class RoutingOutcomeResponse(BaseModel):
    """Result of routing an escalation."""

    success: bool
    escalation_id: int | None = None
    assigned_operator_id: int | None = None
    assigned_operator_name: str | None = None
    reason: str | None = None
    queue_position: int | None = None

    @classmethod
    def from_outcome(cls, outcome: RoutingOutcome) -> "RoutingOutcomeResponse":
        return cls(**outcome.to_dict())


class CreateEscalationResponse(BaseModel):
    escalation_id: int
    created: bool
    routing: RoutingOutcomeResponse

    @classmethod
    def from_result(cls, result: EscalationResult) -> "CreateEscalationResponse":
        return cls(
            escalation_id=result.escalation_id,
            created=result.created,
            routing=RoutingOutcomeResponse.from_outcome(result.routing),
        )


class TriggerEvaluationResponse(BaseModel):
    type: str
    triggered: bool
    reason: str | None = None
    confidence: float | None = None
    details: dict[str, Any]


class EvaluationResponse(BaseModel):
    """Trigger evaluation for a conversation."""

    should_escalate: bool
    reason: str | None = None
    primary_trigger: str | None = None
    triggers: list[TriggerEvaluationResponse]

    @classmethod
    def from_result(cls, result: EvaluationResult) -> "EvaluationResponse":
        return cls(
            should_escalate=result.should_escalate,
            reason=result.reason,
            primary_trigger=result.primary_trigger.value if result.primary_trigger else None,
            triggers=[TriggerEvaluationResponse(**t.to_dict()) for t in result.triggers],
        )


class AutoEscalationResponse(BaseModel):
    escalated: bool
    escalation_id: int | None = None
    priority: str | None = None
    evaluation: EvaluationResponse
    routing: RoutingOutcomeResponse | None = None

    @classmethod
    def from_result(cls, result: AutoEscalationResult) -> "AutoEscalationResponse":
        return cls(
            escalated=result.escalated,
            escalation_id=result.escalation_id,
            priority=result.priority.value if result.priority else None,
            evaluation=EvaluationResponse.from_result(result.evaluation),
            routing=RoutingOutcomeResponse.from_outcome(result.routing) if result.routing else None,
        )


class QueuedEscalationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    escalation_id: int
    conversation_id: int
    priority: EscalationPriority
    reason: str | None = None
    created_at: datetime
    queue_position: int


class ProcessQueueResponse(BaseModel):
    assigned: int
    outcomes: list[RoutingOutcomeResponse]


class AvailableOperatorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    operator_id: int
    name: str | None = None
    status: str
    current_load: int
    max_concurrent: int
    available_slots: int


class ReleaseResponse(BaseModel):
    released: bool
    drained: RoutingOutcomeResponse | None = None


class EscalationStatsResponse(BaseModel):
    """Aggregate escalation metrics."""

    model_config = ConfigDict(from_attributes=True)

    total: int = 0
    pending: int = 0
    assigned: int = 0
    in_progress: int = 0
    resolved: int = 0
    average_time_to_assignment_seconds: float | None = None
    average_time_to_resolution_seconds: float | None = None
    by_trigger_type: dict[str, int] = {}
    returned_to_automation_rate: float = 0.0


class RoutingConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    strategy: RoutingStrategy
    preferred_operator_id: int | None = None
    trigger_overrides: dict[str, Any] = {}
