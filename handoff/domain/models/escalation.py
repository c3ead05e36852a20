"""Domain types shared by trigger detection, routing and the escalation lifecycle."""

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar, TypeVar, Union

from handoff.core.errors import ValidationError

_E = TypeVar("_E", bound="_ParsableEnum")


class _ParsableEnum(str, enum.Enum):
    """String enum that rejects unknown values with a ValidationError."""

    @classmethod
    def parse(cls: type[_E], value: "str | _E") -> _E:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValidationError(
                f"Invalid {cls.__name__} value: {value!r}. Must be one of: {allowed}"
            ) from None


class EscalationStatus(_ParsableEnum):
    """Lifecycle status of an escalation."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"

    @classmethod
    def active(cls) -> tuple["EscalationStatus", ...]:
        """Statuses that count as an open escalation for a conversation."""
        return (cls.PENDING, cls.ASSIGNED, cls.IN_PROGRESS)


class EscalationPriority(_ParsableEnum):
    """Priority tier, totally ordered by ``rank``."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]

    @classmethod
    def ranks(cls) -> dict[str, int]:
        """Mapping of stored value to rank, used to build SQL orderings."""
        return {member.value: member.rank for member in cls}


_PRIORITY_RANKS = {
    EscalationPriority.LOW: 1,
    EscalationPriority.MEDIUM: 2,
    EscalationPriority.HIGH: 3,
    EscalationPriority.URGENT: 4,
}


class TriggerType(_ParsableEnum):
    """What caused an escalation. MANUAL is never produced by the detector."""
    SENTIMENT = "sentiment"
    KEYWORD = "keyword"
    TURNS = "turns"
    EXPLICIT_REQUEST = "explicit_request"
    FRUSTRATION = "frustration"
    MANUAL = "manual"


class RoutingStrategy(_ParsableEnum):
    """How an operator is picked from the candidate set."""
    ROUND_ROBIN = "round_robin"
    LEAST_BUSY = "least_busy"
    RANDOM = "random"
    PREFERRED = "preferred"


class OperatorStatus(_ParsableEnum):
    """Presence status maintained by the presence system."""
    ONLINE = "online"
    OFFLINE = "offline"
    BUSY = "busy"


class ConversationStatus(_ParsableEnum):
    """Conversation statuses written by the escalation lifecycle."""
    ACTIVE = "active"
    WAITING_HUMAN = "waiting_human"
    WITH_HUMAN = "with_human"
    RESOLVED = "resolved"


# --- Trigger evaluation details (one variant per trigger type) ---


@dataclass(frozen=True)
class SentimentDetails:
    trigger_type: ClassVar[TriggerType] = TriggerType.SENTIMENT
    sentiment: float | None
    threshold: float


@dataclass(frozen=True)
class TurnLimitDetails:
    trigger_type: ClassVar[TriggerType] = TriggerType.TURNS
    turn_count: int
    max_turns: int


@dataclass(frozen=True)
class ExplicitRequestDetails:
    trigger_type: ClassVar[TriggerType] = TriggerType.EXPLICIT_REQUEST
    matched_phrase: str | None = None


@dataclass(frozen=True)
class KeywordDetails:
    trigger_type: ClassVar[TriggerType] = TriggerType.KEYWORD
    matched_keywords: tuple[str, ...] = ()
    matched_phrases: tuple[str, ...] = ()

    @property
    def matches(self) -> tuple[str, ...]:
        return self.matched_keywords + self.matched_phrases


@dataclass(frozen=True)
class FrustrationDetails:
    trigger_type: ClassVar[TriggerType] = TriggerType.FRUSTRATION
    matched_indicators: tuple[str, ...] = ()


TriggerDetails = Union[
    SentimentDetails,
    TurnLimitDetails,
    ExplicitRequestDetails,
    KeywordDetails,
    FrustrationDetails,
]


@dataclass(frozen=True)
class TriggerEvaluation:
    """Result of evaluating one trigger rule against a conversation."""

    type: TriggerType
    triggered: bool
    details: TriggerDetails
    reason: str | None = None
    confidence: float | None = None

    def __post_init__(self) -> None:
        if self.details.trigger_type is not self.type:
            raise ValueError(
                f"{type(self.details).__name__} cannot describe a {self.type.value} trigger"
            )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form for escalation metadata and API responses."""
        details = {
            key: list(value) if isinstance(value, tuple) else value
            for key, value in asdict(self.details).items()
        }
        return {
            "type": self.type.value,
            "triggered": self.triggered,
            "reason": self.reason,
            "confidence": self.confidence,
            "details": details,
        }


@dataclass(frozen=True)
class ConversationContext:
    """Conversation state the trigger rules look at."""

    turn_count: int
    last_messages: tuple[str, ...] = ()
    sentiment: float | None = None  # -1..1, None when not scored


# --- Routing ---


@dataclass(frozen=True)
class RoutingOptions:
    """Options for a single routing attempt."""

    strategy: RoutingStrategy = RoutingStrategy.LEAST_BUSY
    priority: EscalationPriority | None = None
    preferred_operator_id: int | None = None

    @classmethod
    def build(
        cls,
        strategy: "RoutingStrategy | str | None" = None,
        priority: "EscalationPriority | str | None" = None,
        preferred_operator_id: int | None = None,
        default_strategy: "RoutingStrategy | str" = RoutingStrategy.LEAST_BUSY,
    ) -> "RoutingOptions":
        """Coerce raw values, raising ValidationError on unknown enum values."""
        return cls(
            strategy=RoutingStrategy.parse(strategy if strategy is not None else default_strategy),
            priority=EscalationPriority.parse(priority) if priority is not None else None,
            preferred_operator_id=preferred_operator_id,
        )


@dataclass(frozen=True)
class AvailableOperator:
    """Operator with at least one free slot at read time."""

    operator_id: int
    name: str
    status: OperatorStatus
    current_load: int
    max_concurrent: int

    @property
    def available_slots(self) -> int:
        return self.max_concurrent - self.current_load


@dataclass
class RoutingOutcome:
    """Result of routing an escalation: an assignment or a queue position."""

    success: bool
    escalation_id: int | None = None
    assigned_operator_id: int | None = None
    assigned_operator_name: str | None = None
    reason: str | None = None
    queue_position: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueuedEscalation:
    """Pending escalation with its position in the tenant queue."""

    escalation_id: int
    conversation_id: int
    priority: EscalationPriority
    reason: str | None
    created_at: datetime
    queue_position: int


# --- Lifecycle results ---


@dataclass
class EvaluationResult:
    """Outcome of evaluating a conversation for escalation."""

    should_escalate: bool
    triggers: list[TriggerEvaluation]
    reason: str | None = None
    primary_trigger: TriggerType | None = None

    @property
    def triggered(self) -> list[TriggerEvaluation]:
        return [t for t in self.triggers if t.triggered]


@dataclass
class EscalationResult:
    """Outcome of creating (or finding) an escalation."""

    escalation_id: int
    routing: RoutingOutcome
    created: bool = True


@dataclass
class AutoEscalationResult:
    """Outcome of auto-escalation for a conversation."""

    escalated: bool
    evaluation: EvaluationResult
    escalation_id: int | None = None
    priority: EscalationPriority | None = None
    routing: RoutingOutcome | None = None


@dataclass
class EscalationStats:
    """Aggregate escalation metrics for a tenant."""

    total: int = 0
    pending: int = 0
    assigned: int = 0
    in_progress: int = 0
    resolved: int = 0
    average_time_to_assignment_seconds: float | None = None
    average_time_to_resolution_seconds: float | None = None
    by_trigger_type: dict[str, int] = field(default_factory=dict)
    returned_to_automation_rate: float = 0.0


@dataclass
class RoutingConfig:
    """Effective routing configuration for a tenant (defaults filled in)."""

    strategy: RoutingStrategy
    preferred_operator_id: int | None = None
    trigger_overrides: dict[str, Any] = field(default_factory=dict)
