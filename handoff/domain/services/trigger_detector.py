"""Escalation trigger detection.

Analyzes conversation context for conditions that warrant handing the
conversation to a human operator:

- sentiment at or below a threshold
- escalation keywords or phrases
- conversation turn limit reached
- explicit request for a human
- repeated frustration indicators

Detection is pure: no I/O, no state, safe to call concurrently.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping

from handoff.core.errors import ValidationError
from handoff.domain.models.escalation import (
    ConversationContext,
    EscalationPriority,
    ExplicitRequestDetails,
    FrustrationDetails,
    KeywordDetails,
    SentimentDetails,
    TriggerEvaluation,
    TriggerType,
    TurnLimitDetails,
)
from handoff.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS = (
    "cancel",
    "refund",
    "lawsuit",
    "lawyer",
    "attorney",
    "supervisor",
    "manager",
    "urgent",
    "emergency",
)

DEFAULT_PHRASES = (
    "this is unacceptable",
    "i want to speak",
    "escalate this",
    "file a complaint",
    "report this",
    "i demand",
    "i insist",
    "not good enough",
    "waste of time",
    "incompetent",
)

DEFAULT_REQUEST_PHRASES = (
    "talk to a human",
    "speak to a human",
    "human agent",
    "real person",
    "live agent",
    "talk to someone",
    "speak to someone",
    "connect me to",
    "transfer me",
    "get me a person",
    "need a human",
    "want a human",
    "actual person",
    "real agent",
)

DEFAULT_FRUSTRATION_INDICATORS = (
    "frustrated",
    "annoyed",
    "angry",
    "upset",
    "ridiculous",
    "absurd",
    "stupid",
    "useless",
    "terrible",
    "awful",
    "horrible",
    "worst",
    "hate",
    "disgusted",
    "fed up",
    "sick of",
    "tired of",
)

# Keyword matches that bump an escalation to high priority
DEFAULT_CRITICAL_KEYWORDS = frozenset({"lawsuit", "lawyer", "attorney", "refund", "cancel"})

# Order used to pick the reason (and trigger type) reported for an escalation
PRIMARY_TRIGGER_ORDER = (
    TriggerType.EXPLICIT_REQUEST,
    TriggerType.SENTIMENT,
    TriggerType.FRUSTRATION,
    TriggerType.KEYWORD,
    TriggerType.TURNS,
)

KEYWORD_CONFIDENCE_STEP = 0.3
FRUSTRATION_CONFIDENCE_STEP = 0.25
FRUSTRATION_MIN_MATCHES = 2
URGENT_SENTIMENT_CONFIDENCE = 0.8


@dataclass(frozen=True)
class TriggerConfig:
    """Thresholds and vocabularies for trigger rules."""

    sentiment_threshold: float = -0.5
    max_turns: int = 10
    keywords: tuple[str, ...] = DEFAULT_KEYWORDS
    phrases: tuple[str, ...] = DEFAULT_PHRASES
    request_phrases: tuple[str, ...] = DEFAULT_REQUEST_PHRASES
    frustration_indicators: tuple[str, ...] = DEFAULT_FRUSTRATION_INDICATORS
    critical_keywords: frozenset[str] = DEFAULT_CRITICAL_KEYWORDS

    @classmethod
    def from_settings(cls, settings: Settings) -> "TriggerConfig":
        return cls(
            sentiment_threshold=settings.escalation_sentiment_threshold,
            max_turns=settings.escalation_max_turns,
        )

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> "TriggerConfig":
        """Apply tenant overrides (threshold, turn limit, extra vocabulary).

        Unknown keys are ignored.
        """
        if not overrides:
            return self

        changes: dict[str, Any] = {}
        if overrides.get("sentiment_threshold") is not None:
            changes["sentiment_threshold"] = float(overrides["sentiment_threshold"])
        if overrides.get("max_turns") is not None:
            changes["max_turns"] = int(overrides["max_turns"])
        if overrides.get("extra_keywords"):
            changes["keywords"] = _merge(self.keywords, overrides["extra_keywords"])
        if overrides.get("extra_request_phrases"):
            changes["request_phrases"] = _merge(self.request_phrases, overrides["extra_request_phrases"])

        return replace(self, **changes) if changes else self


OVERRIDE_KEYS = frozenset({"sentiment_threshold", "max_turns", "extra_keywords", "extra_request_phrases"})


def validate_trigger_overrides(overrides: Mapping[str, Any] | None) -> dict[str, Any]:
    """Check tenant trigger overrides before they are stored.

    Raises:
        ValidationError: Unknown key or value of the wrong type/range
    """
    if not overrides:
        return {}

    unknown = set(overrides) - OVERRIDE_KEYS
    if unknown:
        raise ValidationError(f"Unknown trigger override(s): {', '.join(sorted(unknown))}")

    cleaned: dict[str, Any] = {}
    threshold = overrides.get("sentiment_threshold")
    if threshold is not None:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not -1.0 <= threshold <= 1.0:
            raise ValidationError("sentiment_threshold must be a number between -1 and 1")
        cleaned["sentiment_threshold"] = float(threshold)

    max_turns = overrides.get("max_turns")
    if max_turns is not None:
        if isinstance(max_turns, bool) or not isinstance(max_turns, int) or max_turns < 1:
            raise ValidationError("max_turns must be a positive integer")
        cleaned["max_turns"] = max_turns

    for key in ("extra_keywords", "extra_request_phrases"):
        terms = overrides.get(key)
        if terms is None:
            continue
        if not isinstance(terms, (list, tuple)) or not all(isinstance(t, str) for t in terms):
            raise ValidationError(f"{key} must be a list of strings")
        cleaned[key] = [t.strip().lower() for t in terms if t.strip()]

    return cleaned


def _merge(base: tuple[str, ...], extra: list[str]) -> tuple[str, ...]:
    """Append lowercased extra terms not already in base, keeping order."""
    merged = list(base)
    for term in extra:
        term = term.strip().lower()
        if term and term not in merged:
            merged.append(term)
    return tuple(merged)


class TriggerDetector:
    """Evaluate escalation triggers over a conversation context."""

    def __init__(self, config: TriggerConfig | None = None) -> None:
        self.config = config or TriggerConfig()

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> "TriggerDetector":
        """Return a detector for a tenant's overrides (self when there are none)."""
        config = self.config.with_overrides(overrides)
        if config is self.config:
            return self
        return TriggerDetector(config)

    def analyze(self, context: ConversationContext) -> list[TriggerEvaluation]:
        """Evaluate every trigger rule.

        Args:
            context: Conversation context

        Returns:
            One evaluation per rule, in a fixed order, triggered or not
        """
        text = " ".join(context.last_messages).lower()
        return [
            self._check_sentiment(context),
            self._check_turn_limit(context),
            self._check_explicit_request(text),
            self._check_keywords(text),
            self._check_frustration(text),
        ]

    def should_escalate(self, context: ConversationContext) -> bool:
        """Quick check if any trigger is active."""
        return any(t.triggered for t in self.analyze(context))

    def primary_reason(self, context: ConversationContext) -> str | None:
        """Get the primary reason for escalation, or None if nothing triggered."""
        primary = primary_evaluation(self.analyze(context))
        return primary.reason if primary else None

    def determine_priority(self, evaluations: list[TriggerEvaluation]) -> EscalationPriority:
        """Derive escalation priority from evaluations using this detector's critical keywords."""
        return determine_priority(evaluations, self.config.critical_keywords)

    def _check_sentiment(self, context: ConversationContext) -> TriggerEvaluation:
        details = SentimentDetails(
            sentiment=context.sentiment,
            threshold=self.config.sentiment_threshold,
        )
        if context.sentiment is None or context.sentiment > self.config.sentiment_threshold:
            return TriggerEvaluation(type=TriggerType.SENTIMENT, triggered=False, details=details)

        return TriggerEvaluation(
            type=TriggerType.SENTIMENT,
            triggered=True,
            details=details,
            reason=f"Negative sentiment detected ({context.sentiment:.2f})",
            confidence=abs(context.sentiment),
        )

    def _check_turn_limit(self, context: ConversationContext) -> TriggerEvaluation:
        details = TurnLimitDetails(turn_count=context.turn_count, max_turns=self.config.max_turns)
        if context.turn_count < self.config.max_turns:
            return TriggerEvaluation(type=TriggerType.TURNS, triggered=False, details=details)

        return TriggerEvaluation(
            type=TriggerType.TURNS,
            triggered=True,
            details=details,
            reason=f"Conversation reached {self.config.max_turns} turns",
            confidence=1.0,
        )

    def _check_explicit_request(self, text: str) -> TriggerEvaluation:
        for phrase in self.config.request_phrases:
            if phrase.lower() in text:
                return TriggerEvaluation(
                    type=TriggerType.EXPLICIT_REQUEST,
                    triggered=True,
                    details=ExplicitRequestDetails(matched_phrase=phrase),
                    reason="Customer requested to speak with a human agent",
                    confidence=1.0,
                )

        return TriggerEvaluation(
            type=TriggerType.EXPLICIT_REQUEST,
            triggered=False,
            details=ExplicitRequestDetails(),
        )

    def _check_keywords(self, text: str) -> TriggerEvaluation:
        details = KeywordDetails(
            matched_keywords=_find_all(self.config.keywords, text),
            matched_phrases=_find_all(self.config.phrases, text),
        )
        matches = details.matches
        if not matches:
            return TriggerEvaluation(type=TriggerType.KEYWORD, triggered=False, details=details)

        return TriggerEvaluation(
            type=TriggerType.KEYWORD,
            triggered=True,
            details=details,
            reason=f"Keywords detected: {', '.join(matches)}",
            confidence=min(1.0, KEYWORD_CONFIDENCE_STEP * len(matches)),
        )

    def _check_frustration(self, text: str) -> TriggerEvaluation:
        details = FrustrationDetails(
            matched_indicators=_find_all(self.config.frustration_indicators, text),
        )
        count = len(details.matched_indicators)
        if count < FRUSTRATION_MIN_MATCHES:
            return TriggerEvaluation(type=TriggerType.FRUSTRATION, triggered=False, details=details)

        return TriggerEvaluation(
            type=TriggerType.FRUSTRATION,
            triggered=True,
            details=details,
            reason="Customer appears frustrated",
            confidence=min(1.0, FRUSTRATION_CONFIDENCE_STEP * count),
        )


def _find_all(terms: tuple[str, ...], text: str) -> tuple[str, ...]:
    """Distinct configured terms that occur in text (case-insensitive)."""
    found: list[str] = []
    for term in terms:
        if term.lower() in text and term not in found:
            found.append(term)
    return tuple(found)


def primary_evaluation(evaluations: list[TriggerEvaluation]) -> TriggerEvaluation | None:
    """First triggered evaluation in PRIMARY_TRIGGER_ORDER."""
    by_type = {e.type: e for e in evaluations if e.triggered}
    for trigger_type in PRIMARY_TRIGGER_ORDER:
        if trigger_type in by_type:
            return by_type[trigger_type]
    return None


def determine_priority(
    evaluations: list[TriggerEvaluation],
    critical_keywords: frozenset[str] = DEFAULT_CRITICAL_KEYWORDS,
) -> EscalationPriority:
    """Derive escalation priority from triggered evaluations.

    Rules are checked in order and the first match wins. An explicit request
    is capped at high even when sentiment alone would make it urgent.
    """
    triggered = {e.type: e for e in evaluations if e.triggered}

    if TriggerType.EXPLICIT_REQUEST in triggered:
        return EscalationPriority.HIGH

    sentiment = triggered.get(TriggerType.SENTIMENT)
    if sentiment and sentiment.confidence is not None and sentiment.confidence > URGENT_SENTIMENT_CONFIDENCE:
        return EscalationPriority.URGENT

    if TriggerType.FRUSTRATION in triggered:
        return EscalationPriority.HIGH

    keyword = triggered.get(TriggerType.KEYWORD)
    if keyword and isinstance(keyword.details, KeywordDetails):
        if any(k.lower() in critical_keywords for k in keyword.details.matched_keywords):
            return EscalationPriority.HIGH

    if TriggerType.TURNS in triggered:
        return EscalationPriority.MEDIUM

    return EscalationPriority.MEDIUM
