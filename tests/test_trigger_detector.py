"""Tests for escalation trigger detection."""

import pytest

from handoff.core.errors import ValidationError
from handoff.domain.models.escalation import (
    ConversationContext,
    EscalationPriority,
    ExplicitRequestDetails,
    KeywordDetails,
    SentimentDetails,
    TriggerEvaluation,
    TriggerType,
    TurnLimitDetails,
)
from handoff.domain.services.trigger_detector import (
    TriggerConfig,
    TriggerDetector,
    determine_priority,
    primary_evaluation,
    validate_trigger_overrides,
)


@pytest.fixture
def detector():
    """Detector with the default thresholds and vocabularies."""
    return TriggerDetector(TriggerConfig())


def _by_type(evaluations):
    return {e.type: e for e in evaluations}


class TestAnalyze:
    """Tests for the fixed evaluation set."""

    def test_returns_all_rules_in_fixed_order(self, detector):
        """Test that every rule is evaluated, triggered or not."""
        evaluations = detector.analyze(ConversationContext(turn_count=0))

        assert [e.type for e in evaluations] == [
            TriggerType.SENTIMENT,
            TriggerType.TURNS,
            TriggerType.EXPLICIT_REQUEST,
            TriggerType.KEYWORD,
            TriggerType.FRUSTRATION,
        ]
        assert not any(e.triggered for e in evaluations)
        assert all(e.reason is None and e.confidence is None for e in evaluations)

    def test_is_idempotent(self, detector):
        """Test that identical contexts give identical evaluations."""
        context = ConversationContext(
            turn_count=12,
            last_messages=("this is ridiculous and useless", "I want a refund"),
            sentiment=-0.9,
        )

        assert detector.analyze(context) == detector.analyze(context)

    def test_scenario_negative_sentiment(self, detector):
        """Test sentiment -0.6 with no messages triggers sentiment only, at medium priority."""
        context = ConversationContext(turn_count=3, last_messages=(), sentiment=-0.6)

        evaluations = detector.analyze(context)
        sentiment = _by_type(evaluations)[TriggerType.SENTIMENT]

        assert detector.should_escalate(context) is True
        assert sentiment.triggered is True
        assert sentiment.confidence == pytest.approx(0.6)
        assert sentiment.details == SentimentDetails(sentiment=-0.6, threshold=-0.5)
        assert primary_evaluation(evaluations).type == TriggerType.SENTIMENT
        assert detector.determine_priority(evaluations) == EscalationPriority.MEDIUM


class TestSentimentRule:
    """Tests for the sentiment threshold."""

    def test_threshold_is_inclusive(self, detector):
        evaluation = _by_type(detector.analyze(ConversationContext(turn_count=0, sentiment=-0.5)))
        assert evaluation[TriggerType.SENTIMENT].triggered is True

    def test_above_threshold_does_not_trigger(self, detector):
        evaluation = _by_type(detector.analyze(ConversationContext(turn_count=0, sentiment=-0.49)))
        assert evaluation[TriggerType.SENTIMENT].triggered is False

    def test_missing_sentiment_does_not_trigger(self, detector):
        evaluation = _by_type(detector.analyze(ConversationContext(turn_count=0, sentiment=None)))
        assert evaluation[TriggerType.SENTIMENT].triggered is False

    def test_neutral_sentiment_is_a_score(self, detector):
        """Test that 0 is evaluated as a score rather than treated as missing."""
        evaluation = _by_type(detector.analyze(ConversationContext(turn_count=0, sentiment=0.0)))
        assert evaluation[TriggerType.SENTIMENT].details.sentiment == 0.0
        assert evaluation[TriggerType.SENTIMENT].triggered is False


class TestTurnLimitRule:
    """Tests for the turn limit."""

    def test_triggers_at_limit(self, detector):
        evaluation = _by_type(detector.analyze(ConversationContext(turn_count=10)))[TriggerType.TURNS]

        assert evaluation.triggered is True
        assert evaluation.confidence == 1.0
        assert evaluation.details == TurnLimitDetails(turn_count=10, max_turns=10)
        assert evaluation.reason == "Conversation reached 10 turns"

    def test_below_limit(self, detector):
        evaluation = _by_type(detector.analyze(ConversationContext(turn_count=9)))[TriggerType.TURNS]
        assert evaluation.triggered is False


class TestExplicitRequestRule:
    """Tests for explicit human requests."""

    def test_detects_request_case_insensitively(self, detector):
        """Test that 'Talk to a HUMAN' is detected."""
        context = ConversationContext(turn_count=1, last_messages=("Can I Talk To A HUMAN please",))
        evaluation = _by_type(detector.analyze(context))[TriggerType.EXPLICIT_REQUEST]

        assert evaluation.triggered is True
        assert evaluation.confidence == 1.0
        assert evaluation.details == ExplicitRequestDetails(matched_phrase="talk to a human")

    def test_first_configured_phrase_wins(self, detector):
        context = ConversationContext(turn_count=1, last_messages=("transfer me to a real person",))
        evaluation = _by_type(detector.analyze(context))[TriggerType.EXPLICIT_REQUEST]

        assert evaluation.details.matched_phrase == "real person"

    def test_matches_across_messages(self, detector):
        """Test that messages are joined with a space before matching."""
        context = ConversationContext(turn_count=2, last_messages=("I need to talk to a", "human"))
        evaluation = _by_type(detector.analyze(context))[TriggerType.EXPLICIT_REQUEST]

        assert evaluation.triggered is True

    def test_explicit_request_is_primary(self, detector):
        """Test that an explicit request outranks sentiment for the reported reason."""
        context = ConversationContext(turn_count=1, last_messages=("get me a person",), sentiment=-0.9)

        assert detector.primary_reason(context) == "Customer requested to speak with a human agent"
        assert primary_evaluation(detector.analyze(context)).type == TriggerType.EXPLICIT_REQUEST


class TestKeywordRule:
    """Tests for keyword and phrase matches."""

    def test_records_every_match(self, detector):
        context = ConversationContext(
            turn_count=1,
            last_messages=("I want a refund or I will call my lawyer, this is unacceptable",),
        )
        evaluation = _by_type(detector.analyze(context))[TriggerType.KEYWORD]

        assert evaluation.triggered is True
        assert evaluation.details == KeywordDetails(
            matched_keywords=("refund", "lawyer"),
            matched_phrases=("this is unacceptable",),
        )
        assert evaluation.confidence == pytest.approx(0.9)
        assert evaluation.reason == "Keywords detected: refund, lawyer, this is unacceptable"

    def test_confidence_is_capped(self, detector):
        context = ConversationContext(
            turn_count=1,
            last_messages=("cancel refund lawsuit supervisor manager urgent",),
        )
        evaluation = _by_type(detector.analyze(context))[TriggerType.KEYWORD]
        assert evaluation.confidence == 1.0


class TestFrustrationRule:
    """Tests for frustration indicators."""

    def test_single_indicator_does_not_trigger(self, detector):
        context = ConversationContext(turn_count=1, last_messages=("I am a bit annoyed",))
        evaluation = _by_type(detector.analyze(context))[TriggerType.FRUSTRATION]

        assert evaluation.triggered is False
        assert evaluation.details.matched_indicators == ("annoyed",)

    def test_two_indicators_trigger(self, detector):
        context = ConversationContext(turn_count=1, last_messages=("this is ridiculous, I'm fed up",))
        evaluation = _by_type(detector.analyze(context))[TriggerType.FRUSTRATION]

        assert evaluation.triggered is True
        assert evaluation.confidence == pytest.approx(0.5)


class TestDeterminePriority:
    """Tests for priority derivation."""

    def _context_priority(self, detector, **kwargs):
        return detector.determine_priority(detector.analyze(ConversationContext(**kwargs)))

    def test_explicit_request_is_high_even_with_extreme_sentiment(self, detector):
        priority = self._context_priority(
            detector, turn_count=1, last_messages=("live agent now",), sentiment=-1.0
        )
        assert priority == EscalationPriority.HIGH

    def test_very_negative_sentiment_is_urgent(self, detector):
        assert self._context_priority(detector, turn_count=1, sentiment=-0.85) == EscalationPriority.URGENT

    def test_sentiment_at_boundary_is_not_urgent(self, detector):
        assert self._context_priority(detector, turn_count=1, sentiment=-0.8) == EscalationPriority.MEDIUM

    def test_frustration_is_high(self, detector):
        priority = self._context_priority(
            detector, turn_count=1, last_messages=("this is absurd and awful",)
        )
        assert priority == EscalationPriority.HIGH

    def test_critical_keyword_is_high(self, detector):
        priority = self._context_priority(detector, turn_count=1, last_messages=("please cancel my plan",))
        assert priority == EscalationPriority.HIGH

    def test_non_critical_keyword_is_medium(self, detector):
        priority = self._context_priority(detector, turn_count=1, last_messages=("let me see a supervisor",))
        assert priority == EscalationPriority.MEDIUM

    def test_turn_limit_is_medium(self, detector):
        assert self._context_priority(detector, turn_count=15) == EscalationPriority.MEDIUM

    def test_nothing_triggered_is_medium(self):
        assert determine_priority([]) == EscalationPriority.MEDIUM


class TestOverrides:
    """Tests for tenant trigger overrides."""

    def test_overrides_change_thresholds(self, detector):
        tenant_detector = detector.with_overrides({"sentiment_threshold": -0.2, "max_turns": 3})
        evaluations = _by_type(tenant_detector.analyze(ConversationContext(turn_count=3, sentiment=-0.3)))

        assert evaluations[TriggerType.SENTIMENT].triggered is True
        assert evaluations[TriggerType.TURNS].triggered is True
        # Shared detector is unchanged
        assert detector.config.max_turns == 10

    def test_extra_vocabulary_is_merged(self, detector):
        tenant_detector = detector.with_overrides({"extra_request_phrases": ["Front Desk"]})
        context = ConversationContext(turn_count=1, last_messages=("put me through to the front desk",))

        assert _by_type(tenant_detector.analyze(context))[TriggerType.EXPLICIT_REQUEST].triggered is True

    def test_no_overrides_returns_same_detector(self, detector):
        assert detector.with_overrides(None) is detector
        assert detector.with_overrides({}) is detector

    def test_validate_rejects_unknown_keys(self):
        with pytest.raises(ValidationError):
            validate_trigger_overrides({"colour": "blue"})

    def test_validate_rejects_out_of_range_threshold(self):
        with pytest.raises(ValidationError):
            validate_trigger_overrides({"sentiment_threshold": -2})

    def test_validate_normalizes_terms(self):
        cleaned = validate_trigger_overrides({"extra_keywords": ["  Chargeback ", ""], "max_turns": 4})
        assert cleaned == {"extra_keywords": ["chargeback"], "max_turns": 4}


class TestTriggerEvaluation:
    """Tests for the evaluation value type."""

    def test_details_must_match_type(self):
        with pytest.raises(ValueError):
            TriggerEvaluation(
                type=TriggerType.KEYWORD,
                triggered=False,
                details=SentimentDetails(sentiment=None, threshold=-0.5),
            )

    def test_to_dict(self):
        evaluation = TriggerEvaluation(
            type=TriggerType.KEYWORD,
            triggered=True,
            details=KeywordDetails(matched_keywords=("refund",)),
            reason="Keywords detected: refund",
            confidence=0.3,
        )

        assert evaluation.to_dict() == {
            "type": "keyword",
            "triggered": True,
            "reason": "Keywords detected: refund",
            "confidence": 0.3,
            "details": {"matched_keywords": ["refund"], "matched_phrases": []},
        }
