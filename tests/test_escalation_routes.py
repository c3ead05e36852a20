"""Tests for escalation and operator API endpoints."""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import DBAPIError

from handoff.api.deps import get_escalation_service, get_routing_service
from handoff.core.errors import InvalidStateError, NotFoundError, OperatorAtCapacityError, ValidationError
from handoff.domain.models.escalation import (
    AutoEscalationResult,
    AvailableOperator,
    EscalationPriority,
    EscalationResult,
    EscalationStats,
    EvaluationResult,
    OperatorStatus,
    QueuedEscalation,
    RoutingConfig,
    RoutingOptions,
    RoutingOutcome,
    RoutingStrategy,
    TriggerEvaluation,
    TriggerType,
    ExplicitRequestDetails,
)
from handoff.main import app

client = TestClient(app)

TENANT = {"X-Tenant-Id": "1"}
OPERATOR = {"X-Tenant-Id": "1", "X-Operator-Id": "7"}
NOW = datetime(2026, 3, 1, 9, 30, 0)


def _escalation(**overrides):
    data = dict(
        id=10,
        conversation_id=42,
        status="pending",
        priority="medium",
        reason="Escalated manually",
        trigger_type="manual",
        assigned_operator_id=None,
        assigned_at=None,
        resolved_at=None,
        resolved_by=None,
        resolution=None,
        returned_to_automation=False,
        returned_at=None,
        escalation_metadata=None,
        created_at=NOW,
        updated_at=NOW,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


@pytest.fixture
def escalation_service():
    service = AsyncMock()
    app.dependency_overrides[get_escalation_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def routing_service():
    service = AsyncMock()
    service.default_options.return_value = RoutingOptions()
    app.dependency_overrides[get_routing_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


class TestHeaders:
    def test_tenant_header_required(self, escalation_service):
        response = client.get("/api/v1/escalations")

        assert response.status_code == 400
        assert response.json()["detail"] == "X-Tenant-Id header is required"
        escalation_service.list_escalations.assert_not_awaited()

    def test_operator_header_required_to_accept(self, escalation_service):
        response = client.post("/api/v1/escalations/10/accept", headers=TENANT)

        assert response.status_code == 400
        escalation_service.accept.assert_not_awaited()

    def test_request_id_is_echoed(self):
        response = client.get("/health", headers={"X-Request-Id": "req-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-Id"] == "req-123"


class TestEscalationEndpoints:
    """Tests for escalation endpoints."""

    def test_create_escalation(self, escalation_service):
        escalation_service.create_escalation.return_value = EscalationResult(
            escalation_id=10,
            routing=RoutingOutcome(success=False, escalation_id=10, reason="No operators available", queue_position=1),
        )

        response = client.post(
            "/api/v1/escalations",
            json={"conversation_id": 42, "reason": "Billing", "priority": "high"},
            headers=TENANT,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["escalation_id"] == 10
        assert body["created"] is True
        assert body["routing"]["queue_position"] == 1
        escalation_service.create_escalation.assert_awaited_once_with(
            1, 42, reason="Billing", trigger_type=None, priority=EscalationPriority.HIGH
        )

    def test_create_rejects_unknown_priority(self, escalation_service):
        response = client.post(
            "/api/v1/escalations",
            json={"conversation_id": 42, "priority": "critical"},
            headers=TENANT,
        )

        assert response.status_code == 422
        escalation_service.create_escalation.assert_not_awaited()

    def test_list_escalations(self, escalation_service):
        escalation_service.list_escalations.return_value = (
            [_escalation(escalation_metadata={"triggers": []})],
            1,
        )

        response = client.get("/api/v1/escalations?status=pending&limit=5", headers=TENANT)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["limit"] == 5
        assert body["items"][0]["metadata"] == {"triggers": []}

    def test_get_escalation_with_conversation(self, escalation_service):
        conversation = SimpleNamespace(
            id=42, channel="web", status="waiting_human", sentiment=-40, message_count=6, assigned_operator_id=None
        )
        escalation_service.get_escalation.return_value = _escalation(conversation=conversation)

        response = client.get("/api/v1/escalations/10", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["conversation"]["sentiment"] == -40

    def test_accept_passes_operator(self, escalation_service):
        escalation_service.accept.return_value = _escalation(
            status="in_progress", assigned_operator_id=7, assigned_at=NOW
        )

        response = client.post("/api/v1/escalations/10/accept", headers=OPERATOR)

        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"
        escalation_service.accept.assert_awaited_once_with(1, 10, 7)

    def test_resolve_uses_operator_as_resolver(self, escalation_service):
        escalation_service.resolve.return_value = _escalation(
            status="resolved", resolved_by=7, resolved_at=NOW, resolution="fixed"
        )

        response = client.post(
            "/api/v1/escalations/10/resolve",
            json={"resolution": "fixed", "return_to_automation": False},
            headers=OPERATOR,
        )

        assert response.status_code == 200
        escalation_service.resolve.assert_awaited_once_with(
            1, 10, resolution="fixed", return_to_automation=False, resolved_by=7
        )

    def test_return_to_automation(self, escalation_service):
        escalation_service.return_to_automation.return_value = _escalation(
            status="resolved", returned_to_automation=True, returned_at=NOW
        )

        response = client.post("/api/v1/escalations/10/return-to-automation", headers=OPERATOR)

        assert response.status_code == 200
        assert response.json()["returned_to_automation"] is True

    def test_evaluate(self, escalation_service):
        escalation_service.evaluate.return_value = EvaluationResult(
            should_escalate=True,
            triggers=[
                TriggerEvaluation(
                    type=TriggerType.EXPLICIT_REQUEST,
                    triggered=True,
                    details=ExplicitRequestDetails(matched_phrase="live agent"),
                    reason="Customer requested to speak with a human agent",
                    confidence=1.0,
                )
            ],
            reason="Customer requested to speak with a human agent",
            primary_trigger=TriggerType.EXPLICIT_REQUEST,
        )

        response = client.post("/api/v1/escalations/conversations/42/evaluate", headers=TENANT)

        assert response.status_code == 200
        body = response.json()
        assert body["primary_trigger"] == "explicit_request"
        assert body["triggers"][0]["details"] == {"matched_phrase": "live agent"}

    def test_auto_escalate_without_triggers(self, escalation_service):
        escalation_service.auto_escalate.return_value = AutoEscalationResult(
            escalated=False,
            evaluation=EvaluationResult(should_escalate=False, triggers=[]),
        )

        response = client.post("/api/v1/escalations/conversations/42/auto-escalate", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["escalated"] is False
        assert response.json()["routing"] is None

    def test_stats(self, escalation_service):
        escalation_service.stats.return_value = EscalationStats(
            total=2, pending=1, resolved=1, by_trigger_type={"manual": 2}, returned_to_automation_rate=0.5
        )

        response = client.get("/api/v1/escalations/stats", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["by_trigger_type"] == {"manual": 2}

    def test_routing_config_round_trip(self, escalation_service):
        escalation_service.update_routing_config.return_value = RoutingConfig(
            strategy=RoutingStrategy.PREFERRED, preferred_operator_id=7
        )

        response = client.put(
            "/api/v1/escalations/routing-config",
            json={"strategy": "preferred", "preferred_operator_id": 7},
            headers=TENANT,
        )

        assert response.status_code == 200
        assert response.json() == {"strategy": "preferred", "preferred_operator_id": 7, "trigger_overrides": {}}


class TestRoutingEndpoints:
    """Tests for queue and operator endpoints."""

    def test_queue(self, routing_service):
        routing_service.pending_queue.return_value = [
            QueuedEscalation(
                escalation_id=10,
                conversation_id=42,
                priority=EscalationPriority.URGENT,
                reason="Negative sentiment detected (-0.90)",
                created_at=NOW,
                queue_position=1,
            )
        ]

        response = client.get("/api/v1/escalations/queue", headers=TENANT)

        assert response.status_code == 200
        assert response.json()[0]["priority"] == "urgent"
        assert response.json()[0]["queue_position"] == 1

    def test_process_queue_counts_assignments(self, routing_service):
        routing_service.process_queue.return_value = [
            RoutingOutcome(success=True, escalation_id=10, assigned_operator_id=7),
            RoutingOutcome(success=False, escalation_id=11, reason="No operators available", queue_position=1),
        ]

        response = client.post("/api/v1/escalations/queue/process", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["assigned"] == 1
        assert len(response.json()["outcomes"]) == 2
        routing_service.process_queue.assert_awaited_once_with(1, limit=None)

    def test_route_merges_request_with_tenant_defaults(self, routing_service):
        routing_service.default_options.return_value = RoutingOptions(
            strategy=RoutingStrategy.PREFERRED, preferred_operator_id=7
        )
        routing_service.route.return_value = RoutingOutcome(success=True, escalation_id=10, assigned_operator_id=7)

        response = client.post("/api/v1/escalations/10/route", json={"priority": "urgent"}, headers=TENANT)

        assert response.status_code == 200
        options = routing_service.route.await_args.args[2]
        assert options.strategy == RoutingStrategy.PREFERRED
        assert options.preferred_operator_id == 7
        assert options.priority == EscalationPriority.URGENT

    def test_available_operators(self, routing_service):
        routing_service.available_operators.return_value = [
            AvailableOperator(
                operator_id=7, name="Dana", status=OperatorStatus.ONLINE, current_load=1, max_concurrent=3
            )
        ]

        response = client.get("/api/v1/operators/available", headers=TENANT)

        assert response.status_code == 200
        assert response.json()[0]["available_slots"] == 2

    def test_release_reports_drained_escalation(self, routing_service):
        routing_service.release.return_value = RoutingOutcome(success=True, escalation_id=11, assigned_operator_id=7)

        response = client.post("/api/v1/operators/7/release", headers=TENANT)

        assert response.status_code == 200
        assert response.json()["released"] is True
        assert response.json()["drained"]["escalation_id"] == 11
        routing_service.release.assert_awaited_once_with(1, 7, drain=True)


class TestErrorMapping:
    """Tests for domain error to HTTP status mapping."""

    def test_not_found(self, escalation_service):
        escalation_service.get_escalation.side_effect = NotFoundError("escalation", 10)

        response = client.get("/api/v1/escalations/10", headers=TENANT)

        assert response.status_code == 404
        assert response.json()["detail"] == "Escalation 10 not found"

    def test_invalid_state(self, escalation_service):
        escalation_service.resolve.side_effect = InvalidStateError("Escalation 10 is already resolved")

        response = client.post("/api/v1/escalations/10/resolve", json={}, headers=OPERATOR)

        assert response.status_code == 409

    def test_operator_at_capacity(self, escalation_service):
        escalation_service.accept.side_effect = OperatorAtCapacityError(7)

        response = client.post("/api/v1/escalations/10/accept", headers=OPERATOR)

        assert response.status_code == 409
        assert response.json()["operator_id"] == 7

    def test_validation_error(self, escalation_service):
        escalation_service.create_escalation.side_effect = ValidationError("Unknown routing strategy 'fastest'")

        response = client.post("/api/v1/escalations", json={"conversation_id": 42}, headers=TENANT)

        assert response.status_code == 422
        assert "fastest" in response.json()["detail"]

    def test_storage_unavailable(self, escalation_service):
        escalation_service.get_escalation.side_effect = DBAPIError("SELECT 1", {}, ConnectionError("refused"))

        response = client.get("/api/v1/escalations/10", headers=TENANT)

        assert response.status_code == 503
