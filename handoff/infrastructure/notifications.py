"""Real-time escalation notifications over Redis pub/sub.

Events are fire-and-forget. Callers in the lifecycle manager catch and log
every failure, so a broken transport never changes an escalation outcome.
"""

import logging
from typing import Any

from handoff.infrastructure.redis import RedisClient, redis_client
from handoff.persistence.database import utcnow
from handoff.settings import settings

logger = logging.getLogger(__name__)

ESCALATION_CREATED = "escalation.created"
ESCALATION_ASSIGNED = "escalation.assigned"
ESCALATION_RESOLVED = "escalation.resolved"
HUMAN_JOINED = "human.joined"
HUMAN_EXITED = "human.exited"


class NotificationPublisher:
    """Publish escalation events to tenant, operator and conversation channels."""

    def __init__(self, client: RedisClient | None = None, prefix: str | None = None) -> None:
        self.client = client or redis_client
        self.prefix = prefix or settings.notification_channel_prefix

    def tenant_channel(self, tenant_id: int) -> str:
        return f"{self.prefix}:tenant:{tenant_id}:escalations"

    def operator_channel(self, operator_id: int) -> str:
        return f"{self.prefix}:operator:{operator_id}"

    def conversation_channel(self, conversation_id: int) -> str:
        return f"{self.prefix}:conversation:{conversation_id}"

    async def publish(self, channel: str, event: str, data: dict[str, Any]) -> None:
        """Publish one event envelope.

        Args:
            channel: Target channel
            event: Event name, e.g. ``escalation.created``
            data: Event payload
        """
        envelope = {
            "event": event,
            "data": data,
            "published_at": utcnow().isoformat(),
        }
        if not self.client.enabled:
            logger.info(f"Notification {event} on {channel} (redis disabled)", extra={"event": event})
            return

        receivers = await self.client.publish(channel, envelope)
        logger.debug(f"Published {event} on {channel} to {receivers} subscriber(s)")

    async def escalation_created(
        self,
        tenant_id: int,
        escalation_id: int,
        conversation_id: int,
        priority: str,
        reason: str | None,
    ) -> None:
        await self.publish(
            self.tenant_channel(tenant_id),
            ESCALATION_CREATED,
            {
                "escalation_id": escalation_id,
                "conversation_id": conversation_id,
                "priority": priority,
                "reason": reason,
            },
        )

    async def escalation_assigned(
        self,
        operator_id: int,
        escalation_id: int,
        conversation_id: int,
        priority: str,
        reason: str | None,
    ) -> None:
        await self.publish(
            self.operator_channel(operator_id),
            ESCALATION_ASSIGNED,
            {
                "escalation_id": escalation_id,
                "conversation_id": conversation_id,
                "priority": priority,
                "reason": reason,
            },
        )

    async def human_joined(self, conversation_id: int, operator_id: int, operator_name: str | None) -> None:
        await self.publish(
            self.conversation_channel(conversation_id),
            HUMAN_JOINED,
            {"operator_id": operator_id, "operator_name": operator_name},
        )

    async def human_exited(self, conversation_id: int) -> None:
        await self.publish(
            self.conversation_channel(conversation_id),
            HUMAN_EXITED,
            {"message": "Returning to automated assistant"},
        )

    async def escalation_resolved(
        self,
        tenant_id: int,
        escalation_id: int,
        conversation_id: int,
        returned_to_automation: bool,
    ) -> None:
        await self.publish(
            self.tenant_channel(tenant_id),
            ESCALATION_RESOLVED,
            {
                "escalation_id": escalation_id,
                "conversation_id": conversation_id,
                "returned_to_automation": returned_to_automation,
            },
        )
