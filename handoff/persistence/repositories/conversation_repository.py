"""Conversation repository (the escalation core's view of the conversation store)."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from handoff.domain.models.escalation import ConversationStatus
from handoff.persistence.database import utcnow
from handoff.persistence.models.conversation import Conversation, Message
from handoff.persistence.repositories.base import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for Conversation entities."""

    def __init__(self, session: AsyncSession):
        """Initialize conversation repository."""
        super().__init__(Conversation, session)

    async def recent_user_messages(self, conversation_id: int, limit: int = 5) -> list[str]:
        """Get the last end-user messages of a conversation in chronological order.

        Args:
            conversation_id: Conversation ID
            limit: Maximum number of messages

        Returns:
            Message texts, oldest first
        """
        stmt = (
            select(Message.content)
            .where(Message.conversation_id == conversation_id, Message.role == "user")
            .order_by(Message.sequence_number.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def set_status(
        self,
        tenant_id: int,
        conversation_id: int,
        status: ConversationStatus,
        **fields,
    ) -> bool:
        """Write status plus any assignee/resolution fields.

        Returns:
            True if the conversation exists for the tenant
        """
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id, Conversation.tenant_id == tenant_id)
            .values(status=status.value, updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_waiting_for_human(self, tenant_id: int, conversation_id: int) -> bool:
        return await self.set_status(tenant_id, conversation_id, ConversationStatus.WAITING_HUMAN)

    async def assign_operator(self, tenant_id: int, conversation_id: int, operator_id: int) -> bool:
        return await self.set_status(
            tenant_id, conversation_id, ConversationStatus.WITH_HUMAN,
            assigned_operator_id=operator_id,
        )

    async def return_to_automation(self, tenant_id: int, conversation_id: int) -> bool:
        return await self.set_status(
            tenant_id, conversation_id, ConversationStatus.ACTIVE,
            assigned_operator_id=None,
        )

    async def resolve_by_human(self, tenant_id: int, conversation_id: int, resolved_by: int | None) -> bool:
        return await self.set_status(
            tenant_id, conversation_id, ConversationStatus.RESOLVED,
            resolution_type="human",
            resolved_at=utcnow(),
            resolved_by=resolved_by,
        )
