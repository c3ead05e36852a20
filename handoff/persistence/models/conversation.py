"""Conversation and Message models."""

from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from handoff.persistence.database import Base, utcnow

if TYPE_CHECKING:
    from handoff.persistence.models.escalation import Escalation
    from handoff.persistence.models.tenant import Tenant, User


class Conversation(Base):
    """Conversation between an end user and the automated agent or an operator.

    Owned by the conversation store. The escalation core only reads the
    snapshot fields and writes status, assignee and resolution fields.
    """

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    channel = Column(String(50), nullable=False, default="web")  # web, sms, voice
    status = Column(String(50), nullable=False, default="active", index=True)  # active, waiting_human, with_human, resolved

    # Snapshot fields maintained by the conversation store
    sentiment = Column(Integer, nullable=True)  # -100..100, null when not scored
    message_count = Column(Integer, nullable=False, default=0)
    user_message_count = Column(Integer, nullable=False, default=0)

    # Human handling
    assigned_operator_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    resolution_type = Column(String(50), nullable=True)  # "human", "automation"
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="conversations")
    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan", order_by="Message.sequence_number"
    )
    escalations = relationship("Escalation", back_populates="conversation")
    assigned_operator = relationship("User", foreign_keys=[assigned_operator_id])

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, tenant_id={self.tenant_id}, status={self.status})>"


class Message(Base):
    """Message model representing individual messages in a conversation."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    role = Column(String(50), nullable=False)  # user, assistant, operator, system
    content = Column(Text, nullable=False)
    sequence_number = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation_id={self.conversation_id}, role={self.role}, sequence={self.sequence_number})>"
