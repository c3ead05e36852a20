"""Escalation model for conversations handed from automation to a human operator."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text, case, text
from sqlalchemy.orm import relationship

from handoff.domain.models.escalation import EscalationPriority, EscalationStatus
from handoff.persistence.database import Base, utcnow

if TYPE_CHECKING:
    from handoff.persistence.models.conversation import Conversation
    from handoff.persistence.models.tenant import Tenant, User

_ACTIVE_STATUSES = ", ".join(f"'{s.value}'" for s in EscalationStatus.active())


class Escalation(Base):
    """Escalation record tracking a handoff through its lifecycle.

    Status moves pending -> assigned -> in_progress -> resolved. Resolved
    records are kept for analytics and never reopened.
    """

    __tablename__ = "escalations"
    __table_args__ = (
        # At most one open escalation per conversation
        Index(
            "uq_escalations_active_conversation",
            "conversation_id",
            unique=True,
            postgresql_where=text(f"status IN ({_ACTIVE_STATUSES})"),
            sqlite_where=text(f"status IN ({_ACTIVE_STATUSES})"),
        ),
        Index("ix_escalations_tenant_status_created", "tenant_id", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)

    status = Column(String(20), default=EscalationStatus.PENDING.value, nullable=False)
    priority = Column(String(20), default=EscalationPriority.MEDIUM.value, nullable=False)
    reason = Column(Text, nullable=True)
    trigger_type = Column(String(50), nullable=True)  # sentiment, keyword, turns, explicit_request, frustration, manual

    # Assignment
    assigned_operator_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    assigned_at = Column(DateTime, nullable=True)

    # Resolution
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolution = Column(Text, nullable=True)
    returned_to_automation = Column(Boolean, default=False, nullable=False)
    returned_at = Column(DateTime, nullable=True)

    # Trigger evaluations and other diagnostics
    escalation_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="escalations")
    conversation = relationship("Conversation", back_populates="escalations")
    assigned_operator = relationship("User", foreign_keys=[assigned_operator_id])

    def __repr__(self) -> str:
        return (
            f"<Escalation(id={self.id}, conversation_id={self.conversation_id}, "
            f"status={self.status}, priority={self.priority})>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in {s.value for s in EscalationStatus.active()}


def priority_rank():
    """SQL expression giving each escalation's priority rank (unknown values rank 0)."""
    return case(EscalationPriority.ranks(), value=Escalation.priority, else_=0)
