"""Operator availability and capacity model."""

from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from handoff.domain.models.escalation import OperatorStatus
from handoff.persistence.database import Base, utcnow

if TYPE_CHECKING:
    from handoff.persistence.models.tenant import User


class OperatorAvailability(Base):
    """Presence and concurrent-conversation capacity for one operator.

    Status is maintained by the presence system. ``current_load`` only moves
    through the routing engine's atomic claim and release updates.
    """

    __tablename__ = "operator_availability"
    __table_args__ = (
        CheckConstraint("current_load >= 0", name="ck_operator_availability_load_non_negative"),
        CheckConstraint("current_load <= max_concurrent", name="ck_operator_availability_load_within_max"),
        CheckConstraint("max_concurrent > 0", name="ck_operator_availability_max_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    status = Column(String(20), default=OperatorStatus.OFFLINE.value, nullable=False)  # online, offline, busy
    current_load = Column(Integer, default=0, nullable=False)
    max_concurrent = Column(Integer, default=3, nullable=False)
    last_activity_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="availability")

    def __repr__(self) -> str:
        return (
            f"<OperatorAvailability(user_id={self.user_id}, status={self.status}, "
            f"load={self.current_load}/{self.max_concurrent})>"
        )
