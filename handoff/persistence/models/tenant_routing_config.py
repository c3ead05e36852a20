"""Per-tenant routing configuration."""

from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from handoff.persistence.database import Base, utcnow

if TYPE_CHECKING:
    from handoff.persistence.models.tenant import Tenant


class TenantRoutingConfig(Base):
    """Routing strategy, preferred operator and trigger overrides for a tenant."""

    __tablename__ = "tenant_routing_configs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, nullable=False, index=True)
    strategy = Column(String(20), nullable=True)  # null means the service default
    preferred_operator_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # sentiment_threshold, max_turns, extra_keywords, extra_request_phrases
    trigger_overrides = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="routing_config")

    def __repr__(self) -> str:
        return f"<TenantRoutingConfig(tenant_id={self.tenant_id}, strategy={self.strategy})>"
