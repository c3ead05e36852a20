"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from handoff.domain.models.escalation import OperatorStatus
from handoff.infrastructure.notifications import NotificationPublisher
from handoff.persistence.database import Base
from handoff.persistence.models import (
    Conversation,
    Escalation,
    Message,
    OperatorAvailability,
    Tenant,
    TenantRoutingConfig,
    User,
)


@pytest.fixture
async def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        pool_reset_on_return=None,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory for tests that need one session per concurrent task."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher():
    """Notification publisher double."""
    return AsyncMock(spec=NotificationPublisher)


@pytest.fixture
def make_tenant(db_session):
    """Factory for tenants."""
    counter = {"n": 0}

    async def _make(name: str | None = None) -> Tenant:
        counter["n"] += 1
        tenant = Tenant(name=name or f"Tenant {counter['n']}", subdomain=f"tenant{counter['n']}")
        db_session.add(tenant)
        await db_session.commit()
        return tenant

    return _make


@pytest.fixture
def make_operator(db_session):
    """Factory for operators with an availability row."""
    counter = {"n": 0}

    async def _make(
        tenant_id: int,
        name: str | None = None,
        status: OperatorStatus = OperatorStatus.ONLINE,
        current_load: int = 0,
        max_concurrent: int = 3,
    ) -> User:
        counter["n"] += 1
        user = User(
            tenant_id=tenant_id,
            email=f"op{counter['n']}-t{tenant_id}@example.com",
            name=name or f"Operator {counter['n']}",
        )
        db_session.add(user)
        await db_session.flush()
        db_session.add(
            OperatorAvailability(
                tenant_id=tenant_id,
                user_id=user.id,
                status=status.value,
                current_load=current_load,
                max_concurrent=max_concurrent,
            )
        )
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_conversation(db_session):
    """Factory for conversations with end-user messages."""

    async def _make(
        tenant_id: int,
        user_messages: list[str] | None = None,
        sentiment: int | None = None,
        user_message_count: int | None = None,
    ) -> Conversation:
        user_messages = user_messages or []
        conversation = Conversation(
            tenant_id=tenant_id,
            sentiment=sentiment,
            message_count=len(user_messages) * 2,
            user_message_count=user_message_count if user_message_count is not None else len(user_messages),
        )
        db_session.add(conversation)
        await db_session.flush()

        sequence = 0
        for text in user_messages:
            sequence += 1
            db_session.add(Message(conversation_id=conversation.id, role="user", content=text, sequence_number=sequence))
            sequence += 1
            db_session.add(
                Message(conversation_id=conversation.id, role="assistant", content="How can I help?", sequence_number=sequence)
            )
        await db_session.commit()
        return conversation

    return _make


@pytest.fixture
def make_escalation(db_session):
    """Factory for escalations inserted directly (no routing)."""

    async def _make(
        tenant_id: int,
        conversation_id: int,
        priority: str = "medium",
        status: str = "pending",
        assigned_operator_id: int | None = None,
        trigger_type: str = "manual",
    ) -> Escalation:
        escalation = Escalation(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            priority=priority,
            status=status,
            assigned_operator_id=assigned_operator_id,
            trigger_type=trigger_type,
            reason="test",
        )
        db_session.add(escalation)
        await db_session.commit()
        return escalation

    return _make


@pytest.fixture
def set_routing_config(db_session):
    """Store a tenant routing config row."""

    async def _set(tenant_id: int, **data) -> TenantRoutingConfig:
        config = TenantRoutingConfig(tenant_id=tenant_id, **data)
        db_session.add(config)
        await db_session.commit()
        return config

    return _set


@pytest.fixture
def load_of(db_session):
    """Read an operator's current load fresh from the database."""

    async def _load(operator_id: int) -> int:
        result = await db_session.execute(
            select(OperatorAvailability.current_load).where(OperatorAvailability.user_id == operator_id)
        )
        return result.scalar_one()

    return _load
