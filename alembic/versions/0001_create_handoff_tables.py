"""create handoff tables

Revision ID: 0001_create_handoff_tables
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_create_handoff_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_ESCALATION = "status IN ('pending', 'assigned', 'in_progress')"


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('subdomain', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenants_id', 'tenants', ['id'])
    op.create_index('ix_tenants_subdomain', 'tenants', ['subdomain'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False, server_default='operator'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'conversations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('channel', sa.String(length=50), nullable=False, server_default='web'),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        sa.Column('sentiment', sa.Integer(), nullable=True),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('assigned_operator_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resolution_type', sa.String(length=50), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_conversations_id', 'conversations', ['id'])
    op.create_index('ix_conversations_tenant_id', 'conversations', ['tenant_id'])
    op.create_index('ix_conversations_status', 'conversations', ['status'])
    op.create_index('ix_conversations_assigned_operator_id', 'conversations', ['assigned_operator_id'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.id'), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_id', 'messages', ['id'])
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])
    op.create_index('ix_messages_sequence_number', 'messages', ['sequence_number'])

    op.create_table(
        'escalations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(length=50), nullable=True),
        sa.Column('assigned_operator_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('returned_to_automation', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_escalations_id', 'escalations', ['id'])
    op.create_index('ix_escalations_tenant_id', 'escalations', ['tenant_id'])
    op.create_index('ix_escalations_conversation_id', 'escalations', ['conversation_id'])
    op.create_index('ix_escalations_assigned_operator_id', 'escalations', ['assigned_operator_id'])
    op.create_index('ix_escalations_tenant_status_created', 'escalations', ['tenant_id', 'status', 'created_at'])
    op.create_index(
        'uq_escalations_active_conversation',
        'escalations',
        ['conversation_id'],
        unique=True,
        postgresql_where=sa.text(ACTIVE_ESCALATION),
        sqlite_where=sa.text(ACTIVE_ESCALATION),
    )

    op.create_table(
        'operator_availability',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='offline'),
        sa.Column('current_load', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_concurrent', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('current_load >= 0', name='ck_operator_availability_load_non_negative'),
        sa.CheckConstraint('current_load <= max_concurrent', name='ck_operator_availability_load_within_max'),
        sa.CheckConstraint('max_concurrent > 0', name='ck_operator_availability_max_positive'),
    )
    op.create_index('ix_operator_availability_id', 'operator_availability', ['id'])
    op.create_index('ix_operator_availability_tenant_id', 'operator_availability', ['tenant_id'])
    op.create_index('ix_operator_availability_user_id', 'operator_availability', ['user_id'], unique=True)

    op.create_table(
        'tenant_routing_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('strategy', sa.String(length=20), nullable=True),
        sa.Column('preferred_operator_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('trigger_overrides', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenant_routing_configs_id', 'tenant_routing_configs', ['id'])
    op.create_index('ix_tenant_routing_configs_tenant_id', 'tenant_routing_configs', ['tenant_id'], unique=True)


def downgrade() -> None:
    op.drop_table('tenant_routing_configs')
    op.drop_table('operator_availability')
    op.drop_index('uq_escalations_active_conversation', table_name='escalations')
    op.drop_table('escalations')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('users')
    op.drop_table('tenants')
