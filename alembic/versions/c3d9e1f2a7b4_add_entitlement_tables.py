"""Add entitlement, usage and diagnostic tables

Revision ID: c3d9e1f2a7b4
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'c3d9e1f2a7b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Shared enum types, created once and referenced by several tables
subscription_tier = postgresql.ENUM('FREE', 'PRO', 'BUSINESS', name='subscriptiontier', create_type=False)
subscription_status = postgresql.ENUM('ACTIVE', 'PAST_DUE', 'CANCELLED', name='subscriptionstatus', create_type=False)
resource_type = postgresql.ENUM('PHOTO', 'VIDEO', 'AUDIO', 'TEXT', 'PROPERTY', name='resourcetype', create_type=False)
diagnostic_status = postgresql.ENUM('PENDING', 'COMPLETED', 'FAILED', name='diagnosticstatus', create_type=False)
transaction_status = postgresql.ENUM('INITIATED', 'SUCCESS', 'FAILED', name='transactionstatus', create_type=False)
app_role = postgresql.ENUM('ADMIN', name='approle', create_type=False)

ENUMS = (subscription_tier, subscription_status, resource_type, diagnostic_status, transaction_status, app_role)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # One subscription row per user
    op.create_table('user_subscriptions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('supabase_user_id', sa.String(), nullable=False),
        sa.Column('tier', subscription_tier, nullable=False),
        sa.Column('status', subscription_status, nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('renewal_reference', sa.String(length=255), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_subscriptions_id'), 'user_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_user_subscriptions_supabase_user_id'), 'user_subscriptions', ['supabase_user_id'], unique=True)

    op.create_table('diagnostics',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('resource_type', resource_type, nullable=False),
        sa.Column('status', diagnostic_status, nullable=False),
        sa.Column('payload_ref', sa.String(length=1000), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('property_id', sa.UUID(), nullable=True),
        sa.Column('appliance_id', sa.String(length=64), nullable=True),
        sa.Column('diagnosis_summary', sa.Text(), nullable=True),
        sa.Column('probable_causes', sa.JSON(), nullable=True),
        sa.Column('estimated_cost_min', sa.Integer(), nullable=True),
        sa.Column('estimated_cost_max', sa.Integer(), nullable=True),
        sa.Column('urgency', sa.String(length=20), nullable=True),
        sa.Column('scam_alerts', sa.JSON(), nullable=True),
        sa.Column('fix_instructions', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_diagnostics_id'), 'diagnostics', ['id'], unique=False)
    op.create_index(op.f('ix_diagnostics_user_id'), 'diagnostics', ['user_id'], unique=False)
    op.create_index(op.f('ix_diagnostics_property_id'), 'diagnostics', ['property_id'], unique=False)

    # Append-only usage facts, at most one per diagnostic
    op.create_table('usage_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('supabase_user_id', sa.String(), nullable=False),
        sa.Column('resource_type', resource_type, nullable=False),
        sa.Column('diagnostic_id', sa.UUID(), nullable=False),
        sa.Column('tier_at_time', subscription_tier, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['diagnostic_id'], ['diagnostics.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('diagnostic_id')
    )
    op.create_index(op.f('ix_usage_events_id'), 'usage_events', ['id'], unique=False)
    op.create_index(op.f('ix_usage_events_supabase_user_id'), 'usage_events', ['supabase_user_id'], unique=False)
    op.create_index(op.f('ix_usage_events_created_at'), 'usage_events', ['created_at'], unique=False)

    op.create_table('usage_counters',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('supabase_user_id', sa.String(), nullable=False),
        sa.Column('resource_type', resource_type, nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('supabase_user_id', 'resource_type', 'period_start', name='uq_usage_counter_period')
    )
    op.create_index(op.f('ix_usage_counters_id'), 'usage_counters', ['id'], unique=False)
    op.create_index(op.f('ix_usage_counters_supabase_user_id'), 'usage_counters', ['supabase_user_id'], unique=False)

    op.create_table('properties',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_properties_id'), 'properties', ['id'], unique=False)
    op.create_index(op.f('ix_properties_user_id'), 'properties', ['user_id'], unique=False)

    op.create_table('payment_transactions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=False),
        sa.Column('supabase_user_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('tier_requested', subscription_tier, nullable=False),
        sa.Column('status', transaction_status, nullable=False),
        sa.Column('checkout_url', sa.String(length=1000), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_transactions_id'), 'payment_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_payment_transactions_reference'), 'payment_transactions', ['reference'], unique=True)
    op.create_index(op.f('ix_payment_transactions_supabase_user_id'), 'payment_transactions', ['supabase_user_id'], unique=False)

    # Stripe webhook events for idempotency
    op.create_table('stripe_webhooks',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('outcome', sa.String(length=50), nullable=True),
        sa.Column('webhook_timestamp', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stripe_webhooks_id'), 'stripe_webhooks', ['id'], unique=False)
    op.create_index(op.f('ix_stripe_webhooks_event_id'), 'stripe_webhooks', ['event_id'], unique=True)
    op.create_index(op.f('ix_stripe_webhooks_reference'), 'stripe_webhooks', ['reference'], unique=False)

    op.create_table('user_roles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('role', app_role, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_role')
    )
    op.create_index(op.f('ix_user_roles_id'), 'user_roles', ['id'], unique=False)
    op.create_index(op.f('ix_user_roles_user_id'), 'user_roles', ['user_id'], unique=False)

    op.create_table('admin_logs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('admin_id', sa.String(), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_admin_logs_id'), 'admin_logs', ['id'], unique=False)
    op.create_index(op.f('ix_admin_logs_admin_id'), 'admin_logs', ['admin_id'], unique=False)
    op.create_index(op.f('ix_admin_logs_created_at'), 'admin_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    # Drop tables in reverse order
    for table in (
        'admin_logs',
        'user_roles',
        'stripe_webhooks',
        'payment_transactions',
        'properties',
        'usage_counters',
        'usage_events',
        'diagnostics',
        'user_subscriptions',
    ):
        op.drop_table(table)

    # Drop enums
    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
