"""Initial schema: profiles, payment history, subscriptions, webhook events

Revision ID: 5c2e81a4b7d0
Revises: 
Create Date: 2026-10-19 09:00:12.418233

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5c2e81a4b7d0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables for the Pulse backend."""
    # Enable UUID extension
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # 1. Profiles table
    op.create_table(
        'profiles',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('external_customer_id', sa.String(), nullable=True),
        sa.Column('subscription_active', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('whatsapp_instance_token', sa.String(), nullable=True),
        sa.Column('whatsapp_instance_status', sa.String(length=32), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_id'), 'profiles', ['id'])
    op.create_index(op.f('ix_profiles_external_customer_id'), 'profiles', ['external_customer_id'], unique=True)
    op.create_index(op.f('ix_profiles_created_at'), 'profiles', ['created_at'])

    # 2. Payment history table
    op.create_table(
        'payment_history',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False, server_default='asaas'),
        sa.Column('customer_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('invoice_url', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'external_id', name='uq_payment_history_provider_external_id')
    )
    op.create_index(op.f('ix_payment_history_id'), 'payment_history', ['id'])
    op.create_index(op.f('ix_payment_history_external_id'), 'payment_history', ['external_id'])
    op.create_index(op.f('ix_payment_history_customer_id'), 'payment_history', ['customer_id'])
    op.create_index(op.f('ix_payment_history_status'), 'payment_history', ['status'])
    op.create_index(op.f('ix_payment_history_subscription_id'), 'payment_history', ['subscription_id'])
    op.create_index(op.f('ix_payment_history_created_at'), 'payment_history', ['created_at'])

    # 3. Subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False, server_default='asaas'),
        sa.Column('customer_id', sa.String(), nullable=False),
        sa.Column('plan_value', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('billing_type', sa.String(length=32), nullable=False),
        sa.Column('cycle', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('next_billing_date', sa.Date(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'external_id', name='uq_subscriptions_provider_external_id')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'])
    op.create_index(op.f('ix_subscriptions_external_id'), 'subscriptions', ['external_id'])
    op.create_index(op.f('ix_subscriptions_customer_id'), 'subscriptions', ['customer_id'])
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'])
    op.create_index(op.f('ix_subscriptions_created_at'), 'subscriptions', ['created_at'])

    # 4. Webhook events table (audit of inbound notifications)
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('external_event_id', sa.String(), nullable=True),
        sa.Column('dedup_key', sa.String(), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processing_result', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedup_key')
    )
    op.create_index(op.f('ix_webhook_events_id'), 'webhook_events', ['id'])
    op.create_index(op.f('ix_webhook_events_provider'), 'webhook_events', ['provider'])
    op.create_index(op.f('ix_webhook_events_event_type'), 'webhook_events', ['event_type'])
    op.create_index(op.f('ix_webhook_events_processed'), 'webhook_events', ['processed'])
    op.create_index(op.f('ix_webhook_events_created_at'), 'webhook_events', ['created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('webhook_events')
    op.drop_table('subscriptions')
    op.drop_table('payment_history')
    op.drop_table('profiles')
