"""Create subscription, token ledger, content history and stripe event tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    if 'user_subscriptions' not in existing_tables:
        op.create_table(
            'user_subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('subscription_tier', sa.String(length=20), nullable=False, server_default='FREE'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
            sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
            sa.Column('subscription_start_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('subscription_end_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_user_subscriptions_id', 'user_subscriptions', ['id'])
        op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'], unique=True)
        op.create_index('ix_user_subscriptions_stripe_customer_id', 'user_subscriptions', ['stripe_customer_id'])
        op.create_index('ix_user_subscriptions_stripe_subscription_id', 'user_subscriptions', ['stripe_subscription_id'], unique=True)

    if 'token_usage' not in existing_tables:
        op.create_table(
            'token_usage',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('tokens_used', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('tokens_remaining', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('reset_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.CheckConstraint('tokens_remaining >= 0', name='ck_token_usage_remaining_non_negative'),
            sa.CheckConstraint('tokens_used >= 0', name='ck_token_usage_used_non_negative')
        )
        op.create_index('ix_token_usage_id', 'token_usage', ['id'])
        op.create_index('ix_token_usage_user_id', 'token_usage', ['user_id'], unique=True)

    if 'token_transactions' not in existing_tables:
        op.create_table(
            'token_transactions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('tokens_used', sa.Integer(), nullable=False),
            sa.Column('transaction_type', sa.String(length=50), nullable=False),
            sa.Column('content_id', sa.String(length=36), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_token_transactions_id', 'token_transactions', ['id'])
        op.create_index('ix_token_transactions_user_id', 'token_transactions', ['user_id'])
        op.create_index('ix_token_transactions_created_at', 'token_transactions', ['created_at'])
        op.create_index('ix_token_transactions_user_created', 'token_transactions', ['user_id', 'created_at'])

    if 'content_history' not in existing_tables:
        op.create_table(
            'content_history',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('original_content', sa.Text(), nullable=False),
            sa.Column('repurposed_content', sa.Text(), nullable=False),
            sa.Column('output_format', sa.String(length=50), nullable=False),
            sa.Column('tone', sa.String(length=50), nullable=True),
            sa.Column('target_audience', sa.String(length=100), nullable=True),
            sa.Column('content_length', sa.String(length=20), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
            sa.Column('image_url', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_content_history_user_id', 'content_history', ['user_id'])
        op.create_index('ix_content_history_user_created', 'content_history', ['user_id', 'created_at'])

    if 'stripe_events' not in existing_tables:
        op.create_table(
            'stripe_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
            sa.Column('event_type', sa.String(length=100), nullable=False),
            sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_stripe_events_id', 'stripe_events', ['id'])
        op.create_index('ix_stripe_events_stripe_event_id', 'stripe_events', ['stripe_event_id'], unique=True)
        op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])


def downgrade() -> None:
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    for table in ('stripe_events', 'content_history', 'token_transactions', 'token_usage', 'user_subscriptions'):
        if table in existing_tables:
            op.drop_table(table)
