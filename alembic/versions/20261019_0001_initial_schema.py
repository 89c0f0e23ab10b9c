"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # ACCOUNTS
    # ==========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('nickname', sa.String(100), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)
    op.create_index('ix_accounts_stripe_customer_id', 'accounts', ['stripe_customer_id'], unique=True)

    # ==========================================================================
    # CHANNELS
    # ==========================================================================
    op.create_table(
        'channels',
        sa.Column('id', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('link_method', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'channel_verifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('nonce', sa.String(64), nullable=False),
        sa.Column('channel_id', sa.String(50), nullable=False),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('user_handle', sa.String(255), nullable=True),
        sa.Column('chat_metadata', postgresql.JSONB(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['channel_id'], ['channels.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_channel_verifications_nonce', 'channel_verifications', ['nonce'], unique=True)
    op.create_index('ix_channel_verifications_user_handle', 'channel_verifications', ['user_handle'])
    op.create_index('ix_channel_verifications_expires_at', 'channel_verifications', ['expires_at'])

    op.create_table(
        'user_channels',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('channel_id', sa.String(50), nullable=False),
        sa.Column('link', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['channel_id'], ['channels.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'channel_id', name='uq_user_channels_account_channel'),
        sa.UniqueConstraint('link', 'channel_id', name='uq_user_channels_link_channel'),
    )
    op.create_index('ix_user_channels_account_id', 'user_channels', ['account_id'])

    # ==========================================================================
    # USAGE
    # ==========================================================================
    op.create_table(
        'usage_records',
        sa.Column('user_channel_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tokens_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requests_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_channel_id'], ['user_channels.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_channel_id')
    )

    # ==========================================================================
    # STRIPE MIRROR
    # ==========================================================================
    op.create_table(
        'stripe_products',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'stripe_prices',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('product_id', sa.String(255), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('unit_amount', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('recurring_interval', sa.String(20), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['stripe_products.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stripe_prices_product_id', 'stripe_prices', ['product_id'])

    op.create_table(
        'stripe_subscriptions',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=True),
        sa.Column('created', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stripe_subscriptions_customer_id', 'stripe_subscriptions', ['customer_id'])

    op.create_table(
        'stripe_subscription_items',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('subscription_id', sa.String(255), nullable=False),
        sa.Column('price_id', sa.String(255), nullable=True),
        sa.Column('created', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['subscription_id'], ['stripe_subscriptions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['price_id'], ['stripe_prices.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stripe_subscription_items_subscription_id', 'stripe_subscription_items', ['subscription_id'])

    # ==========================================================================
    # TIER FEATURES
    # ==========================================================================
    op.create_table(
        'tier_features',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('tokens_limit', sa.Integer(), nullable=True),
        sa.Column('requests_limit', sa.Integer(), nullable=True),
        sa.Column('history_limit', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['id'], ['stripe_products.id'], onupdate='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('tier_features')
    op.drop_table('stripe_subscription_items')
    op.drop_table('stripe_subscriptions')
    op.drop_table('stripe_prices')
    op.drop_table('stripe_products')
    op.drop_table('usage_records')
    op.drop_table('user_channels')
    op.drop_table('channel_verifications')
    op.drop_table('channels')
    op.drop_table('accounts')
