"""create_credit_ledger_tables

Revision ID: 3c1d9e7a2b40
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision = '3c1d9e7a2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'usage',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('one_time_credits_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('subscription_credits_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_jsonb', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('one_time_credits_balance >= 0', name='ck_usage_one_time_non_negative'),
        sa.CheckConstraint('subscription_credits_balance >= 0', name='ck_usage_subscription_non_negative'),
    )
    op.create_index('ix_usage_user_id', 'usage', ['user_id'], unique=True)

    op.create_table(
        'credit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('one_time_balance_after', sa.Integer(), nullable=False),
        sa.Column('subscription_balance_after', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),  # Store as string, values checked in the ORM
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('related_order_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_credit_logs_user_id', 'credit_logs', ['user_id'])
    op.create_index('ix_credit_logs_related_order_id', 'credit_logs', ['related_order_id'])
    op.create_index('ix_credit_logs_user_id_created_at', 'credit_logs', ['user_id', 'created_at'])

    op.create_table(
        'pricing_plans',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('recurring_interval', sa.String(16), nullable=True),
        sa.Column('benefits_jsonb', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('plan_id', sa.String(64), nullable=True),
        sa.Column('order_type', sa.String(32), nullable=False),
        sa.Column('amount_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(8), nullable=False, server_default='usd'),
        sa.Column('subscription_id', sa.String(128), nullable=True),
        sa.Column('provider_payment_intent_id', sa.String(128), nullable=True),
        sa.Column('provider_charge_id', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_provider_payment_intent_id', 'orders', ['provider_payment_intent_id'])
    op.create_index('ix_orders_provider_charge_id', 'orders', ['provider_charge_id'])


def downgrade():
    op.drop_index('ix_orders_provider_charge_id', 'orders')
    op.drop_index('ix_orders_provider_payment_intent_id', 'orders')
    op.drop_index('ix_orders_user_id', 'orders')
    op.drop_table('orders')

    op.drop_table('pricing_plans')

    op.drop_index('ix_credit_logs_user_id_created_at', 'credit_logs')
    op.drop_index('ix_credit_logs_related_order_id', 'credit_logs')
    op.drop_index('ix_credit_logs_user_id', 'credit_logs')
    op.drop_table('credit_logs')

    op.drop_index('ix_usage_user_id', 'usage')
    op.drop_table('usage')
