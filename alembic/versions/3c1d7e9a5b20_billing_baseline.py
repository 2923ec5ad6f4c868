"""billing_baseline

Revision ID: 3c1d7e9a5b20
Revises: 
Create Date: 2026-10-18 09:12:44.118204

Production-safe migration: the users and user_credits tables may already
exist (created by Supabase); only missing tables and columns are added.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '3c1d7e9a5b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def column_exists(table_name: str, column_name: str) -> bool:
    """Check if a column exists on a table."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return column_name in [column["name"] for column in inspector.get_columns(table_name)]


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('full_name', sa.String(), nullable=True),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('offers', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('offer_plan_buy', sa.String(), nullable=True),
            sa.Column('offer_price_buy', sa.Float(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    if not table_exists('user_credits'):
        op.create_table('user_credits',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(), nullable=False, server_default='active'),
            sa.Column('plan_type', sa.String(), nullable=False),
            sa.Column('membership', sa.String(), nullable=True),
            sa.Column('subscription_id', sa.String(), nullable=True),
            sa.Column('payment_provider', sa.String(), nullable=True),
            sa.Column('subscription_status_canceled', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('polar_customer_id', sa.String(), nullable=True),
            sa.Column('polar_checkout_id', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_user_credits_user_status', 'user_credits', ['user_id', 'status'], unique=False)
        op.create_index(op.f('ix_user_credits_id'), 'user_credits', ['id'], unique=False)
        op.create_index(op.f('ix_user_credits_user_id'), 'user_credits', ['user_id'], unique=False)
        op.create_index(op.f('ix_user_credits_subscription_id'), 'user_credits', ['subscription_id'], unique=False)
        op.create_index(op.f('ix_user_credits_polar_checkout_id'), 'user_credits', ['polar_checkout_id'], unique=False)
    else:
        # Older deployments predate the Polar integration
        with op.batch_alter_table('user_credits') as batch_op:
            if not column_exists('user_credits', 'payment_provider'):
                batch_op.add_column(sa.Column('payment_provider', sa.String(), nullable=True))
            if not column_exists('user_credits', 'polar_customer_id'):
                batch_op.add_column(sa.Column('polar_customer_id', sa.String(), nullable=True))
            if not column_exists('user_credits', 'polar_checkout_id'):
                batch_op.add_column(sa.Column('polar_checkout_id', sa.String(), nullable=True))
            if not column_exists('user_credits', 'updated_at'):
                batch_op.add_column(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True))

    if not table_exists('payments'):
        op.create_table('payments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('price', sa.Float(), nullable=True),
            sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
            sa.Column('payment_status', sa.String(), nullable=False, server_default=''),
            sa.Column('payer_id', sa.String(), nullable=True),
            sa.Column('payer_name', sa.String(), nullable=True),
            sa.Column('payer_address', sa.String(), nullable=True),
            sa.Column('payer_email', sa.String(), nullable=True),
            sa.Column('external_reference', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_payments_id'), 'payments', ['id'], unique=False)
        op.create_index(op.f('ix_payments_user_id'), 'payments', ['user_id'], unique=False)
        op.create_index(op.f('ix_payments_external_reference'), 'payments', ['external_reference'], unique=True)

    if not table_exists('notification_outbox'):
        op.create_table('notification_outbox',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('kind', sa.String(), nullable=False),
            sa.Column('recipient', sa.String(), nullable=False),
            sa.Column('payload', sa.Text(), nullable=False),
            sa.Column('status', sa.String(), nullable=False, server_default='pending'),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('next_attempt_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_outbox_status_next_attempt', 'notification_outbox', ['status', 'next_attempt_at'], unique=False)
        op.create_index(op.f('ix_notification_outbox_id'), 'notification_outbox', ['id'], unique=False)


def downgrade() -> None:
    """
    Drops only the tables this service owns. users and user_credits are
    shared with the web app and are left in place.
    """
    if table_exists('notification_outbox'):
        op.drop_index('idx_outbox_status_next_attempt', table_name='notification_outbox')
        op.drop_index(op.f('ix_notification_outbox_id'), table_name='notification_outbox')
        op.drop_table('notification_outbox')

    if table_exists('payments'):
        op.drop_index(op.f('ix_payments_external_reference'), table_name='payments')
        op.drop_index(op.f('ix_payments_user_id'), table_name='payments')
        op.drop_index(op.f('ix_payments_id'), table_name='payments')
        op.drop_table('payments')
