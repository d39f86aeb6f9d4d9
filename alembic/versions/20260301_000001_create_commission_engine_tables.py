"""Create commission engine tables

Revision ID: 20260301_000001
Revises:
Create Date: 2026-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20260301_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('referred_by_id', sa.Integer(), nullable=True),
        sa.Column(
            'membership_tier', sa.String(length=8),
            nullable=False, server_default='bronze'
        ),
        sa.Column(
            'tier_locked_manually', sa.Boolean(),
            nullable=False, server_default=sa.false()
        ),
        sa.Column(
            'total_personal_deposit', sa.DECIMAL(precision=18, scale=8),
            nullable=False, server_default='0'
        ),
        sa.Column(
            'total_earnings', sa.DECIMAL(precision=18, scale=8),
            nullable=False, server_default='0'
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'total_personal_deposit >= 0',
            name='ck_users_check_user_personal_deposit_non_negative'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_users')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index(
        'ix_users_referred_by_id', 'users', ['referred_by_id'], unique=False
    )
    op.create_index(
        'ix_users_membership_tier', 'users', ['membership_tier'], unique=False
    )

    op.create_table(
        'commission_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('depositor_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column(
            'deposit_amount', sa.DECIMAL(precision=18, scale=8), nullable=False
        ),
        sa.Column('rate', sa.DECIMAL(precision=7, scale=4), nullable=False),
        sa.Column(
            'commission_amount', sa.DECIMAL(precision=18, scale=8),
            nullable=False
        ),
        sa.Column('source_kind', sa.String(length=13), nullable=False),
        sa.Column('source_event_id', sa.String(length=255), nullable=False),
        sa.Column(
            'event_confirmed_at', sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column(
            'status', sa.String(length=7),
            nullable=False, server_default='pending'
        ),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('credited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_commission_records'),
        sa.UniqueConstraint(
            'referrer_id', 'depositor_id', 'level', 'source_event_id',
            name='uq_commission_records_dedup_key'
        )
    )
    op.create_index(
        'idx_commission_records_referrer_status', 'commission_records',
        ['referrer_id', 'status'], unique=False
    )
    op.create_index(
        'idx_commission_records_depositor', 'commission_records',
        ['depositor_id', 'created_at'], unique=False
    )
    op.create_index(
        'idx_commission_records_source_event', 'commission_records',
        ['source_event_id'], unique=False
    )
    op.create_index(
        'ix_commission_records_source_kind', 'commission_records',
        ['source_kind'], unique=False
    )
    op.create_index(
        'ix_commission_records_status', 'commission_records',
        ['status'], unique=False
    )

    op.create_table(
        'deposit_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(precision=18, scale=8), nullable=False),
        sa.Column('source_kind', sa.String(length=13), nullable=False),
        sa.Column('source_event_id', sa.String(length=255), nullable=False),
        sa.Column(
            'status', sa.String(length=9),
            nullable=False, server_default='confirmed'
        ),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'amount > 0',
            name='ck_deposit_transactions_check_deposit_transaction_amount_positive'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_deposit_transactions'),
        sa.UniqueConstraint(
            'source_event_id', name='uq_deposit_transactions_source_event_id'
        )
    )
    op.create_index(
        'ix_deposit_transactions_user_id', 'deposit_transactions',
        ['user_id'], unique=False
    )
    op.create_index(
        'ix_deposit_transactions_status', 'deposit_transactions',
        ['status'], unique=False
    )

    op.create_table(
        'tier_rate_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tier', sa.String(length=20), nullable=False),
        sa.Column('level1_rate', sa.DECIMAL(precision=7, scale=4), nullable=False),
        sa.Column('level2_rate', sa.DECIMAL(precision=7, scale=4), nullable=False),
        sa.Column('level3_rate', sa.DECIMAL(precision=7, scale=4), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_tier_rate_configs')
    )
    op.create_index(
        'ix_tier_rate_configs_tier', 'tier_rate_configs', ['tier'], unique=True
    )

    op.create_table(
        'commission_audit_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(length=18), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('operator', sa.String(length=255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column(
            'payload', sa.JSON().with_variant(
                postgresql.JSONB(), 'postgresql'
            ),
            nullable=False
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_commission_audit_log')
    )
    op.create_index(
        'idx_commission_audit_user', 'commission_audit_log',
        ['user_id', 'created_at'], unique=False
    )
    op.create_index(
        'idx_commission_audit_record', 'commission_audit_log',
        ['record_id'], unique=False
    )
    op.create_index(
        'ix_commission_audit_log_action', 'commission_audit_log',
        ['action'], unique=False
    )

    op.create_table(
        'reconciliation_cursors',
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('last_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('name', name='pk_reconciliation_cursors')
    )


def downgrade() -> None:
    op.drop_table('reconciliation_cursors')

    op.drop_index(
        'ix_commission_audit_log_action', table_name='commission_audit_log'
    )
    op.drop_index('idx_commission_audit_record', table_name='commission_audit_log')
    op.drop_index('idx_commission_audit_user', table_name='commission_audit_log')
    op.drop_table('commission_audit_log')

    op.drop_index('ix_tier_rate_configs_tier', table_name='tier_rate_configs')
    op.drop_table('tier_rate_configs')

    op.drop_index(
        'ix_deposit_transactions_status', table_name='deposit_transactions'
    )
    op.drop_index(
        'ix_deposit_transactions_user_id', table_name='deposit_transactions'
    )
    op.drop_table('deposit_transactions')

    op.drop_index(
        'ix_commission_records_status', table_name='commission_records'
    )
    op.drop_index(
        'ix_commission_records_source_kind', table_name='commission_records'
    )
    op.drop_index(
        'idx_commission_records_source_event', table_name='commission_records'
    )
    op.drop_index(
        'idx_commission_records_depositor', table_name='commission_records'
    )
    op.drop_index(
        'idx_commission_records_referrer_status', table_name='commission_records'
    )
    op.drop_table('commission_records')

    op.drop_index('ix_users_membership_tier', table_name='users')
    op.drop_index('ix_users_referred_by_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
