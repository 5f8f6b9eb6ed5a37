"""Create checkout tables

Revision ID: c7d1e2f3a4b5
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'c7d1e2f3a4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

membership_status = sa.Enum('active', 'inactive', name='membership_status')
contract_status = sa.Enum('active', 'inactive', name='contract_status')
account_type = sa.Enum('B2C', 'B2B', name='account_type')
plan_type = sa.Enum('B2C', 'B2B', name='plan_type')
subscription_status = sa.Enum('pending_payment', 'active', 'canceled', name='subscription_status')
payment_method = sa.Enum('credit_card', 'bank_slip', 'pix', name='payment_method')
event_status = sa.Enum('PROCESSED', 'FAILED', 'IGNORED', name='eventstatus')


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cpf', sa.String(14), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_profiles_cpf'), 'profiles', ['cpf'], unique=True)
    op.create_index(op.f('ix_profiles_email'), 'profiles', ['email'], unique=False)

    op.create_table(
        'companies',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'company_members',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('company_id', sa.String(36), nullable=False),
        sa.Column('status', membership_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_company_members_user_id'), 'company_members', ['user_id'], unique=False)
    op.create_index(op.f('ix_company_members_company_id'), 'company_members', ['company_id'], unique=False)

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('type', account_type, nullable=False),
        sa.Column('profile_id', sa.String(36), nullable=True),
        sa.Column('company_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_accounts_profile_id'), 'accounts', ['profile_id'], unique=False)
    op.create_index(op.f('ix_accounts_company_id'), 'accounts', ['company_id'], unique=False)

    op.create_table(
        'plans',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=True),
        sa.Column('interval_type', sa.String(20), nullable=True),
        sa.Column('iugu_plan_identifier', sa.String(255), nullable=False),
        sa.Column('iugu_plan_id', sa.String(64), nullable=True),
        sa.Column('type', plan_type, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_plans_iugu_plan_identifier'), 'plans', ['iugu_plan_identifier'], unique=False)
    op.create_index(
        'uq_plans_active_identifier', 'plans', ['iugu_plan_identifier'],
        unique=True, postgresql_where=sa.text('is_active'),
    )

    op.create_table(
        'contracts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('account_id', sa.String(36), nullable=False),
        sa.Column('status', contract_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_contracts_account_id'), 'contracts', ['account_id'], unique=False)

    op.create_table(
        'contract_plans',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('contract_id', sa.String(36), nullable=False),
        sa.Column('plan_id', sa.String(36), nullable=False),
        sa.ForeignKeyConstraint(['contract_id'], ['contracts.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('contract_id', 'plan_id', name='uq_contract_plan'),
    )
    op.create_index(op.f('ix_contract_plans_contract_id'), 'contract_plans', ['contract_id'], unique=False)
    op.create_index(op.f('ix_contract_plans_plan_id'), 'contract_plans', ['plan_id'], unique=False)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('profile_id', sa.String(36), nullable=False),
        sa.Column('account_id', sa.String(36), nullable=False),
        sa.Column('plan_id', sa.String(36), nullable=False),
        sa.Column('status', subscription_status, nullable=False),
        sa.Column('iugu_subscription_id', sa.String(64), nullable=True),
        sa.Column('iugu_customer_id', sa.String(64), nullable=True),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_subscriptions_profile_id'), 'subscriptions', ['profile_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_account_id'), 'subscriptions', ['account_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_plan_id'), 'subscriptions', ['plan_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)
    op.create_index(op.f('ix_subscriptions_created_at'), 'subscriptions', ['created_at'], unique=False)
    op.create_index(
        op.f('ix_subscriptions_iugu_subscription_id'), 'subscriptions', ['iugu_subscription_id'], unique=True,
    )

    op.create_table(
        'entitlements',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('profile_id', sa.String(36), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('source_type', sa.String(50), nullable=False),
        sa.Column('source_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_entitlements_profile_id'), 'entitlements', ['profile_id'], unique=False)
    op.create_index(op.f('ix_entitlements_source_id'), 'entitlements', ['source_id'], unique=False)
    op.create_index(
        'uq_entitlements_active_source', 'entitlements', ['profile_id', 'source_id'],
        unique=True, postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('subject_id', sa.String(36), nullable=True),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('status', event_status, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_events_id'), 'events', ['id'], unique=False)
    op.create_index(op.f('ix_events_type'), 'events', ['type'], unique=False)
    op.create_index(op.f('ix_events_subject_id'), 'events', ['subject_id'], unique=False)
    op.create_index(op.f('ix_events_created_at'), 'events', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('events')
    op.drop_index('uq_entitlements_active_source', table_name='entitlements')
    op.drop_table('entitlements')
    op.drop_table('subscriptions')
    op.drop_table('contract_plans')
    op.drop_table('contracts')
    op.drop_index('uq_plans_active_identifier', table_name='plans')
    op.drop_table('plans')
    op.drop_table('accounts')
    op.drop_table('company_members')
    op.drop_table('companies')
    op.drop_table('profiles')
    for enum_type in (event_status, payment_method, subscription_status, plan_type,
                      account_type, contract_status, membership_status):
        enum_type.drop(op.get_bind(), checkfirst=True)
