"""marketplace_core_schema

Revision ID: a1c3e5f70921
Revises:
Create Date: 2026-10-19 09:12:44.108213

Production-safe migration: only creates tables that do not exist yet.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70921'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=nullable)


def upgrade() -> None:
    if not table_exists('actors'):
        op.create_table('actors',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('role', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            _timestamp('created_at', nullable=True),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_actors'))
        )
        op.create_index(op.f('ix_actors_id'), 'actors', ['id'], unique=False)
        op.create_index(op.f('ix_actors_email'), 'actors', ['email'], unique=True)
        op.create_index(op.f('ix_actors_role'), 'actors', ['role'], unique=False)

    if not table_exists('worker_profiles'):
        op.create_table('worker_profiles',
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('first_name', sa.String(), nullable=True),
            sa.Column('last_name', sa.String(), nullable=True),
            sa.Column('experience_years', sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_worker_profiles_actor_id_actors')),
            sa.PrimaryKeyConstraint('actor_id', name=op.f('pk_worker_profiles'))
        )

    if not table_exists('diplomas'):
        op.create_table('diplomas',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('worker_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('verification_status', sa.String(), nullable=False),
            _timestamp('created_at', nullable=True),
            sa.ForeignKeyConstraint(['worker_id'], ['worker_profiles.actor_id'], name=op.f('fk_diplomas_worker_id_worker_profiles')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_diplomas'))
        )
        op.create_index(op.f('ix_diplomas_id'), 'diplomas', ['id'], unique=False)
        op.create_index(op.f('ix_diplomas_worker_id'), 'diplomas', ['worker_id'], unique=False)

    if not table_exists('establishment_profiles'):
        op.create_table('establishment_profiles',
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_establishment_profiles_actor_id_actors')),
            sa.PrimaryKeyConstraint('actor_id', name=op.f('pk_establishment_profiles'))
        )

    if not table_exists('subscription_plans'):
        op.create_table('subscription_plans',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('code', sa.String(), nullable=False),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('target_role', sa.String(), nullable=False),
            sa.Column('limits', sa.JSON(), nullable=False),
            sa.Column('monetization_mode', sa.String(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_subscription_plans')),
            sa.UniqueConstraint('code', 'target_role', name='uq_plan_code_role')
        )
        op.create_index(op.f('ix_subscription_plans_id'), 'subscription_plans', ['id'], unique=False)

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('plan_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
            _timestamp('created_at'),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_subscriptions_actor_id_actors')),
            sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id'], name=op.f('fk_subscriptions_plan_id_subscription_plans')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_subscriptions'))
        )
        op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
        op.create_index(op.f('ix_subscriptions_actor_id'), 'subscriptions', ['actor_id'], unique=False)
        op.create_index('idx_subscription_actor_status', 'subscriptions', ['actor_id', 'status'], unique=False)

    if not table_exists('privilege_overrides'):
        op.create_table('privilege_overrides',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('category', sa.String(), nullable=False),
            sa.Column('key', sa.String(), nullable=False),
            sa.Column('value', sa.Text(), nullable=False),
            sa.Column('updated_by', sa.Integer(), nullable=True),
            _timestamp('updated_at'),
            sa.ForeignKeyConstraint(['updated_by'], ['actors.id'], name=op.f('fk_privilege_overrides_updated_by_actors')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_privilege_overrides')),
            sa.UniqueConstraint('category', 'key', name='uq_privilege_category_key')
        )
        op.create_index(op.f('ix_privilege_overrides_id'), 'privilege_overrides', ['id'], unique=False)

    if not table_exists('quota_counters'):
        op.create_table('quota_counters',
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('resource_kind', sa.String(), nullable=False),
            sa.Column('active_count', sa.Integer(), nullable=False),
            _timestamp('updated_at'),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_quota_counters_actor_id_actors')),
            sa.PrimaryKeyConstraint('actor_id', 'resource_kind', name=op.f('pk_quota_counters'))
        )

    if not table_exists('quota_reservations'):
        op.create_table('quota_reservations',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('resource_kind', sa.String(), nullable=False),
            sa.Column('resource_id', sa.String(), nullable=False),
            _timestamp('created_at'),
            sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_quota_reservations_actor_id_actors')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_quota_reservations')),
            sa.UniqueConstraint('resource_kind', 'resource_id', name='uq_reservation_resource')
        )
        op.create_index(op.f('ix_quota_reservations_id'), 'quota_reservations', ['id'], unique=False)
        op.create_index('idx_reservation_actor_kind', 'quota_reservations', ['actor_id', 'resource_kind'], unique=False)

    if not table_exists('credit_balances'):
        op.create_table('credit_balances',
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('balance', sa.Integer(), nullable=False),
            _timestamp('updated_at'),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_credit_balances_actor_id_actors')),
            sa.PrimaryKeyConstraint('actor_id', name=op.f('pk_credit_balances'))
        )

    if not table_exists('commission_charges'):
        op.create_table('commission_charges',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('actor_id', sa.Integer(), nullable=False),
            sa.Column('resource_kind', sa.String(), nullable=False),
            sa.Column('resource_id', sa.String(), nullable=False),
            sa.Column('rate', sa.Float(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            _timestamp('created_at'),
            sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(['actor_id'], ['actors.id'], name=op.f('fk_commission_charges_actor_id_actors')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_commission_charges')),
            sa.UniqueConstraint('resource_kind', 'resource_id', name='uq_commission_resource')
        )
        op.create_index(op.f('ix_commission_charges_id'), 'commission_charges', ['id'], unique=False)
        op.create_index(op.f('ix_commission_charges_actor_id'), 'commission_charges', ['actor_id'], unique=False)

    if not table_exists('verification_records'):
        op.create_table('verification_records',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('entity_type', sa.String(), nullable=False),
            sa.Column('entity_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('reviewer_id', sa.Integer(), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('reject_reason', sa.Text(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False),
            _timestamp('created_at'),
            _timestamp('updated_at'),
            sa.ForeignKeyConstraint(['reviewer_id'], ['actors.id'], name=op.f('fk_verification_records_reviewer_id_actors')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_verification_records'))
        )
        op.create_index(op.f('ix_verification_records_id'), 'verification_records', ['id'], unique=False)
        op.create_index('idx_verification_entity', 'verification_records', ['entity_type', 'entity_id'], unique=False)

    if not table_exists('missions'):
        op.create_table('missions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('establishment_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('is_urgent', sa.Boolean(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            _timestamp('created_at'),
            sa.ForeignKeyConstraint(['establishment_id'], ['actors.id'], name=op.f('fk_missions_establishment_id_actors')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_missions'))
        )
        op.create_index(op.f('ix_missions_id'), 'missions', ['id'], unique=False)
        op.create_index(op.f('ix_missions_establishment_id'), 'missions', ['establishment_id'], unique=False)
        op.create_index('idx_mission_establishment_status', 'missions', ['establishment_id', 'status'], unique=False)

    if not table_exists('applications'):
        op.create_table('applications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('worker_id', sa.Integer(), nullable=False),
            sa.Column('mission_id', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            _timestamp('created_at'),
            sa.ForeignKeyConstraint(['worker_id'], ['actors.id'], name=op.f('fk_applications_worker_id_actors')),
            sa.ForeignKeyConstraint(['mission_id'], ['missions.id'], name=op.f('fk_applications_mission_id_missions')),
            sa.PrimaryKeyConstraint('id', name=op.f('pk_applications')),
            sa.UniqueConstraint('worker_id', 'mission_id', name='uq_application_worker_mission')
        )
        op.create_index(op.f('ix_applications_id'), 'applications', ['id'], unique=False)
        op.create_index(op.f('ix_applications_worker_id'), 'applications', ['worker_id'], unique=False)
        op.create_index(op.f('ix_applications_mission_id'), 'applications', ['mission_id'], unique=False)


def downgrade() -> None:
    for table_name in (
        'applications',
        'missions',
        'verification_records',
        'commission_charges',
        'credit_balances',
        'quota_reservations',
        'quota_counters',
        'privilege_overrides',
        'subscriptions',
        'subscription_plans',
        'establishment_profiles',
        'diplomas',
        'worker_profiles',
        'actors',
    ):
        if table_exists(table_name):
            op.drop_table(table_name)
