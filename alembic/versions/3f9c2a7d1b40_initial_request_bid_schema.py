"""initial_request_bid_schema

Revision ID: 3f9c2a7d1b40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

service_kind = postgresql.ENUM('ride', 'parcel', 'home_service', name='service_kind_enum', create_type=False)
request_status = postgresql.ENUM(
    'searching', 'bid_received', 'accepted', 'in_progress', 'completed', 'cancelled',
    name='request_status_enum', create_type=False,
)
bid_status = postgresql.ENUM('pending', 'accepted', 'rejected', name='bid_status_enum', create_type=False)
cancellation_actor = postgresql.ENUM('owner', 'provider', name='cancellation_actor_enum', create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (service_kind, request_status, bid_status, cancellation_actor):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(30), nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('push_token', sa.String(500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'provider_profiles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', service_kind, nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('is_online', sa.Boolean(), nullable=False),
        sa.Column('current_lat', sa.Float(), nullable=True),
        sa.Column('current_lng', sa.Float(), nullable=True),
        sa.Column('service_categories', sa.JSON(), nullable=False),
        sa.Column('vehicle_registration', sa.String(30), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'kind', name='uq_provider_profile_user_kind'),
    )
    op.create_index('ix_provider_profiles_user_id', 'provider_profiles', ['user_id'])

    op.create_table(
        'service_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('kind', service_kind, nullable=False),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('origin_lat', sa.Float(), nullable=True),
        sa.Column('origin_lng', sa.Float(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('final_price', sa.Float(), nullable=True),
        sa.Column('status', request_status, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_service_requests_kind', 'service_requests', ['kind'])
    op.create_index('ix_service_requests_owner_id', 'service_requests', ['owner_id'])
    op.create_index('ix_service_requests_provider_id', 'service_requests', ['provider_id'])
    op.create_index('ix_service_requests_status', 'service_requests', ['status'])
    op.create_index(
        'uq_service_requests_one_active_per_owner_kind', 'service_requests', ['owner_id', 'kind'],
        unique=True,
        postgresql_where=sa.text("status IN ('searching', 'bid_received', 'accepted', 'in_progress')"),
    )

    op.create_table(
        'bids',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'request_id', sa.Uuid(),
            sa.ForeignKey('service_requests.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('bid_price', sa.Float(), nullable=False),
        sa.Column('message', sa.String(1000), nullable=True),
        sa.Column('status', bid_status, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_bids_request_id', 'bids', ['request_id'])
    op.create_index('ix_bids_provider_id', 'bids', ['provider_id'])
    # At most one accepted bid per request, enforced by the database as well.
    op.create_index(
        'uq_bids_one_accepted_per_request', 'bids', ['request_id'],
        unique=True, postgresql_where=sa.text("status = 'accepted'"),
    )

    op.create_table(
        'cancellation_reasons',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'request_id', sa.Uuid(),
            sa.ForeignKey('service_requests.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('cancelled_by', cancellation_actor, nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=False),
        sa.Column('reason', sa.String(100), nullable=False),
        sa.Column('custom_reason', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_cancellation_reasons_request_id', 'cancellation_reasons', ['request_id'])

    op.create_table(
        'ratings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'request_id', sa.Uuid(),
            sa.ForeignKey('service_requests.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('rater_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('ratee_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('review', sa.String(1000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('request_id', 'rater_id', 'ratee_id', name='uq_rating_request_rater_ratee'),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_rating_range'),
    )
    op.create_index('ix_ratings_request_id', 'ratings', ['request_id'])
    op.create_index('ix_ratings_ratee_id', 'ratings', ['ratee_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'request_id', sa.Uuid(),
            sa.ForeignKey('service_requests.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('actor_type', sa.String(20), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_audit_logs_request_id', 'audit_logs', ['request_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('ratings')
    op.drop_table('cancellation_reasons')
    op.drop_table('bids')
    op.drop_table('service_requests')
    op.drop_table('provider_profiles')
    op.drop_table('users')
    bind = op.get_bind()
    for enum_type in (cancellation_actor, bid_status, request_status, service_kind):
        enum_type.drop(bind, checkfirst=True)
