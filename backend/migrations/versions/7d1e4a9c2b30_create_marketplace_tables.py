"""create_marketplace_tables

Revision ID: 7d1e4a9c2b30
Revises:
Create Date: 2026-10-19 10:12:44.208311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7d1e4a9c2b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('user', 'provider', 'admin', name='user_role')
request_type = sa.Enum('fixed', 'bidding', name='request_type')
request_status = sa.Enum(
    'open', 'bidding', 'assigned', 'in-progress', 'completed', 'cancelled',
    name='request_status',
)
bid_status = sa.Enum('pending', 'accepted', 'rejected', name='bid_status')
booking_status = sa.Enum(
    'confirmed', 'in-progress', 'completed', 'cancelled', 'disputed', 'payment-released',
    name='booking_status',
)
transaction_type = sa.Enum('credit', 'debit', name='transaction_type')
transaction_status = sa.Enum('completed', 'withdrawn', name='transaction_status')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('icon', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_categories_name', 'categories', ['name'], unique=True)

    op.create_table(
        'providers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=True),
        sa.Column('area', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True, comment='Advertised base price'),
        sa.Column('rating', sa.Numeric(precision=3, scale=2), nullable=True),
        sa.Column('image', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_providers_category_id', 'providers', ['category_id'])
    op.create_index('ix_providers_area', 'providers', ['area'])

    op.create_table(
        'service_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('user_name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('category_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('request_type', request_type, nullable=False),
        sa.Column('fixed_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('min_bid_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('max_bid_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('bidding_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', request_status, nullable=False),
        sa.Column('assigned_provider_id', sa.Uuid(), nullable=True),
        sa.Column('assigned_provider_name', sa.String(length=255), nullable=True),
        sa.Column('final_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('accepted_bid_id', sa.Uuid(), nullable=True, comment='Winning bid; null for fixed-price assignment'),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(request_type = 'fixed' AND fixed_amount IS NOT NULL "
            "AND min_bid_amount IS NULL AND max_bid_amount IS NULL AND bidding_end_date IS NULL) "
            "OR (request_type = 'bidding' AND fixed_amount IS NULL)",
            name='service_request_pricing_matches_type',
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['assigned_provider_id'], ['providers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_service_requests_user_id', 'service_requests', ['user_id'])
    op.create_index('ix_service_requests_category_id', 'service_requests', ['category_id'])
    op.create_index('ix_service_requests_request_type', 'service_requests', ['request_type'])
    op.create_index('ix_service_requests_status', 'service_requests', ['status'])
    op.create_index('ix_service_requests_assigned_provider_id', 'service_requests', ['assigned_provider_id'])
    op.create_index('ix_service_requests_created_at', 'service_requests', ['created_at'])

    op.create_table(
        'bids',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('service_request_id', sa.Uuid(), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('provider_name', sa.String(length=255), nullable=False),
        sa.Column('proposed_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('estimated_time', sa.String(length=100), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('status', bid_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('service_request_id', 'provider_id', name='bid_one_per_provider'),
    )
    op.create_index('ix_bids_service_request_id', 'bids', ['service_request_id'])
    op.create_index('ix_bids_provider_id', 'bids', ['provider_id'])
    op.create_index('ix_bids_status', 'bids', ['status'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('request_id', sa.Uuid(), nullable=False),
        sa.Column('bid_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('user_name', sa.String(length=255), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('provider_name', sa.String(length=255), nullable=False),
        sa.Column('agreed_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('completed_by_provider', sa.Boolean(), nullable=False),
        sa.Column('completed_by_user', sa.Boolean(), nullable=False),
        sa.Column('user_rating', sa.Integer(), nullable=True),
        sa.Column('user_review', sa.Text(), nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'user_rating IS NULL OR (user_rating >= 1 AND user_rating <= 5)',
            name='booking_rating_range',
        ),
        sa.CheckConstraint(
            'NOT completed_by_user OR completed_by_provider',
            name='booking_provider_completes_first',
        ),
        sa.ForeignKeyConstraint(['request_id'], ['service_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['bid_id'], ['bids.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id'),
        sa.UniqueConstraint('bid_id'),
    )
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_provider_id', 'bookings', ['provider_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_created_at', 'bookings', ['created_at'])

    op.create_table(
        'booking_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('sender_role', sa.String(length=20), nullable=False),
        sa.Column('sender_id', sa.Uuid(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_booking_messages_booking_id', 'booking_messages', ['booking_id'])

    op.create_table(
        'wallets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('held_balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_earned', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('balance >= 0', name='wallet_balance_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallets_user_id', 'wallets', ['user_id'], unique=True)

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Uuid(), nullable=False),
        sa.Column('type', transaction_type, nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=False),
        sa.Column('status', transaction_status, nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount > 0', name='wallet_transaction_amount_positive'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id'])
    op.create_index('ix_wallet_transactions_booking_id', 'wallet_transactions', ['booking_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
    op.drop_table('booking_messages')
    op.drop_table('bookings')
    op.drop_table('bids')
    op.drop_table('service_requests')
    op.drop_table('providers')
    op.drop_table('categories')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        transaction_status, transaction_type, booking_status,
        bid_status, request_status, request_type, user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
