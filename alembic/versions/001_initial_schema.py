"""001 Initial schema - capacity ledger, reservation holds, bookings

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

- capacity_records: one consumption counter per (service, date, slot)
- reservation_holds: unique idempotency key enforced by the database
- bookings: one per confirmed hold, with the frozen pricing snapshot
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'capacity_defaults',
        sa.Column('service', sa.String(32), primary_key=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('capacity >= 0', name='ck_capacity_defaults_non_negative'),
    )

    op.create_table(
        'capacity_overrides',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('service', sa.String(32), nullable=False),
        sa.Column('date_start', sa.Date(), nullable=False),
        sa.Column('date_end', sa.Date(), nullable=False),
        sa.Column('slot', sa.String(32), nullable=False, server_default='ALL_DAY'),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('service', 'date_start', 'date_end', 'slot', name='uq_capacity_override_range'),
        sa.CheckConstraint('capacity >= 0', name='ck_capacity_overrides_non_negative'),
    )
    op.create_index('ix_capacity_overrides_dates', 'capacity_overrides', ['date_start', 'date_end'])
    op.create_index('ix_capacity_overrides_service', 'capacity_overrides', ['service'])

    op.create_table(
        'capacity_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('service', sa.String(32), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('slot', sa.String(32), nullable=False, server_default='ALL_DAY'),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consumed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('service', 'date', 'slot', name='uq_capacity_record_key'),
        sa.CheckConstraint('consumed >= 0', name='ck_capacity_records_consumed_non_negative'),
    )
    op.create_index('ix_capacity_records_date', 'capacity_records', ['date'])

    op.create_table(
        'reservation_holds',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('idempotency_key', sa.String(64), nullable=False),
        sa.Column('service', sa.String(32), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('slot', sa.String(32), nullable=False, server_default='ALL_DAY'),
        sa.Column('user_email', sa.String(320), nullable=False),
        sa.Column('dog_id', sa.String(36), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='active'),
        sa.Column('payment_reference', sa.String(120), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_reservation_holds_idempotency', 'reservation_holds', ['idempotency_key'], unique=True)
    op.create_index('ix_reservation_holds_service_date', 'reservation_holds', ['service', 'date'])
    op.create_index('ix_reservation_holds_status_expires', 'reservation_holds', ['status', 'expires_at'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('hold_id', sa.String(36),
                  sa.ForeignKey('reservation_holds.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('service', sa.String(32), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('slot', sa.String(32), nullable=False, server_default='ALL_DAY'),
        sa.Column('user_email', sa.String(320), nullable=False),
        sa.Column('dog_id', sa.String(36), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='confirmed'),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
        sa.Column('pricing_model', sa.String(16), nullable=False),
        sa.Column('pricing_snapshot', sa.JSON(), nullable=False),
        sa.Column('payment_reference', sa.String(120), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_bookings_hold', 'bookings', ['hold_id'], unique=True)
    op.create_index('ix_bookings_service_date', 'bookings', ['service', 'date'])
    op.create_index('ix_bookings_user_email', 'bookings', ['user_email'])


def downgrade() -> None:
    op.drop_table('bookings')
    op.drop_table('reservation_holds')
    op.drop_table('capacity_records')
    op.drop_table('capacity_overrides')
    op.drop_table('capacity_defaults')
