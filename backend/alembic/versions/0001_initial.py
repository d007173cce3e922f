"""initial schema: accounts, events, tickets, transfers, notifications

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_TRANSFER_PREDICATE = "status IN ('PENDING', 'COMPLETED')"

def upgrade():
    op.create_table('accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('phone_verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_accounts_id', 'accounts', ['id'])
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)
    op.create_index('ix_accounts_phone', 'accounts', ['phone'], unique=True)

    op.create_table('events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('venue', sa.String(length=255), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table('ticket_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
    )
    op.create_index('ix_ticket_types_event_id', 'ticket_types', ['event_id'])

    op.create_table('tickets',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('ticket_type_id', sa.Integer(), sa.ForeignKey('ticket_types.id'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='VALID'),
        sa.Column('price_paid', sa.Numeric(10, 2), nullable=True),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scan_location', sa.String(length=255), nullable=True),
        sa.Column('scanned_by', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=True),
    )
    op.create_index('ix_tickets_user_id', 'tickets', ['user_id'])

    op.create_table('ticket_transfers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('ticket_id', sa.String(length=36), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('sender_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('recipient_id', sa.Integer(), sa.ForeignKey('accounts.id'), nullable=True),
        sa.Column('recipient_email', sa.String(length=255), nullable=True),
        sa.Column('recipient_phone', sa.String(length=32), nullable=True),
        sa.Column('recipient_name', sa.String(length=255), nullable=True),
        sa.Column('message', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('status_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            "status <> 'PENDING' OR (recipient_id IS NULL AND "
            "(recipient_email IS NOT NULL OR recipient_phone IS NOT NULL))",
            name='ck_ticket_transfers_pending_unresolved',
        ),
    )
    op.create_index('ix_ticket_transfers_ticket_id', 'ticket_transfers', ['ticket_id'])
    op.create_index('ix_ticket_transfers_sender_id', 'ticket_transfers', ['sender_id'])
    op.create_index('ix_ticket_transfers_recipient_id', 'ticket_transfers', ['recipient_id'])
    op.create_index('ix_ticket_transfers_recipient_email', 'ticket_transfers', ['recipient_email'])
    op.create_index('ix_ticket_transfers_recipient_phone', 'ticket_transfers', ['recipient_phone'])
    # one PENDING/COMPLETED transfer per ticket
    op.create_index(
        'uq_ticket_transfers_active_ticket', 'ticket_transfers', ['ticket_id'], unique=True,
        postgresql_where=sa.text(ACTIVE_TRANSFER_PREDICATE),
        sqlite_where=sa.text(ACTIVE_TRANSFER_PREDICATE),
    )

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.String(length=1024), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade():
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('uq_ticket_transfers_active_ticket', table_name='ticket_transfers')
    for col in ('recipient_phone', 'recipient_email', 'recipient_id', 'sender_id', 'ticket_id'):
        op.drop_index(f'ix_ticket_transfers_{col}', table_name='ticket_transfers')
    op.drop_table('ticket_transfers')
    op.drop_index('ix_tickets_user_id', table_name='tickets')
    op.drop_table('tickets')
    op.drop_index('ix_ticket_types_event_id', table_name='ticket_types')
    op.drop_table('ticket_types')
    op.drop_table('events')
    op.drop_index('ix_accounts_phone', table_name='accounts')
    op.drop_index('ix_accounts_email', table_name='accounts')
    op.drop_index('ix_accounts_id', table_name='accounts')
    op.drop_table('accounts')
