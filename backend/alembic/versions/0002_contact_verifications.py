"""contact verification codes

Revision ID: 0002_contact_verifications
Revises: 0001_initial
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_contact_verifications'
down_revision = '0001_initial'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('contact_verifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('channel', sa.String(length=16), nullable=False),
        sa.Column('contact', sa.String(length=255), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index(
        'uq_contact_verifications_account_channel', 'contact_verifications', ['account_id', 'channel'], unique=True
    )


def downgrade():
    op.drop_index('uq_contact_verifications_account_channel', table_name='contact_verifications')
    op.drop_table('contact_verifications')
