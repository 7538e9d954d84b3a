"""Keep replaced payment references; claim outbox rows per relay run

Revision ID: a002_payment_attempts_and_outbox_claims
Revises: a001_initial_schema
Create Date: 2026-10-16

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a002_payment_attempts_and_outbox_claims'
down_revision = 'a001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'payment_attempts',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('reference', sa.String(64), nullable=False),
        sa.Column('subject_kind', sa.String(20), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=False),
        sa.Column('payment_method', sa.String(30), nullable=True),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_payment_attempts_reference', 'payment_attempts', ['reference'], unique=True)
    op.create_index('ix_payment_attempts_subject_id', 'payment_attempts', ['subject_id'])

    with op.batch_alter_table('domain_events') as batch_op:
        batch_op.add_column(sa.Column('claimed_by', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table('domain_events') as batch_op:
        batch_op.drop_column('claimed_at')
        batch_op.drop_column('claimed_by')
    op.drop_index('ix_payment_attempts_subject_id', table_name='payment_attempts')
    op.drop_index('ix_payment_attempts_reference', table_name='payment_attempts')
    op.drop_table('payment_attempts')
