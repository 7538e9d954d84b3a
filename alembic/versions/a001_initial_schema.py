"""Initial registration and validation schema

Revision ID: a001_initial_schema
Revises:
Create Date: 2026-10-16

Creates events, registrations, tickets, payment_notifications and
domain_events. Credential columns carry unique constraints; capacity is
tracked in events.registered_count.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('organization_id', sa.String(), nullable=False),
        sa.Column('owner_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('venue', sa.String(), nullable=True),
        sa.Column('event_type', sa.String(20), nullable=False, server_default='registration'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('registration_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registration_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('eligible_categories', sa.JSON(), nullable=False),
        sa.Column('eligible_auxiliary_bodies', sa.JSON(), nullable=False),
        sa.Column('allow_guests', sa.Boolean(), nullable=False),
        sa.Column('allow_invitees', sa.Boolean(), nullable=False),
        sa.Column('requires_payment', sa.Boolean(), nullable=False),
        sa.Column('payment_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('payment_currency', sa.String(3), nullable=False),
        sa.Column('payment_methods', sa.JSON(), nullable=False),
        sa.Column('payment_rules', sa.JSON(), nullable=False),
        sa.Column('ticket_categories', sa.JSON(), nullable=False),
        sa.Column('custom_fields', sa.JSON(), nullable=False),
        sa.Column('max_attendees', sa.Integer(), nullable=True),
        sa.Column('registered_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('similarity_thresholds', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='upcoming'),
        *_timestamps(),
        sa.CheckConstraint('registered_count >= 0', name='check_registered_count_positive'),
    )
    op.create_index('ix_events_organization_id', 'events', ['organization_id'])

    op.create_table(
        'registrations',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('event_id', sa.String(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('registration_type', sa.String(20), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('auxiliary_body', sa.String(), nullable=True),
        sa.Column('registration_data', sa.JSON(), nullable=False),
        sa.Column('unique_id', sa.String(40), nullable=False),
        sa.Column('qr_code', sa.Text(), nullable=False),
        sa.Column('qr_secret_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('manual_verification_code', sa.String(12), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='not_required'),
        sa.Column('payment_method', sa.String(30), nullable=True),
        sa.Column('payment_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('payment_currency', sa.String(3), nullable=True),
        sa.Column('payment_reference', sa.String(64), nullable=True),
        sa.Column('payment_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requires_manual_reconciliation', sa.Boolean(), nullable=False),
        sa.Column('receipt_path', sa.String(), nullable=True),
        sa.Column('receipt_review_status', sa.String(20), nullable=True),
        sa.Column('receipt_reviewed_by', sa.String(), nullable=True),
        sa.Column('receipt_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receipt_rejection_reason', sa.Text(), nullable=True),
        sa.Column('face_photo_path', sa.String(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validated_by', sa.String(), nullable=True),
        sa.Column('validation_method', sa.String(20), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_registrations_event_id', 'registrations', ['event_id'])
    op.create_index('ix_registrations_email', 'registrations', ['email'])
    op.create_index('ix_registrations_unique_id', 'registrations', ['unique_id'], unique=True)
    op.create_index(
        'ix_registrations_manual_verification_code', 'registrations',
        ['manual_verification_code'], unique=True,
    )
    op.create_index(
        'ix_registrations_payment_reference', 'registrations', ['payment_reference'], unique=True
    )

    op.create_table(
        'tickets',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('event_id', sa.String(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('owner_name', sa.String(255), nullable=False),
        sa.Column('owner_email', sa.String(255), nullable=False),
        sa.Column('owner_phone', sa.String(50), nullable=True),
        sa.Column('ticket_number', sa.String(40), nullable=False),
        sa.Column('qr_code', sa.Text(), nullable=False),
        sa.Column('qr_secret_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('manual_verification_code', sa.String(12), nullable=False),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(30), nullable=True),
        sa.Column('payment_reference', sa.String(64), nullable=True),
        sa.Column('payment_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requires_manual_reconciliation', sa.Boolean(), nullable=False),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('face_photo_path', sa.String(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validated_by', sa.String(), nullable=True),
        sa.Column('validation_method', sa.String(20), nullable=True),
        sa.Column('transfer_history', sa.JSON(), nullable=False),
        sa.Column('max_transfers', sa.Integer(), nullable=False, server_default='5'),
        *_timestamps(),
    )
    op.create_index('ix_tickets_event_id', 'tickets', ['event_id'])
    op.create_index('ix_tickets_owner_email', 'tickets', ['owner_email'])
    op.create_index('ix_tickets_ticket_number', 'tickets', ['ticket_number'], unique=True)
    op.create_index(
        'ix_tickets_manual_verification_code', 'tickets', ['manual_verification_code'], unique=True
    )
    op.create_index('ix_tickets_payment_reference', 'tickets', ['payment_reference'], unique=True)

    op.create_table(
        'payment_notifications',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('reference', sa.String(64), nullable=False),
        sa.Column('outcome', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('disposition', sa.String(20), nullable=False),
        sa.Column('subject_kind', sa.String(20), nullable=True),
        sa.Column('subject_id', sa.String(), nullable=True),
        sa.Column('detail', sa.String(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_payment_notifications_reference', 'payment_notifications', ['reference'])

    op.create_table(
        'domain_events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('event_id', sa.String(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_domain_events_event_id', 'domain_events', ['event_id'])
    op.create_index('ix_domain_events_event_type', 'domain_events', ['event_type'])
    op.create_index('ix_domain_events_subject_id', 'domain_events', ['subject_id'])


def downgrade() -> None:
    op.drop_table('domain_events')
    op.drop_table('payment_notifications')
    op.drop_table('tickets')
    op.drop_table('registrations')
    op.drop_table('events')
