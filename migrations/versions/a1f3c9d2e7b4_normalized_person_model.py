"""normalized person / program profile / billing model

Revision ID: a1f3c9d2e7b4
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "a1f3c9d2e7b4"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', sa.String(length=36), primary_key=True)


def _fk(name, target, nullable=False):
    return sa.Column(name, sa.String(length=36), sa.ForeignKey(target), nullable=nullable)


def upgrade():
    op.create_table(
        'schools',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'persons',
        _id(),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id'), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_persons_school_id', 'persons', ['school_id'])

    op.create_table(
        'contact_points',
        _id(),
        _fk('person_id', 'persons.id'),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('person_id', 'type', 'value', name='uq_contact_points_person_type_value'),
    )
    op.create_index('ix_contact_points_person_id', 'contact_points', ['person_id'])
    op.create_index('ix_contact_points_value', 'contact_points', ['value'])

    op.create_table(
        'guardian_relationships',
        _id(),
        _fk('guardian_id', 'persons.id'),
        _fk('dependent_id', 'persons.id'),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.UniqueConstraint('guardian_id', 'dependent_id', 'role', name='uq_guardian_relationships'),
    )
    op.create_index('ix_guardian_relationships_guardian_id', 'guardian_relationships', ['guardian_id'])
    op.create_index('ix_guardian_relationships_dependent_id', 'guardian_relationships', ['dependent_id'])

    op.create_table(
        'sibling_relationships',
        _id(),
        _fk('person1_id', 'persons.id'),
        _fk('person2_id', 'persons.id'),
        sa.Column('detection_method', sa.String(length=20), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('verified_by', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('person1_id', 'person2_id', name='uq_sibling_relationships_pair'),
    )
    op.create_index('ix_sibling_relationships_person1_id', 'sibling_relationships', ['person1_id'])
    op.create_index('ix_sibling_relationships_person2_id', 'sibling_relationships', ['person2_id'])

    op.create_table(
        'batches',
        _id(),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id'), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('school_id', 'name', name='uq_batches_school_name'),
    )
    op.create_index('ix_batches_school_id', 'batches', ['school_id'])

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id'), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(length=10), nullable=True),
        sa.Column('grade_level', sa.String(length=50), nullable=True),
        sa.Column('school_name', sa.String(length=200), nullable=True),
        sa.Column('program', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        _fk('batch_id', 'batches.id', nullable=True),
        sa.Column('monthly_rate', sa.Integer(), nullable=False, server_default='150'),
        sa.Column('custom_rate', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('family_reference_id', sa.String(length=64), nullable=True),
        sa.Column('parent_email', sa.String(length=255), nullable=True),
        sa.Column('parent_phone', sa.String(length=32), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=64), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(length=64), nullable=True),
        sa.Column('subscription_status', sa.String(length=32), nullable=True),
        sa.Column('paid_until', sa.DateTime(), nullable=True),
        sa.Column('migrated_profile_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_students_school_id', 'students', ['school_id'])
    op.create_index('ix_students_migrated_profile_id', 'students', ['migrated_profile_id'])

    op.create_table(
        'program_profiles',
        _id(),
        _fk('person_id', 'persons.id'),
        sa.Column('program', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('monthly_rate', sa.Integer(), nullable=False, server_default='150'),
        sa.Column('custom_rate', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('family_reference_id', sa.String(length=64), nullable=True),
        sa.Column('gender', sa.String(length=10), nullable=True),
        sa.Column('grade_level', sa.String(length=50), nullable=True),
        sa.Column('school_name', sa.String(length=200), nullable=True),
        sa.Column('graduation_status', sa.String(length=20), nullable=True),
        sa.Column('payment_frequency', sa.String(length=20), nullable=True),
        sa.Column('billing_type', sa.String(length=32), nullable=True),
        sa.Column('payment_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('person_id', 'program', name='uq_program_profiles_person_program'),
    )
    op.create_index('ix_program_profiles_person_id', 'program_profiles', ['person_id'])
    op.create_index('ix_program_profiles_program', 'program_profiles', ['program'])
    op.create_index('ix_program_profiles_status', 'program_profiles', ['status'])
    op.create_index('ix_program_profiles_family_reference_id', 'program_profiles', ['family_reference_id'])

    op.create_table(
        'enrollments',
        _id(),
        _fk('program_profile_id', 'program_profiles.id'),
        _fk('batch_id', 'batches.id', nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_enrollments_program_profile_id', 'enrollments', ['program_profile_id'])
    op.create_index('ix_enrollments_batch_id', 'enrollments', ['batch_id'])
    op.create_index('ix_enrollments_status', 'enrollments', ['status'])

    op.create_table(
        'billing_accounts',
        _id(),
        _fk('person_id', 'persons.id', nullable=True),
        sa.Column('account_type', sa.String(length=20), nullable=False),
        sa.Column('stripe_customer_id_mahad', sa.String(length=64), nullable=True, unique=True),
        sa.Column('stripe_customer_id_dugsi', sa.String(length=64), nullable=True, unique=True),
        sa.Column('stripe_customer_id_youth', sa.String(length=64), nullable=True, unique=True),
        sa.Column('stripe_customer_id_donation', sa.String(length=64), nullable=True, unique=True),
        sa.Column('payment_intent_id_dugsi', sa.String(length=64), nullable=True),
        sa.Column('payment_method_captured', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('payment_method_captured_at', sa.DateTime(), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('person_id', 'account_type', name='uq_billing_accounts_person_type'),
    )
    op.create_index('ix_billing_accounts_person_id', 'billing_accounts', ['person_id'])

    op.create_table(
        'subscriptions',
        _id(),
        _fk('billing_account_id', 'billing_accounts.id'),
        sa.Column('stripe_subscription_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('stripe_customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd'),
        sa.Column('interval', sa.String(length=10), nullable=False, server_default='month'),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('paid_until', sa.DateTime(), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(), nullable=True),
        sa.Column('previous_subscription_ids', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_subscriptions_billing_account_id', 'subscriptions', ['billing_account_id'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    op.create_table(
        'billing_assignments',
        _id(),
        _fk('subscription_id', 'subscriptions.id'),
        _fk('program_profile_id', 'program_profiles.id'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_billing_assignments_subscription_id', 'billing_assignments', ['subscription_id'])
    op.create_index('ix_billing_assignments_program_profile_id', 'billing_assignments', ['program_profile_id'])
    op.create_index('ix_billing_assignments_is_active', 'billing_assignments', ['is_active'])

    op.create_table(
        'subscription_history',
        _id(),
        _fk('subscription_id', 'subscriptions.id'),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_subscription_history_subscription_id', 'subscription_history', ['subscription_id'])

    op.create_table(
        'webhook_events',
        _id(),
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('event_id', 'source', name='uq_webhook_events_event_source'),
    )

    op.create_table(
        'student_payments',
        _id(),
        _fk('program_profile_id', 'program_profiles.id'),
        sa.Column('stripe_invoice_id', sa.String(length=64), nullable=False),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('program_profile_id', 'stripe_invoice_id', name='uq_student_payments_profile_invoice'),
    )
    op.create_index('ix_student_payments_program_profile_id', 'student_payments', ['program_profile_id'])

    op.create_table(
        'study_classes',
        _id(),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id'), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('shift', sa.String(length=10), nullable=False),
        sa.Column('teacher_name', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('school_id', 'name', name='uq_study_classes_school_name'),
    )
    op.create_index('ix_study_classes_school_id', 'study_classes', ['school_id'])

    op.create_table(
        'class_enrollments',
        _id(),
        _fk('class_id', 'study_classes.id'),
        _fk('program_profile_id', 'program_profiles.id'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('class_id', 'program_profile_id', name='uq_class_enrollments_class_profile'),
    )
    op.create_index('ix_class_enrollments_class_id', 'class_enrollments', ['class_id'])
    op.create_index('ix_class_enrollments_program_profile_id', 'class_enrollments', ['program_profile_id'])

    op.create_table(
        'attendance_sessions',
        _id(),
        _fk('class_id', 'study_classes.id'),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('surah_name', sa.String(length=120), nullable=True),
        sa.Column('ayat_from', sa.Integer(), nullable=True),
        sa.Column('ayat_to', sa.Integer(), nullable=True),
        sa.Column('lesson_completed', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('lesson_notes', sa.Text(), nullable=True),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('class_id', 'date', name='uq_attendance_sessions_class_date'),
    )
    op.create_index('ix_attendance_sessions_class_id', 'attendance_sessions', ['class_id'])
    op.create_index('ix_attendance_sessions_date', 'attendance_sessions', ['date'])

    op.create_table(
        'attendance_records',
        _id(),
        _fk('session_id', 'attendance_sessions.id'),
        _fk('program_profile_id', 'program_profiles.id'),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('marked_by', sa.String(length=120), nullable=True),
        sa.Column('marked_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('session_id', 'program_profile_id', name='uq_attendance_records_session_profile'),
    )
    op.create_index('ix_attendance_records_session_id', 'attendance_records', ['session_id'])
    op.create_index('ix_attendance_records_program_profile_id', 'attendance_records', ['program_profile_id'])


def downgrade():
    for table in (
        'attendance_records',
        'attendance_sessions',
        'class_enrollments',
        'study_classes',
        'student_payments',
        'webhook_events',
        'subscription_history',
        'billing_assignments',
        'subscriptions',
        'billing_accounts',
        'enrollments',
        'program_profiles',
        'students',
        'batches',
        'sibling_relationships',
        'guardian_relationships',
        'contact_points',
        'persons',
        'schools',
    ):
        op.drop_table(table)
