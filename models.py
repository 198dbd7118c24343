import uuid
from datetime import datetime

from extensions import db


def _uuid() -> str:
    return str(uuid.uuid4())


# -----------------------------
# Enumerations (stored as strings)
# -----------------------------

class Program:
    MAHAD = "MAHAD_PROGRAM"
    DUGSI = "DUGSI_PROGRAM"
    YOUTH_EVENTS = "YOUTH_EVENTS"
    GENERAL_DONATION = "GENERAL_DONATION"
    ALL = (MAHAD, DUGSI, YOUTH_EVENTS, GENERAL_DONATION)


class EnrollmentStatus:
    REGISTERED = "REGISTERED"
    ENROLLED = "ENROLLED"
    ON_LEAVE = "ON_LEAVE"
    WITHDRAWN = "WITHDRAWN"
    COMPLETED = "COMPLETED"
    SUSPENDED = "SUSPENDED"
    ALL = (REGISTERED, ENROLLED, ON_LEAVE, WITHDRAWN, COMPLETED, SUSPENDED)


class SubscriptionStatus:
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"
    ALL = (INCOMPLETE, INCOMPLETE_EXPIRED, TRIALING, ACTIVE, PAST_DUE, CANCELED, UNPAID, PAUSED)


class AccountType:
    MAHAD = "MAHAD"
    DUGSI = "DUGSI"
    YOUTH_EVENTS = "YOUTH_EVENTS"
    GENERAL_DONATION = "GENERAL_DONATION"
    ALL = (MAHAD, DUGSI, YOUTH_EVENTS, GENERAL_DONATION)


class ContactType:
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    WHATSAPP = "WHATSAPP"
    OTHER = "OTHER"
    ALL = (EMAIL, PHONE, WHATSAPP, OTHER)


class GuardianRole:
    PARENT = "PARENT"
    GUARDIAN = "GUARDIAN"
    SPONSOR = "SPONSOR"
    DONOR = "DONOR"
    ALL = (PARENT, GUARDIAN, SPONSOR, DONOR)


class DetectionMethod:
    MANUAL = "MANUAL"
    GUARDIAN_MATCH = "GUARDIAN_MATCH"
    NAME_MATCH = "NAME_MATCH"
    CONTACT_MATCH = "CONTACT_MATCH"
    ALL = (MANUAL, GUARDIAN_MATCH, NAME_MATCH, CONTACT_MATCH)


class AttendanceStatus:
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    EXCUSED = "EXCUSED"
    ALL = (PRESENT, ABSENT, LATE, EXCUSED)


class Shift:
    MORNING = "MORNING"
    EVENING = "EVENING"
    ALL = (MORNING, EVENING)


class GraduationStatus:
    NON_GRADUATE = "NON_GRADUATE"
    GRADUATE = "GRADUATE"
    ALL = (NON_GRADUATE, GRADUATE)


class PaymentFrequency:
    MONTHLY = "MONTHLY"
    BI_MONTHLY = "BI_MONTHLY"
    ALL = (MONTHLY, BI_MONTHLY)


class BillingType:
    FULL_TIME = "FULL_TIME"
    FULL_TIME_SCHOLARSHIP = "FULL_TIME_SCHOLARSHIP"
    PART_TIME = "PART_TIME"
    EXEMPT = "EXEMPT"
    ALL = (FULL_TIME, FULL_TIME_SCHOLARSHIP, PART_TIME, EXEMPT)


# Program -> billing account type
PROGRAM_ACCOUNT_TYPES = {
    Program.MAHAD: AccountType.MAHAD,
    Program.DUGSI: AccountType.DUGSI,
    Program.YOUTH_EVENTS: AccountType.YOUTH_EVENTS,
    Program.GENERAL_DONATION: AccountType.GENERAL_DONATION,
}


# -----------------------------
# Tenancy
# -----------------------------

class School(db.Model):
    __tablename__ = "schools"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<School {self.code}>"


# -----------------------------
# Legacy single-table model
# -----------------------------

class Student(db.Model):
    """Pre-normalization student row. Read by the legacy migration only."""

    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), index=True, nullable=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(10), nullable=True)
    grade_level = db.Column(db.String(50), nullable=True)
    school_name = db.Column(db.String(200), nullable=True)
    program = db.Column(db.String(32), nullable=False, default=Program.MAHAD)
    status = db.Column(db.String(20), nullable=False, default="registered")  # registered/enrolled/withdrawn
    batch_id = db.Column(db.String(36), db.ForeignKey("batches.id"), nullable=True)
    monthly_rate = db.Column(db.Integer, nullable=False, default=150)
    custom_rate = db.Column(db.Boolean, nullable=False, default=False)
    family_reference_id = db.Column(db.String(64), nullable=True)
    parent_email = db.Column(db.String(255), nullable=True)
    parent_phone = db.Column(db.String(32), nullable=True)
    stripe_customer_id = db.Column(db.String(64), nullable=True)
    stripe_subscription_id = db.Column(db.String(64), nullable=True)
    subscription_status = db.Column(db.String(32), nullable=True)
    paid_until = db.Column(db.DateTime, nullable=True)
    migrated_profile_id = db.Column(db.String(36), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Student {self.name}>"


# -----------------------------
# People and contacts
# -----------------------------

class Person(db.Model):
    __tablename__ = "persons"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), index=True, nullable=True)
    name = db.Column(db.String(200), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contact_points = db.relationship("ContactPoint", backref="person", cascade="all, delete-orphan")
    program_profiles = db.relationship("ProgramProfile", backref="person", cascade="all, delete-orphan")
    billing_accounts = db.relationship("BillingAccount", backref="person", cascade="all, delete-orphan")

    def _contact(self, contact_type):
        active = [c for c in self.contact_points if c.type == contact_type and c.is_active]
        for c in active:
            if c.is_primary:
                return c.value
        return active[0].value if active else None

    @property
    def email(self):
        return self._contact(ContactType.EMAIL)

    @property
    def phone(self):
        return self._contact(ContactType.PHONE)

    @property
    def last_name(self):
        parts = (self.name or "").strip().split()
        return parts[-1].lower() if parts else ""

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Person {self.name}>"


class ContactPoint(db.Model):
    __tablename__ = "contact_points"
    __table_args__ = (
        db.UniqueConstraint("person_id", "type", "value", name="uq_contact_points_person_type_value"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    person_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.String(255), nullable=False, index=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class GuardianRelationship(db.Model):
    __tablename__ = "guardian_relationships"
    __table_args__ = (
        db.UniqueConstraint("guardian_id", "dependent_id", "role", name="uq_guardian_relationships"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    guardian_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=False, index=True)
    dependent_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False, default=GuardianRole.PARENT)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.DateTime, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    guardian = db.relationship("Person", foreign_keys=[guardian_id])
    dependent = db.relationship("Person", foreign_keys=[dependent_id])


class SiblingRelationship(db.Model):
    __tablename__ = "sibling_relationships"
    __table_args__ = (
        db.UniqueConstraint("person1_id", "person2_id", name="uq_sibling_relationships_pair"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    # person1_id < person2_id
    person1_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=False, index=True)
    person2_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=False, index=True)
    detection_method = db.Column(db.String(20), nullable=False, default=DetectionMethod.MANUAL)
    confidence = db.Column(db.Float, nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    verified_by = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    person1 = db.relationship("Person", foreign_keys=[person1_id])
    person2 = db.relationship("Person", foreign_keys=[person2_id])

    def other(self, person_id):
        return self.person2 if self.person1_id == person_id else self.person1

    def to_dict(self):
        return {
            "id": self.id,
            "person1_id": self.person1_id,
            "person2_id": self.person2_id,
            "detection_method": self.detection_method,
            "confidence": self.confidence,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "verified_by": self.verified_by,
            "is_active": self.is_active,
        }


# -----------------------------
# Programs and enrollment
# -----------------------------

class Batch(db.Model):
    __tablename__ = "batches"
    __table_args__ = (
        db.UniqueConstraint("school_id", "name", name="uq_batches_school_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), index=True, nullable=True)
    name = db.Column(db.String(120), nullable=False)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    enrollments = db.relationship("Enrollment", backref="batch")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


class ProgramProfile(db.Model):
    __tablename__ = "program_profiles"
    __table_args__ = (
        db.UniqueConstraint("person_id", "program", name="uq_program_profiles_person_program"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    person_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=False, index=True)
    program = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=EnrollmentStatus.REGISTERED, index=True)
    monthly_rate = db.Column(db.Integer, nullable=False, default=150)
    custom_rate = db.Column(db.Boolean, nullable=False, default=False)
    family_reference_id = db.Column(db.String(64), nullable=True, index=True)
    gender = db.Column(db.String(10), nullable=True)
    grade_level = db.Column(db.String(50), nullable=True)
    school_name = db.Column(db.String(200), nullable=True)
    graduation_status = db.Column(db.String(20), nullable=True)
    payment_frequency = db.Column(db.String(20), nullable=True)
    billing_type = db.Column(db.String(32), nullable=True)
    payment_notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    enrollments = db.relationship("Enrollment", backref="program_profile", cascade="all, delete-orphan",
                                  order_by="Enrollment.start_date")
    assignments = db.relationship("BillingAssignment", backref="program_profile", cascade="all, delete-orphan")
    class_enrollments = db.relationship("ClassEnrollment", backref="program_profile", cascade="all, delete-orphan")
    attendance_records = db.relationship("AttendanceRecord", cascade="all, delete-orphan")
    payments = db.relationship("StudentPayment", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "person_id": self.person_id,
            "program": self.program,
            "status": self.status,
            "monthly_rate": self.monthly_rate,
            "custom_rate": self.custom_rate,
            "family_reference_id": self.family_reference_id,
            "gender": self.gender,
            "grade_level": self.grade_level,
            "school_name": self.school_name,
            "graduation_status": self.graduation_status,
            "payment_frequency": self.payment_frequency,
            "billing_type": self.billing_type,
            "payment_notes": self.payment_notes,
        }


class Enrollment(db.Model):
    __tablename__ = "enrollments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    program_profile_id = db.Column(db.String(36), db.ForeignKey("program_profiles.id"), nullable=False, index=True)
    batch_id = db.Column(db.String(36), db.ForeignKey("batches.id"), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default=EnrollmentStatus.REGISTERED, index=True)
    start_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_active(self):
        return self.status != EnrollmentStatus.WITHDRAWN and self.end_date is None

    def to_dict(self):
        return {
            "id": self.id,
            "program_profile_id": self.program_profile_id,
            "batch_id": self.batch_id,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "reason": self.reason,
        }


# -----------------------------
# Billing
# -----------------------------

class BillingAccount(db.Model):
    __tablename__ = "billing_accounts"
    __table_args__ = (
        db.UniqueConstraint("person_id", "account_type", name="uq_billing_accounts_person_type"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    person_id = db.Column(db.String(36), db.ForeignKey("persons.id"), nullable=True, index=True)
    account_type = db.Column(db.String(20), nullable=False)
    stripe_customer_id_mahad = db.Column(db.String(64), nullable=True, unique=True)
    stripe_customer_id_dugsi = db.Column(db.String(64), nullable=True, unique=True)
    stripe_customer_id_youth = db.Column(db.String(64), nullable=True, unique=True)
    stripe_customer_id_donation = db.Column(db.String(64), nullable=True, unique=True)
    payment_intent_id_dugsi = db.Column(db.String(64), nullable=True)
    payment_method_captured = db.Column(db.Boolean, nullable=False, default=False)
    payment_method_captured_at = db.Column(db.DateTime, nullable=True)
    last_payment_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subscriptions = db.relationship("Subscription", backref="billing_account", cascade="all, delete-orphan")

    CUSTOMER_ID_COLUMNS = {
        AccountType.MAHAD: "stripe_customer_id_mahad",
        AccountType.DUGSI: "stripe_customer_id_dugsi",
        AccountType.YOUTH_EVENTS: "stripe_customer_id_youth",
        AccountType.GENERAL_DONATION: "stripe_customer_id_donation",
    }

    @property
    def customer_id(self):
        return getattr(self, self.CUSTOMER_ID_COLUMNS[self.account_type])

    @customer_id.setter
    def customer_id(self, value):
        setattr(self, self.CUSTOMER_ID_COLUMNS[self.account_type], value)


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    billing_account_id = db.Column(db.String(36), db.ForeignKey("billing_accounts.id"), nullable=False, index=True)
    stripe_subscription_id = db.Column(db.String(64), nullable=False, unique=True)
    stripe_customer_id = db.Column(db.String(64), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.INCOMPLETE, index=True)
    amount = db.Column(db.Integer, nullable=False, default=0)  # cents
    currency = db.Column(db.String(3), nullable=False, default="usd")
    interval = db.Column(db.String(10), nullable=False, default="month")
    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    paid_until = db.Column(db.DateTime, nullable=True)
    last_payment_date = db.Column(db.DateTime, nullable=True)
    previous_subscription_ids = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assignments = db.relationship("BillingAssignment", backref="subscription", cascade="all, delete-orphan")
    history = db.relationship("SubscriptionHistory", backref="subscription", cascade="all, delete-orphan",
                              order_by="SubscriptionHistory.created_at")

    @property
    def active_assignments(self):
        return [a for a in self.assignments if a.is_active]

    def to_dict(self):
        return {
            "id": self.id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "stripe_customer_id": self.stripe_customer_id,
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
            "interval": self.interval,
            "current_period_start": self.current_period_start.isoformat() if self.current_period_start else None,
            "current_period_end": self.current_period_end.isoformat() if self.current_period_end else None,
            "paid_until": self.paid_until.isoformat() if self.paid_until else None,
        }


class BillingAssignment(db.Model):
    __tablename__ = "billing_assignments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    subscription_id = db.Column(db.String(36), db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    program_profile_id = db.Column(db.String(36), db.ForeignKey("program_profiles.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)  # cents
    percentage = db.Column(db.Float, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    start_date = db.Column(db.DateTime, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)


class SubscriptionHistory(db.Model):
    __tablename__ = "subscription_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    subscription_id = db.Column(db.String(36), db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    event_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Integer, nullable=True)
    # "metadata" is reserved on declarative models
    details = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"
    __table_args__ = (
        db.UniqueConstraint("event_id", "source", name="uq_webhook_events_event_source"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    event_id = db.Column(db.String(64), nullable=False)
    event_type = db.Column(db.String(64), nullable=False)
    source = db.Column(db.String(16), nullable=False)  # mahad/dugsi
    payload = db.Column(db.JSON, nullable=True)
    processed_at = db.Column(db.DateTime, default=datetime.utcnow)


class StudentPayment(db.Model):
    __tablename__ = "student_payments"
    __table_args__ = (
        db.UniqueConstraint("program_profile_id", "stripe_invoice_id", name="uq_student_payments_profile_invoice"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    program_profile_id = db.Column(db.String(36), db.ForeignKey("program_profiles.id"), nullable=False, index=True)
    stripe_invoice_id = db.Column(db.String(64), nullable=False)
    amount_paid = db.Column(db.Integer, nullable=False)  # cents
    paid_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


# -----------------------------
# Attendance
# -----------------------------

class StudyClass(db.Model):
    __tablename__ = "study_classes"
    __table_args__ = (
        db.UniqueConstraint("school_id", "name", name="uq_study_classes_school_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), index=True, nullable=True)
    name = db.Column(db.String(120), nullable=False)
    shift = db.Column(db.String(10), nullable=False, default=Shift.MORNING)
    teacher_name = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    enrollments = db.relationship("ClassEnrollment", backref="study_class", cascade="all, delete-orphan")
    sessions = db.relationship("AttendanceSession", backref="study_class", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "shift": self.shift,
            "teacher_name": self.teacher_name,
            "is_active": self.is_active,
        }


class ClassEnrollment(db.Model):
    __tablename__ = "class_enrollments"
    __table_args__ = (
        db.UniqueConstraint("class_id", "program_profile_id", name="uq_class_enrollments_class_profile"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    class_id = db.Column(db.String(36), db.ForeignKey("study_classes.id"), nullable=False, index=True)
    program_profile_id = db.Column(db.String(36), db.ForeignKey("program_profiles.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.DateTime, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)


class AttendanceSession(db.Model):
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        db.UniqueConstraint("class_id", "date", name="uq_attendance_sessions_class_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    class_id = db.Column(db.String(36), db.ForeignKey("study_classes.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    surah_name = db.Column(db.String(120), nullable=True)
    ayat_from = db.Column(db.Integer, nullable=True)
    ayat_to = db.Column(db.Integer, nullable=True)
    lesson_completed = db.Column(db.Boolean, nullable=False, default=False)
    lesson_notes = db.Column(db.Text, nullable=True)
    is_closed = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    records = db.relationship("AttendanceRecord", backref="session", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "class_id": self.class_id,
            "date": self.date.isoformat(),
            "surah_name": self.surah_name,
            "ayat_from": self.ayat_from,
            "ayat_to": self.ayat_to,
            "lesson_completed": self.lesson_completed,
            "lesson_notes": self.lesson_notes,
            "is_closed": self.is_closed,
        }


class AttendanceRecord(db.Model):
    __tablename__ = "attendance_records"
    __table_args__ = (
        db.UniqueConstraint("session_id", "program_profile_id", name="uq_attendance_records_session_profile"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    session_id = db.Column(db.String(36), db.ForeignKey("attendance_sessions.id"), nullable=False, index=True)
    program_profile_id = db.Column(db.String(36), db.ForeignKey("program_profiles.id"), nullable=False, index=True)
    status = db.Column(db.String(10), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    marked_by = db.Column(db.String(120), nullable=True)
    marked_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "program_profile_id": self.program_profile_id,
            "status": self.status,
            "notes": self.notes,
            "marked_at": self.marked_at.isoformat() if self.marked_at else None,
        }
