"""Backfill the normalized model from the legacy ``students`` table.

Each legacy row becomes a Person (with contact points), a ProgramProfile and
an Enrollment. A parent email/phone becomes a guardian Person linked with a
PARENT relationship. Rows carrying provider ids also get a BillingAccount
(owned by the guardian when there is one), a Subscription and a
BillingAssignment. Migrated rows remember their profile id, so running the
migration again only picks up new rows.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import (
    BillingAssignment,
    EnrollmentStatus,
    GuardianRelationship,
    GuardianRole,
    PROGRAM_ACCOUNT_TYPES,
    Person,
    Program,
    ProgramProfile,
    Student,
    Subscription,
    SubscriptionStatus,
)
from utils.billing import create_or_update_billing_account, get_billing_account_by_customer_id
from utils.enrollment import create_enrollment
from utils.errors import ServiceError
from utils.people import create_person, find_person_by_email, find_person_by_phone
from utils.status import enrollment_status_for

LEGACY_STATUS_MAP = {
    "registered": EnrollmentStatus.REGISTERED,
    "enrolled": EnrollmentStatus.ENROLLED,
    "on_leave": EnrollmentStatus.ON_LEAVE,
    "withdrawn": EnrollmentStatus.WITHDRAWN,
    "completed": EnrollmentStatus.COMPLETED,
    "suspended": EnrollmentStatus.SUSPENDED,
}


def _find_or_create_person(name: str, email: Optional[str], phone: Optional[str], school_id, dob=None) -> Person:
    person = find_person_by_email(email, school_id) if email else None
    if person is None and phone and not email:
        person = find_person_by_phone(phone, school_id)
    if person is None:
        person = create_person(name, email, phone, dob, school_id)
    return person


def _migrate_guardian(student: Student, child: Person) -> Optional[Person]:
    if not student.parent_email and not student.parent_phone:
        return None
    guardian = _find_or_create_person(
        f"Parent of {student.name}", student.parent_email, student.parent_phone, student.school_id,
    )
    if guardian.id == child.id:
        return None
    exists = GuardianRelationship.query.filter_by(
        guardian_id=guardian.id, dependent_id=child.id, role=GuardianRole.PARENT,
    ).first()
    if exists is None:
        db.session.add(GuardianRelationship(guardian_id=guardian.id, dependent_id=child.id, role=GuardianRole.PARENT))
    return guardian


def _migrate_billing(student: Student, payer: Person, profile: ProgramProfile) -> None:
    if not student.stripe_customer_id:
        return
    account_type = PROGRAM_ACCOUNT_TYPES[profile.program]
    account = get_billing_account_by_customer_id(student.stripe_customer_id, account_type)
    if account is None:
        account = create_or_update_billing_account(payer.id, account_type, customer_id=student.stripe_customer_id)
    if not student.stripe_subscription_id:
        return
    status = (student.subscription_status or "").lower()
    if status not in SubscriptionStatus.ALL:
        status = SubscriptionStatus.INCOMPLETE
    subscription = Subscription.query.filter_by(stripe_subscription_id=student.stripe_subscription_id).first()
    if subscription is None:
        subscription = Subscription(
            billing_account_id=account.id,
            stripe_subscription_id=student.stripe_subscription_id,
            stripe_customer_id=student.stripe_customer_id,
            status=status,
            amount=0,
            paid_until=student.paid_until,
            current_period_end=student.paid_until,
            previous_subscription_ids=[],
        )
        db.session.add(subscription)
        db.session.flush()
    # Siblings on one legacy subscription share the amount
    subscription.amount += (student.monthly_rate or 0) * 100
    db.session.add(BillingAssignment(
        subscription_id=subscription.id,
        program_profile_id=profile.id,
        amount=(student.monthly_rate or 0) * 100,
        notes="Migrated from legacy student record",
    ))


def migrate_student(student: Student) -> ProgramProfile:
    program = student.program if student.program in Program.ALL else Program.MAHAD
    person = _find_or_create_person(student.name, student.email, student.phone, student.school_id,
                                    student.date_of_birth)
    guardian = _migrate_guardian(student, person)
    profile = ProgramProfile.query.filter_by(person_id=person.id, program=program).first()
    if profile is None:
        profile = ProgramProfile(
            person_id=person.id,
            program=program,
            monthly_rate=student.monthly_rate or 150,
            custom_rate=bool(student.custom_rate),
            family_reference_id=student.family_reference_id,
            gender=student.gender,
            grade_level=student.grade_level,
            school_name=student.school_name,
        )
        db.session.add(profile)
        db.session.flush()

        status = LEGACY_STATUS_MAP.get((student.status or "").strip().lower())
        if status is None:
            status = enrollment_status_for(student.subscription_status)
        batch_id = student.batch_id if program != Program.DUGSI else None
        create_enrollment(profile.id, batch_id=batch_id, status=status, start_date=student.created_at)
        _migrate_billing(student, guardian or person, profile)
    student.migrated_profile_id = profile.id
    return profile


def migrate_legacy_students(school_id: Optional[int] = None) -> Dict[str, Any]:
    """Migrate every legacy row not yet migrated. One commit per row."""
    q = Student.query.filter(Student.migrated_profile_id.is_(None))
    done = Student.query.filter(Student.migrated_profile_id.isnot(None))
    if school_id is not None:
        q = q.filter(Student.school_id == school_id)
        done = done.filter(Student.school_id == school_id)
    already = done.count()
    result: Dict[str, Any] = {"migrated": 0, "skipped": already, "errors": []}
    for student_id in [s.id for s in q.order_by(Student.id).all()]:
        student = db.session.get(Student, student_id)
        try:
            migrate_student(student)
            db.session.commit()
            result["migrated"] += 1
        except (SQLAlchemyError, ServiceError) as e:
            db.session.rollback()
            current_app.logger.exception("Legacy student %s could not be migrated", student_id)
            result["errors"].append({"student_id": student_id, "error": str(e)})
    current_app.logger.info(
        "Legacy migration: %d migrated, %d already done, %d failed",
        result["migrated"], result["skipped"], len(result["errors"]),
    )
    return result
