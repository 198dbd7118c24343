from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from extensions import db
from models import Batch, Enrollment, EnrollmentStatus, Person, Program, ProgramProfile
from utils.errors import ConflictError, NotFoundError, ValidationError
from utils.status import is_valid_status_transition

# Statuses that close an enrollment
_CLOSING_STATUSES = (EnrollmentStatus.WITHDRAWN, EnrollmentStatus.COMPLETED)


def _profile(profile_id: str) -> ProgramProfile:
    profile = db.session.get(ProgramProfile, profile_id)
    if profile is None:
        raise NotFoundError(f"Program profile {profile_id} not found")
    return profile


def get_active_enrollment(profile_id: str) -> Optional[Enrollment]:
    return (
        Enrollment.query.filter(
            Enrollment.program_profile_id == profile_id,
            Enrollment.status != EnrollmentStatus.WITHDRAWN,
            Enrollment.end_date.is_(None),
        )
        .order_by(Enrollment.start_date.desc())
        .first()
    )


def create_enrollment(
    profile_id: str,
    batch_id: Optional[str] = None,
    status: str = EnrollmentStatus.REGISTERED,
    start_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Enrollment:
    profile = _profile(profile_id)
    if status not in EnrollmentStatus.ALL:
        raise ValidationError(f"Invalid enrollment status: {status}", field="status")
    if batch_id:
        if profile.program == Program.DUGSI:
            raise ValidationError("Dugsi enrollments cannot be assigned to a batch", field="batch_id")
        if db.session.get(Batch, batch_id) is None:
            raise NotFoundError(f"Batch {batch_id} not found")
    enrollment = Enrollment(
        program_profile_id=profile.id,
        batch_id=batch_id or None,
        status=status,
        start_date=start_date or datetime.utcnow(),
        notes=notes,
    )
    if status in _CLOSING_STATUSES:
        enrollment.end_date = enrollment.start_date
    db.session.add(enrollment)
    profile.status = status
    db.session.flush()
    return enrollment


def apply_enrollment_status(enrollment: Enrollment, status: str, reason: Optional[str] = None,
                            end_date: Optional[datetime] = None) -> Enrollment:
    """Set *status* without transition checks and mirror it onto the profile."""
    enrollment.status = status
    if reason:
        enrollment.reason = reason
    if status in _CLOSING_STATUSES:
        enrollment.end_date = end_date or enrollment.end_date or datetime.utcnow()
    enrollment.program_profile.status = status
    return enrollment


def update_enrollment_status(enrollment_id: str, status: str, reason: Optional[str] = None,
                             end_date: Optional[datetime] = None) -> Enrollment:
    enrollment = db.session.get(Enrollment, enrollment_id)
    if enrollment is None:
        raise NotFoundError(f"Enrollment {enrollment_id} not found")
    if status not in EnrollmentStatus.ALL:
        raise ValidationError(f"Invalid enrollment status: {status}", field="status")
    if enrollment.end_date is not None and status != enrollment.status:
        raise ValidationError("Enrollment is closed; re-enroll instead", field="status")
    if not is_valid_status_transition(enrollment.status, status):
        raise ValidationError(f"Cannot change status from {enrollment.status} to {status}", field="status")
    apply_enrollment_status(enrollment, status, reason, end_date)
    db.session.flush()
    return enrollment


def withdraw_enrollment(enrollment_id: str, reason: Optional[str] = None) -> Enrollment:
    return update_enrollment_status(enrollment_id, EnrollmentStatus.WITHDRAWN, reason=reason)


def re_enroll(profile_id: str, batch_id: Optional[str] = None, notes: Optional[str] = None) -> Enrollment:
    """Open a fresh REGISTERED enrollment after a withdrawal or completion."""
    if get_active_enrollment(profile_id) is not None:
        raise ConflictError("Profile already has an active enrollment")
    return create_enrollment(profile_id, batch_id=batch_id, status=EnrollmentStatus.REGISTERED, notes=notes)


def get_enrollments_by_program(
    program: str,
    status: Optional[str] = None,
    batch_id: Optional[str] = None,
    school_id: Optional[int] = None,
    active_only: bool = False,
) -> List[Enrollment]:
    q = Enrollment.query.join(ProgramProfile).filter(ProgramProfile.program == program)
    if status:
        q = q.filter(Enrollment.status == status)
    if batch_id:
        q = q.filter(Enrollment.batch_id == batch_id)
    if active_only:
        q = q.filter(Enrollment.status != EnrollmentStatus.WITHDRAWN, Enrollment.end_date.is_(None))
    if school_id is not None:
        q = q.join(Person, ProgramProfile.person_id == Person.id).filter(Person.school_id == school_id)
    return q.order_by(Enrollment.start_date.desc()).all()
