import pytest

from extensions import db
from models import Batch, EnrollmentStatus, Program
from utils.enrollment import (
    create_enrollment,
    get_active_enrollment,
    get_enrollments_by_program,
    re_enroll,
    update_enrollment_status,
    withdraw_enrollment,
)
from utils.errors import ConflictError, NotFoundError, ValidationError


def test_dugsi_enrollment_cannot_take_batch(make_student):
    batch = Batch(name="Only Mahad")
    db.session.add(batch)
    db.session.commit()
    child = make_student(program=Program.DUGSI)
    with pytest.raises(ValidationError):
        create_enrollment(child.id, batch_id=batch.id)


def test_unknown_batch_is_not_found(make_student):
    profile = make_student()
    with pytest.raises(NotFoundError):
        create_enrollment(profile.id, batch_id="missing")


def test_withdraw_sets_end_date_and_profile_status(make_student):
    profile = make_student(status=EnrollmentStatus.ENROLLED)
    enrollment = get_active_enrollment(profile.id)
    withdraw_enrollment(enrollment.id, reason="moved away")
    assert enrollment.end_date is not None
    assert enrollment.reason == "moved away"
    assert profile.status == EnrollmentStatus.WITHDRAWN
    assert get_active_enrollment(profile.id) is None


def test_transition_rules_are_enforced(make_student):
    profile = make_student(status=EnrollmentStatus.REGISTERED)
    enrollment = get_active_enrollment(profile.id)
    with pytest.raises(ValidationError):
        update_enrollment_status(enrollment.id, EnrollmentStatus.ON_LEAVE)
    update_enrollment_status(enrollment.id, EnrollmentStatus.ENROLLED)
    update_enrollment_status(enrollment.id, EnrollmentStatus.COMPLETED)
    assert enrollment.end_date is not None
    with pytest.raises(ValidationError):
        update_enrollment_status(enrollment.id, EnrollmentStatus.ENROLLED)


def test_re_enroll_opens_new_enrollment(make_student):
    profile = make_student(status=EnrollmentStatus.ENROLLED)
    with pytest.raises(ConflictError):
        re_enroll(profile.id)
    withdraw_enrollment(get_active_enrollment(profile.id).id)
    fresh = re_enroll(profile.id, notes="back for spring")
    assert fresh.status == EnrollmentStatus.REGISTERED
    assert fresh.end_date is None
    assert get_active_enrollment(profile.id).id == fresh.id
    assert len(get_enrollments_by_program(Program.MAHAD)) == 2
    assert len(get_enrollments_by_program(Program.MAHAD, active_only=True)) == 1


def test_enrollment_created_completed_is_closed(make_student):
    profile = make_student()
    enrollment = create_enrollment(profile.id, status=EnrollmentStatus.COMPLETED)
    assert enrollment.end_date == enrollment.start_date
    assert get_active_enrollment(profile.id) is None
    assert re_enroll(profile.id).status == EnrollmentStatus.REGISTERED
