from datetime import datetime

from extensions import db
from models import (
    BillingAccount,
    BillingAssignment,
    EnrollmentStatus,
    GuardianRelationship,
    Person,
    Program,
    ProgramProfile,
    School,
    Student,
    Subscription,
)
from utils.enrollment import get_active_enrollment, re_enroll
from utils.legacy_migration import migrate_legacy_students


def _legacy(**fields):
    fields.setdefault("name", "Legacy Student")
    row = Student(**fields)
    db.session.add(row)
    db.session.commit()
    return row


def test_migrates_person_profile_and_enrollment(app):
    row = _legacy(name="Zakariye Aden", email="Zak@Example.com", phone="612-555-0142",
                  status="enrolled", monthly_rate=110, custom_rate=True)
    result = migrate_legacy_students()
    assert result == {"migrated": 1, "skipped": 0, "errors": []}

    profile = db.session.get(ProgramProfile, db.session.get(Student, row.id).migrated_profile_id)
    assert profile.program == Program.MAHAD
    assert profile.monthly_rate == 110
    assert profile.custom_rate is True
    assert profile.person.email == "zak@example.com"
    assert profile.person.phone == "6125550142"
    assert get_active_enrollment(profile.id).status == EnrollmentStatus.ENROLLED


def test_second_run_only_picks_up_new_rows(app):
    _legacy(name="First Row", email="first@example.com")
    migrate_legacy_students()
    _legacy(name="Second Row", email="second@example.com")
    result = migrate_legacy_students()
    assert result["migrated"] == 1
    assert result["skipped"] == 1
    assert ProgramProfile.query.count() == 2
    assert migrate_legacy_students()["migrated"] == 0


def test_withdrawn_rows_get_closed_enrollments(app):
    row = _legacy(name="Old Student", status="withdrawn", created_at=datetime(2024, 9, 1))
    migrate_legacy_students()
    profile = db.session.get(ProgramProfile, db.session.get(Student, row.id).migrated_profile_id)
    enrollment = profile.enrollments[0]
    assert enrollment.status == EnrollmentStatus.WITHDRAWN
    assert enrollment.end_date == datetime(2024, 9, 1)
    assert get_active_enrollment(profile.id) is None



def test_completed_rows_are_closed_and_can_re_enroll(app):
    row = _legacy(name="Graduate", status="completed", created_at=datetime(2023, 9, 1))
    migrate_legacy_students()
    profile = db.session.get(ProgramProfile, db.session.get(Student, row.id).migrated_profile_id)
    assert profile.enrollments[0].status == EnrollmentStatus.COMPLETED
    assert profile.enrollments[0].end_date == datetime(2023, 9, 1)
    assert get_active_enrollment(profile.id) is None

    fresh = re_enroll(profile.id)
    assert fresh.status == EnrollmentStatus.REGISTERED
    assert fresh.end_date is None


def test_skipped_count_is_scoped_to_school(app):
    north = School(code="north", name="North")
    south = School(code="south", name="South")
    db.session.add_all([north, south])
    db.session.commit()
    _legacy(name="North Kid", email="north@example.com", school_id=north.id)
    _legacy(name="South Kid", email="south@example.com", school_id=south.id)
    migrate_legacy_students(school_id=north.id)

    result = migrate_legacy_students(school_id=south.id)
    assert result["migrated"] == 1
    assert result["skipped"] == 0
    assert migrate_legacy_students(school_id=north.id)["skipped"] == 1

def test_siblings_share_subscription_and_guardian(app):
    shared = dict(parent_email="mom@example.com", stripe_customer_id="cus_fam", stripe_subscription_id="sub_fam",
                  subscription_status="active", program=Program.DUGSI, status="enrolled", monthly_rate=80)
    _legacy(name="Child One", **shared)
    _legacy(name="Child Two", **shared)
    migrate_legacy_students()

    sub = Subscription.query.filter_by(stripe_subscription_id="sub_fam").one()
    assert sub.amount == 16000
    assert BillingAssignment.query.filter_by(subscription_id=sub.id).count() == 2
    guardian = Person.query.filter(Person.name == "Parent of Child One").one()
    account = BillingAccount.query.one()
    assert account.person_id == guardian.id
    assert account.stripe_customer_id_dugsi == "cus_fam"
    assert GuardianRelationship.query.filter_by(guardian_id=guardian.id).count() == 2


def test_migration_endpoint(admin_client):
    _legacy(name="Endpoint Row")
    r = admin_client.post('/admin/migrate-legacy', json={"all_schools": True})
    assert r.status_code == 200
    assert r.get_json()["migrated"] == 1
    assert admin_client.get('/admin/dashboard').get_json()["legacy_pending"] == 0
