import pytest

from extensions import db
from models import (
    BillingType,
    EnrollmentStatus,
    GraduationStatus,
    PaymentFrequency,
    Person,
    Program,
    ProgramProfile,
)
from utils.billing import link_subscription_to_profiles
from utils.errors import ConflictError, ValidationError
from utils.students import StudentService


@pytest.fixture
def service(app):
    return StudentService()


def test_create_computes_mahad_rate_in_dollars(service):
    profile = service.create({
        "name": "Bilal Warsame",
        "email": "Bilal@Example.com",
        "phone": "+1 (612) 555-0101",
        "graduation_status": GraduationStatus.GRADUATE,
        "payment_frequency": PaymentFrequency.MONTHLY,
        "billing_type": BillingType.FULL_TIME,
    })
    assert profile.monthly_rate == 95
    assert profile.custom_rate is False
    assert profile.status == EnrollmentStatus.REGISTERED
    assert profile.person.email == "bilal@example.com"
    assert profile.person.phone == "6125550101"


def test_explicit_rate_marks_custom(service):
    profile = service.create({"name": "Custom Rate", "monthly_rate": "80", "billing_type": BillingType.FULL_TIME})
    assert profile.monthly_rate == 80
    assert profile.custom_rate is True


def test_create_reuses_person_by_email(service):
    mahad = service.create({"name": "Faadumo Ali", "email": "faadumo@example.com"})
    dugsi = service.create({"name": "Faadumo Ali", "email": "faadumo@example.com", "program": Program.DUGSI})
    assert mahad.person_id == dugsi.person_id
    assert Person.query.count() == 1
    with pytest.raises(ConflictError):
        service.create({"name": "Faadumo Ali", "email": "faadumo@example.com"})


def test_create_validates_input(service):
    with pytest.raises(ValidationError):
        service.create({"name": ""})
    with pytest.raises(ValidationError):
        service.create({"name": "X", "program": "CHESS"})
    with pytest.raises(ValidationError):
        service.create({"name": "X", "billing_type": "FREE"})
    with pytest.raises(ValidationError):
        service.create({"name": "X", "date_of_birth": "12/01/2010"})


def test_update_changes_email_and_recomputes_rate(service):
    profile = service.create({"name": "Ayaan Noor", "email": "old@example.com",
                              "billing_type": BillingType.FULL_TIME})
    assert profile.monthly_rate == 120
    service.update(profile.id, {"email": "new@example.com", "billing_type": BillingType.PART_TIME})
    db.session.expire_all()
    profile = db.session.get(ProgramProfile, profile.id)
    assert profile.person.email == "new@example.com"
    assert profile.monthly_rate == 60


def test_bulk_status_reports_invalid_transitions(service, make_student):
    registered = make_student(name="One Person", status=EnrollmentStatus.REGISTERED)
    enrolled = make_student(name="Two Person", status=EnrollmentStatus.ENROLLED)
    result = service.bulk_update_status([registered.id, enrolled.id], EnrollmentStatus.ON_LEAVE)
    assert result["updated_count"] == 1
    assert result["success"] is False
    assert registered.id in result["errors"][0]


def test_delete_refuses_billed_student(service, make_student, make_subscription):
    profile = make_student(email="billed@example.com", status=EnrollmentStatus.ENROLLED)
    sub = make_subscription(profile.person_id)
    link_subscription_to_profiles(sub.id, [profile.id], sub.amount)
    db.session.commit()
    with pytest.raises(ConflictError):
        service.delete(profile.id)


def test_find_duplicates_groups_shared_contacts(service, make_student):
    make_student(name="Hamza Ali", phone="612-555-0199")
    make_student(name="Hamza A.", phone="(612) 555 0199")
    make_student(name="Someone Else", phone="612-555-0000")
    groups = service.find_duplicates()
    assert len(groups) == 1
    assert groups[0]["value"] == "6125550199"
    assert len(groups[0]["people"]) == 2


def test_list_searches_name_and_contacts(service, make_student):
    make_student(name="Khadija Yusuf", email="khadija@example.com")
    make_student(name="Mohamed Abdi", email="m.abdi@example.com")
    assert [s["name"] for s in service.search("yusuf")] == ["Khadija Yusuf"]
    assert [s["name"] for s in service.search("abdi@")] == ["Mohamed Abdi"]
    assert service.list()["total"] == 2


def test_student_api_create_and_export(admin_client):
    r = admin_client.post('/api/students', json={"name": "Api Student", "email": "api@example.com"})
    assert r.status_code == 201
    profile_id = r.get_json()["id"]
    assert r.get_json()["enrollment"]["status"] == EnrollmentStatus.REGISTERED

    r = admin_client.get('/api/students/export')
    assert r.status_code == 200
    assert "attachment" in r.headers["Content-Disposition"]
    body = r.get_json()
    assert body["count"] == 1
    assert body["students"][0]["id"] == profile_id
    assert body["students"][0]["subscription_status"] is None


def test_student_api_withdraw_and_re_enroll(admin_client):
    profile_id = admin_client.post('/api/students', json={"name": "Leaving Student"}).get_json()["id"]
    r = admin_client.post(f'/api/students/{profile_id}/withdraw', json={"reason": "moved"})
    assert r.status_code == 200
    assert r.get_json()["status"] == EnrollmentStatus.WITHDRAWN
    assert r.get_json()["end_date"] is not None

    r = admin_client.post(f'/api/students/{profile_id}/re-enroll', json={})
    assert r.status_code == 201
    assert admin_client.post(f'/api/students/{profile_id}/re-enroll', json={}).status_code == 409
    assert len(admin_client.get(f'/api/students/{profile_id}/enrollments').get_json()["enrollments"]) == 2


def test_student_api_unknown_student(admin_client):
    assert admin_client.get('/api/students/nope').status_code == 404
