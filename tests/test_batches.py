import pytest

from extensions import db
from models import EnrollmentStatus, Program
from utils.batches import BatchService
from utils.enrollment import get_active_enrollment
from utils.errors import ConflictError, ValidationError


@pytest.fixture
def service(app):
    return BatchService()


def test_create_rejects_duplicate_names(service):
    service.create("Cohort 2026")
    with pytest.raises(ConflictError):
        service.create("cohort 2026")
    with pytest.raises(ValidationError):
        service.create("  ")


def test_assign_moves_or_creates_enrollments(service, make_student):
    batch = service.create("Cohort A")
    enrolled = make_student(name="Yusuf Ali", status=EnrollmentStatus.REGISTERED)
    fresh = make_student(name="Hodan Ali")
    dugsi = make_student(name="Small Child", program=Program.DUGSI)

    result = service.assign_students(batch.id, [enrolled.id, fresh.id, dugsi.id, "missing"])

    assert result["assigned_count"] == 2
    assert result["success"] is False
    assert set(result["failed"]) == {dugsi.id, "missing"}
    assert len(result["errors"]) == 2
    assert get_active_enrollment(enrolled.id).batch_id == batch.id
    assert get_active_enrollment(enrolled.id).status == EnrollmentStatus.REGISTERED
    assert get_active_enrollment(fresh.id).status == EnrollmentStatus.ENROLLED
    assert service.list_batches()[0]["student_count"] == 2


def test_transfer_requires_membership_in_source(service, make_student):
    a = service.create("A")
    b = service.create("B")
    inside = make_student(name="Inside Student", status=EnrollmentStatus.ENROLLED, batch_id=a.id)
    outside = make_student(name="Outside Student", status=EnrollmentStatus.ENROLLED)

    result = service.transfer_students(a.id, b.id, [inside.id, outside.id])

    assert result["transferred_count"] == 1
    assert result["failed"] == [outside.id]
    assert get_active_enrollment(inside.id).batch_id == b.id
    with pytest.raises(ValidationError):
        service.transfer_students(a.id, a.id, [inside.id])


def test_delete_refuses_batch_with_students(service, make_student):
    batch = service.create("Busy")
    make_student(status=EnrollmentStatus.ENROLLED, batch_id=batch.id)
    with pytest.raises(ConflictError):
        service.delete(batch.id)


def test_summary_and_unassigned(service, make_student):
    batch = service.create("Cohort S")
    make_student(name="Placed One", status=EnrollmentStatus.ENROLLED, batch_id=batch.id)
    loose = make_student(name="Loose One", status=EnrollmentStatus.REGISTERED)
    make_student(name="Gone One", status=EnrollmentStatus.WITHDRAWN)

    summary = service.summary()
    assert summary == {"total_batches": 1, "total_students": 2, "assigned_students": 1, "unassigned_students": 1}
    assert [s["profile_id"] for s in service.unassigned_students()] == [loose.id]


def test_batch_api(admin_client, make_student):
    r = admin_client.post('/api/batches', json={"name": "API Cohort", "start_date": "2026-09-01"})
    assert r.status_code == 201
    batch_id = r.get_json()["id"]
    student = make_student(status=EnrollmentStatus.REGISTERED)

    r = admin_client.post(f'/api/batches/{batch_id}/assign', json={"profile_ids": [student.id]})
    assert r.get_json()["assigned_count"] == 1
    r = admin_client.get(f'/api/batches/{batch_id}')
    assert [s["profile_id"] for s in r.get_json()["students"]] == [student.id]
    assert admin_client.post('/api/batches', json={"name": "API Cohort"}).status_code == 409
    assert admin_client.post('/api/batches', json={"name": "X", "start_date": "09/01/2026"}).status_code == 400


def test_batch_api_requires_login(client):
    assert client.get('/api/batches').status_code == 401
