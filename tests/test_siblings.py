from datetime import date

import pytest

from extensions import db
from models import ContactType, DetectionMethod, GuardianRelationship, SiblingRelationship
from utils.errors import ConflictError, ValidationError
from utils.people import add_contact_point, create_person
from utils.siblings import (
    calculate_confidence_score,
    create_sibling_relationship,
    detect_potential_siblings,
    get_person_siblings,
    remove_sibling_relationship,
)


def _person(name, email=None, phone=None, dob=None):
    person = create_person(name, email, phone, dob)
    db.session.commit()
    return person


def test_confidence_scores():
    assert calculate_confidence_score(DetectionMethod.MANUAL) == 1.0
    assert calculate_confidence_score(DetectionMethod.GUARDIAN_MATCH, shared_guardians=1) == 0.9
    assert calculate_confidence_score(DetectionMethod.GUARDIAN_MATCH, shared_guardians=2) == 0.95
    assert calculate_confidence_score(DetectionMethod.CONTACT_MATCH, shared_contacts=5) == 0.95
    assert calculate_confidence_score(DetectionMethod.NAME_MATCH, name_match=True, age_difference_years=2) == 0.8
    assert calculate_confidence_score("UNKNOWN") == 0.0


def test_detect_by_guardian_contact_and_name(app):
    child = _person("Ali Omar", dob=date(2014, 3, 1))
    guardian = _person("Hawa Omar", email="hawa@example.com")
    by_guardian = _person("Sahra Jama")
    by_contact = _person("Idil Warsame", phone="612-555-0111")
    by_name = _person("Omar Hassan Omar", dob=date(2016, 5, 1))
    _person("Unrelated Person")

    db.session.add_all([
        GuardianRelationship(guardian_id=guardian.id, dependent_id=child.id),
        GuardianRelationship(guardian_id=guardian.id, dependent_id=by_guardian.id),
    ])
    add_contact_point(child, ContactType.PHONE, "(612) 555-0111")
    db.session.commit()

    candidates = detect_potential_siblings(child.id)
    by_id = {c["person_id"]: c for c in candidates}

    assert by_id[by_guardian.id]["method"] == DetectionMethod.GUARDIAN_MATCH
    assert by_id[by_contact.id]["method"] == DetectionMethod.CONTACT_MATCH
    assert by_id[by_name.id]["confidence"] == 0.7
    # the guardian shares the last name but is still only a name match
    assert by_id[guardian.id]["method"] == DetectionMethod.NAME_MATCH
    assert candidates[0]["person_id"] == by_guardian.id
    assert child.id not in by_id


def test_linked_people_are_not_suggested(app):
    a = _person("Nasra Abdi")
    b = _person("Deeqa Abdi")
    assert [c["person_id"] for c in detect_potential_siblings(a.id)] == [b.id]
    create_sibling_relationship(a.id, b.id)
    assert detect_potential_siblings(a.id) == []



def test_created_contact_match_stores_detected_confidence(app):
    a = _person("Ayaan Farah", email="family@example.com")
    b = _person("Hodan Yusuf", email="family@example.com")
    detected = {c["person_id"]: c for c in detect_potential_siblings(a.id)}[b.id]
    assert detected["method"] == DetectionMethod.CONTACT_MATCH
    rel = create_sibling_relationship(a.id, b.id, method=DetectionMethod.CONTACT_MATCH)
    assert rel.confidence == detected["confidence"] == 0.8
    other = _person("Guled Ali")
    assert create_sibling_relationship(a.id, other.id, method=DetectionMethod.GUARDIAN_MATCH).confidence == 0.9

def test_create_orders_pair_and_rejects_duplicates(app):
    a = _person("First Kid")
    b = _person("Second Kid")
    rel = create_sibling_relationship(b.id, a.id, verified_by="office")
    first, second = sorted((a.id, b.id))
    assert (rel.person1_id, rel.person2_id) == (first, second)
    assert rel.confidence == 1.0
    assert rel.verified_at is not None
    with pytest.raises(ConflictError):
        create_sibling_relationship(a.id, b.id)
    with pytest.raises(ValidationError):
        create_sibling_relationship(a.id, a.id)


def test_removed_relationship_can_be_restored(app):
    a = _person("Kid One")
    b = _person("Kid Two")
    rel = create_sibling_relationship(a.id, b.id, method=DetectionMethod.NAME_MATCH)
    assert rel.confidence == 0.5
    remove_sibling_relationship(rel.id)
    assert get_person_siblings(a.id) == []
    restored = create_sibling_relationship(a.id, b.id)
    assert restored.id == rel.id
    assert SiblingRelationship.query.count() == 1
    assert [s["id"] for s in get_person_siblings(a.id)] == [b.id]


def test_sibling_api(admin_client):
    a = _person("Api Kid")
    b = _person("Api Sibling")
    r = admin_client.post('/api/siblings', json={"person1_id": a.id, "person2_id": b.id, "confidence": 2})
    assert r.status_code == 400
    r = admin_client.post('/api/siblings', json={"person1_id": a.id, "person2_id": b.id})
    assert r.status_code == 201
    rel_id = r.get_json()["id"]
    r = admin_client.post(f'/api/siblings/relationships/{rel_id}/verify', json={"verified_by": "registrar"})
    assert r.get_json()["verified_by"] == "registrar"
    assert admin_client.get(f'/api/siblings/{b.id}').get_json()["siblings"][0]["id"] == a.id
