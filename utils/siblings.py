from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import or_

from extensions import db
from models import ContactPoint, ContactType, DetectionMethod, GuardianRelationship, Person, SiblingRelationship
from utils.errors import ConflictError, NotFoundError, ValidationError

MAX_SIBLING_AGE_GAP_YEARS = 5


def _person(person_id: str) -> Person:
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError(f"Person {person_id} not found")
    return person


def _age_gap_years(a: Optional[date], b: Optional[date]) -> Optional[float]:
    if not a or not b:
        return None
    return abs((a - b).days) / 365.25


def _related_ids(person_id: str) -> set:
    rows = SiblingRelationship.query.filter(
        or_(SiblingRelationship.person1_id == person_id, SiblingRelationship.person2_id == person_id)
    ).all()
    return {r.person2_id if r.person1_id == person_id else r.person1_id for r in rows}


def calculate_confidence_score(
    method: str,
    shared_guardians: int = 0,
    shared_contacts: int = 0,
    name_match: bool = False,
    age_difference_years: Optional[float] = None,
) -> float:
    if method == DetectionMethod.MANUAL:
        score = 1.0
    elif method == DetectionMethod.GUARDIAN_MATCH:
        score = 0.95 if shared_guardians > 1 else 0.9
    elif method == DetectionMethod.CONTACT_MATCH:
        score = min(0.7 + 0.1 * max(shared_contacts, 0), 0.95)
    elif method == DetectionMethod.NAME_MATCH:
        score = 0.6 if name_match else 0.5
        if age_difference_years is not None and age_difference_years < MAX_SIBLING_AGE_GAP_YEARS:
            score += 0.2
        score = min(score, 0.9)
    else:
        score = 0.0
    return max(0.0, min(1.0, round(score, 2)))


def default_confidence(method: str) -> float:
    """Score for a single match found by *method*."""
    return calculate_confidence_score(method, shared_guardians=1, shared_contacts=1)


def detect_potential_siblings(person_id: str) -> List[Dict[str, Any]]:
    """Suggest people who are likely siblings of *person_id*.

    Shared guardian, shared contact and shared last name are checked. People
    already linked (in either direction, active or not) are left out. A
    candidate found by several methods keeps the highest confidence.
    """
    person = _person(person_id)
    skip = _related_ids(person.id) | {person.id}
    found: Dict[str, Dict[str, Any]] = {}

    def consider(candidate: Person, method: str, confidence: float, reason: str) -> None:
        if candidate.id in skip:
            return
        current = found.get(candidate.id)
        if current is None or confidence > current["confidence"]:
            found[candidate.id] = {
                "person_id": candidate.id,
                "name": candidate.name,
                "method": method,
                "confidence": confidence,
                "reasons": (current or {}).get("reasons", []) + [reason],
            }
        else:
            current["reasons"].append(reason)

    guardian_ids = [
        g.guardian_id for g in GuardianRelationship.query.filter_by(dependent_id=person.id, is_active=True)
    ]
    if guardian_ids:
        for rel in GuardianRelationship.query.filter(
            GuardianRelationship.guardian_id.in_(guardian_ids),
            GuardianRelationship.is_active.is_(True),
        ):
            consider(rel.dependent, DetectionMethod.GUARDIAN_MATCH, default_confidence(DetectionMethod.GUARDIAN_MATCH),
                     f"shared guardian {rel.guardian.name}")

    values = [
        (c.type, c.value) for c in person.contact_points
        if c.is_active and c.type in (ContactType.EMAIL, ContactType.PHONE)
    ]
    for contact_type, value in values:
        for cp in ContactPoint.query.filter(
            ContactPoint.type == contact_type, ContactPoint.value == value, ContactPoint.person_id != person.id,
        ):
            consider(cp.person, DetectionMethod.CONTACT_MATCH, default_confidence(DetectionMethod.CONTACT_MATCH),
                     f"shared {contact_type.lower()} {value}")

    last_name = person.last_name
    if last_name:
        q = Person.query.filter(Person.id != person.id, Person.name.ilike(f"% {last_name}"))
        if person.school_id is not None:
            q = q.filter(Person.school_id == person.school_id)
        for candidate in q:
            if candidate.last_name != last_name:
                continue
            gap = _age_gap_years(person.date_of_birth, candidate.date_of_birth)
            confidence = calculate_confidence_score(DetectionMethod.NAME_MATCH, age_difference_years=gap)
            consider(candidate, DetectionMethod.NAME_MATCH, confidence, f"shared last name {last_name}")

    return sorted(found.values(), key=lambda c: (-c["confidence"], c["name"]))


def create_sibling_relationship(
    person1_id: str,
    person2_id: str,
    method: str = DetectionMethod.MANUAL,
    confidence: Optional[float] = None,
    verified_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> SiblingRelationship:
    if person1_id == person2_id:
        raise ValidationError("A person cannot be their own sibling", field="person2_id")
    if method not in DetectionMethod.ALL:
        raise ValidationError(f"Invalid detection method: {method}", field="method")
    _person(person1_id)
    _person(person2_id)
    first, second = sorted((person1_id, person2_id))
    if confidence is None:
        confidence = default_confidence(method)

    rel = SiblingRelationship.query.filter_by(person1_id=first, person2_id=second).first()
    if rel is not None:
        if rel.is_active:
            raise ConflictError("Sibling relationship already exists")
        rel.is_active = True
    else:
        rel = SiblingRelationship(person1_id=first, person2_id=second)
        db.session.add(rel)
    rel.detection_method = method
    rel.confidence = confidence
    rel.notes = notes
    if verified_by:
        rel.verified_by = verified_by
        rel.verified_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info("Linked siblings %s and %s (%s)", first, second, method)
    return rel


def _relationship(relationship_id: str) -> SiblingRelationship:
    rel = db.session.get(SiblingRelationship, relationship_id)
    if rel is None:
        raise NotFoundError(f"Sibling relationship {relationship_id} not found")
    return rel


def verify_sibling_relationship(relationship_id: str, verified_by: str) -> SiblingRelationship:
    if not verified_by:
        raise ValidationError("verified_by is required", field="verified_by")
    rel = _relationship(relationship_id)
    rel.verified_by = verified_by
    rel.verified_at = datetime.utcnow()
    db.session.commit()
    return rel


def remove_sibling_relationship(relationship_id: str) -> SiblingRelationship:
    rel = _relationship(relationship_id)
    rel.is_active = False
    db.session.commit()
    return rel


def get_person_siblings(person_id: str) -> List[Dict[str, Any]]:
    _person(person_id)
    rows = SiblingRelationship.query.filter(
        or_(SiblingRelationship.person1_id == person_id, SiblingRelationship.person2_id == person_id),
        SiblingRelationship.is_active.is_(True),
    ).all()
    siblings = []
    for rel in rows:
        other = rel.other(person_id)
        item = other.to_dict()
        item["relationship"] = rel.to_dict()
        item["programs"] = [p.program for p in other.program_profiles]
        siblings.append(item)
    return sorted(siblings, key=lambda s: s["name"].lower())
