from __future__ import annotations

from datetime import date
from typing import Optional

from extensions import db
from models import ContactPoint, ContactType, Person


def normalize_email(raw: str | None) -> str | None:
    if not raw:
        return None
    email = str(raw).strip().lower()
    return email or None


def normalize_phone(raw: str | None) -> str | None:
    """Digits only; a leading US country code on 11-digit numbers is dropped."""
    if not raw:
        return None
    digits = "".join(ch for ch in str(raw) if ch.isdigit())
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits or None


def _find_by_contact(contact_type: str, value: Optional[str], school_id: Optional[int] = None) -> Optional[Person]:
    if not value:
        return None
    q = (
        Person.query.join(ContactPoint)
        .filter(ContactPoint.type == contact_type, ContactPoint.value == value, ContactPoint.is_active.is_(True))
    )
    if school_id is not None:
        q = q.filter(Person.school_id == school_id)
    return q.order_by(Person.created_at).first()


def find_person_by_email(email: str | None, school_id: Optional[int] = None) -> Optional[Person]:
    return _find_by_contact(ContactType.EMAIL, normalize_email(email), school_id)


def find_person_by_phone(phone: str | None, school_id: Optional[int] = None) -> Optional[Person]:
    return _find_by_contact(ContactType.PHONE, normalize_phone(phone), school_id)


def add_contact_point(person: Person, contact_type: str, value: str | None, is_primary: bool = False) -> Optional[ContactPoint]:
    """Attach a contact to *person* unless it is already present."""
    if contact_type == ContactType.EMAIL:
        value = normalize_email(value)
    elif contact_type in (ContactType.PHONE, ContactType.WHATSAPP):
        value = normalize_phone(value)
    if not value:
        return None
    for existing in person.contact_points:
        if existing.type == contact_type and existing.value == value:
            existing.is_active = True
            return existing
    cp = ContactPoint(type=contact_type, value=value, is_primary=is_primary)
    person.contact_points.append(cp)
    return cp


def create_person(
    name: str,
    email: str | None = None,
    phone: str | None = None,
    date_of_birth: Optional[date] = None,
    school_id: Optional[int] = None,
) -> Person:
    person = Person(name=name.strip(), date_of_birth=date_of_birth, school_id=school_id)
    db.session.add(person)
    add_contact_point(person, ContactType.EMAIL, email, is_primary=True)
    add_contact_point(person, ContactType.PHONE, phone, is_primary=not email)
    db.session.flush()
    return person
