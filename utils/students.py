from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from flask import current_app
from sqlalchemy import func, or_

from extensions import db
from models import (
    BillingAssignment,
    BillingType,
    ContactPoint,
    ContactType,
    Enrollment,
    EnrollmentStatus,
    GraduationStatus,
    PaymentFrequency,
    Person,
    Program,
    ProgramProfile,
)
from utils.billing import get_billing_status_for_profiles
from utils.enrollment import create_enrollment, get_active_enrollment, update_enrollment_status
from utils.errors import ConflictError, NotFoundError, ServiceError, ValidationError
from utils.people import add_contact_point, create_person, find_person_by_email
from utils.siblings import get_person_siblings
from utils.tuition import calculate_mahad_rate

_PROFILE_FIELDS = (
    "gender", "grade_level", "school_name", "family_reference_id",
    "graduation_status", "payment_frequency", "billing_type", "payment_notes",
)
_CHOICES = {
    "graduation_status": GraduationStatus.ALL,
    "payment_frequency": PaymentFrequency.ALL,
    "billing_type": BillingType.ALL,
    "gender": ("MALE", "FEMALE"),
}


def _parse_date(value) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Invalid date, expected YYYY-MM-DD", field="date_of_birth")


class StudentService:
    """Student records on top of Person + ProgramProfile + Enrollment."""

    def __init__(self, school_id: Optional[int] = None):
        self.school_id = school_id

    # ----- lookups -----

    def _profiles(self):
        q = ProgramProfile.query.join(Person, ProgramProfile.person_id == Person.id)
        if self.school_id is not None:
            q = q.filter(Person.school_id == self.school_id)
        return q

    def get_profile(self, profile_id: str) -> ProgramProfile:
        profile = self._profiles().filter(ProgramProfile.id == profile_id).first()
        if profile is None:
            raise NotFoundError(f"Student {profile_id} not found")
        return profile

    def to_dict(self, profile: ProgramProfile, include_billing: bool = False) -> Dict[str, Any]:
        person = profile.person
        enrollment = get_active_enrollment(profile.id)
        data = profile.to_dict()
        data.update({
            "name": person.name,
            "email": person.email,
            "phone": person.phone,
            "date_of_birth": person.date_of_birth.isoformat() if person.date_of_birth else None,
            "batch_id": enrollment.batch_id if enrollment else None,
            "batch_name": enrollment.batch.name if enrollment and enrollment.batch else None,
            "enrollment": enrollment.to_dict() if enrollment else None,
        })
        if include_billing:
            data["billing"] = get_billing_status_for_profiles([profile.id])[profile.id]
        return data

    def get(self, profile_id: str) -> Dict[str, Any]:
        return self.to_dict(self.get_profile(profile_id), include_billing=True)

    # ----- writes -----

    @staticmethod
    def _validate_choices(data: Dict[str, Any]) -> None:
        for field, allowed in _CHOICES.items():
            value = data.get(field)
            if value and value not in allowed:
                raise ValidationError(f"Invalid {field}: {value}", field=field)

    @staticmethod
    def _apply_rate(profile: ProgramProfile, data: Dict[str, Any]) -> None:
        # monthly_rate is whole dollars; tuition tables are cents
        if data.get("monthly_rate") not in (None, ""):
            try:
                profile.monthly_rate = int(data["monthly_rate"])
            except (TypeError, ValueError):
                raise ValidationError("monthly_rate must be a whole number", field="monthly_rate")
            profile.custom_rate = True
        elif profile.program == Program.MAHAD and profile.billing_type and not profile.custom_rate:
            profile.monthly_rate = calculate_mahad_rate(
                profile.graduation_status, profile.payment_frequency, profile.billing_type,
            ) // 100

    def create(self, data: Dict[str, Any]) -> ProgramProfile:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required", field="name")
        program = data.get("program") or Program.MAHAD
        if program not in Program.ALL:
            raise ValidationError(f"Invalid program: {program}", field="program")
        self._validate_choices(data)
        dob = _parse_date(data.get("date_of_birth"))

        person = find_person_by_email(data.get("email"), self.school_id)
        if person is None:
            person = create_person(name, data.get("email"), data.get("phone"), dob, self.school_id)
        else:
            add_contact_point(person, ContactType.PHONE, data.get("phone"))
            if dob and not person.date_of_birth:
                person.date_of_birth = dob
        if ProgramProfile.query.filter_by(person_id=person.id, program=program).first() is not None:
            raise ConflictError(f"{person.name} already has a {program} profile")

        profile = ProgramProfile(person_id=person.id, program=program)
        for field in _PROFILE_FIELDS:
            if data.get(field) not in (None, ""):
                setattr(profile, field, data[field])
        db.session.add(profile)
        self._apply_rate(profile, data)
        db.session.flush()

        create_enrollment(profile.id, batch_id=data.get("batch_id") or None,
                          status=_initial_status(data.get("batch_id")))
        db.session.commit()
        current_app.logger.info("Created %s student %s (%s)", program, person.name, profile.id)
        return profile

    def update(self, profile_id: str, data: Dict[str, Any]) -> ProgramProfile:
        profile = self.get_profile(profile_id)
        person = profile.person
        self._validate_choices(data)
        if "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("Name is required", field="name")
            person.name = name
        if "date_of_birth" in data:
            person.date_of_birth = _parse_date(data.get("date_of_birth"))
        if data.get("email"):
            for cp in person.contact_points:
                if cp.type == ContactType.EMAIL:
                    cp.is_primary = False
            cp = add_contact_point(person, ContactType.EMAIL, data["email"], is_primary=True)
            if cp is not None:
                cp.is_primary = True
        if data.get("phone"):
            add_contact_point(person, ContactType.PHONE, data["phone"])
        for field in _PROFILE_FIELDS:
            if field in data:
                setattr(profile, field, data[field] or None)
        if data.get("custom_rate") is False:
            profile.custom_rate = False
        self._apply_rate(profile, data)

        if "batch_id" in data:
            enrollment = get_active_enrollment(profile.id)
            batch_id = data.get("batch_id") or None
            if enrollment is None:
                create_enrollment(profile.id, batch_id=batch_id, status=_initial_status(batch_id))
            elif batch_id != enrollment.batch_id:
                if batch_id and profile.program == Program.DUGSI:
                    raise ValidationError("Dugsi enrollments cannot be assigned to a batch", field="batch_id")
                enrollment.batch_id = batch_id
        db.session.commit()
        return profile

    def delete(self, profile_id: str) -> None:
        profile = self.get_profile(profile_id)
        if BillingAssignment.query.filter_by(program_profile_id=profile.id, is_active=True).first() is not None:
            raise ConflictError("Student has an active subscription; cancel or unlink it first")
        db.session.delete(profile)
        db.session.commit()
        current_app.logger.info("Deleted student profile %s", profile_id)

    def bulk_update_status(self, profile_ids: Sequence[str], status: str, reason: Optional[str] = None) -> Dict[str, Any]:
        updated = 0
        errors: List[str] = []
        for profile_id in profile_ids:
            enrollment = get_active_enrollment(profile_id)
            if enrollment is None:
                errors.append(f"{profile_id}: no active enrollment")
                continue
            try:
                update_enrollment_status(enrollment.id, status, reason=reason)
            except ServiceError as e:
                errors.append(f"{profile_id}: {e.message}")
                continue
            updated += 1
        db.session.commit()
        return {"success": not errors, "updated_count": updated, "errors": errors}

    # ----- queries -----

    def list(self, program: Optional[str] = None, status: Optional[str] = None, batch_id: Optional[str] = None,
             search: Optional[str] = None, page: int = 1, per_page: int = 50) -> Dict[str, Any]:
        q = self._profiles()
        if program:
            q = q.filter(ProgramProfile.program == program)
        if status:
            q = q.filter(ProgramProfile.status == status)
        if batch_id:
            q = q.join(Enrollment, Enrollment.program_profile_id == ProgramProfile.id).filter(
                Enrollment.batch_id == batch_id, Enrollment.end_date.is_(None),
            )
        if search:
            term = f"%{search.strip().lower()}%"
            contact_match = (
                db.session.query(ContactPoint.person_id).filter(func.lower(ContactPoint.value).like(term))
            )
            q = q.filter(or_(func.lower(Person.name).like(term), Person.id.in_(contact_match)))
        total = q.count()
        page = max(page, 1)
        rows = q.order_by(Person.name).offset((page - 1) * per_page).limit(per_page).all()
        return {"items": [self.to_dict(p) for p in rows], "total": total, "page": page, "per_page": per_page}

    def search(self, term: str, limit: int = 20) -> List[Dict[str, Any]]:
        return self.list(search=term, per_page=limit)["items"]

    def siblings(self, profile_id: str) -> List[Dict[str, Any]]:
        profile = self.get_profile(profile_id)
        return get_person_siblings(profile.person_id)

    def find_duplicates(self) -> List[Dict[str, Any]]:
        """Groups of distinct people sharing an email or phone contact."""
        q = (
            db.session.query(ContactPoint.type, ContactPoint.value, func.count(func.distinct(ContactPoint.person_id)))
            .join(Person, ContactPoint.person_id == Person.id)
            .filter(ContactPoint.type.in_((ContactType.EMAIL, ContactType.PHONE)), ContactPoint.is_active.is_(True))
        )
        if self.school_id is not None:
            q = q.filter(Person.school_id == self.school_id)
        groups = []
        for contact_type, value, count in q.group_by(ContactPoint.type, ContactPoint.value).all():
            if count < 2:
                continue
            people = (
                Person.query.join(ContactPoint)
                .filter(ContactPoint.type == contact_type, ContactPoint.value == value)
                .order_by(Person.created_at)
                .all()
            )
            groups.append({
                "match_type": contact_type,
                "value": value,
                "people": [p.to_dict() for p in people],
            })
        return groups

    def export(self, program: Optional[str] = None) -> List[Dict[str, Any]]:
        """Flat JSON-ready rows for every student, including billing state."""
        q = self._profiles()
        if program:
            q = q.filter(ProgramProfile.program == program)
        profiles = q.order_by(Person.name).all()
        billing = get_billing_status_for_profiles([p.id for p in profiles])
        rows = []
        for profile in profiles:
            row = self.to_dict(profile)
            row.pop("enrollment", None)
            enrollment = get_active_enrollment(profile.id)
            row["enrollment_status"] = enrollment.status if enrollment else None
            row["enrollment_start"] = enrollment.start_date.isoformat() if enrollment else None
            row["subscription_status"] = billing[profile.id]["subscription_status"]
            row["paid_until"] = billing[profile.id]["paid_until"]
            rows.append(row)
        return rows


def _initial_status(batch_id: Optional[str]) -> str:
    return EnrollmentStatus.ENROLLED if batch_id else EnrollmentStatus.REGISTERED
