from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from flask import current_app
from sqlalchemy import func

from extensions import db
from models import Batch, Enrollment, EnrollmentStatus, Person, Program, ProgramProfile
from utils.enrollment import create_enrollment, get_active_enrollment
from utils.errors import ConflictError, NotFoundError, ValidationError


def _active_enrollment_filter():
    return (Enrollment.status != EnrollmentStatus.WITHDRAWN, Enrollment.end_date.is_(None))


class BatchService:
    """CRUD and student placement for Mahad batches (cohorts)."""

    def __init__(self, school_id: Optional[int] = None):
        self.school_id = school_id

    def _query(self):
        q = Batch.query
        if self.school_id is not None:
            q = q.filter(Batch.school_id == self.school_id)
        return q

    def get(self, batch_id: str) -> Batch:
        batch = self._query().filter(Batch.id == batch_id).first()
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    def student_count(self, batch_id: str) -> int:
        return (
            Enrollment.query.filter(Enrollment.batch_id == batch_id, *_active_enrollment_filter()).count()
        )

    def list_batches(self) -> List[Dict[str, Any]]:
        counts = dict(
            db.session.query(Enrollment.batch_id, func.count(Enrollment.id))
            .filter(Enrollment.batch_id.isnot(None), *_active_enrollment_filter())
            .group_by(Enrollment.batch_id)
            .all()
        )
        rows = []
        for batch in self._query().order_by(Batch.name).all():
            row = batch.to_dict()
            row["student_count"] = counts.get(batch.id, 0)
            rows.append(row)
        return rows

    def _check_name(self, name: Optional[str], exclude_id: Optional[str] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Batch name is required", field="name")
        q = self._query().filter(func.lower(Batch.name) == name.lower())
        if exclude_id:
            q = q.filter(Batch.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(f"A batch named '{name}' already exists")
        return name

    @staticmethod
    def _check_dates(start: Optional[date], end: Optional[date]) -> None:
        if start and end and end < start:
            raise ValidationError("End date cannot be before start date", field="end_date")

    def create(self, name: str, start_date: Optional[date] = None, end_date: Optional[date] = None) -> Batch:
        name = self._check_name(name)
        self._check_dates(start_date, end_date)
        batch = Batch(name=name, start_date=start_date, end_date=end_date, school_id=self.school_id)
        db.session.add(batch)
        db.session.commit()
        current_app.logger.info("Created batch %s (%s)", batch.name, batch.id)
        return batch

    def update(self, batch_id: str, name: Optional[str] = None, start_date: Optional[date] = None,
               end_date: Optional[date] = None) -> Batch:
        batch = self.get(batch_id)
        if name is not None:
            batch.name = self._check_name(name, exclude_id=batch.id)
        if start_date is not None:
            batch.start_date = start_date
        if end_date is not None:
            batch.end_date = end_date
        self._check_dates(batch.start_date, batch.end_date)
        db.session.commit()
        return batch

    def delete(self, batch_id: str) -> None:
        batch = self.get(batch_id)
        active = self.student_count(batch.id)
        if active:
            raise ConflictError(f"Batch has {active} active student(s); transfer them first")
        # Detach closed enrollments so history survives the delete
        Enrollment.query.filter(Enrollment.batch_id == batch.id).update({"batch_id": None})
        db.session.delete(batch)
        db.session.commit()
        current_app.logger.info("Deleted batch %s", batch_id)

    def assign_students(self, batch_id: str, profile_ids: Sequence[str]) -> Dict[str, Any]:
        """Place students into a batch.

        Students with an active enrollment are moved; others get a new
        ENROLLED enrollment. Failures are reported per student and do not
        stop the rest.
        """
        batch = self.get(batch_id)
        assigned = 0
        failed: List[str] = []
        errors: List[str] = []
        for profile_id in profile_ids:
            profile = db.session.get(ProgramProfile, profile_id)
            if profile is None:
                failed.append(profile_id)
                errors.append(f"{profile_id}: profile not found")
                continue
            if profile.program != Program.MAHAD:
                failed.append(profile_id)
                errors.append(f"{profile_id}: only Mahad students can be placed in batches")
                continue
            enrollment = get_active_enrollment(profile.id)
            if enrollment is not None:
                enrollment.batch_id = batch.id
            else:
                create_enrollment(profile.id, batch_id=batch.id, status=EnrollmentStatus.ENROLLED)
            assigned += 1
        db.session.commit()
        return {"success": not failed, "assigned_count": assigned, "failed": failed, "errors": errors}

    def transfer_students(self, from_batch_id: str, to_batch_id: str, profile_ids: Sequence[str]) -> Dict[str, Any]:
        if from_batch_id == to_batch_id:
            raise ValidationError("Source and destination batches must differ", field="to_batch_id")
        source = self.get(from_batch_id)
        target = self.get(to_batch_id)
        transferred = 0
        failed: List[str] = []
        errors: List[str] = []
        for profile_id in profile_ids:
            enrollment = get_active_enrollment(profile_id)
            if enrollment is None or enrollment.batch_id != source.id:
                failed.append(profile_id)
                errors.append(f"{profile_id}: no active enrollment in batch {source.name}")
                continue
            enrollment.batch_id = target.id
            transferred += 1
        db.session.commit()
        return {"success": not failed, "transferred_count": transferred, "failed": failed, "errors": errors}

    def _active_mahad_enrollments(self):
        q = (
            Enrollment.query.join(ProgramProfile)
            .filter(ProgramProfile.program == Program.MAHAD, *_active_enrollment_filter())
        )
        if self.school_id is not None:
            q = q.join(Person, ProgramProfile.person_id == Person.id).filter(Person.school_id == self.school_id)
        return q

    def unassigned_students(self) -> List[Dict[str, Any]]:
        rows = []
        for enrollment in self._active_mahad_enrollments().filter(Enrollment.batch_id.is_(None)).all():
            profile = enrollment.program_profile
            rows.append({
                "profile_id": profile.id,
                "name": profile.person.name,
                "status": enrollment.status,
                "enrollment_id": enrollment.id,
            })
        return rows

    def batch_students(self, batch_id: str) -> List[Dict[str, Any]]:
        batch = self.get(batch_id)
        rows = []
        for enrollment in Enrollment.query.filter(Enrollment.batch_id == batch.id, *_active_enrollment_filter()):
            profile = enrollment.program_profile
            rows.append({
                "profile_id": profile.id,
                "name": profile.person.name,
                "email": profile.person.email,
                "status": enrollment.status,
            })
        return sorted(rows, key=lambda r: r["name"].lower())

    def summary(self) -> Dict[str, int]:
        active = self._active_mahad_enrollments()
        total = active.count()
        unassigned = active.filter(Enrollment.batch_id.is_(None)).count()
        return {
            "total_batches": self._query().count(),
            "total_students": total,
            "assigned_students": total - unassigned,
            "unassigned_students": unassigned,
        }
