from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from extensions import db
from models import (
    AttendanceRecord,
    AttendanceSession,
    AttendanceStatus,
    ClassEnrollment,
    ProgramProfile,
    Shift,
    StudyClass,
)
from utils.errors import ConflictError, NotFoundError, ValidationError

_SESSION_FIELDS = ("surah_name", "ayat_from", "ayat_to", "lesson_completed", "lesson_notes", "notes")


def _get(model, ident, label):
    obj = db.session.get(model, ident)
    if obj is None:
        raise NotFoundError(f"{label} {ident} not found")
    return obj


# -----------------------------
# Classes
# -----------------------------

def create_class(name: str, shift: str = Shift.MORNING, teacher_name: Optional[str] = None,
                 description: Optional[str] = None, school_id: Optional[int] = None) -> StudyClass:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Class name is required", field="name")
    if shift not in Shift.ALL:
        raise ValidationError(f"Invalid shift: {shift}", field="shift")
    if StudyClass.query.filter_by(school_id=school_id, name=name).first() is not None:
        raise ConflictError(f"A class named '{name}' already exists")
    cls = StudyClass(name=name, shift=shift, teacher_name=teacher_name, description=description, school_id=school_id)
    db.session.add(cls)
    db.session.commit()
    return cls


def list_classes(school_id: Optional[int] = None, active_only: bool = True) -> List[StudyClass]:
    q = StudyClass.query
    if school_id is not None:
        q = q.filter(StudyClass.school_id == school_id)
    if active_only:
        q = q.filter(StudyClass.is_active.is_(True))
    return q.order_by(StudyClass.name).all()


def enroll_in_class(class_id: str, profile_id: str) -> ClassEnrollment:
    """Put a student in a class, closing any other active class enrollment."""
    cls = _get(StudyClass, class_id, "Class")
    _get(ProgramProfile, profile_id, "Program profile")
    now = datetime.utcnow()
    for other in ClassEnrollment.query.filter_by(program_profile_id=profile_id, is_active=True):
        if other.class_id != cls.id:
            other.is_active = False
            other.end_date = now
    enrollment = ClassEnrollment.query.filter_by(class_id=cls.id, program_profile_id=profile_id).first()
    if enrollment is None:
        enrollment = ClassEnrollment(class_id=cls.id, program_profile_id=profile_id)
        db.session.add(enrollment)
    else:
        enrollment.is_active = True
        enrollment.end_date = None
        enrollment.start_date = now
    db.session.commit()
    return enrollment


def class_students(class_id: str) -> List[ProgramProfile]:
    _get(StudyClass, class_id, "Class")
    return [
        e.program_profile for e in ClassEnrollment.query.filter_by(class_id=class_id, is_active=True)
    ]


# -----------------------------
# Sessions and marking
# -----------------------------

def create_session(class_id: str, session_date: date, **lesson) -> AttendanceSession:
    _get(StudyClass, class_id, "Class")
    if AttendanceSession.query.filter_by(class_id=class_id, date=session_date).first() is not None:
        raise ConflictError(f"A session already exists for this class on {session_date.isoformat()}")
    ayat_from, ayat_to = lesson.get("ayat_from"), lesson.get("ayat_to")
    if ayat_from is not None and ayat_to is not None and ayat_to < ayat_from:
        raise ValidationError("ayat_to cannot be before ayat_from", field="ayat_to")
    session = AttendanceSession(class_id=class_id, date=session_date)
    for field in _SESSION_FIELDS:
        if lesson.get(field) is not None:
            setattr(session, field, lesson[field])
    db.session.add(session)
    db.session.commit()
    return session


def _open_session(session_id: str) -> AttendanceSession:
    session = _get(AttendanceSession, session_id, "Attendance session")
    if session.is_closed:
        raise ValidationError("Attendance session is closed", field="session_id")
    return session


def _upsert_record(session: AttendanceSession, profile_id: str, status: str,
                   notes: Optional[str], marked_by: Optional[str]) -> AttendanceRecord:
    if status not in AttendanceStatus.ALL:
        raise ValidationError(f"Invalid attendance status: {status}", field="status")
    record = AttendanceRecord.query.filter_by(session_id=session.id, program_profile_id=profile_id).first()
    if record is None:
        _get(ProgramProfile, profile_id, "Program profile")
        record = AttendanceRecord(session_id=session.id, program_profile_id=profile_id)
        db.session.add(record)
    record.status = status
    record.notes = notes
    record.marked_by = marked_by
    record.marked_at = datetime.utcnow()
    return record


def mark_attendance(session_id: str, profile_id: str, status: str, notes: Optional[str] = None,
                    marked_by: Optional[str] = None) -> AttendanceRecord:
    session = _open_session(session_id)
    record = _upsert_record(session, profile_id, status, notes, marked_by)
    db.session.commit()
    return record


def bulk_mark_attendance(session_id: str, records: Sequence[Dict[str, Any]],
                         marked_by: Optional[str] = None) -> List[AttendanceRecord]:
    """Mark many students at once; all-or-nothing."""
    session = _open_session(session_id)
    saved = []
    for item in records:
        profile_id = item.get("profile_id")
        if not profile_id:
            raise ValidationError("profile_id is required for each record", field="profile_id")
        saved.append(_upsert_record(session, profile_id, item.get("status"), item.get("notes"), marked_by))
    db.session.commit()
    return saved


def close_session(session_id: str, lesson_completed: Optional[bool] = None,
                  lesson_notes: Optional[str] = None) -> AttendanceSession:
    session = _open_session(session_id)
    if lesson_completed is not None:
        session.lesson_completed = lesson_completed
    if lesson_notes:
        session.lesson_notes = lesson_notes
    session.is_closed = True
    db.session.commit()
    return session


# -----------------------------
# Reporting
# -----------------------------

def _rate(present: int, late: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round((present + late) / total * 100, 1)


def attendance_stats(class_id: Optional[str] = None, profile_id: Optional[str] = None,
                     start: Optional[date] = None, end: Optional[date] = None) -> Dict[str, Any]:
    q = AttendanceRecord.query.join(AttendanceSession)
    if class_id:
        q = q.filter(AttendanceSession.class_id == class_id)
    if profile_id:
        q = q.filter(AttendanceRecord.program_profile_id == profile_id)
    if start:
        q = q.filter(AttendanceSession.date >= start)
    if end:
        q = q.filter(AttendanceSession.date <= end)
    counts = {s: 0 for s in AttendanceStatus.ALL}
    for record in q.all():
        counts[record.status] = counts.get(record.status, 0) + 1
    total = sum(counts.values())
    return {
        "total": total,
        "present": counts[AttendanceStatus.PRESENT],
        "absent": counts[AttendanceStatus.ABSENT],
        "late": counts[AttendanceStatus.LATE],
        "excused": counts[AttendanceStatus.EXCUSED],
        "attendance_rate": _rate(counts[AttendanceStatus.PRESENT], counts[AttendanceStatus.LATE], total),
    }


def attendance_history(profile_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    _get(ProgramProfile, profile_id, "Program profile")
    rows = (
        AttendanceRecord.query.join(AttendanceSession)
        .filter(AttendanceRecord.program_profile_id == profile_id)
        .order_by(AttendanceSession.date.desc())
        .limit(limit)
        .all()
    )
    history = []
    for record in rows:
        item = record.to_dict()
        item["date"] = record.session.date.isoformat()
        item["class_id"] = record.session.class_id
        item["surah_name"] = record.session.surah_name
        history.append(item)
    return history
