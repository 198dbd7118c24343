from __future__ import annotations

from datetime import datetime

from flask import Blueprint, request, jsonify

from models import Shift
from utils import admin_required
from utils.attendance import (
    attendance_history,
    attendance_stats,
    bulk_mark_attendance,
    class_students,
    close_session,
    create_class,
    create_session,
    enroll_in_class,
    list_classes,
    mark_attendance,
)
from utils.errors import ValidationError
from utils.tenant import current_school_id

attendance_bp = Blueprint("attendance", __name__, url_prefix="/api/attendance")


def _date(value, field="date"):
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}, expected YYYY-MM-DD", field=field)


@attendance_bp.route("/classes", methods=["GET"])
@admin_required
def classes():
    return jsonify({"classes": [c.to_dict() for c in list_classes(current_school_id())]})


@attendance_bp.route("/classes", methods=["POST"])
@admin_required
def new_class():
    data = request.get_json(silent=True) or {}
    cls = create_class(
        data.get("name"),
        shift=data.get("shift") or Shift.MORNING,
        teacher_name=data.get("teacher_name"),
        description=data.get("description"),
        school_id=current_school_id(),
    )
    return jsonify(cls.to_dict()), 201


@attendance_bp.route("/classes/<class_id>/students", methods=["GET"])
@admin_required
def students(class_id):
    return jsonify({"students": [
        {"profile_id": p.id, "name": p.person.name} for p in class_students(class_id)
    ]})


@attendance_bp.route("/classes/<class_id>/students", methods=["POST"])
@admin_required
def enroll(class_id):
    data = request.get_json(silent=True) or {}
    if not data.get("profile_id"):
        raise ValidationError("profile_id is required", field="profile_id")
    enrollment = enroll_in_class(class_id, data["profile_id"])
    return jsonify({"id": enrollment.id, "class_id": enrollment.class_id, "is_active": enrollment.is_active}), 201


@attendance_bp.route("/sessions", methods=["POST"])
@admin_required
def new_session():
    data = request.get_json(silent=True) or {}
    session_date = _date(data.get("date"))
    if not data.get("class_id") or session_date is None:
        raise ValidationError("class_id and date are required")
    lesson = {k: data.get(k) for k in ("surah_name", "ayat_from", "ayat_to", "lesson_completed", "lesson_notes", "notes")}
    session = create_session(data["class_id"], session_date, **lesson)
    return jsonify(session.to_dict()), 201


@attendance_bp.route("/sessions/<session_id>/mark", methods=["POST"])
@admin_required
def mark(session_id):
    data = request.get_json(silent=True) or {}
    if "records" in data:
        records = bulk_mark_attendance(session_id, data.get("records") or [], marked_by=data.get("marked_by"))
        return jsonify({"records": [r.to_dict() for r in records]})
    if not data.get("profile_id"):
        raise ValidationError("profile_id is required", field="profile_id")
    record = mark_attendance(session_id, data["profile_id"], data.get("status"),
                             notes=data.get("notes"), marked_by=data.get("marked_by"))
    return jsonify(record.to_dict())


@attendance_bp.route("/sessions/<session_id>/close", methods=["POST"])
@admin_required
def close(session_id):
    data = request.get_json(silent=True) or {}
    session = close_session(session_id, data.get("lesson_completed"), data.get("lesson_notes"))
    return jsonify(session.to_dict())


@attendance_bp.route("/stats", methods=["GET"])
@admin_required
def stats():
    args = request.args
    return jsonify(attendance_stats(
        class_id=args.get("class_id"),
        profile_id=args.get("profile_id"),
        start=_date(args.get("start"), "start"),
        end=_date(args.get("end"), "end"),
    ))


@attendance_bp.route("/history/<profile_id>", methods=["GET"])
@admin_required
def history(profile_id):
    return jsonify({"history": attendance_history(profile_id)})
