from __future__ import annotations

import json
from datetime import datetime

from flask import Blueprint, request, jsonify, Response

from extensions import db
from utils import admin_required
from models import Program
from utils.enrollment import get_active_enrollment, get_enrollments_by_program, re_enroll, withdraw_enrollment
from utils.errors import ValidationError
from utils.students import StudentService
from utils.tenant import current_school_id

student_bp = Blueprint("students", __name__, url_prefix="/api/students")


def _service() -> StudentService:
    return StudentService(current_school_id())


@student_bp.route("", methods=["GET"])
@admin_required
def list_students():
    args = request.args
    try:
        page = int(args.get("page", 1))
        per_page = min(int(args.get("per_page", 50)), 200)
    except ValueError:
        raise ValidationError("page and per_page must be integers")
    return jsonify(_service().list(
        program=args.get("program"),
        status=args.get("status"),
        batch_id=args.get("batch_id"),
        search=args.get("q"),
        page=page,
        per_page=per_page,
    ))


@student_bp.route("", methods=["POST"])
@admin_required
def create_student():
    service = _service()
    profile = service.create(request.get_json(silent=True) or {})
    return jsonify(service.to_dict(profile)), 201


@student_bp.route("/duplicates", methods=["GET"])
@admin_required
def duplicates():
    return jsonify({"groups": _service().find_duplicates()})


@student_bp.route("/export", methods=["GET"])
@admin_required
def export_students():
    rows = _service().export(program=request.args.get("program"))
    filename = f"students-{datetime.utcnow():%Y%m%d}.json"
    return Response(
        json.dumps({"exported_at": datetime.utcnow().isoformat(), "count": len(rows), "students": rows}, indent=2),
        mimetype="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@student_bp.route("/bulk-status", methods=["POST"])
@admin_required
def bulk_status():
    data = request.get_json(silent=True) or {}
    ids = data.get("profile_ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError("profile_ids must be a non-empty list", field="profile_ids")
    return jsonify(_service().bulk_update_status(ids, data.get("status"), data.get("reason")))


@student_bp.route("/<profile_id>", methods=["GET"])
@admin_required
def get_student(profile_id):
    return jsonify(_service().get(profile_id))


@student_bp.route("/<profile_id>", methods=["PATCH", "PUT"])
@admin_required
def update_student(profile_id):
    service = _service()
    profile = service.update(profile_id, request.get_json(silent=True) or {})
    return jsonify(service.to_dict(profile))


@student_bp.route("/<profile_id>", methods=["DELETE"])
@admin_required
def delete_student(profile_id):
    _service().delete(profile_id)
    return jsonify({"ok": True})


@student_bp.route("/<profile_id>/siblings", methods=["GET"])
@admin_required
def student_siblings(profile_id):
    return jsonify({"siblings": _service().siblings(profile_id)})


@student_bp.route("/<profile_id>/withdraw", methods=["POST"])
@admin_required
def withdraw(profile_id):
    data = request.get_json(silent=True) or {}
    _service().get_profile(profile_id)
    enrollment = get_active_enrollment(profile_id)
    if enrollment is None:
        raise ValidationError("Student has no active enrollment")
    withdraw_enrollment(enrollment.id, reason=data.get("reason"))
    db.session.commit()
    return jsonify(enrollment.to_dict())


@student_bp.route("/<profile_id>/re-enroll", methods=["POST"])
@admin_required
def re_enroll_student(profile_id):
    data = request.get_json(silent=True) or {}
    _service().get_profile(profile_id)
    enrollment = re_enroll(profile_id, batch_id=data.get("batch_id"), notes=data.get("notes"))
    db.session.commit()
    return jsonify(enrollment.to_dict()), 201


@student_bp.route("/<profile_id>/enrollments", methods=["GET"])
@admin_required
def enrollments(profile_id):
    profile = _service().get_profile(profile_id)
    return jsonify({"enrollments": [e.to_dict() for e in profile.enrollments]})


@student_bp.route("/enrollments", methods=["GET"])
@admin_required
def enrollments_by_program():
    args = request.args
    program = args.get("program") or Program.MAHAD
    if program not in Program.ALL:
        raise ValidationError(f"Invalid program: {program}", field="program")
    rows = get_enrollments_by_program(
        program,
        status=args.get("status"),
        batch_id=args.get("batch_id"),
        school_id=current_school_id(),
        active_only=args.get("active") in ("1", "true"),
    )
    return jsonify({"enrollments": [e.to_dict() for e in rows]})
