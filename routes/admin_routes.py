from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from models import (
    AttendanceSession,
    Batch,
    EnrollmentStatus,
    Person,
    Program,
    ProgramProfile,
    Student,
    Subscription,
    SubscriptionStatus,
    WebhookEvent,
)
from utils import admin_required
from utils.legacy_migration import migrate_legacy_students
from utils.tenant import current_school_id

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.route("/dashboard", methods=["GET"])
@admin_required
def dashboard():
    """Headline counts for the current school."""
    school_id = current_school_id()
    profiles = ProgramProfile.query.join(Person, ProgramProfile.person_id == Person.id).filter(
        Person.school_id == school_id
    )
    by_program = {
        program: profiles.filter(
            ProgramProfile.program == program, ProgramProfile.status == EnrollmentStatus.ENROLLED,
        ).count()
        for program in (Program.MAHAD, Program.DUGSI)
    }
    return jsonify({
        "enrolled": by_program,
        "registered": profiles.filter(ProgramProfile.status == EnrollmentStatus.REGISTERED).count(),
        "batches": Batch.query.filter_by(school_id=school_id).count(),
        "past_due_subscriptions": Subscription.query.filter_by(status=SubscriptionStatus.PAST_DUE).count(),
        "attendance_sessions": AttendanceSession.query.count(),
        "webhook_events": WebhookEvent.query.count(),
        "legacy_pending": Student.query.filter(Student.migrated_profile_id.is_(None)).count(),
    })


@admin_bp.route("/migrate-legacy", methods=["POST"])
@admin_required
def migrate_legacy():
    data = request.get_json(silent=True) or {}
    school_id = current_school_id() if not data.get("all_schools") else None
    current_app.logger.info("Legacy student migration requested (school %s)", school_id or "all")
    result = migrate_legacy_students(school_id)
    return jsonify(result), (200 if not result["errors"] else 207)
