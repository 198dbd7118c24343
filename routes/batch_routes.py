from __future__ import annotations

from datetime import datetime

from flask import Blueprint, request, jsonify

from utils import admin_required
from utils.batches import BatchService
from utils.errors import ValidationError
from utils.tenant import current_school_id

batch_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


def _service() -> BatchService:
    return BatchService(current_school_id())


def _date(data, key):
    value = data.get(key)
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {key}, expected YYYY-MM-DD", field=key)


def _ids(data, key="profile_ids"):
    ids = data.get(key)
    if not isinstance(ids, list) or not ids:
        raise ValidationError(f"{key} must be a non-empty list", field=key)
    return [str(i) for i in ids]


@batch_bp.route("", methods=["GET"])
@admin_required
def list_batches():
    return jsonify({"batches": _service().list_batches()})


@batch_bp.route("", methods=["POST"])
@admin_required
def create_batch():
    data = request.get_json(silent=True) or {}
    batch = _service().create(data.get("name"), _date(data, "start_date"), _date(data, "end_date"))
    return jsonify(batch.to_dict()), 201


@batch_bp.route("/summary", methods=["GET"])
@admin_required
def summary():
    return jsonify(_service().summary())


@batch_bp.route("/unassigned", methods=["GET"])
@admin_required
def unassigned():
    return jsonify({"students": _service().unassigned_students()})


@batch_bp.route("/<batch_id>", methods=["GET"])
@admin_required
def get_batch(batch_id):
    service = _service()
    data = service.get(batch_id).to_dict()
    data["students"] = service.batch_students(batch_id)
    return jsonify(data)


@batch_bp.route("/<batch_id>", methods=["PATCH", "PUT"])
@admin_required
def update_batch(batch_id):
    data = request.get_json(silent=True) or {}
    batch = _service().update(batch_id, data.get("name"), _date(data, "start_date"), _date(data, "end_date"))
    return jsonify(batch.to_dict())


@batch_bp.route("/<batch_id>", methods=["DELETE"])
@admin_required
def delete_batch(batch_id):
    _service().delete(batch_id)
    return jsonify({"ok": True})


@batch_bp.route("/<batch_id>/assign", methods=["POST"])
@admin_required
def assign(batch_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_service().assign_students(batch_id, _ids(data)))


@batch_bp.route("/transfer", methods=["POST"])
@admin_required
def transfer():
    data = request.get_json(silent=True) or {}
    result = _service().transfer_students(data.get("from_batch_id"), data.get("to_batch_id"), _ids(data))
    return jsonify(result)
