from __future__ import annotations

from flask import Blueprint, request, jsonify, session

from models import DetectionMethod
from utils import admin_required
from utils.errors import ValidationError
from utils.siblings import (
    create_sibling_relationship,
    detect_potential_siblings,
    get_person_siblings,
    remove_sibling_relationship,
    verify_sibling_relationship,
)

sibling_bp = Blueprint("siblings", __name__, url_prefix="/api/siblings")


@sibling_bp.route("/<person_id>", methods=["GET"])
@admin_required
def list_siblings(person_id):
    return jsonify({"siblings": get_person_siblings(person_id)})


@sibling_bp.route("/<person_id>/detect", methods=["GET"])
@admin_required
def detect(person_id):
    return jsonify({"candidates": detect_potential_siblings(person_id)})


@sibling_bp.route("", methods=["POST"])
@admin_required
def create():
    data = request.get_json(silent=True) or {}
    if not data.get("person1_id") or not data.get("person2_id"):
        raise ValidationError("person1_id and person2_id are required")
    confidence = data.get("confidence")
    if confidence is not None:
        try:
            confidence = float(confidence)
        except (TypeError, ValueError):
            raise ValidationError("confidence must be a number", field="confidence")
        if not 0 <= confidence <= 1:
            raise ValidationError("confidence must be between 0 and 1", field="confidence")
    rel = create_sibling_relationship(
        data["person1_id"],
        data["person2_id"],
        method=data.get("method") or DetectionMethod.MANUAL,
        confidence=confidence,
        verified_by=data.get("verified_by"),
        notes=data.get("notes"),
    )
    return jsonify(rel.to_dict()), 201


@sibling_bp.route("/relationships/<relationship_id>/verify", methods=["POST"])
@admin_required
def verify(relationship_id):
    data = request.get_json(silent=True) or {}
    rel = verify_sibling_relationship(relationship_id, data.get("verified_by") or session.get("admin_name") or "admin")
    return jsonify(rel.to_dict())


@sibling_bp.route("/relationships/<relationship_id>", methods=["DELETE"])
@admin_required
def remove(relationship_id):
    rel = remove_sibling_relationship(relationship_id)
    return jsonify(rel.to_dict())
