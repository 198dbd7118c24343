from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from models import AccountType
from utils.stripe_api import webhook_secret
from utils.webhooks import event_handlers_for, process_webhook

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhook")

_SOURCES = {
    "mahad": AccountType.MAHAD,
    "dugsi": AccountType.DUGSI,
}


def _handle(source: str):
    body, status = process_webhook(
        source,
        request.get_data(as_text=True),
        request.headers.get("Stripe-Signature"),
        webhook_secret(source),
        event_handlers_for(_SOURCES[source]),
        tolerance=int(current_app.config.get("WEBHOOK_TOLERANCE_SECONDS") or 300),
    )
    return jsonify(body), status


@webhook_bp.route("/mahad", methods=["POST"])
def mahad():
    return _handle("mahad")


@webhook_bp.route("/dugsi", methods=["POST"])
def dugsi():
    return _handle("dugsi")
