from __future__ import annotations

from functools import wraps

from flask import Blueprint, request, jsonify, current_app

from models import AccountType
from utils.errors import ValidationError
from utils.maintenance import cleanup_abandoned_enrollments, reconcile_all_subscriptions
from utils.security import bearer_token_matches
from utils.stripe_api import StripeError

cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


def cron_auth(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET_KEY")
        if not secret:
            current_app.logger.error("CRON_SECRET_KEY is not configured")
            return jsonify({"error": "Cron not configured"}), 500
        if not bearer_token_matches(request.headers.get("Authorization"), secret):
            return jsonify({"error": "Unauthorized"}), 401
        return func(*args, **kwargs)

    return wrapper


@cron_bp.route("/cleanup-abandoned-enrollments", methods=["GET", "POST"])
@cron_auth
def cleanup():
    account_type = (request.args.get("account_type") or AccountType.DUGSI).upper()
    if account_type not in (AccountType.MAHAD, AccountType.DUGSI):
        raise ValidationError(f"Invalid account type: {account_type}", field="account_type")
    try:
        result = cleanup_abandoned_enrollments(account_type)
    except StripeError as e:
        current_app.logger.exception("Abandoned enrollment cleanup failed")
        return jsonify({"error": str(e)}), 502
    return jsonify({"ok": True, **result})


@cron_bp.route("/reconcile-subscriptions", methods=["GET", "POST"])
@cron_auth
def reconcile():
    return jsonify({"ok": True, **reconcile_all_subscriptions()})
