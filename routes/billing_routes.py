from __future__ import annotations

from flask import Blueprint, request, jsonify

from extensions import db
from models import AccountType, Subscription
from utils import admin_required
from utils.billing import (
    get_billing_status_by_email,
    get_orphaned_subscriptions,
    link_subscription_to_profiles,
    unlink_subscription,
)
from utils.errors import NotFoundError, ValidationError
from utils.subscriptions import (
    cancel_subscription,
    get_subscription,
    grace_period_ends,
    is_subscription_active,
    sync_subscription_from_provider,
)
from utils.tuition import (
    calculate_dugsi_rate,
    calculate_mahad_rate,
    dugsi_rate_breakdown,
    format_rate,
    validate_override_amount,
)

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


def _account_type(value) -> str:
    account_type = (value or "").upper()
    if account_type not in AccountType.ALL:
        raise ValidationError(f"Invalid account type: {value}", field="account_type")
    return account_type


def _subscription(stripe_id: str) -> Subscription:
    subscription = get_subscription(stripe_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {stripe_id} not found")
    return subscription


@billing_bp.route("/status", methods=["GET"])
@admin_required
def billing_status():
    email = (request.args.get("email") or "").strip()
    if not email:
        raise ValidationError("email is required", field="email")
    return jsonify(get_billing_status_by_email(email, _account_type(request.args.get("account_type", "MAHAD"))))


@billing_bp.route("/orphaned", methods=["GET"])
@admin_required
def orphaned():
    account_type = request.args.get("account_type")
    rows = get_orphaned_subscriptions(_account_type(account_type) if account_type else None)
    return jsonify({"subscriptions": [s.to_dict() for s in rows]})


@billing_bp.route("/subscriptions/<stripe_id>", methods=["GET"])
@admin_required
def subscription_detail(stripe_id):
    subscription = _subscription(stripe_id)
    ends = grace_period_ends(subscription)
    data = subscription.to_dict()
    data["active"] = is_subscription_active(stripe_id)
    data["grace_period_ends"] = ends.isoformat() if ends else None
    data["profile_ids"] = [a.program_profile_id for a in subscription.active_assignments]
    return jsonify(data)


@billing_bp.route("/subscriptions/<stripe_id>/link", methods=["POST"])
@admin_required
def link(stripe_id):
    data = request.get_json(silent=True) or {}
    subscription = _subscription(stripe_id)
    try:
        amount = int(data.get("amount") or subscription.amount)
    except (TypeError, ValueError):
        raise ValidationError("amount must be an integer number of cents", field="amount")
    created = link_subscription_to_profiles(subscription.id, data.get("profile_ids") or [], amount, data.get("notes"))
    db.session.commit()
    return jsonify({"ok": True, "created": created})


@billing_bp.route("/subscriptions/<stripe_id>/unlink", methods=["POST"])
@admin_required
def unlink(stripe_id):
    count = unlink_subscription(_subscription(stripe_id).id)
    db.session.commit()
    return jsonify({"ok": True, "unlinked": count})


@billing_bp.route("/subscriptions/<stripe_id>/sync", methods=["POST"])
@admin_required
def sync(stripe_id):
    subscription = _subscription(stripe_id)
    sync_subscription_from_provider(stripe_id, subscription.billing_account.account_type)
    db.session.commit()
    return jsonify(subscription.to_dict())


@billing_bp.route("/subscriptions/<stripe_id>/cancel", methods=["POST"])
@admin_required
def cancel(stripe_id):
    data = request.get_json(silent=True) or {}
    subscription = _subscription(stripe_id)
    cancel_subscription(stripe_id, subscription.billing_account.account_type,
                        cancel_in_provider=bool(data.get("cancel_in_provider", True)))
    db.session.commit()
    return jsonify(subscription.to_dict())


@billing_bp.route("/tuition/mahad", methods=["GET"])
@admin_required
def mahad_quote():
    args = request.args
    amount = calculate_mahad_rate(args.get("graduation_status"), args.get("payment_frequency"), args.get("billing_type"))
    return jsonify({"amount": amount, "formatted": format_rate(amount)})


@billing_bp.route("/tuition/dugsi", methods=["GET"])
@admin_required
def dugsi_quote():
    try:
        count = int(request.args.get("child_count", "0"))
    except ValueError:
        raise ValidationError("child_count must be an integer", field="child_count")
    amount = calculate_dugsi_rate(count)
    result = dugsi_rate_breakdown(count)
    result["formatted"] = format_rate(amount)
    override = request.args.get("override")
    if override:
        try:
            result["override"] = validate_override_amount(float(override), amount)
        except ValueError:
            raise ValidationError("override must be a number", field="override")
    return jsonify(result)
