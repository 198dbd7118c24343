"""Local subscription records and reconciliation against enrollment status.

Functions here flush but never commit; webhook processing and the route or
job that called them own the transaction.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app

from extensions import db
from models import EnrollmentStatus, Subscription, SubscriptionHistory, SubscriptionStatus
from utils import stripe_api
from utils.billing import unlink_subscription
from utils.enrollment import apply_enrollment_status, create_enrollment, get_active_enrollment
from utils.errors import NotFoundError, ValidationError
from utils.status import GRACE_PERIOD_DAYS, enrollment_status_for, grace_period_end, is_valid_subscription_status


def get_subscription(stripe_subscription_id: str) -> Optional[Subscription]:
    return Subscription.query.filter_by(stripe_subscription_id=stripe_subscription_id).first()


def create_subscription_from_provider(data: Dict[str, Any], billing_account_id: str) -> Subscription:
    """Insert (or refresh) the local row for a provider subscription object."""
    stripe_id = data["id"]
    status = data.get("status") or SubscriptionStatus.INCOMPLETE
    if not is_valid_subscription_status(status):
        raise ValidationError(f"Invalid subscription status: {status}", field="status")
    period_start, period_end = stripe_api.extract_period_dates(data)
    existing = get_subscription(stripe_id)
    if existing is not None:
        existing.status = status
        existing.current_period_start = period_start or existing.current_period_start
        existing.current_period_end = period_end or existing.current_period_end
        existing.paid_until = period_end or existing.paid_until
        db.session.flush()
        return existing

    previous = [
        s.stripe_subscription_id
        for s in Subscription.query.filter_by(billing_account_id=billing_account_id)
    ]
    items = ((data.get("items") or {}).get("data")) or []
    recurring = ((items[0].get("price") or {}).get("recurring") or {}) if items else {}
    subscription = Subscription(
        billing_account_id=billing_account_id,
        stripe_subscription_id=stripe_id,
        stripe_customer_id=stripe_api.extract_customer_id(data.get("customer")),
        status=status,
        amount=stripe_api.first_price_amount(data) or 0,
        currency=(data.get("currency") or "usd").lower(),
        interval=recurring.get("interval") or "month",
        current_period_start=period_start,
        current_period_end=period_end,
        paid_until=period_end,
        previous_subscription_ids=previous,
    )
    db.session.add(subscription)
    db.session.flush()
    return subscription


def update_subscription_status(
    stripe_subscription_id: str,
    status: str,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> Optional[Subscription]:
    if not is_valid_subscription_status(status):
        raise ValidationError(f"Invalid subscription status: {status}", field="status")
    subscription = get_subscription(stripe_subscription_id)
    if subscription is None:
        return None
    subscription.status = status
    if period_start is not None:
        subscription.current_period_start = period_start
    if period_end is not None:
        subscription.current_period_end = period_end
        subscription.paid_until = period_end
    db.session.flush()
    return subscription


def past_due_since(subscription: Subscription) -> Optional[datetime]:
    """Start of the current unbroken run of past_due history rows, or None."""
    since = None
    rows = (
        SubscriptionHistory.query.filter_by(subscription_id=subscription.id)
        .order_by(SubscriptionHistory.created_at.desc())
        .all()
    )
    for row in rows:
        if row.status != SubscriptionStatus.PAST_DUE:
            break
        since = row.created_at
    return since


def grace_period_ends(subscription: Subscription) -> Optional[datetime]:
    if subscription.status != SubscriptionStatus.PAST_DUE:
        return None
    since = past_due_since(subscription)
    if since is None:
        return None
    days = int(current_app.config.get("GRACE_PERIOD_DAYS") or GRACE_PERIOD_DAYS)
    return grace_period_end(since, days)


def grace_expired(subscription: Subscription, now: Optional[datetime] = None) -> bool:
    ends = grace_period_ends(subscription)
    return ends is not None and (now or datetime.utcnow()) >= ends


def reconcile_profiles(subscription: Subscription, event_type: str, event_id: Optional[str] = None) -> int:
    """Push the enrollment status implied by the subscription onto its profiles.

    Returns the number of profiles whose status changed. A history row is
    written either way.
    """
    new_status = enrollment_status_for(subscription.status)
    reason = f"Subscription {subscription.status}"
    if new_status == EnrollmentStatus.ENROLLED and grace_expired(subscription):
        new_status = EnrollmentStatus.WITHDRAWN
        reason = "Subscription past_due beyond grace period"
    changed = 0
    for assignment in subscription.active_assignments:
        profile = assignment.program_profile
        previous = profile.status
        enrollment = get_active_enrollment(profile.id)
        if enrollment is not None:
            if enrollment.status != new_status:
                apply_enrollment_status(enrollment, new_status, reason=reason)
        elif new_status == EnrollmentStatus.ENROLLED:
            create_enrollment(profile.id, status=EnrollmentStatus.ENROLLED)
        profile.status = new_status
        if previous != new_status:
            changed += 1
    db.session.add(SubscriptionHistory(
        subscription_id=subscription.id,
        event_type=event_type,
        event_id=event_id,
        status=subscription.status,
        amount=subscription.amount,
        details={"enrollment_status": new_status, "profiles_updated": changed},
    ))
    db.session.flush()
    if changed:
        current_app.logger.info(
            "Subscription %s (%s): %d profile(s) -> %s",
            subscription.stripe_subscription_id, subscription.status, changed, new_status,
        )
    return changed


def sync_subscription_from_provider(stripe_subscription_id: str, account_type: str) -> Subscription:
    subscription = get_subscription(stripe_subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {stripe_subscription_id} not found")
    data = stripe_api.retrieve_subscription(stripe_subscription_id, account_type)
    period_start, period_end = stripe_api.extract_period_dates(data)
    update_subscription_status(stripe_subscription_id, data.get("status") or subscription.status, period_start, period_end)
    reconcile_profiles(subscription, "sync")
    if subscription.status == SubscriptionStatus.CANCELED:
        unlink_subscription(subscription.id)
    return subscription


def cancel_subscription(stripe_subscription_id: str, account_type: str, cancel_in_provider: bool = True) -> Subscription:
    subscription = get_subscription(stripe_subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {stripe_subscription_id} not found")
    if cancel_in_provider:
        stripe_api.cancel_subscription(stripe_subscription_id, account_type)
    subscription.status = SubscriptionStatus.CANCELED
    reconcile_profiles(subscription, "manual.cancel")
    unlink_subscription(subscription.id)
    return subscription


def is_subscription_active(stripe_subscription_id: str) -> bool:
    subscription = get_subscription(stripe_subscription_id)
    return subscription is not None and subscription.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)
