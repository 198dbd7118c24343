from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from extensions import db
from models import (
    BillingAccount,
    BillingAssignment,
    ProgramProfile,
    Subscription,
    SubscriptionStatus,
)
from utils.errors import NotFoundError, ValidationError
from utils.people import find_person_by_email

LIVE_SUBSCRIPTION_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)


def create_or_update_billing_account(
    person_id: str,
    account_type: str,
    customer_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    payment_method_captured: Optional[bool] = None,
) -> BillingAccount:
    """Upsert the billing account for (person, account type). Flushes only."""
    account = BillingAccount.query.filter_by(person_id=person_id, account_type=account_type).first()
    if account is None:
        account = BillingAccount(person_id=person_id, account_type=account_type)
        db.session.add(account)
    if customer_id:
        account.customer_id = customer_id
    if payment_intent_id:
        account.payment_intent_id_dugsi = payment_intent_id
    if payment_method_captured is not None:
        account.payment_method_captured = payment_method_captured
        if payment_method_captured and account.payment_method_captured_at is None:
            account.payment_method_captured_at = datetime.utcnow()
    db.session.flush()
    return account


def get_billing_account_by_customer_id(customer_id: Optional[str], account_type: str) -> Optional[BillingAccount]:
    if not customer_id:
        return None
    column = getattr(BillingAccount, BillingAccount.CUSTOMER_ID_COLUMNS[account_type])
    return BillingAccount.query.filter(column == customer_id).first()


def calculate_split_amounts(total_amount: int, count: int) -> List[int]:
    """Split *total_amount* cents into *count* parts; the remainder goes to the last part."""
    if count <= 0:
        raise ValidationError("Count must be greater than 0", field="count")
    base = total_amount // count
    amounts = [base] * count
    amounts[-1] += total_amount - base * count
    return amounts


def link_subscription_to_profiles(
    subscription_id: str,
    profile_ids: Sequence[str],
    total_amount: int,
    notes: Optional[str] = None,
) -> int:
    """Create billing assignments splitting *total_amount* across the profiles.

    Profiles already actively assigned to the subscription are skipped.
    Returns the number of assignments created.
    """
    if not profile_ids:
        raise ValidationError("At least one profile id is required", field="profile_ids")
    if not total_amount or total_amount <= 0:
        raise ValidationError("Subscription amount must be positive", field="amount")
    subscription = db.session.get(Subscription, subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")

    profile_ids = list(dict.fromkeys(profile_ids))
    amounts = calculate_split_amounts(total_amount, len(profile_ids))
    multiple = len(profile_ids) > 1
    existing = {
        a.program_profile_id
        for a in BillingAssignment.query.filter_by(subscription_id=subscription_id, is_active=True)
    }
    created = 0
    for profile_id, amount in zip(profile_ids, amounts):
        if profile_id in existing:
            continue
        if db.session.get(ProgramProfile, profile_id) is None:
            raise NotFoundError(f"Program profile {profile_id} not found")
        db.session.add(BillingAssignment(
            subscription_id=subscription_id,
            program_profile_id=profile_id,
            amount=amount,
            percentage=round(amount / total_amount * 100, 2) if multiple else None,
            notes=notes,
        ))
        created += 1
    db.session.flush()
    db.session.expire(subscription, ["assignments"])
    return created


def unlink_subscription(subscription_id: str) -> int:
    now = datetime.utcnow()
    count = 0
    for assignment in BillingAssignment.query.filter_by(subscription_id=subscription_id, is_active=True):
        assignment.is_active = False
        assignment.end_date = now
        count += 1
    db.session.flush()
    return count


def get_billing_status_by_email(email: str, account_type: str) -> Dict[str, Any]:
    status: Dict[str, Any] = {
        "has_payment_method": False,
        "has_active_subscription": False,
        "stripe_customer_id": None,
        "subscription_status": None,
        "paid_until": None,
        "current_period_start": None,
        "current_period_end": None,
    }
    person = find_person_by_email(email)
    if person is None:
        return status
    account = BillingAccount.query.filter_by(person_id=person.id, account_type=account_type).first()
    if account is None:
        return status
    status["has_payment_method"] = bool(account.payment_method_captured)
    status["stripe_customer_id"] = account.customer_id
    subscription = (
        Subscription.query.filter_by(billing_account_id=account.id)
        .order_by(Subscription.created_at.desc())
        .first()
    )
    if subscription is not None:
        status["has_active_subscription"] = subscription.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)
        status["subscription_status"] = subscription.status
        status["paid_until"] = subscription.paid_until.isoformat() if subscription.paid_until else None
        status["current_period_start"] = (
            subscription.current_period_start.isoformat() if subscription.current_period_start else None
        )
        status["current_period_end"] = (
            subscription.current_period_end.isoformat() if subscription.current_period_end else None
        )
    return status


def get_billing_status_for_profiles(profile_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for profile_id in profile_ids:
        assignment = (
            BillingAssignment.query.filter_by(program_profile_id=profile_id, is_active=True)
            .order_by(BillingAssignment.start_date.desc())
            .first()
        )
        if assignment is None:
            result[profile_id] = {"subscription_status": None, "paid_until": None, "amount": None}
            continue
        sub = assignment.subscription
        result[profile_id] = {
            "subscription_id": sub.id,
            "subscription_status": sub.status,
            "paid_until": sub.paid_until.isoformat() if sub.paid_until else None,
            "amount": assignment.amount,
        }
    return result


def get_orphaned_subscriptions(account_type: Optional[str] = None) -> List[Subscription]:
    """Live subscriptions with no active billing assignment."""
    q = Subscription.query.filter(Subscription.status.in_(LIVE_SUBSCRIPTION_STATUSES))
    if account_type:
        q = q.join(BillingAccount).filter(BillingAccount.account_type == account_type)
    return [s for s in q.all() if not s.active_assignments]
