"""Periodic housekeeping run by the scheduler and the cron endpoints."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import (
    AccountType,
    BillingAccount,
    BillingAssignment,
    EnrollmentStatus,
    GuardianRelationship,
    PROGRAM_ACCOUNT_TYPES,
    ProgramProfile,
    Subscription,
    SubscriptionStatus,
)
from utils import stripe_api
from utils.billing import get_billing_account_by_customer_id, get_orphaned_subscriptions, link_subscription_to_profiles
from utils.enrollment import apply_enrollment_status, get_active_enrollment
from utils.errors import ServiceError
from utils.subscriptions import sync_subscription_from_provider

_PROVIDER_ACCOUNT_TYPES = (AccountType.MAHAD, AccountType.DUGSI)


def _has_live_local_subscription(account: Optional[BillingAccount]) -> bool:
    if account is None:
        return False
    return (
        Subscription.query.filter(
            Subscription.billing_account_id == account.id,
            Subscription.status.in_((SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)),
        ).first()
        is not None
    )


def cleanup_abandoned_enrollments(account_type: str = AccountType.DUGSI) -> Dict[str, Any]:
    """Withdraw enrollments whose checkout was started but never finished.

    A provider customer counts as abandoned when it is older than
    ABANDONED_ENROLLMENT_HOURS, is flagged ``enrollmentPending`` in its
    metadata, has no provider subscriptions and no active local one.
    """
    hours = int(current_app.config.get("ABANDONED_ENROLLMENT_HOURS") or 24)
    cutoff = datetime.utcnow() - timedelta(hours=hours)
    result: Dict[str, Any] = {"checked": 0, "abandoned": 0, "withdrawn": 0, "errors": []}

    for customer in stripe_api.list_customers(account_type, created_before=cutoff):
        metadata = customer.get("metadata") or {}
        if metadata.get("enrollmentPending") != "true":
            continue
        result["checked"] += 1
        customer_id = customer.get("id")
        account = get_billing_account_by_customer_id(customer_id, account_type)
        if _has_live_local_subscription(account):
            continue
        try:
            if stripe_api.list_subscriptions(customer_id, account_type):
                continue
        except stripe_api.StripeError as e:
            result["errors"].append({"customer_id": customer_id, "error": str(e)})
            continue
        if account is None or not account.person_id:
            continue
        result["abandoned"] += 1
        result["withdrawn"] += _withdraw_person(account.person_id, account_type)

    db.session.commit()
    current_app.logger.info(
        "Abandoned enrollment cleanup (%s): %d pending, %d abandoned, %d withdrawn",
        account_type, result["checked"], result["abandoned"], result["withdrawn"],
    )
    return result


def _profiles_billed_to(person_id: str, account_type: str) -> List[ProgramProfile]:
    """Profiles of the person and of their dependents in the account's program."""
    programs = [p for p, a in PROGRAM_ACCOUNT_TYPES.items() if a == account_type]
    person_ids = [person_id] + [
        g.dependent_id for g in GuardianRelationship.query.filter_by(guardian_id=person_id, is_active=True)
    ]
    return ProgramProfile.query.filter(
        ProgramProfile.person_id.in_(person_ids), ProgramProfile.program.in_(programs),
    ).all()


def _withdraw_person(person_id: str, account_type: str) -> int:
    count = 0
    for profile in _profiles_billed_to(person_id, account_type):
        enrollment = get_active_enrollment(profile.id)
        if enrollment is None:
            continue
        apply_enrollment_status(enrollment, EnrollmentStatus.WITHDRAWN, reason="Enrollment abandoned before payment")
        count += 1
    return count


def link_orphaned_subscriptions(account_type: Optional[str] = None) -> Dict[str, Any]:
    """Attach live subscriptions without assignments to the payer's unbilled profiles."""
    result: Dict[str, Any] = {"orphaned": 0, "linked": 0, "unmatched": []}
    for subscription in get_orphaned_subscriptions(account_type):
        result["orphaned"] += 1
        account = subscription.billing_account
        candidates = [
            p for p in _profiles_billed_to(account.person_id, account.account_type)
            if BillingAssignment.query.filter_by(program_profile_id=p.id, is_active=True).first() is None
        ] if account.person_id else []
        if not candidates or subscription.amount <= 0:
            result["unmatched"].append(subscription.stripe_subscription_id)
            continue
        result["linked"] += link_subscription_to_profiles(
            subscription.id, [p.id for p in candidates], subscription.amount, notes="Linked by reconciliation",
        )
    db.session.commit()
    return result


def reconcile_all_subscriptions() -> Dict[str, Any]:
    """Re-sync every non-canceled subscription from the provider."""
    result: Dict[str, Any] = {"synced": 0, "errors": []}
    rows = (
        db.session.query(Subscription.stripe_subscription_id, BillingAccount.account_type)
        .join(BillingAccount)
        .filter(Subscription.status != SubscriptionStatus.CANCELED)
        .all()
    )
    for stripe_id, account_type in rows:
        if account_type not in _PROVIDER_ACCOUNT_TYPES:
            continue
        try:
            sync_subscription_from_provider(stripe_id, account_type)
            db.session.commit()
            result["synced"] += 1
        except (stripe_api.StripeError, ServiceError, SQLAlchemyError) as e:
            db.session.rollback()
            current_app.logger.warning("Could not sync subscription %s: %s", stripe_id, e)
            result["errors"].append({"subscription_id": stripe_id, "error": str(e)})
    result["orphans"] = link_orphaned_subscriptions()
    return result
