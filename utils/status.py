"""Subscription status -> enrollment status mapping and transition rules."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from models import EnrollmentStatus, SubscriptionStatus

GRACE_PERIOD_DAYS = 7

_SUBSCRIPTION_TO_ENROLLMENT = {
    SubscriptionStatus.ACTIVE: EnrollmentStatus.ENROLLED,
    # past_due keeps the student enrolled during the grace period
    SubscriptionStatus.PAST_DUE: EnrollmentStatus.ENROLLED,
    SubscriptionStatus.CANCELED: EnrollmentStatus.WITHDRAWN,
    SubscriptionStatus.UNPAID: EnrollmentStatus.WITHDRAWN,
}

# Allowed manual transitions. Same-state updates are always accepted.
ENROLLMENT_STATUS_TRANSITIONS = {
    EnrollmentStatus.REGISTERED: {
        EnrollmentStatus.ENROLLED,
        EnrollmentStatus.WITHDRAWN,
    },
    EnrollmentStatus.ENROLLED: {
        EnrollmentStatus.ON_LEAVE,
        EnrollmentStatus.WITHDRAWN,
        EnrollmentStatus.COMPLETED,
        EnrollmentStatus.SUSPENDED,
    },
    EnrollmentStatus.ON_LEAVE: {
        EnrollmentStatus.ENROLLED,
        EnrollmentStatus.WITHDRAWN,
    },
    EnrollmentStatus.SUSPENDED: {
        EnrollmentStatus.ENROLLED,
        EnrollmentStatus.WITHDRAWN,
    },
    EnrollmentStatus.WITHDRAWN: {
        EnrollmentStatus.REGISTERED,
    },
    EnrollmentStatus.COMPLETED: set(),
}


def enrollment_status_for(subscription_status: Optional[str]) -> str:
    """Return the enrollment status implied by a provider subscription status.

    Unknown, missing, trialing, incomplete and paused statuses all map to
    REGISTERED.
    """
    key = (subscription_status or "").strip().lower()
    return _SUBSCRIPTION_TO_ENROLLMENT.get(key, EnrollmentStatus.REGISTERED)


def is_valid_subscription_status(value: Optional[str]) -> bool:
    return bool(value) and value in SubscriptionStatus.ALL


def is_valid_status_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    return new in ENROLLMENT_STATUS_TRANSITIONS.get(current, set())


def grace_period_end(start: datetime, days: int = GRACE_PERIOD_DAYS) -> datetime:
    return start + timedelta(days=days)
