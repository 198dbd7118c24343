from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from extensions import db
from models import AccountType, BillingAssignment, EnrollmentStatus, Program, SubscriptionHistory, SubscriptionStatus
from utils.billing import (
    calculate_split_amounts,
    create_or_update_billing_account,
    get_billing_account_by_customer_id,
    get_billing_status_by_email,
    get_orphaned_subscriptions,
    link_subscription_to_profiles,
    unlink_subscription,
)
from utils.enrollment import get_active_enrollment
from utils.errors import ValidationError
from utils.stripe_api import StripeError
from utils.subscriptions import grace_expired, past_due_since, reconcile_profiles


def test_split_amounts_gives_remainder_to_last():
    assert calculate_split_amounts(10000, 3) == [3333, 3333, 3334]
    assert calculate_split_amounts(16000, 2) == [8000, 8000]
    assert sum(calculate_split_amounts(12345, 7)) == 12345


def test_split_requires_positive_count():
    with pytest.raises(ValidationError):
        calculate_split_amounts(1000, 0)


def test_billing_account_upsert(make_student):
    profile = make_student(email="parent@example.com")
    first = create_or_update_billing_account(profile.person_id, AccountType.DUGSI, customer_id="cus_d1")
    second = create_or_update_billing_account(
        profile.person_id, AccountType.DUGSI, payment_intent_id="pi_1", payment_method_captured=True,
    )
    db.session.commit()
    assert first.id == second.id
    assert second.stripe_customer_id_dugsi == "cus_d1"
    assert second.payment_intent_id_dugsi == "pi_1"
    assert second.payment_method_captured_at is not None
    assert get_billing_account_by_customer_id("cus_d1", AccountType.DUGSI).id == first.id
    assert get_billing_account_by_customer_id("cus_d1", AccountType.MAHAD) is None


def test_link_splits_and_skips_existing(make_student, make_subscription):
    a = make_student(name="Ali Omar", program=Program.DUGSI)
    b = make_student(name="Sahra Omar", program=Program.DUGSI)
    sub = make_subscription(a.person_id, amount=16000, account_type=AccountType.DUGSI)

    assert link_subscription_to_profiles(sub.id, [a.id, b.id], 16000) == 2
    assert link_subscription_to_profiles(sub.id, [a.id, b.id], 16000) == 0
    db.session.commit()

    rows = BillingAssignment.query.filter_by(subscription_id=sub.id).all()
    assert sorted(r.amount for r in rows) == [8000, 8000]
    assert all(r.percentage == 50.0 for r in rows)


def test_single_profile_has_no_percentage(make_student, make_subscription):
    a = make_student()
    sub = make_subscription(a.person_id)
    link_subscription_to_profiles(sub.id, [a.id], 12000)
    assert BillingAssignment.query.filter_by(subscription_id=sub.id).one().percentage is None


def test_link_requires_profiles_and_amount(make_student, make_subscription):
    a = make_student()
    sub = make_subscription(a.person_id)
    with pytest.raises(ValidationError):
        link_subscription_to_profiles(sub.id, [], 12000)
    with pytest.raises(ValidationError):
        link_subscription_to_profiles(sub.id, [a.id], 0)


def test_unlink_and_orphaned(make_student, make_subscription):
    a = make_student()
    sub = make_subscription(a.person_id)
    assert [s.id for s in get_orphaned_subscriptions()] == [sub.id]
    link_subscription_to_profiles(sub.id, [a.id], 12000)
    db.session.commit()
    assert get_orphaned_subscriptions() == []
    assert unlink_subscription(sub.id) == 1
    db.session.commit()
    assignment = BillingAssignment.query.filter_by(subscription_id=sub.id).one()
    assert assignment.is_active is False and assignment.end_date is not None


def test_billing_status_by_email(make_student, make_subscription):
    profile = make_student(email="Student@Example.com")
    make_subscription(profile.person_id, status=SubscriptionStatus.ACTIVE)
    status = get_billing_status_by_email("student@example.com", AccountType.MAHAD)
    assert status["has_active_subscription"] is True
    assert status["stripe_customer_id"] == "cus_123"
    assert status["subscription_status"] == "active"
    assert get_billing_status_by_email("nobody@example.com", AccountType.MAHAD)["stripe_customer_id"] is None


def test_cancel_endpoint_withdraws_and_unlinks(admin_client, make_student, make_subscription):
    profile = make_student(email="cancel@example.com", status=EnrollmentStatus.ENROLLED)
    sub = make_subscription(profile.person_id, stripe_id="sub_cancel")
    link_subscription_to_profiles(sub.id, [profile.id], sub.amount)
    db.session.commit()

    with patch("utils.stripe_api.cancel_subscription") as remote_cancel:
        r = admin_client.post('/api/billing/subscriptions/sub_cancel/cancel', json={})
    assert r.status_code == 200
    assert r.get_json()["status"] == SubscriptionStatus.CANCELED
    remote_cancel.assert_called_once_with("sub_cancel", AccountType.MAHAD)
    db.session.expire_all()
    assert BillingAssignment.query.filter_by(subscription_id=sub.id, is_active=True).count() == 0
    assert get_active_enrollment(profile.id) is None


def test_provider_failure_is_bad_gateway(admin_client, make_student, make_subscription):
    profile = make_student()
    make_subscription(profile.person_id, stripe_id="sub_down")
    with patch("utils.stripe_api.retrieve_subscription", side_effect=StripeError("Stripe unavailable")):
        r = admin_client.post('/api/billing/subscriptions/sub_down/sync')
    assert r.status_code == 502


def test_dugsi_quote_endpoint(admin_client):
    r = admin_client.get('/api/billing/tuition/dugsi?child_count=3&override=100')
    body = r.get_json()
    assert body["total"] == 23000
    assert body["override"]["valid"] is True
    assert body["override"]["warnings"]
    assert admin_client.get('/api/billing/tuition/dugsi?child_count=two').status_code == 400


def _history(sub, status, days_ago):
    db.session.add(SubscriptionHistory(subscription_id=sub.id, event_type="customer.subscription.updated",
                                       status=status, created_at=datetime.utcnow() - timedelta(days=days_ago)))
    db.session.commit()


@pytest.fixture
def past_due_student(make_student, make_subscription):
    profile = make_student(email="late@example.com", status=EnrollmentStatus.ENROLLED)
    sub = make_subscription(profile.person_id, stripe_id="sub_late", status=SubscriptionStatus.PAST_DUE)
    link_subscription_to_profiles(sub.id, [profile.id], sub.amount)
    db.session.commit()
    return profile, sub


def test_past_due_withdraws_once_grace_period_ends(past_due_student):
    profile, sub = past_due_student
    _history(sub, SubscriptionStatus.PAST_DUE, 3)
    assert reconcile_profiles(sub, "sync") == 0
    assert get_active_enrollment(profile.id).status == EnrollmentStatus.ENROLLED
    assert not grace_expired(sub)
    assert grace_expired(sub, now=datetime.utcnow() + timedelta(days=5))

    _history(sub, SubscriptionStatus.PAST_DUE, 10)
    assert reconcile_profiles(sub, "sync") == 1
    assert get_active_enrollment(profile.id) is None
    assert profile.status == EnrollmentStatus.WITHDRAWN
    assert profile.enrollments[-1].reason == "Subscription past_due beyond grace period"


def test_grace_period_counts_from_latest_past_due_run(past_due_student):
    _, sub = past_due_student
    assert past_due_since(sub) is None
    _history(sub, SubscriptionStatus.PAST_DUE, 20)
    _history(sub, SubscriptionStatus.ACTIVE, 15)
    _history(sub, SubscriptionStatus.PAST_DUE, 2)
    assert (datetime.utcnow() - past_due_since(sub)).days == 2
    assert not grace_expired(sub)


def test_grace_period_follows_config(app, past_due_student):
    profile, sub = past_due_student
    _history(sub, SubscriptionStatus.PAST_DUE, 10)
    with patch.dict(app.config, {"GRACE_PERIOD_DAYS": 30}):
        assert not grace_expired(sub)
        reconcile_profiles(sub, "sync")
    assert get_active_enrollment(profile.id).status == EnrollmentStatus.ENROLLED


def test_subscription_detail_endpoint(admin_client, past_due_student):
    profile, sub = past_due_student
    _history(sub, SubscriptionStatus.PAST_DUE, 1)
    body = admin_client.get('/api/billing/subscriptions/sub_late').get_json()
    assert body["active"] is False
    assert body["grace_period_ends"] is not None
    assert body["profile_ids"] == [profile.id]
    assert admin_client.get('/api/billing/subscriptions/sub_none').status_code == 404


def test_stub_sync_keeps_local_status(app, admin_client, past_due_student):
    with patch.dict(app.config, {"STRIPE_STUB": True}):
        r = admin_client.post('/api/billing/subscriptions/sub_late/sync')
    assert r.status_code == 200
    assert r.get_json()["status"] == SubscriptionStatus.PAST_DUE
