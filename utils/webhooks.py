"""Payment provider webhook processing.

Every delivery goes through :func:`process_webhook`, which verifies the
signature, drops events already processed for the same source, records the
event and dispatches to a handler by event type. The record and the
handler's writes share one transaction; on failure the record is removed so
the provider's retry is processed again.
"""
from __future__ import annotations

from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import AccountType, BillingAccount, Person, StudentPayment, SubscriptionStatus, WebhookEvent
from utils import stripe_api
from utils.billing import (
    create_or_update_billing_account,
    get_billing_account_by_customer_id,
    link_subscription_to_profiles,
    unlink_subscription,
)
from utils.errors import (
    RateMismatchError,
    RetryableWebhookError,
    ServiceError,
    SignatureVerificationError,
)
from utils.notify import send_billing_alert
from utils.people import find_person_by_email, find_person_by_phone
from utils.subscriptions import (
    create_subscription_from_provider,
    get_subscription,
    reconcile_profiles,
    update_subscription_status,
)
from utils.tuition import calculate_dugsi_rate, calculate_mahad_rate

Handler = Callable[[Dict[str, Any]], None]

_CLIENT_ERROR_MARKERS = ("Invalid", "Missing", "Required")


# -----------------------------
# Dispatcher
# -----------------------------

def classify_error(exc: Exception) -> int:
    """HTTP status for a handler failure. 5xx makes the provider retry."""
    if isinstance(exc, RetryableWebhookError):
        return 500
    if isinstance(exc, RateMismatchError):
        return 400
    if isinstance(exc, ServiceError):
        return exc.status_code if exc.status_code < 500 else 500
    if isinstance(exc, SQLAlchemyError):
        return 500
    if any(marker in str(exc) for marker in _CLIENT_ERROR_MARKERS):
        return 400
    return 500


def process_webhook(
    source: str,
    body: str,
    signature: Optional[str],
    secret: str,
    handlers: Dict[str, Handler],
    tolerance: int = 300,
) -> Tuple[Dict[str, Any], int]:
    log = current_app.logger
    if not body:
        return {"error": "Empty request body"}, 400
    if not signature:
        return {"error": "Missing signature header"}, 400

    try:
        event = stripe_api.construct_event(body, signature, secret, tolerance)
    except SignatureVerificationError as e:
        log.warning("Webhook signature verification failed (%s): %s", source, e)
        return {"error": "Invalid signature"}, 401
    except ValueError:
        return {"error": "Invalid JSON payload"}, 400

    event_id = event.get("id") if isinstance(event, dict) else None
    event_type = event.get("type") if isinstance(event, dict) else None
    if not event_id or not event_type:
        return {"error": "Missing event id or type"}, 400

    handler = handlers.get(event_type)
    if handler is not None and not _has_data_object(event):
        log.warning("Webhook %s (%s) from %s has no data object", event_id, event_type, source)
        return {"error": "Missing event data object"}, 400

    if WebhookEvent.query.filter_by(event_id=event_id, source=source).first() is not None:
        log.info("Webhook %s (%s) already processed for %s, skipping", event_id, event_type, source)
        return {"received": True, "skipped": True}, 200

    try:
        db.session.add(WebhookEvent(event_id=event_id, event_type=event_type, source=source, payload=event))
        db.session.flush()
    except IntegrityError:
        # Concurrent delivery of the same event won the insert
        db.session.rollback()
        return {"received": True, "skipped": True}, 200

    if handler is None:
        log.warning("Unhandled webhook event type %s (%s)", event_type, source)
        db.session.commit()
        return {"received": True}, 200

    log.info("Processing webhook %s (%s) from %s", event_id, event_type, source)
    try:
        handler(event)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        _forget_event(event_id, source)
        status = classify_error(e)
        if isinstance(e, RetryableWebhookError):
            log.warning("Retryable webhook failure %s (%s): %s %s", event_id, event_type, e, e.context)
        else:
            log.exception("Webhook %s (%s) failed", event_id, event_type)
        return {"error": str(e) or type(e).__name__}, status

    log.info("Webhook %s (%s) processed", event_id, event_type)
    return {"received": True}, 200


def _has_data_object(event: Dict[str, Any]) -> bool:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return isinstance(obj, dict) and bool(obj.get("id"))


def _forget_event(event_id: str, source: str) -> None:
    try:
        WebhookEvent.query.filter_by(event_id=event_id, source=source).delete()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not remove webhook record %s (%s)", event_id, source)


def event_handlers_for(account_type: str) -> Dict[str, Handler]:
    handlers = {
        "checkout.session.completed": handle_checkout_completed,
        "customer.subscription.created": handle_subscription_created,
        "customer.subscription.updated": handle_subscription_updated,
        "customer.subscription.deleted": handle_subscription_deleted,
        "invoice.payment_succeeded": handle_invoice_paid,
        "invoice.finalized": handle_invoice_finalized,
        "invoice.payment_failed": handle_invoice_failed,
    }
    return {event_type: partial(fn, account_type=account_type) for event_type, fn in handlers.items()}


# -----------------------------
# Matching helpers
# -----------------------------

def _custom_field(session: Dict[str, Any], needle: str) -> Optional[str]:
    for field in session.get("custom_fields") or []:
        key = (field.get("key") or "").lower()
        if needle not in key:
            continue
        for kind in ("text", "numeric", "dropdown"):
            value = (field.get(kind) or {}).get("value")
            if value:
                return str(value)
    return None


def match_person(session: Dict[str, Any], account_type: str) -> Optional[Person]:
    """Find the person a checkout session belongs to.

    Tried in order: metadata person ids, custom-field email, custom-field
    phone, payer email, existing billing account for the customer.
    """
    metadata = session.get("metadata") or {}
    for key in ("personId", "guardianPersonId"):
        person_id = metadata.get(key)
        if person_id:
            person = db.session.get(Person, person_id)
            if person is not None:
                return person

    person = find_person_by_email(_custom_field(session, "email"))
    if person is None:
        person = find_person_by_phone(_custom_field(session, "phone"))
    if person is None:
        details = session.get("customer_details") or {}
        person = find_person_by_email(details.get("email") or session.get("customer_email"))
    if person is None:
        account = get_billing_account_by_customer_id(stripe_api.extract_customer_id(session.get("customer")), account_type)
        if account is not None and account.person_id:
            person = db.session.get(Person, account.person_id)
    return person


def parse_profile_ids(metadata: Dict[str, Any]) -> List[str]:
    raw = metadata.get("profileIds") or metadata.get("profileId") or ""
    return [p.strip() for p in str(raw).split(",") if p.strip()]


def _int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def validate_subscription_rate(subscription: Dict[str, Any], account_type: str) -> None:
    """Raise RateMismatchError when the charged price differs from metadata's calculated rate."""
    metadata = subscription.get("metadata") or {}
    expected = _int(metadata.get("calculatedRate"))
    if expected is None:
        return
    log = current_app.logger

    recalculated = None
    if account_type == AccountType.MAHAD and metadata.get("billingType"):
        recalculated = calculate_mahad_rate(
            metadata.get("graduationStatus"), metadata.get("paymentFrequency"), metadata.get("billingType"),
        )
    elif account_type == AccountType.DUGSI and _int(metadata.get("childCount")):
        recalculated = calculate_dugsi_rate(_int(metadata.get("childCount")))
    if recalculated is not None and recalculated != expected and metadata.get("overrideUsed") != "true":
        log.warning(
            "Subscription %s: metadata rate %s differs from recalculated %s",
            subscription.get("id"), expected, recalculated,
        )

    actual = stripe_api.first_price_amount(subscription)
    if actual is not None and actual != expected:
        raise RateMismatchError(
            f"Rate mismatch for subscription {subscription.get('id')}: charged {actual}, expected {expected}",
            context={"subscription_id": subscription.get("id"), "actual": actual, "expected": expected},
        )


# -----------------------------
# Event handlers
# -----------------------------

def handle_checkout_completed(event: Dict[str, Any], account_type: str) -> None:
    session = event["data"]["object"]
    customer_id = stripe_api.extract_customer_id(session.get("customer"))
    person = match_person(session, account_type)
    if person is None:
        current_app.logger.warning(
            "Checkout %s: no matching person for customer %s", session.get("id"), customer_id,
        )
        return
    create_or_update_billing_account(
        person.id,
        account_type,
        customer_id=customer_id,
        payment_intent_id=session.get("payment_intent") if account_type == AccountType.DUGSI else None,
        payment_method_captured=True,
    )


def _billing_account_for(subscription: Dict[str, Any], account_type: str) -> BillingAccount:
    customer_id = stripe_api.extract_customer_id(subscription.get("customer"))
    if not customer_id:
        raise ValueError("Missing customer on subscription")
    account = get_billing_account_by_customer_id(customer_id, account_type)
    if account is not None:
        return account
    metadata = subscription.get("metadata") or {}
    for key in ("personId", "guardianPersonId"):
        person_id = metadata.get(key)
        if person_id and db.session.get(Person, person_id) is not None:
            return create_or_update_billing_account(person_id, account_type, customer_id=customer_id)
    raise RetryableWebhookError(
        f"No billing account for customer {customer_id}",
        context={"customer_id": customer_id, "subscription_id": subscription.get("id")},
    )


def handle_subscription_created(event: Dict[str, Any], account_type: str) -> None:
    data = event["data"]["object"]
    account = _billing_account_for(data, account_type)
    validate_subscription_rate(data, account_type)
    subscription = create_subscription_from_provider(data, account.id)

    profile_ids = parse_profile_ids(data.get("metadata") or {})
    items = ((data.get("items") or {}).get("data")) or []
    if profile_ids and items and subscription.amount > 0:
        created = link_subscription_to_profiles(subscription.id, profile_ids, subscription.amount)
        current_app.logger.info("Linked subscription %s to %d profile(s)", subscription.stripe_subscription_id, created)
    reconcile_profiles(subscription, event["type"], event.get("id"))


def handle_subscription_updated(event: Dict[str, Any], account_type: str) -> None:
    data = event["data"]["object"]
    stripe_id = data["id"]
    if get_subscription(stripe_id) is None:
        raise RetryableWebhookError(f"Subscription {stripe_id} not found", context={"subscription_id": stripe_id})
    status = data.get("status")
    if not status:
        raise ValueError("Missing subscription status")
    period_start, period_end = stripe_api.extract_period_dates(data)
    subscription = update_subscription_status(stripe_id, status, period_start, period_end)
    amount = stripe_api.first_price_amount(data)
    if amount is not None:
        subscription.amount = amount

    profile_ids = parse_profile_ids(data.get("metadata") or {})
    if profile_ids and not subscription.active_assignments and subscription.amount > 0 \
            and status != SubscriptionStatus.CANCELED:
        link_subscription_to_profiles(subscription.id, profile_ids, subscription.amount)
    reconcile_profiles(subscription, event["type"], event.get("id"))


def handle_subscription_deleted(event: Dict[str, Any], account_type: str) -> None:
    data = event["data"]["object"]
    subscription = get_subscription(data["id"])
    if subscription is None:
        current_app.logger.warning("Deleted subscription %s not found locally", data["id"])
        return
    subscription.status = SubscriptionStatus.CANCELED
    reconcile_profiles(subscription, event["type"], event.get("id"))
    unlink_subscription(subscription.id)


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    sub = invoice.get("subscription")
    if not sub:
        details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
        sub = details.get("subscription")
    if isinstance(sub, dict):
        return sub.get("id")
    return sub


def _invoice_period_end(invoice: Dict[str, Any]) -> Optional[datetime]:
    lines = ((invoice.get("lines") or {}).get("data")) or []
    if lines:
        end = (lines[0].get("period") or {}).get("end")
        if end:
            return stripe_api.to_datetime(end)
    return stripe_api.to_datetime(invoice.get("period_end"))


def _subscription_for_invoice(invoice: Dict[str, Any]):
    stripe_id = _invoice_subscription_id(invoice)
    if not stripe_id:
        return None
    subscription = get_subscription(stripe_id)
    if subscription is None:
        raise RetryableWebhookError(
            f"Subscription {stripe_id} not found for invoice {invoice.get('id')}",
            context={"subscription_id": stripe_id, "invoice_id": invoice.get("id")},
        )
    return subscription


def handle_invoice_finalized(event: Dict[str, Any], account_type: str) -> None:
    invoice = event["data"]["object"]
    subscription = _subscription_for_invoice(invoice)
    if subscription is None:
        return
    period_end = _invoice_period_end(invoice)
    if period_end is not None:
        subscription.paid_until = period_end
    db.session.flush()


def handle_invoice_paid(event: Dict[str, Any], account_type: str) -> None:
    invoice = event["data"]["object"]
    subscription = _subscription_for_invoice(invoice)
    if subscription is None:
        current_app.logger.info("Invoice %s has no subscription, ignoring", invoice.get("id"))
        return
    now = datetime.utcnow()
    paid_at = stripe_api.to_datetime((invoice.get("status_transitions") or {}).get("paid_at")) or now
    period_end = _invoice_period_end(invoice)
    if period_end is not None:
        subscription.paid_until = period_end
    subscription.last_payment_date = paid_at
    subscription.billing_account.last_payment_date = paid_at

    invoice_id = invoice.get("id")
    for assignment in subscription.active_assignments:
        exists = StudentPayment.query.filter_by(
            program_profile_id=assignment.program_profile_id, stripe_invoice_id=invoice_id,
        ).first()
        if exists is not None:
            continue
        db.session.add(StudentPayment(
            program_profile_id=assignment.program_profile_id,
            stripe_invoice_id=invoice_id,
            amount_paid=assignment.amount,
            paid_at=paid_at,
            year=paid_at.year,
            month=paid_at.month,
        ))
    db.session.flush()


def handle_invoice_failed(event: Dict[str, Any], account_type: str) -> None:
    invoice = event["data"]["object"]
    customer_id = stripe_api.extract_customer_id(invoice.get("customer"))
    attempt = invoice.get("attempt_count")
    current_app.logger.warning(
        "Payment failed for invoice %s (customer %s, %s, attempt %s)",
        invoice.get("id"), customer_id, account_type, attempt,
    )
    send_billing_alert(
        subject=f"[{account_type}] Payment failed for invoice {invoice.get('id')}",
        body=(
            f"Customer: {customer_id}\n"
            f"Email: {invoice.get('customer_email') or '-'}\n"
            f"Amount due: {invoice.get('amount_due')}\n"
            f"Attempt: {attempt}\n"
        ),
    )
