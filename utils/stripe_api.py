"""Stripe REST calls over requests, plus webhook signature helpers."""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests
from flask import current_app
from requests.exceptions import RequestException, SSLError, ConnectionError as RequestsConnectionError, Timeout as RequestsTimeout

from models import AccountType
from utils.errors import SignatureVerificationError


class StripeError(Exception):
    pass


_SECRET_KEYS = {
    AccountType.MAHAD: "STRIPE_SECRET_KEY_MAHAD",
    AccountType.DUGSI: "STRIPE_SECRET_KEY_DUGSI",
}

_WEBHOOK_SECRETS = {
    "mahad": "STRIPE_WEBHOOK_SECRET_MAHAD",
    "dugsi": "STRIPE_WEBHOOK_SECRET_DUGSI",
}


def _cfg(key: str, default: str = "") -> str:
    val = current_app.config.get(key)
    if val is None:
        return default
    return str(val).strip() or default


def _stub_enabled() -> bool:
    return bool(current_app.config.get("STRIPE_STUB"))


def webhook_secret(source: str) -> str:
    key = _WEBHOOK_SECRETS.get(source)
    if not key:
        raise StripeError(f"Unknown webhook source: {source}")
    return _cfg(key)


# -----------------------------
# Signature verification
# -----------------------------

def _parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp = None
    signatures: List[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def compute_signature(payload: str, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.{payload}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def sign_payload(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``t=...,v1=...`` header for *payload* (used by tests and tooling)."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(payload, secret, ts)}"


def construct_event(payload: str, sig_header: str, secret: str, tolerance: int = 300) -> Dict[str, Any]:
    """Verify the provider signature over *payload* and return the decoded event.

    Raises SignatureVerificationError when the header is malformed, the
    timestamp is outside *tolerance* seconds, or no v1 signature matches.
    ValueError is raised when the verified payload is not valid JSON.
    """
    if not secret:
        raise SignatureVerificationError("Webhook secret not configured")
    timestamp, signatures = _parse_signature_header(sig_header or "")
    if timestamp is None or not signatures:
        raise SignatureVerificationError("Unable to extract timestamp and signatures from header")
    if tolerance and abs(time.time() - timestamp) > tolerance:
        raise SignatureVerificationError("Timestamp outside the tolerance zone")
    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, s) for s in signatures):
        raise SignatureVerificationError("No signatures found matching the expected signature for payload")
    return json.loads(payload)


# -----------------------------
# Object helpers
# -----------------------------

def to_datetime(ts) -> Optional[datetime]:
    """Unix seconds -> naive UTC datetime."""
    if ts in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError):
        return None


def extract_customer_id(customer) -> Optional[str]:
    """Customer may be an id string, an expanded object, or missing."""
    if not customer:
        return None
    if isinstance(customer, str):
        return customer
    if isinstance(customer, dict):
        return customer.get("id")
    return None


def extract_period_dates(subscription: Dict[str, Any]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Billing period of a subscription object.

    Newer API versions only carry the period on subscription items, so fall
    back to the first item.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        items = ((subscription.get("items") or {}).get("data")) or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return to_datetime(start), to_datetime(end)


def first_price_amount(subscription: Dict[str, Any]) -> Optional[int]:
    items = ((subscription.get("items") or {}).get("data")) or []
    if not items:
        return None
    price = items[0].get("price") or {}
    amount = price.get("unit_amount")
    return int(amount) if amount is not None else None


# -----------------------------
# REST client
# -----------------------------

def _secret_key(account_type: str) -> str:
    key = _SECRET_KEYS.get(account_type)
    secret = _cfg(key) if key else ""
    if not secret:
        raise StripeError(f"Stripe secret key not configured for {account_type}")
    return secret


def _request(method: str, path: str, account_type: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    url = f"{_cfg('STRIPE_API_BASE', 'https://api.stripe.com/v1').rstrip('/')}/{path.lstrip('/')}"
    timeout = int(current_app.config.get("STRIPE_TIMEOUT_SECONDS") or 20)
    auth = (_secret_key(account_type), "")
    try:
        if method == "GET":
            r = requests.get(url, params=params, auth=auth, timeout=timeout)
        else:
            r = requests.request(method, url, data=params, auth=auth, timeout=timeout)
    except (RequestsTimeout, SSLError, RequestsConnectionError, RequestException) as e:
        raise StripeError(f"Network/SSL error contacting Stripe: {type(e).__name__}: {e}")
    try:
        data = r.json()
    except ValueError:
        raise StripeError(f"Stripe returned non-JSON response ({r.status_code})")
    if r.status_code >= 400:
        message = ((data or {}).get("error") or {}).get("message") or r.text
        raise StripeError(f"Stripe API error {r.status_code}: {message}")
    return data


def retrieve_subscription(subscription_id: str, account_type: str) -> Dict[str, Any]:
    if _stub_enabled():
        # No status: callers keep the local one
        return {"id": subscription_id, "object": "subscription", "items": {"data": []}}
    return _request("GET", f"subscriptions/{subscription_id}", account_type)


def cancel_subscription(subscription_id: str, account_type: str) -> Dict[str, Any]:
    if _stub_enabled():
        return {"id": subscription_id, "object": "subscription", "status": "canceled"}
    return _request("DELETE", f"subscriptions/{subscription_id}", account_type)


def _paginate(path: str, account_type: str, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    params = dict(params)
    params.setdefault("limit", 100)
    while True:
        page = _request("GET", path, account_type, params)
        items = page.get("data") or []
        for item in items:
            yield item
        if not page.get("has_more") or not items:
            return
        params["starting_after"] = items[-1]["id"]


def list_customers(account_type: str, created_before: Optional[datetime] = None) -> List[Dict[str, Any]]:
    if _stub_enabled():
        return []
    params: Dict[str, Any] = {}
    if created_before is not None:
        params["created[lt]"] = int(created_before.replace(tzinfo=timezone.utc).timestamp())
    return list(_paginate("customers", account_type, params))


def list_subscriptions(customer_id: str, account_type: str, status: str = "all") -> List[Dict[str, Any]]:
    if _stub_enabled():
        return []
    return list(_paginate("subscriptions", account_type, {"customer": customer_id, "status": status}))
