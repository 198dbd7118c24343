import json
import time

import pytest

from utils.errors import SignatureVerificationError
from utils.stripe_api import (
    construct_event,
    extract_customer_id,
    extract_period_dates,
    sign_payload,
    to_datetime,
)

SECRET = "whsec_test"


def test_valid_signature_returns_event():
    payload = json.dumps({"id": "evt_1", "type": "invoice.finalized"})
    event = construct_event(payload, sign_payload(payload, SECRET), SECRET)
    assert event["id"] == "evt_1"


def test_wrong_secret_rejected():
    payload = json.dumps({"id": "evt_1"})
    with pytest.raises(SignatureVerificationError):
        construct_event(payload, sign_payload(payload, "whsec_other"), SECRET)


def test_tampered_payload_rejected():
    payload = json.dumps({"id": "evt_1", "amount": 100})
    header = sign_payload(payload, SECRET)
    with pytest.raises(SignatureVerificationError):
        construct_event(payload.replace("100", "1"), header, SECRET)


def test_old_timestamp_rejected():
    payload = json.dumps({"id": "evt_1"})
    header = sign_payload(payload, SECRET, int(time.time()) - 3600)
    with pytest.raises(SignatureVerificationError):
        construct_event(payload, header, SECRET, tolerance=300)


def test_malformed_header_rejected():
    with pytest.raises(SignatureVerificationError):
        construct_event("{}", "garbage", SECRET)


def test_any_matching_v1_signature_accepted():
    payload = json.dumps({"id": "evt_2"})
    header = sign_payload(payload, SECRET) + ",v1=deadbeef"
    assert construct_event(payload, header, SECRET)["id"] == "evt_2"


def test_invalid_json_raises_value_error():
    payload = "not json"
    with pytest.raises(ValueError):
        construct_event(payload, sign_payload(payload, SECRET), SECRET)


def test_object_helpers():
    assert extract_customer_id("cus_1") == "cus_1"
    assert extract_customer_id({"id": "cus_2"}) == "cus_2"
    assert extract_customer_id(None) is None
    start, end = extract_period_dates({"items": {"data": [{"current_period_start": 0, "current_period_end": 86400}]}})
    assert start.year == 1970 and end.day == 2
    assert to_datetime(None) is None
