import pytest

from models import BillingType, GraduationStatus, PaymentFrequency
from utils.tuition import (
    MAX_EXPECTED_FAMILY_RATE,
    calculate_dugsi_rate,
    calculate_mahad_rate,
    dugsi_rate_breakdown,
    format_rate,
    validate_override_amount,
)


@pytest.mark.parametrize("grad,freq,billing,expected", [
    (GraduationStatus.NON_GRADUATE, PaymentFrequency.MONTHLY, BillingType.FULL_TIME, 12000),
    (GraduationStatus.NON_GRADUATE, PaymentFrequency.BI_MONTHLY, BillingType.FULL_TIME, 22000),
    (GraduationStatus.GRADUATE, PaymentFrequency.MONTHLY, BillingType.FULL_TIME, 9500),
    (GraduationStatus.GRADUATE, PaymentFrequency.BI_MONTHLY, BillingType.FULL_TIME, 18000),
    (GraduationStatus.NON_GRADUATE, PaymentFrequency.MONTHLY, BillingType.FULL_TIME_SCHOLARSHIP, 9000),
    (GraduationStatus.GRADUATE, PaymentFrequency.MONTHLY, BillingType.PART_TIME, 4750),
    (GraduationStatus.NON_GRADUATE, PaymentFrequency.BI_MONTHLY, BillingType.PART_TIME, 11000),
    (GraduationStatus.GRADUATE, PaymentFrequency.MONTHLY, BillingType.EXEMPT, 0),
])
def test_mahad_rates(grad, freq, billing, expected):
    assert calculate_mahad_rate(grad, freq, billing) == expected


def test_mahad_rate_defaults_and_missing_billing_type():
    assert calculate_mahad_rate(None, None, BillingType.FULL_TIME) == 12000
    assert calculate_mahad_rate(GraduationStatus.GRADUATE, PaymentFrequency.MONTHLY, None) == 0


@pytest.mark.parametrize("children,expected", [
    (1, 8000), (2, 16000), (3, 23000), (4, 29000), (5, 35000),
    (0, 0), (-1, 0), ("3", 0), (2.5, 0),
])
def test_dugsi_family_rates(children, expected):
    assert calculate_dugsi_rate(children) == expected


def test_dugsi_breakdown():
    breakdown = dugsi_rate_breakdown(3)
    assert [c["rate"] for c in breakdown["children"]] == [8000, 8000, 7000]
    assert breakdown["total"] == 23000


def test_override_validation():
    assert validate_override_amount(20000, 23000) == {"valid": True, "errors": [], "warnings": []}
    assert not validate_override_amount(0, 23000)["valid"]
    assert not validate_override_amount(100.5, 23000)["valid"]
    assert not validate_override_amount("abc", 23000)["valid"]
    high = validate_override_amount(MAX_EXPECTED_FAMILY_RATE + 100, 60000)
    assert high["valid"] and len(high["warnings"]) == 1
    far = validate_override_amount(5000, 23000)
    assert far["valid"] and "50%" in far["warnings"][0]


def test_format_rate():
    assert format_rate(12000) == "$120.00"
