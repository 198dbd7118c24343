"""Tuition rates. All amounts are in cents."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from models import BillingType, GraduationStatus, PaymentFrequency

MAHAD_BASE_RATES = {
    GraduationStatus.NON_GRADUATE: {
        PaymentFrequency.MONTHLY: 12000,
        PaymentFrequency.BI_MONTHLY: 11000,
    },
    GraduationStatus.GRADUATE: {
        PaymentFrequency.MONTHLY: 9500,
        PaymentFrequency.BI_MONTHLY: 9000,
    },
}
MAHAD_SCHOLARSHIP_DISCOUNT = 3000

DUGSI_FIRST_TWO_RATE = 8000
DUGSI_THIRD_RATE = 7000
DUGSI_ADDITIONAL_RATE = 6000
MAX_EXPECTED_FAMILY_RATE = 65000
OVERRIDE_DEVIATION_THRESHOLD = 0.5


def calculate_mahad_rate(
    graduation_status: Optional[str],
    payment_frequency: Optional[str],
    billing_type: Optional[str],
) -> int:
    """Amount charged per billing period.

    Bi-monthly plans bill two months at once, so the per-month base is doubled.
    Exempt students and students without a billing type pay nothing.
    """
    if not billing_type or billing_type == BillingType.EXEMPT:
        return 0
    graduation_status = graduation_status or GraduationStatus.NON_GRADUATE
    payment_frequency = payment_frequency or PaymentFrequency.MONTHLY
    rates = MAHAD_BASE_RATES.get(graduation_status, MAHAD_BASE_RATES[GraduationStatus.NON_GRADUATE])
    monthly = rates.get(payment_frequency, rates[PaymentFrequency.MONTHLY])

    if billing_type == BillingType.FULL_TIME_SCHOLARSHIP:
        monthly -= MAHAD_SCHOLARSHIP_DISCOUNT
    elif billing_type == BillingType.PART_TIME:
        monthly = monthly // 2

    if payment_frequency == PaymentFrequency.BI_MONTHLY:
        return monthly * 2
    return monthly


def _dugsi_child_rate(position: int) -> int:
    if position <= 2:
        return DUGSI_FIRST_TWO_RATE
    if position == 3:
        return DUGSI_THIRD_RATE
    return DUGSI_ADDITIONAL_RATE


def calculate_dugsi_rate(child_count) -> int:
    """Monthly family rate for *child_count* children (0 for invalid input)."""
    if isinstance(child_count, bool) or not isinstance(child_count, int) or child_count <= 0:
        return 0
    return sum(_dugsi_child_rate(i) for i in range(1, child_count + 1))


def dugsi_rate_breakdown(child_count: int) -> Dict[str, Any]:
    children: List[Dict[str, Any]] = []
    if isinstance(child_count, int) and child_count > 0:
        for i in range(1, child_count + 1):
            children.append({"position": i, "rate": _dugsi_child_rate(i)})
    return {
        "child_count": len(children),
        "children": children,
        "total": sum(c["rate"] for c in children),
    }


def validate_override_amount(override, calculated: int) -> Dict[str, Any]:
    """Check an admin-entered family rate.

    Returns ``{"valid": bool, "errors": [...], "warnings": [...]}``.
    """
    errors: List[str] = []
    warnings: List[str] = []
    if isinstance(override, bool) or not isinstance(override, (int, float)):
        errors.append("Override amount must be a number")
    elif override <= 0:
        errors.append("Override amount must be positive")
    elif int(override) != override:
        errors.append("Override amount must be a whole number of cents")
    else:
        if override > MAX_EXPECTED_FAMILY_RATE:
            warnings.append(
                f"Override {format_rate(int(override))} exceeds expected maximum {format_rate(MAX_EXPECTED_FAMILY_RATE)}"
            )
        if calculated > 0 and abs(override - calculated) / calculated > OVERRIDE_DEVIATION_THRESHOLD:
            warnings.append(
                f"Override {format_rate(int(override))} differs from calculated {format_rate(calculated)} by more than 50%"
            )
    return {"valid": not errors, "errors": errors, "warnings": warnings}


def format_rate(cents: int) -> str:
    return f"${cents / 100:,.2f}"
