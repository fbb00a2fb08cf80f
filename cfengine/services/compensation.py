"""
Compensation Math Service

Shared pay, FTE, wRVU, threshold, incentive and PSQ helpers used by both the
scenario calculator and the CF optimizer.

Degenerate inputs (missing, NaN/inf, zero divisors) are guarded with explicit
fallbacks: num() coerces non-finite values to 0 and safe_div() returns the
supplied fallback instead of dividing by zero.
"""

import math
from typing import Any, Optional

from cfengine.models.enums import PSQBasis
from cfengine.models.schemas import ProviderRecord


# =============================================================================
# Numeric Guards
# =============================================================================


def num(value: Any, default: float = 0.0) -> float:
    """Coerce a possibly missing / non-finite value to a finite float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def is_finite_number(value: Any) -> bool:
    return (
        value is not None
        and not isinstance(value, bool)
        and isinstance(value, (int, float))
        and math.isfinite(value)
    )


def safe_div(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    """Divide, returning fallback when the divisor is zero or the result is non-finite."""
    if denominator == 0 or not math.isfinite(denominator):
        return fallback
    result = numerator / denominator
    return result if math.isfinite(result) else fallback


# =============================================================================
# Pay Components
# =============================================================================


def has_base_pay_components(provider: ProviderRecord) -> bool:
    return any(num(c.amount) > 0 for c in provider.basePayComponents)


def get_base_salary(provider: ProviderRecord) -> float:
    """Sum of base-pay components when any is positive, else the flat base salary."""
    if has_base_pay_components(provider):
        return sum(num(c.amount) for c in provider.basePayComponents)
    return num(provider.baseSalary)


def get_total_base_pay(provider: ProviderRecord) -> float:
    """Component sum when present, else base salary plus non-clinical pay."""
    if has_base_pay_components(provider):
        return get_base_salary(provider)
    return num(provider.baseSalary) + num(provider.nonClinicalPay)


def get_other_incentives(provider: ProviderRecord) -> float:
    return (
        num(provider.otherIncentives)
        + num(provider.otherIncentive1)
        + num(provider.otherIncentive2)
        + num(provider.otherIncentive3)
    )


# =============================================================================
# FTE and Productivity
# =============================================================================


def get_total_fte(provider: ProviderRecord) -> float:
    """Total FTE; 1.0 when missing or non-positive."""
    total = num(provider.totalFTE)
    return total if total > 0 else 1.0


def get_clinical_fte(provider: ProviderRecord) -> float:
    """Clinical FTE, else total FTE, else 0 when neither is positive."""
    clinical = num(provider.clinicalFTE)
    if clinical > 0:
        return clinical
    total = num(provider.totalFTE)
    return total if total > 0 else 0.0


def get_total_wrvus(provider: ProviderRecord) -> float:
    """Explicit total when nonzero, else work + outside + legacy pch wRVUs."""
    total = num(provider.totalWRVUs)
    if total != 0:
        return total
    return num(provider.workRVUs) + num(provider.outsideWRVUs) + num(provider.pchWRVUs)


# =============================================================================
# Thresholds, Incentive and PSQ
# =============================================================================


def derived_threshold(clinical_salary: float, cf: float) -> float:
    """Annual wRVU threshold at which salary is earned back: salary / CF (0 if CF is 0)."""
    return safe_div(clinical_salary, cf, 0.0)


def productivity_incentive(wrvus: float, threshold: float, cf: float) -> float:
    """(wRVUs - threshold) * CF when CF > 0, else 0. May be negative."""
    if cf <= 0:
        return 0.0
    return (wrvus - threshold) * cf


def psq_dollars(
    percent: Optional[float],
    basis: PSQBasis,
    base: float,
    incentive: float,
) -> float:
    """
    PSQ dollars for one state (current or modeled).

    - base_salary: base * pct
    - total_pay: gross-up against (base + positive incentive): x * (p / (1 - p))

    Percents outside (0, 100) contribute zero.
    """
    pct = num(percent)
    if pct <= 0 or pct >= 100:
        return 0.0
    p = pct / 100.0
    if basis == PSQBasis.TOTAL_PAY:
        return (base + max(incentive, 0.0)) * (p / (1.0 - p))
    return base * p


__all__ = [
    'num',
    'is_finite_number',
    'safe_div',
    'has_base_pay_components',
    'get_base_salary',
    'get_total_base_pay',
    'get_other_incentives',
    'get_total_fte',
    'get_clinical_fte',
    'get_total_wrvus',
    'derived_threshold',
    'productivity_incentive',
    'psq_dollars',
]
