"""
Productivity Target Service

Sets a group wRVU target per provider specialty (at 1.0 cFTE) and evaluates
every provider against it.

Per specialty:
1. Target rule: the specialty override when present, else the run settings.
   wrvu_percentile reads the market wRVU curve at the target percentile;
   pay_per_wrvu uses the manual target wRVUs.
2. Provider target = group target * cFTE * ramp factor. Percent to target,
   wRVU variance and a status band follow from actual wRVUs.
3. Planning incentive pays the planning CF (manual, or the market CF curve
   at the planning percentile) on wRVUs above the ramped target.

Specialties without market data or a usable target still list their
providers, at 0% to target with a warning.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from cfengine.models.enums import PlanningCFSource, ProviderTargetStatus, TargetApproach
from cfengine.models.schemas import (
    MarketRow,
    ProductivityTargetProviderResult,
    ProductivityTargetRunResult,
    ProductivityTargetSettings,
    ProductivityTargetSpecialtyResult,
    ProductivityTargetSpecialtySummary,
    ProviderRecord,
    SpecialtyTargetRule,
    StatusBandCounts,
)
from cfengine.services.compensation import get_clinical_fte, get_total_wrvus, is_finite_number, safe_div
from cfengine.services.percentile_curve import interpolate_market
from cfengine.services.specialty_match import match_specialty


logger = logging.getLogger(__name__)


ABOVE_TARGET_PCT: float = 120.0
AT_TARGET_PCT: float = 100.0
BELOW_BAND_PCT: float = 80.0

MISSING_MARKET_WARNING = "Missing market data"
NO_TARGET_WARNING = "Could not compute group target"


# =============================================================================
# Target Rules
# =============================================================================


def provider_target_status(percent_to_target: float) -> ProviderTargetStatus:
    if percent_to_target >= ABOVE_TARGET_PCT:
        return ProviderTargetStatus.ABOVE
    if percent_to_target >= AT_TARGET_PCT:
        return ProviderTargetStatus.AT
    return ProviderTargetStatus.BELOW


def effective_target_rule(settings: ProductivityTargetSettings, specialty: str) -> SpecialtyTargetRule:
    """Specialty override with unset fields filled from the run settings."""
    override = settings.specialtyTargetOverrides.get(specialty)
    if override is None:
        return SpecialtyTargetRule(
            targetApproach=settings.targetApproach,
            targetPercentile=settings.targetPercentile,
            manualTargetWRVU=settings.manualTargetWRVU,
        )
    return SpecialtyTargetRule(
        targetApproach=override.targetApproach,
        targetPercentile=(
            override.targetPercentile if override.targetPercentile is not None else settings.targetPercentile
        ),
        manualTargetWRVU=(
            override.manualTargetWRVU if override.manualTargetWRVU is not None else settings.manualTargetWRVU
        ),
    )


def group_target_wrvu(
    specialty: str,
    settings: ProductivityTargetSettings,
    market_row: Optional[MarketRow],
) -> Optional[float]:
    """
    Group wRVU target at 1.0 cFTE for a specialty.

    Returns:
        The target, or None when the manual target is missing / negative or
        the percentile approach has no market row.
    """
    rule = effective_target_rule(settings, specialty)
    if rule.targetApproach == TargetApproach.PAY_PER_WRVU:
        manual = rule.manualTargetWRVU
        return float(manual) if is_finite_number(manual) and manual >= 0 else None
    if market_row is None:
        return None
    return interpolate_market(rule.targetPercentile, market_row, "WRVU")


def planning_cf(settings: ProductivityTargetSettings, market_row: Optional[MarketRow]) -> Optional[float]:
    """Manual planning CF when set, else the market CF at the planning percentile."""
    if settings.planningCFSource == PlanningCFSource.MANUAL and is_finite_number(settings.planningCFManual):
        return float(settings.planningCFManual)
    if market_row is None:
        return None
    return interpolate_market(settings.planningCFPercentile, market_row, "CF")


# =============================================================================
# Provider Evaluation
# =============================================================================


def _provider_key(provider: ProviderRecord) -> str:
    return provider.providerId or provider.providerName or ""


def evaluate_provider(
    provider: ProviderRecord,
    specialty: str,
    group_target: Optional[float],
    cf: Optional[float],
    settings: ProductivityTargetSettings,
) -> ProductivityTargetProviderResult:
    """Target, variance, percent to target, status and planning incentive for one provider."""
    provider_id = _provider_key(provider)
    cfte = get_clinical_fte(provider)
    actual = get_total_wrvus(provider)
    ramp = settings.rampFactorByProviderId.get(provider_id, 1.0)

    if group_target is None or group_target <= 0:
        target = ramped = 0.0
    else:
        target = group_target * cfte
        ramped = target * ramp

    percent = safe_div(actual, ramped, 0.0) * 100.0 if ramped > 0 else 0.0
    incentive = None
    if cf is not None and cf > 0 and ramped > 0:
        incentive = max(0.0, actual - ramped) * cf

    return ProductivityTargetProviderResult(
        providerId=provider_id,
        providerName=provider.providerName,
        specialty=specialty,
        cFTE=cfte,
        actualWRVUs=actual,
        rampFactor=ramp,
        targetWRVU=target,
        rampedTargetWRVU=ramped,
        varianceWRVU=actual - ramped,
        percentToTarget=percent,
        status=provider_target_status(percent),
        planningIncentiveDollars=incentive,
    )


def summarize_specialty(providers: List[ProductivityTargetProviderResult]) -> ProductivityTargetSpecialtySummary:
    """Mean and median percent to target plus band counts (<80, 80-99, 100-119, >=120)."""
    counts = {"below80": 0, "eightyTo99": 0, "hundredTo119": 0, "atOrAbove120": 0}
    for result in providers:
        pct = result.percentToTarget
        if pct < BELOW_BAND_PCT:
            counts["below80"] += 1
        elif pct < AT_TARGET_PCT:
            counts["eightyTo99"] += 1
        elif pct < ABOVE_TARGET_PCT:
            counts["hundredTo119"] += 1
        else:
            counts["atOrAbove120"] += 1

    percents = [r.percentToTarget for r in providers]
    return ProductivityTargetSpecialtySummary(
        meanPercentToTarget=float(np.mean(percents)) if percents else 0.0,
        medianPercentToTarget=float(np.median(percents)) if percents else 0.0,
        bandCounts=StatusBandCounts(**counts),
    )


# =============================================================================
# Main Entry Point
# =============================================================================


def group_providers(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
) -> Dict[str, Tuple[List[ProviderRecord], Optional[MarketRow]]]:
    """
    Providers grouped by trimmed provider specialty, with the first matched
    market row among the group's members.
    """
    groups: Dict[str, Tuple[List[ProviderRecord], Optional[MarketRow]]] = {}
    for provider in provider_rows:
        specialty = (provider.specialty or "").strip()
        members, market = groups.get(specialty, ([], None))
        members.append(provider)
        if market is None:
            market = match_specialty(provider, market_rows, synonym_map).marketRow
        groups[specialty] = (members, market)
    return groups


def run_productivity_targets(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    settings: Optional[ProductivityTargetSettings] = None,
    synonym_map: Optional[Dict[str, str]] = None,
) -> ProductivityTargetRunResult:
    """
    Group wRVU targets and provider evaluations for every provider specialty.

    Args:
        provider_rows: Providers to evaluate.
        market_rows: Market benchmark rows.
        settings: Target settings (defaults when None).
        synonym_map: Provider specialty -> market specialty mapping.

    Returns:
        ProductivityTargetRunResult with specialties sorted case-insensitively.
    """
    settings = settings or ProductivityTargetSettings()
    results: List[ProductivityTargetSpecialtyResult] = []

    for specialty, (members, market) in group_providers(provider_rows, market_rows, synonym_map).items():
        rule = effective_target_rule(settings, specialty)
        target = group_target_wrvu(specialty, settings, market)
        cf = planning_cf(settings, market)

        warning = None
        if market is None:
            warning = MISSING_MARKET_WARNING
        elif target is None:
            warning = NO_TARGET_WARNING
        if warning:
            logger.warning(f"Productivity target for {specialty!r}: {warning}")

        providers = [evaluate_provider(p, specialty, target, cf, settings) for p in members]
        results.append(ProductivityTargetSpecialtyResult(
            specialty=specialty,
            groupTargetWRVU_1cFTE=target,
            targetPercentile=rule.targetPercentile,
            targetApproach=rule.targetApproach,
            planningCF=cf,
            providers=providers,
            summary=summarize_specialty(providers),
            totalPlanningIncentiveDollars=sum(p.planningIncentiveDollars or 0.0 for p in providers),
            warning=warning,
        ))

    results.sort(key=lambda row: (row.specialty.casefold(), row.specialty))
    logger.info(f"Productivity targets computed for {len(results)} specialties, {len(provider_rows)} providers")
    return ProductivityTargetRunResult(bySpecialty=results)


__all__ = [
    'provider_target_status',
    'effective_target_rule',
    'group_target_wrvu',
    'planning_cf',
    'evaluate_provider',
    'summarize_specialty',
    'group_providers',
    'run_productivity_targets',
]
