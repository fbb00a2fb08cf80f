"""
Scenario Calculator Service

Computes baseline and modeled compensation for one provider under one set of
scenario inputs against the provider's matched market row.

Calculation order:
1. Base salary (components or flat) and clinical base salary
2. Total wRVUs (explicit total or work + outside + legacy pch)
3. Current threshold and current incentive
4. Modeled CF (target percentile, haircut, or override)
5. Modeled threshold (derived, annual, or market wRVU percentile x cFTE)
6. Modeled incentive
7. Current and modeled PSQ dollars
8. Current and modeled TCC
9. Normalized metrics and market percentiles
10. Imputed $/wRVU against the synthetic market $/wRVU curve
11. Alignment gaps, governance flags, risk notes and warnings

Governance flags (independent booleans):
- underpayRisk: baselineGap < -15 or modeledGap < -15
- cfBelow25: current CF percentile < 25
- modeledInPolicyBand: modeled CF pct and modeled TCC pct both in [25, 75]
- fmvCheckSuggested: modeled TCC pct > 75 or modeledGap > 15

Thresholds come from EngineConfig; defaults match the values above.
"""

from typing import List, Optional, Tuple

from cfengine.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from cfengine.models.enums import CFSource, ThresholdMethod
from cfengine.models.schemas import (
    GovernanceFlags,
    MarketRow,
    ProviderRecord,
    RiskAssessment,
    ScenarioInputs,
    ScenarioResult,
)
from cfengine.services.compensation import (
    derived_threshold,
    get_base_salary,
    get_clinical_fte,
    get_other_incentives,
    get_total_base_pay,
    get_total_fte,
    get_total_wrvus,
    has_base_pay_components,
    is_finite_number,
    num,
    productivity_incentive,
    psq_dollars,
    safe_div,
)
from cfengine.services.percentile_curve import (
    ANCHOR_PERCENTILES,
    PercentileResult,
    infer_market,
    infer_percentile,
    interpolate_market,
)


# =============================================================================
# Modeled CF and Threshold
# =============================================================================


def resolve_modeled_cf(market_row: MarketRow, inputs: ScenarioInputs) -> float:
    """
    Modeled CF for a scenario.

    - override: the override value directly (0 when missing)
    - target_percentile: market CF curve at proposedCFPercentile
    - target_haircut: as target_percentile, times (1 - haircutPct/100)
    """
    if inputs.cfSource == CFSource.OVERRIDE:
        return num(inputs.overrideCF)
    cf = interpolate_market(inputs.proposedCFPercentile, market_row, "CF")
    if inputs.cfSource == CFSource.TARGET_HAIRCUT:
        cf *= 1.0 - num(inputs.haircutPct) / 100.0
    return cf


def resolve_modeled_threshold(
    market_row: MarketRow,
    inputs: ScenarioInputs,
    modeled_clinical_salary: float,
    modeled_cf: float,
    clinical_fte: float,
) -> float:
    """Annual wRVU threshold for the modeled state per the scenario's threshold method."""
    derived = derived_threshold(modeled_clinical_salary, modeled_cf)
    if inputs.thresholdMethod == ThresholdMethod.ANNUAL:
        manual = num(inputs.annualThreshold)
        return manual if manual > 0 else derived
    if inputs.thresholdMethod == ThresholdMethod.WRVU_PERCENTILE:
        return interpolate_market(inputs.wrvuPercentile, market_row, "WRVU") * clinical_fte
    return derived


# =============================================================================
# Imputed $/wRVU
# =============================================================================


def market_dollar_per_wrvu_curve(market_row: MarketRow) -> Tuple[float, float, float, float]:
    """Synthetic $/wRVU curve: each TCC anchor divided by the matching wRVU anchor."""
    points = []
    for pct in ANCHOR_PERCENTILES:
        tcc = num(getattr(market_row, f"TCC_{int(pct)}"))
        wrvu = num(getattr(market_row, f"WRVU_{int(pct)}"))
        points.append(safe_div(tcc, wrvu, 0.0))
    return tuple(points)  # type: ignore[return-value]


def imputed_dollar_per_wrvu(salary: float, wrvus: float, clinical_fte: float) -> float:
    """salary / (wRVUs / cFTE); 0 when cFTE or wRVUs is non-positive or salary is non-finite."""
    if clinical_fte <= 0 or wrvus <= 0 or not is_finite_number(salary):
        return 0.0
    return safe_div(salary, wrvus / clinical_fte, 0.0)


# =============================================================================
# Governance and Risk
# =============================================================================


def evaluate_governance_flags(
    baseline_gap: float,
    modeled_gap: float,
    cf_percentile_current: float,
    cf_percentile_modeled: float,
    modeled_tcc_percentile: float,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> GovernanceFlags:
    """Derive the four independent governance flags."""
    low, high = config.policy_band_low, config.policy_band_high
    return GovernanceFlags(
        underpayRisk=baseline_gap < config.underpay_gap or modeled_gap < config.underpay_gap,
        cfBelow25=cf_percentile_current < 25,
        modeledInPolicyBand=(
            low <= cf_percentile_modeled <= high and low <= modeled_tcc_percentile <= high
        ),
        fmvCheckSuggested=(
            modeled_tcc_percentile > config.fmv_tcc_percentile or modeled_gap > config.fmv_gap
        ),
    )


def _collect_risk(
    clinical_fte: float,
    total_fte: float,
    total_wrvus: float,
    percentiles: List[Tuple[str, PercentileResult]],
    config: EngineConfig,
) -> Tuple[List[str], List[str]]:
    high_risk: List[str] = []
    warnings: List[str] = []

    if clinical_fte < config.low_fte_risk:
        high_risk.append(f"Clinical FTE ({clinical_fte:g}) < {config.low_fte_risk:g}")
    if total_fte < config.low_fte_risk:
        high_risk.append(f"Total FTE ({total_fte:g}) < {config.low_fte_risk:g}")

    if 0 < total_wrvus < config.low_wrvu_warning:
        warnings.append(f"Total wRVUs ({total_wrvus:g}) low; ratios may be unstable")

    for label, result in percentiles:
        if result.off_scale:
            warnings.append(f"{label} percentile is off-scale (below 25 or above 90)")

    return high_risk, warnings


# =============================================================================
# Main Entry Point
# =============================================================================


def compute_scenario(
    provider: ProviderRecord,
    market_row: MarketRow,
    inputs: Optional[ScenarioInputs] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> ScenarioResult:
    """
    Compute baseline and modeled compensation for one provider and scenario.

    Args:
        provider: Provider record.
        market_row: Matched (valid) market benchmark row.
        inputs: Scenario inputs; defaults to ScenarioInputs().
        config: Engine constants for risk and governance thresholds.

    Returns:
        Immutable ScenarioResult.

    Example:
        >>> result = compute_scenario(provider, market_row, ScenarioInputs(proposedCFPercentile=50))
        >>> result.modeledGap == result.modeledTCCPercentile - result.wrvuPercentile
        True
    """
    inputs = inputs or ScenarioInputs()

    # --- Pay, FTE and productivity ---
    base_salary = get_base_salary(provider)
    clinical_base_salary = (
        float(provider.clinicalFTESalary)
        if is_finite_number(provider.clinicalFTESalary)
        else base_salary
    )
    total_base_pay = get_total_base_pay(provider)
    total_fte = get_total_fte(provider)
    clinical_fte = get_clinical_fte(provider)
    total_wrvus = get_total_wrvus(provider)

    # --- Current state ---
    current_cf = num(provider.currentCF)
    explicit_threshold = num(provider.currentThreshold)
    current_threshold = (
        explicit_threshold if explicit_threshold > 0
        else derived_threshold(clinical_base_salary, current_cf)
    )
    current_incentive = productivity_incentive(total_wrvus, current_threshold, current_cf)

    # --- Modeled state ---
    modeled_cf = resolve_modeled_cf(market_row, inputs)
    has_base_override = is_finite_number(inputs.modeledBasePay)
    has_non_clinical_override = is_finite_number(inputs.modeledNonClinicalPay)
    modeled_base = float(inputs.modeledBasePay) if has_base_override else base_salary
    modeled_non_clinical = (
        float(inputs.modeledNonClinicalPay) if has_non_clinical_override
        else num(provider.nonClinicalPay)
    )
    if has_base_override or has_non_clinical_override or not has_base_pay_components(provider):
        modeled_total_base_pay = modeled_base + modeled_non_clinical
    else:
        modeled_total_base_pay = total_base_pay

    modeled_clinical_salary = modeled_base * safe_div(clinical_fte, total_fte, 1.0)
    modeled_threshold = resolve_modeled_threshold(
        market_row, inputs, modeled_clinical_salary, modeled_cf, clinical_fte
    )
    modeled_total_wrvus = (
        float(inputs.modeledWRVUs) if is_finite_number(inputs.modeledWRVUs) else total_wrvus
    )
    modeled_incentive = (modeled_total_wrvus - modeled_threshold) * modeled_cf
    wrvus_above_threshold = max(0.0, modeled_total_wrvus - modeled_threshold)

    # --- PSQ ---
    current_psq = psq_dollars(inputs.psqPercent, inputs.psqBasis, base_salary, current_incentive)
    modeled_psq_percent = (
        inputs.modeledPsqPercent if inputs.modeledPsqPercent is not None else inputs.psqPercent
    )
    modeled_psq_basis = inputs.modeledPsqBasis or inputs.psqBasis
    modeled_psq = psq_dollars(modeled_psq_percent, modeled_psq_basis, modeled_base, modeled_incentive)

    # --- TCC ---
    quality = num(provider.qualityPayments)
    other = get_other_incentives(provider)
    file_tcc = num(provider.currentTCC)
    current_tcc = (
        file_tcc if file_tcc > 0
        else total_base_pay + max(current_incentive, 0.0) + current_psq + quality + other
    )
    modeled_tcc = modeled_total_base_pay + max(modeled_incentive, 0.0) + modeled_psq + quality + other

    # --- Normalization and percentiles ---
    wrvu_normalized = safe_div(total_wrvus, clinical_fte, total_wrvus)
    tcc_normalized = safe_div(current_tcc, total_fte, current_tcc)
    modeled_tcc_normalized = safe_div(modeled_tcc, total_fte, modeled_tcc)

    wrvu_pct = infer_market(wrvu_normalized, market_row, "WRVU")
    tcc_pct = infer_market(tcc_normalized, market_row, "TCC")
    modeled_tcc_pct = infer_market(modeled_tcc_normalized, market_row, "TCC")
    cf_pct_current = (
        infer_market(current_cf, market_row, "CF") if current_cf > 0 else PercentileResult(0.0)
    )
    if inputs.cfSource == CFSource.TARGET_PERCENTILE:
        cf_percentile_modeled = float(inputs.proposedCFPercentile)
    else:
        cf_percentile_modeled = infer_market(modeled_cf, market_row, "CF").percentile

    # --- Imputed $/wRVU ---
    dollar_curve = market_dollar_per_wrvu_curve(market_row)
    imputed_current = imputed_dollar_per_wrvu(current_tcc, total_wrvus, clinical_fte)
    imputed_modeled = imputed_dollar_per_wrvu(modeled_tcc, modeled_total_wrvus, clinical_fte)

    # --- Gaps, flags, risk ---
    baseline_gap = tcc_pct.percentile - wrvu_pct.percentile
    modeled_gap = modeled_tcc_pct.percentile - wrvu_pct.percentile
    flags = evaluate_governance_flags(
        baseline_gap,
        modeled_gap,
        cf_pct_current.percentile,
        cf_percentile_modeled,
        modeled_tcc_pct.percentile,
        config,
    )
    high_risk, warnings = _collect_risk(
        clinical_fte,
        total_fte,
        total_wrvus,
        [
            ("wRVU", wrvu_pct),
            ("TCC", tcc_pct),
            ("Modeled TCC", modeled_tcc_pct),
            ("CF", cf_pct_current),
        ],
        config,
    )

    return ScenarioResult(
        baseSalary=base_salary,
        clinicalBaseSalary=clinical_base_salary,
        totalBasePay=total_base_pay,
        modeledBasePay=modeled_base,
        modeledTotalBasePay=modeled_total_base_pay,
        modeledClinicalSalary=modeled_clinical_salary,
        totalFTE=total_fte,
        clinicalFTE=clinical_fte,
        totalWRVUs=total_wrvus,
        modeledTotalWRVUs=modeled_total_wrvus,
        currentCF=current_cf,
        currentThreshold=current_threshold,
        currentIncentive=current_incentive,
        modeledCF=modeled_cf,
        annualThreshold=modeled_threshold,
        wRVUsAboveThreshold=wrvus_above_threshold,
        annualIncentive=modeled_incentive,
        currentPsqDollars=current_psq,
        psqDollars=modeled_psq,
        qualityPayments=quality,
        otherIncentives=other,
        currentTCC=current_tcc,
        modeledTCC=modeled_tcc,
        changeInTCC=modeled_tcc - current_tcc,
        wrvuNormalized=wrvu_normalized,
        tccNormalized=tcc_normalized,
        modeledTccNormalized=modeled_tcc_normalized,
        wrvuPercentile=wrvu_pct.percentile,
        wrvuPercentileBelowRange=wrvu_pct.below_range,
        wrvuPercentileAboveRange=wrvu_pct.above_range,
        tccPercentile=tcc_pct.percentile,
        tccPercentileBelowRange=tcc_pct.below_range,
        tccPercentileAboveRange=tcc_pct.above_range,
        modeledTCCPercentile=modeled_tcc_pct.percentile,
        modeledTCCPercentileBelowRange=modeled_tcc_pct.below_range,
        modeledTCCPercentileAboveRange=modeled_tcc_pct.above_range,
        cfPercentileCurrent=cf_pct_current.percentile,
        cfPercentileCurrentBelowRange=cf_pct_current.below_range,
        cfPercentileCurrentAboveRange=cf_pct_current.above_range,
        cfPercentileModeled=cf_percentile_modeled,
        imputedTCCPerWRVURatioCurrent=imputed_current,
        imputedTCCPerWRVURatioModeled=imputed_modeled,
        imputedPercentileCurrent=infer_percentile(imputed_current, *dollar_curve).percentile,
        imputedPercentileModeled=infer_percentile(imputed_modeled, *dollar_curve).percentile,
        marketDollarPerWRVU=list(dollar_curve),
        baselineGap=baseline_gap,
        modeledGap=modeled_gap,
        governanceFlags=flags,
        risk=RiskAssessment(highRisk=high_risk, warnings=warnings),
        warnings=warnings,
    )


__all__ = [
    'compute_scenario',
    'resolve_modeled_cf',
    'resolve_modeled_threshold',
    'market_dollar_per_wrvu_curve',
    'imputed_dollar_per_wrvu',
    'evaluate_governance_flags',
]
