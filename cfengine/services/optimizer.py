"""
CF Optimizer Service

Recommends a specialty-level conversion factor (CF) that best aligns pay
percentile with productivity percentile, subject to search bounds, budget
and governance guardrails.

Pipeline per specialty (providers grouped by matched market specialty):
1. Eligibility: basis FTE, wRVU per 1.0 FTE, LOA, new-hire tenure and manual
   lists. Manual includes bypass every automatic rule except a missing market.
2. Outliers: wRVU, TCC and effective-rate ($/wRVU) distributions of the
   included group; flagged providers are excluded with the dimension tagged.
3. Search: grid of candidate CFs within the percent-change bounds (and any
   absolute floor/ceiling). Each candidate re-models every included
   provider's TCC percentile and scores the objective. Lowest error wins;
   ties go to the candidate closest to the current CF.
4. Governance caps: hard-cap pre-check, hard-cap clamp on the group's mean
   modeled TCC percentile, pay-above-productivity increase cap at market
   median, maxRecommendedCFPercentile and CF policy hard cap.
5. Budget: neutral / cap_pct / cap_dollars limits on spend impact. An
   infeasible optimum is replaced by the best feasible candidate, ties going
   to the one closest to the unconstrained optimum.
6. Classification: action, traffic-light status, constraint codes and a
   templated explanation (see governance.py).

run_cf_sweep re-uses steps 1-2 and reports modeled outcomes at fixed CF
percentiles without selecting a winner.

Every entry point is a pure function of its inputs; determinism is
guaranteed (no randomness, stable orderings).
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from cfengine.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from cfengine.models.enums import (
    BenchmarkBasis,
    BudgetConstraintKind,
    CFPolicyEnforcementMode,
    ErrorMetric,
    ExclusionReason,
    MatchStatus,
    ObjectiveKind,
    OptimizerFlag,
    OptimizerStatus,
    PolicyCheckStatus,
    QualityPaymentsSource,
    RecommendedAction,
    RiskLevel,
    TCCLayerType,
    ThresholdMethod,
)
from cfengine.models.schemas import (
    CFSweepAllResult,
    CFSweepRow,
    ExcludedProvider,
    ExclusionReasonCount,
    MarketCFBenchmarks,
    MarketRow,
    OptimizationObjective,
    OptimizerAuditExport,
    OptimizerKeyMetrics,
    OptimizerProviderContext,
    OptimizerRunResult,
    OptimizerRunSummary,
    OptimizerSettings,
    OptimizerSpecialtyResult,
    ProviderRecord,
    TCCLayer,
)
from cfengine.services.compensation import (
    derived_threshold,
    get_base_salary,
    get_clinical_fte,
    get_other_incentives,
    get_total_wrvus,
    is_finite_number,
    num,
    psq_dollars,
    safe_div,
)
from cfengine.services.governance import (
    CF_EPSILON,
    build_explanation,
    determine_action,
    evaluate_status,
    fmt_cf,
    ordinal,
    policy_check,
)
from cfengine.services.outliers import detect_outliers
from cfengine.services.percentile_curve import infer_market, infer_percentile, interpolate_market
from cfengine.services.scenario import market_dollar_per_wrvu_curve
from cfengine.services.specialty_match import match_specialty, normalize_specialty_key


logger = logging.getLogger(__name__)


OptimizerProgressCallback = Callable[[int, int, str], None]

OUTLIER_REASONS = (
    ExclusionReason.OUTLIER_WRVU,
    ExclusionReason.OUTLIER_TCC,
    ExclusionReason.OUTLIER_EFFECTIVE_RATE,
)
LOW_CFTE_REASONS = (
    ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS,
    ExclusionReason.BASIS_FTE_BELOW_MIN,
)

RAW_BASIS_ASSUMPTION = "Not apples-to-apples to market benchmarks"

# Objective values closer than this count as ties
OBJECTIVE_TIE_DECIMALS: int = 9

TOP_EXCLUSION_REASONS: int = 10


# =============================================================================
# Working State
# =============================================================================


@dataclass
class _WorkingProvider:
    """Provider plus its market row and current audit context."""
    provider: ProviderRecord
    market_row: Optional[MarketRow]
    ctx: OptimizerProviderContext
    effective_wrvus: float


@dataclass(frozen=True)
class CandidateEvaluation:
    """
    Modeled outcome of one candidate CF across a specialty's included providers.

    per_provider holds (modeled_tcc_raw, modeled_tcc_1p0, modeled_pctile,
    modeled_incentive) aligned with the included providers.
    """
    cf: float
    objective: float
    mae: float
    mse: float
    mean_modeled_pctile: float
    mean_gap: float
    spend_impact: float
    baseline_spend: float
    modeled_incentive: float
    per_provider: Tuple[Tuple[float, float, float, float], ...]


# =============================================================================
# TCC Component Assembly
# =============================================================================


def get_clinical_base(provider: ProviderRecord) -> float:
    """Clinical salary override when finite, else base salary prorated by cFTE / total FTE."""
    if is_finite_number(provider.clinicalFTESalary):
        return float(provider.clinicalFTESalary)
    base = get_base_salary(provider)
    clinical = num(provider.clinicalFTE)
    total = num(provider.totalFTE)
    if clinical > 0 and total > 0:
        return base * (clinical / total)
    return base


def get_basis_fte(provider: ProviderRecord, basis: BenchmarkBasis) -> float:
    """FTE used to normalize metrics to 1.0 FTE for the run's benchmark basis."""
    if basis == BenchmarkBasis.RAW:
        return 1.0
    if basis == BenchmarkBasis.PER_TFTE:
        total = num(provider.totalFTE)
        return total if total > 0 else 0.0
    return get_clinical_fte(provider)


def is_loa_flagged(provider: ProviderRecord) -> bool:
    if provider.loa is True or provider.leaveOfAbsence is True:
        return True
    return (provider.LOA or "").strip().lower() in ("yes", "y", "true")


def _quality_dollars(
    provider: ProviderRecord,
    settings: OptimizerSettings,
    clinical_base: float,
    clinical_fte: float,
) -> float:
    if settings.qualityPaymentsSource == QualityPaymentsSource.OVERRIDE_PCT_OF_BASE:
        return clinical_base * num(settings.qualityPaymentsOverridePct) / 100.0
    quality = num(provider.qualityPayments)
    if settings.normalizeQualityForFTE:
        quality *= clinical_fte
    return quality


def additional_layer_dollars(layers: Sequence[TCCLayer], clinical_base: float, clinical_fte: float) -> float:
    """Percent-of-base, per-1.0-FTE and flat TCC layers summed for one provider."""
    total = 0.0
    for layer in layers:
        if layer.type == TCCLayerType.PERCENT_OF_BASE:
            total += clinical_base * num(layer.value) / 100.0
        elif layer.type == TCCLayerType.DOLLAR_PER_1P0_FTE:
            total += num(layer.value) * clinical_fte
        else:
            total += num(layer.value)
    return total


def _incentive_threshold(
    provider: ProviderRecord,
    market_row: MarketRow,
    settings: OptimizerSettings,
    clinical_base: float,
    cf: float,
    clinical_fte: float,
) -> float:
    inputs = settings.baseScenarioInputs
    if inputs.thresholdMethod == ThresholdMethod.ANNUAL:
        manual = num(inputs.annualThreshold)
        if manual > 0:
            return manual
        current = num(provider.currentThreshold)
        if current > 0:
            return current
    elif inputs.thresholdMethod == ThresholdMethod.WRVU_PERCENTILE:
        return interpolate_market(inputs.wrvuPercentile, market_row, "WRVU") * clinical_fte
    return derived_threshold(clinical_base, cf)


def compute_optimizer_tcc(
    provider: ProviderRecord,
    market_row: MarketRow,
    settings: OptimizerSettings,
    cf: float,
    wrvus: float,
) -> Tuple[float, float]:
    """
    TCC for a provider at a given CF using the run's component inclusion settings.

    Baseline and modeled TCC go through the same assembly so spend impact only
    reflects the CF (and wRVU growth) change.

    Returns:
        (tcc, work_rvu_incentive)
    """
    clinical_base = get_clinical_base(provider)
    clinical_fte = get_clinical_fte(provider)

    incentive = 0.0
    if settings.includeWorkRVUIncentiveInTCC and cf > 0:
        threshold = _incentive_threshold(provider, market_row, settings, clinical_base, cf, clinical_fte)
        incentive = max(0.0, (wrvus - threshold) * cf)

    tcc = clinical_base + incentive
    if settings.includePsqInBaselineAndModeled:
        inputs = settings.baseScenarioInputs
        tcc += psq_dollars(inputs.psqPercent, inputs.psqBasis, clinical_base, incentive)
    if settings.includeQualityPaymentsInBaselineAndModeled:
        tcc += _quality_dollars(provider, settings, clinical_base, clinical_fte)
    if settings.includeOtherIncentivesInBaselineAndModeled:
        tcc += get_other_incentives(provider)
    if settings.includeStipendInBaselineAndModeled:
        tcc += num(provider.nonClinicalPay)
    tcc += additional_layer_dollars(settings.additionalTCCLayers, clinical_base, clinical_fte)
    return tcc, incentive


# =============================================================================
# Objective
# =============================================================================


def objective_error(
    modeled_pctile: float,
    wrvu_pctile: float,
    objective: OptimizationObjective,
) -> float:
    """Signed per-provider error for the configured objective."""
    if objective.kind == ObjectiveKind.TARGET_FIXED_PERCENTILE:
        return modeled_pctile - objective.targetPercentile
    if objective.kind == ObjectiveKind.HYBRID:
        return (
            objective.alignWeight * (modeled_pctile - wrvu_pctile)
            + objective.targetWeight * (modeled_pctile - objective.targetPercentile)
        )
    return modeled_pctile - wrvu_pctile


def aggregate_error(errors: Sequence[float], metric: ErrorMetric) -> float:
    """Mean squared or mean absolute error (0 for an empty sample)."""
    if not errors:
        return 0.0
    arr = np.asarray(errors, dtype=np.float64)
    if metric == ErrorMetric.ABSOLUTE:
        return float(np.mean(np.abs(arr)))
    return float(np.mean(arr ** 2))


# =============================================================================
# Provider Contexts (eligibility)
# =============================================================================


def provider_risk_level(ctx: OptimizerProviderContext) -> RiskLevel:
    gap = abs(ctx.baselineGap)
    if gap > 15 or ctx.wrvuOffScale or ctx.tccOffScale:
        return RiskLevel.HIGH
    if gap > 5 or ctx.wrvuPercentile < 25 or ctx.wrvuPercentile > 90:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _provider_id(provider: ProviderRecord, index: int) -> str:
    return provider.providerId or provider.providerName or f"provider-{index}"


def _listed(provider: ProviderRecord, provider_id: str, ids: set) -> bool:
    return provider_id in ids or (provider.providerName or "") in ids


def build_provider_contexts(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    settings: OptimizerSettings,
    synonym_map: Optional[Dict[str, str]] = None,
) -> List[_WorkingProvider]:
    """
    Resolve markets, baseline metrics and eligibility for every provider.

    Providers without a market match are returned excluded with
    missing_market; they never join a specialty group.
    """
    rules = settings.defaultExclusionRules
    manual_exclude = set(settings.manualExcludeProviderIds)
    manual_include = set(settings.manualIncludeProviderIds)
    growth = 1.0 + num(settings.wRVUGrowthFactorPct) / 100.0

    working: List[_WorkingProvider] = []
    for index, provider in enumerate(provider_rows):
        provider_id = _provider_id(provider, index)
        provider_name = provider.providerName or provider_id
        specialty = (provider.specialty or "").strip()
        include_anyway = _listed(provider, provider_id, manual_include)
        match = match_specialty(provider, market_rows, synonym_map)
        clinical_fte = get_clinical_fte(provider)
        total_wrvus = get_total_wrvus(provider)
        effective_wrvus = total_wrvus * growth

        if match.marketRow is None:
            reasons = [ExclusionReason.MISSING_MARKET]
            if _listed(provider, provider_id, manual_exclude):
                reasons.append(ExclusionReason.MANUAL_EXCLUDE)
            ctx = OptimizerProviderContext(
                providerId=provider_id,
                providerName=provider_name,
                specialty=specialty,
                marketSpecialty=None,
                matchStatus=MatchStatus.MISSING,
                basisFTE=get_basis_fte(provider, settings.benchmarkBasis),
                clinicalFTE=clinical_fte,
                currentCF=num(provider.currentCF),
                clinicalBase=get_clinical_base(provider),
                currentTCCBaseline=0.0,
                currentTCC_1p0=0.0,
                currentTCC_pctile=0.0,
                wRVU_1p0=0.0,
                effectiveTotalWRVUs=effective_wrvus,
                wrvuPercentile=0.0,
                baselineGap=0.0,
                included=False,
                exclusionReasons=reasons,
                includeAnyway=include_anyway,
            )
            working.append(_WorkingProvider(provider, None, ctx, effective_wrvus))
            continue

        row = match.marketRow
        cf50 = num(row.CF_50)
        current_cf = num(provider.currentCF)
        if current_cf <= 0:
            current_cf = cf50
        basis_fte = get_basis_fte(provider, settings.benchmarkBasis)

        baseline_tcc, baseline_incentive = compute_optimizer_tcc(
            provider, row, settings, current_cf, total_wrvus
        )
        modeled_tcc, modeled_incentive = compute_optimizer_tcc(
            provider, row, settings, current_cf, effective_wrvus
        )
        wrvu_1p0 = safe_div(effective_wrvus, basis_fte, 0.0)
        tcc_1p0 = safe_div(baseline_tcc, basis_fte, 0.0)
        modeled_1p0 = safe_div(modeled_tcc, basis_fte, 0.0)

        wrvu_pct = infer_market(wrvu_1p0, row, "WRVU")
        tcc_pct = infer_market(tcc_1p0, row, "TCC")
        modeled_pct = infer_market(modeled_1p0, row, "TCC").percentile
        effective_rate = safe_div(tcc_1p0, wrvu_1p0, 0.0)
        rate_pct = infer_percentile(effective_rate, *market_dollar_per_wrvu_curve(row))

        reasons: List[ExclusionReason] = []
        if basis_fte <= 0:
            reasons.append(ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS)
        elif basis_fte < rules.minBasisFTE:
            reasons.append(ExclusionReason.BASIS_FTE_BELOW_MIN)
        if 0 < wrvu_1p0 < rules.minWRVUPer1p0CFTE:
            reasons.append(ExclusionReason.LOW_WRVU_VOLUME)
        if rules.excludeLOA and is_loa_flagged(provider):
            reasons.append(ExclusionReason.LOA_FLAGGED)
        if (
            rules.newHireMonthsThreshold is not None
            and rules.newHireMonthsThreshold > 0
            and provider.tenureMonths is not None
            and provider.tenureMonths < rules.newHireMonthsThreshold
        ):
            reasons.append(ExclusionReason.NEW_HIRE_BELOW_THRESHOLD)
        if _listed(provider, provider_id, manual_exclude):
            reasons.append(ExclusionReason.MANUAL_EXCLUDE)

        if include_anyway:
            included = ExclusionReason.MANUAL_EXCLUDE not in reasons
        else:
            included = not reasons

        ctx = OptimizerProviderContext(
            providerId=provider_id,
            providerName=provider_name,
            specialty=specialty,
            marketSpecialty=row.specialty,
            matchStatus=match.status,
            basisFTE=basis_fte,
            clinicalFTE=clinical_fte,
            currentCF=current_cf,
            clinicalBase=get_clinical_base(provider),
            currentTCCBaseline=baseline_tcc,
            currentTCC_1p0=tcc_1p0,
            currentTCC_pctile=tcc_pct.percentile,
            tccOffScale=tcc_pct.off_scale,
            wRVU_1p0=wrvu_1p0,
            effectiveTotalWRVUs=effective_wrvus,
            wrvuPercentile=wrvu_pct.percentile,
            wrvuOffScale=wrvu_pct.off_scale,
            baselineGap=tcc_pct.percentile - wrvu_pct.percentile,
            modeledTCCRaw=modeled_tcc,
            modeledTCC_1p0=modeled_1p0,
            modeledTCC_pctile=modeled_pct,
            modeledGap=modeled_pct - wrvu_pct.percentile,
            baselineIncentiveDollars=baseline_incentive,
            modeledIncentiveDollars=modeled_incentive,
            effectiveRate=effective_rate,
            effectiveRatePercentile=rate_pct.percentile,
            effectiveRateOffScale=rate_pct.off_scale,
            included=included,
            exclusionReasons=reasons,
            includeAnyway=include_anyway,
        )
        ctx = ctx.model_copy(update={"riskLevel": provider_risk_level(ctx)})
        working.append(_WorkingProvider(provider, row, ctx, effective_wrvus))

    return working


def apply_outlier_exclusions(
    group: List[_WorkingProvider],
    settings: OptimizerSettings,
) -> List[_WorkingProvider]:
    """
    Tag and exclude outliers among a specialty group's included providers.

    Manually included providers are tagged but stay included.
    """
    included_idx = [i for i, w in enumerate(group) if w.ctx.included]
    if not included_idx:
        return list(group)

    params = settings.outlierParams
    dimensions = (
        (ExclusionReason.OUTLIER_WRVU, [group[i].ctx.wRVU_1p0 for i in included_idx]),
        (ExclusionReason.OUTLIER_TCC, [group[i].ctx.currentTCC_1p0 for i in included_idx]),
        (ExclusionReason.OUTLIER_EFFECTIVE_RATE, [group[i].ctx.effectiveRate for i in included_idx]),
    )
    tags: Dict[int, List[ExclusionReason]] = {}
    for reason, values in dimensions:
        mask = detect_outliers(values, params.method, params.iqrK, params.madZThreshold)
        for position, flagged in enumerate(mask):
            if flagged:
                tags.setdefault(included_idx[position], []).append(reason)

    result = list(group)
    for index, reasons in tags.items():
        w = result[index]
        ctx = w.ctx.model_copy(update={
            "exclusionReasons": list(w.ctx.exclusionReasons) + reasons,
            "included": w.ctx.includeAnyway,
        })
        result[index] = _WorkingProvider(w.provider, w.market_row, ctx, w.effective_wrvus)
    return result


# =============================================================================
# Search
# =============================================================================


def cf_search_bounds(current_cf: float, settings: OptimizerSettings) -> Tuple[float, float]:
    """[cfMin, cfMax] from percent-change bounds intersected with absolute floor/ceiling."""
    bounds = settings.cfBounds
    cf_min = current_cf * (1.0 - bounds.minChangePct / 100.0)
    cf_max = current_cf * (1.0 + bounds.maxChangePct / 100.0)
    if bounds.absoluteMin is not None:
        cf_min = max(cf_min, bounds.absoluteMin)
    if bounds.absoluteMax is not None:
        cf_max = min(cf_max, bounds.absoluteMax)
    cf_min = max(cf_min, 0.0)
    if cf_max < cf_min:
        cf_max = cf_min
    return cf_min, cf_max


def generate_candidates(
    current_cf: float,
    cf_min: float,
    cf_max: float,
    step_pct: float,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> List[float]:
    """
    Evenly spaced candidate CFs from cf_min to cf_max (inclusive).

    Spacing targets step_pct of the current CF; the count is kept between
    grid_steps_default and grid_steps_max. The current CF is added when it
    lies inside the bounds.
    """
    span = cf_max - cf_min
    if span <= 0:
        return [cf_min]

    preferred = current_cf * step_pct if current_cf > 0 else span
    count = math.ceil(span / preferred) + 1 if preferred > 0 else config.grid_steps_default
    count = min(max(count, config.grid_steps_default), config.grid_steps_max)
    step = span / (count - 1)
    candidates = [cf_min + i * step for i in range(count - 1)] + [cf_max]

    if cf_min - CF_EPSILON <= current_cf <= cf_max + CF_EPSILON:
        if all(abs(c - current_cf) > CF_EPSILON for c in candidates):
            candidates.append(current_cf)
            candidates.sort()
    return candidates


def evaluate_candidate(
    cf: float,
    included: List[_WorkingProvider],
    market_row: MarketRow,
    settings: OptimizerSettings,
) -> CandidateEvaluation:
    """Re-model every included provider at a candidate CF and score the objective."""
    errors: List[float] = []
    gaps: List[float] = []
    pctiles: List[float] = []
    per_provider = []
    modeled_spend = 0.0
    baseline_spend = 0.0
    modeled_incentive = 0.0

    for w in included:
        tcc, incentive = compute_optimizer_tcc(w.provider, market_row, settings, cf, w.effective_wrvus)
        tcc_1p0 = safe_div(tcc, w.ctx.basisFTE, 0.0)
        pctile = infer_market(tcc_1p0, market_row, "TCC").percentile
        errors.append(objective_error(pctile, w.ctx.wrvuPercentile, settings.optimizationObjective))
        gaps.append(pctile - w.ctx.wrvuPercentile)
        pctiles.append(pctile)
        per_provider.append((tcc, tcc_1p0, pctile, incentive))
        modeled_spend += tcc
        baseline_spend += w.ctx.currentTCCBaseline
        modeled_incentive += incentive

    return CandidateEvaluation(
        cf=cf,
        objective=aggregate_error(errors, settings.errorMetric),
        mae=aggregate_error(errors, ErrorMetric.ABSOLUTE),
        mse=aggregate_error(errors, ErrorMetric.SQUARED),
        mean_modeled_pctile=float(np.mean(pctiles)) if pctiles else 0.0,
        mean_gap=float(np.mean(gaps)) if gaps else 0.0,
        spend_impact=modeled_spend - baseline_spend,
        baseline_spend=baseline_spend,
        modeled_incentive=modeled_incentive,
        per_provider=tuple(per_provider),
    )


def budget_limit(settings: OptimizerSettings, baseline_spend: float) -> Optional[float]:
    """Maximum allowed spend impact, or None when unconstrained."""
    budget = settings.budgetConstraint
    if budget.kind == BudgetConstraintKind.NEUTRAL:
        return 0.0
    if budget.kind == BudgetConstraintKind.CAP_PCT:
        return num(budget.capPct) / 100.0 * baseline_spend
    if budget.kind == BudgetConstraintKind.CAP_DOLLARS:
        return num(budget.capDollars)
    return None


def _objective_key(evaluation: CandidateEvaluation, anchor: float) -> Tuple[float, float]:
    return (round(evaluation.objective, OBJECTIVE_TIE_DECIMALS), abs(evaluation.cf - anchor))


def _key_metrics(included: List[_WorkingProvider]) -> OptimizerKeyMetrics:
    if not included:
        return OptimizerKeyMetrics()
    prod = float(np.mean([w.ctx.wrvuPercentile for w in included]))
    comp = float(np.mean([w.ctx.currentTCC_pctile for w in included]))
    return OptimizerKeyMetrics(
        prodPercentile=prod,
        compPercentile=comp,
        gap=comp - prod,
        tcc_1p0=float(np.mean([w.ctx.currentTCC_1p0 for w in included])),
        workRVU_1p0=float(np.mean([w.ctx.wRVU_1p0 for w in included])),
    )


def _market_cf(market_row: MarketRow) -> MarketCFBenchmarks:
    return MarketCFBenchmarks(
        cf25=num(market_row.CF_25),
        cf50=num(market_row.CF_50),
        cf75=num(market_row.CF_75),
        cf90=num(market_row.CF_90),
    )


def _add(items: List, item) -> None:
    if item not in items:
        items.append(item)


# =============================================================================
# Specialty Optimization
# =============================================================================


def optimize_specialty(
    specialty: str,
    group: List[_WorkingProvider],
    market_row: MarketRow,
    settings: OptimizerSettings,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> OptimizerSpecialtyResult:
    """
    Run the CF search and governance classification for one specialty group.

    The group must already have eligibility and outlier exclusions applied.
    """
    governance = settings.governanceConfig
    market_cf = _market_cf(market_row)
    included = [w for w in group if w.ctx.included]
    excluded = [w for w in group if not w.ctx.included]
    n = len(included)

    flags: List[OptimizerFlag] = []
    notes: List[str] = []
    key_messages: List[str] = []

    low_cfte = sum(1 for w in excluded if any(r in LOW_CFTE_REASONS for r in w.ctx.exclusionReasons))
    low_wrvu = sum(1 for w in excluded if ExclusionReason.LOW_WRVU_VOLUME in w.ctx.exclusionReasons)
    if low_cfte:
        key_messages.append(f"{low_cfte} provider(s) excluded due to low cFTE.")
    if low_wrvu:
        key_messages.append(
            f"{low_wrvu} provider(s) excluded due to low wRVU volume (ratios may be unstable)."
        )
    if any(r in OUTLIER_REASONS for w in excluded for r in w.ctx.exclusionReasons):
        flags.append(OptimizerFlag.OUTLIERS_EXCLUDED)

    pre = _key_metrics(included)

    if n == 0:
        logger.info(f"No included providers for {specialty}; no recommendation")
        action = RecommendedAction.NO_RECOMMENDATION
        cf50 = market_cf.cf50
        _add(flags, OptimizerFlag.LOW_SAMPLE)
        notes.append("No included providers for this specialty.")
        return OptimizerSpecialtyResult(
            specialty=specialty,
            includedCount=0,
            excludedCount=len(excluded),
            currentCF=cf50,
            recommendedCF=cf50,
            cfChangePct=0.0,
            preGap=0.0,
            postGap=0.0,
            maeBefore=0.0,
            maeAfter=0.0,
            mseBefore=0.0,
            mseAfter=0.0,
            spendImpactRaw=0.0,
            policyCheck=PolicyCheckStatus.OK,
            cfPolicyPercentile=50.0,
            effectiveRateFlag=False,
            highRiskCount=0,
            mediumRiskCount=0,
            flags=flags,
            notes=notes,
            keyMessages=key_messages,
            providerContexts=[w.ctx for w in group],
            recommendedAction=action,
            status=OptimizerStatus.YELLOW,
            constraintsHit=[],
            explanation=build_explanation(
                action, OptimizerStatus.YELLOW, pre, [], cf50, cf50, 0, governance
            ),
            keyMetrics=pre,
            marketCF=market_cf,
        )

    if n <= config.low_sample_threshold:
        flags.append(OptimizerFlag.LOW_SAMPLE)
        notes.append(f"Low sample size (n={n}); result is indicative only.")
        key_messages.append(f"Low sample (n={n}); result indicative only.")

    current_cf = float(np.median([w.ctx.currentCF for w in included]))
    if current_cf <= 0:
        current_cf = market_cf.cf50

    # --- Candidate grid ---
    cf_min, cf_max = cf_search_bounds(current_cf, settings)
    step_pct = settings.gridStepPct or config.grid_step_pct
    candidates = generate_candidates(current_cf, cf_min, cf_max, step_pct, config)
    evaluations = [evaluate_candidate(cf, included, market_row, settings) for cf in candidates]
    at_current = evaluate_candidate(current_cf, included, market_row, settings)

    # --- Governance caps as feasibility rules ---
    increase_blocked = pre.compPercentile > governance.hardCapPercentile
    overpaid = pre.gap > 0
    ceilings: List[Tuple[str, float]] = []
    if settings.maxRecommendedCFPercentile is not None:
        ceilings.append((
            "max_cf_percentile",
            interpolate_market(settings.maxRecommendedCFPercentile, market_row, "CF"),
        ))
    if settings.cfPolicy.enforcementMode == CFPolicyEnforcementMode.HARD_CAP:
        ceilings.append((
            "cf_policy",
            interpolate_market(settings.cfPolicy.thresholdPercentile, market_row, "CF"),
        ))

    def violations(evaluation: CandidateEvaluation) -> List[str]:
        found = []
        increase = evaluation.cf > current_cf + CF_EPSILON
        if increase and increase_blocked:
            found.append("hard_cap_precheck")
        if increase and evaluation.mean_modeled_pctile > governance.hardCapPercentile:
            found.append("hard_cap_clamp")
        if increase and overpaid and evaluation.cf > market_cf.cf50 + CF_EPSILON:
            found.append("pay_above_productivity")
        for name, ceiling in ceilings:
            if evaluation.cf > ceiling + CF_EPSILON:
                found.append(name)
        return found

    if increase_blocked:
        notes.append("Governance pre-check: comp percentile above hard cap; CF increase blocked.")

    unconstrained = min(evaluations, key=lambda e: _objective_key(e, current_cf))
    feasible = [e for e in evaluations if not violations(e)]
    if not feasible:
        feasible = [min(evaluations, key=lambda e: e.cf)]
        notes.append("No candidate satisfies governance caps; lowest CF within bounds used.")
    best = min(feasible, key=lambda e: _objective_key(e, current_cf))

    if abs(best.cf - unconstrained.cf) > CF_EPSILON:
        for name in violations(unconstrained):
            if name == "hard_cap_clamp":
                _add(flags, OptimizerFlag.CF_CAPPED)
                notes.append(
                    f"Recommended CF clamped so mean modeled TCC percentile stays at or below the "
                    f"{ordinal(governance.hardCapPercentile)} percentile hard cap."
                )
            elif name == "pay_above_productivity":
                _add(flags, OptimizerFlag.CF_CAPPED)
                notes.append(
                    "Pay above productivity: recommended CF capped at market 50th percentile; "
                    "increase fills gap with wRVU incentive without exceeding market median."
                )
                key_messages.append(
                    "CF capped at market 50th (pay above productivity); increase adds incentive "
                    "alignment."
                )
            elif name == "max_cf_percentile":
                pct = settings.maxRecommendedCFPercentile
                value = dict(ceilings)[name]
                _add(flags, OptimizerFlag.CF_CAPPED)
                notes.append(
                    f"Recommended CF capped at {pct:g}th market percentile ({value:.2f}) per policy."
                )
                key_messages.append(f"CF capped at {pct:g}th percentile for this specialty.")
            elif name == "cf_policy":
                _add(flags, OptimizerFlag.CF_CAPPED)
                notes.append(
                    f"Recommended CF capped at the CF policy threshold "
                    f"({ordinal(settings.cfPolicy.thresholdPercentile)} percentile, "
                    f"{fmt_cf(dict(ceilings)[name])})."
                )

    # --- Budget ---
    limit = budget_limit(settings, at_current.baseline_spend)
    budget_limited = False
    if limit is not None and best.spend_impact > limit + CF_EPSILON:
        anchor = best.cf
        within = [e for e in feasible if e.spend_impact <= limit + CF_EPSILON]
        if within:
            best = min(within, key=lambda e: (_objective_key(e, anchor), abs(e.cf - current_cf)))
            notes.append(
                f"Budget constraint ({settings.budgetConstraint.kind.value}) limited the "
                f"recommendation; spend impact capped at ${limit:,.0f}."
            )
        else:
            best = min(feasible, key=lambda e: (e.spend_impact, abs(e.cf - anchor)))
            notes.append("Budget constraint cannot be met within CF bounds; lowest-spend candidate used.")
        budget_limited = True
        flags.append(OptimizerFlag.BUDGET_CONSTRAINED)
        key_messages.append("Recommendation limited by budget constraint.")

    # --- Action (snap HOLD back to the current CF when that is allowed) ---
    action = determine_action(n, current_cf, best.cf, governance, increase_blocked)
    if action == RecommendedAction.HOLD and abs(best.cf - current_cf) > CF_EPSILON:
        current_allowed = not violations(at_current) and (
            limit is None or at_current.spend_impact <= limit + CF_EPSILON
        )
        if current_allowed:
            best = at_current

    at_bound = abs(best.cf - cf_min) <= CF_EPSILON or abs(best.cf - cf_max) <= CF_EPSILON
    if at_bound and abs(best.cf - current_cf) > CF_EPSILON:
        _add(flags, OptimizerFlag.CF_CAPPED)
        key_messages.append("CF move capped at bound; alignment may be incomplete.")

    recommended_cf = best.cf
    cf_change_pct = safe_div(recommended_cf - current_cf, current_cf, 0.0) * 100.0

    if (
        best.objective > 0
        and best.objective >= at_current.objective - 1e-9
        and abs(best.mean_gap) > governance.alignmentTolerancePctile
    ):
        flags.append(OptimizerFlag.NOT_CONVERGED)

    # --- Per-provider modeled outcomes ---
    updated: Dict[int, OptimizerProviderContext] = {}
    for w, (tcc, tcc_1p0, pctile, incentive) in zip(included, best.per_provider):
        updated[id(w)] = w.ctx.model_copy(update={
            "modeledTCCRaw": tcc,
            "modeledTCC_1p0": tcc_1p0,
            "modeledTCC_pctile": pctile,
            "modeledGap": pctile - w.ctx.wrvuPercentile,
            "modeledIncentiveDollars": incentive,
        })
    contexts = [updated.get(id(w), w.ctx) for w in group]
    included_ctx = [c for c in contexts if c.included]

    if any(c.wrvuOffScale or c.tccOffScale for c in included_ctx):
        flags.append(OptimizerFlag.OFF_SCALE)
    effective_rate_flag = any(c.effectiveRatePercentile > 90 for c in included_ctx)
    if effective_rate_flag:
        flags.append(OptimizerFlag.FMV_RISK)

    cf_percentile = infer_market(recommended_cf, market_row, "CF").percentile
    policy = policy_check(cf_percentile, settings.cfPolicy.thresholdPercentile)

    status, constraints = evaluate_status(
        pre, governance, cf_change_pct, action, settings.cfBounds, best.mean_gap
    )
    if OptimizerFlag.CF_CAPPED in flags:
        constraints.append("CF_CAPPED")
    if budget_limited:
        constraints.append("BUDGET_CONSTRAINT")

    explanation = build_explanation(
        action, status, pre, constraints, current_cf, recommended_cf, n, governance,
        cf_percentile, market_cf,
    )

    logger.debug(
        f"{specialty}: {action.value} {current_cf:.2f} -> {recommended_cf:.2f} "
        f"(n={n}, objective {at_current.objective:.3f} -> {best.objective:.3f})"
    )

    return OptimizerSpecialtyResult(
        specialty=specialty,
        includedCount=n,
        excludedCount=len(excluded),
        currentCF=current_cf,
        recommendedCF=recommended_cf,
        cfChangePct=cf_change_pct,
        preGap=pre.gap,
        postGap=best.mean_gap,
        meanModeledTCCPercentile=best.mean_modeled_pctile,
        maeBefore=at_current.mae,
        maeAfter=best.mae,
        mseBefore=at_current.mse,
        mseAfter=best.mse,
        objectiveBefore=at_current.objective,
        objectiveAfter=best.objective,
        candidatesEvaluated=len(evaluations),
        spendImpactRaw=best.spend_impact,
        baselineSpend=best.baseline_spend,
        totalIncentiveDollars=best.modeled_incentive,
        policyCheck=policy,
        cfPolicyPercentile=cf_percentile,
        effectiveRateFlag=effective_rate_flag,
        highRiskCount=sum(1 for c in included_ctx if c.riskLevel == RiskLevel.HIGH),
        mediumRiskCount=sum(1 for c in included_ctx if c.riskLevel == RiskLevel.MEDIUM),
        flags=flags,
        notes=notes,
        keyMessages=key_messages,
        providerContexts=contexts,
        recommendedAction=action,
        status=status,
        constraintsHit=constraints,
        explanation=explanation,
        keyMetrics=pre,
        marketCF=market_cf,
    )


# =============================================================================
# Grouping
# =============================================================================


def _matches_filter(specialty_filter: Optional[str], group_name: str, members: List[_WorkingProvider]) -> bool:
    if not specialty_filter or not specialty_filter.strip():
        return True
    key = normalize_specialty_key(specialty_filter)
    if normalize_specialty_key(group_name) == key:
        return True
    return any(normalize_specialty_key(w.ctx.specialty) == key for w in members)


def group_by_specialty(
    working: List[_WorkingProvider],
    specialty_filter: Optional[str] = None,
) -> Tuple[Dict[str, List[_WorkingProvider]], List[_WorkingProvider]]:
    """
    Split providers into market-specialty groups (first-seen order) and
    missing-market providers, applying the optional specialty filter.
    """
    groups: Dict[str, List[_WorkingProvider]] = {}
    missing: List[_WorkingProvider] = []
    for w in working:
        if w.market_row is None:
            missing.append(w)
        else:
            groups.setdefault(w.market_row.specialty, []).append(w)

    groups = {name: members for name, members in groups.items() if _matches_filter(specialty_filter, name, members)}
    if specialty_filter and specialty_filter.strip():
        key = normalize_specialty_key(specialty_filter)
        missing = [w for w in missing if normalize_specialty_key(w.ctx.specialty) == key]
    return groups, missing


def _group_market_row(members: List[_WorkingProvider]) -> MarketRow:
    """Market row shared by a specialty group (taken from its first member)."""
    return members[0].market_row


def _prepare_groups(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    settings: OptimizerSettings,
    synonym_map: Optional[Dict[str, str]],
    specialty_filter: Optional[str],
) -> Tuple[Dict[str, List[_WorkingProvider]], List[_WorkingProvider]]:
    working = build_provider_contexts(provider_rows, market_rows, settings, synonym_map)
    groups, missing = group_by_specialty(working, specialty_filter)
    return {name: apply_outlier_exclusions(members, settings) for name, members in groups.items()}, missing


# =============================================================================
# Main Entry Points
# =============================================================================


def run_optimizer(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    settings: Optional[OptimizerSettings] = None,
    scenario_id: str = "",
    scenario_name: str = "",
    synonym_map: Optional[Dict[str, str]] = None,
    specialty_filter: Optional[str] = None,
    on_progress: Optional[OptimizerProgressCallback] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> OptimizerRunResult:
    """
    Optimize the CF for every specialty in the provider file.

    Args:
        provider_rows: Provider records.
        market_rows: Market benchmark rows.
        settings: Optimizer settings (defaults when None).
        scenario_id: Caller's id for this run (echoed in summary/audit).
        scenario_name: Caller's display name for this run.
        synonym_map: Provider specialty -> market specialty mapping.
        specialty_filter: Only analyze this specialty (provider or market name).
        on_progress: Called with (specialty_number, total_specialties, name)
            before each specialty is optimized.
        config: Engine constants.

    Returns:
        OptimizerRunResult with summary, per-specialty results and audit export.
    """
    settings = settings or OptimizerSettings()
    groups, missing = _prepare_groups(provider_rows, market_rows, settings, synonym_map, specialty_filter)
    total = len(groups)
    logger.info(f"Optimizer run {scenario_id or '(unnamed)'}: {len(provider_rows)} providers, {total} specialties")

    results: List[OptimizerSpecialtyResult] = []
    for number, (specialty, members) in enumerate(groups.items(), start=1):
        if on_progress is not None:
            on_progress(number, total, specialty)
        results.append(optimize_specialty(specialty, members, _group_market_row(members), settings, config))

    all_contexts = [c for r in results for c in r.providerContexts] + [w.ctx for w in missing]
    excluded = [c for c in all_contexts if not c.included]

    reason_counts = Counter(reason for c in excluded for reason in c.exclusionReasons)
    top_reasons = sorted(reason_counts.items(), key=lambda item: (-item[1], item[0].value))
    top_reasons = top_reasons[:TOP_EXCLUSION_REASONS]

    rollup_messages: List[str] = []
    if missing:
        rollup_messages.append(f"Missing market match for {len(missing)} provider(s).")
    for result in results:
        for message in result.keyMessages:
            _add(rollup_messages, f"{result.specialty}: {message}")

    tolerance = settings.governanceConfig.alignmentTolerancePctile
    timestamp = datetime.now(timezone.utc).isoformat()
    summary = OptimizerRunSummary(
        scenarioId=scenario_id,
        scenarioName=scenario_name,
        timestamp=timestamp,
        specialtiesAnalyzed=len(results),
        providersIncluded=sum(1 for c in all_contexts if c.included),
        providersExcluded=len(excluded),
        topExclusionReasons=[ExclusionReasonCount(reason=r, count=n) for r, n in top_reasons],
        totalSpendImpactRaw=sum(r.spendImpactRaw for r in results),
        totalIncentiveDollars=sum(r.totalIncentiveDollars for r in results),
        countMeetingAlignmentTarget=sum(
            1 for c in all_contexts if c.included and abs(c.modeledGap) <= tolerance
        ),
        countCFAbovePolicy=sum(1 for r in results if r.policyCheck != PolicyCheckStatus.OK),
        countEffectiveRateAbove90=sum(1 for r in results if r.effectiveRateFlag),
        keyMessages=rollup_messages,
    )

    audit = OptimizerAuditExport(
        scenarioId=scenario_id,
        scenarioName=scenario_name,
        timestamp=timestamp,
        benchmarkBasis=settings.benchmarkBasis,
        marketBasisAssumption=(
            RAW_BASIS_ASSUMPTION if settings.benchmarkBasis == BenchmarkBasis.RAW else None
        ),
        optimizationObjective=settings.optimizationObjective,
        errorMetric=settings.errorMetric,
        exclusionRules=settings.defaultExclusionRules,
        outlierMethod=settings.outlierParams.method,
        outlierThresholds={
            "iqrK": settings.outlierParams.iqrK,
            "madZThreshold": settings.outlierParams.madZThreshold,
        },
        cfPolicyThreshold=settings.cfPolicy.thresholdPercentile,
        cfPolicyEnforcementMode=settings.cfPolicy.enforcementMode,
        budgetConstraint=settings.budgetConstraint,
        wRVUGrowthFactorPct=settings.wRVUGrowthFactorPct,
        results=results,
        excludedProviders=[
            ExcludedProvider(
                providerId=c.providerId,
                providerName=c.providerName,
                specialty=c.marketSpecialty or c.specialty,
                reasons=list(c.exclusionReasons),
            )
            for c in excluded
        ],
        summary=summary,
    )

    logger.info(
        f"Optimizer run complete: {summary.specialtiesAnalyzed} specialties, "
        f"{summary.providersIncluded} included, {summary.providersExcluded} excluded"
    )
    return OptimizerRunResult(summary=summary, bySpecialty=results, audit=audit)


def run_cf_sweep(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    settings: Optional[OptimizerSettings],
    cf_percentiles: Sequence[float],
    synonym_map: Optional[Dict[str, str]] = None,
    specialty_filter: Optional[str] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> CFSweepAllResult:
    """
    Report modeled outcomes at fixed market CF percentiles for every specialty.

    Eligibility and outlier exclusions run once; no winner is selected.
    Specialties at or below config.low_sample_threshold included providers
    are still swept but logged as low sample.

    Raises:
        ValueError: When cf_percentiles is empty.
    """
    if not cf_percentiles:
        raise ValueError("CF sweep requires at least one CF percentile")

    settings = settings or OptimizerSettings()
    groups, _ = _prepare_groups(provider_rows, market_rows, settings, synonym_map, specialty_filter)

    by_specialty: Dict[str, List[CFSweepRow]] = {}
    for specialty, members in groups.items():
        market_row = _group_market_row(members)
        included = [w for w in members if w.ctx.included]
        if len(included) <= config.low_sample_threshold:
            logger.warning(f"CF sweep for {specialty!r} rests on {len(included)} included provider(s)")
        mean_wrvu = float(np.mean([w.ctx.wrvuPercentile for w in included])) if included else 0.0
        rows: List[CFSweepRow] = []
        for pct in cf_percentiles:
            cf = interpolate_market(pct, market_row, "CF")
            evaluation = evaluate_candidate(cf, included, market_row, settings)
            rows.append(CFSweepRow(
                cfPercentile=pct,
                cfDollars=cf,
                meanModeledTCCPctile=evaluation.mean_modeled_pctile,
                meanWrvuPctile=mean_wrvu,
                gap=evaluation.mean_gap,
                totalIncentiveDollars=evaluation.modeled_incentive,
                spendImpactRaw=evaluation.spend_impact,
                includedCount=len(included),
            ))
        by_specialty[specialty] = rows

    logger.info(f"CF sweep complete: {len(by_specialty)} specialties x {len(cf_percentiles)} percentiles")
    return CFSweepAllResult(bySpecialty=by_specialty)


__all__ = [
    'CandidateEvaluation',
    'OptimizerProgressCallback',
    'get_clinical_base',
    'get_basis_fte',
    'is_loa_flagged',
    'additional_layer_dollars',
    'compute_optimizer_tcc',
    'objective_error',
    'aggregate_error',
    'provider_risk_level',
    'build_provider_contexts',
    'apply_outlier_exclusions',
    'cf_search_bounds',
    'generate_candidates',
    'evaluate_candidate',
    'budget_limit',
    'optimize_specialty',
    'group_by_specialty',
    'run_optimizer',
    'run_cf_sweep',
]
