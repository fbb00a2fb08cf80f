"""
Scenario Comparison Service

Compares 2-4 completed optimizer runs side by side. Pure aggregation over
their results: nothing is re-modeled.

Produces:
- Per-scenario assumptions (growth factor, objective, governance, budget,
  scope counts)
- Roll-up metrics keyed by scenario id, with spend deltas vs the baseline
- A by-specialty table over the union of specialties (None where a run did
  not analyze the specialty)
- A templated narrative comparing each scenario with the baseline
"""

import logging
from typing import Dict, List, Optional

import numpy as np

from cfengine.models.schemas import (
    AssumptionsPerScenario,
    ComparisonResult,
    ComparisonRollup,
    ComparisonSpecialtyRow,
    OptimizerRunResult,
    OptimizerSpecialtyResult,
    RunWithResult,
    ScenarioInfo,
)


logger = logging.getLogger(__name__)


MIN_COMPARED_RUNS: int = 2
MAX_COMPARED_RUNS: int = 4

# Percentile differences at or below this are not narrated
POSITIONING_THRESHOLD: float = 0.5


# =============================================================================
# Validation
# =============================================================================


def can_compare(run: RunWithResult) -> bool:
    """True when the run carries a completed optimizer result."""
    return run.result is not None


def _validate_runs(runs: List[RunWithResult], baseline_id: Optional[str]) -> str:
    if not MIN_COMPARED_RUNS <= len(runs) <= MAX_COMPARED_RUNS:
        raise ValueError(
            f"Comparison requires {MIN_COMPARED_RUNS}-{MAX_COMPARED_RUNS} runs, got {len(runs)}"
        )
    missing = [run.name or run.id for run in runs if not can_compare(run)]
    if missing:
        raise ValueError(f"Runs without results cannot be compared: {', '.join(missing)}")
    ids = [run.id for run in runs]
    if len(set(ids)) != len(ids):
        raise ValueError("Compared runs must have distinct ids")
    if baseline_id is None:
        return runs[0].id
    if baseline_id not in ids:
        raise ValueError(f"Baseline run {baseline_id!r} is not among the compared runs")
    return baseline_id


# =============================================================================
# Roll-up Helpers
# =============================================================================


def total_modeled_incentive(result: OptimizerRunResult) -> float:
    """Modeled wRVU incentive dollars summed over included providers."""
    return sum(
        ctx.modeledIncentiveDollars
        for row in result.bySpecialty
        for ctx in row.providerContexts
        if ctx.included
    )


def _mean(values: List[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def _assumptions(run: RunWithResult) -> AssumptionsPerScenario:
    summary = run.result.summary
    settings = run.settings
    return AssumptionsPerScenario(
        scenarioId=run.id,
        scenarioName=run.name,
        wRVUGrowthFactorPct=settings.wRVUGrowthFactorPct if settings else None,
        optimizationObjective=settings.optimizationObjective if settings else None,
        governanceConfig=settings.governanceConfig if settings else None,
        budgetConstraint=settings.budgetConstraint if settings else None,
        providersIncluded=summary.providersIncluded,
        providersExcluded=summary.providersExcluded,
        manualExcludeCount=len(settings.manualExcludeProviderIds) if settings else 0,
        manualIncludeCount=len(settings.manualIncludeProviderIds) if settings else 0,
        selectedSpecialties=list(run.selectedSpecialties),
    )


def build_rollup(runs: List[RunWithResult], baseline_id: str) -> ComparisonRollup:
    """Roll-up metrics for every run, keyed by run id."""
    spend: Dict[str, float] = {}
    incentive: Dict[str, float] = {}
    mean_tcc: Dict[str, float] = {}
    mean_modeled: Dict[str, float] = {}
    mean_wrvu: Dict[str, float] = {}
    aligned: Dict[str, int] = {}
    above_policy: Dict[str, int] = {}
    rate_above_90: Dict[str, int] = {}

    for run in runs:
        result = run.result
        rows = result.bySpecialty
        spend[run.id] = result.summary.totalSpendImpactRaw
        incentive[run.id] = total_modeled_incentive(result)
        mean_tcc[run.id] = _mean([r.keyMetrics.compPercentile for r in rows])
        mean_modeled[run.id] = _mean([r.meanModeledTCCPercentile for r in rows])
        mean_wrvu[run.id] = _mean([r.keyMetrics.prodPercentile for r in rows])
        aligned[run.id] = result.summary.countMeetingAlignmentTarget
        above_policy[run.id] = result.summary.countCFAbovePolicy
        rate_above_90[run.id] = result.summary.countEffectiveRateAbove90

    baseline_spend = spend[baseline_id]
    delta: Dict[str, float] = {}
    delta_pct: Dict[str, Optional[float]] = {}
    for run in runs:
        diff = spend[run.id] - baseline_spend
        delta[run.id] = diff
        delta_pct[run.id] = diff / abs(baseline_spend) * 100.0 if baseline_spend != 0 else None

    return ComparisonRollup(
        totalSpendImpactByScenario=spend,
        totalIncentiveByScenario=incentive,
        meanTCCPercentileByScenario=mean_tcc,
        meanModeledTCCPercentileByScenario=mean_modeled,
        meanWRVUPercentileByScenario=mean_wrvu,
        countMeetingAlignmentTargetByScenario=aligned,
        countCFAbovePolicyByScenario=above_policy,
        countEffectiveRateAbove90ByScenario=rate_above_90,
        deltaSpendImpactVsBaseline=delta,
        deltaSpendImpactPctVsBaseline=delta_pct,
    )


def build_specialty_rows(runs: List[RunWithResult], baseline_id: str) -> List[ComparisonSpecialtyRow]:
    """
    One row per specialty in any run, sorted case-insensitively.

    Values are None for runs that did not analyze the specialty; the CF delta
    is None when either side is absent or the baseline CF is zero.
    """
    by_run: Dict[str, Dict[str, OptimizerSpecialtyResult]] = {
        run.id: {row.specialty: row for row in run.result.bySpecialty} for run in runs
    }
    specialties = sorted(
        {name for rows in by_run.values() for name in rows},
        key=lambda name: (name.casefold(), name),
    )

    table: List[ComparisonSpecialtyRow] = []
    for specialty in specialties:
        present = {run.id: by_run[run.id].get(specialty) for run in runs}
        baseline_row = present[baseline_id]
        delta_cf: Dict[str, Optional[float]] = {}
        for run_id, row in present.items():
            if row is None or baseline_row is None or baseline_row.recommendedCF == 0:
                delta_cf[run_id] = None
            else:
                delta_cf[run_id] = (
                    (row.recommendedCF - baseline_row.recommendedCF) / baseline_row.recommendedCF * 100.0
                )

        table.append(ComparisonSpecialtyRow(
            specialty=specialty,
            scenarioIds=[run_id for run_id, row in present.items() if row is not None],
            recommendedCFByScenario={k: r.recommendedCF if r else None for k, r in present.items()},
            spendImpactByScenario={k: r.spendImpactRaw if r else None for k, r in present.items()},
            meanTCCPercentileByScenario={
                k: r.keyMetrics.compPercentile if r else None for k, r in present.items()
            },
            meanModeledTCCPercentileByScenario={
                k: r.meanModeledTCCPercentile if r else None for k, r in present.items()
            },
            meanWRVUPercentileByScenario={
                k: r.keyMetrics.prodPercentile if r else None for k, r in present.items()
            },
            deltaCFPctVsBaseline=delta_cf,
        ))
    return table


# =============================================================================
# Narrative
# =============================================================================


def build_narrative(
    runs: List[RunWithResult],
    baseline_id: str,
    assumptions: List[AssumptionsPerScenario],
    rollup: ComparisonRollup,
) -> List[str]:
    """Templated sentences comparing each scenario with the baseline."""
    names = {run.id: run.name for run in runs}
    scope = {a.scenarioId: a for a in assumptions}
    base_name = names[baseline_id]
    parts: List[str] = []

    for run in runs:
        if run.id == baseline_id:
            continue
        name = names[run.id]

        delta = rollup.deltaSpendImpactVsBaseline[run.id]
        if delta != 0:
            direction = "increases" if delta > 0 else "reduces"
            pct = rollup.deltaSpendImpactPctVsBaseline[run.id]
            pct_str = f" ({'+' if pct > 0 else ''}{pct:.1f}% vs {base_name})" if pct is not None else ""
            parts.append(
                f"{name} {direction} total modeled incentive spend by ${abs(delta):,.0f} compared to "
                f"{base_name}{pct_str}. This is the budget impact of the recommended conversion "
                f"factor changes."
            )
        else:
            parts.append(f"Total modeled incentive spend is the same in {base_name} and {name}.")

        wrvu_a = rollup.meanWRVUPercentileByScenario[baseline_id]
        wrvu_b = rollup.meanWRVUPercentileByScenario[run.id]
        tcc_a = rollup.meanTCCPercentileByScenario[baseline_id]
        tcc_b = rollup.meanTCCPercentileByScenario[run.id]
        if abs(wrvu_b - wrvu_a) > POSITIONING_THRESHOLD or abs(tcc_b - tcc_a) > POSITIONING_THRESHOLD:
            sentence = f"Pay vs productivity positioning differs between {base_name} and {name}."
            if abs(wrvu_b - wrvu_a) > POSITIONING_THRESHOLD:
                sentence += (
                    f" Mean wRVU percentile is {wrvu_b:.1f} in {name} vs {wrvu_a:.1f} in {base_name}"
                    f" (e.g. due to different productivity gain or scope)."
                )
            if abs(tcc_b - tcc_a) > POSITIONING_THRESHOLD:
                sentence += f" Mean TCC percentile is {tcc_b:.1f} in {name} vs {tcc_a:.1f} in {base_name}."
            parts.append(sentence)

        aligned = rollup.countMeetingAlignmentTargetByScenario
        if aligned[run.id] != aligned[baseline_id]:
            parts.append(
                f"Providers meeting the alignment target: {base_name} {aligned[baseline_id]}, "
                f"{name} {aligned[run.id]}."
            )

        policy = rollup.countCFAbovePolicyByScenario
        rate = rollup.countEffectiveRateAbove90ByScenario
        if policy[run.id] != policy[baseline_id] or rate[run.id] != rate[baseline_id]:
            parts.append(
                f"Governance: CF above policy threshold: {base_name} {policy[baseline_id]}, "
                f"{name} {policy[run.id]}. Effective rate above 90th: {base_name} "
                f"{rate[baseline_id]}, {name} {rate[run.id]}."
            )

        a, b = scope[baseline_id], scope[run.id]
        if a.providersIncluded != b.providersIncluded or a.providersExcluded != b.providersExcluded:
            parts.append(
                f"Scope differs: {base_name} included {a.providersIncluded} providers "
                f"({a.providersExcluded} excluded); {name} included {b.providersIncluded} "
                f"({b.providersExcluded} excluded)."
            )

    return parts


# =============================================================================
# Main Entry Point
# =============================================================================


def compare_optimizer_runs(
    runs: List[RunWithResult],
    baseline_id: Optional[str] = None,
) -> ComparisonResult:
    """
    Compare 2-4 completed optimizer runs.

    Args:
        runs: Runs to compare; each must carry a result.
        baseline_id: Run that deltas and narrative are measured against
            (the first run when None).

    Returns:
        ComparisonResult with assumptions, roll-ups, specialty table and narrative.

    Raises:
        ValueError: Wrong run count, a run without results, duplicate ids or
            an unknown baseline id.
    """
    baseline = _validate_runs(runs, baseline_id)
    assumptions = [_assumptions(run) for run in runs]
    rollup = build_rollup(runs, baseline)
    by_specialty = build_specialty_rows(runs, baseline)
    narrative = build_narrative(runs, baseline, assumptions, rollup)

    logger.info(f"Compared {len(runs)} optimizer runs against baseline {baseline}")

    return ComparisonResult(
        scenarios=[ScenarioInfo(id=run.id, name=run.name) for run in runs],
        baselineScenarioId=baseline,
        assumptionsPerScenario=assumptions,
        rollup=rollup,
        bySpecialty=by_specialty,
        narrativeSummary=narrative,
    )


__all__ = [
    'MIN_COMPARED_RUNS',
    'MAX_COMPARED_RUNS',
    'can_compare',
    'total_modeled_incentive',
    'build_rollup',
    'build_specialty_rows',
    'build_narrative',
    'compare_optimizer_runs',
]
