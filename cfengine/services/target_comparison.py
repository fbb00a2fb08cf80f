"""
Productivity Target Comparison Service

Compares 2-4 completed productivity target runs: planning incentive, percent
to target and status-band roll-ups per run, and a by-specialty table over
the union of specialties. Nothing is re-modeled.
"""

import logging
from typing import Dict, List, Optional

from cfengine.models.enums import TargetApproach
from cfengine.models.schemas import (
    ProductivityTargetSpecialtyResult,
    ScenarioInfo,
    TargetComparisonResult,
    TargetComparisonRollup,
    TargetComparisonSpecialtyRow,
    TargetRunWithResult,
)
from cfengine.services.comparison import MAX_COMPARED_RUNS, MIN_COMPARED_RUNS


logger = logging.getLogger(__name__)


BAND_FIELDS = ("below80", "eightyTo99", "hundredTo119", "atOrAbove120")


def _validate_runs(runs: List[TargetRunWithResult]) -> None:
    if not MIN_COMPARED_RUNS <= len(runs) <= MAX_COMPARED_RUNS:
        raise ValueError(
            f"Comparison requires {MIN_COMPARED_RUNS}-{MAX_COMPARED_RUNS} runs, got {len(runs)}"
        )
    missing = [run.name or run.id for run in runs if run.result is None]
    if missing:
        raise ValueError(f"Runs without results cannot be compared: {', '.join(missing)}")
    ids = [run.id for run in runs]
    if len(set(ids)) != len(ids):
        raise ValueError("Compared runs must have distinct ids")


def build_target_rollup(runs: List[TargetRunWithResult]) -> TargetComparisonRollup:
    """Per-run totals; mean percent to target is over providers, not specialties."""
    percentile: Dict[str, Optional[float]] = {}
    approach: Dict[str, Optional[TargetApproach]] = {}
    incentive: Dict[str, float] = {}
    mean_pct: Dict[str, float] = {}
    bands: Dict[str, Dict[str, int]] = {name: {} for name in BAND_FIELDS}

    for run in runs:
        rows = run.result.bySpecialty
        percentile[run.id] = run.settings.targetPercentile if run.settings else None
        approach[run.id] = run.settings.targetApproach if run.settings else None
        incentive[run.id] = sum(row.totalPlanningIncentiveDollars for row in rows)
        percents = [p.percentToTarget for row in rows for p in row.providers]
        mean_pct[run.id] = sum(percents) / len(percents) if percents else 0.0
        for name in BAND_FIELDS:
            bands[name][run.id] = sum(getattr(row.summary.bandCounts, name) for row in rows)

    return TargetComparisonRollup(
        targetPercentileByScenario=percentile,
        targetApproachByScenario=approach,
        totalPlanningIncentiveByScenario=incentive,
        meanPercentToTargetByScenario=mean_pct,
        below80ByScenario=bands["below80"],
        eightyTo99ByScenario=bands["eightyTo99"],
        hundredTo119ByScenario=bands["hundredTo119"],
        atOrAbove120ByScenario=bands["atOrAbove120"],
    )


def build_target_specialty_rows(runs: List[TargetRunWithResult]) -> List[TargetComparisonSpecialtyRow]:
    by_run: Dict[str, Dict[str, ProductivityTargetSpecialtyResult]] = {
        run.id: {row.specialty: row for row in run.result.bySpecialty} for run in runs
    }
    specialties = sorted(
        {name for rows in by_run.values() for name in rows},
        key=lambda name: (name.casefold(), name),
    )

    table: List[TargetComparisonSpecialtyRow] = []
    for specialty in specialties:
        present = {run.id: by_run[run.id].get(specialty) for run in runs}
        band_values = {
            f"{name}ByScenario": {
                k: getattr(r.summary.bandCounts, name) if r else 0 for k, r in present.items()
            }
            for name in BAND_FIELDS
        }
        table.append(TargetComparisonSpecialtyRow(
            specialty=specialty,
            scenarioIds=[run_id for run_id, row in present.items() if row is not None],
            groupTargetWRVUByScenario={k: r.groupTargetWRVU_1cFTE if r else None for k, r in present.items()},
            planningIncentiveByScenario={
                k: r.totalPlanningIncentiveDollars if r else None for k, r in present.items()
            },
            meanPercentToTargetByScenario={
                k: r.summary.meanPercentToTarget if r else None for k, r in present.items()
            },
            **band_values,
        ))
    return table


def compare_target_runs(runs: List[TargetRunWithResult]) -> TargetComparisonResult:
    """
    Compare 2-4 completed productivity target runs.

    Raises:
        ValueError: Wrong run count, a run without results or duplicate ids.
    """
    _validate_runs(runs)
    logger.info(f"Compared {len(runs)} productivity target runs")
    return TargetComparisonResult(
        scenarios=[ScenarioInfo(id=run.id, name=run.name) for run in runs],
        rollup=build_target_rollup(runs),
        bySpecialty=build_target_specialty_rows(runs),
    )


__all__ = [
    'build_target_rollup',
    'build_target_specialty_rows',
    'compare_target_runs',
]
