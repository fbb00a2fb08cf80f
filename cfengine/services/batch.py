"""
Batch Runner Service

Runs every provider through every scenario and returns one flat list of rows.

For each provider the market match is resolved once. For each scenario the
scenario calculator runs, unless the match is Missing (blank specialty or no
valid market row), in which case a Missing row with results=None is emitted.

Row risk level:
- high: any high-risk note, underpay-risk or FMV-check flag (or missing market)
- medium: any warning
- low: otherwise

Ordering is stable: providers in input order, scenarios in input order within
each provider. Progress callbacks fire whenever a chunk boundary (default 200
rows) is crossed, plus once at the end.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from cfengine.core.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from cfengine.models.enums import MatchStatus, RiskLevel
from cfengine.models.schemas import (
    BatchResults,
    BatchRowResult,
    BatchScenario,
    MarketRow,
    ProviderRecord,
    ScenarioResult,
)
from cfengine.services.compensation import get_clinical_fte
from cfengine.services.scenario import compute_scenario
from cfengine.services.specialty_match import match_specialty


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int], None]

DEFAULT_SCENARIO = BatchScenario(id="default", name="Current")


# =============================================================================
# Risk Classification
# =============================================================================


def derive_risk_level(result: Optional[ScenarioResult], warnings: List[str]) -> RiskLevel:
    """
    Classify a batch row.

    Missing results (no market) are high risk.
    """
    if result is None:
        return RiskLevel.HIGH
    flags = result.governanceFlags
    if result.risk.highRisk or flags.underpayRisk or flags.fmvCheckSuggested:
        return RiskLevel.HIGH
    if warnings:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _dedupe(messages: List[str]) -> List[str]:
    return list(dict.fromkeys(messages))


# =============================================================================
# Per-Provider Rows
# =============================================================================


def build_provider_rows(
    provider: ProviderRecord,
    index: int,
    market_rows: List[MarketRow],
    scenarios: List[BatchScenario],
    synonym_map: Optional[Dict[str, str]] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> List[BatchRowResult]:
    """
    Build the batch rows for one provider across all scenarios.

    Args:
        provider: Provider record.
        index: Position of the provider in the full input list (used for the
            fallback provider id).
        market_rows: Market benchmark rows.
        scenarios: Scenarios in output order.
        synonym_map: Provider specialty -> market specialty mapping.
        config: Engine constants.

    Returns:
        One BatchRowResult per scenario.
    """
    provider_id = provider.providerId or provider.providerName or f"provider-{index}"
    provider_name = provider.providerName or ""
    specialty = (provider.specialty or "").strip()
    division = provider.division or ""

    base_warnings: List[str] = []
    if not specialty:
        base_warnings.append("Missing specialty")
    if get_clinical_fte(provider) <= 0:
        base_warnings.append("Clinical FTE = 0; ratios may be unstable")

    match = match_specialty(provider, market_rows, synonym_map)
    matched_specialty = match.marketRow.specialty if match.marketRow is not None else None

    rows: List[BatchRowResult] = []
    for scenario in scenarios:
        if match.status == MatchStatus.MISSING or match.marketRow is None:
            missing = (
                f"Market missing for specialty: {specialty}" if specialty
                else "Market missing (no specialty)"
            )
            rows.append(BatchRowResult(
                providerId=provider_id,
                providerName=provider_name,
                specialty=specialty,
                division=division,
                scenarioId=scenario.id,
                scenarioName=scenario.name,
                scenarioInputsSnapshot=scenario.scenarioInputs,
                results=None,
                matchStatus=MatchStatus.MISSING,
                matchedMarketSpecialty=None,
                warnings=_dedupe(base_warnings + [missing]),
                riskLevel=RiskLevel.HIGH,
            ))
            continue

        result = compute_scenario(provider, match.marketRow, scenario.scenarioInputs, config)
        high_risk_notes = [f"High risk: {note}" for note in result.risk.highRisk]
        warnings = _dedupe(base_warnings + result.warnings + result.risk.warnings + high_risk_notes)
        rows.append(BatchRowResult(
            providerId=provider_id,
            providerName=provider_name,
            specialty=specialty,
            division=division,
            scenarioId=scenario.id,
            scenarioName=scenario.name,
            scenarioInputsSnapshot=scenario.scenarioInputs,
            results=result,
            matchStatus=match.status,
            matchedMarketSpecialty=matched_specialty,
            warnings=warnings,
            riskLevel=derive_risk_level(result, warnings),
        ))
    return rows


# =============================================================================
# Main Entry Point
# =============================================================================


def resolve_scenarios(scenarios: Optional[List[BatchScenario]]) -> List[BatchScenario]:
    """Scenarios to run; a single 'Current' scenario when none are supplied."""
    return list(scenarios) if scenarios else [DEFAULT_SCENARIO]


def run_batch(
    providers: List[ProviderRecord],
    market_rows: List[MarketRow],
    scenarios: Optional[List[BatchScenario]] = None,
    synonym_map: Optional[Dict[str, str]] = None,
    on_progress: Optional[ProgressCallback] = None,
    chunk_size: Optional[int] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> BatchResults:
    """
    Run all providers through all scenarios.

    Args:
        providers: Provider records in output order.
        market_rows: Market benchmark rows.
        scenarios: Scenarios to apply; defaults to one 'Current' scenario.
        synonym_map: Provider specialty -> market specialty mapping.
        on_progress: Called with (processed_rows, total_rows).
        chunk_size: Rows between progress callbacks (config default when None).
        config: Engine constants.

    Returns:
        BatchResults with rows ordered provider-major, scenario-minor.
    """
    scenario_list = resolve_scenarios(scenarios)
    chunk = chunk_size or config.batch_chunk_size
    total = len(providers) * len(scenario_list)
    started = time.perf_counter()

    logger.info(f"Starting batch run: {len(providers)} providers x {len(scenario_list)} scenarios")

    rows: List[BatchRowResult] = []
    processed = 0
    for index, provider in enumerate(providers):
        rows.extend(build_provider_rows(
            provider, index, market_rows, scenario_list, synonym_map, config
        ))
        processed += len(scenario_list)
        if on_progress is not None and processed % chunk < len(scenario_list):
            on_progress(processed, total)

    if on_progress is not None:
        on_progress(total, total)

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(f"Batch run complete: {len(rows)} rows in {elapsed_ms}ms")

    return BatchResults(
        rows=rows,
        runAt=datetime.now(timezone.utc).isoformat(),
        scenarioCount=len(scenario_list),
        providerCount=len(providers),
    )


__all__ = [
    'DEFAULT_SCENARIO',
    'ProgressCallback',
    'derive_risk_level',
    'build_provider_rows',
    'resolve_scenarios',
    'run_batch',
]
