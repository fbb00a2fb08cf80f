"""
Tabular Export Service

Flattens engine results into pandas DataFrames for spreadsheet / CSV export.
Column names follow the JSON field names so exported files line up with API
payloads. Rendering to a file format is left to the caller
(DataFrame.to_csv / to_excel).
"""

from typing import Any, Dict, List

import pandas as pd

from cfengine.models.schemas import (
    BatchResults,
    CFSweepAllResult,
    ImputedVsMarketRow,
    OptimizerRunResult,
    ProductivityTargetRunResult,
)


BATCH_COLUMNS: List[str] = [
    'providerId',
    'providerName',
    'specialty',
    'division',
    'scenarioId',
    'scenarioName',
    'matchStatus',
    'matchedMarketSpecialty',
    'riskLevel',
    'currentCF',
    'modeledCF',
    'currentTCC',
    'modeledTCC',
    'changeInTCC',
    'wrvuPercentile',
    'tccPercentile',
    'modeledTCCPercentile',
    'baselineGap',
    'modeledGap',
    'annualIncentive',
    'warnings',
]

OPTIMIZER_COLUMNS: List[str] = [
    'specialty',
    'includedCount',
    'excludedCount',
    'currentCF',
    'recommendedCF',
    'cfChangePct',
    'recommendedAction',
    'status',
    'preGap',
    'postGap',
    'meanModeledTCCPercentile',
    'spendImpactRaw',
    'totalIncentiveDollars',
    'policyCheck',
    'cfPolicyPercentile',
    'effectiveRateFlag',
    'highRiskCount',
    'mediumRiskCount',
    'flags',
    'constraintsHit',
    'headline',
]

EXCLUDED_COLUMNS: List[str] = ['providerId', 'providerName', 'specialty', 'reasons']

SWEEP_COLUMNS: List[str] = [
    'specialty',
    'cfPercentile',
    'cfDollars',
    'meanModeledTCCPctile',
    'meanWrvuPctile',
    'gap',
    'totalIncentiveDollars',
    'spendImpactRaw',
    'includedCount',
]

TARGET_COLUMNS: List[str] = [
    'specialty',
    'groupTargetWRVU_1cFTE',
    'providerId',
    'providerName',
    'cFTE',
    'rampFactor',
    'actualWRVUs',
    'rampedTargetWRVU',
    'varianceWRVU',
    'percentToTarget',
    'status',
    'planningIncentiveDollars',
]

IMPUTED_COLUMNS: List[str] = [
    'specialty',
    'providerCount',
    'medianImputedDollarPerWRVU',
    'market25',
    'market50',
    'market75',
    'market90',
    'yourPercentile',
    'avgTCCPercentile',
    'avgWRVUPercentile',
    'medianCurrentCFUsed',
    'marketCF50',
]

# Multi-valued cells are joined with this separator
LIST_SEPARATOR = "; "


def _join(values: List[Any]) -> str:
    return LIST_SEPARATOR.join(getattr(v, 'value', str(v)) for v in values)


def batch_results_to_frame(batch: BatchResults) -> pd.DataFrame:
    """
    One row per provider x scenario.

    Rows with a Missing market keep their identity columns and leave the
    scenario metrics empty (NaN).
    """
    records: List[Dict[str, Any]] = []
    for row in batch.rows:
        result = row.results
        records.append({
            'providerId': row.providerId,
            'providerName': row.providerName,
            'specialty': row.specialty,
            'division': row.division,
            'scenarioId': row.scenarioId,
            'scenarioName': row.scenarioName,
            'matchStatus': row.matchStatus.value,
            'matchedMarketSpecialty': row.matchedMarketSpecialty,
            'riskLevel': row.riskLevel.value,
            'currentCF': result.currentCF if result else None,
            'modeledCF': result.modeledCF if result else None,
            'currentTCC': result.currentTCC if result else None,
            'modeledTCC': result.modeledTCC if result else None,
            'changeInTCC': result.changeInTCC if result else None,
            'wrvuPercentile': result.wrvuPercentile if result else None,
            'tccPercentile': result.tccPercentile if result else None,
            'modeledTCCPercentile': result.modeledTCCPercentile if result else None,
            'baselineGap': result.baselineGap if result else None,
            'modeledGap': result.modeledGap if result else None,
            'annualIncentive': result.annualIncentive if result else None,
            'warnings': _join(row.warnings),
        })
    return pd.DataFrame.from_records(records, columns=BATCH_COLUMNS)


def optimizer_results_to_frame(result: OptimizerRunResult) -> pd.DataFrame:
    """One row per analyzed specialty."""
    records = [
        {
            'specialty': row.specialty,
            'includedCount': row.includedCount,
            'excludedCount': row.excludedCount,
            'currentCF': row.currentCF,
            'recommendedCF': row.recommendedCF,
            'cfChangePct': row.cfChangePct,
            'recommendedAction': row.recommendedAction.value,
            'status': row.status.value,
            'preGap': row.preGap,
            'postGap': row.postGap,
            'meanModeledTCCPercentile': row.meanModeledTCCPercentile,
            'spendImpactRaw': row.spendImpactRaw,
            'totalIncentiveDollars': row.totalIncentiveDollars,
            'policyCheck': row.policyCheck.value,
            'cfPolicyPercentile': row.cfPolicyPercentile,
            'effectiveRateFlag': row.effectiveRateFlag,
            'highRiskCount': row.highRiskCount,
            'mediumRiskCount': row.mediumRiskCount,
            'flags': _join(row.flags),
            'constraintsHit': _join(row.constraintsHit),
            'headline': row.explanation.headline,
        }
        for row in result.bySpecialty
    ]
    return pd.DataFrame.from_records(records, columns=OPTIMIZER_COLUMNS)


def excluded_providers_to_frame(result: OptimizerRunResult) -> pd.DataFrame:
    records = [
        {
            'providerId': p.providerId,
            'providerName': p.providerName,
            'specialty': p.specialty,
            'reasons': _join(p.reasons),
        }
        for p in result.audit.excludedProviders
    ]
    return pd.DataFrame.from_records(records, columns=EXCLUDED_COLUMNS)


def cf_sweep_to_frame(sweep: CFSweepAllResult) -> pd.DataFrame:
    """Long-format sweep table: one row per specialty x CF percentile."""
    records = [
        {'specialty': specialty, **row.model_dump()}
        for specialty, rows in sweep.bySpecialty.items()
        for row in rows
    ]
    return pd.DataFrame.from_records(records, columns=SWEEP_COLUMNS)


def productivity_targets_to_frame(result: ProductivityTargetRunResult) -> pd.DataFrame:
    """One row per evaluated provider, carrying its specialty's group target."""
    records = [
        {
            'specialty': row.specialty,
            'groupTargetWRVU_1cFTE': row.groupTargetWRVU_1cFTE,
            'providerId': p.providerId,
            'providerName': p.providerName,
            'cFTE': p.cFTE,
            'rampFactor': p.rampFactor,
            'actualWRVUs': p.actualWRVUs,
            'rampedTargetWRVU': p.rampedTargetWRVU,
            'varianceWRVU': p.varianceWRVU,
            'percentToTarget': p.percentToTarget,
            'status': p.status.value,
            'planningIncentiveDollars': p.planningIncentiveDollars,
        }
        for row in result.bySpecialty
        for p in row.providers
    ]
    return pd.DataFrame.from_records(records, columns=TARGET_COLUMNS)


def imputed_vs_market_to_frame(rows: List[ImputedVsMarketRow]) -> pd.DataFrame:
    records = [row.model_dump(include=set(IMPUTED_COLUMNS)) for row in rows]
    return pd.DataFrame.from_records(records, columns=IMPUTED_COLUMNS)


__all__ = [
    'BATCH_COLUMNS',
    'OPTIMIZER_COLUMNS',
    'EXCLUDED_COLUMNS',
    'SWEEP_COLUMNS',
    'TARGET_COLUMNS',
    'IMPUTED_COLUMNS',
    'batch_results_to_frame',
    'optimizer_results_to_frame',
    'excluded_providers_to_frame',
    'cf_sweep_to_frame',
    'productivity_targets_to_frame',
    'imputed_vs_market_to_frame',
]
