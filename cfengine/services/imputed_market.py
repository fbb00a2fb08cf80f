"""
Imputed vs Market Service

Read-only comparison of each specialty's effective pay rate with the market.
Nothing is optimized.

A provider's imputed $/wRVU is baseline TCC per 1.0 cFTE divided by wRVUs per
1.0 cFTE. Baseline TCC is the clinical base plus the components switched on
in ImputedVsMarketSettings; the wRVU incentive uses the derived threshold at
the provider's current CF (market median CF when missing). The specialty
median is placed on the synthetic market $/wRVU curve (TCC anchor / wRVU
anchor).
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from cfengine.models.schemas import (
    ImputedVsMarketProviderDetail,
    ImputedVsMarketRow,
    ImputedVsMarketSettings,
    MarketRow,
    ProviderRecord,
)
from cfengine.services.compensation import (
    derived_threshold,
    get_clinical_fte,
    get_other_incentives,
    get_total_wrvus,
    num,
    safe_div,
)
from cfengine.services.optimizer import additional_layer_dollars, get_clinical_base
from cfengine.services.percentile_curve import PercentileResult, infer_market, infer_percentile
from cfengine.services.scenario import market_dollar_per_wrvu_curve
from cfengine.services.specialty_match import match_specialty, normalize_specialty_key


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Evaluated:
    """One eligible provider with its TCC build-up and percentiles."""
    provider: ProviderRecord
    market: MarketRow
    specialty_key: str
    cfte: float
    wrvus: float
    wrvu_1p0: float
    current_cf: float
    clinical_base: float
    quality: float
    incentive: float
    other: float
    additional: float
    total: float
    imputed: float
    tcc_pctile: PercentileResult
    wrvu_pctile: PercentileResult


def _evaluate(
    provider: ProviderRecord,
    market_rows: List[MarketRow],
    synonym_map: Optional[Dict[str, str]],
    settings: ImputedVsMarketSettings,
) -> Optional[_Evaluated]:
    market = match_specialty(provider, market_rows, synonym_map).marketRow
    if market is None:
        return None

    cfte = get_clinical_fte(provider)
    if cfte < settings.minBasisFTE:
        return None
    wrvus = get_total_wrvus(provider)
    wrvu_1p0 = safe_div(wrvus, cfte, 0.0)
    if 0 < wrvu_1p0 < settings.minWRVUPer1p0CFTE:
        return None

    key = normalize_specialty_key(provider.specialty)
    if not key:
        return None

    current_cf = num(provider.currentCF) or num(market.CF_50)
    base = get_clinical_base(provider)
    quality = num(provider.qualityPayments) if settings.includeQualityPayments else 0.0
    incentive = 0.0
    if settings.includeWorkRVUIncentive and current_cf > 0:
        incentive = max(0.0, (wrvus - derived_threshold(base, current_cf)) * current_cf)
    other = get_other_incentives(provider) if settings.includeOtherIncentives else 0.0
    additional = additional_layer_dollars(settings.additionalTCCLayers, base, cfte)
    total = base + quality + incentive + other + additional

    imputed = safe_div(total, wrvus, 0.0)
    if imputed <= 0:
        return None

    tcc_1p0 = safe_div(total, cfte, 0.0)
    return _Evaluated(
        provider=provider,
        market=market,
        specialty_key=key,
        cfte=cfte,
        wrvus=wrvus,
        wrvu_1p0=wrvu_1p0,
        current_cf=current_cf,
        clinical_base=base,
        quality=quality,
        incentive=incentive,
        other=other,
        additional=additional,
        total=total,
        imputed=imputed,
        tcc_pctile=infer_market(tcc_1p0, market, "TCC"),
        wrvu_pctile=infer_market(wrvu_1p0, market, "WRVU"),
    )


# =============================================================================
# By Specialty
# =============================================================================


def imputed_vs_market_by_specialty(
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
    settings: Optional[ImputedVsMarketSettings] = None,
) -> List[ImputedVsMarketRow]:
    """
    Median imputed $/wRVU per specialty against the market $/wRVU curve.

    Providers are grouped by normalized provider specialty; each row is named
    after the first matched market row of its group. Rows are sorted
    case-insensitively.
    """
    settings = settings or ImputedVsMarketSettings()
    groups: Dict[str, List[_Evaluated]] = {}
    for provider in provider_rows:
        evaluated = _evaluate(provider, market_rows, synonym_map, settings)
        if evaluated is not None:
            groups.setdefault(evaluated.specialty_key, []).append(evaluated)

    rows: List[ImputedVsMarketRow] = []
    for members in groups.values():
        market = members[0].market
        curve = market_dollar_per_wrvu_curve(market)
        median_imputed = float(np.median([m.imputed for m in members]))
        if curve[1] > 0:
            position = infer_percentile(median_imputed, *curve)
        else:
            position = PercentileResult(0.0)

        rows.append(ImputedVsMarketRow(
            specialty=(market.specialty or "").strip() or (members[0].provider.specialty or "").strip(),
            providerCount=len(members),
            medianImputedDollarPerWRVU=median_imputed,
            medianCurrentCFUsed=float(np.median([m.current_cf for m in members])),
            market25=curve[0],
            market50=curve[1],
            market75=curve[2],
            market90=curve[3],
            yourPercentile=position.percentile,
            yourPercentileBelowRange=position.below_range,
            yourPercentileAboveRange=position.above_range,
            avgTCCPercentile=float(np.mean([m.tcc_pctile.percentile for m in members])),
            avgWRVUPercentile=float(np.mean([m.wrvu_pctile.percentile for m in members])),
            marketCF25=num(market.CF_25),
            marketCF50=num(market.CF_50),
            marketCF75=num(market.CF_75),
            marketCF90=num(market.CF_90),
        ))

    rows.sort(key=lambda row: (row.specialty.casefold(), row.specialty))
    logger.info(f"Imputed vs market computed for {len(rows)} specialties")
    return rows


# =============================================================================
# Provider Drill-down
# =============================================================================


def imputed_vs_market_provider_detail(
    specialty: str,
    provider_rows: List[ProviderRecord],
    market_rows: List[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
    settings: Optional[ImputedVsMarketSettings] = None,
) -> List[ImputedVsMarketProviderDetail]:
    """
    Eligible providers behind one imputed-vs-market row, sorted by name.

    The specialty matches either the provider's own specialty or the market
    specialty it resolved to, so synonym-mapped providers appear under the
    market row's display name.
    """
    settings = settings or ImputedVsMarketSettings()
    key = normalize_specialty_key(specialty)
    if not key:
        return []

    details: List[ImputedVsMarketProviderDetail] = []
    for provider in provider_rows:
        e = _evaluate(provider, market_rows, synonym_map, settings)
        if e is None or key not in (e.specialty_key, normalize_specialty_key(e.market.specialty)):
            continue
        p = e.provider
        m = e.market
        details.append(ImputedVsMarketProviderDetail(
            providerId=p.providerId or p.providerName or "",
            providerName=p.providerName or "",
            division=(p.division or "").strip() or "-",
            providerType=(p.providerType or "").strip() or "-",
            cFTE=e.cfte,
            totalWRVUs=e.wrvus,
            wRVU_1p0=e.wrvu_1p0,
            baselineTCC=e.total,
            currentCFUsed=e.current_cf,
            imputedDollarPerWRVU=e.imputed,
            clinicalBase=e.clinical_base,
            quality=e.quality,
            workRVUIncentive=e.incentive,
            otherIncentives=e.other,
            additionalTCC=e.additional,
            tccPercentile=e.tcc_pctile.percentile,
            tccPercentileBelowRange=e.tcc_pctile.below_range,
            tccPercentileAboveRange=e.tcc_pctile.above_range,
            wrvuPercentile=e.wrvu_pctile.percentile,
            wrvuPercentileBelowRange=e.wrvu_pctile.below_range,
            wrvuPercentileAboveRange=e.wrvu_pctile.above_range,
            marketTCC_25=num(m.TCC_25),
            marketTCC_50=num(m.TCC_50),
            marketTCC_75=num(m.TCC_75),
            marketTCC_90=num(m.TCC_90),
            marketWRVU_25=num(m.WRVU_25),
            marketWRVU_50=num(m.WRVU_50),
            marketWRVU_75=num(m.WRVU_75),
            marketWRVU_90=num(m.WRVU_90),
        ))

    details.sort(key=lambda row: (row.providerName.casefold(), row.providerName))
    return details


__all__ = [
    'imputed_vs_market_by_specialty',
    'imputed_vs_market_provider_detail',
]
