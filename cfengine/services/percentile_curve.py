"""
Percentile Curve Service

Forward and inverse mapping between a percentile and a value on a four-anchor
market curve (25th / 50th / 75th / 90th), with linear extrapolation beyond the
anchors.

Forward (interpolate_percentile):
- [25,50], [50,75], [75,90]: piecewise linear between anchors
- Below 25: linear between a synthetic 0th-percentile anchor (2*p25 - p50)
  and p25
- Above 90: p90 + ((pct - 90) / 10) * (p90 - p75)
- Exactly 25/50/75/90 returns the anchor value unchanged

Inverse (infer_percentile):
- Below p25: extrapolated with the 25-50 slope, clamped to >= 0, belowRange
- Above p90: extrapolated with the 75-90 slope, clamped to <= 100, aboveRange
- Zero-width segments return the lower percentile
- Zero extrapolation slopes return the boundary percentile (25 or 90)

Only the four-point curve family is supported. Behavior is well-defined when
p25 <= p50 <= p75 <= p90; the functions never raise or return NaN/inf for
finite anchors.
"""

from dataclasses import dataclass
from typing import Tuple

from cfengine.models.schemas import MarketRow


# =============================================================================
# Constants
# =============================================================================

ANCHOR_PERCENTILES: Tuple[float, float, float, float] = (25.0, 50.0, 75.0, 90.0)

# Metric prefixes on MarketRow: TCC_25, WRVU_25, CF_25, ...
CURVE_METRICS: Tuple[str, str, str] = ("TCC", "WRVU", "CF")

Curve = Tuple[float, float, float, float]


@dataclass(frozen=True)
class PercentileResult:
    """
    Result of inferring a percentile from a value.

    Attributes:
        percentile: Inferred percentile in [0, 100].
        below_range: True when the value was below the 25th anchor.
        above_range: True when the value was above the 90th anchor.
    """
    percentile: float
    below_range: bool = False
    above_range: bool = False

    @property
    def off_scale(self) -> bool:
        return self.below_range or self.above_range


# =============================================================================
# Forward Mapping
# =============================================================================


def interpolate_percentile(
    target_percentile: float,
    p25: float,
    p50: float,
    p75: float,
    p90: float,
) -> float:
    """
    Return the curve value at a percentile.

    Args:
        target_percentile: Percentile to evaluate (any float; values outside
            [25, 90] are extrapolated).
        p25, p50, p75, p90: Curve anchors.

    Returns:
        Interpolated or extrapolated value.

    Example:
        >>> interpolate_percentile(60, 400000, 500000, 600000, 700000)
        540000.0
    """
    pct = target_percentile

    # Anchors return exactly, no floating drift
    if pct == 25:
        return p25
    if pct == 50:
        return p50
    if pct == 75:
        return p75
    if pct == 90:
        return p90

    if pct < 25:
        p0 = 2 * p25 - p50
        return p0 + (pct / 25.0) * (p25 - p0)
    if pct < 50:
        return p25 + ((pct - 25) / 25.0) * (p50 - p25)
    if pct < 75:
        return p50 + ((pct - 50) / 25.0) * (p75 - p50)
    if pct < 90:
        return p75 + ((pct - 75) / 15.0) * (p90 - p75)
    return p90 + ((pct - 90) / 10.0) * (p90 - p75)


# =============================================================================
# Inverse Mapping
# =============================================================================


def _segment_percentile(
    value: float,
    low_pct: float,
    low_value: float,
    high_pct: float,
    high_value: float,
) -> float:
    if high_value == low_value:
        return low_pct
    return low_pct + (value - low_value) / (high_value - low_value) * (high_pct - low_pct)


def infer_percentile(
    value: float,
    p25: float,
    p50: float,
    p75: float,
    p90: float,
) -> PercentileResult:
    """
    Infer the percentile of a value on a four-anchor curve.

    Args:
        value: Observed value (e.g., TCC per 1.0 FTE).
        p25, p50, p75, p90: Curve anchors.

    Returns:
        PercentileResult with percentile in [0, 100] and range flags.

    Edge Cases:
        - value == p25 returns exactly 25 (no flag); value == p90 returns 90
        - Flat 25-50 segment below range returns 25 with below_range set
        - Flat 75-90 segment above range returns 90 with above_range set
    """
    if value == p25:
        return PercentileResult(25.0)

    if value < p25:
        slope = (p50 - p25) / 25.0
        if slope == 0:
            return PercentileResult(25.0, below_range=True)
        pct = 25.0 - (p25 - value) / slope
        return PercentileResult(min(25.0, max(0.0, pct)), below_range=True)

    if value == p90:
        return PercentileResult(90.0)

    if value > p90:
        slope = (p90 - p75) / 15.0
        if slope == 0:
            return PercentileResult(90.0, above_range=True)
        pct = 90.0 + (value - p90) / slope
        return PercentileResult(max(90.0, min(100.0, pct)), above_range=True)

    if value < p50:
        return PercentileResult(_segment_percentile(value, 25.0, p25, 50.0, p50))
    if value < p75:
        return PercentileResult(_segment_percentile(value, 50.0, p50, 75.0, p75))
    return PercentileResult(_segment_percentile(value, 75.0, p75, 90.0, p90))


# =============================================================================
# Market Row Helpers
# =============================================================================


def curve_points(market_row: MarketRow, metric: str) -> Curve:
    """
    Extract the (p25, p50, p75, p90) anchors for a metric from a market row.

    Missing anchors are returned as 0.0; callers only pass rows that passed
    is_market_row_valid.
    """
    if metric not in CURVE_METRICS:
        raise ValueError(f"Unknown curve metric: {metric}")
    values = [getattr(market_row, f"{metric}_{int(p)}") for p in ANCHOR_PERCENTILES]
    return tuple(float(v) if v is not None else 0.0 for v in values)  # type: ignore[return-value]


def interpolate_market(target_percentile: float, market_row: MarketRow, metric: str) -> float:
    """Interpolate a market row's curve for the given metric."""
    return interpolate_percentile(target_percentile, *curve_points(market_row, metric))


def infer_market(value: float, market_row: MarketRow, metric: str) -> PercentileResult:
    """Infer the percentile of a value against a market row's curve for the given metric."""
    return infer_percentile(value, *curve_points(market_row, metric))


__all__ = [
    'ANCHOR_PERCENTILES',
    'CURVE_METRICS',
    'Curve',
    'PercentileResult',
    'interpolate_percentile',
    'infer_percentile',
    'curve_points',
    'interpolate_market',
    'infer_market',
]
