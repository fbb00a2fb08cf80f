"""
Test suite for the four-anchor percentile curve.

The tests verify:
1. Anchor exactness in both directions (no floating drift at 25/50/75/90)
2. Round trip infer(interpolate(p)) within 0.02 for p in [25, 90]
3. Extrapolation below 25 / above 90 with range flags and clamping
4. Degenerate curves (flat segments, zero slopes) never produce NaN/inf
5. Market row helpers reject unknown metrics
"""

import math

import numpy as np
import pytest

from cfengine.models.schemas import MarketRow
from cfengine.services.percentile_curve import (
    curve_points,
    infer_market,
    infer_percentile,
    interpolate_market,
    interpolate_percentile,
)


CURVE = (400000.0, 500000.0, 600000.0, 700000.0)
UNEVEN_CURVE = (42.0, 46.0, 50.0, 55.0)


# =============================================================================
# TEST CLASS: FORWARD MAPPING
# =============================================================================


class TestInterpolatePercentile:
    """Forward mapping: percentile -> value."""

    @pytest.mark.parametrize("pct,expected", [
        (25, 400000.0),
        (50, 500000.0),
        (75, 600000.0),
        (90, 700000.0),
    ])
    def test_anchors_return_exact_values(self, pct: float, expected: float) -> None:
        assert interpolate_percentile(pct, *CURVE) == expected

    def test_interior_segments_are_linear(self) -> None:
        assert interpolate_percentile(60, *CURVE) == pytest.approx(540000.0)
        assert interpolate_percentile(37.5, *CURVE) == pytest.approx(450000.0)
        assert interpolate_percentile(82.5, *UNEVEN_CURVE) == pytest.approx(52.5)

    def test_below_25_uses_synthetic_zero_anchor(self) -> None:
        """Percentile 0 maps to 2*p25 - p50."""
        assert interpolate_percentile(0, *CURVE) == pytest.approx(300000.0)
        assert interpolate_percentile(12.5, *CURVE) == pytest.approx(350000.0)

    def test_above_90_extends_75_90_segment(self) -> None:
        # p90 + ((pct - 90) / 10) * (p90 - p75)
        assert interpolate_percentile(95, *CURVE) == pytest.approx(750000.0)
        assert interpolate_percentile(100, *UNEVEN_CURVE) == pytest.approx(60.0)


# =============================================================================
# TEST CLASS: INVERSE MAPPING
# =============================================================================


class TestInferPercentile:
    """Inverse mapping: value -> percentile with range flags."""

    @pytest.mark.parametrize("value,expected", [
        (400000.0, 25.0),
        (500000.0, 50.0),
        (600000.0, 75.0),
        (700000.0, 90.0),
    ])
    def test_anchor_values_return_exact_percentiles(self, value: float, expected: float) -> None:
        result = infer_percentile(value, *CURVE)
        assert result.percentile == expected
        assert not result.below_range
        assert not result.above_range

    def test_round_trip_within_tolerance(self) -> None:
        """infer(interpolate(p)) recovers p for every p in [25, 90]."""
        for curve in (CURVE, UNEVEN_CURVE, (0.5, 0.51, 3.0, 3.2)):
            for pct in np.linspace(25, 90, 131):
                value = interpolate_percentile(float(pct), *curve)
                recovered = infer_percentile(value, *curve).percentile
                assert abs(recovered - pct) <= 0.02, (
                    f"Round trip drifted for curve {curve} at {pct}: got {recovered}"
                )

    def test_below_range_flag_and_clamp(self) -> None:
        result = infer_percentile(350000.0, *CURVE)
        assert result.below_range
        assert result.off_scale
        assert result.percentile == pytest.approx(12.5)

        clamped = infer_percentile(-1e9, *CURVE)
        assert clamped.below_range
        assert clamped.percentile == 0.0

    def test_above_range_flag_and_clamp(self) -> None:
        result = infer_percentile(750000.0, *CURVE)
        assert result.above_range
        assert 90.0 <= result.percentile <= 100.0
        assert result.percentile == pytest.approx(97.5)

        clamped = infer_percentile(1e12, *CURVE)
        assert clamped.above_range
        assert clamped.percentile == 100.0

    def test_flat_interior_segment_is_finite(self) -> None:
        # p50 == p75: the shared value resolves inside the 75-90 segment
        result = infer_percentile(20.0, 10.0, 20.0, 20.0, 30.0)
        assert result.percentile == 75.0
        assert not result.off_scale

    def test_zero_extrapolation_slope_returns_boundary(self) -> None:
        """Flat curves fall back to the boundary percentile instead of dividing by zero."""
        flat = (100.0, 100.0, 100.0, 100.0)

        below = infer_percentile(50.0, *flat)
        assert below.percentile == 25.0
        assert below.below_range

        above = infer_percentile(150.0, *flat)
        assert above.percentile == 90.0
        assert above.above_range

        for result in (below, above):
            assert math.isfinite(result.percentile)


# =============================================================================
# TEST CLASS: MARKET ROW HELPERS
# =============================================================================


class TestMarketRowHelpers:
    """Curve extraction from MarketRow records."""

    def test_curve_points_reads_metric_columns(self, cardiology_market: MarketRow) -> None:
        assert curve_points(cardiology_market, "CF") == (55.0, 60.0, 65.0, 70.0)
        assert curve_points(cardiology_market, "WRVU") == (4000.0, 5000.0, 6000.0, 7000.0)

    def test_unknown_metric_raises(self, cardiology_market: MarketRow) -> None:
        with pytest.raises(ValueError, match="Unknown curve metric"):
            curve_points(cardiology_market, "SALARY")

    def test_market_wrappers_match_raw_functions(self, family_medicine_market: MarketRow) -> None:
        assert interpolate_market(50, family_medicine_market, "CF") == 46.0
        assert infer_market(5000, family_medicine_market, "WRVU").percentile == pytest.approx(56.25)
