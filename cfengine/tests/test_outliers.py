"""
Test suite for IQR and MAD-z outlier detection.

The tests verify:
1. Obvious outliers are flagged by both methods
2. Degenerate samples (small n, zero spread) report no outliers
3. Non-finite values are ignored and never flagged
4. The returned mask is aligned with the input
"""

import math

import pytest

from cfengine.models.enums import OutlierMethod
from cfengine.services.outliers import (
    detect_outliers,
    detect_outliers_iqr,
    detect_outliers_mad,
)


SAMPLE = [10, 11, 12, 11, 10, 95]


class TestIQR:
    """Tukey fences on half-sample quartiles."""

    def test_flags_high_outlier(self) -> None:
        assert detect_outliers_iqr(SAMPLE) == [False, False, False, False, False, True]

    def test_flags_low_outlier(self) -> None:
        values = [100, 101, 99, 100, 102, 1]
        assert detect_outliers_iqr(values)[-1] is True
        assert sum(detect_outliers_iqr(values)) == 1

    def test_wider_fence_keeps_moderate_values(self) -> None:
        values = [10, 11, 12, 13, 14, 22]
        assert detect_outliers_iqr(values, k=1.5)[-1] is True
        assert detect_outliers_iqr(values, k=10.0) == [False] * 6


class TestMADZ:
    """Robust z-score on the median absolute deviation."""

    def test_flags_extreme_value(self) -> None:
        values = [50, 52, 49, 51, 50, 48, 53, 400]
        flags = detect_outliers_mad(values)
        assert flags[-1] is True
        assert sum(flags) == 1

    def test_zero_mad_reports_nothing(self) -> None:
        # More than half the sample is identical, so MAD is zero
        assert detect_outliers_mad([5, 5, 5, 5, 100]) == [False] * 5

    def test_threshold_is_configurable(self) -> None:
        values = [10, 11, 12, 11, 10, 17]
        assert detect_outliers_mad(values, threshold=3.5)[-1] is True
        assert detect_outliers_mad(values, threshold=50.0)[-1] is False


class TestDegenerateSamples:
    """Small, constant and non-finite samples."""

    @pytest.mark.parametrize("method", [OutlierMethod.IQR, OutlierMethod.MAD_Z])
    def test_fewer_than_four_values(self, method: OutlierMethod) -> None:
        assert detect_outliers([1, 2, 1000], method) == [False, False, False]

    @pytest.mark.parametrize("method", [OutlierMethod.IQR, OutlierMethod.MAD_Z])
    def test_all_equal_values(self, method: OutlierMethod) -> None:
        assert detect_outliers([7.0] * 6, method) == [False] * 6

    @pytest.mark.parametrize("method", [OutlierMethod.IQR, OutlierMethod.MAD_Z])
    def test_non_finite_values_ignored(self, method: OutlierMethod) -> None:
        values = [10, 11, math.nan, 12, None, 11, 10, math.inf, 95]
        flags = detect_outliers(values, method)

        assert len(flags) == len(values)
        assert flags[2] is False
        assert flags[4] is False
        assert flags[7] is False
        assert flags[-1] is True

    def test_empty_sample(self) -> None:
        assert detect_outliers([]) == []

    def test_default_method_is_mad_z(self) -> None:
        assert detect_outliers(SAMPLE) == detect_outliers_mad(SAMPLE)
