"""
Outlier Detection Service

Flags statistical outliers in a numeric sample. Two interchangeable methods:

- IQR (Tukey fences): flag values outside [Q1 - k*IQR, Q3 + k*IQR], k = 1.5.
  Quartiles are the medians of the lower and upper halves of the sorted
  sample (the middle value is excluded from both halves when n is odd).
- MAD-z: robust z = |x - median| / (1.4826 * MAD); flag z > threshold
  (default 3.5).

Degenerate samples (fewer than 4 finite values, zero MAD, all-equal values)
report no outliers rather than dividing by zero. Non-finite values are never
flagged and do not contribute to the statistics.
"""

import math
from typing import List, Sequence, Tuple

import numpy as np

from cfengine.models.enums import OutlierMethod


# =============================================================================
# Constants
# =============================================================================

DEFAULT_IQR_K: float = 1.5
DEFAULT_MAD_Z_THRESHOLD: float = 3.5

# Scales MAD to a consistent estimator of sigma for normal data
MAD_CONSISTENCY: float = 1.4826

MIN_SAMPLE_SIZE: int = 4


# =============================================================================
# Methods
# =============================================================================


def _iqr_bounds(sorted_values: np.ndarray, k: float):
    n = len(sorted_values)
    q1 = float(np.median(sorted_values[: n // 2]))
    q3 = float(np.median(sorted_values[math.ceil(n / 2):]))
    iqr = q3 - q1
    return q1 - k * iqr, q3 + k * iqr


def _finite_mask(values: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    arr = np.array([np.nan if v is None else v for v in values], dtype=np.float64)
    return arr, np.isfinite(arr)


def detect_outliers_iqr(values: Sequence[float], k: float = DEFAULT_IQR_K) -> List[bool]:
    """
    Flag values outside the Tukey fences.

    Returns:
        A boolean mask aligned with the input.
    """
    arr, finite = _finite_mask(values)
    flags = [False] * len(arr)
    sample = np.sort(arr[finite])
    if len(sample) < MIN_SAMPLE_SIZE or sample[0] == sample[-1]:
        return flags

    low, high = _iqr_bounds(sample, k)
    for i, value in enumerate(arr):
        if finite[i] and (value < low or value > high):
            flags[i] = True
    return flags


def detect_outliers_mad(
    values: Sequence[float],
    threshold: float = DEFAULT_MAD_Z_THRESHOLD,
) -> List[bool]:
    """
    Flag values whose robust (MAD-based) z-score exceeds the threshold.

    Returns:
        A boolean mask aligned with the input.
    """
    arr, finite = _finite_mask(values)
    flags = [False] * len(arr)
    sample = arr[finite]
    if len(sample) < MIN_SAMPLE_SIZE:
        return flags

    median = float(np.median(sample))
    mad = float(np.median(np.abs(sample - median)))
    if mad <= 0:
        return flags

    scale = MAD_CONSISTENCY * mad
    for i, value in enumerate(arr):
        if finite[i] and abs(value - median) / scale > threshold:
            flags[i] = True
    return flags


def detect_outliers(
    values: Sequence[float],
    method: OutlierMethod = OutlierMethod.MAD_Z,
    iqr_k: float = DEFAULT_IQR_K,
    mad_z_threshold: float = DEFAULT_MAD_Z_THRESHOLD,
) -> List[bool]:
    """
    Flag outliers in a sample with the selected method.

    Args:
        values: Numeric sample (None / NaN / inf entries are ignored).
        method: OutlierMethod.IQR or OutlierMethod.MAD_Z.
        iqr_k: Fence multiplier for IQR.
        mad_z_threshold: Robust z-score threshold for MAD-z.

    Returns:
        Boolean mask aligned with values; True marks an outlier.

    Example:
        >>> detect_outliers([10, 11, 12, 11, 10, 95], OutlierMethod.IQR)
        [False, False, False, False, False, True]
    """
    if method == OutlierMethod.IQR:
        return detect_outliers_iqr(values, iqr_k)
    return detect_outliers_mad(values, mad_z_threshold)


__all__ = [
    'DEFAULT_IQR_K',
    'DEFAULT_MAD_Z_THRESHOLD',
    'MAD_CONSISTENCY',
    'detect_outliers',
    'detect_outliers_iqr',
    'detect_outliers_mad',
]
