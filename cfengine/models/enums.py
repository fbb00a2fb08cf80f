"""
Enumeration definitions for the CF modeling engine.

All enums inherit from both `str` and `Enum` so that pydantic models serialize
them as plain strings and payloads from the presentation layer validate directly.

Groups:
- Scenario inputs: CFSource, PSQBasis, ThresholdMethod, ProductivityModel
- Matching and batch: MatchStatus, RiskLevel
- Optimizer settings: BenchmarkBasis, ObjectiveKind, ErrorMetric, OutlierMethod,
  BudgetConstraintKind, CFPolicyEnforcementMode, QualityPaymentsSource, TCCLayerType
- Optimizer results: ExclusionReason, OptimizerFlag, PolicyCheckStatus,
  RecommendedAction, OptimizerStatus
- Productivity targets: TargetApproach, PlanningCFSource, ProviderTargetStatus
"""

from enum import Enum


# =============================================================================
# Scenario Inputs
# =============================================================================


class CFSource(str, Enum):
    """
    How the modeled conversion factor is sourced.

    - target_percentile: interpolate the market CF curve at the target percentile
    - target_haircut: same as target_percentile, then reduce by haircutPct
    - override: use the override CF dollar value directly
    """
    TARGET_PERCENTILE = "target_percentile"
    TARGET_HAIRCUT = "target_haircut"
    OVERRIDE = "override"


class PSQBasis(str, Enum):
    """
    Pay basis for the PSQ (quality holdback) percent.

    - base_salary: PSQ dollars = base * pct
    - total_pay: PSQ grossed up against (base + incentive): x * (p / (1 - p))
    """
    BASE_SALARY = "base_salary"
    TOTAL_PAY = "total_pay"


class ThresholdMethod(str, Enum):
    """
    How the modeled annual wRVU threshold is determined.

    - derived: modeled clinical salary / modeled CF
    - annual: manual annual threshold when positive, else derived
    - wrvu_percentile: market wRVU curve at a percentile, times clinical FTE
    """
    DERIVED = "derived"
    ANNUAL = "annual"
    WRVU_PERCENTILE = "wrvu_percentile"


class ProductivityModel(str, Enum):
    """Provider pay model tag: 'base' (salary only) or 'productivity' (wRVU incentive)."""
    BASE = "base"
    PRODUCTIVITY = "productivity"


# =============================================================================
# Matching and Batch
# =============================================================================


class MatchStatus(str, Enum):
    """
    How a provider's specialty resolved to a market row.

    Values: ['Exact', 'Synonym', 'Missing']

    Case and punctuation differences are normalized before comparison, so
    a normalized-equal name is reported as Exact.
    """
    EXACT = "Exact"
    SYNONYM = "Synonym"
    MISSING = "Missing"


class RiskLevel(str, Enum):
    """Derived batch-row / provider risk level."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# Optimizer Settings
# =============================================================================


class BenchmarkBasis(str, Enum):
    """
    FTE basis used to normalize provider metrics before benchmarking.

    - per_cfte: per 1.0 clinical FTE (market surveys are reported this way)
    - per_tfte: per 1.0 total FTE
    - raw: no normalization (not apples-to-apples with market benchmarks)
    """
    PER_CFTE = "per_cfte"
    PER_TFTE = "per_tfte"
    RAW = "raw"


class ObjectiveKind(str, Enum):
    """Optimization objective for the CF search."""
    ALIGN_PERCENTILE = "align_percentile"
    TARGET_FIXED_PERCENTILE = "target_fixed_percentile"
    HYBRID = "hybrid"


class ErrorMetric(str, Enum):
    """Aggregate error metric: mean squared or mean absolute deviation."""
    SQUARED = "squared"
    ABSOLUTE = "absolute"


class OutlierMethod(str, Enum):
    """Outlier detection method: Tukey IQR fences or MAD robust z-score."""
    IQR = "iqr"
    MAD_Z = "mad_z"


class BudgetConstraintKind(str, Enum):
    """
    Budget constraint on aggregate spend impact.

    - none: unconstrained
    - neutral: spend impact must not be positive
    - cap_pct: spend impact capped at capPct percent of baseline spend
    - cap_dollars: spend impact capped at capDollars
    """
    NONE = "none"
    NEUTRAL = "neutral"
    CAP_PCT = "cap_pct"
    CAP_DOLLARS = "cap_dollars"


class CFPolicyEnforcementMode(str, Enum):
    """Whether the CF policy percentile only flags or also caps recommendations."""
    FLAG_ONLY = "flag_only"
    HARD_CAP = "hard_cap"


class QualityPaymentsSource(str, Enum):
    """Source of quality dollars in optimizer TCC."""
    FROM_FILE = "from_file"
    OVERRIDE_PCT_OF_BASE = "override_pct_of_base"


class TCCLayerType(str, Enum):
    """Additional TCC layer kinds applied on top of component TCC."""
    PERCENT_OF_BASE = "percent_of_base"
    DOLLAR_PER_1P0_FTE = "dollar_per_1p0_FTE"
    FLAT_DOLLAR = "flat_dollar"


# =============================================================================
# Optimizer Results
# =============================================================================


class ExclusionReason(str, Enum):
    """
    Reasons a provider is excluded from a specialty's optimization set.

    A provider can carry several reasons at once.
    """
    MISSING_MARKET = "missing_market"
    NO_BENCHMARKABLE_FTE_BASIS = "no_benchmarkable_fte_basis"
    BASIS_FTE_BELOW_MIN = "basis_fte_below_min"
    LOW_WRVU_VOLUME = "low_wrvu_volume"
    LOA_FLAGGED = "loa_flagged"
    NEW_HIRE_BELOW_THRESHOLD = "new_hire_below_threshold"
    MANUAL_EXCLUDE = "manual_exclude"
    OUTLIER_WRVU = "outlier_wrvu"
    OUTLIER_TCC = "outlier_tcc"
    OUTLIER_EFFECTIVE_RATE = "outlier_effective_rate"


class OptimizerFlag(str, Enum):
    """Specialty-level flags raised during optimization."""
    OUTLIERS_EXCLUDED = "outliers_excluded"
    OFF_SCALE = "off_scale"
    LOW_SAMPLE = "low_sample"
    FMV_RISK = "fmv_risk"
    NOT_CONVERGED = "not_converged"
    CF_CAPPED = "cf_capped"
    BUDGET_CONSTRAINED = "budget_constrained"


class PolicyCheckStatus(str, Enum):
    """Market percentile band of the recommended CF relative to policy."""
    OK = "ok"
    ABOVE_50 = "above_50"
    ABOVE_75 = "above_75"
    ABOVE_90 = "above_90"


class RecommendedAction(str, Enum):
    """Governance-aware recommendation for a specialty."""
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    HOLD = "HOLD"
    NO_RECOMMENDATION = "NO_RECOMMENDATION"


class OptimizerStatus(str, Enum):
    """Traffic-light status for quick scanning."""
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


# =============================================================================
# Productivity Targets
# =============================================================================


class TargetApproach(str, Enum):
    """
    How a specialty's group wRVU target at 1.0 cFTE is set.

    - wrvu_percentile: market wRVU curve at the target percentile
    - pay_per_wrvu: manual target wRVUs entered for the specialty
    """
    WRVU_PERCENTILE = "wrvu_percentile"
    PAY_PER_WRVU = "pay_per_wrvu"


class PlanningCFSource(str, Enum):
    """Where the planning CF for target incentive dollars comes from."""
    MARKET_PERCENTILE = "market_percentile"
    MANUAL = "manual"


class ProviderTargetStatus(str, Enum):
    """Provider status from percent to target: >=120 above, 100-119 at, else below."""
    ABOVE = "Above Target"
    AT = "At Target"
    BELOW = "Below Target"


# =============================================================================
# Worker Jobs
# =============================================================================


class JobStatus(str, Enum):
    """Lifecycle of a background optimizer job."""
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
