"""
Optimizer Governance Service

Deterministic post-search classification for a specialty recommendation:

- evaluate_status: GREEN / YELLOW / RED traffic light plus machine-readable
  constraint codes (FMV_OVER_75, GAP_OVER_10, HARD_CAP_50, SOFT_CAP_60,
  GAP_5_TO_10, MAX_CHANGE_BOUND, OUTSIDE_ALIGNMENT_TOLERANCE)
- determine_action: INCREASE / DECREASE / HOLD / NO_RECOMMENDATION
- policy_check: market band of the recommended CF relative to policy
- build_explanation: templated headline, up to 4 "why" bullets and up to 2
  next steps. No free-form generation; same inputs give the same text.
"""

from typing import List, Optional, Tuple

from cfengine.models.enums import OptimizerStatus, PolicyCheckStatus, RecommendedAction
from cfengine.models.schemas import (
    CFBounds,
    GovernanceConfig,
    MarketCFBenchmarks,
    OptimizerExplanation,
    OptimizerKeyMetrics,
)


# =============================================================================
# Constants
# =============================================================================

GAP_RED: float = 10.0
GAP_YELLOW: float = 5.0

MAX_WHY_BULLETS: int = 4
MAX_NEXT_STEPS: int = 2

# Tolerance when comparing CF dollars
CF_EPSILON: float = 1e-6


# =============================================================================
# Formatting Helpers
# =============================================================================


def ordinal(value: float) -> str:
    """Round and format as an English ordinal: 1st, 2nd, 3rd, 11th, 52nd."""
    n = int(round(value))
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def fmt_cf(value: float) -> str:
    return f"${value:.2f}"


def _signed_pctile(value: float) -> str:
    return f"{'+' if value > 0 else ''}{int(round(value))}"


# =============================================================================
# Status, Action, Policy
# =============================================================================


def evaluate_status(
    key_metrics: OptimizerKeyMetrics,
    governance: GovernanceConfig,
    cf_change_pct: float,
    action: RecommendedAction,
    cf_bounds: Optional[CFBounds] = None,
    post_gap: Optional[float] = None,
) -> Tuple[OptimizerStatus, List[str]]:
    """
    Traffic-light status and constraint codes from baseline group metrics.

    Args:
        key_metrics: Mean baseline percentiles for the included providers.
        governance: Governance thresholds.
        cf_change_pct: Recommended CF change in percent.
        action: Recommended action.
        cf_bounds: Search bounds; a change at the bound records MAX_CHANGE_BOUND.
        post_gap: Mean modeled gap; outside the alignment tolerance a GREEN
            status becomes YELLOW.

    Returns:
        (status, constraints_hit)
    """
    constraints: List[str] = []
    status = OptimizerStatus.GREEN
    comp = key_metrics.compPercentile
    gap = key_metrics.gap

    if comp >= governance.fmvRedFlagPercentile:
        status = OptimizerStatus.RED
        constraints.append(f"FMV_OVER_{governance.fmvRedFlagPercentile:g}")

    if gap >= GAP_RED:
        status = OptimizerStatus.RED
        constraints.append("GAP_OVER_10")

    if comp > governance.hardCapPercentile:
        if status != OptimizerStatus.RED:
            status = OptimizerStatus.YELLOW
        constraints.append(f"HARD_CAP_{governance.hardCapPercentile:g}")

    if (
        governance.hardCapPercentile < comp <= governance.softCapPercentile
        and status != OptimizerStatus.RED
    ):
        status = OptimizerStatus.YELLOW
        constraints.append(f"SOFT_CAP_{governance.softCapPercentile:g}")

    if GAP_YELLOW <= gap < GAP_RED and status == OptimizerStatus.GREEN:
        status = OptimizerStatus.YELLOW
        constraints.append("GAP_5_TO_10")

    if action in (RecommendedAction.INCREASE, RecommendedAction.DECREASE):
        bounds = cf_bounds or CFBounds()
        limit = bounds.maxChangePct if cf_change_pct > 0 else bounds.minChangePct
        if abs(cf_change_pct) >= limit - CF_EPSILON:
            constraints.append("MAX_CHANGE_BOUND")

    if (
        post_gap is not None
        and abs(post_gap) > governance.alignmentTolerancePctile
        and status == OptimizerStatus.GREEN
    ):
        status = OptimizerStatus.YELLOW
        constraints.append("OUTSIDE_ALIGNMENT_TOLERANCE")

    return status, constraints


def determine_action(
    included_count: int,
    current_cf: float,
    recommended_cf: float,
    governance: GovernanceConfig,
    increase_blocked: bool = False,
) -> RecommendedAction:
    """
    Recommended action for a specialty.

    HOLD when increases are blocked and the optimum is not a decrease, or when
    the relative change is below minMeaningfulChangePct.
    """
    if included_count <= 0:
        return RecommendedAction.NO_RECOMMENDATION
    if increase_blocked and recommended_cf >= current_cf - CF_EPSILON:
        return RecommendedAction.HOLD
    if current_cf <= 0:
        return RecommendedAction.HOLD
    change = (recommended_cf - current_cf) / current_cf
    if abs(change) < governance.minMeaningfulChangePct:
        return RecommendedAction.HOLD
    return RecommendedAction.INCREASE if change > 0 else RecommendedAction.DECREASE


def policy_check(cf_percentile: float, threshold_percentile: float = 50.0) -> PolicyCheckStatus:
    """Band of the recommended CF's market percentile relative to policy."""
    if cf_percentile > 90:
        return PolicyCheckStatus.ABOVE_90
    if cf_percentile > 75:
        return PolicyCheckStatus.ABOVE_75
    if cf_percentile > threshold_percentile:
        return PolicyCheckStatus.ABOVE_50
    return PolicyCheckStatus.OK


# =============================================================================
# Explanation
# =============================================================================


def _market_position(recommended_cf: float, market_cf: MarketCFBenchmarks) -> str:
    if recommended_cf <= market_cf.cf25:
        return f"below the 25th percentile ({fmt_cf(market_cf.cf25)})"
    if recommended_cf <= market_cf.cf50:
        return f"between the 25th ({fmt_cf(market_cf.cf25)}) and median ({fmt_cf(market_cf.cf50)})"
    if recommended_cf <= market_cf.cf75:
        return f"between the median ({fmt_cf(market_cf.cf50)}) and 75th ({fmt_cf(market_cf.cf75)})"
    if recommended_cf <= market_cf.cf90:
        return f"between the 75th ({fmt_cf(market_cf.cf75)}) and 90th ({fmt_cf(market_cf.cf90)})"
    return f"above the 90th percentile ({fmt_cf(market_cf.cf90)})"


def _explanation(headline: str, why: List[str], next_steps: List[str]) -> OptimizerExplanation:
    return OptimizerExplanation(
        headline=headline,
        why=why[:MAX_WHY_BULLETS],
        whatToDoNext=next_steps[:MAX_NEXT_STEPS],
    )


def build_explanation(
    action: RecommendedAction,
    status: OptimizerStatus,
    key_metrics: OptimizerKeyMetrics,
    constraints_hit: List[str],
    current_cf: float,
    recommended_cf: float,
    included_count: int,
    governance: GovernanceConfig,
    cf_market_percentile: Optional[float] = None,
    market_cf: Optional[MarketCFBenchmarks] = None,
) -> OptimizerExplanation:
    """
    Build the plain-English explanation for a specialty recommendation.

    Example:
        >>> build_explanation(RecommendedAction.NO_RECOMMENDATION, ...).headline
        'No recommendation -- insufficient data for reliable analysis.'
    """
    why: List[str] = []
    next_steps: List[str] = []
    prod = key_metrics.prodPercentile
    comp = key_metrics.compPercentile
    gap = key_metrics.gap
    cf_delta = recommended_cf - current_cf
    cf_pct_change = (cf_delta / current_cf) * 100 if current_cf > 0 else 0.0
    hard_cap_hit = any(c.startswith("HARD_CAP") for c in constraints_hit)
    aligned = abs(gap) <= governance.alignmentTolerancePctile

    if action == RecommendedAction.NO_RECOMMENDATION:
        return _explanation(
            "No recommendation -- insufficient data for reliable analysis.",
            [
                f"Only {included_count} provider(s) had enough data to analyze.",
                "Ensure providers have valid clinical FTE, work RVUs, and matching market data.",
            ],
            ["Review excluded providers and fix missing data if possible."],
        )

    if (
        action == RecommendedAction.HOLD
        and status == OptimizerStatus.RED
        and comp >= governance.fmvRedFlagPercentile
    ):
        fmv = ordinal(governance.fmvRedFlagPercentile)
        return _explanation(
            f"Hold CF at {fmt_cf(current_cf)} -- compensation exceeds the {fmv} percentile, "
            f"flagging FMV risk.",
            [
                f"Compensation is at the {ordinal(comp)} percentile, above the {fmv} FMV threshold.",
                f"Productivity is at the {ordinal(prod)} percentile. The {_signed_pctile(gap)} "
                f"percentile gap indicates pay exceeds output.",
                "Raising CF would further increase overmarket pay without creating meaningful "
                "incentive leverage.",
            ],
            [
                "Investigate structural compensation issues (base salary, guaranteed payments).",
                "Consider holding or reducing base pay before adjusting CF.",
            ],
        )

    if action == RecommendedAction.HOLD and hard_cap_hit:
        cap = ordinal(governance.hardCapPercentile)
        why = [
            f"Compensation is at the {ordinal(comp)} percentile, above the {cap} policy cap.",
            f"Productivity is at the {ordinal(prod)} percentile (gap: {_signed_pctile(gap)}).",
        ]
        if aligned:
            why.append("Pay and productivity are well-aligned, but compensation is already above "
                       "the target range.")
        else:
            why.append("Raising CF would increase overmarket pay and will not create meaningful "
                       "incentive leverage.")
        return _explanation(
            f"Hold CF at {fmt_cf(current_cf)} -- provider group already above the {cap} "
            f"percentile policy cap.",
            why,
            ["Review whether the policy cap should be adjusted for this specialty."],
        )

    if action == RecommendedAction.HOLD:
        if aligned:
            why.append(f"Productivity ({ordinal(prod)}) and compensation ({ordinal(comp)}) "
                       f"percentiles are well-aligned.")
            why.append("No CF adjustment would meaningfully improve alignment.")
        else:
            why.append(f"Productivity is at the {ordinal(prod)} percentile; compensation is at "
                       f"the {ordinal(comp)} percentile.")
            why.append("The optimal CF change is too small to materially impact incentives or "
                       "alignment.")
            if gap > 0:
                why.append(
                    "Raising the conversion factor would increase work RVU incentive dollars, "
                    "which would raise total cash compensation and push TCC percentile higher, "
                    "further increasing pay above productivity."
                )
        if constraints_hit:
            why.append(f"Constraints: {', '.join(constraints_hit)}.")
        return _explanation(f"Hold CF at {fmt_cf(current_cf)} -- no material change needed.", why, [])

    def add_market_context() -> None:
        if cf_market_percentile is not None and market_cf is not None:
            why.append(
                f"Recommended CF of {fmt_cf(recommended_cf)} sits at the "
                f"{ordinal(cf_market_percentile)} market percentile -- "
                f"{_market_position(recommended_cf, market_cf)}."
            )

    if action == RecommendedAction.INCREASE:
        if gap > 0:
            why.append(
                f"Total compensation is at the {ordinal(comp)} percentile while productivity is "
                f"at the {ordinal(prod)} percentile -- pay is above productivity on total comp."
            )
            why.append(
                "The conversion factor is below market median, so the incentive piece is "
                "underpowered. Increasing CF (up to the 50th percentile) fills the gap with wRVU "
                "incentive dollars and better aligns incentive pay with output."
            )
            if market_cf is not None and recommended_cf >= market_cf.cf50 - 0.01:
                why.append(
                    f"Recommended CF is capped at the market 50th percentile "
                    f"({fmt_cf(market_cf.cf50)}) for this group (pay above productivity) until "
                    f"a higher cap is explicitly allowed."
                )
        else:
            why.append(
                f"Productivity is at the {ordinal(prod)} percentile but compensation is only at "
                f"the {ordinal(comp)} percentile -- this group is underpaid relative to output."
            )
            why.append(
                f"A {fmt_cf(abs(cf_delta))} CF increase narrows the gap from "
                f"{int(round(abs(gap)))} to a closer alignment."
            )
        add_market_context()
        if not hard_cap_hit:
            why.append(f"Recommended CF stays within the {ordinal(governance.hardCapPercentile)} "
                       f"percentile policy cap.")
        if "MAX_CHANGE_BOUND" in constraints_hit:
            why.append("CF change was capped by the maximum allowed adjustment bounds.")
            next_steps.append("Consider phased implementation over 2 cycles if a larger increase "
                              "is warranted.")
        next_steps.append("Review individual provider drilldown for outliers before finalizing.")
        return _explanation(
            f"Increase CF from {fmt_cf(current_cf)} to {fmt_cf(recommended_cf)} "
            f"(+{cf_pct_change:.1f}%) to better align pay with productivity.",
            why,
            next_steps,
        )

    # DECREASE
    why.append(
        f"Compensation is at the {ordinal(comp)} percentile while productivity is at the "
        f"{ordinal(prod)} percentile -- pay is above productivity relative to output."
    )
    why.append(f"A {fmt_cf(abs(cf_delta))} CF decrease brings compensation closer to the "
               f"productivity level.")
    add_market_context()
    if "MAX_CHANGE_BOUND" in constraints_hit:
        why.append("CF change was capped by the maximum allowed adjustment bounds; full alignment "
                   "may require further adjustment.")
        next_steps.append("Consider phased implementation across multiple review cycles.")
    next_steps.append("Review individual provider drilldown and consult with division leadership.")
    return _explanation(
        f"Decrease CF from {fmt_cf(current_cf)} to {fmt_cf(recommended_cf)} "
        f"({cf_pct_change:.1f}%) to bring pay closer to productivity alignment.",
        why,
        next_steps,
    )


__all__ = [
    'ordinal',
    'fmt_cf',
    'evaluate_status',
    'determine_action',
    'policy_check',
    'build_explanation',
]
