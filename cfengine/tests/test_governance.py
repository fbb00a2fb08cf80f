"""
Test suite for optimizer governance rules.

The tests verify:
1. evaluate_status traffic light and constraint codes
2. determine_action thresholds and the hard-cap increase block
3. policy_check bands
4. build_explanation headlines, bullet limits and determinism
"""

import pytest

from cfengine.models.enums import OptimizerStatus, PolicyCheckStatus, RecommendedAction
from cfengine.models.schemas import (
    CFBounds,
    GovernanceConfig,
    MarketCFBenchmarks,
    OptimizerKeyMetrics,
)
from cfengine.services.governance import (
    build_explanation,
    determine_action,
    evaluate_status,
    fmt_cf,
    ordinal,
    policy_check,
)


GOVERNANCE = GovernanceConfig()
MARKET_CF = MarketCFBenchmarks(cf25=55, cf50=60, cf75=65, cf90=70)


def metrics(prod: float, comp: float) -> OptimizerKeyMetrics:
    return OptimizerKeyMetrics(prodPercentile=prod, compPercentile=comp, gap=comp - prod)


# =============================================================================
# TEST CLASS: FORMATTING
# =============================================================================


class TestFormatting:
    """Ordinals and CF dollar formatting."""

    @pytest.mark.parametrize("value,expected", [
        (1, "1st"), (2, "2nd"), (3, "3rd"), (4, "4th"),
        (11, "11th"), (12, "12th"), (13, "13th"),
        (21, "21st"), (52.4, "52nd"), (111, "111th"),
    ])
    def test_ordinal(self, value: float, expected: str) -> None:
        assert ordinal(value) == expected

    def test_fmt_cf(self) -> None:
        assert fmt_cf(46) == "$46.00"
        assert fmt_cf(59.954) == "$59.95"


# =============================================================================
# TEST CLASS: STATUS
# =============================================================================


class TestEvaluateStatus:
    """GREEN / YELLOW / RED with constraint codes."""

    def test_aligned_group_is_green(self) -> None:
        status, constraints = evaluate_status(metrics(45, 46), GOVERNANCE, 1.0, RecommendedAction.INCREASE)
        assert status == OptimizerStatus.GREEN
        assert constraints == []

    def test_fmv_over_75_is_red(self) -> None:
        status, constraints = evaluate_status(metrics(80, 80), GOVERNANCE, 0.0, RecommendedAction.HOLD)
        assert status == OptimizerStatus.RED
        assert constraints[0] == "FMV_OVER_75"
        assert "HARD_CAP_50" in constraints

    def test_gap_over_10_is_red(self) -> None:
        status, constraints = evaluate_status(metrics(30, 42), GOVERNANCE, -5.0, RecommendedAction.DECREASE)
        assert status == OptimizerStatus.RED
        assert "GAP_OVER_10" in constraints

    def test_soft_cap_zone_is_yellow(self) -> None:
        status, constraints = evaluate_status(metrics(54, 55), GOVERNANCE, 0.0, RecommendedAction.HOLD)
        assert status == OptimizerStatus.YELLOW
        assert constraints == ["HARD_CAP_50", "SOFT_CAP_60"]

    def test_gap_5_to_10_is_yellow(self) -> None:
        status, constraints = evaluate_status(metrics(30, 37), GOVERNANCE, 0.0, RecommendedAction.HOLD)
        assert status == OptimizerStatus.YELLOW
        assert constraints == ["GAP_5_TO_10"]

    def test_change_at_bound_records_max_change(self) -> None:
        _, constraints = evaluate_status(
            metrics(50, 40),
            GOVERNANCE,
            30.0,
            RecommendedAction.INCREASE,
            CFBounds(maxChangePct=30.0),
        )
        assert "MAX_CHANGE_BOUND" in constraints

    def test_post_gap_outside_tolerance_downgrades_green(self) -> None:
        status, constraints = evaluate_status(
            metrics(45, 46), GOVERNANCE, 1.0, RecommendedAction.INCREASE, post_gap=-8.0
        )
        assert status == OptimizerStatus.YELLOW
        assert constraints == ["OUTSIDE_ALIGNMENT_TOLERANCE"]


# =============================================================================
# TEST CLASS: ACTION AND POLICY
# =============================================================================


class TestActionAndPolicy:
    """Action thresholds and policy bands."""

    def test_no_included_providers(self) -> None:
        assert determine_action(0, 60, 62, GOVERNANCE) == RecommendedAction.NO_RECOMMENDATION

    def test_increase_and_decrease(self) -> None:
        assert determine_action(5, 60, 63, GOVERNANCE) == RecommendedAction.INCREASE
        assert determine_action(5, 60, 57, GOVERNANCE) == RecommendedAction.DECREASE

    def test_small_change_is_hold(self) -> None:
        # 0.5% change is below the 1% minimum meaningful change
        assert determine_action(5, 60, 60.3, GOVERNANCE) == RecommendedAction.HOLD

    def test_blocked_increase_is_hold_but_decrease_allowed(self) -> None:
        assert determine_action(5, 60, 66, GOVERNANCE, increase_blocked=True) == RecommendedAction.HOLD
        assert determine_action(5, 60, 54, GOVERNANCE, increase_blocked=True) == RecommendedAction.DECREASE

    @pytest.mark.parametrize("pct,expected", [
        (40, PolicyCheckStatus.OK),
        (50, PolicyCheckStatus.OK),
        (60, PolicyCheckStatus.ABOVE_50),
        (80, PolicyCheckStatus.ABOVE_75),
        (95, PolicyCheckStatus.ABOVE_90),
    ])
    def test_policy_check_bands(self, pct: float, expected: PolicyCheckStatus) -> None:
        assert policy_check(pct, 50) == expected


# =============================================================================
# TEST CLASS: EXPLANATION
# =============================================================================


class TestBuildExplanation:
    """Templated explanations."""

    def test_no_recommendation(self) -> None:
        explanation = build_explanation(
            RecommendedAction.NO_RECOMMENDATION, OptimizerStatus.YELLOW, OptimizerKeyMetrics(),
            [], 60, 60, 0, GOVERNANCE,
        )
        assert explanation.headline == "No recommendation -- insufficient data for reliable analysis."
        assert explanation.why[0] == "Only 0 provider(s) had enough data to analyze."

    def test_hold_with_fmv_risk(self) -> None:
        explanation = build_explanation(
            RecommendedAction.HOLD, OptimizerStatus.RED, metrics(50, 80),
            ["FMV_OVER_75", "GAP_OVER_10", "HARD_CAP_50"], 60, 60, 8, GOVERNANCE,
        )
        assert explanation.headline.startswith("Hold CF at $60.00 -- compensation exceeds the 75th")
        assert len(explanation.whatToDoNext) == 2

    def test_hold_at_hard_cap(self) -> None:
        explanation = build_explanation(
            RecommendedAction.HOLD, OptimizerStatus.YELLOW, metrics(54, 55),
            ["HARD_CAP_50", "SOFT_CAP_60"], 60, 60, 8, GOVERNANCE,
        )
        assert "50th percentile policy cap" in explanation.headline

    def test_increase_for_underpaid_group(self) -> None:
        explanation = build_explanation(
            RecommendedAction.INCREASE, OptimizerStatus.YELLOW, metrics(52, 10),
            ["OUTSIDE_ALIGNMENT_TOLERANCE"], 55, 59.95, 6, GOVERNANCE,
            cf_market_percentile=49.75, market_cf=MARKET_CF,
        )
        assert explanation.headline == (
            "Increase CF from $55.00 to $59.95 (+9.0%) to better align pay with productivity."
        )
        assert "underpaid relative to output" in explanation.why[0]
        assert any("between the 25th ($55.00) and median ($60.00)" in line for line in explanation.why)
        assert len(explanation.why) <= 4

    def test_decrease_at_bound(self) -> None:
        explanation = build_explanation(
            RecommendedAction.DECREASE, OptimizerStatus.RED, metrics(30, 60),
            ["HARD_CAP_50", "GAP_OVER_10", "MAX_CHANGE_BOUND"], 60, 42, 6, GOVERNANCE,
        )
        assert explanation.headline.startswith("Decrease CF from $60.00 to $42.00 (-30.0%)")
        assert explanation.whatToDoNext[0] == "Consider phased implementation across multiple review cycles."

    def test_explanation_is_deterministic(self) -> None:
        args = (
            RecommendedAction.INCREASE, OptimizerStatus.GREEN, metrics(50, 48),
            [], 58, 60, 10, GOVERNANCE,
        )
        assert build_explanation(*args) == build_explanation(*args)
