"""
Test suite for the single-provider scenario calculator.

The tests verify:
1. The documented Family Medicine worked example (CF 45 -> market median 46)
2. CF sourcing modes: target percentile, haircut and override
3. Threshold methods: derived, annual and market wRVU percentile
4. PSQ on base salary and the total-pay gross-up
5. Governance flags, high-risk notes and off-scale warnings
6. Degenerate FTE / wRVU inputs never produce NaN or infinity

Family Medicine market used here (see conftest.py):
    TCC  250k / 300k / 360k / 420k
    WRVU 4000 / 4800 / 5600 / 6500
    CF   42 / 46 / 50 / 55
"""

import math

import pytest
from pydantic import ValidationError

from cfengine.models.enums import CFSource, PSQBasis, ThresholdMethod
from cfengine.models.schemas import BasePayComponent, MarketRow, ProviderRecord, ScenarioInputs
from cfengine.services.scenario import (
    compute_scenario,
    evaluate_governance_flags,
    imputed_dollar_per_wrvu,
    market_dollar_per_wrvu_curve,
)


TARGET_MEDIAN = ScenarioInputs(cfSource=CFSource.TARGET_PERCENTILE, proposedCFPercentile=50)


# =============================================================================
# TEST CLASS: WORKED EXAMPLE
# =============================================================================


@pytest.mark.parity
class TestWorkedExample:
    """
    Provider: base 200,000, 1.0 total/clinical FTE, 5,000 wRVUs, CF 45.
    Scenario: target the market median CF (46).
    """

    def test_modeled_cf_threshold_and_incentive(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        result = compute_scenario(family_medicine_provider, family_medicine_market, TARGET_MEDIAN)
        threshold = 200000 / 46

        assert result.modeledCF == 46.0
        assert result.annualThreshold == pytest.approx(threshold)
        assert result.annualIncentive == pytest.approx((5000 - threshold) * 46)
        assert result.annualIncentive == pytest.approx(30000.0)
        assert result.wRVUsAboveThreshold == pytest.approx(5000 - threshold)

    def test_current_state(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        result = compute_scenario(family_medicine_provider, family_medicine_market, TARGET_MEDIAN)

        assert result.currentThreshold == pytest.approx(200000 / 45)
        assert result.currentIncentive == pytest.approx(25000.0)
        assert result.currentTCC == pytest.approx(225000.0)
        assert result.modeledTCC == pytest.approx(230000.0)
        assert result.changeInTCC == pytest.approx(5000.0)

    def test_percentiles_and_gaps(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        result = compute_scenario(family_medicine_provider, family_medicine_market, TARGET_MEDIAN)

        assert result.wrvuPercentile == pytest.approx(56.25)
        assert result.tccPercentile == pytest.approx(12.5)
        assert result.tccPercentileBelowRange
        assert result.modeledTCCPercentile == pytest.approx(15.0)
        assert result.cfPercentileCurrent == pytest.approx(43.75)
        assert result.cfPercentileModeled == 50.0

    def test_gap_identity_is_exact(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        """modeledGap is defined as modeled TCC percentile minus wRVU percentile, bit for bit."""
        result = compute_scenario(family_medicine_provider, family_medicine_market, TARGET_MEDIAN)

        assert result.modeledGap == result.modeledTCCPercentile - result.wrvuPercentile
        assert result.baselineGap == result.tccPercentile - result.wrvuPercentile

    def test_flags_and_warnings(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        result = compute_scenario(family_medicine_provider, family_medicine_market, TARGET_MEDIAN)
        flags = result.governanceFlags

        assert flags.underpayRisk, "Gap of about -44 percentile points is an underpay risk"
        assert not flags.cfBelow25
        assert not flags.modeledInPolicyBand
        assert not flags.fmvCheckSuggested
        assert result.risk.highRisk == []
        assert "TCC percentile is off-scale (below 25 or above 90)" in result.warnings
        assert "Modeled TCC percentile is off-scale (below 25 or above 90)" in result.warnings

    def test_result_is_immutable(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        result = compute_scenario(family_medicine_provider, family_medicine_market, TARGET_MEDIAN)
        with pytest.raises(ValidationError):
            result.modeledCF = 99.0


# =============================================================================
# TEST CLASS: CF SOURCE AND THRESHOLD METHODS
# =============================================================================


class TestScenarioInputs:
    """CF sourcing, threshold methods and PSQ."""

    def test_haircut_reduces_target_cf(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        inputs = ScenarioInputs(cfSource=CFSource.TARGET_HAIRCUT, proposedCFPercentile=50, haircutPct=10)
        result = compute_scenario(family_medicine_provider, family_medicine_market, inputs)
        assert result.modeledCF == pytest.approx(41.4)

    def test_override_cf_percentile_is_inferred(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, overrideCF=50)
        result = compute_scenario(family_medicine_provider, family_medicine_market, inputs)
        assert result.modeledCF == 50.0
        assert result.cfPercentileModeled == 75.0

    def test_annual_threshold(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        inputs = TARGET_MEDIAN.model_copy(update={
            "thresholdMethod": ThresholdMethod.ANNUAL,
            "annualThreshold": 4000,
        })
        result = compute_scenario(family_medicine_provider, family_medicine_market, inputs)
        assert result.annualThreshold == 4000.0
        assert result.annualIncentive == pytest.approx(46000.0)

    def test_wrvu_percentile_threshold_scales_by_clinical_fte(
        self,
        provider_factory,
        family_medicine_market: MarketRow,
    ) -> None:
        provider = provider_factory(clinicalFTE=0.8)
        inputs = TARGET_MEDIAN.model_copy(update={
            "thresholdMethod": ThresholdMethod.WRVU_PERCENTILE,
            "wrvuPercentile": 50,
        })
        result = compute_scenario(provider, family_medicine_market, inputs)
        assert result.annualThreshold == pytest.approx(4800 * 0.8)

    def test_psq_on_base_salary(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        inputs = TARGET_MEDIAN.model_copy(update={"psqPercent": 5.0})
        result = compute_scenario(family_medicine_provider, family_medicine_market, inputs)
        assert result.currentPsqDollars == pytest.approx(10000.0)
        assert result.psqDollars == pytest.approx(10000.0)
        assert result.modeledTCC == pytest.approx(240000.0)

    def test_psq_total_pay_gross_up(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        inputs = TARGET_MEDIAN.model_copy(update={
            "modeledPsqPercent": 10.0,
            "modeledPsqBasis": PSQBasis.TOTAL_PAY,
        })
        result = compute_scenario(family_medicine_provider, family_medicine_market, inputs)
        assert result.currentPsqDollars == 0.0
        assert result.psqDollars == pytest.approx(230000.0 * (0.1 / 0.9))

    def test_base_pay_components_and_derived_wrvus(
        self,
        provider_factory,
        family_medicine_market: MarketRow,
    ) -> None:
        provider = provider_factory(
            baseSalary=None,
            basePayComponents=[
                BasePayComponent(id="clin", label="Clinical", amount=150000),
                BasePayComponent(id="admin", label="Admin", amount=50000),
            ],
            totalWRVUs=None,
            workRVUs=4000,
            outsideWRVUs=1000,
        )
        result = compute_scenario(provider, family_medicine_market, TARGET_MEDIAN)
        assert result.baseSalary == 200000.0
        assert result.totalWRVUs == 5000.0
        assert result.annualIncentive == pytest.approx(30000.0)

    def test_file_supplied_current_tcc_is_used(
        self,
        provider_factory,
        family_medicine_market: MarketRow,
    ) -> None:
        provider = provider_factory(currentTCC=300000)
        result = compute_scenario(provider, family_medicine_market, TARGET_MEDIAN)
        assert result.currentTCC == 300000.0
        assert result.tccPercentile == 50.0

    def test_default_inputs_target_40th(
        self,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        result = compute_scenario(family_medicine_provider, family_medicine_market)
        assert result.modeledCF == pytest.approx(44.4)


# =============================================================================
# TEST CLASS: GOVERNANCE AND RISK
# =============================================================================


class TestGovernanceAndRisk:
    """Flag rules and risk notes."""

    def test_positive_gap_alone_triggers_fmv_check(self) -> None:
        flags = evaluate_governance_flags(
            baseline_gap=0.0,
            modeled_gap=20.0,
            cf_percentile_current=50.0,
            cf_percentile_modeled=50.0,
            modeled_tcc_percentile=60.0,
        )
        assert flags.fmvCheckSuggested
        assert flags.modeledInPolicyBand
        assert not flags.underpayRisk
        assert not flags.cfBelow25

    def test_overpaid_low_producer_gets_fmv_check(
        self,
        provider_factory,
        family_medicine_market: MarketRow,
    ) -> None:
        provider = provider_factory(baseSalary=330000, totalWRVUs=4000)
        result = compute_scenario(provider, family_medicine_market, TARGET_MEDIAN)

        assert result.modeledTCCPercentile == pytest.approx(62.5)
        assert result.modeledGap == pytest.approx(37.5)
        assert result.governanceFlags.fmvCheckSuggested

    def test_low_cf_is_below_25(self, provider_factory, family_medicine_market: MarketRow) -> None:
        provider = provider_factory(currentCF=40)
        result = compute_scenario(provider, family_medicine_market, TARGET_MEDIAN)
        assert result.governanceFlags.cfBelow25
        assert result.cfPercentileCurrentBelowRange

    def test_low_fte_is_high_risk(self, provider_factory, family_medicine_market: MarketRow) -> None:
        provider = provider_factory(totalFTE=0.6, clinicalFTE=0.6)
        result = compute_scenario(provider, family_medicine_market, TARGET_MEDIAN)
        assert "Clinical FTE (0.6) < 0.7" in result.risk.highRisk
        assert "Total FTE (0.6) < 0.7" in result.risk.highRisk

    def test_zero_fte_and_wrvus_stay_finite(
        self,
        provider_factory,
        family_medicine_market: MarketRow,
    ) -> None:
        provider = provider_factory(totalFTE=0, clinicalFTE=0, totalWRVUs=0, currentCF=0)
        result = compute_scenario(provider, family_medicine_market, TARGET_MEDIAN)

        for name, value in result.model_dump().items():
            if isinstance(value, float):
                assert math.isfinite(value), f"{name} is not finite: {value}"
        assert result.imputedTCCPerWRVURatioCurrent == 0.0
        assert result.currentIncentive == 0.0


# =============================================================================
# TEST CLASS: IMPUTED $/wRVU
# =============================================================================


class TestImputedDollarPerWRVU:
    """Synthetic market $/wRVU curve and imputed ratios."""

    def test_market_curve_is_anchor_ratio(self, family_medicine_market: MarketRow) -> None:
        curve = market_dollar_per_wrvu_curve(family_medicine_market)
        assert curve[0] == pytest.approx(250000 / 4000)
        assert curve[1] == pytest.approx(300000 / 4800)

    def test_imputed_ratio_guards(self) -> None:
        assert imputed_dollar_per_wrvu(200000, 5000, 1.0) == pytest.approx(40.0)
        assert imputed_dollar_per_wrvu(200000, 2500, 0.5) == pytest.approx(40.0)
        assert imputed_dollar_per_wrvu(200000, 0, 1.0) == 0.0
        assert imputed_dollar_per_wrvu(200000, 5000, 0) == 0.0
        assert imputed_dollar_per_wrvu(float("nan"), 5000, 1.0) == 0.0
