"""
Test suite for the providers x scenarios batch runner.

The tests verify:
1. Row ordering is provider-major, scenario-minor and stable
2. Missing markets produce Missing rows (results=None, high risk)
3. Synonym matches carry the matched market specialty
4. Risk level classification (high / medium / low)
5. Progress callbacks at chunk boundaries and on completion
"""

from typing import Dict, List, Tuple

import pytest

from cfengine.models.enums import MatchStatus, RiskLevel
from cfengine.models.schemas import BatchScenario, MarketRow, ScenarioInputs
from cfengine.services.batch import derive_risk_level, resolve_scenarios, run_batch


@pytest.fixture
def scenarios() -> List[BatchScenario]:
    return [
        BatchScenario(id="s40", name="40th", scenarioInputs=ScenarioInputs(proposedCFPercentile=40)),
        BatchScenario(id="s50", name="Median", scenarioInputs=ScenarioInputs(proposedCFPercentile=50)),
    ]


@pytest.fixture
def mixed_providers(provider_factory):
    return [
        provider_factory(providerId="fm1", specialty="Family Medicine"),
        provider_factory(
            providerId="card1",
            specialty="Cardiovascular Disease",
            baseSalary=500000,
            totalWRVUs=5000,
            currentCF=60,
        ),
        provider_factory(providerId="derm1", specialty="Dermatology"),
    ]


# =============================================================================
# TEST CLASS: ORDERING AND MATCHING
# =============================================================================


class TestBatchRows:
    """Row layout and market resolution."""

    def test_rows_are_provider_major(
        self,
        mixed_providers,
        market_rows: List[MarketRow],
        scenarios: List[BatchScenario],
        synonym_map: Dict[str, str],
    ) -> None:
        batch = run_batch(mixed_providers, market_rows, scenarios, synonym_map)

        order = [(row.providerId, row.scenarioId) for row in batch.rows]
        assert order == [
            ("fm1", "s40"), ("fm1", "s50"),
            ("card1", "s40"), ("card1", "s50"),
            ("derm1", "s40"), ("derm1", "s50"),
        ]
        assert batch.providerCount == 3
        assert batch.scenarioCount == 2

    def test_missing_market_rows(
        self,
        mixed_providers,
        market_rows: List[MarketRow],
        scenarios: List[BatchScenario],
        synonym_map: Dict[str, str],
    ) -> None:
        batch = run_batch(mixed_providers, market_rows, scenarios, synonym_map)
        missing = [row for row in batch.rows if row.providerId == "derm1"]

        assert len(missing) == 2
        for row in missing:
            assert row.results is None
            assert row.matchStatus == MatchStatus.MISSING
            assert row.riskLevel == RiskLevel.HIGH
            assert "Market missing for specialty: Dermatology" in row.warnings

    def test_blank_specialty_row(self, provider_factory, market_rows: List[MarketRow]) -> None:
        batch = run_batch([provider_factory(specialty="")], market_rows)
        row = batch.rows[0]

        assert row.matchStatus == MatchStatus.MISSING
        assert row.warnings == ["Missing specialty", "Market missing (no specialty)"]

    def test_synonym_rows_carry_matched_specialty(
        self,
        mixed_providers,
        market_rows: List[MarketRow],
        scenarios: List[BatchScenario],
        synonym_map: Dict[str, str],
    ) -> None:
        batch = run_batch(mixed_providers, market_rows, scenarios, synonym_map)
        card = [row for row in batch.rows if row.providerId == "card1"]

        assert all(row.matchStatus == MatchStatus.SYNONYM for row in card)
        assert all(row.matchedMarketSpecialty == "Cardiology" for row in card)
        assert card[1].results.modeledCF == 60.0

    def test_scenario_snapshot_and_default_scenario(
        self,
        family_medicine_provider,
        market_rows: List[MarketRow],
    ) -> None:
        batch = run_batch([family_medicine_provider], market_rows)

        assert batch.scenarioCount == 1
        assert batch.rows[0].scenarioName == "Current"
        assert batch.rows[0].scenarioInputsSnapshot == ScenarioInputs()
        assert resolve_scenarios([]) == resolve_scenarios(None)

    def test_fallback_provider_id(self, provider_factory, market_rows: List[MarketRow]) -> None:
        batch = run_batch(
            [
                provider_factory(providerId="a"),
                provider_factory(providerId=None, providerName="Dr. Lee"),
                provider_factory(providerId=None, providerName=None),
            ],
            market_rows,
        )
        assert [row.providerId for row in batch.rows] == ["a", "Dr. Lee", "provider-2"]
        assert batch.rows[1].providerName == "Dr. Lee"


# =============================================================================
# TEST CLASS: RISK LEVELS
# =============================================================================


class TestRiskLevels:
    """Row-level risk classification."""

    def test_underpaid_provider_is_high_risk(
        self,
        family_medicine_provider,
        market_rows: List[MarketRow],
    ) -> None:
        row = run_batch([family_medicine_provider], market_rows).rows[0]
        assert row.results.governanceFlags.underpayRisk
        assert row.riskLevel == RiskLevel.HIGH

    def test_aligned_provider_is_low_risk(self, provider_factory, market_rows: List[MarketRow]) -> None:
        provider = provider_factory(
            specialty="Cardiology",
            baseSalary=500000,
            totalWRVUs=5000,
            currentCF=60,
        )
        row = run_batch([provider], market_rows).rows[0]

        assert row.warnings == []
        assert row.riskLevel == RiskLevel.LOW

    def test_warnings_without_flags_are_medium(
        self,
        provider_factory,
        cardiology_market: MarketRow,
    ) -> None:
        provider = provider_factory(
            specialty="Cardiology",
            baseSalary=500000,
            totalWRVUs=5000,
            currentCF=60,
        )
        result = run_batch([provider], [cardiology_market]).rows[0].results
        assert derive_risk_level(result, ["Total wRVUs low"]) == RiskLevel.MEDIUM
        assert derive_risk_level(None, []) == RiskLevel.HIGH


# =============================================================================
# TEST CLASS: PROGRESS
# =============================================================================


class TestProgress:
    """Chunked progress callbacks."""

    def test_progress_at_chunk_boundaries(
        self,
        mixed_providers,
        market_rows: List[MarketRow],
        scenarios: List[BatchScenario],
    ) -> None:
        calls: List[Tuple[int, int]] = []
        run_batch(
            mixed_providers,
            market_rows,
            scenarios,
            on_progress=lambda done, total: calls.append((done, total)),
            chunk_size=4,
        )

        assert calls[0] == (4, 6)
        assert calls[-1] == (6, 6)
        processed = [done for done, _ in calls]
        assert processed == sorted(processed)

    def test_empty_batch(self, market_rows: List[MarketRow]) -> None:
        calls: List[Tuple[int, int]] = []
        batch = run_batch([], market_rows, on_progress=lambda d, t: calls.append((d, t)))

        assert batch.rows == []
        assert calls == [(0, 0)]
