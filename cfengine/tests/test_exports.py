"""
Test suite for DataFrame exports of batch, optimizer, sweep, target and
imputed-vs-market results.
"""

from typing import List

import pandas as pd
import pytest

from cfengine.models.schemas import MarketRow, OptimizerSettings, ProviderRecord
from cfengine.services.batch import run_batch
from cfengine.services.exports import (
    BATCH_COLUMNS,
    EXCLUDED_COLUMNS,
    IMPUTED_COLUMNS,
    OPTIMIZER_COLUMNS,
    SWEEP_COLUMNS,
    TARGET_COLUMNS,
    batch_results_to_frame,
    cf_sweep_to_frame,
    excluded_providers_to_frame,
    imputed_vs_market_to_frame,
    optimizer_results_to_frame,
    productivity_targets_to_frame,
)
from cfengine.services.imputed_market import imputed_vs_market_by_specialty
from cfengine.services.optimizer import run_cf_sweep, run_optimizer
from cfengine.services.productivity_target import run_productivity_targets


class TestBatchFrame:
    """Provider x scenario table."""

    def test_missing_rows_have_empty_metrics(self, provider_factory, market_rows: List[MarketRow]) -> None:
        batch = run_batch(
            [provider_factory(providerId="fm1"), provider_factory(providerId="derm1", specialty="Dermatology")],
            market_rows,
        )
        frame = batch_results_to_frame(batch)

        assert list(frame.columns) == BATCH_COLUMNS
        assert len(frame) == 2
        derm = frame.set_index('providerId').loc['derm1']
        assert derm['matchStatus'] == "Missing"
        assert derm['riskLevel'] == "high"
        assert pd.isna(derm['modeledCF'])
        assert derm['warnings'] == "Market missing for specialty: Dermatology"
        assert frame.loc[0, 'modeledCF'] == pytest.approx(44.4)

    def test_empty_batch(self, market_rows: List[MarketRow]) -> None:
        frame = batch_results_to_frame(run_batch([], market_rows))
        assert frame.empty
        assert list(frame.columns) == BATCH_COLUMNS


class TestOptimizerFrames:
    """Specialty and excluded-provider tables."""

    def test_specialty_rows(
        self,
        cardiology_roster: List[ProviderRecord],
        market_rows: List[MarketRow],
    ) -> None:
        frame = optimizer_results_to_frame(run_optimizer(cardiology_roster, market_rows))

        assert list(frame.columns) == OPTIMIZER_COLUMNS
        row = frame.iloc[0]
        assert row['specialty'] == "Cardiology"
        assert row['recommendedAction'] == "INCREASE"
        assert "cf_capped" in row['flags'].split("; ")
        assert row['headline'].startswith("Increase CF from $55.00")

    def test_excluded_reasons_are_joined(self, provider_factory, market_rows: List[MarketRow]) -> None:
        providers = [
            provider_factory(providerId="x1", totalFTE=0.3, clinicalFTE=0.3, totalWRVUs=200, LOA="Yes"),
        ]
        frame = excluded_providers_to_frame(
            run_optimizer(providers, market_rows, OptimizerSettings())
        )

        assert list(frame.columns) == EXCLUDED_COLUMNS
        assert frame.loc[0, 'reasons'] == "basis_fte_below_min; low_wrvu_volume; loa_flagged"


class TestSweepFrame:
    """Long-format CF sweep."""

    def test_one_row_per_specialty_and_percentile(
        self,
        cardiology_roster: List[ProviderRecord],
        family_medicine_provider: ProviderRecord,
        market_rows: List[MarketRow],
    ) -> None:
        sweep = run_cf_sweep(cardiology_roster + [family_medicine_provider], market_rows, None, [25, 50, 75])
        frame = cf_sweep_to_frame(sweep)

        assert list(frame.columns) == SWEEP_COLUMNS
        assert len(frame) == 6
        assert frame['specialty'].tolist() == ["Cardiology"] * 3 + ["Family Medicine"] * 3
        assert frame['cfDollars'].tolist() == [55.0, 60.0, 65.0, 42.0, 46.0, 50.0]


class TestTargetAndImputedFrames:
    """Provider-level target table and specialty-level imputed table."""

    def test_target_rows_per_provider(
        self,
        cardiology_roster: List[ProviderRecord],
        provider_factory,
        market_rows: List[MarketRow],
    ) -> None:
        derm = provider_factory(providerId="d1", specialty="Dermatology")
        frame = productivity_targets_to_frame(run_productivity_targets(cardiology_roster + [derm], market_rows))

        assert list(frame.columns) == TARGET_COLUMNS
        assert len(frame) == 7
        assert frame.loc[0, 'groupTargetWRVU_1cFTE'] == 5000
        derm_row = frame.set_index('providerId').loc['d1']
        assert derm_row['status'] == "Below Target"
        assert pd.isna(derm_row['planningIncentiveDollars'])

    def test_imputed_rows(self, cardiology_roster: List[ProviderRecord], market_rows: List[MarketRow]) -> None:
        frame = imputed_vs_market_to_frame(imputed_vs_market_by_specialty(cardiology_roster, market_rows))

        assert list(frame.columns) == IMPUTED_COLUMNS
        assert frame['specialty'].tolist() == ["Cardiology"]
        assert frame.loc[0, 'providerCount'] == 6
