"""
Test suite for specialty normalization, market matching and mapping suggestions.

The tests verify:
1. normalize_specialty_key collapses case, punctuation and whitespace
2. Exact matches win over synonyms; synonyms resolve through normalized keys
3. Blank specialties and invalid market rows resolve to Missing
4. Matching is deterministic and never mutates the synonym map
5. Similarity scoring and greedy mapping suggestions
"""

from typing import Dict, List

import pytest

from cfengine.models.enums import MatchStatus
from cfengine.models.schemas import MarketRow
from cfengine.services.specialty_match import (
    is_market_row_valid,
    levenshtein_distance,
    match_market_row,
    match_specialty,
    normalize_specialty_key,
    specialty_similarity,
    suggest_specialty_mappings,
)


# =============================================================================
# TEST CLASS: NORMALIZATION AND VALIDITY
# =============================================================================


class TestNormalization:
    """Key normalization and market row validity."""

    @pytest.mark.parametrize("raw,expected", [
        ("Cardiology", "cardiology"),
        ("  Cardiology - Invasive ", "cardiology invasive"),
        ("Ob/Gyn", "obgyn"),
        ("Family   Medicine", "family medicine"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize_specialty_key(self, raw, expected: str) -> None:
        assert normalize_specialty_key(raw) == expected

    def test_row_with_missing_anchor_is_invalid(self, cardiology_market: MarketRow) -> None:
        assert is_market_row_valid(cardiology_market)
        broken = cardiology_market.model_copy(update={"CF_90": None})
        assert not is_market_row_valid(broken)

    def test_row_with_non_finite_anchor_is_invalid(self, cardiology_market: MarketRow) -> None:
        broken = cardiology_market.model_copy(update={"TCC_50": float("nan")})
        assert not is_market_row_valid(broken)


# =============================================================================
# TEST CLASS: MATCHING
# =============================================================================


class TestMatchMarketRow:
    """Exact / Synonym / Missing resolution."""

    def test_exact_match_ignores_case_and_punctuation(self, market_rows: List[MarketRow]) -> None:
        result = match_market_row("  CARDIOLOGY. ", market_rows)
        assert result.status == MatchStatus.EXACT
        assert result.marketRow.specialty == "Cardiology"
        assert result.matchedKey == "cardiology"

    def test_synonym_match(self, market_rows: List[MarketRow], synonym_map: Dict[str, str]) -> None:
        result = match_market_row("Cardiovascular Disease", market_rows, synonym_map)
        assert result.status == MatchStatus.SYNONYM
        assert result.marketRow.specialty == "Cardiology"

    def test_synonym_lookup_uses_normalized_key(self, market_rows: List[MarketRow]) -> None:
        result = match_market_row("Cardiovascular-Disease", market_rows, {"cardiovasculardisease": "cardiology"})
        assert result.status == MatchStatus.SYNONYM

    def test_exact_wins_over_synonym(self, market_rows: List[MarketRow]) -> None:
        """A synonym entry never overrides an exact market name."""
        result = match_market_row("Cardiology", market_rows, {"cardiology": "Family Medicine"})
        assert result.status == MatchStatus.EXACT
        assert result.marketRow.specialty == "Cardiology"

    @pytest.mark.parametrize("specialty", ["", "   ", None])
    def test_blank_specialty_is_missing(self, specialty, market_rows: List[MarketRow]) -> None:
        result = match_market_row(specialty, market_rows, {"": "Cardiology"})
        assert result.status == MatchStatus.MISSING
        assert result.marketRow is None

    def test_unknown_specialty_is_missing(self, market_rows: List[MarketRow]) -> None:
        result = match_market_row("Dermatology", market_rows)
        assert result.status == MatchStatus.MISSING

    def test_invalid_market_row_is_skipped(self, cardiology_market: MarketRow) -> None:
        broken = cardiology_market.model_copy(update={"WRVU_25": None})
        assert match_market_row("Cardiology", [broken]).status == MatchStatus.MISSING

    def test_synonym_to_invalid_row_is_missing(
        self,
        cardiology_market: MarketRow,
        synonym_map: Dict[str, str],
    ) -> None:
        broken = cardiology_market.model_copy(update={"CF_25": None})
        result = match_market_row("Cardiovascular Disease", [broken], synonym_map)
        assert result.status == MatchStatus.MISSING

    def test_matching_is_deterministic_and_map_untouched(
        self,
        provider_factory,
        market_rows: List[MarketRow],
        synonym_map: Dict[str, str],
    ) -> None:
        providers = [
            provider_factory(providerId="a", specialty="Cardiology"),
            provider_factory(providerId="b", specialty="FM"),
            provider_factory(providerId="c", specialty="Dermatology"),
            provider_factory(providerId="d", specialty=""),
        ]
        snapshot = dict(synonym_map)

        first = [match_specialty(p, market_rows, synonym_map).status for p in providers]
        second = [match_specialty(p, market_rows, synonym_map).status for p in providers]

        assert first == second
        assert first == [MatchStatus.EXACT, MatchStatus.SYNONYM, MatchStatus.MISSING, MatchStatus.MISSING]
        assert synonym_map == snapshot


# =============================================================================
# TEST CLASS: SIMILARITY AND SUGGESTIONS
# =============================================================================


class TestSuggestions:
    """Fuzzy similarity and greedy mapping suggestions."""

    def test_levenshtein_distance(self) -> None:
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_similarity_bands(self) -> None:
        assert specialty_similarity("Cardiology", "cardiology") == 1.0
        assert specialty_similarity("Cardiology", "Cardiology - Invasive") == 0.92
        assert specialty_similarity("", "Cardiology") == 0.0
        assert 0.0 < specialty_similarity("Orthopedic Surgery", "Orthopaedic Surgery") < 0.92

    def test_suggestions_skip_exact_names_and_use_each_market_once(self) -> None:
        suggestions = suggest_specialty_mappings(
            ["Cardiology", "Cardiology Noninvasive", "Cardiolgy", "Podiatry"],
            ["Cardiology", "Cardiology - Invasive"],
        )
        providers = [s.provider_specialty for s in suggestions]
        markets = [s.market_specialty for s in suggestions]

        assert "Cardiology" not in providers
        assert "Podiatry" not in providers
        assert len(markets) == len(set(markets))
        assert suggestions[0].provider_specialty == "Cardiology Noninvasive"
        assert suggestions[0].market_specialty == "Cardiology"
        assert suggestions[0].score == 0.92
        # "Cardiology" is already taken by the stronger pair
        assert "Cardiolgy" not in providers

    def test_threshold_filters_weak_pairs(self) -> None:
        assert suggest_specialty_mappings(["Podiatry"], ["Cardiology"], threshold=0.9) == []
