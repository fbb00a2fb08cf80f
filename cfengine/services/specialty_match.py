"""
Specialty Matching Service

Resolves a provider's specialty name to a market benchmark row.

Match order:
1. Blank provider specialty -> Missing
2. Normalized provider specialty equals a valid market row's normalized
   specialty -> Exact (case/punctuation/whitespace differences collapse here)
3. Synonym map lookup (normalized, then raw, then lower-cased raw key); the
   mapped target is normalized and matched against valid rows -> Synonym
4. Otherwise -> Missing

A market row is valid only when all twelve percentile anchors are present
and finite. Invalid rows are skipped silently (downgraded to Missing by the
caller) rather than raising.

Also provides fuzzy similarity scoring and greedy mapping suggestions used to
pre-populate the synonym map for unmatched provider specialties.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from cfengine.models.enums import MatchStatus
from cfengine.models.schemas import MarketRow, MatchResult, ProviderRecord
from cfengine.services.percentile_curve import ANCHOR_PERCENTILES, CURVE_METRICS


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Minimum similarity for a mapping suggestion
SUGGESTION_THRESHOLD: float = 0.45

# One name containing the other scores just below an exact match
CONTAINMENT_SCORE: float = 0.92

# Edit distance only contributes for names up to this length
LEVENSHTEIN_MAX_LENGTH: int = 40
LEVENSHTEIN_WEIGHT: float = 0.85

_NON_WORD = re.compile(r"[^\w\s]")
_NON_WORD_KEEP_HYPHEN = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_TOKEN_SPLIT = re.compile(r"\s*[-_,/]\s*|\s+")


# =============================================================================
# Normalization and Validity
# =============================================================================


def normalize_specialty_key(name: Optional[str]) -> str:
    """
    Normalize a specialty name for comparison.

    Trim, lowercase, strip non-word/non-space characters, collapse internal
    whitespace, trim again.

    Example:
        >>> normalize_specialty_key("  Cardiology - Invasive ")
        'cardiology invasive'
    """
    if not name:
        return ""
    key = _NON_WORD.sub("", name.strip().lower())
    return _WHITESPACE.sub(" ", key).strip()


def is_market_row_valid(row: MarketRow) -> bool:
    """True when all twelve TCC/WRVU/CF anchors are present and finite."""
    for metric in CURVE_METRICS:
        for pct in ANCHOR_PERCENTILES:
            value = getattr(row, f"{metric}_{int(pct)}")
            if value is None or not math.isfinite(value):
                return False
    return True


def _find_valid_row(key: str, market_rows: Iterable[MarketRow]) -> Optional[MarketRow]:
    if not key:
        return None
    for row in market_rows:
        if is_market_row_valid(row) and normalize_specialty_key(row.specialty) == key:
            return row
    return None


def _lookup_synonym(raw: str, synonym_map: Dict[str, str]) -> Optional[str]:
    for key in (normalize_specialty_key(raw), raw, raw.lower()):
        target = synonym_map.get(key)
        if target:
            return target
    return None


# =============================================================================
# Matching
# =============================================================================


def match_market_row(
    specialty: Optional[str],
    market_rows: List[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
) -> MatchResult:
    """
    Resolve a specialty name to a market row.

    Args:
        specialty: Provider specialty as recorded in the provider file.
        market_rows: Market benchmark rows (invalid rows are ignored).
        synonym_map: Provider specialty -> market specialty mapping. Not mutated.

    Returns:
        MatchResult with the matched row (or None) and the match status.
    """
    raw = (specialty or "").strip()
    if not raw:
        return MatchResult(marketRow=None, status=MatchStatus.MISSING)

    key = normalize_specialty_key(raw)
    row = _find_valid_row(key, market_rows)
    if row is not None:
        return MatchResult(marketRow=row, status=MatchStatus.EXACT, matchedKey=key)

    target = _lookup_synonym(raw, synonym_map or {})
    if target:
        target_key = normalize_specialty_key(target)
        row = _find_valid_row(target_key, market_rows)
        if row is not None:
            return MatchResult(marketRow=row, status=MatchStatus.SYNONYM, matchedKey=target_key)

    logger.debug(f"No market match for specialty {raw!r}")
    return MatchResult(marketRow=None, status=MatchStatus.MISSING)


def match_specialty(
    provider: ProviderRecord,
    market_rows: List[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
) -> MatchResult:
    """Resolve a provider's specialty to a market row (see match_market_row)."""
    return match_market_row(provider.specialty, market_rows, synonym_map)


# =============================================================================
# Similarity and Mapping Suggestions
# =============================================================================


@dataclass(frozen=True)
class SpecialtySuggestion:
    """Suggested synonym mapping from a provider specialty to a market specialty."""
    provider_specialty: str
    market_specialty: str
    score: float


def _similarity_key(name: str) -> str:
    key = _NON_WORD_KEEP_HYPHEN.sub("", (name or "").strip().lower())
    return _WHITESPACE.sub(" ", key).strip()


def _tokens(key: str) -> Set[str]:
    return {t for t in _TOKEN_SPLIT.split(key) if t}


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert/delete/substitute, unit cost)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
        previous = current
    return previous[len(b)]


def specialty_similarity(a: str, b: str) -> float:
    """
    Score how alike two specialty names are, in [0, 1].

    - Equal after normalization: 1.0
    - One contains the other: 0.92
    - Otherwise: max(token Jaccard, 0.85 * Levenshtein ratio); the
      Levenshtein term only applies when the longer name is <= 40 chars

    Example:
        >>> specialty_similarity("Cardiology", "Cardiology - Invasive")
        0.92
    """
    ka = _similarity_key(a)
    kb = _similarity_key(b)
    if not ka or not kb:
        return 0.0
    if ka == kb:
        return 1.0
    if ka in kb or kb in ka:
        return CONTAINMENT_SCORE

    ta = _tokens(ka)
    tb = _tokens(kb)
    union = ta | tb
    jaccard = len(ta & tb) / len(union) if union else 0.0

    max_len = max(len(ka), len(kb))
    if max_len <= LEVENSHTEIN_MAX_LENGTH:
        lev_ratio = 1.0 - levenshtein_distance(ka, kb) / max_len
        return max(jaccard, lev_ratio * LEVENSHTEIN_WEIGHT)
    return jaccard


def suggest_specialty_mappings(
    provider_specialties: Iterable[str],
    market_specialties: Iterable[str],
    threshold: float = SUGGESTION_THRESHOLD,
) -> List[SpecialtySuggestion]:
    """
    Suggest synonym mappings for provider specialties with no exact market match.

    Every (provider, market) pair scoring at or above the threshold is a
    candidate. Candidates are taken strongest first; each provider specialty
    and each market specialty is used at most once.

    Args:
        provider_specialties: Distinct provider specialty names.
        market_specialties: Market specialty names.
        threshold: Minimum similarity score.

    Returns:
        Suggestions ordered by descending score.
    """
    markets = [m for m in dict.fromkeys(market_specialties) if m and m.strip()]
    market_keys = {normalize_specialty_key(m) for m in markets}
    unmatched = [
        p for p in dict.fromkeys(provider_specialties)
        if p and p.strip() and normalize_specialty_key(p) not in market_keys
    ]

    candidates: List[SpecialtySuggestion] = []
    for provider_name in unmatched:
        for market_name in markets:
            score = specialty_similarity(provider_name, market_name)
            if score >= threshold:
                candidates.append(SpecialtySuggestion(provider_name, market_name, score))

    candidates.sort(key=lambda s: (-s.score, s.provider_specialty, s.market_specialty))

    used_providers: Set[str] = set()
    used_markets: Set[str] = set()
    suggestions: List[SpecialtySuggestion] = []
    for candidate in candidates:
        if candidate.provider_specialty in used_providers or candidate.market_specialty in used_markets:
            continue
        used_providers.add(candidate.provider_specialty)
        used_markets.add(candidate.market_specialty)
        suggestions.append(candidate)

    logger.info(
        f"Suggested {len(suggestions)} specialty mappings for "
        f"{len(unmatched)} unmatched provider specialties"
    )
    return suggestions


__all__ = [
    'SUGGESTION_THRESHOLD',
    'SpecialtySuggestion',
    'normalize_specialty_key',
    'is_market_row_valid',
    'match_market_row',
    'match_specialty',
    'levenshtein_distance',
    'specialty_similarity',
    'suggest_specialty_mappings',
]
