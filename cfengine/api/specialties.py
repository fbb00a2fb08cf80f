"""
FastAPI router for specialty resolution.

Implements POST /specialties/match (resolve one provider's market row) and
POST /specialties/suggest (fuzzy synonym-mapping suggestions for provider
specialties without an exact market match).
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from cfengine.models.schemas import MarketRow, MatchResult, ProviderRecord
from cfengine.services.specialty_match import (
    SUGGESTION_THRESHOLD,
    match_specialty,
    suggest_specialty_mappings,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Local Pydantic Models for API Requests / Responses
# =============================================================================

class MatchRequest(BaseModel):
    """Request model for resolving a provider's market row."""
    provider: ProviderRecord = Field(..., description="Provider record to resolve")
    marketRows: List[MarketRow] = Field(default_factory=list, description="Market benchmark rows")
    synonymMap: Dict[str, str] = Field(
        default_factory=dict,
        description="Provider specialty -> market specialty mapping"
    )


class SuggestRequest(BaseModel):
    """Request model for specialty mapping suggestions."""
    providerSpecialties: List[str] = Field(default_factory=list)
    marketSpecialties: List[str] = Field(default_factory=list)
    threshold: float = Field(default=SUGGESTION_THRESHOLD, ge=0, le=1)


class SuggestionItem(BaseModel):
    providerSpecialty: str
    marketSpecialty: str
    score: float


class SuggestResponse(BaseModel):
    """Response model for specialty mapping suggestions."""
    suggestions: List[SuggestionItem] = Field(default_factory=list)


# =============================================================================
# Router Definition
# =============================================================================

router = APIRouter()


@router.post("/match", response_model=MatchResult)
async def match(body: MatchRequest) -> MatchResult:
    """
    Resolve a provider's specialty to a market row.

    Returns status Exact, Synonym or Missing; Missing is a normal outcome,
    not an error.
    """
    try:
        return match_specialty(body.provider, body.marketRows, body.synonymMap)
    except Exception as e:
        logger.error(f"Error matching specialty: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to match specialty: {str(e)}")


@router.post("/suggest", response_model=SuggestResponse)
async def suggest(body: SuggestRequest) -> SuggestResponse:
    """Suggest synonym mappings for provider specialties with no exact market match."""
    try:
        suggestions = suggest_specialty_mappings(
            body.providerSpecialties, body.marketSpecialties, body.threshold
        )
        return SuggestResponse(suggestions=[
            SuggestionItem(
                providerSpecialty=s.provider_specialty,
                marketSpecialty=s.market_specialty,
                score=s.score,
            )
            for s in suggestions
        ])
    except Exception as e:
        logger.error(f"Error suggesting specialty mappings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to suggest mappings: {str(e)}")


__all__ = ['router']
