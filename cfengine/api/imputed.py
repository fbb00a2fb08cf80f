"""
FastAPI router for the imputed vs market view.

Endpoints:
- POST /imputed/by-specialty: median imputed $/wRVU per specialty vs market
- POST /imputed/providers: provider drill-down for one specialty row
"""

import logging
from typing import List

from fastapi import APIRouter, HTTPException

from cfengine.models.schemas import (
    ImputedProviderDetailRequest,
    ImputedVsMarketProviderDetail,
    ImputedVsMarketRequest,
    ImputedVsMarketRow,
)
from cfengine.services.imputed_market import (
    imputed_vs_market_by_specialty,
    imputed_vs_market_provider_detail,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/by-specialty", response_model=List[ImputedVsMarketRow])
def by_specialty(body: ImputedVsMarketRequest) -> List[ImputedVsMarketRow]:
    try:
        return imputed_vs_market_by_specialty(
            body.providerRows,
            body.marketRows,
            synonym_map=body.synonymMap,
            settings=body.settings,
        )
    except Exception as e:
        logger.error(f"Error computing imputed vs market: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compute imputed vs market: {str(e)}")


@router.post("/providers", response_model=List[ImputedVsMarketProviderDetail])
def provider_detail(body: ImputedProviderDetailRequest) -> List[ImputedVsMarketProviderDetail]:
    """Eligible providers behind one specialty row; empty for an unknown specialty."""
    try:
        return imputed_vs_market_provider_detail(
            body.specialty,
            body.providerRows,
            body.marketRows,
            synonym_map=body.synonymMap,
            settings=body.settings,
        )
    except Exception as e:
        logger.error(f"Error computing imputed provider detail: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compute provider detail: {str(e)}")


__all__ = ['router']
