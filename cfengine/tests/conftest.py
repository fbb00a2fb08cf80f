"""
Pytest Configuration and Shared Fixtures for CF Modeling Engine Tests.

This module provides fixtures and configuration for all engine tests:
- Async test execution with pytest-asyncio
- Market benchmark rows with round-number curves so expected percentiles
  can be worked out by hand
- Provider record factory and a small Cardiology roster for optimizer tests
- FastAPI TestClient bound to the application lifespan

Market curves used throughout:

| Specialty        | TCC 25/50/75/90          | WRVU 25/50/75/90       | CF 25/50/75/90 |
|------------------|--------------------------|------------------------|----------------|
| Cardiology       | 400k / 500k / 600k / 700k | 4000 / 5000 / 6000 / 7000 | 55 / 60 / 65 / 70 |
| Family Medicine  | 250k / 300k / 360k / 420k | 4000 / 4800 / 5600 / 6500 | 42 / 46 / 50 / 55 |
"""

from typing import Any, Dict, Generator, List

import pytest
from fastapi.testclient import TestClient

from cfengine.models.schemas import MarketRow, ProviderRecord


# ============================================================
# PYTEST PLUGINS CONFIGURATION
# ============================================================

pytest_plugins: List[str] = ['pytest_asyncio']


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks tests that exercise the full HTTP stack
    - parity: Marks worked examples that pin exact documented outputs

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests that exercise the full HTTP stack'
    )
    config.addinivalue_line(
        'markers',
        'parity: marks worked examples that pin exact documented outputs'
    )


# ============================================================
# MARKET FIXTURES
# ============================================================

@pytest.fixture
def cardiology_market() -> MarketRow:
    """Cardiology benchmarks: $100/wRVU at every anchor."""
    return MarketRow(
        specialty="Cardiology",
        TCC_25=400000, TCC_50=500000, TCC_75=600000, TCC_90=700000,
        WRVU_25=4000, WRVU_50=5000, WRVU_75=6000, WRVU_90=7000,
        CF_25=55, CF_50=60, CF_75=65, CF_90=70,
    )


@pytest.fixture
def family_medicine_market() -> MarketRow:
    """Family Medicine benchmarks (WRVU_50=4800, CF_50=46)."""
    return MarketRow(
        specialty="Family Medicine",
        TCC_25=250000, TCC_50=300000, TCC_75=360000, TCC_90=420000,
        WRVU_25=4000, WRVU_50=4800, WRVU_75=5600, WRVU_90=6500,
        CF_25=42, CF_50=46, CF_75=50, CF_90=55,
    )


@pytest.fixture
def market_rows(cardiology_market: MarketRow, family_medicine_market: MarketRow) -> List[MarketRow]:
    return [cardiology_market, family_medicine_market]


@pytest.fixture
def synonym_map() -> Dict[str, str]:
    return {"Cardiovascular Disease": "Cardiology", "FM": "Family Medicine"}


# ============================================================
# PROVIDER FIXTURES
# ============================================================

def make_provider(**overrides: Any) -> ProviderRecord:
    """
    Build a full-time provider with sensible defaults.

    Example:
        >>> make_provider(providerId="p9", totalWRVUs=3000).totalFTE
        1.0
    """
    fields: Dict[str, Any] = {
        "providerId": "p1",
        "providerName": "Provider One",
        "specialty": "Family Medicine",
        "division": "Primary Care",
        "totalFTE": 1.0,
        "clinicalFTE": 1.0,
        "baseSalary": 200000,
        "totalWRVUs": 5000,
        "currentCF": 45,
    }
    fields.update(overrides)
    return ProviderRecord(**fields)


@pytest.fixture
def provider_factory():
    """Expose make_provider to tests that need custom records."""
    return make_provider


@pytest.fixture
def family_medicine_provider() -> ProviderRecord:
    """Worked-example provider: base 200k, 1.0 FTE, 5000 wRVUs, CF 45."""
    return make_provider()


@pytest.fixture
def cardiology_roster() -> List[ProviderRecord]:
    """
    Six eligible full-time cardiologists paid at CF 55 with a 300k base.

    Productivity spans the 30th-75th percentiles while pay sits at the base
    salary floor, so every CF increase improves alignment.
    """
    wrvus = [4200, 4600, 5000, 5200, 5600, 6000]
    return [
        make_provider(
            providerId=f"c{i + 1}",
            providerName=f"Cardiologist {i + 1}",
            specialty="Cardiology",
            division="Heart",
            baseSalary=300000,
            totalWRVUs=w,
            currentCF=55,
        )
        for i, w in enumerate(wrvus)
    ]


# ============================================================
# HTTP CLIENT
# ============================================================

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """TestClient running the application lifespan (executor + job registry)."""
    from cfengine.main import app

    with TestClient(app) as test_client:
        yield test_client
