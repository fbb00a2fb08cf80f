"""
Integration tests for the HTTP API.

Requests go through the full FastAPI stack (routing, validation, lifespan
executor and job registry) via TestClient.
"""

import inspect
import time
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from cfengine.models.schemas import MarketRow, ProviderRecord


pytestmark = pytest.mark.integration


def _dump(models: List[Any]) -> List[Dict[str, Any]]:
    return [m.model_dump(mode="json", exclude_none=True) for m in models]


@pytest.fixture
def optimizer_payload(cardiology_roster: List[ProviderRecord], market_rows: List[MarketRow]) -> Dict[str, Any]:
    return {
        "type": "run",
        "providerRows": _dump(cardiology_roster),
        "marketRows": _dump(market_rows),
        "scenarioId": "api-run",
        "scenarioName": "API run",
    }


class TestServiceEndpoints:
    """Health and root."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client: TestClient) -> None:
        body = client.get("/").json()
        assert body["name"] == "CF Modeling Engine"
        assert body["docs"] == "/docs"


class TestSpecialtyEndpoints:
    """Matching and suggestions."""

    def test_match_synonym(
        self,
        client: TestClient,
        market_rows: List[MarketRow],
        synonym_map: Dict[str, str],
    ) -> None:
        response = client.post("/specialties/match", json={
            "provider": {"providerId": "x", "specialty": "Cardiovascular Disease"},
            "marketRows": _dump(market_rows),
            "synonymMap": synonym_map,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "Synonym"
        assert body["marketRow"]["specialty"] == "Cardiology"

    def test_match_missing_is_not_an_error(self, client: TestClient, market_rows: List[MarketRow]) -> None:
        response = client.post("/specialties/match", json={
            "provider": {"specialty": "Dermatology"},
            "marketRows": _dump(market_rows),
        })
        assert response.status_code == 200
        assert response.json()["status"] == "Missing"
        assert response.json()["marketRow"] is None

    def test_suggest(self, client: TestClient) -> None:
        response = client.post("/specialties/suggest", json={
            "providerSpecialties": ["Cardiology Noninvasive", "Podiatry"],
            "marketSpecialties": ["Cardiology"],
        })

        assert response.status_code == 200
        suggestions = response.json()["suggestions"]
        assert suggestions == [
            {"providerSpecialty": "Cardiology Noninvasive", "marketSpecialty": "Cardiology", "score": 0.92},
        ]


class TestScenarioEndpoints:
    """Single scenario and batch."""

    def test_compute(
        self,
        client: TestClient,
        family_medicine_provider: ProviderRecord,
        family_medicine_market: MarketRow,
    ) -> None:
        response = client.post("/scenarios/compute", json={
            "provider": family_medicine_provider.model_dump(mode="json", exclude_none=True),
            "marketRow": family_medicine_market.model_dump(mode="json", exclude_none=True),
            "scenarioInputs": {"proposedCFPercentile": 50},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["modeledCF"] == pytest.approx(46.0)
        assert body["annualIncentive"] == pytest.approx(30000.0)

    def test_compute_requires_market_row(self, client: TestClient, family_medicine_provider) -> None:
        response = client.post("/scenarios/compute", json={
            "provider": family_medicine_provider.model_dump(mode="json", exclude_none=True),
        })
        assert response.status_code == 422

    @pytest.mark.parametrize("partitions", [1, 2])
    def test_batch(
        self,
        client: TestClient,
        provider_factory,
        market_rows: List[MarketRow],
        partitions: int,
    ) -> None:
        providers = [provider_factory(providerId=f"p{i}") for i in range(3)]
        response = client.post(f"/scenarios/batch?partitions={partitions}", json={
            "providers": _dump(providers),
            "marketRows": _dump(market_rows),
            "scenarios": [
                {"id": "a", "name": "A"},
                {"id": "b", "name": "B", "scenarioInputs": {"proposedCFPercentile": 50}},
            ],
        })

        assert response.status_code == 200
        rows = response.json()["rows"]
        assert [(r["providerId"], r["scenarioId"]) for r in rows] == [
            ("p0", "a"), ("p0", "b"), ("p1", "a"), ("p1", "b"), ("p2", "a"), ("p2", "b"),
        ]

    def test_batch_rejects_zero_partitions(self, client: TestClient) -> None:
        response = client.post("/scenarios/batch?partitions=0", json={})
        assert response.status_code == 422


class TestOptimizerEndpoints:
    """Optimizer runs, jobs, sweep and comparison."""

    def test_run(self, client: TestClient, optimizer_payload: Dict[str, Any]) -> None:
        response = client.post("/optimizer/run", json=optimizer_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["scenarioId"] == "api-run"
        assert body["bySpecialty"][0]["recommendedAction"] == "INCREASE"

    def test_job_lifecycle(self, client: TestClient, optimizer_payload: Dict[str, Any]) -> None:
        submitted = client.post("/optimizer/jobs", json=optimizer_payload)
        assert submitted.status_code == 202
        job_id = submitted.json()["jobId"]

        status = None
        for _ in range(200):
            status = client.get(f"/optimizer/jobs/{job_id}").json()
            if status["status"] != "running":
                break
            time.sleep(0.05)

        assert status["status"] == "done"
        assert status["result"]["summary"]["scenarioName"] == "API run"
        assert status["error"] is None

        assert client.delete(f"/optimizer/jobs/{job_id}").status_code == 204
        assert client.get(f"/optimizer/jobs/{job_id}").status_code == 404
        assert client.delete(f"/optimizer/jobs/{job_id}").status_code == 404

    def test_unknown_job(self, client: TestClient) -> None:
        assert client.get("/optimizer/jobs/nope").status_code == 404

    def test_sweep(self, client: TestClient, optimizer_payload: Dict[str, Any]) -> None:
        payload = {
            "providerRows": optimizer_payload["providerRows"],
            "marketRows": optimizer_payload["marketRows"],
            "cfPercentiles": [25, 50],
        }
        response = client.post("/optimizer/sweep", json=payload)

        assert response.status_code == 200
        rows = response.json()["bySpecialty"]["Cardiology"]
        assert [r["cfDollars"] for r in rows] == [55.0, 60.0]

        payload["cfPercentiles"] = []
        response = client.post("/optimizer/sweep", json=payload)
        assert response.status_code == 400
        assert "at least one CF percentile" in response.json()["detail"]

    def test_compare(self, client: TestClient, optimizer_payload: Dict[str, Any]) -> None:
        result = client.post("/optimizer/run", json=optimizer_payload).json()
        runs = [
            {"id": "a", "name": "A", "result": result},
            {"id": "b", "name": "B", "result": result},
        ]

        response = client.post("/optimizer/compare", json={"runs": runs})
        assert response.status_code == 200
        assert response.json()["baselineScenarioId"] == "a"

        response = client.post("/optimizer/compare", json={"runs": runs[:1]})
        assert response.status_code == 400

    @pytest.mark.parametrize("name", ["sweep", "compare"])
    def test_cpu_bound_routes_are_sync(self, name: str) -> None:
        from cfengine.api import optimizer as optimizer_api

        assert not inspect.iscoroutinefunction(getattr(optimizer_api, name))


class TestTargetEndpoints:
    """Productivity target runs and comparison."""

    @pytest.fixture
    def target_payload(self, cardiology_roster: List[ProviderRecord], market_rows: List[MarketRow]) -> Dict[str, Any]:
        return {
            "providerRows": _dump(cardiology_roster),
            "marketRows": _dump(market_rows),
            "settings": {"targetPercentile": 50, "rampFactorByProviderId": {"c1": 0.5}},
        }

    def test_run(self, client: TestClient, target_payload: Dict[str, Any]) -> None:
        response = client.post("/targets/run", json=target_payload)

        assert response.status_code == 200
        row = response.json()["bySpecialty"][0]
        assert row["specialty"] == "Cardiology"
        assert row["groupTargetWRVU_1cFTE"] == 5000
        c1 = next(p for p in row["providers"] if p["providerId"] == "c1")
        assert c1["rampedTargetWRVU"] == pytest.approx(2500)
        assert c1["status"] == "Above Target"

    def test_compare(self, client: TestClient, target_payload: Dict[str, Any]) -> None:
        result = client.post("/targets/run", json=target_payload).json()
        runs = [
            {"id": "a", "name": "A", "settings": target_payload["settings"], "result": result},
            {"id": "b", "name": "B", "result": result},
        ]

        response = client.post("/targets/compare", json={"runs": runs})
        assert response.status_code == 200
        rollup = response.json()["rollup"]
        assert rollup["targetPercentileByScenario"] == {"a": 50, "b": None}
        assert rollup["atOrAbove120ByScenario"]["a"] == rollup["atOrAbove120ByScenario"]["b"]

        response = client.post("/targets/compare", json={"runs": runs[:1]})
        assert response.status_code == 400
        assert "2-4 runs" in response.json()["detail"]


class TestImputedEndpoints:
    """Imputed $/wRVU by specialty and the provider drill-down."""

    def test_by_specialty_and_detail(
        self,
        client: TestClient,
        cardiology_roster: List[ProviderRecord],
        market_rows: List[MarketRow],
    ) -> None:
        payload = {"providerRows": _dump(cardiology_roster), "marketRows": _dump(market_rows)}

        response = client.post("/imputed/by-specialty", json=payload)
        assert response.status_code == 200
        rows = response.json()
        assert [(r["specialty"], r["providerCount"]) for r in rows] == [("Cardiology", 6)]
        assert rows[0]["market50"] == pytest.approx(100.0)

        response = client.post("/imputed/providers", json={**payload, "specialty": "Cardiology"})
        assert response.status_code == 200
        assert len(response.json()) == 6

    def test_detail_requires_specialty(self, client: TestClient) -> None:
        assert client.post("/imputed/providers", json={}).status_code == 422
