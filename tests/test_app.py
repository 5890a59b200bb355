import json
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from models.records import Coordinate, Measurement
from services.aggregator import StatisticsAggregator
from services.consensus import ConsensusEngine, LocalExecutionEnvironment
from services.orchestrator import AggregationTier, FallbackOrchestrator, LocalTier
from services.pipeline import PipelineService, build_default_pipeline
from services.verifier import LocationVerifier
from storage.sources import FetchReport

_POINT = {
    "networkName": "cafe",
    "speedMbps": 10,
    "lat": 50.0755,
    "lon": 14.4378,
    "timestamp": "2025-11-22T12:00:00Z",
    "reporterId": "0x1",
    "reporterAddress": "8.8.8.8",
}


class StubFetcher:
    def __init__(self, measurements: Sequence[Measurement]) -> None:
        self.measurements = list(measurements)

    async def fetch_all(self) -> FetchReport:
        return FetchReport(measurements=list(self.measurements))


class StubGeolocation:
    async def lookup(self, address: str) -> Optional[Coordinate]:
        if address == "8.8.8.8":
            return Coordinate(50.0880, 14.4208)
        return None


class UnavailableTier:
    name = "trigger"

    async def attempt(self, measurements):
        raise RuntimeError("workflow offline")


PipelineFactory = Callable[..., TestClient]


@pytest.fixture
def make_client(monkeypatch) -> Iterator[PipelineFactory]:
    stack = ExitStack()

    def factory(
        measurements: Sequence[Measurement] = (),
        tiers: Optional[List[AggregationTier]] = None,
    ) -> TestClient:
        engine = ConsensusEngine(LocalExecutionEnvironment(contexts=3))
        pipeline = PipelineService(
            fetcher=StubFetcher(measurements),  # type: ignore[arg-type]
            orchestrator=FallbackOrchestrator(
                tiers if tiers is not None else [LocalTier(StatisticsAggregator(engine))]
            ),
            verifier=LocationVerifier(engine, StubGeolocation(), threshold_km=10.0),  # type: ignore[arg-type]
        )

        def build_test_pipeline() -> PipelineService:
            return pipeline

        build_test_pipeline.cache_clear = lambda: None  # type: ignore[attr-defined]

        monkeypatch.setattr("app.main.build_default_pipeline", build_test_pipeline)
        monkeypatch.setattr("app.api.build_default_pipeline", build_test_pipeline)
        monkeypatch.setattr("services.pipeline.build_default_pipeline", build_test_pipeline)

        return stack.enter_context(TestClient(create_app()))

    with stack:
        yield factory


def test_lifespan_clears_pipeline_cache() -> None:
    app = create_app()

    with TestClient(app):
        pipeline_during = build_default_pipeline()

    try:
        assert build_default_pipeline() is not pipeline_during
    finally:
        build_default_pipeline.cache_clear()


def test_health(make_client: PipelineFactory) -> None:
    response = make_client().get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_statistics_over_fetched_archives(make_client: PipelineFactory) -> None:
    timestamp = datetime(2025, 11, 22, 12, 0, tzinfo=timezone.utc)
    measurements = [
        Measurement("A", 10.0, 1.0, 2.0, timestamp, "0x1"),
        Measurement("A", 20.0, 1.0, 2.0, timestamp, "0x2"),
        Measurement("B", 5.0, 3.0, 4.0, timestamp, "0x3"),
    ]

    response = make_client(measurements).get("/statistics")

    assert response.status_code == 200
    assert response.headers["X-Aggregation-Tier"] == "local"
    by_name = {item["networkName"]: item for item in response.json()}
    assert by_name["A"] == {
        "networkName": "A",
        "totalMeasurements": 2,
        "averageSpeed": 15.0,
        "medianSpeed": 15.0,
        "minSpeed": 10.0,
        "maxSpeed": 20.0,
        "speedRange": 10.0,
        "uniqueLocations": [{"lat": 1.0, "lon": 2.0}],
        "latestTimestamp": "2025-11-22T12:00:00.000Z",
    }
    assert by_name["B"]["totalMeasurements"] == 1


def test_get_statistics_without_measurements_is_empty(make_client: PipelineFactory) -> None:
    response = make_client().get("/statistics")

    assert response.status_code == 200
    assert response.json() == []
    assert response.headers["X-Aggregation-Tier"] == "none"


def test_post_statistics_accepts_archive_field_names(make_client: PipelineFactory) -> None:
    legacy = {
        "wifiName": "cafe",
        "speed": 30,
        "lat": 50.0,
        "lng": 14.0,
        "time": "2025-11-22T12:30:00Z",
        "walletAddress": "0x2",
    }

    response = make_client().post("/statistics", json={"dataPoints": [_POINT, legacy]})

    assert response.status_code == 200
    (statistics,) = response.json()
    assert statistics["networkName"] == "cafe"
    assert statistics["medianSpeed"] == 20.0
    assert statistics["latestTimestamp"] == "2025-11-22T12:30:00.000Z"


def test_post_statistics_rejects_malformed_measurement(make_client: PipelineFactory) -> None:
    response = make_client().post(
        "/statistics", json={"dataPoints": [dict(_POINT, speedMbps="fast")]}
    )

    assert response.status_code == 422


def test_statistics_unavailable_when_every_tier_fails(make_client: PipelineFactory) -> None:
    client = make_client(tiers=[UnavailableTier()])

    response = client.post("/statistics", json={"dataPoints": [_POINT]})

    assert response.status_code == 503
    assert "workflow offline" in response.json()["detail"]


def test_verify_within_threshold(make_client: PipelineFactory) -> None:
    response = make_client().post(
        "/verify", json={"reporterAddress": "8.8.8.8", "lat": 50.0755, "lon": 14.4378}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["withinThreshold"] is True
    assert body["resolvedLocation"] == {"lat": 50.088, "lon": 14.4208}
    assert 0 < body["distanceKm"] < 10


@pytest.mark.parametrize(
    "payload",
    [
        {"lat": 50.0, "lon": 14.0},
        {"reporterAddress": "8.8.8.8", "lon": 14.0},
        {"reporterAddress": "8.8.8.8", "lat": 95.0, "lon": 14.0},
    ],
)
def test_verify_rejects_invalid_input(make_client: PipelineFactory, payload: dict) -> None:
    response = make_client().post("/verify", json=payload)

    assert response.status_code == 400


def test_verify_unknown_location_returns_not_found(make_client: PipelineFactory) -> None:
    response = make_client().post(
        "/verify", json={"reporterAddress": "10.0.0.1", "lat": 1.0, "lon": 1.0}
    )

    assert response.status_code == 404
    assert "10.0.0.1" in response.json()["detail"]


def test_batch_verification_reports_per_item(make_client: PipelineFactory) -> None:
    unknown = dict(_POINT, reporterAddress="10.0.0.1")

    response = make_client().post("/verifications", json={"dataPoints": [_POINT, unknown]})

    assert response.status_code == 200
    first, second = response.json()
    assert first["index"] == 0
    assert first["verdict"]["withinThreshold"] is True
    assert first["error"] is None
    assert second["verdict"] is None
    assert second["error"]


@pytest.mark.parametrize(
    "field, literal",
    [("speedMbps", "Infinity"), ("speedMbps", "NaN"), ("lat", "NaN"), ("lon", "-Infinity")],
)
def test_post_statistics_rejects_non_finite_numbers(
    make_client: PipelineFactory, field: str, literal: str
) -> None:
    point = json.dumps(dict(_POINT, **{field: "__value__"})).replace('"__value__"', literal)

    response = make_client().post(
        "/statistics",
        content=f'{{"dataPoints": [{point}]}}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 422
