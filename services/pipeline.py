"""Coordinates ingestion, aggregation and verification for the HTTP layer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence

from models.errors import InvalidInputError, LocationUnavailableError, NoDataError
from models.records import Coordinate, Measurement, VerificationVerdict
from services.aggregator import StatisticsAggregator
from services.consensus import ConsensusEngine, LocalExecutionEnvironment
from services.geolocation import GeolocationClient
from services.orchestrator import FallbackOrchestrator, TierResult, build_tiers
from services.verifier import LocationVerifier
from services.workflow import WorkflowRunner
from settings import get_settings
from storage.sources import SourceFetcher, build_default_fetcher

logger = logging.getLogger(__name__)


@dataclass
class VerificationItem:
    index: int
    verdict: Optional[VerificationVerdict] = None
    error: Optional[str] = None


class PipelineService:
    """Fetches measurements and routes them through aggregation and verification."""

    def __init__(
        self,
        fetcher: SourceFetcher,
        orchestrator: FallbackOrchestrator,
        verifier: LocationVerifier,
    ) -> None:
        self.fetcher = fetcher
        self.orchestrator = orchestrator
        self.verifier = verifier

    async def collect_measurements(self) -> List[Measurement]:
        report = await self.fetcher.fetch_all()
        return report.measurements

    async def statistics_by_network(
        self, measurements: Optional[Sequence[Measurement]] = None
    ) -> TierResult:
        """Aggregate ``measurements``, or everything retrievable from the sources when omitted."""
        if measurements is None:
            measurements = await self.collect_measurements()
        return await self.orchestrator.aggregate(measurements)

    async def verify(
        self, reporter_address: Optional[str], lat: Optional[float], lon: Optional[float]
    ) -> VerificationVerdict:
        if lat is None or lon is None:
            raise InvalidInputError("Claimed latitude and longitude are required.")
        return await self.verifier.verify(reporter_address, Coordinate(lat=lat, lon=lon))

    async def verify_batch(self, measurements: Sequence[Measurement]) -> List[VerificationItem]:
        outcomes = await asyncio.gather(
            *(self.verifier.verify_measurement(point) for point in measurements),
            return_exceptions=True,
        )

        results: List[VerificationItem] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, (InvalidInputError, LocationUnavailableError, NoDataError)):
                results.append(VerificationItem(index=index, error=str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(VerificationItem(index=index, verdict=outcome))

        logger.info(
            "Verified batch",
            extra={
                "measurement_count": len(results),
                "failure_count": sum(1 for item in results if item.error is not None),
            },
        )
        return results


@lru_cache
def build_default_pipeline() -> PipelineService:
    """Factory that wires the pipeline from environment settings."""
    settings = get_settings()
    engine = ConsensusEngine(LocalExecutionEnvironment(contexts=settings.consensus_contexts))
    runner = WorkflowRunner(
        cli=settings.workflow_cli,
        workflow_dir=Path(settings.workflow_dir),
        workflow_name=settings.workflow_name,
        target=settings.workflow_target,
        timeout=settings.workflow_timeout,
    )
    geolocation = GeolocationClient(
        url_template=settings.geolocation_url,
        token=settings.geolocation_token,
        timeout=settings.geolocation_timeout,
    )
    return PipelineService(
        fetcher=build_default_fetcher(),
        orchestrator=FallbackOrchestrator(build_tiers(runner, StatisticsAggregator(engine))),
        verifier=LocationVerifier(engine, geolocation, threshold_km=settings.distance_threshold_km),
    )
