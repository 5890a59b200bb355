"""Ordered fallback across aggregation tiers: trigger, simulate, then local."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence

from app.schemas import NetworkStatistics, WorkflowDataPoint, WorkflowInput
from models.errors import AggregationUnavailableError, WorkflowError
from models.records import Measurement
from services.aggregator import StatisticsAggregator
from services.workflow import WorkflowRunner, parse_statistics_output

logger = logging.getLogger(__name__)


class AggregationTier(Protocol):
    name: str

    async def attempt(self, measurements: Sequence[Measurement]) -> List[NetworkStatistics]:
        ...


@dataclass
class TierResult:
    tier: str
    statistics: List[NetworkStatistics] = field(default_factory=list)


def workflow_input(measurements: Sequence[Measurement]) -> dict:
    request = WorkflowInput(
        data_points=[WorkflowDataPoint.from_record(point) for point in measurements]
    )
    return request.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkflowTier:
    """Runs the aggregation on the remote workflow, either deployed or simulated."""

    def __init__(self, runner: WorkflowRunner, mode: str = "trigger") -> None:
        if mode not in {"trigger", "simulate"}:
            raise ValueError(f"Unknown workflow mode {mode!r}.")
        self.runner = runner
        self.mode = mode
        self.name = mode

    async def attempt(self, measurements: Sequence[Measurement]) -> List[NetworkStatistics]:
        payload = workflow_input(measurements)
        if self.mode == "trigger":
            output = await self.runner.trigger(payload)
        else:
            output = await self.runner.simulate(payload)

        statistics = parse_statistics_output(output)
        if not statistics:
            raise WorkflowError(f"No statistics found in workflow {self.mode} output.")
        return statistics


class LocalTier:
    """Computes statistics in-process with the consensus-backed aggregator."""

    name = "local"

    def __init__(self, aggregator: StatisticsAggregator) -> None:
        self.aggregator = aggregator

    async def attempt(self, measurements: Sequence[Measurement]) -> List[NetworkStatistics]:
        summaries = await self.aggregator.aggregate(measurements)
        return [NetworkStatistics.from_summary(summary) for summary in summaries]


class FallbackOrchestrator:
    """Attempts each tier in order and surfaces the first non-empty result."""

    def __init__(self, tiers: Sequence[AggregationTier]) -> None:
        self.tiers = list(tiers)

    async def aggregate(self, measurements: Sequence[Measurement]) -> TierResult:
        if not measurements:
            return TierResult(tier="none")

        failures: List[tuple[str, str]] = []
        for tier in self.tiers:
            started = time.perf_counter()
            try:
                statistics = await tier.attempt(measurements)
            except Exception as exc:  # noqa: BLE001 - every tier failure falls through
                reason = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Aggregation tier failed, falling back",
                    extra={"tier": tier.name, "reason": reason},
                )
                failures.append((tier.name, reason))
                continue

            if not statistics:
                logger.warning(
                    "Aggregation tier returned no statistics, falling back",
                    extra={"tier": tier.name},
                )
                failures.append((tier.name, "empty result"))
                continue

            logger.info(
                "Aggregated %s networks",
                len(statistics),
                extra={
                    "tier": tier.name,
                    "measurement_count": len(measurements),
                    "elapsed_ms": int((time.perf_counter() - started) * 1000),
                },
            )
            return TierResult(tier=tier.name, statistics=statistics)

        logger.error(
            "All aggregation tiers exhausted",
            extra={"failure_count": len(failures), "measurement_count": len(measurements)},
        )
        raise AggregationUnavailableError(failures)


def build_tiers(runner: WorkflowRunner, aggregator: StatisticsAggregator) -> List[AggregationTier]:
    return [
        WorkflowTier(runner, mode="trigger"),
        WorkflowTier(runner, mode="simulate"),
        LocalTier(aggregator),
    ]
