"""Per-network aggregation of speed measurements."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from models.records import Coordinate, Measurement
from services.consensus import ConsensusEngine, median_aggregate

logger = logging.getLogger(__name__)


@dataclass
class NetworkSummary:
    """Computed statistics for every measurement sharing one network name."""

    network_name: str
    total_measurements: int
    average_speed: float
    median_speed: float
    min_speed: float
    max_speed: float
    speed_range: float
    unique_locations: List[Coordinate] = field(default_factory=list)
    latest_timestamp: datetime | None = None


def _average(speeds: Sequence[float]) -> float:
    return sum(speeds) / len(speeds)


def group_by_network(measurements: Iterable[Measurement]) -> Dict[str, List[Measurement]]:
    groups: Dict[str, List[Measurement]] = {}
    for measurement in measurements:
        groups.setdefault(measurement.network_name, []).append(measurement)
    return groups


def unique_locations(measurements: Iterable[Measurement]) -> List[Coordinate]:
    seen: Dict[tuple[float, float], Coordinate] = {}
    for measurement in measurements:
        seen.setdefault((measurement.lat, measurement.lon), measurement.location)
    return list(seen.values())


class StatisticsAggregator:
    """Groups measurements by network and agrees on each statistic via consensus."""

    def __init__(self, engine: ConsensusEngine) -> None:
        self.engine = engine

    async def aggregate(self, measurements: Iterable[Measurement]) -> List[NetworkSummary]:
        groups = group_by_network(measurements)
        if not groups:
            return []

        logger.info("Aggregating %s networks", len(groups))
        names = list(groups)
        outcomes = await asyncio.gather(
            *(self.summarize(name, groups[name]) for name in names),
            return_exceptions=True,
        )

        summaries: List[NetworkSummary] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    "Skipping network after statistics failure",
                    extra={"network_name": name, "reason": f"{type(outcome).__name__}: {outcome}"},
                )
                continue
            summaries.append(outcome)
        return summaries

    async def summarize(self, network_name: str, points: Sequence[Measurement]) -> NetworkSummary:
        speeds = [point.speed_mbps for point in points]
        logger.debug(
            "Calculating statistics",
            extra={"network_name": network_name, "measurement_count": len(speeds)},
        )

        average, median, minimum, maximum = await asyncio.gather(
            self.engine.compute(lambda: _average(speeds)),
            self.engine.compute(lambda: median_aggregate(speeds)),
            self.engine.compute(lambda: min(speeds)),
            self.engine.compute(lambda: max(speeds)),
        )

        return NetworkSummary(
            network_name=network_name,
            total_measurements=len(speeds),
            average_speed=average.value,
            median_speed=median.value,
            min_speed=minimum.value,
            max_speed=maximum.value,
            speed_range=maximum.value - minimum.value,
            unique_locations=unique_locations(points),
            latest_timestamp=max(point.timestamp for point in points),
        )
