"""Redundant computation with median consensus.

Every numeric quantity is computed once per independent execution context and the
surviving outcomes are reduced with a median, so a minority of contexts returning
an outlier (or failing outright) cannot silently corrupt the agreed value.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from numbers import Real
from typing import Any, Awaitable, Callable, Iterable, List, Protocol, Union

from models.errors import NoDataError
from models.records import ConsensusResult, Coordinate

logger = logging.getLogger(__name__)

ContextFunction = Callable[[], Union[Any, Awaitable[Any]]]


class ExecutionEnvironment(Protocol):
    """Runs a function once per independent context and returns the successful outcomes."""

    async def run(self, fn: ContextFunction) -> List[Any]:
        ...


class LocalExecutionEnvironment:
    """In-process stand-in for a distributed execution environment."""

    def __init__(self, contexts: int = 1) -> None:
        if contexts < 1:
            raise ValueError("At least one execution context is required.")
        self.contexts = contexts

    async def run(self, fn: ContextFunction) -> List[Any]:
        outcomes = await asyncio.gather(
            *(self._run_once(fn) for _ in range(self.contexts)),
            return_exceptions=True,
        )
        results: List[Any] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    "Execution context %s failed",
                    index,
                    extra={"reason": f"{type(outcome).__name__}: {outcome}"},
                )
                continue
            results.append(outcome)
        return results

    @staticmethod
    async def _run_once(fn: ContextFunction) -> Any:
        result = fn()
        if inspect.isawaitable(result):
            result = await result
        return result


def median_aggregate(values: Iterable[float]) -> float:
    """Middle value of the sorted sequence, or the mean of the two middle values."""
    ordered = sorted(values)
    if not ordered:
        raise NoDataError("No values available for median aggregation.")
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


class ConsensusEngine:
    """Reduces redundant outcomes from an execution environment to one trusted value."""

    def __init__(self, environment: ExecutionEnvironment) -> None:
        self.environment = environment

    async def compute(self, fn: ContextFunction) -> ConsensusResult[float]:
        outcomes = await self.environment.run(fn)
        values = [float(value) for value in outcomes if _is_finite_number(value)]
        dropped = len(outcomes) - len(values)
        if dropped:
            logger.warning(
                "Discarded %s non-numeric context outcomes",
                dropped,
                extra={"sample_count": len(values)},
            )
        if not values:
            raise NoDataError("No execution context produced a usable value.")
        return ConsensusResult(value=median_aggregate(values), sample_count=len(values))

    async def compute_coordinate(self, fn: ContextFunction) -> ConsensusResult[Coordinate]:
        outcomes = await self.environment.run(fn)
        coordinates = [
            outcome
            for outcome in outcomes
            if isinstance(outcome, Coordinate)
            and _is_finite_number(outcome.lat)
            and _is_finite_number(outcome.lon)
        ]
        if not coordinates:
            raise NoDataError("No execution context produced a usable coordinate.")
        agreed = Coordinate(
            lat=median_aggregate(coordinate.lat for coordinate in coordinates),
            lon=median_aggregate(coordinate.lon for coordinate in coordinates),
        )
        return ConsensusResult(value=agreed, sample_count=len(coordinates))
