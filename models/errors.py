"""Error conditions surfaced by the aggregation and verification services."""

from __future__ import annotations

from typing import Sequence


class NoDataError(ValueError):
    """Raised when a computation receives zero usable inputs."""


class InvalidInputError(ValueError):
    """Raised when caller-supplied input is missing or malformed."""


class LocationUnavailableError(LookupError):
    """Raised when a network address cannot be resolved to a coordinate."""


class WorkflowError(RuntimeError):
    """Raised when the remote workflow tooling fails or returns nothing usable."""


class AggregationUnavailableError(RuntimeError):
    """Raised when every aggregation tier has been exhausted."""

    def __init__(self, reasons: Sequence[tuple[str, str]]) -> None:
        self.reasons = list(reasons)
        summary = "; ".join(f"{tier}: {reason}" for tier, reason in self.reasons)
        super().__init__(f"All aggregation tiers failed ({summary or 'no tiers configured'}).")
