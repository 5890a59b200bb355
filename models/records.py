"""Domain models shared across services."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# fromisoformat on 3.10 only accepts 3 or 6 fractional digits.
_FRACTION = re.compile(r"(:\d{2})\.(\d+)")


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


@dataclass(frozen=True, slots=True)
class Measurement:
    """A single network-quality observation reported by one participant."""

    network_name: str
    speed_mbps: float
    lat: float
    lon: float
    timestamp: datetime
    reporter_id: str
    reporter_address: Optional[str] = None

    @property
    def location(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)


@dataclass(frozen=True, slots=True)
class ArchiveSource:
    """Static descriptor of one content-addressed archive."""

    content_id: str
    retrieval_url: str
    label: str


@dataclass(frozen=True, slots=True)
class ConsensusResult(Generic[T]):
    """A value agreed on by ``sample_count`` independent execution contexts."""

    value: T
    sample_count: int

    def __post_init__(self) -> None:
        if self.sample_count < 1:
            raise ValueError("A consensus result needs at least one sample.")


@dataclass(frozen=True, slots=True)
class VerificationVerdict:
    """Outcome of checking a claimed location against a resolved one."""

    claimed_location: Coordinate
    resolved_location: Coordinate
    distance_km: float
    within_threshold: bool


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    candidate = _FRACTION.sub(
        lambda match: f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}", candidate, count=1
    )

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    rendered = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return rendered.replace("+00:00", "Z")
