"""Checks a reported location against the reporter's network vantage point."""

from __future__ import annotations

import logging
import math
from typing import Optional

from models.errors import InvalidInputError, LocationUnavailableError, NoDataError
from models.records import Coordinate, Measurement, VerificationVerdict
from services.consensus import ConsensusEngine
from services.geolocation import GeolocationClient

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_THRESHOLD_KM = 10.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lon - a.lon)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_within_threshold(distance_km: float, threshold_km: float = DEFAULT_THRESHOLD_KM) -> bool:
    return distance_km <= threshold_km


def _validate_claim(
    address: Optional[str], claimed: Optional[Coordinate]
) -> tuple[str, Coordinate]:
    if address is None or not address.strip():
        raise InvalidInputError("A reporter network address is required.")
    if claimed is None or claimed.lat is None or claimed.lon is None:
        raise InvalidInputError("Claimed latitude and longitude are required.")
    if not (math.isfinite(claimed.lat) and -90.0 <= claimed.lat <= 90.0):
        raise InvalidInputError(f"Latitude {claimed.lat} is out of range.")
    if not (math.isfinite(claimed.lon) and -180.0 <= claimed.lon <= 180.0):
        raise InvalidInputError(f"Longitude {claimed.lon} is out of range.")
    return address.strip(), claimed


class LocationVerifier:
    """Resolves the reporter's address and measures the distance to the claimed location."""

    def __init__(
        self,
        engine: ConsensusEngine,
        geolocation: GeolocationClient,
        threshold_km: float = DEFAULT_THRESHOLD_KM,
    ) -> None:
        self.engine = engine
        self.geolocation = geolocation
        self.threshold_km = threshold_km

    async def verify(
        self, reporter_address: Optional[str], claimed: Optional[Coordinate]
    ) -> VerificationVerdict:
        address, claimed = _validate_claim(reporter_address, claimed)

        resolved = await self._resolve(address)

        distance = await self.engine.compute(lambda: haversine_km(resolved, claimed))
        within = is_within_threshold(distance.value, self.threshold_km)
        logger.info(
            "Verified claimed location",
            extra={
                "source": address,
                "distance_km": round(distance.value, 2),
                "sample_count": distance.sample_count,
            },
        )
        return VerificationVerdict(
            claimed_location=claimed,
            resolved_location=resolved,
            distance_km=distance.value,
            within_threshold=within,
        )

    async def verify_measurement(self, measurement: Measurement) -> VerificationVerdict:
        return await self.verify(measurement.reporter_address, measurement.location)

    async def _resolve(self, address: str) -> Coordinate:
        async def lookup_in_context() -> Coordinate:
            coordinate = await self.geolocation.lookup(address)
            if coordinate is None:
                raise LocationUnavailableError(f"No location available for {address}.")
            return coordinate

        try:
            result = await self.engine.compute_coordinate(lookup_in_context)
        except NoDataError as exc:
            raise LocationUnavailableError(
                f"Location information not available for {address}."
            ) from exc
        return result.value
