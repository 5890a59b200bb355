from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from models.records import Coordinate

logger = logging.getLogger(__name__)


def _parse_loc(payload: Any) -> Optional[Coordinate]:
    if not isinstance(payload, dict) or payload.get("bogon"):
        return None
    loc = payload.get("loc")
    if not isinstance(loc, str):
        return None
    parts = loc.split(",")
    if len(parts) != 2:
        return None
    try:
        return Coordinate(lat=float(parts[0]), lon=float(parts[1]))
    except ValueError:
        return None


class GeolocationClient:
    """Resolves a network address to an approximate coordinate over HTTP."""

    def __init__(
        self,
        url_template: str = "https://ipinfo.io/{address}/json",
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url_template = url_template
        self.token = token
        self.timeout = timeout
        self._transport = transport

    async def lookup(self, address: str) -> Optional[Coordinate]:
        """Return the coordinate for ``address``; ``None`` when the service has none.

        Transport failures and non-2xx responses propagate so the calling context
        is counted as failed rather than as a legitimate absence.
        """
        params: Dict[str, str] = {"token": self.token} if self.token else {}
        url = self.url_template.format(address=address)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Geolocation response was not JSON", extra={"source": address})
            return None

        coordinate = _parse_loc(payload)
        if coordinate is None:
            logger.info("No location available for address", extra={"source": address})
        return coordinate
