"""Locate and decode the JSON measurement embedded in a binary archive."""

from __future__ import annotations

import json
import logging
import math
from numbers import Real
from typing import Any, Dict, Mapping, Optional

from models.records import Measurement, parse_timestamp

logger = logging.getLogger(__name__)

_EXPECTED_FIELDS = ('"location"', '"wifiName"', '"speed"')
_START_FOLLOWERS = ('"', "\n", " ")
_LOOKAHEAD = 50


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        # Only ASCII structural characters matter, so any single-byte mapping works.
        return data.decode("latin-1")


def _find_object_start(content: str) -> int:
    position = content.find("{")
    while position != -1:
        follower = content[position + 1 : position + 2]
        if follower in _START_FOLLOWERS:
            window = content[position : position + _LOOKAHEAD]
            if any(field in window for field in _EXPECTED_FIELDS):
                return position
        position = content.find("{", position + 1)
    return content.find("{")


def _find_object_end(content: str, start: int) -> int:
    """Return the index just past the brace closing the object at ``start``, or -1."""
    depth = 0
    in_string = False
    escape_next = False

    for index in range(start, len(content)):
        char = content[index]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return -1


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _validation_error(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return "payload is not an object"
    if not _is_text(payload.get("wifiName")):
        return "missing wifiName"
    if not _is_text(payload.get("walletAddress")):
        return "missing walletAddress"
    location = payload.get("location")
    if not isinstance(location, dict):
        return "missing location"
    if not (_is_number(location.get("lat")) and _is_number(location.get("lng"))):
        return "invalid location coordinates"
    if not _is_number(payload.get("speed")):
        return "invalid speed"
    return None


def extract_payload(data: bytes) -> Optional[Dict[str, Any]]:
    """Return the measurement object embedded in ``data``, or ``None`` when absent.

    The archive envelope is treated as opaque: the first brace that looks like the
    start of a measurement object is matched against its closing brace (respecting
    JSON string escapes) and the enclosed text is decoded and validated. Any
    failure along the way is reported as absence rather than raised.
    """
    content = _decode(data)

    start = _find_object_start(content)
    if start == -1:
        logger.warning("No JSON object found in archive", extra={"reason": "no opening brace"})
        return None

    end = _find_object_end(content, start)
    if end == -1:
        logger.warning("Archive JSON object is incomplete", extra={"reason": "unbalanced braces"})
        return None

    try:
        payload = json.loads(content[start:end])
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.warning("Archive JSON object failed to parse", extra={"reason": str(exc)})
        return None

    reason = _validation_error(payload)
    if reason is not None:
        logger.warning("Archive JSON object has unexpected shape", extra={"reason": reason})
        return None

    return payload


def measurement_from_payload(payload: Mapping[str, Any]) -> Measurement:
    """Map an extracted archive payload onto the canonical measurement shape."""
    raw_time = payload.get("time")
    if not isinstance(raw_time, str):
        raise ValueError("Archive payload is missing a time value.")

    location = payload["location"]
    address = payload.get("ip")
    return Measurement(
        network_name=payload["wifiName"],
        speed_mbps=float(payload["speed"]),
        lat=float(location["lat"]),
        lon=float(location["lng"]),
        timestamp=parse_timestamp(raw_time),
        reporter_id=payload["walletAddress"],
        reporter_address=address if isinstance(address, str) and address.strip() else None,
    )
