from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_SOURCES_PATH_ENV = "ARCHIVE_SOURCES_PATH"
_FETCH_TIMEOUT_ENV = "ARCHIVE_FETCH_TIMEOUT"
_CONTEXTS_ENV = "CONSENSUS_CONTEXTS"
_THRESHOLD_ENV = "DISTANCE_THRESHOLD_KM"
_GEO_URL_ENV = "GEOLOCATION_URL"
_GEO_TOKEN_ENV = "GEOLOCATION_TOKEN"
_GEO_TIMEOUT_ENV = "GEOLOCATION_TIMEOUT"
_WORKFLOW_CLI_ENV = "WORKFLOW_CLI"
_WORKFLOW_DIR_ENV = "WORKFLOW_DIR"
_WORKFLOW_NAME_ENV = "WORKFLOW_NAME"
_WORKFLOW_TARGET_ENV = "CRE_TARGET"
_WORKFLOW_TIMEOUT_ENV = "WORKFLOW_TIMEOUT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    sources_path: Optional[str]
    fetch_timeout: float
    consensus_contexts: int
    distance_threshold_km: float
    geolocation_url: str
    geolocation_token: Optional[str]
    geolocation_timeout: float
    workflow_cli: str
    workflow_dir: str
    workflow_name: str
    workflow_target: str
    workflow_timeout: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        sources_path=_read_optional_env(_SOURCES_PATH_ENV, None),
        fetch_timeout=_read_positive_float(_FETCH_TIMEOUT_ENV, 30.0),
        consensus_contexts=_read_positive_int(_CONTEXTS_ENV, 5),
        distance_threshold_km=_read_positive_float(_THRESHOLD_ENV, 10.0),
        geolocation_url=_read_str_env(_GEO_URL_ENV, "https://ipinfo.io/{address}/json"),
        geolocation_token=_read_optional_env(_GEO_TOKEN_ENV, None),
        geolocation_timeout=_read_positive_float(_GEO_TIMEOUT_ENV, 10.0),
        workflow_cli=_read_str_env(_WORKFLOW_CLI_ENV, "cre"),
        workflow_dir=_read_str_env(_WORKFLOW_DIR_ENV, "../chainlink/verifi-workflow"),
        workflow_name=_read_str_env(_WORKFLOW_NAME_ENV, "verifi-workflow"),
        workflow_target=_read_str_env(_WORKFLOW_TARGET_ENV, "staging-settings"),
        workflow_timeout=_read_positive_float(_WORKFLOW_TIMEOUT_ENV, 60.0),
        log_level=_read_log_level("INFO"),
    )
