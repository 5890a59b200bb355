from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, NoReturn

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the statistics service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def get_statistics(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/statistics")

    def submit_measurements(self, path: Path) -> List[Dict[str, Any]]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise typer.BadParameter(f"Could not read measurements from {path}: {exc}") from exc
        if isinstance(payload, list):
            payload = {"dataPoints": payload}
        if not isinstance(payload, dict) or "dataPoints" not in payload:
            raise typer.BadParameter(
                "Measurement file must hold a list or an object with a dataPoints field."
            )
        return self._request("POST", "/statistics", json=payload)

    def verify(self, address: str, lat: float, lon: float) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/verify",
            json={"reporterAddress": address, "lat": lat, "lon": lon},
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            typer.secho(f"Request to {self._config.base_url} failed: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
