from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_statistics(statistics: List[Dict[str, Any]]) -> None:
    echo_heading("Network Statistics")
    if not statistics:
        typer.echo("No measurements available.")
        return

    for entry in sorted(statistics, key=lambda item: str(item.get("networkName"))):
        typer.echo()
        echo_heading(str(entry.get("networkName")))
        echo_key_values(
            [
                ("measurements", entry.get("totalMeasurements")),
                ("average_mbps", entry.get("averageSpeed")),
                ("median_mbps", entry.get("medianSpeed")),
                ("min_mbps", entry.get("minSpeed")),
                ("max_mbps", entry.get("maxSpeed")),
                ("range_mbps", entry.get("speedRange")),
                ("latest", entry.get("latestTimestamp")),
            ]
        )
        locations = entry.get("uniqueLocations") or []
        if locations:
            typer.echo("locations:")
            for location in locations:
                typer.echo(f"  - {location.get('lat')}, {location.get('lon')}")


def render_verdict(payload: Dict[str, Any]) -> None:
    echo_heading("Location Verification")
    claimed = payload.get("claimedLocation") or {}
    resolved = payload.get("resolvedLocation") or {}
    echo_key_values(
        [
            ("claimed", f"{claimed.get('lat')}, {claimed.get('lon')}"),
            ("resolved", f"{resolved.get('lat')}, {resolved.get('lon')}"),
            ("distance_km", payload.get("distanceKm")),
        ]
    )
    if payload.get("withinThreshold"):
        typer.secho("verdict: within threshold", fg=typer.colors.GREEN)
    else:
        typer.secho("verdict: outside threshold", fg=typer.colors.RED)
