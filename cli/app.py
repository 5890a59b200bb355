from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_statistics, render_verdict


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying the network quality consensus service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the service to respond.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("stats")
def stats_command(ctx: typer.Context) -> None:
    """Show per-network statistics over every retrievable archive."""
    state = _get_state(ctx)
    render_statistics(state.client.get_statistics())


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file of measurements."
    ),
) -> None:
    """Aggregate a local batch of measurements through the service."""
    state = _get_state(ctx)
    typer.echo(f"Submitting {file} to {state.config.base_url} ...")
    render_statistics(state.client.submit_measurements(file))


@app.command("verify")
def verify_command(
    ctx: typer.Context,
    address: str = typer.Option(..., "--address", "-a", help="Reporter network address."),
    lat: float = typer.Option(..., "--lat", help="Claimed latitude."),
    lon: float = typer.Option(..., "--lon", help="Claimed longitude."),
) -> None:
    """Check a claimed location against the reporter's network address."""
    state = _get_state(ctx)
    render_verdict(state.client.verify(address, lat, lon))
