from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_batch_result,
    render_send_result,
    render_signal,
    render_signal_page,
    render_stats,
)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the x-ray telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
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
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send-sample")
def send_sample_command(ctx: typer.Context) -> None:
    """Publish the service's sample x-ray message."""
    state = _get_state(ctx)
    payload = state.client.send_sample()
    render_send_result(payload)
    if not payload.get("success"):
        raise typer.Exit(code=1)


@app.command("send-file")
def send_file_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to a JSON x-ray message."),
) -> None:
    """Publish an x-ray message read from a JSON file."""
    state = _get_state(ctx)
    typer.echo(f"Sending {file} to {state.config.base_url} ...")
    payload = state.client.send_custom(file)
    render_send_result(payload)
    if not payload.get("success"):
        raise typer.Exit(code=1)


@app.command("send-batch")
def send_batch_command(
    ctx: typer.Context,
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of messages to publish."),
    delay_ms: int = typer.Option(1000, "--delay-ms", min=0, help="Pause between messages in milliseconds."),
) -> None:
    """Publish a series of generated x-ray messages."""
    state = _get_state(ctx)
    payload = state.client.send_batch(count=count, delay_ms=delay_ms)
    render_batch_result(payload)


@app.command("signals")
def signals_command(
    ctx: typer.Context,
    device_id: Optional[str] = typer.Option(None, "--device-id", help="Only signals from this device."),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="ISO timestamp lower bound on time."),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="ISO timestamp upper bound on time."),
    page: int = typer.Option(1, "--page", min=1),
    limit: int = typer.Option(10, "--limit", min=1, max=100),
    sort_by: str = typer.Option("createdAt", "--sort-by"),
    sort_order: str = typer.Option("desc", "--sort-order"),
) -> None:
    """List stored signals."""
    state = _get_state(ctx)
    payload = state.client.list_signals(
        {
            "deviceId": device_id,
            "startDate": start_date,
            "endDate": end_date,
            "page": page,
            "limit": limit,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        }
    )
    render_signal_page(payload)


@app.command("signal")
def signal_command(
    ctx: typer.Context,
    signal_id: str = typer.Argument(..., help="Identifier of a stored signal."),
) -> None:
    """Show one stored signal."""
    state = _get_state(ctx)
    render_signal(state.client.get_signal(signal_id))


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Show aggregated statistics for a device."""
    state = _get_state(ctx)
    render_stats(state.client.get_stats(device_id))
