from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_coordinates(value: Any) -> str:
    if not isinstance(value, dict):
        return "-"
    return f"({value.get('x')}, {value.get('y')})"


def render_send_result(payload: Dict[str, Any]) -> None:
    color = typer.colors.GREEN if payload.get("success") else typer.colors.RED
    typer.secho(payload.get("message", ""), fg=color)
    if payload.get("dataSize") is not None:
        typer.echo(f"dataSize: {payload['dataSize']}")


def render_batch_result(payload: Dict[str, Any]) -> None:
    color = typer.colors.GREEN if payload.get("success") else typer.colors.YELLOW
    typer.secho(
        f"Batch finished: {payload.get('sent')} sent, {payload.get('failed')} failed",
        fg=color,
    )


def render_signal(payload: Dict[str, Any]) -> None:
    echo_heading(f"Signal {payload.get('id')}")
    echo_key_values(
        [
            ("deviceId", payload.get("deviceId")),
            ("time", payload.get("time")),
            ("dataLength", payload.get("dataLength")),
            ("dataVolume", payload.get("dataVolume")),
            ("avgSpeed", payload.get("avgSpeed")),
            ("minCoordinates", _format_coordinates(payload.get("minCoordinates"))),
            ("maxCoordinates", _format_coordinates(payload.get("maxCoordinates"))),
            ("createdAt", payload.get("createdAt")),
            ("updatedAt", payload.get("updatedAt")),
        ]
    )


def render_signal_page(payload: Dict[str, Any]) -> None:
    echo_heading(
        f"Signals (page {payload.get('page')}/{payload.get('totalPages')}, total {payload.get('total')})"
    )
    rows = payload.get("data") or []
    if not rows:
        typer.echo("No signals found.")
        return
    for row in rows:
        typer.echo(
            f"  - {row.get('id')} device={row.get('deviceId')} time={row.get('time')} "
            f"length={row.get('dataLength')} volume={row.get('dataVolume')} "
            f"avgSpeed={row.get('avgSpeed')}"
        )


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading(f"Statistics for {payload.get('deviceId')}")
    echo_key_values(
        [
            ("totalSignals", payload.get("totalSignals")),
            ("avgDataLength", payload.get("avgDataLength")),
            ("avgDataVolume", payload.get("avgDataVolume")),
            ("avgSpeed", payload.get("avgSpeed")),
            ("minDataLength", payload.get("minDataLength")),
            ("maxDataLength", payload.get("maxDataLength")),
            ("minDataVolume", payload.get("minDataVolume")),
            ("maxDataVolume", payload.get("maxDataVolume")),
            ("firstSignal", payload.get("firstSignal")),
            ("lastSignal", payload.get("lastSignal")),
        ]
    )
