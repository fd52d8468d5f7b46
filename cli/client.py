from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def send_sample(self) -> Dict[str, Any]:
        return self._request("POST", "/producer/send")

    def send_custom(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} is not valid JSON: {exc.msg}") from exc
        return self._request("POST", "/producer/send-custom", json=payload)

    def send_batch(self, count: int, delay_ms: int) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/producer/send-batch",
            params={"count": count, "delayMs": delay_ms},
        )

    def list_signals(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {key: value for key, value in params.items() if value is not None}
        return self._request("GET", "/signals/filter", params=query)

    def get_signal(self, signal_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/signals/{signal_id}", not_found=f"Signal {signal_id} was not found.")

    def get_stats(self, device_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/signals/stats/{device_id}",
            not_found=f"No signals recorded for device {device_id}.",
        )

    def _request(
        self,
        method: str,
        url: str,
        not_found: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            if not_found is not None and response.status_code == 404:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
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
