from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any, Dict, List, NoReturn

import httpx
import typer

from cli.config import CLIConfig


def load_readings_file(path: Path) -> List[Dict[str, str]]:
    """Read ``timestamp``/``value`` pairs from a CSV or JSON file."""
    if path.suffix.lower() == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        items = payload.get("data", []) if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise typer.BadParameter(f"{path} does not contain a list of readings.")
    else:
        with path.open("r", encoding="utf-8", newline="") as handle:
            items = list(csv.DictReader(handle))

    readings: List[Dict[str, str]] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or "timestamp" not in item or "value" not in item:
            raise typer.BadParameter(f"Reading #{index + 1} in {path} needs timestamp and value.")
        readings.append({"timestamp": str(item["timestamp"]).strip(), "value": str(item["value"]).strip()})
    return readings


class RelayClient:
    """Minimal HTTP client for a running relay."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def health(self) -> Dict[str, Any]:
        response = self._request("GET", "/")
        try:
            payload = response.json()
        except ValueError:
            self._fail(f"Relay at {self._config.base_url} returned a non-JSON body.")
        if not isinstance(payload, dict):
            self._fail(f"Relay at {self._config.base_url} returned {payload!r}.")
        return payload

    def post_readings(self, endpoint: str, readings: List[Dict[str, str]]) -> None:
        path = "/" + endpoint.lstrip("/")
        self._request("POST", path, json={"data": readings})

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.RequestError as exc:
            self._fail(f"Could not reach relay at {self._config.base_url}: {exc}")
        return response

    @staticmethod
    def _fail(message: str) -> NoReturn:
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    @classmethod
    def _handle_http_error(cls, exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        cls._fail(
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
