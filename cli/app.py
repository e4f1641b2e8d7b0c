from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from app.main import create_app
from cli.client import RelayClient, load_readings_file
from cli.config import CLIConfig, load_config
from cli.render import render_job_result, render_watermark
from logging_config import configure_logging
from models.records import parse_timestamp
from services.aggregation import build_default_job
from services.errors import PipelineError
from settings import ConfigurationError, RelayVariant, get_relay_settings

logger = logging.getLogger(__name__)


@dataclass
class CLIState:
    config: CLIConfig
    client: RelayClient


app = typer.Typer(
    help="Operate the reading relays and the hourly aggregation job.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Relay base URL (defaults to RELAY_BASE_URL env or http://localhost:8080).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds before an HTTP request to the relay times out.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = RelayClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("serve")
def serve_command(
    variant: Optional[RelayVariant] = typer.Option(
        None,
        "--variant",
        case_sensitive=False,
        help="Relay variant (defaults to RELAY_VARIANT env).",
    ),
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
    port: Optional[int] = typer.Option(None, "--port", help="Listen port (defaults to PORT env)."),
) -> None:
    """Run an ingestion relay."""
    try:
        settings = get_relay_settings()
    except ConfigurationError as exc:
        raise _fail(f"Invalid configuration: {exc}") from exc

    relay_app = create_app(variant or settings.variant)
    uvicorn.run(relay_app, host=host, port=port or settings.port, log_config=None)


@app.command("run-job")
def run_job_command(
    now: Optional[str] = typer.Option(
        None,
        "--now",
        help="Treat this RFC 3339 timestamp as the current time.",
    ),
) -> None:
    """Export the next complete hour and advance the watermark."""
    configure_logging()
    try:
        current = parse_timestamp(now) if now is not None else None
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--now") from exc

    try:
        job = build_default_job()
    except ConfigurationError as exc:
        raise _fail(f"Invalid configuration: {exc}") from exc

    try:
        result = job.run(current)
    except PipelineError as exc:
        logger.exception("Aggregation job failed", extra={"reason": type(exc).__name__})
        raise _fail(f"Aggregation job failed: {exc}") from exc
    render_job_result(result)


@app.command("watermark")
def watermark_command() -> None:
    """Show the stored watermark of the aggregation job."""
    try:
        job = build_default_job()
    except ConfigurationError as exc:
        raise _fail(f"Invalid configuration: {exc}") from exc

    try:
        watermark = job.watermarks.read()
    except PipelineError as exc:
        raise _fail(f"Reading the watermark failed: {exc}") from exc
    render_watermark(watermark)


@app.command("send")
def send_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="CSV or JSON file of readings."
    ),
    endpoint: str = typer.Option(
        RelayVariant.temperature.endpoint,
        "--endpoint",
        "-e",
        help="Relay endpoint receiving the batch.",
    ),
) -> None:
    """POST a batch of readings to a running relay."""
    state = _get_state(ctx)
    readings = load_readings_file(file)
    typer.echo(f"Sending {len(readings)} readings to {state.config.base_url}{endpoint} ...")
    state.client.post_readings(endpoint, readings)
    typer.secho(f"Relay accepted {len(readings)} readings.", fg=typer.colors.GREEN)


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Check that a relay is reachable."""
    state = _get_state(ctx)
    payload = state.client.health()
    if payload.get("ok") is not True:
        raise _fail(f"Relay at {state.config.base_url} reported {payload!r}.")
    typer.secho(f"Relay at {state.config.base_url} is up.", fg=typer.colors.GREEN)
