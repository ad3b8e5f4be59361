"""Defines the Command Line Interface (CLI) using Typer."""

import asyncio
import contextlib
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv
from typer import Argument, Option
from typing_extensions import Annotated

from mo_linear.config import Settings
from mo_linear.server.transport import StdioTransport
from mo_linear.services import Services
from mo_linear.webhooks.listener import WebhookListener

load_dotenv()

typer_app = typer.Typer(pretty_exceptions_show_locals=False)


def configure_logging(debug: bool = False) -> None:
    """Send structured logs to stderr. Standard output carries the protocol."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(stream=sys.stderr, level=level, format="%(message)s", force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False) if debug else structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_settings(
    data_dir: Path | None,
    debug: bool,
    enable_webhooks: bool | None = None,
    webhook_port: int | None = None,
    heartbeat_interval: float | None = None,
) -> Settings:
    """Load settings from the environment, overridden by explicit CLI options."""
    overrides: dict[str, object] = {"DEBUG": debug}
    if data_dir is not None:
        overrides["MO_DATA_DIR"] = data_dir
    if enable_webhooks is not None:
        overrides["MO_ENABLE_WEBHOOKS"] = enable_webhooks
    if webhook_port is not None:
        overrides["WEBHOOK_PORT"] = webhook_port
    if heartbeat_interval is not None:
        overrides["HEARTBEAT_INTERVAL"] = heartbeat_interval
    return Settings(**overrides)


async def serve_forever(settings: Settings) -> None:
    """Run the stdio transport, and the webhook listener when enabled, until input closes or a signal arrives."""
    logger = structlog.get_logger(__name__)
    services = Services.create(settings)
    router = services.build_router()
    transport = StdioTransport(router, heartbeat_interval=settings.HEARTBEAT_INTERVAL)
    listener: WebhookListener | None = None
    if settings.MO_ENABLE_WEBHOOKS:
        listener = WebhookListener(services.store, services.engine, host=settings.WEBHOOK_HOST, port=settings.WEBHOOK_PORT)
        try:
            await listener.start()
        except OSError as exc:
            logger.error("Could not start webhook listener", port=settings.WEBHOOK_PORT, error=str(exc))
            listener = None

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    serve_task = asyncio.create_task(transport.serve())
    stop_task = asyncio.create_task(stop_requested.wait())
    try:
        await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (serve_task, stop_task):
            task.cancel()
        outcomes = await asyncio.gather(serve_task, stop_task, return_exceptions=True)
        failed = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
        for error in failed:
            logger.error("Transport stopped with an error", error=str(error), error_type=type(error).__name__)
        await transport.stop()
        if listener is not None:
            await listener.stop()
        await services.close()
        logger.info("Shut down", clean=not failed)


async def run_once(settings: Settings, command: str) -> dict:
    """Dispatch a single command line and return the wire response."""
    services = Services.create(settings)
    try:
        result = await services.build_router().dispatch(command)
    finally:
        await services.close()
    return result.to_wire()


@typer_app.command(name="serve")
def serve_cli(
    data_dir: Annotated[Optional[Path], Option(envvar="MO_DATA_DIR", help="Directory holding tasks.json and config.json.")] = None,
    enable_webhooks: Annotated[
        Optional[bool], Option("--enable-webhooks/--disable-webhooks", envvar="MO_ENABLE_WEBHOOKS", help="Run the Linear webhook listener.")
    ] = None,
    webhook_port: Annotated[Optional[int], Option(envvar="WEBHOOK_PORT", help="Port for the webhook listener.")] = None,
    heartbeat_interval: Annotated[Optional[float], Option(envvar="HEARTBEAT_INTERVAL", help="Seconds between heartbeat messages.")] = None,
    debug: Annotated[bool, Option(envvar="DEBUG", help="Enable debug logging.")] = False,
) -> None:
    """Serve the command protocol over standard input and output."""
    configure_logging(debug)
    settings = build_settings(data_dir, debug, enable_webhooks, webhook_port, heartbeat_interval)
    asyncio.run(serve_forever(settings))


@typer_app.command(name="run")
def run_cli(
    command: Annotated[str, Argument(help='Command line to run, e.g. "/mo tasks status:todo".')],
    data_dir: Annotated[Optional[Path], Option(envvar="MO_DATA_DIR", help="Directory holding tasks.json and config.json.")] = None,
    as_json: Annotated[bool, Option("--json", help="Print the full JSON response instead of the markdown.")] = False,
    debug: Annotated[bool, Option(envvar="DEBUG", help="Enable debug logging.")] = False,
) -> None:
    """Run one command and print its result."""
    configure_logging(debug)
    settings = build_settings(data_dir, debug)
    if not command.strip().startswith(settings.MO_NAMESPACE):
        command = f"{settings.MO_NAMESPACE} {command.strip()}"
    response = asyncio.run(run_once(settings, command))
    if as_json:
        typer.echo(json.dumps(response, indent=2, ensure_ascii=False))
    else:
        typer.echo(response.get("markdown") or response["message"])
    if not response["success"]:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    typer_app()
