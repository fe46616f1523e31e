"""Command line interface for running the flowrelay services."""

from __future__ import annotations

import asyncio
import json
import signal
from typing import Callable, Optional

import typer

from flowrelay import OutboxRelay, StageExecutor, get_repository, get_transport
from flowrelay.config import FlowRelayConfig, load_config
from flowrelay.logging_config import configure_logging

app = typer.Typer(help="CLI for flowrelay workflow execution")

run_app = typer.Typer(help="Commands for inspecting workflow runs")
app.add_typer(run_app, name="run")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Log level (default: from configuration)"
    ),
) -> None:
    """flowrelay CLI entry point."""
    configure_logging(log_level or load_config().log_level)


def _install_stop_handler(callback: Callable[[], None]) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, callback)
        except (NotImplementedError, RuntimeError):
            # Unsupported on this platform or outside the main thread;
            # Ctrl+C still interrupts via KeyboardInterrupt.
            break


async def _run_relay(config: FlowRelayConfig, lifespan: Optional[float]) -> None:
    transport = get_transport(config=config)
    await transport.connect()
    relay = OutboxRelay.from_config(config, transport, repository=get_repository())
    stop_event = asyncio.Event()
    _install_stop_handler(stop_event.set)
    try:
        await relay.run(stop_event=stop_event, lifespan=lifespan)
    finally:
        await transport.disconnect()


async def _run_worker(config: FlowRelayConfig, lifespan: Optional[float]) -> None:
    transport = get_transport(config=config)
    await transport.connect()
    executor = StageExecutor.from_config(config, transport, repository=get_repository())
    _install_stop_handler(executor.stop)
    try:
        await executor.start(lifespan=lifespan)
    finally:
        await transport.disconnect()


@app.command("relay")
def relay(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run until signalled)"
    ),
) -> None:
    """
    Run the outbox relay.

    Polls the outbox table and publishes a stage-0 message for every newly
    created workflow run, deleting each entry once published.

    Example:
        flowrelay relay
        flowrelay relay --lifespan 60
    """
    config = load_config()
    typer.echo(f"Starting outbox relay on topic {config.transport.topic}")
    asyncio.run(_run_relay(config, lifespan))


@app.command("worker")
def worker(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run until signalled)"
    ),
) -> None:
    """
    Run a stage executor.

    Consumes stage messages, executes the matching action of each workflow
    run and enqueues the next stage.

    Example:
        flowrelay worker
        flowrelay worker --lifespan 300
    """
    config = load_config()
    typer.echo(f"Starting stage executor on topic {config.transport.topic}")
    asyncio.run(_run_worker(config, lifespan))


@app.command("trigger")
def trigger(
    workflow_id: str,
    payload: str = typer.Option("{}", help="JSON object seeding the run context"),
) -> None:
    """
    Start a workflow run, as an inbound trigger would.

    Creates the run and its outbox entry in one transaction; the relay picks
    it up from there.

    Example:
        flowrelay trigger 6f1c... --payload '{"name": "Ann"}'
    """
    try:
        metadata = json.loads(payload)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid payload: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(metadata, dict):
        typer.secho("Payload must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_repository()
    try:
        run = asyncio.run(repo.create_run(workflow_id, metadata))
    except KeyError:
        typer.secho(f"Workflow {workflow_id} not found", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow run created: {run.id}")


@run_app.command("list")
def run_list() -> None:
    """List all workflow runs with their status."""
    repo = get_repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No workflow runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.workflow_id}\t{run.status.value}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """
    Show status, context and error of one workflow run.

    Example:
        flowrelay run show 0b7e...
        # Output: Workflow run 0b7e...: Error
        #         Error: No telegram credentials found for the user
    """
    repo = get_repository()
    run = asyncio.run(repo.get_run(run_id))
    if run is None:
        typer.echo("Workflow run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow run {run.id}: {run.status.value}")
    typer.echo(f"Workflow: {run.workflow_id}")
    if run.metadata:
        typer.echo(f"Context: {json.dumps(run.metadata)}")
    if run.error_message:
        typer.echo(f"Error: {run.error_message}")
    if run.finished_at:
        typer.echo(f"Finished at: {run.finished_at.isoformat()}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
