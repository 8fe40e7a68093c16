"""CLI entry point for sendrecv."""

import asyncio
import signal
from pathlib import Path

import click

from sendrecv import __version__
from sendrecv.call import EXIT_MISSING_CAPABILITY, CallController, exit_code_for
from sendrecv.config import Config, load_config
from sendrecv.logging import setup_logging
from sendrecv.media import AiortcMediaEngine, missing_capabilities
from sendrecv.protocols import CallState
from sendrecv.relay import NegotiationSession, RelayTransport, build_ssl_option
from sendrecv.state import CallStateMachine


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
@click.pass_context
def main(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """sendrecv - WebRTC send/receive call signaled over ntfy."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"], verbose=verbose)


async def run_call(config: Config) -> CallState:
    """Run one call until it ends or the process is interrupted."""
    relay = config.relay
    ssl_option = build_ssl_option(
        verify_tls=relay.verify_tls,
        ca_file=relay.ca_file,
        client_cert=relay.client_cert,
    )

    async with RelayTransport(
        server=relay.server,
        ssl=ssl_option,
        request_timeout=relay.request_timeout,
    ) as transport:
        call = CallStateMachine()
        session = NegotiationSession(
            transport,
            call,
            offer_topic=relay.offer_topic,
            answer_topic=relay.answer_topic,
            connect_timeout=config.negotiation.connect_timeout,
            answer_timeout=config.negotiation.answer_timeout,
        )
        engine = AiortcMediaEngine(stun_servers=config.stun_servers)
        controller = CallController(engine, session, call)
        engine.on_failed(controller.fail)

        loop = asyncio.get_running_loop()
        pending_stops: set[asyncio.Task] = set()

        def _request_stop() -> None:
            task = asyncio.create_task(controller.stop("interrupted"))
            pending_stops.add(task)
            task.add_done_callback(pending_stops.discard)

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
        try:
            return await controller.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


@main.command()
@click.pass_context
def call(ctx: click.Context) -> None:
    """Place a call and run it until interrupted."""
    config = ctx.obj["config"]

    missing = missing_capabilities()
    if missing:
        for mime_type in missing:
            click.echo(f"Required codec '{mime_type}' not found", err=True)
        raise SystemExit(EXIT_MISSING_CAPABILITY)

    click.echo(f"Signaling via {config.relay.server}")
    click.echo("Press Ctrl+C to stop")
    state = asyncio.run(run_call(config))

    if state == CallState.STOPPED:
        click.echo("Call stopped")
    else:
        click.echo(f"Call ended with {state.name}", err=True)
    raise SystemExit(exit_code_for(state))


@main.command()
def check() -> None:
    """Check that the required media capabilities are available."""
    missing = missing_capabilities()
    if missing:
        for mime_type in missing:
            click.echo(f"Required codec '{mime_type}' not found", err=True)
        raise SystemExit(EXIT_MISSING_CAPABILITY)
    click.echo("All required codecs available")


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"sendrecv version {__version__}")
