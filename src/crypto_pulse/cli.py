"""Click-based CLI for crypto-pulse.

Thin wrapper around library modules. No business logic here; every operation
delegates to the ingestion service, the workers, or the statistics engine.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    # Quiet per-request logs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from crypto_pulse.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            console.print(f"[red]Configuration error: {exc}[/red]")
            raise SystemExit(1)
    return ctx.obj["config"]


def _resolve_coin(coin: str):
    from crypto_pulse.core import parse_asset_id

    try:
        return parse_asset_id(coin)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--coin")


def _require_shared_channel(config) -> None:
    """Exit unless the channel backend reaches other processes."""
    from crypto_pulse.core import ChannelBackend

    if config.channel.backend == ChannelBackend.MEMORY:
        console.print(
            "[red]channel.backend 'memory' only delivers inside one process; "
            "set channel.backend to 'redis' or use 'serve --with-consumer'.[/red]"
        )
        raise SystemExit(1)


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    """Set ``stop_event`` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig, stop_event)
        except NotImplementedError:
            # Windows event loops lack add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(stop_event.set))


def _on_signal(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    logger.info("%s received. Starting graceful shutdown...", sig.name)
    stop_event.set()


async def _build_ingestion(config):
    """Create store, provider, and ingestion service from config."""
    from crypto_pulse.ingestion import IngestionService
    from crypto_pulse.prices import CoinGeckoPriceProvider, create_store

    store = await create_store(config.storage)
    provider = CoinGeckoPriceProvider(config.provider)
    return store, provider, IngestionService(provider, store, config.assets)


def _print_report(report) -> None:
    table = Table(title="Ingestion Report")
    table.add_column("Coin", style="bold")
    table.add_column("Status")
    table.add_column("Reason")
    for outcome in report.outcomes:
        ok = outcome.status.value == "success"
        table.add_row(
            outcome.asset_id.value,
            "[green]success[/green]" if ok else "[red]failure[/red]",
            outcome.reason or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="CRYPTO_PULSE_CONFIG",
    default=None,
    help="Path to crypto-pulse.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="crypto-pulse")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """crypto-pulse: scheduled crypto price ingestion and statistics."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# scheduler
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def scheduler(ctx: click.Context) -> None:
    """Publish update triggers on a fixed interval until signalled."""
    config = _load_config(ctx)
    _require_shared_channel(config)

    async def _run() -> int:
        from crypto_pulse.channel import create_channel
        from crypto_pulse.core import ChannelConnectionError
        from crypto_pulse.worker import TriggerScheduler

        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)

        worker = TriggerScheduler(
            create_channel(config.channel),
            config.channel.topic,
            interval_seconds=config.scheduler.interval_seconds,
            publish_on_start=config.scheduler.publish_on_start,
        )
        try:
            return await worker.run_forever(stop_event)
        except ChannelConnectionError as exc:
            console.print(f"[red]Failed to start scheduler: {exc}[/red]")
            return 1

    sys.exit(_run_async(_run()))


# ---------------------------------------------------------------------------
# consumer
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def consumer(ctx: click.Context) -> None:
    """Run ingestion for every update trigger received until signalled."""
    config = _load_config(ctx)
    _require_shared_channel(config)

    async def _run() -> int:
        from crypto_pulse.channel import create_channel
        from crypto_pulse.core import ChannelConnectionError, PersistenceError
        from crypto_pulse.worker import TriggerConsumer

        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)

        try:
            store, provider, ingestion = await _build_ingestion(config)
        except PersistenceError as exc:
            console.print(f"[red]Failed to open store: {exc}[/red]")
            return 1

        try:
            worker = TriggerConsumer(
                create_channel(config.channel), config.channel.topic, ingestion
            )
            return await worker.run_forever(stop_event)
        except ChannelConnectionError as exc:
            console.print(f"[red]Failed to subscribe: {exc}[/red]")
            return 1
        finally:
            await provider.close()
            await store.close()

    sys.exit(_run_async(_run()))


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def publish(ctx: click.Context) -> None:
    """Publish a single update trigger and exit."""
    config = _load_config(ctx)
    _require_shared_channel(config)

    async def _run() -> int:
        from crypto_pulse.channel import create_channel, encode_trigger, make_trigger
        from crypto_pulse.core import ChannelConnectionError, ChannelPublishError

        channel = create_channel(config.channel)
        try:
            await channel.connect()
            await channel.publish(config.channel.topic, encode_trigger(make_trigger()))
        except (ChannelConnectionError, ChannelPublishError) as exc:
            console.print(f"[red]Failed to publish trigger: {exc}[/red]")
            return 1
        finally:
            try:
                await channel.close()
            except ChannelConnectionError as exc:
                logger.warning("Error closing channel: %s", exc)
        console.print(
            f"[green]✓[/green] Published update trigger to {config.channel.topic}"
        )
        return 0

    sys.exit(_run_async(_run()))


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def ingest(ctx: click.Context, output_format: str) -> None:
    """Fetch current prices once and store a snapshot per coin."""
    config = _load_config(ctx)

    async def _run():
        store, provider, ingestion = await _build_ingestion(config)
        try:
            return await ingestion.run_ingestion()
        finally:
            await provider.close()
            await store.close()

    from crypto_pulse.core import PersistenceError

    try:
        report = _run_async(_run())
    except PersistenceError as exc:
        console.print(f"[red]Failed to open store: {exc}[/red]")
        raise SystemExit(1)

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)

    if not report.succeeded:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--coin", required=True, help="Asset id, e.g. bitcoin.")
@click.option(
    "--window",
    type=int,
    default=100,
    show_default=True,
    help="Number of recent snapshots used for the deviation.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def stats(ctx: click.Context, coin: str, window: int, output_format: str) -> None:
    """Show the latest snapshot and price deviation for a coin."""
    config = _load_config(ctx)
    asset = _resolve_coin(coin)

    async def _run():
        from crypto_pulse.prices import create_store
        from crypto_pulse.stats import PriceStatistics

        store = await create_store(config.storage)
        try:
            statistics = PriceStatistics(store, window=window)
            return await statistics.latest(asset), await statistics.deviation(asset)
        finally:
            await store.close()

    from crypto_pulse.core import PersistenceError

    try:
        latest, deviation = _run_async(_run())
    except PersistenceError as exc:
        console.print(f"[red]Failed to read store: {exc}[/red]")
        raise SystemExit(1)

    if latest is None:
        console.print(f"[yellow]No data for {asset.value}. Run 'ingest' first.[/yellow]")
        raise SystemExit(1)

    from crypto_pulse.stats import round_for_report

    payload = {
        "coin": asset.value,
        "price": latest.price_usd,
        "marketCap": latest.market_cap_usd,
        "24hChange": latest.change_24h_pct,
        "observedAt": latest.observed_at.isoformat(),
        "deviation": round_for_report(deviation or 0.0),
    }

    if output_format == "json":
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title=f"{asset.value} statistics")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Price (USD)", f"{latest.price_usd:,.2f}")
    table.add_row("Market cap (USD)", f"{latest.market_cap_usd:,.0f}")
    table.add_row("24h change (%)", f"{latest.change_24h_pct:+.2f}")
    table.add_row("Observed at", payload["observedAt"])
    table.add_section()
    table.add_row(f"Deviation (last {window})", f"{payload['deviation']:.2f}")
    console.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: from config).")
@click.option(
    "--with-consumer",
    is_flag=True,
    default=False,
    help="Also subscribe to update triggers inside the API process.",
)
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    with_consumer: bool,
    reload: bool,
) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    # The app factory loads config itself; pass overrides through the env
    if ctx.obj.get("config_path"):
        os.environ["CRYPTO_PULSE_CONFIG"] = ctx.obj["config_path"]
    if with_consumer:
        os.environ["CRYPTO_PULSE_API__RUN_CONSUMER"] = "true"

    console.print(f"Starting crypto-pulse API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "crypto_pulse.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage location and snapshot counts per coin."""
    async def _run():
        config = _load_config(ctx)
        from crypto_pulse.prices import create_store

        store = await create_store(config.storage)
        try:
            counts = {a: await store.count(a) for a in config.assets}
            latest = {a: await store.latest(a) for a in config.assets}

            table = Table(title="crypto-pulse Status")
            table.add_column("Metric", style="bold")
            table.add_column("Value", justify="right")

            table.add_row("Storage backend", config.storage.backend.value)
            table.add_row("Database path", config.storage.sqlite_path)
            table.add_row("Channel", f"{config.channel.backend.value} ({config.channel.topic})")
            table.add_row("Interval (s)", f"{config.scheduler.interval_seconds:.0f}")
            table.add_section()
            for asset in config.assets:
                snap = latest[asset]
                table.add_row(
                    f"{asset.value} snapshots",
                    str(counts[asset])
                    + (f" (latest {snap.observed_at:%Y-%m-%d %H:%M})" if snap else ""),
                )

            console.print(table)
        finally:
            await store.close()

    from crypto_pulse.core import PersistenceError

    try:
        _run_async(_run())
    except PersistenceError as exc:
        console.print(f"[red]Failed to read store: {exc}[/red]")
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
