import asyncio
import json
import signal
import sys

import typer

from core.environment.config import Settings, load_settings
from core.exceptions import BaseCustomException
from core.logging.providers import configure_logging
from eventpool.connection import ConnectionManager
from eventpool.entities import ChainFilter, EventRecord, SubscriptionOutcome
from eventpool.history import HistoryQuery
from eventpool.subscriber import EventSubscriber

app = typer.Typer(help="Event pool client")


def _settings(config: str, chain: str, gateway: bool) -> Settings:
    settings = load_settings(config, chain=chain)
    settings.gateway.enabled = gateway
    return settings


async def _follow(settings: Settings) -> SubscriptionOutcome:
    logger = configure_logging(settings.log_level, sys.stderr)
    chain_filter = ChainFilter.model_validate(settings.get_chain_config())

    manager = ConnectionManager.from_settings(settings, logger)
    connection = await manager.connect(settings)
    async with connection:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        def log_event(event: EventRecord) -> None:
            logger.info(
                f"Received event: Block={event.block_number}, "
                f"TxHash={event.tx_hash}, Data={event.data}"
            )

        subscription = await EventSubscriber(logger).subscribe(
            connection,
            chain_filter,
            log_event,
            on_terminated=lambda _: stop.set()
        )
        await stop.wait()
        if not subscription.done:
            logger.info("Shutting down...")
            subscription.cancel()
        return await subscription.wait()


async def _history(settings: Settings, tx_hash: str, skip: int, take: int) -> list[EventRecord]:
    logger = configure_logging(settings.log_level, sys.stderr)
    chain_filter = ChainFilter.model_validate(settings.get_chain_config())

    manager = ConnectionManager.from_settings(settings, logger)
    async with await manager.connect(settings) as connection:
        return await HistoryQuery(logger).get_events(connection, chain_filter, tx_hash, skip, take)


@app.command()
def follow(
    config: str = typer.Option("config/config.yaml", help="Path to config file"),
    chain: str = typer.Option("polygon", help="Configured chain to follow"),
    gateway: bool = typer.Option(True, "--gateway/--no-gateway", help="Use gateway to get node address"),
):
    """Stream events for a chain and log them until interrupted."""
    settings = _settings(config, chain, gateway)
    try:
        outcome = asyncio.run(_follow(settings))
    except BaseCustomException as e:
        typer.echo(f"Failed to follow events: {e.message}", err=True)
        raise typer.Exit(code=1)
    if outcome is SubscriptionOutcome.ERROR:
        raise typer.Exit(code=1)


@app.command()
def history(
    config: str = typer.Option("config/config.yaml", help="Path to config file"),
    chain: str = typer.Option("polygon", help="Configured chain to query"),
    gateway: bool = typer.Option(True, "--gateway/--no-gateway", help="Use gateway to get node address"),
    tx_hash: str = typer.Option("", help="Only events of this transaction"),
    skip: int = typer.Option(0, help="Records to skip"),
    take: int = typer.Option(100, help="Records to return"),
):
    """Print one page of historical events as JSON."""
    settings = _settings(config, chain, gateway)
    try:
        events = asyncio.run(_history(settings, tx_hash, skip, take))
    except BaseCustomException as e:
        typer.echo(f"Failed to get events: {e.message}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps([event.model_dump() for event in events], indent=2))


if __name__ == "__main__":
    app()
