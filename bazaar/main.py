"""
Main Entry Point (Composition Root)
"""
import asyncio
import logging
import signal
import sys
from typing import Any, List

import structlog
from rich.console import Console

from bazaar.application.context import BazaarContext, build_context
from bazaar.application.ports import IMessageChannel, INotificationService
from bazaar.application.report import ReportService
from bazaar.infrastructure.channel import LocalChannelHub, WebSocketChannel
from bazaar.infrastructure.config import settings
from bazaar.infrastructure.dialogs import ConsoleApprovalDialog
from bazaar.infrastructure.inventory import InMemoryActorDirectory, InMemoryInventory, load_world
from bazaar.infrastructure.storage import JsonFileKeyValueStore


def configure_logging(debug: bool = False, level: str = "INFO") -> None:
    min_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
    )


logger = structlog.get_logger()


class ConsoleNotifier(INotificationService):
    def __init__(self, report: ReportService, console: Console):
        self.report = report
        self.console = console

    async def notify(self, message: str, level: str = "INFO") -> None:
        icon = {"WARNING": "⚠️ ", "ERROR": "❌"}.get(level, "💰")
        self.report.add_log(message, level)
        self.console.print(f"{icon} {message}")


async def run(
    ctx: BazaarContext, report: ReportService, channel: Any, holders: List[str], stop_event: asyncio.Event
) -> None:
    """Shows the current state, then serves the message channel until stopped"""
    vendors = await ctx.catalog.get_vendors()
    logger.info("vendors_loaded", count=len(vendors), names=[v.name for v in vendors.values()])
    report.print_vendors(vendors.values())

    if ctx.identity.is_authority and not ctx.ledger.use_module_currency:
        await ctx.ledger.initialize_missing_coins(holders)
    await report.print_wallets(holders)

    if isinstance(channel, WebSocketChannel):
        listener = asyncio.create_task(channel.listen(stop_event))
        waiter = asyncio.create_task(stop_event.wait())
        await asyncio.wait({listener, waiter}, return_when=asyncio.FIRST_COMPLETED)
        for task in (listener, waiter):
            task.cancel()
    else:
        await stop_event.wait()

    for request_id in ctx.approvals.pending:
        ctx.approvals.dismiss(request_id)
    await ctx.router.drain()


async def main() -> None:
    if settings is None:
        sys.exit(1)

    configure_logging(settings.debug_mode, settings.log_level)
    logger.info("startup", **settings.model_dump(mode="json", exclude={"gem_base_values"}))

    # 1. Storage & world
    store = JsonFileKeyValueStore(settings.data_file)
    inventory = InMemoryInventory()
    actors = InMemoryActorDirectory()
    await load_world(store, inventory, actors)

    # 2. Channel
    channel: IMessageChannel
    if settings.channel_url:
        channel = WebSocketChannel(settings.channel_url)
        await channel.connect()
    else:
        logger.warning("no_channel_url", message="Running without other participants")
        channel = LocalChannelHub().endpoint()

    # 3. Composition
    console = Console()
    dialog = ConsoleApprovalDialog(console=console)
    ctx = build_context(settings, store, inventory, actors, channel, dialog)
    report = ReportService(ctx.ledger, actors, console)
    dialog.format_currency = ctx.ledger.format_currency
    ctx.transactions.notifier = ConsoleNotifier(report, console)

    # 4. Shutdown handling
    stop_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, signal_handler)
    loop.add_signal_handler(signal.SIGTERM, signal_handler)

    # 5. Main Loop
    logger.info("starting_loop", authority=ctx.identity.is_authority, user_id=ctx.identity.user_id)
    try:
        holders = actors.user_ids if settings.use_module_currency else actors.actor_ids
        await run(ctx, report, channel, holders, stop_event)
    except Exception as e:
        logger.critical("fatal_error", error=str(e))
        print(f"FATAL: {e}")
    finally:
        if isinstance(channel, WebSocketChannel):
            await channel.close()
        logger.info("shutdown_complete")


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
