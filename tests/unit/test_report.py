"""
Tests for the console report tables.
"""
import asyncio
import random
from decimal import Decimal

from rich.console import Console

from bazaar.application.gem_distribution import GemDistributor
from bazaar.application.report import ReportService
from bazaar.domain import Vendor, VendorItem
from tests.fakes import Tabletop


def render(console: Console, renderable) -> str:
    console.print(renderable)
    return console.export_text()


class TestReportService:
    def test_vendor_table(self, module_settings):
        table = Tabletop(module_settings)
        console = Console(record=True, width=100)
        report = ReportService(table.gm.ledger, table.actors, console)
        vendor = Vendor(
            id="v1",
            name="Smithy",
            items=[
                VendorItem(id="a", name="Anvil", price=Decimal("1200"), quantity=2),
                VendorItem(id="b", name="Nails", price=Decimal("0.1")),
            ],
        )
        text = render(console, report.vendor_table([vendor]))
        assert "Smithy" in text
        assert "$1,200.00" in text
        assert "∞" in text

    def test_empty_vendor_table(self, module_settings):
        table = Tabletop(module_settings)
        console = Console(record=True, width=100)
        report = ReportService(table.gm.ledger, table.actors, console)
        assert "No vendors yet" in render(console, report.vendor_table([]))

    def test_wallet_table(self, module_settings):
        table = Tabletop(module_settings)
        console = Console(record=True, width=100)
        report = ReportService(table.gm.ledger, table.actors, console)

        async def scenario():
            await table.gm.ledger.set_balance("player-1", Decimal("84"))
            return await report.wallet_table(["player-1"])

        text = render(console, asyncio.run(scenario()))
        assert "Alice" in text
        assert "$84.00" in text
        assert "1x Gold Coin" in text

    def test_gem_table(self, module_settings):
        table = Tabletop(module_settings)
        console = Console(record=True, width=100)
        report = ReportService(table.gm.ledger, table.actors, console)
        distributor = GemDistributor(module_settings, table.inventory, table.actors, rng=random.Random(3))

        distribution = asyncio.run(distributor.distribute("hero", 500, min_types=3, max_types=3))
        text = render(console, report.gem_table(distribution))
        assert "Gems for Hero" in text
        assert f"({distribution.accuracy}%)" in text

    def test_log_keeps_the_latest_entries(self, module_settings):
        table = Tabletop(module_settings)
        report = ReportService(table.gm.ledger, table.actors, Console(record=True))
        for i in range(15):
            report.add_log(f"entry {i}", "WARNING" if i % 2 else "INFO")
        assert len(report.logs) == ReportService.MAX_LOGS
        assert "entry 14" in report.logs[-1]
