"""
Tests for the sell workflow in both currency modes.
"""
import asyncio
from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from bazaar.domain import ApprovalDecision, RequestedItem, TradeKind, TradeRequest, TransactionState
from tests.fakes import ScriptedDialog, Tabletop, make_settings


async def count_of(table: Tabletop, stack_id: str) -> int:
    entry = await table.inventory.get_item("hero", stack_id)
    return 0 if entry is None else entry.count


class TestAutomaticSell:
    @pytest.mark.parametrize("use_module_currency", [True, False])
    def test_half_of_twenty_pays_ten(self, use_module_currency):
        settings = make_settings(use_module_currency=use_module_currency)

        async def scenario():
            table = Tabletop(settings)
            garnet = await table.give("hero", "uuid-gem")
            await table.gm.ledger.set_actor_balance("hero", 5)
            result = await table.player.transactions.submit_sell("hero", [RequestedItem(id=garnet, quantity=1)])
            return result, await table.gm.ledger.get_actor_balance("hero"), await count_of(table, garnet)

        result, balance, left = asyncio.run(scenario())
        assert result.success
        assert result.amount == Decimal("10")
        assert result.percentage == 50
        assert result.message == "Hero automatically sold 1 items for $10.00 (50% of $20.00)!"
        assert balance == Decimal("15")
        assert left == 0

    def test_selling_part_of_a_stack(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            garnets = await table.give("hero", "uuid-gem", 3)
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=garnets, quantity=2)])
            return result, await count_of(table, garnets), await table.gm.ledger.get_actor_balance("hero")

        result, left, balance = asyncio.run(scenario())
        assert result.success
        assert left == 1
        assert balance == Decimal("20")

    def test_selling_more_than_carried(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            garnet = await table.give("hero", "uuid-gem", 1)
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=garnet, quantity=4)])
            return result, await count_of(table, garnet)

        result, left = asyncio.run(scenario())
        assert not result.success
        assert result.message == "No items were sold."
        assert result.invalid_items[0].reason == "Not enough Garnet to sell (have 1, trying to sell 4)."
        assert left == 1

    def test_unknown_stack(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            return await table.gm.transactions.submit_sell("hero", [RequestedItem(id="nothing", name="Idol")])

        result = asyncio.run(scenario())
        assert not result.success
        assert result.invalid_items[0].reason == "Idol was not found in the inventory."

    def test_prices_come_from_the_inventory(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            garnet = await table.give("hero", "uuid-gem")
            return await table.gm.transactions.submit_sell(
                "hero", [RequestedItem(id=garnet, quantity=1, price=Decimal("9999"))]
            )

        assert asyncio.run(scenario()).amount == Decimal("10")


class TestSellRounding:
    def test_below_one_unit_is_refused_with_coins(self, coin_settings):
        async def scenario():
            table = Tabletop(coin_settings)
            pebble = await table.give("hero", "uuid-pebble")
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=pebble, quantity=1)])
            return result, await count_of(table, pebble), await table.gm.ledger.get_actor_balance("hero")

        result, left, balance = asyncio.run(scenario())
        assert not result.success
        assert result.message == "It's not worth trading just that! The sale value must be at least 1."
        assert left == 1
        assert balance == Decimal("0")

    def test_below_one_unit_is_paid_exactly_in_module_mode(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            pebble = await table.give("hero", "uuid-pebble")
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=pebble, quantity=1)])
            return result, await table.gm.ledger.get_actor_balance("hero")

        result, balance = asyncio.run(scenario())
        assert result.success
        assert balance == Decimal("0.4")

    def test_coin_payout_is_rounded_up(self, coin_settings):
        async def scenario():
            table = Tabletop(coin_settings)
            pebbles = await table.give("hero", "uuid-pebble", 3)
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=pebbles, quantity=3)])
            return result, await table.gm.ledger.get_actor_balance("hero")

        result, balance = asyncio.run(scenario())
        assert result.success
        assert result.amount == Decimal("2")
        assert balance == Decimal("2")


class TestSellApproval:
    def test_gm_chooses_percentage(self):
        settings = make_settings(require_gm_approval=True)

        async def scenario():
            table = Tabletop(settings, ScriptedDialog(ApprovalDecision(approved=True, percentage=80)))
            garnet = await table.give("hero", "uuid-gem")
            result = await table.player.transactions.submit_sell("hero", [RequestedItem(id=garnet)])
            return result, await table.gm.ledger.get_actor_balance("hero"), table.dialog.opened[0][0]

        result, balance, request = asyncio.run(scenario())
        assert result.success
        assert result.message == "Hero sold 1 items for $16.00 (80% of $20.00)!"
        assert balance == Decimal("16")
        assert request.default_percentage == 50

    def test_missing_percentage_falls_back_to_automatic(self):
        settings = make_settings(require_gm_approval=True, automatic_sell_percentage=25)

        async def scenario():
            table = Tabletop(settings, ScriptedDialog(ApprovalDecision(approved=True)))
            garnet = await table.give("hero", "uuid-gem")
            return await table.gm.transactions.submit_sell("hero", [RequestedItem(id=garnet)])

        result = asyncio.run(scenario())
        assert result.amount == Decimal("5")
        assert result.percentage == 25

    def test_decline_keeps_the_items(self):
        settings = make_settings(require_gm_approval=True)

        async def scenario():
            table = Tabletop(settings, ScriptedDialog(ApprovalDecision(approved=False)))
            garnet = await table.give("hero", "uuid-gem")
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=garnet)])
            return result, await count_of(table, garnet)

        result, left = asyncio.run(scenario())
        assert not result.success
        assert result.message == "Sale declined by GM."
        assert left == 1


class TestSellRestrictions:
    def test_coins_cannot_be_sold(self, coin_settings):
        async def scenario():
            table = Tabletop(coin_settings)
            await table.gm.ledger.set_actor_balance("hero", 84)
            coin = next(e for e in await table.inventory.list_items("hero") if e.count > 0)
            result = await table.player.transactions.submit_sell("hero", [RequestedItem(id=coin.id, quantity=1)])
            return result, coin.name, await table.gm.ledger.get_actor_balance("hero")

        result, coin_name, balance = asyncio.run(scenario())
        assert not result.success
        assert result.message == "No items were sold."
        assert result.invalid_items[0].reason == f"{coin_name} is currency and cannot be sold."
        assert balance == Decimal("84")

    def test_worthless_items_cannot_be_sold(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            table.inventory.register_template("uuid-letter", "Letter", "0")
            letter = await table.give("hero", "uuid-letter")
            result = await table.gm.transactions.submit_sell("hero", [RequestedItem(id=letter)])
            return result, await count_of(table, letter)

        result, left = asyncio.run(scenario())
        assert not result.success
        assert result.invalid_items[0].reason == "Letter has no value and cannot be sold."
        assert left == 1


class TestSellSettlement:
    @staticmethod
    def refuse_to_remove(table: Tabletop, stack_id: str) -> None:
        remove_quantity = table.inventory.remove_quantity

        async def stuck(holder_id, item_id, quantity):
            if item_id == stack_id:
                return False
            return await remove_quantity(holder_id, item_id, quantity)

        table.inventory.remove_quantity = stuck

    def test_failed_line_is_not_paid(self, module_settings):
        async def scenario():
            table = Tabletop(module_settings)
            garnet = await table.give("hero", "uuid-gem")
            sword = await table.give("hero", "uuid-sword")
            self.refuse_to_remove(table, sword)
            result = await table.gm.transactions.submit_sell(
                "hero", [RequestedItem(id=garnet), RequestedItem(id=sword)]
            )
            return (
                result,
                await count_of(table, garnet),
                await count_of(table, sword),
                await table.gm.ledger.get_actor_balance("hero"),
            )

        result, garnets, swords, balance = asyncio.run(scenario())
        assert result.success
        assert result.item_count == 1
        assert result.amount == Decimal("10")
        assert [line.reason for line in result.invalid_items] == ["Failed to remove Sword from inventory."]
        assert garnets == 0
        assert swords == 1
        assert balance == Decimal("10")

    def test_remainder_below_one_coin_reports_the_minimum(self, coin_settings):
        async def scenario():
            table = Tabletop(coin_settings)
            pebble = await table.give("hero", "uuid-pebble")
            sword = await table.give("hero", "uuid-sword")
            self.refuse_to_remove(table, sword)
            with capture_logs() as logs:
                result = await table.gm.transactions.submit_sell(
                    "hero", [RequestedItem(id=pebble), RequestedItem(id=sword)]
                )
            return result, logs, await table.gm.ledger.get_actor_balance("hero")

        result, logs, balance = asyncio.run(scenario())
        assert not result.success
        assert result.state is TransactionState.FAILED
        assert result.message == "It's not worth trading just that! The sale value must be at least 1."
        assert balance == Decimal("0")
        assert any(entry["event"] == "settlement_inconsistency" for entry in logs)


class TestDuplicateRequests:
    def test_only_recent_request_ids_are_remembered(self, module_settings):
        def request(request_id):
            return TradeRequest(request_id, TradeKind.SELL, "player-1", "hero", [RequestedItem(id="nothing")])

        async def scenario():
            table = Tabletop(module_settings)
            manager = table.gm.transactions
            manager.MAX_REMEMBERED_REQUESTS = 2
            for request_id in ("r1", "r2", "r3"):
                await manager.process(request(request_id))
            return await manager.process(request("r3")), await manager.process(request("r1"))

        repeated, forgotten = asyncio.run(scenario())
        assert repeated.message == "This request was already processed."
        assert forgotten.message == "No items were sold."
