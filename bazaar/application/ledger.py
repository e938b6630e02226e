"""
Application Layer: Currency Ledger
Holder-addressable balances over two backing modes:

* module mode: an abstract wallet stored as a scaled integer (x100) per holder;
* character mode: the holder's physical coin items, redistributed greedily on write.
"""
import asyncio
import re
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

import structlog

from bazaar.application.ports import IActorDirectory, IInventoryStore, IKeyValueStore
from bazaar.domain import (
    MODULE_SCALE,
    ZERO,
    CoinBag,
    Denomination,
    base_unit_multiplier,
    make_change,
    scale_denominations,
    to_decimal,
    value_from_coins,
)

logger = structlog.get_logger()

CENT = Decimal("0.01")


def _to_scaled(amount: Decimal, multiplier: int) -> int:
    return int((amount * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class CurrencyLedger:
    """
    Reads and writes balances. Nothing else touches wallets or coin items directly.
    """

    WALLET_KEY = "wallet.{holder_id}"

    def __init__(
        self,
        config: Any,
        store: IKeyValueStore,
        inventory: IInventoryStore,
        actors: IActorDirectory,
    ):
        self.store = store
        self.inventory = inventory
        self.actors = actors
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.refresh_settings(config)

    # --- Configuration ---

    def refresh_settings(self, config: Any) -> None:
        """Applies new settings and recomputes the cached base unit multiplier"""
        self.config = config
        self._denominations: List[Denomination] = list(config.denominations)
        self._multiplier = base_unit_multiplier(self._denominations)
        logger.debug(
            "ledger_settings_refreshed",
            module_mode=self.use_module_currency,
            multiplier=self._multiplier,
            denominations=[d.name for d in self._denominations],
        )

    @property
    def use_module_currency(self) -> bool:
        return bool(self.config.use_module_currency)

    @property
    def denominations(self) -> List[Denomination]:
        return list(self._denominations)

    @property
    def base_unit_multiplier(self) -> int:
        return self._multiplier

    @property
    def scale(self) -> int:
        return MODULE_SCALE if self.use_module_currency else self._multiplier

    # --- Holder balances ---

    async def get_balance(self, holder_id: str) -> Decimal:
        if self.use_module_currency:
            raw = await self.store.get(self.WALLET_KEY.format(holder_id=holder_id), 0)
            scaled = int(to_decimal(raw))
            return Decimal(scaled) / MODULE_SCALE
        if not self._denominations:
            return ZERO
        return value_from_coins(await self._coin_counts(holder_id), self._denominations)

    async def set_balance(self, holder_id: str, amount: Any) -> bool:
        async with self._locks[holder_id]:
            return await self._write(holder_id, to_decimal(amount))

    async def add_balance(self, holder_id: str, delta: Any) -> bool:
        """Atomic read-modify-write for one holder. The result is clamped at zero."""
        async with self._locks[holder_id]:
            try:
                current = await self.get_balance(holder_id)
            except Exception as e:
                logger.error("balance_read_failed", holder_id=holder_id, error=str(e))
                return False
            return await self._write(holder_id, current + to_decimal(delta))

    async def debit(self, holder_id: str, amount: Any) -> bool:
        """Takes `amount` from the holder, or nothing at all if the balance is short"""
        amount = to_decimal(amount)
        async with self._locks[holder_id]:
            try:
                current = await self.get_balance(holder_id)
            except Exception as e:
                logger.error("balance_read_failed", holder_id=holder_id, error=str(e))
                return False
            if current < amount:
                logger.warning("debit_refused", holder_id=holder_id, balance=str(current), amount=str(amount))
                return False
            return await self._write(holder_id, current - amount)

    async def _write(self, holder_id: str, amount: Decimal) -> bool:
        amount = max(ZERO, amount)
        try:
            if self.use_module_currency:
                scaled = _to_scaled(amount, MODULE_SCALE)
                await self.store.set(self.WALLET_KEY.format(holder_id=holder_id), scaled)
                logger.debug("wallet_written", holder_id=holder_id, scaled=scaled)
                return True
            return await self._write_coins(holder_id, amount)
        except Exception as e:
            logger.error("balance_write_failed", holder_id=holder_id, amount=str(amount), error=str(e))
            return False

    async def _write_coins(self, holder_id: str, amount: Decimal) -> bool:
        """Rewrites every denomination item so the coins match the greedy bag"""
        if not self._denominations:
            logger.warning("no_denominations_configured", holder_id=holder_id)
            return False

        scaled = scale_denominations(self._denominations, self._multiplier)
        bag = make_change(_to_scaled(amount, self._multiplier), scaled)

        for denomination in self._denominations:
            ok = await self.inventory.set_item_count(
                holder_id,
                denomination.name,
                bag.get(denomination.name, 0),
                denomination.value,
                denomination.weight,
            )
            if not ok:
                logger.error("coin_write_failed", holder_id=holder_id, denomination=denomination.name)
                return False

        logger.debug("coins_written", holder_id=holder_id, bag=bag)
        return True

    async def _coin_counts(self, holder_id: str) -> CoinBag:
        names = {d.name for d in self._denominations}
        counts: CoinBag = {}
        for entry in await self.inventory.list_items(holder_id):
            if entry.name in names:
                counts[entry.name] = counts.get(entry.name, 0) + max(0, int(entry.count))
        return counts

    # --- Actor balances ---

    def _resolve_holder(self, actor_id: str) -> Optional[str]:
        """
        Module mode pays from the wallet of the actor's primary owner,
        character mode from the actor's own coins.
        """
        if self.use_module_currency:
            return self.actors.get_primary_owner(actor_id)
        if self.actors.get_actor_name(actor_id) is None:
            return None
        return actor_id

    async def get_actor_balance(self, actor_id: str) -> Decimal:
        holder = self._resolve_holder(actor_id)
        if holder is None:
            return ZERO
        return await self.get_balance(holder)

    async def set_actor_balance(self, actor_id: str, amount: Any) -> bool:
        holder = self._resolve_holder(actor_id)
        if holder is None:
            logger.warning("actor_wallet_unresolved", actor_id=actor_id)
            return False
        return await self.set_balance(holder, amount)

    async def add_actor_balance(self, actor_id: str, delta: Any) -> bool:
        holder = self._resolve_holder(actor_id)
        if holder is None:
            logger.warning("actor_wallet_unresolved", actor_id=actor_id)
            return False
        return await self.add_balance(holder, delta)

    async def debit_actor(self, actor_id: str, amount: Any) -> bool:
        holder = self._resolve_holder(actor_id)
        if holder is None:
            logger.warning("actor_wallet_unresolved", actor_id=actor_id)
            return False
        return await self.debit(holder, amount)

    # --- Coins ---

    async def get_coin_breakdown(self, holder_id: str) -> List[Dict[str, Any]]:
        """Count per denomination, highest value first"""
        if self.use_module_currency:
            balance = await self.get_balance(holder_id)
            if not self._denominations:
                return []
            scaled = scale_denominations(self._denominations, MODULE_SCALE)
            bag = make_change(_to_scaled(balance, MODULE_SCALE), scaled)
            return [
                {"name": d.name, "count": bag[d.name], "value": d.value}
                for d in self._sorted_denominations()
                if bag.get(d.name, 0) > 0
            ]

        counts = await self._coin_counts(holder_id)
        return [
            {"name": d.name, "count": counts.get(d.name, 0), "value": d.value}
            for d in self._sorted_denominations()
        ]

    async def initialize_missing_coins(self, holder_ids: Iterable[str]) -> int:
        """Adds zero-count coin items for missing denominations. Existing coins are untouched."""
        if not self._denominations:
            logger.warning("no_denominations_configured")
            return 0

        created = 0
        for holder_id in holder_ids:
            present = {entry.name for entry in await self.inventory.list_items(holder_id)}
            for denomination in self._denominations:
                if denomination.name in present:
                    continue
                if await self.inventory.set_item_count(
                    holder_id, denomination.name, 0, denomination.value, denomination.weight
                ):
                    created += 1
        logger.info("coin_placeholders_created", count=created)
        return created

    def _sorted_denominations(self) -> List[Denomination]:
        return sorted(self._denominations, key=lambda d: d.value, reverse=True)

    # --- Formatting ---

    def format_currency(self, amount: Any) -> str:
        """
        Symbol plus two fraction digits. Positive amounts below one cent show as 0.01
        so a real debt or credit never reads as zero.
        """
        value = to_decimal(amount)
        if ZERO < value < CENT:
            value = CENT
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)

        text = f"{value:,.2f}"
        thousands = self.config.currency_thousands_separator
        decimal_sep = self.config.currency_decimal_separator
        text = text.replace(",", "\0").replace(".", decimal_sep).replace("\0", thousands)
        return f"{self.config.currency_symbol}{text}"

    @staticmethod
    def parse_currency(value: Any) -> Decimal:
        """
        Lenient parsing of user input. Whichever of ',' and '.' comes last is the
        decimal separator; the other one groups thousands. Never raises.
        """
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return to_decimal(value)
        if not isinstance(value, str):
            return ZERO

        cleaned = re.sub(r"[^\d.,\-]", "", value)
        negative = cleaned.startswith("-")
        cleaned = cleaned.replace("-", "")

        decimal_sep = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        thousands = "." if decimal_sep == "," else ","
        cleaned = cleaned.replace(thousands, "")
        if decimal_sep == ",":
            cleaned = cleaned.replace(",", ".")

        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return ZERO
        if not result.is_finite():
            return ZERO
        return -result if negative else result
