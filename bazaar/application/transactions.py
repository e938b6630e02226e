"""
Application Layer: Transaction Manager
Purchase and sell workflows between a requester and the single authority.

Requesters that are not the authority forward their request over the message
channel and wait for the result event addressed to them. The authority runs
each request through RECEIVED -> VALIDATED -> (AWAITING_APPROVAL) -> APPLYING
-> COMPLETED | FAILED exactly once.
"""
import asyncio
import uuid as uuid_lib
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from bazaar.application.approvals import ApprovalCoordinator
from bazaar.application.catalog import VendorCatalog
from bazaar.application.ledger import CurrencyLedger
from bazaar.application.ports import (
    IActorDirectory,
    IInventoryStore,
    IMessageChannel,
    INotificationService,
    Message,
)
from bazaar.domain import (
    ZERO,
    ApprovalRequest,
    Identity,
    InvalidLine,
    PriceCalculator,
    RequestedItem,
    SellPayoutPolicy,
    TradeKind,
    TradeRequest,
    Transaction,
    TransactionResult,
    TransactionState,
    Vendor,
    clamp_percentage,
    coerce_quantity,
    round_up,
)

logger = structlog.get_logger()

CHARACTER_NOT_FOUND = "Character not found by GM. Please ensure your character exists and has proper permissions."
VENDOR_NOT_FOUND = "Vendor not found by GM. The vendor may have been deleted."


@dataclass
class TradeLine:
    """A validated request line, priced from the authoritative source"""
    item_id: str
    name: str
    price: Decimal
    quantity: int
    uuid: str = ""

    def as_requested(self) -> RequestedItem:
        return RequestedItem(
            id=self.item_id, quantity=self.quantity, price=self.price, name=self.name, uuid=self.uuid
        )


class TransactionManager:
    """
    Orchestrates trades against the ledger, the vendor catalog and inventories.

    Purchases touching the same vendor are applied one at a time, and stock and
    funds are checked again once the lock is held, since an approval can take
    arbitrarily long.
    """

    # Request ids kept for duplicate detection, oldest forgotten first
    MAX_REMEMBERED_REQUESTS = 10_000

    def __init__(
        self,
        identity: Identity,
        config: Any,
        ledger: CurrencyLedger,
        catalog: VendorCatalog,
        inventory: IInventoryStore,
        actors: IActorDirectory,
        channel: IMessageChannel,
        approvals: ApprovalCoordinator,
        notifier: Optional[INotificationService] = None,
    ):
        self.identity = identity
        self.config = config
        self.ledger = ledger
        self.catalog = catalog
        self.inventory = inventory
        self.actors = actors
        self.channel = channel
        self.approvals = approvals
        self.notifier = notifier
        self.calculator = PriceCalculator()

        self._vendor_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._consumed: "OrderedDict[str, None]" = OrderedDict()
        self._waiting: Dict[str, asyncio.Future] = {}

    # --- Requester side ---

    def new_request(
        self,
        kind: TradeKind,
        actor_id: str,
        items: Iterable[RequestedItem],
        vendor_id: Optional[str] = None,
    ) -> TradeRequest:
        return TradeRequest(
            request_id=uuid_lib.uuid4().hex,
            kind=kind,
            user_id=self.identity.user_id,
            actor_id=actor_id,
            items=list(items),
            vendor_id=vendor_id,
        )

    async def submit_purchase(
        self, actor_id: str, vendor_id: str, items: Iterable[RequestedItem]
    ) -> TransactionResult:
        return await self.submit(self.new_request(TradeKind.PURCHASE, actor_id, items, vendor_id))

    async def submit_sell(self, actor_id: str, items: Iterable[RequestedItem]) -> TransactionResult:
        return await self.submit(self.new_request(TradeKind.SELL, actor_id, items))

    async def submit(self, request: TradeRequest) -> TransactionResult:
        """Processes in place on the authority, otherwise forwards and waits for the result"""
        if self.identity.is_authority:
            result = await self.process(request)
        else:
            future: asyncio.Future = asyncio.get_running_loop().create_future()
            self._waiting[request.request_id] = future
            try:
                logger.info(
                    "trade_request_forwarded",
                    request_id=request.request_id,
                    kind=request.kind.value,
                    actor_id=request.actor_id,
                )
                await self.channel.emit(request.to_message())
                await self._notify(f"{request.kind.value.capitalize()} request sent to GM for processing...")
                result = await future
            finally:
                self._waiting.pop(request.request_id, None)

        await self._notify_result(result)
        return result

    async def handle_result_message(self, message: Message) -> bool:
        """Delivers a result event to the local waiter. Events for other users are ignored."""
        if message.get("userId") != self.identity.user_id:
            return False
        try:
            result = TransactionResult.from_message(message)
        except (KeyError, ValueError) as e:
            logger.warning("result_message_invalid", error=str(e))
            return False

        if result.request_id in self._consumed:
            # Processed locally, the requester was already told
            return False

        future = self._waiting.get(result.request_id)
        if future is not None and not future.done():
            future.set_result(result)
            return True

        # Nobody is waiting (e.g. the request was issued before a restart)
        logger.info("result_without_waiter", request_id=result.request_id)
        await self._notify_result(result)
        return True

    # --- Authority side ---

    async def process_purchase_request(self, request: TradeRequest) -> TransactionResult:
        request.kind = TradeKind.PURCHASE
        return await self.process(request)

    async def process_sell_request(self, request: TradeRequest) -> TransactionResult:
        request.kind = TradeKind.SELL
        return await self.process(request)

    async def process(self, request: TradeRequest) -> TransactionResult:
        """
        Consumes a request once and reports the outcome to its requester.
        Nothing raised while processing escapes this method.
        """
        if request.request_id in self._consumed:
            logger.warning("duplicate_request_ignored", request_id=request.request_id)
            return TransactionResult(
                request_id=request.request_id,
                kind=request.kind,
                success=False,
                message="This request was already processed.",
            )
        self._remember(request.request_id)

        tx = Transaction(request)
        logger.info(
            "trade_request_received",
            request_id=request.request_id,
            kind=request.kind.value,
            user_id=request.user_id,
            actor_id=request.actor_id,
            vendor_id=request.vendor_id,
            lines=len(request.items),
        )

        try:
            if request.kind is TradeKind.PURCHASE:
                result = await self._process_purchase(tx)
            else:
                result = await self._process_sell(tx)
        except Exception as e:
            logger.error(
                "trade_processing_error",
                request_id=request.request_id,
                state=tx.state.value,
                error=str(e),
            )
            tx.fail()
            noun = "purchase" if request.kind is TradeKind.PURCHASE else "sale"
            result = TransactionResult(
                request_id=request.request_id,
                kind=request.kind,
                success=False,
                message=f"An error occurred while processing the {noun}: {e}",
            )

        result.state = tx.state
        await self._emit_result(request, result)
        return result

    # --- Purchase ---

    async def _process_purchase(self, tx: Transaction) -> TransactionResult:
        request = tx.request
        actor_name = self.actors.get_actor_name(request.actor_id)
        if actor_name is None:
            return self._fail(tx, CHARACTER_NOT_FOUND)

        vendor = await self.catalog.get_vendor(request.vendor_id) if request.vendor_id else None
        if vendor is None:
            return self._fail(tx, VENDOR_NOT_FOUND)
        if not vendor.active:
            return self._fail(tx, f"{vendor.name} is not trading right now.")

        lines, invalid = self._validate_purchase_items(vendor, request.items)
        if not lines:
            return self._fail(tx, "No items could be purchased.", invalid)
        tx.advance(TransactionState.VALIDATED)

        total_cost = self.calculator.purchase_cost((line.price, line.quantity) for line in lines)
        balance = await self.ledger.get_actor_balance(request.actor_id)
        if balance < total_cost:
            return self._fail(tx, self._insufficient_funds(actor_name, total_cost, balance), invalid)

        if self.config.require_gm_approval:
            tx.advance(TransactionState.AWAITING_APPROVAL)
            decision = await self.approvals.request(ApprovalRequest(
                request_id=request.request_id,
                kind=TradeKind.PURCHASE,
                actor_name=actor_name,
                user_name=self.actors.get_user_name(request.user_id) or "A player",
                items=[line.as_requested() for line in lines],
                total=total_cost,
            ))
            if not decision.approved:
                return self._fail(tx, "Purchase declined by GM.", invalid)

        async with self._vendor_locks[vendor.id]:
            tx.advance(TransactionState.APPLYING)

            # Stock and funds may have moved while the request was waiting
            vendor = await self.catalog.get_vendor(vendor.id)
            if vendor is None:
                return self._fail(tx, VENDOR_NOT_FOUND, invalid)
            lines, late_invalid = self._validate_purchase_items(vendor, [line.as_requested() for line in lines])
            invalid.extend(late_invalid)
            if not lines:
                return self._fail(tx, "No items could be purchased.", invalid)

            total_cost = self.calculator.purchase_cost((line.price, line.quantity) for line in lines)
            balance = await self.ledger.get_actor_balance(request.actor_id)
            if balance < total_cost:
                return self._fail(tx, self._insufficient_funds(actor_name, total_cost, balance), invalid)

            items_processed, cost_processed = await self._execute_purchase(tx, vendor, lines, invalid)
            if items_processed == 0:
                return self._fail(tx, "No items were purchased.", invalid)

            charge = round_up(cost_processed)
            if not await self.ledger.debit_actor(request.actor_id, charge):
                logger.error(
                    "settlement_inconsistency",
                    request_id=request.request_id,
                    actor_id=request.actor_id,
                    vendor_id=vendor.id,
                    items_delivered=items_processed,
                    amount=str(charge),
                )
                return self._fail(tx, f"Failed to deduct money from {actor_name}'s wallet.", invalid)

        new_balance = await self.ledger.get_actor_balance(request.actor_id)
        tx.advance(TransactionState.COMPLETED)
        logger.info(
            "purchase_completed",
            request_id=request.request_id,
            actor_id=request.actor_id,
            items=items_processed,
            cost=str(charge),
            balance=str(new_balance),
        )
        return TransactionResult(
            request_id=request.request_id,
            kind=TradeKind.PURCHASE,
            success=True,
            message=f"{actor_name} purchased {items_processed} items for {self.ledger.format_currency(charge)}!",
            state=tx.state,
            item_count=items_processed,
            amount=charge,
            new_balance=new_balance,
            invalid_items=invalid,
        )

    def _validate_purchase_items(
        self, vendor: Vendor, items: Iterable[RequestedItem]
    ) -> Tuple[List[TradeLine], List[InvalidLine]]:
        """Prices come from the vendor, never from the requester"""
        lines: List[TradeLine] = []
        invalid: List[InvalidLine] = []
        reserved: Dict[str, int] = defaultdict(int)

        for requested in items:
            quantity = coerce_quantity(requested.quantity)
            if quantity != requested.quantity:
                logger.info("quantity_coerced", item_id=requested.id, raw=repr(requested.quantity), quantity=quantity)

            vendor_item = vendor.find_item(requested.id)
            name = requested.name or (vendor_item.name if vendor_item else "Item")
            if vendor_item is None:
                invalid.append(InvalidLine(requested.id, name, f"{name} is no longer sold by {vendor.name}."))
                continue
            if not vendor_item.has_stock_for(reserved[vendor_item.id] + quantity):
                invalid.append(InvalidLine(requested.id, name, f"{name} is out of stock."))
                continue

            reserved[vendor_item.id] += quantity
            lines.append(TradeLine(
                item_id=vendor_item.id,
                name=vendor_item.name,
                price=vendor_item.price,
                quantity=quantity,
                uuid=vendor_item.uuid or requested.uuid,
            ))
        return lines, invalid

    async def _execute_purchase(
        self, tx: Transaction, vendor: Vendor, lines: List[TradeLine], invalid: List[InvalidLine]
    ) -> Tuple[int, Decimal]:
        """Each line is delivered independently; a failed line is skipped and not charged"""
        actor_id = tx.request.actor_id
        items_processed = 0
        cost_processed = ZERO

        for line in lines:
            if not await self.inventory.add_item(actor_id, line.uuid, line.quantity):
                logger.error(
                    "purchase_line_failed",
                    request_id=tx.request.request_id,
                    actor_id=actor_id,
                    item=line.name,
                    quantity=line.quantity,
                )
                invalid.append(InvalidLine(line.item_id, line.name, f"Failed to add {line.name} to inventory."))
                continue

            items_processed += line.quantity
            cost_processed += self.calculator.line_total(line.price, line.quantity)

            if not await self.catalog.update_item_quantity_in_vendor(vendor.id, line.item_id, -line.quantity):
                logger.warning("vendor_stock_update_failed", vendor_id=vendor.id, item_id=line.item_id)

        return items_processed, cost_processed

    # --- Sell ---

    async def _process_sell(self, tx: Transaction) -> TransactionResult:
        request = tx.request
        actor_name = self.actors.get_actor_name(request.actor_id)
        if actor_name is None:
            return self._fail(tx, CHARACTER_NOT_FOUND)

        lines, invalid = await self._validate_sell_items(request.actor_id, request.items)
        if not lines:
            return self._fail(tx, "No items were sold.", invalid)
        tx.advance(TransactionState.VALIDATED)

        total_value = self.calculator.subtotal((line.price, line.quantity) for line in lines)
        policy = SellPayoutPolicy(physical_coins=not self.ledger.use_module_currency)
        automatic = clamp_percentage(self.config.automatic_sell_percentage)

        if self.config.require_gm_approval:
            tx.advance(TransactionState.AWAITING_APPROVAL)
            decision = await self.approvals.request(ApprovalRequest(
                request_id=request.request_id,
                kind=TradeKind.SELL,
                actor_name=actor_name,
                user_name=self.actors.get_user_name(request.user_id) or "A player",
                items=[line.as_requested() for line in lines],
                total=total_value,
                default_percentage=automatic,
            ))
            if not decision.approved:
                return self._fail(tx, "Sale declined by GM.", invalid)
            percentage = automatic if decision.percentage is None else clamp_percentage(decision.percentage, automatic)
        else:
            percentage = automatic

        if policy.finalize(total_value, percentage) is None:
            return self._fail(
                tx, "It's not worth trading just that! The sale value must be at least 1.", invalid
            )

        tx.advance(TransactionState.APPLYING)
        items_processed = 0
        value_processed = ZERO
        for line in lines:
            if not await self.inventory.remove_quantity(request.actor_id, line.item_id, line.quantity):
                logger.error(
                    "sell_line_failed",
                    request_id=request.request_id,
                    actor_id=request.actor_id,
                    item=line.name,
                    quantity=line.quantity,
                )
                invalid.append(InvalidLine(line.item_id, line.name, f"Failed to remove {line.name} from inventory."))
                continue
            items_processed += line.quantity
            value_processed += self.calculator.line_total(line.price, line.quantity)

        if items_processed == 0:
            return self._fail(tx, "No items were sold.", invalid)

        payout = policy.finalize(value_processed, percentage)
        if payout is None:
            # Earlier lines failed and the remainder is worth less than one coin
            logger.error(
                "settlement_inconsistency",
                request_id=request.request_id,
                actor_id=request.actor_id,
                items_removed=items_processed,
                value=str(value_processed),
            )
            return self._fail(
                tx, "It's not worth trading just that! The sale value must be at least 1.", invalid
            )
        if not await self.ledger.add_actor_balance(request.actor_id, payout):
            logger.error(
                "settlement_inconsistency",
                request_id=request.request_id,
                actor_id=request.actor_id,
                items_removed=items_processed,
                amount=str(payout),
            )
            return self._fail(tx, f"Failed to add money to {actor_name}'s wallet.", invalid)

        new_balance = await self.ledger.get_actor_balance(request.actor_id)
        tx.advance(TransactionState.COMPLETED)
        logger.info(
            "sale_completed",
            request_id=request.request_id,
            actor_id=request.actor_id,
            items=items_processed,
            value=str(value_processed),
            percentage=percentage,
            payout=str(payout),
        )

        verb = "sold" if self.config.require_gm_approval else "automatically sold"
        fmt = self.ledger.format_currency
        return TransactionResult(
            request_id=request.request_id,
            kind=TradeKind.SELL,
            success=True,
            message=(
                f"{actor_name} {verb} {items_processed} items for {fmt(payout)} "
                f"({percentage}% of {fmt(value_processed)})!"
            ),
            state=tx.state,
            item_count=items_processed,
            amount=payout,
            new_balance=new_balance,
            percentage=percentage,
            invalid_items=invalid,
        )

    async def _validate_sell_items(
        self, actor_id: str, items: Iterable[RequestedItem]
    ) -> Tuple[List[TradeLine], List[InvalidLine]]:
        """Prices come from the seller's own inventory"""
        lines: List[TradeLine] = []
        invalid: List[InvalidLine] = []
        reserved: Dict[str, int] = defaultdict(int)
        coin_names = {d.name.lower() for d in self.ledger.denominations}

        for requested in items:
            quantity = coerce_quantity(requested.quantity)
            entry = await self.inventory.get_item(actor_id, requested.id)
            name = requested.name or (entry.name if entry else "Item")
            if entry is None:
                invalid.append(InvalidLine(requested.id, name, f"{name} was not found in the inventory."))
                continue
            if entry.name.lower() in coin_names:
                invalid.append(InvalidLine(requested.id, name, f"{entry.name} is currency and cannot be sold."))
                continue
            if entry.price <= 0:
                invalid.append(InvalidLine(requested.id, name, f"{entry.name} has no value and cannot be sold."))
                continue
            if entry.count < reserved[entry.id] + quantity:
                invalid.append(InvalidLine(
                    requested.id,
                    name,
                    f"Not enough {entry.name} to sell (have {entry.count}, trying to sell {quantity}).",
                ))
                continue

            reserved[entry.id] += quantity
            lines.append(TradeLine(
                item_id=entry.id, name=entry.name, price=entry.price, quantity=quantity, uuid=entry.uuid
            ))
        return lines, invalid

    # --- Helpers ---

    def _remember(self, request_id: str) -> None:
        self._consumed[request_id] = None
        while len(self._consumed) > self.MAX_REMEMBERED_REQUESTS:
            self._consumed.popitem(last=False)

    def _insufficient_funds(self, actor_name: str, needed: Decimal, balance: Decimal) -> str:
        fmt = self.ledger.format_currency
        return f"{actor_name} doesn't have enough coins! Needs {fmt(needed)} but only has {fmt(balance)}."

    def _fail(
        self, tx: Transaction, message: str, invalid: Optional[List[InvalidLine]] = None
    ) -> TransactionResult:
        tx.fail()
        logger.info(
            "trade_failed",
            request_id=tx.request.request_id,
            kind=tx.request.kind.value,
            reason=message,
        )
        return TransactionResult(
            request_id=tx.request.request_id,
            kind=tx.request.kind,
            success=False,
            message=message,
            state=tx.state,
            invalid_items=list(invalid or []),
        )

    async def _emit_result(self, request: TradeRequest, result: TransactionResult) -> None:
        try:
            await self.channel.emit(result.to_message(request.user_id))
        except Exception as e:
            logger.error("result_emit_failed", request_id=request.request_id, error=str(e))

    async def _notify(self, message: str, level: str = "INFO") -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(message, level)
        except Exception as e:
            logger.warning("notify_failed", error=str(e))

    async def _notify_result(self, result: TransactionResult) -> None:
        for line in result.invalid_items:
            await self._notify(line.reason, "WARNING")
        await self._notify(result.message, "INFO" if result.success else "ERROR")
