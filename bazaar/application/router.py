"""
Application Layer: Event Router
Dispatches message channel events to the right component.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional, Set

import structlog

from bazaar.application.ports import Message
from bazaar.application.transactions import TransactionManager
from bazaar.domain import RESULT_EVENTS, ShopEvent, TradeKind, TradeRequest

logger = structlog.get_logger()

VendorObserver = Callable[[ShopEvent, Message], Awaitable[None]]


class ShopEventRouter:
    """
    Request events are only acted on by the authority. Result events are handed
    to the transaction manager, which drops those addressed to other users.
    Vendor change events go to registered observers (e.g. open shop views).
    """

    def __init__(self, transactions: TransactionManager):
        self.transactions = transactions
        self.identity = transactions.identity
        self._observers: List[VendorObserver] = []
        self._tasks: Set[asyncio.Task] = set()

    def add_vendor_observer(self, observer: VendorObserver) -> None:
        self._observers.append(observer)

    async def handle(self, message: Message) -> None:
        event = self._parse_type(message)
        if event is None:
            return

        if event in (ShopEvent.PLAYER_PURCHASE_REQUEST, ShopEvent.PLAYER_SELL_REQUEST):
            await self._handle_request(event, message)
        elif event in RESULT_EVENTS:
            await self.transactions.handle_result_message(message)
        else:
            for observer in self._observers:
                try:
                    await observer(event, message)
                except Exception as e:
                    logger.warning("vendor_observer_failed", event=event.value, error=str(e))

    async def _handle_request(self, event: ShopEvent, message: Message) -> None:
        if not self.identity.is_authority:
            return
        kind = TradeKind.PURCHASE if event is ShopEvent.PLAYER_PURCHASE_REQUEST else TradeKind.SELL
        try:
            request = TradeRequest.from_message(kind, message)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("request_message_invalid", event=event.value, error=str(e))
            return
        if not request.request_id or not request.user_id:
            logger.warning("request_message_incomplete", event=event.value)
            return
        # Detached: a request waiting on GM approval must not block the listener
        task = asyncio.create_task(self.transactions.process(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Waits for every request currently being processed"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    def _parse_type(message: Message) -> Optional[ShopEvent]:
        try:
            return ShopEvent(message.get("type"))
        except ValueError:
            logger.debug("unknown_event_ignored", type=message.get("type"))
            return None
