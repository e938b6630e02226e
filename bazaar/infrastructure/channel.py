"""
Infrastructure Layer: Message Channels
A per-module broadcast bus. Messages are delivered to every other participant.
"""
import asyncio
import copy
from typing import List, Optional, Set

import aiohttp
import structlog

from bazaar.application.ports import Message, MessageHandler

logger = structlog.get_logger()


async def _dispatch(handlers: List[MessageHandler], message: Message) -> None:
    for handler in handlers:
        try:
            await handler(message)
        except Exception as e:
            logger.error("channel_handler_error", type=message.get("type"), error=str(e))


class LocalChannelHub:
    """In-process relay connecting several participants (tests, single-process demos)"""

    def __init__(self) -> None:
        self._endpoints: List["LocalChannel"] = []
        self._tasks: Set[asyncio.Task] = set()

    def endpoint(self) -> "LocalChannel":
        channel = LocalChannel(self)
        self._endpoints.append(channel)
        return channel

    def _broadcast(self, sender: "LocalChannel", message: Message) -> None:
        for endpoint in self._endpoints:
            if endpoint is sender or not endpoint.handlers:
                continue
            # Each participant gets its own copy, as if it came off the wire
            task = asyncio.create_task(_dispatch(list(endpoint.handlers), copy.deepcopy(message)))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Waits until every message in flight has been handled"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class LocalChannel:
    def __init__(self, hub: LocalChannelHub) -> None:
        self.hub = hub
        self.handlers: List[MessageHandler] = []

    async def emit(self, message: Message) -> None:
        logger.debug("channel_emit", type=message.get("type"))
        self.hub._broadcast(self, message)

    def subscribe(self, handler: MessageHandler) -> None:
        self.handlers.append(handler)


class WebSocketChannel:
    """
    Adapter for a JSON WebSocket relay using aiohttp.
    The relay is expected to forward each frame to the other participants.
    """

    def __init__(self, url: str, heartbeat: float = 30.0) -> None:
        self.url = url
        self.heartbeat = heartbeat
        self.handlers: List[MessageHandler] = []
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, sock_connect=10))
        return self._session

    async def connect(self) -> bool:
        try:
            session = await self._get_session()
            self._ws = await session.ws_connect(self.url, heartbeat=self.heartbeat)
            logger.info("channel_connected", url=self.url)
            return True
        except Exception as e:
            logger.error("channel_connect_failed", url=self.url, error=str(e))
            return False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def emit(self, message: Message) -> None:
        if not self.connected and not await self.connect():
            raise ConnectionError(f"Message channel {self.url} is not reachable")
        await self._ws.send_json(message)
        logger.debug("channel_emit", type=message.get("type"))

    def subscribe(self, handler: MessageHandler) -> None:
        self.handlers.append(handler)

    async def listen(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Reads frames until the socket closes or stop_event is set"""
        if not self.connected and not await self.connect():
            return
        if self._ws is None:
            return

        async for msg in self._ws:
            if stop_event is not None and stop_event.is_set():
                break
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    message = msg.json()
                except ValueError as e:
                    logger.warning("channel_frame_invalid", error=str(e))
                    continue
                if isinstance(message, dict):
                    await _dispatch(list(self.handlers), message)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("channel_socket_error", error=str(self._ws.exception()))
                break

        logger.info("channel_listen_stopped", url=self.url)

    async def close(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._session:
            await self._session.close()
