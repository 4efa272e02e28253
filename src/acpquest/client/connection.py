"""WebSocket lifecycle: connect, reconnect with backoff, disconnect, raw send."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from acpquest.log_utils import log_context, log_event, log_frame

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0

Connector = Callable[[str], Awaitable[Any]]
MessageHandler = Callable[[str | bytes], Awaitable[None] | None]
StatusHandler = Callable[["ConnectionStatus"], None]


class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def reconnect_delay(attempt: int, base: float = DEFAULT_BASE_DELAY, cap: float = DEFAULT_MAX_DELAY) -> float:
    """Backoff before reconnect attempt ``attempt`` (0-based): ``min(base * 2**attempt, cap)``."""
    return min(base * (2**attempt), cap)


@dataclass(eq=False)
class _Link:
    """One connection attempt; compared by identity to spot superseded sockets."""

    ws: Any = None
    task: asyncio.Task[None] | None = None


async def _default_connector(url: str) -> Any:
    return await websockets.connect(url, max_size=None)


async def _close_quietly(ws: Any) -> None:
    with contextlib.suppress(WebSocketException, OSError):
        await ws.close()


class ConnectionManager:
    """Own one WebSocket at a time and keep it alive.

    Only the most recently created link is current; a reader or close event
    from any older link is ignored. After a drop the manager retries up to
    ``max_reconnect_attempts`` times with exponential backoff and then stays
    disconnected. It knows nothing about the protocol spoken over the socket.
    """

    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        *,
        on_status: StatusHandler | None = None,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        connector: Connector | None = None,
    ) -> None:
        self.url = url
        self._on_message = on_message
        self._on_status = on_status
        self.max_reconnect_attempts = max_reconnect_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._connector = connector or _default_connector
        self._status = ConnectionStatus.DISCONNECTED
        self._link: _Link | None = None
        self._attempts = 0
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._closing: set[asyncio.Task[Any]] = set()

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def is_open(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED and self._link is not None and self._link.ws is not None

    def connect(self) -> None:
        """Start a fresh connection attempt, superseding any existing link."""
        self._cancel_reconnect()
        if self._link is not None:
            self._retire(self._link)
            self._set_status(ConnectionStatus.DISCONNECTED)
        link = _Link()
        self._link = link
        self._set_status(ConnectionStatus.CONNECTING)
        link.task = asyncio.get_running_loop().create_task(self._run(link))

    async def disconnect(self) -> None:
        """Close for good: no automatic reconnect follows."""
        self._cancel_reconnect()
        self._attempts = self.max_reconnect_attempts
        link, self._link = self._link, None
        if link is not None:
            if link.task is not None and not link.task.done():
                link.task.cancel()
            if link.ws is not None:
                await _close_quietly(link.ws)
        self._set_status(ConnectionStatus.DISCONNECTED)
        log_event(logger, "connection.disconnect", url=self.url)

    async def send(self, payload: str) -> None:
        """Send one text frame; silently dropped unless the socket is open."""
        link = self._link
        if not self.is_open or link is None:
            logger.debug("send.drop status=%s", self._status.value)
            return
        log_frame(logger, "out", payload)
        try:
            await link.ws.send(payload)
        except ConnectionClosed:
            logger.debug("send.drop reason=closed")

    async def _run(self, link: _Link) -> None:
        try:
            ws = await self._connector(self.url)
        except asyncio.CancelledError:
            raise
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            log_event(logger, "connection.failed", level=logging.WARNING, url=self.url, error=str(exc))
            self._closed(link)
            return

        if self._link is not link:
            # superseded while the handshake was in flight
            await _close_quietly(ws)
            return

        link.ws = ws
        self._attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)
        log_event(logger, "connection.open", url=self.url)
        try:
            async for raw in ws:
                if self._link is not link:
                    break
                log_frame(logger, "in", raw)
                with log_context(direction="in"):
                    try:
                        result = self._on_message(raw)
                        if asyncio.iscoroutine(result):
                            await result
                    except Exception:
                        logger.exception("Error processing inbound frame")
        except ConnectionClosed as exc:
            log_event(logger, "connection.lost", level=logging.WARNING, url=self.url, reason=str(exc))
        except (OSError, WebSocketException) as exc:
            log_event(logger, "connection.error", level=logging.WARNING, url=self.url, error=str(exc))
        finally:
            self._closed(link)

    def _closed(self, link: _Link) -> None:
        if self._link is not link:
            return
        self._link = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        if self._attempts >= self.max_reconnect_attempts:
            log_event(logger, "connection.give_up", level=logging.WARNING, attempts=self._attempts)
            return
        delay = reconnect_delay(self._attempts, self.base_delay, self.max_delay)
        self._attempts += 1
        log_event(logger, "connection.reconnect_scheduled", attempt=self._attempts, delay=delay)
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _retire(self, link: _Link) -> None:
        self._link = None
        if link.task is not None and not link.task.done():
            link.task.cancel()
        if link.ws is not None:
            task = asyncio.get_running_loop().create_task(_close_quietly(link.ws))
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        if self._on_status is not None:
            self._on_status(status)
