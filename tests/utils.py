from __future__ import annotations

import asyncio
import json
from typing import Any, Callable
from unittest.mock import AsyncMock

from acpquest.client.session import QuestSession
from acpquest.config import ClientSettings

_CLOSE = object()


def wire(**payload: Any) -> str:
    """Serialize a JSON-RPC frame the way the agent side would."""

    return json.dumps({"jsonrpc": "2.0", **payload})


def update_frame(session_id: str, update: dict[str, Any]) -> str:
    return wire(method="session/update", params={"sessionId": session_id, "update": update})


class FakeWebSocket:
    """Async-iterable stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_CLOSE)

    def feed(self, message: str) -> None:
        self._inbox.put_nowait(message)

    def drop(self) -> None:
        """Simulate the server going away."""
        self._inbox.put_nowait(_CLOSE)

    def fail(self, exc: BaseException) -> None:
        """Make the next read raise ``exc``."""
        self._inbox.put_nowait(exc)

    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(item) for item in self.sent]

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    """Connector that hands out FakeWebSockets, optionally refusing the first N attempts."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0
        self.sockets: list[FakeWebSocket] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise OSError(f"connection refused: {url}")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def make_session(**kwargs: Any) -> QuestSession:
    """Session whose outbound frames are captured instead of sent."""

    settings = kwargs.pop("settings", ClientSettings(url="ws://agent.test/acp", cwd="/work"))
    session = QuestSession(settings, clock=lambda: 1000.0, **kwargs)
    session.connection.send = AsyncMock()  # type: ignore[method-assign]
    return session


def sent_frames(session: QuestSession) -> list[dict[str, Any]]:
    return [json.loads(call.args[0]) for call in session.connection.send.await_args_list]  # type: ignore[attr-defined]
