"""Match inbound responses to the outbound requests waiting on them."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from acp import RequestError

from acpquest.log_utils import log_event
from acpquest.protocol.frames import INTERNAL_ERROR, RequestId, Response

logger = logging.getLogger(__name__)


class RequestCorrelator:
    """Owned table of outstanding requests, one future per id.

    The first response carrying an id settles its future and removes the entry;
    later duplicates and ids nobody registered are ignored. Error payloads are
    surfaced as ``RequestError`` with the peer's code, message and data
    untouched. Nothing here times out: a response that never arrives leaves
    its future pending until the caller gives up (see ``discard``).
    """

    def __init__(self) -> None:
        self._pending: dict[RequestId, asyncio.Future[Any]] = {}

    def register(self, request_id: RequestId) -> asyncio.Future[Any]:
        if request_id in self._pending:
            raise ValueError(f"request id {request_id!r} is already pending")
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    def resolve(self, response: Response) -> bool:
        """Settle the matching future; return False if nothing was waiting."""
        future = self._pending.pop(response.id, None)
        if future is None:
            log_event(logger, "response.unmatched", level=logging.DEBUG, request_id=response.id)
            return False
        if future.done():
            return False
        log_event(logger, "response.settled", level=logging.DEBUG, request_id=response.id, ok=response.error is None)
        if response.error is not None:
            future.set_exception(_to_request_error(response.error))
        else:
            future.set_result(response.result)
        return True

    def discard(self, request_id: RequestId) -> bool:
        future = self._pending.pop(request_id, None)
        if future is None:
            return False
        if not future.done():
            future.cancel()
        return True

    @property
    def pending_ids(self) -> tuple[RequestId, ...]:
        return tuple(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)


def _to_request_error(error: dict[str, Any]) -> RequestError:
    code = error.get("code")
    message = error.get("message")
    return RequestError(
        code if isinstance(code, int) else INTERNAL_ERROR,
        message if isinstance(message, str) else "",
        error.get("data"),
    )
