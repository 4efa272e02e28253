"""Answer requests the agent sends to the client."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping

from acp import RequestError
from pydantic import ValidationError

from acpquest.client.actions import PermissionRequested
from acpquest.client.reducer import QuestStore
from acpquest.log_utils import log_event
from acpquest.protocol.builders import FrameBuilder
from acpquest.protocol.frames import Methods, Request, Response
from acpquest.protocol.updates import PermissionRequestParams

logger = logging.getLogger(__name__)

AgentMethodHandler = Callable[[Request], "Awaitable[Any] | Any"]


def read_text_file_stub(_request: Request) -> dict[str, Any]:
    return {"content": ""}


def write_text_file_stub(_request: Request) -> dict[str, Any]:
    return {"success": True}


def create_terminal_stub(request: Request) -> dict[str, Any]:
    return {"terminalId": f"term-{request.id}"}


def terminal_output_stub(_request: Request) -> dict[str, Any]:
    return {}


DEFAULT_HANDLERS: Mapping[str, AgentMethodHandler] = {
    Methods.READ_TEXT_FILE: read_text_file_stub,
    Methods.WRITE_TEXT_FILE: write_text_file_stub,
    Methods.TERMINAL_CREATE: create_terminal_stub,
    Methods.TERMINAL_OUTPUT: terminal_output_stub,
}


class AgentRequestHandler:
    """Turn an inbound agent request into a same-id response.

    File and terminal methods get stub answers unless a real handler is
    registered for them. ``session/request_permission`` is not answered here:
    it is parked in the store until the user picks an option, so ``handle``
    returns None for it.
    """

    def __init__(self, store: QuestStore, handlers: Mapping[str, AgentMethodHandler] | None = None) -> None:
        self._store = store
        self._handlers: dict[str, AgentMethodHandler] = dict(DEFAULT_HANDLERS)
        if handlers:
            self._handlers.update(handlers)

    def register(self, method: str, handler: AgentMethodHandler) -> None:
        self._handlers[method] = handler

    async def handle(self, request: Request) -> Response | None:
        if request.method == Methods.REQUEST_PERMISSION:
            return self._escalate_permission(request)

        handler = self._handlers.get(request.method)
        if handler is None:
            log_event(logger, "agent_request.unsupported", level=logging.WARNING, method=request.method)
            return FrameBuilder.error_response(request.id, RequestError.method_not_found(request.method))
        try:
            result = handler(request)
            if inspect.isawaitable(result):
                result = await result
        except RequestError as exc:
            return FrameBuilder.error_response(request.id, exc)
        except Exception as exc:
            logger.exception("Agent request handler failed for %s", request.method)
            error = RequestError.internal_error({"method": request.method, "error": str(exc)})
            return FrameBuilder.error_response(request.id, error)
        log_event(logger, "agent_request.answered", level=logging.DEBUG, method=request.method, id=request.id)
        return FrameBuilder.response(request.id, result)

    def _escalate_permission(self, request: Request) -> Response | None:
        try:
            params = PermissionRequestParams.model_validate(request.params)
        except ValidationError as exc:
            logger.warning("Malformed permission request id=%s: %s", request.id, exc)
            return FrameBuilder.error_response(request.id, RequestError.invalid_params({"message": f"Malformed permission request: {exc.error_count()} errors"}))
        log_event(
            logger,
            "permission.request",
            session=params.session_id,
            tool=params.tool_call.title if params.tool_call else None,
            options=[opt.option_id for opt in params.options],
        )
        self._store.dispatch(
            PermissionRequested(
                request_id=request.id,
                session_id=params.session_id,
                options=params.options,
                tool_call=params.tool_call,
            )
        )
        return None
