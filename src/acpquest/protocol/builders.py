"""Outbound frame builders for the fixed ACP client method set."""

from __future__ import annotations

import itertools
from typing import Any

from acp import PROTOCOL_VERSION, RequestError, RequestPermissionResponse, text_block
from acp.schema import (
    AllowedOutcome,
    ClientCapabilities,
    DeniedOutcome,
    FileSystemCapability,
    Implementation,
)

from acpquest import __version__
from acpquest.protocol.frames import Methods, Notification, Request, RequestId, Response

CLIENT_NAME = "acpquest"
CLIENT_TITLE = "ACP Quest Client"


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


class IdSequence:
    """Monotonic request ids, starting at 1 and never reused by one instance."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._last: int | None = None

    def next(self) -> int:
        self._last = next(self._counter)
        return self._last

    @property
    def last(self) -> int | None:
        return self._last


class FrameBuilder:
    """Build outbound frames, drawing every request id from one sequence."""

    def __init__(self, ids: IdSequence | None = None) -> None:
        self.ids = ids or IdSequence()

    def request(self, method: str, params: dict[str, Any] | None = None) -> Request:
        return Request(id=self.ids.next(), method=method, params=params or {})

    def notification(self, method: str, params: dict[str, Any] | None = None) -> Notification:
        return Notification(method=method, params=params or {})

    def initialize(self) -> Request:
        capabilities = ClientCapabilities(
            fs=FileSystemCapability(read_text_file=True, write_text_file=True),
        )
        client_info = Implementation(name=CLIENT_NAME, title=CLIENT_TITLE, version=__version__)
        return self.request(
            Methods.INITIALIZE,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "clientCapabilities": _dump(capabilities),
                "clientInfo": _dump(client_info),
            },
        )

    def session_new(self, cwd: str) -> Request:
        return self.request(Methods.SESSION_NEW, {"cwd": cwd, "mcpServers": []})

    def prompt(self, session_id: str, text: str) -> Request:
        return self.request(
            Methods.SESSION_PROMPT,
            {"sessionId": session_id, "prompt": [_dump(text_block(text))]},
        )

    def cancel(self, session_id: str) -> Notification:
        return self.notification(Methods.SESSION_CANCEL, {"sessionId": session_id})

    def set_model(self, session_id: str, model_id: str) -> Request:
        return self.request(Methods.SESSION_SET_MODEL, {"sessionId": session_id, "modelId": model_id})

    def set_mode(self, session_id: str, mode_id: str) -> Request:
        return self.request(Methods.SESSION_SET_MODE, {"sessionId": session_id, "modeId": mode_id})

    @staticmethod
    def response(request_id: RequestId, result: Any) -> Response:
        return Response(id=request_id, result=result)

    @staticmethod
    def error_response(request_id: RequestId, error: RequestError) -> Response:
        payload: dict[str, Any] = {"code": error.code, "message": str(error)}
        if error.data is not None:
            payload["data"] = error.data
        return Response(id=request_id, error=payload)

    @staticmethod
    def permission_selected(request_id: RequestId, option_id: str) -> Response:
        outcome = RequestPermissionResponse(outcome=AllowedOutcome(option_id=option_id, outcome="selected"))
        return Response(id=request_id, result=_dump(outcome))

    @staticmethod
    def permission_cancelled(request_id: RequestId) -> Response:
        outcome = RequestPermissionResponse(outcome=DeniedOutcome(outcome="cancelled"))
        return Response(id=request_id, result=_dump(outcome))
