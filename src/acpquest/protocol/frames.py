"""JSON-RPC frame types, the ACP method set, and inbound classification."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
INTERNAL_ERROR = -32603

RequestId = Union[int, str]


class Methods:
    """ACP method names used by this client."""

    INITIALIZE = "initialize"
    SESSION_NEW = "session/new"
    SESSION_PROMPT = "session/prompt"
    SESSION_CANCEL = "session/cancel"
    SESSION_SET_MODEL = "session/set_model"
    SESSION_SET_MODE = "session/set_mode"
    SESSION_UPDATE = "session/update"
    REQUEST_PERMISSION = "session/request_permission"
    READ_TEXT_FILE = "fs/read_text_file"
    WRITE_TEXT_FILE = "fs/write_text_file"
    TERMINAL_CREATE = "terminal/create"
    TERMINAL_OUTPUT = "terminal/output"


@dataclass(frozen=True)
class Request:
    id: RequestId
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method, "params": self.params}


@dataclass(frozen=True)
class Response:
    """A reply to a request; exactly one of ``result``/``error`` is meaningful."""

    id: RequestId
    result: Any = None
    error: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error
        else:
            payload["result"] = self.result
        return payload


@dataclass(frozen=True)
class Notification:
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "method": self.method, "params": self.params}


Frame = Union[Request, Response, Notification]


def encode_frame(frame: Frame) -> str:
    return json.dumps(frame.to_wire(), ensure_ascii=False, separators=(",", ":"))


def _is_id(value: Any) -> bool:
    # bool is an int subclass but never a valid JSON-RPC id
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def _params(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _error(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    return {"code": INTERNAL_ERROR, "message": str(value)}


def classify(message: Any) -> Frame | None:
    """Classify a decoded JSON object as a Response, Notification, or Request.

    id without method is a Response, method without id is a Notification, and
    both together mean the peer is calling a method on this side. Anything else
    returns None.
    """

    if not isinstance(message, dict):
        return None
    has_id = _is_id(message.get("id"))
    method = message.get("method")
    has_method = isinstance(method, str)

    if has_id and not has_method:
        return Response(id=message["id"], result=message.get("result"), error=_error(message.get("error")))
    if has_method and not has_id:
        return Notification(method=method, params=_params(message.get("params")))
    if has_id and has_method:
        return Request(id=message["id"], method=method, params=_params(message.get("params")))
    return None


def decode_frame(raw: str | bytes) -> Frame | None:
    """Decode one inbound payload; undecodable payloads are dropped (None)."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("frame.drop reason=undecodable size=%s", len(raw) if raw else 0)
        return None
    frame = classify(message)
    if frame is None:
        logger.debug("frame.drop reason=unclassifiable")
    return frame
