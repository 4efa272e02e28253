"""Wire-level pieces of the ACP client: frames, builders, typed updates."""

from acpquest.protocol.builders import FrameBuilder, IdSequence  # noqa: F401
from acpquest.protocol.frames import (  # noqa: F401
    Frame,
    Methods,
    Notification,
    Request,
    Response,
    classify,
    decode_frame,
    encode_frame,
)
from acpquest.protocol.updates import decode_session_update  # noqa: F401

__all__ = [
    "Frame",
    "FrameBuilder",
    "IdSequence",
    "Methods",
    "Notification",
    "Request",
    "Response",
    "classify",
    "decode_frame",
    "decode_session_update",
    "encode_frame",
]
