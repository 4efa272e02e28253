"""Actions accepted by the quest reducer.

Protocol events and user intents are both expressed as these small frozen
records, so every state change goes through ``reduce``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from acpquest.protocol.frames import RequestId
from acpquest.protocol.updates import (
    Command,
    DecodedUpdate,
    ModeInfo,
    ModelInfo,
    PermissionOption,
    PermissionToolCall,
)


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class Disconnected:
    pass


@dataclass(frozen=True)
class ProtocolInitialized:
    models: tuple[ModelInfo, ...] = ()
    modes: tuple[ModeInfo, ...] = ()
    protocol_version: int | None = None
    agent_info: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class QuestCreated:
    session_id: str
    cwd: str
    models: tuple[ModelInfo, ...] = ()
    modes: tuple[ModeInfo, ...] = ()
    current_model_id: str | None = None
    current_mode_id: str | None = None
    created_at: float = 0.0


@dataclass(frozen=True)
class QuestSwitched:
    quest_id: str


@dataclass(frozen=True)
class QuestClosed:
    quest_id: str


@dataclass(frozen=True)
class QuestRenamed:
    quest_id: str
    title: str


@dataclass(frozen=True)
class UserPromptSent:
    text: str


@dataclass(frozen=True)
class PromptCompleted:
    quest_id: str
    stop_reason: str


@dataclass(frozen=True)
class ModelSelected:
    model_id: str


@dataclass(frozen=True)
class ModeSelected:
    mode_id: str


@dataclass(frozen=True)
class ToolCallFocused:
    tool_call_id: str | None


@dataclass(frozen=True)
class PermissionRequested:
    request_id: RequestId
    session_id: str
    options: tuple[PermissionOption, ...] = ()
    tool_call: PermissionToolCall | None = None


@dataclass(frozen=True)
class PermissionResolved:
    pass


@dataclass(frozen=True)
class CommandsUpdated:
    commands: tuple[Command, ...]


@dataclass(frozen=True)
class SessionUpdateReceived:
    session_id: str
    update: DecodedUpdate
