"""Read model of the client: quests, transcripts, catalogs, pending permission.

All types are frozen; the reducer builds new instances instead of mutating.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from acpquest.protocol.frames import RequestId
from acpquest.protocol.updates import (
    Command,
    ModeInfo,
    ModelInfo,
    PermissionOption,
    PermissionToolCall,
    PlanEntry,
    ToolCallContent,
    ToolCallLocation,
    Usage,
)


@dataclass(frozen=True)
class UserItem:
    id: str
    text: str


@dataclass(frozen=True)
class AgentItem:
    id: str
    text: str
    complete: bool = False


@dataclass(frozen=True)
class ThoughtItem:
    id: str
    text: str
    complete: bool = False


@dataclass(frozen=True)
class ToolCallItem:
    id: str
    tool_call_id: str
    title: str = ""
    kind: str = "other"
    status: str = "pending"
    raw_input: Any = None
    content: tuple[ToolCallContent, ...] | None = None
    locations: tuple[ToolCallLocation, ...] | None = None


@dataclass(frozen=True)
class PlanItem:
    id: str
    entries: tuple[PlanEntry, ...] = ()


ChatItem = Union[UserItem, AgentItem, ThoughtItem, ToolCallItem, PlanItem]


@dataclass(frozen=True)
class Quest:
    """One agent session tracked by the client, keyed by the server's session id."""

    id: str
    title: str
    cwd: str
    items: tuple[ChatItem, ...] = ()
    current_model_id: str = ""
    current_mode_id: str = ""
    processing: bool = False
    focused_tool_call_id: str | None = None
    created_at: float = 0.0
    last_stop_reason: str | None = None
    item_seq: int = 0

    def tool_call(self, tool_call_id: str) -> ToolCallItem | None:
        for item in self.items:
            if isinstance(item, ToolCallItem) and item.tool_call_id == tool_call_id:
                return item
        return None

    @property
    def plan(self) -> PlanItem | None:
        for item in self.items:
            if isinstance(item, PlanItem):
                return item
        return None


@dataclass(frozen=True)
class PendingPermission:
    request_id: RequestId
    quest_id: str
    options: tuple[PermissionOption, ...] = ()
    tool_call: PermissionToolCall | None = None

    def option(self, option_id: str) -> PermissionOption | None:
        return next((opt for opt in self.options if opt.option_id == option_id), None)


@dataclass(frozen=True)
class ClientState:
    connected: bool = False
    initialized: bool = False
    quests: Mapping[str, Quest] = field(default_factory=dict)
    active_quest_id: str | None = None
    models: tuple[ModelInfo, ...] = ()
    modes: tuple[ModeInfo, ...] = ()
    commands: tuple[Command, ...] = ()
    usage: Usage | None = None
    pending_permission: PendingPermission | None = None
    protocol_version: int | None = None
    agent_info: Mapping[str, Any] | None = None

    @property
    def active_quest(self) -> Quest | None:
        if self.active_quest_id is None:
            return None
        return self.quests.get(self.active_quest_id)
