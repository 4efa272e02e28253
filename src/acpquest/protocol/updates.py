"""Typed ``session/update`` payloads, decoded once at the protocol boundary.

Each sub-kind is a pydantic model tagged by its ``sessionUpdate`` literal; the
union is closed, so anything that fails validation becomes ``UnknownUpdate``
and the reducer treats it as a no-op.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ToolCallStatus = Literal["pending", "in_progress", "completed", "failed"]
PermissionKind = Literal["allow_once", "allow_always", "reject_once", "reject_always"]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown fields are kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        protected_namespaces=(),
    )


class ContentBlock(WireModel):
    type: str = "text"
    text: str | None = None


class ModelInfo(WireModel):
    model_id: str
    name: str = ""
    description: str | None = None


class ModeInfo(WireModel):
    id: str
    name: str = ""
    description: str | None = None


class CommandInput(WireModel):
    hint: str | None = None


class Command(WireModel):
    name: str
    description: str = ""
    input: CommandInput | None = None


class PlanEntry(WireModel):
    content: str
    status: Literal["pending", "in_progress", "completed"] = "pending"
    priority: Literal["low", "medium", "high"] | None = None


class Cost(WireModel):
    amount: float
    currency: str


class Usage(WireModel):
    size: int
    used: int
    cost: Cost | None = None


class ToolCallContent(WireModel):
    """``content`` or ``diff`` entry attached to a tool call."""

    type: str = "content"
    content: ContentBlock | None = None
    path: str | None = None
    old_text: str | None = None
    new_text: str | None = None


class ToolCallLocation(WireModel):
    path: str
    line: int | None = None


class AgentMessageChunk(WireModel):
    session_update: Literal["agent_message_chunk"]
    content: ContentBlock

    @property
    def text(self) -> str:
        return self.content.text or ""


class AgentThoughtChunk(WireModel):
    session_update: Literal["agent_thought_chunk"]
    content: ContentBlock

    @property
    def text(self) -> str:
        return self.content.text or ""


class UserMessageChunk(WireModel):
    session_update: Literal["user_message_chunk"]
    content: ContentBlock


class ToolCallStart(WireModel):
    session_update: Literal["tool_call"]
    tool_call_id: str
    title: str | None = None
    kind: str | None = None
    status: ToolCallStatus | None = None
    raw_input: Any = None
    content: tuple[ToolCallContent, ...] | None = None
    locations: tuple[ToolCallLocation, ...] | None = None


class ToolCallProgress(WireModel):
    session_update: Literal["tool_call_update"]
    tool_call_id: str
    status: ToolCallStatus | None = None
    title: str | None = None
    content: tuple[ToolCallContent, ...] | None = None
    raw_output: Any = None


class AgentPlanUpdate(WireModel):
    session_update: Literal["plan"]
    entries: tuple[PlanEntry, ...] = ()


class AvailableCommandsUpdate(WireModel):
    session_update: Literal["available_commands_update"]
    available_commands: tuple[Command, ...] = ()


class CurrentModeUpdate(WireModel):
    session_update: Literal["current_mode_update"]
    current_mode_id: str = Field(validation_alias=AliasChoices("currentModeId", "current_mode_id", "mode"))


class ConfigOptionUpdate(WireModel):
    session_update: Literal["config_option_update"]


class SessionInfoUpdate(WireModel):
    session_update: Literal["session_info_update"]
    title: str | None = None


class UsageUpdate(WireModel):
    session_update: Literal["usage_update"]
    usage: Usage

    @model_validator(mode="before")
    @classmethod
    def _nest_flat_usage(cls, value: Any) -> Any:
        """Accept ``{used, size, cost}`` at the top level as well as under ``usage``."""
        if isinstance(value, dict) and "usage" not in value and "used" in value:
            nested = {key: value[key] for key in ("size", "used", "cost") if key in value}
            return {**value, "usage": nested}
        return value


class PermissionOption(WireModel):
    option_id: str
    name: str = ""
    kind: PermissionKind


class PermissionToolCall(WireModel):
    tool_call_id: str
    title: str | None = None
    kind: str | None = None
    status: str | None = None
    raw_input: Any = None
    content: tuple[ToolCallContent, ...] | None = None
    locations: tuple[ToolCallLocation, ...] | None = None


class PermissionRequestParams(WireModel):
    """Params of an inbound ``session/request_permission`` request."""

    session_id: str = ""
    options: tuple[PermissionOption, ...] = ()
    tool_call: PermissionToolCall | None = None


class UnknownUpdate(WireModel):
    """Any sub-kind this client does not understand, or one that failed validation."""

    session_update: str = ""


KnownUpdate = Union[
    AgentMessageChunk,
    AgentThoughtChunk,
    UserMessageChunk,
    ToolCallStart,
    ToolCallProgress,
    AgentPlanUpdate,
    AvailableCommandsUpdate,
    CurrentModeUpdate,
    ConfigOptionUpdate,
    SessionInfoUpdate,
    UsageUpdate,
]
SessionUpdate = Annotated[KnownUpdate, Field(discriminator="session_update")]
DecodedUpdate = Union[KnownUpdate, UnknownUpdate]

_SESSION_UPDATE = TypeAdapter(SessionUpdate)


def decode_session_update(update: Any) -> DecodedUpdate:
    """Decode the ``update`` object of a ``session/update`` notification."""
    kind = update.get("sessionUpdate", "") if isinstance(update, dict) else ""
    try:
        return _SESSION_UPDATE.validate_python(update)
    except ValidationError as exc:
        logger.debug("session_update.unrecognized kind=%s errors=%s", kind, exc.error_count())
        return UnknownUpdate(session_update=str(kind))


def decode_models(payload: Any) -> tuple[tuple[ModelInfo, ...], str | None]:
    """Parse ``{availableModels, currentModelId}``; malformed entries are skipped."""
    if not isinstance(payload, dict):
        return (), None
    models = tuple(_validate_each(ModelInfo, payload.get("availableModels")))
    current = payload.get("currentModelId")
    return models, current if isinstance(current, str) and current else None


def decode_modes(payload: Any) -> tuple[tuple[ModeInfo, ...], str | None]:
    if not isinstance(payload, dict):
        return (), None
    modes = tuple(_validate_each(ModeInfo, payload.get("availableModes")))
    current = payload.get("currentModeId")
    return modes, current if isinstance(current, str) and current else None


def _validate_each(model: type[WireModel], items: Any) -> list[Any]:
    if not isinstance(items, list):
        return []
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            logger.debug("catalog.skip model=%s", model.__name__)
    return parsed
