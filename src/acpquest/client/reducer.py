"""The quest state machine: one pure transition function plus a small store."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, TypeVar

from acpquest.client import actions as act
from acpquest.client.session_state import (
    AgentItem,
    ChatItem,
    ClientState,
    PendingPermission,
    PlanItem,
    Quest,
    ThoughtItem,
    ToolCallItem,
    UserItem,
)
from acpquest.protocol import updates as upd

logger = logging.getLogger(__name__)

A = TypeVar("A")
U = TypeVar("U")

ActionHandler = Callable[[ClientState, Any], ClientState]
QuestUpdateHandler = Callable[[Quest, Any], Quest]
GlobalUpdateHandler = Callable[[ClientState, Any], ClientState]

_ACTION_HANDLERS: dict[type, ActionHandler] = {}
_QUEST_UPDATE_HANDLERS: dict[type, QuestUpdateHandler] = {}
_GLOBAL_UPDATE_HANDLERS: dict[type, GlobalUpdateHandler] = {}


def _on(action_type: type[A]) -> Callable[[Callable[[ClientState, A], ClientState]], Callable[[ClientState, A], ClientState]]:
    def _decorator(func: Callable[[ClientState, A], ClientState]) -> Callable[[ClientState, A], ClientState]:
        _ACTION_HANDLERS[action_type] = func
        return func

    return _decorator


def _on_quest_update(update_type: type[U]) -> Callable[[Callable[[Quest, U], Quest]], Callable[[Quest, U], Quest]]:
    def _decorator(func: Callable[[Quest, U], Quest]) -> Callable[[Quest, U], Quest]:
        _QUEST_UPDATE_HANDLERS[update_type] = func
        return func

    return _decorator


def _on_global_update(
    update_type: type[U],
) -> Callable[[Callable[[ClientState, U], ClientState]], Callable[[ClientState, U], ClientState]]:
    def _decorator(func: Callable[[ClientState, U], ClientState]) -> Callable[[ClientState, U], ClientState]:
        _GLOBAL_UPDATE_HANDLERS[update_type] = func
        return func

    return _decorator


def reduce(state: ClientState, action: object) -> ClientState:
    """Apply one action; unknown actions leave the state untouched."""
    handler = _ACTION_HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action)


# ---- helpers ---------------------------------------------------------------


def _with_quest(state: ClientState, quest: Quest) -> ClientState:
    return replace(state, quests={**state.quests, quest.id: quest})


def _update_quest(state: ClientState, quest_id: str | None, updater: Callable[[Quest], Quest]) -> ClientState:
    if quest_id is None:
        return state
    quest = state.quests.get(quest_id)
    if quest is None:
        return state
    return _with_quest(state, updater(quest))


def _append(quest: Quest, build: Callable[[str], ChatItem]) -> Quest:
    seq = quest.item_seq + 1
    return replace(quest, items=(*quest.items, build(f"ci-{seq}")), item_seq=seq)


def _replace_tail(quest: Quest, item: ChatItem) -> Quest:
    return replace(quest, items=(*quest.items[:-1], item))


def _complete_tail(quest: Quest) -> Quest:
    tail = quest.items[-1] if quest.items else None
    if isinstance(tail, (AgentItem, ThoughtItem)) and not tail.complete:
        return _replace_tail(quest, replace(tail, complete=True))
    return quest


# ---- connection / protocol -------------------------------------------------


@_on(act.Connected)
def _connected(state: ClientState, _action: act.Connected) -> ClientState:
    return replace(state, connected=True)


@_on(act.Disconnected)
def _disconnected(state: ClientState, _action: act.Disconnected) -> ClientState:
    return replace(state, connected=False, initialized=False)


@_on(act.ProtocolInitialized)
def _protocol_initialized(state: ClientState, action: act.ProtocolInitialized) -> ClientState:
    return replace(
        state,
        initialized=True,
        models=tuple(action.models),
        modes=tuple(action.modes),
        protocol_version=action.protocol_version,
        agent_info=action.agent_info,
    )


# ---- quests ----------------------------------------------------------------


@_on(act.QuestCreated)
def _quest_created(state: ClientState, action: act.QuestCreated) -> ClientState:
    models = tuple(action.models) or state.models
    modes = tuple(action.modes) or state.modes
    ordinal = len([qid for qid in state.quests if qid != action.session_id]) + 1
    quest = Quest(
        id=action.session_id,
        title=f"Quest {ordinal}",
        cwd=action.cwd,
        current_model_id=action.current_model_id or (models[0].model_id if models else ""),
        current_mode_id=action.current_mode_id or (modes[0].id if modes else ""),
        created_at=action.created_at,
    )
    state = _with_quest(state, quest)
    return replace(state, active_quest_id=quest.id, models=models, modes=modes)


@_on(act.QuestSwitched)
def _quest_switched(state: ClientState, action: act.QuestSwitched) -> ClientState:
    if action.quest_id not in state.quests:
        return state
    return replace(state, active_quest_id=action.quest_id)


@_on(act.QuestClosed)
def _quest_closed(state: ClientState, action: act.QuestClosed) -> ClientState:
    if action.quest_id not in state.quests:
        return state
    remaining = {qid: quest for qid, quest in state.quests.items() if qid != action.quest_id}
    active = state.active_quest_id
    if active == action.quest_id:
        active = next(iter(remaining), None)
    return replace(state, quests=remaining, active_quest_id=active)


@_on(act.QuestRenamed)
def _quest_renamed(state: ClientState, action: act.QuestRenamed) -> ClientState:
    return _update_quest(state, action.quest_id, lambda q: replace(q, title=action.title))


@_on(act.UserPromptSent)
def _user_prompt_sent(state: ClientState, action: act.UserPromptSent) -> ClientState:
    def _apply(quest: Quest) -> Quest:
        quest = _append(quest, lambda item_id: UserItem(id=item_id, text=action.text))
        return replace(quest, processing=True)

    return _update_quest(state, state.active_quest_id, _apply)


@_on(act.PromptCompleted)
def _prompt_completed(state: ClientState, action: act.PromptCompleted) -> ClientState:
    def _apply(quest: Quest) -> Quest:
        quest = _complete_tail(quest)
        return replace(quest, processing=False, last_stop_reason=action.stop_reason)

    return _update_quest(state, action.quest_id, _apply)


@_on(act.ModelSelected)
def _model_selected(state: ClientState, action: act.ModelSelected) -> ClientState:
    return _update_quest(state, state.active_quest_id, lambda q: replace(q, current_model_id=action.model_id))


@_on(act.ModeSelected)
def _mode_selected(state: ClientState, action: act.ModeSelected) -> ClientState:
    return _update_quest(state, state.active_quest_id, lambda q: replace(q, current_mode_id=action.mode_id))


@_on(act.ToolCallFocused)
def _tool_call_focused(state: ClientState, action: act.ToolCallFocused) -> ClientState:
    return _update_quest(
        state, state.active_quest_id, lambda q: replace(q, focused_tool_call_id=action.tool_call_id)
    )


# ---- permissions and catalogs ----------------------------------------------


@_on(act.PermissionRequested)
def _permission_requested(state: ClientState, action: act.PermissionRequested) -> ClientState:
    pending = PendingPermission(
        request_id=action.request_id,
        quest_id=action.session_id,
        options=tuple(action.options),
        tool_call=action.tool_call,
    )
    return replace(state, pending_permission=pending)


@_on(act.PermissionResolved)
def _permission_resolved(state: ClientState, _action: act.PermissionResolved) -> ClientState:
    return replace(state, pending_permission=None)


@_on(act.CommandsUpdated)
def _commands_updated(state: ClientState, action: act.CommandsUpdated) -> ClientState:
    return replace(state, commands=tuple(action.commands))


# ---- session/update --------------------------------------------------------


@_on(act.SessionUpdateReceived)
def _session_update(state: ClientState, action: act.SessionUpdateReceived) -> ClientState:
    update = action.update
    global_handler = _GLOBAL_UPDATE_HANDLERS.get(type(update))
    if global_handler is not None:
        return global_handler(state, update)
    quest_handler = _QUEST_UPDATE_HANDLERS.get(type(update))
    if quest_handler is None:
        return state
    return _update_quest(state, action.session_id, lambda q: quest_handler(q, update))


def _merge_text(quest: Quest, kind: type[AgentItem] | type[ThoughtItem], text: str) -> Quest:
    tail = quest.items[-1] if quest.items else None
    if isinstance(tail, kind) and not tail.complete:
        return _replace_tail(quest, replace(tail, text=tail.text + text))
    return _append(quest, lambda item_id: kind(id=item_id, text=text))


@_on_quest_update(upd.AgentMessageChunk)
def _agent_message_chunk(quest: Quest, update: upd.AgentMessageChunk) -> Quest:
    return _merge_text(quest, AgentItem, update.text)


@_on_quest_update(upd.AgentThoughtChunk)
def _agent_thought_chunk(quest: Quest, update: upd.AgentThoughtChunk) -> Quest:
    return _merge_text(quest, ThoughtItem, update.text)


@_on_quest_update(upd.ToolCallStart)
def _tool_call_start(quest: Quest, update: upd.ToolCallStart) -> Quest:
    tail = quest.items[-1] if quest.items else None
    if isinstance(tail, AgentItem) and not tail.complete:
        quest = _replace_tail(quest, replace(tail, complete=True))
    quest = _append(
        quest,
        lambda item_id: ToolCallItem(
            id=item_id,
            tool_call_id=update.tool_call_id,
            title=update.title or "",
            kind=update.kind or "other",
            status=update.status or "pending",
            raw_input=update.raw_input,
            content=update.content,
            locations=update.locations,
        ),
    )
    return replace(quest, focused_tool_call_id=update.tool_call_id)


@_on_quest_update(upd.ToolCallProgress)
def _tool_call_progress(quest: Quest, update: upd.ToolCallProgress) -> Quest:
    items = list(quest.items)
    for idx, item in enumerate(items):
        if isinstance(item, ToolCallItem) and item.tool_call_id == update.tool_call_id:
            items[idx] = replace(
                item,
                status=update.status or item.status,
                title=update.title or item.title,
                content=update.content if update.content is not None else item.content,
            )
            return replace(quest, items=tuple(items))
    logger.debug("tool_call_update.unknown tool_call_id=%s", update.tool_call_id)
    return quest


@_on_quest_update(upd.AgentPlanUpdate)
def _plan(quest: Quest, update: upd.AgentPlanUpdate) -> Quest:
    for idx, item in enumerate(quest.items):
        if isinstance(item, PlanItem):
            items = list(quest.items)
            items[idx] = replace(item, entries=update.entries)
            return replace(quest, items=tuple(items))
    return _append(quest, lambda item_id: PlanItem(id=item_id, entries=update.entries))


@_on_quest_update(upd.CurrentModeUpdate)
def _current_mode(quest: Quest, update: upd.CurrentModeUpdate) -> Quest:
    return replace(quest, current_mode_id=update.current_mode_id)


@_on_quest_update(upd.SessionInfoUpdate)
def _session_info(quest: Quest, update: upd.SessionInfoUpdate) -> Quest:
    if not update.title:
        return quest
    return replace(quest, title=update.title)


@_on_global_update(upd.AvailableCommandsUpdate)
def _available_commands(state: ClientState, update: upd.AvailableCommandsUpdate) -> ClientState:
    return replace(state, commands=tuple(update.available_commands))


@_on_global_update(upd.UsageUpdate)
def _usage(state: ClientState, update: upd.UsageUpdate) -> ClientState:
    return replace(state, usage=update.usage)


# user_message_chunk, config_option_update and unknown kinds have no handler.


# ---- store -----------------------------------------------------------------

Listener = Callable[[ClientState, object], None]


class QuestStore:
    """Hold the current state and apply actions one at a time, in order."""

    def __init__(self, state: ClientState | None = None) -> None:
        self._state = state or ClientState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ClientState:
        return self._state

    def dispatch(self, action: object) -> ClientState:
        self._state = reduce(self._state, action)
        for listener in list(self._listeners):
            try:
                listener(self._state, action)
            except Exception:
                logger.exception("State listener failed for %s", type(action).__name__)
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
