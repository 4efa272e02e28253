"""Client-side slash command registry and dispatch."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from acp import RequestError

from acpquest.client.display import TranscriptPrinter, print_error, print_info, print_quests
from acpquest.client.session import QuestSession
from acpquest.client.status_box import render_status
from acpquest.log_utils import log_event

logger = logging.getLogger(__name__)

SlashHandler = Callable[[QuestSession, TranscriptPrinter, str], "Awaitable[bool] | bool"]

REQUEST_TIMEOUT = 15.0

T = TypeVar("T")


@dataclass
class SlashCommandDef:
    description: str
    hint: str
    handler: SlashHandler


SLASH_HANDLERS: dict[str, SlashCommandDef] = {}


def register_slash_command(name: str, description: str, hint: str) -> Callable[[SlashHandler], SlashHandler]:
    """Decorator to register a slash command."""

    def _decorator(func: SlashHandler) -> SlashHandler:
        SLASH_HANDLERS[name] = SlashCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


async def _bounded(awaitable: Awaitable[T], what: str) -> T | None:
    """Wait at most ``REQUEST_TIMEOUT`` so an unanswered request cannot freeze the REPL."""
    try:
        return await asyncio.wait_for(awaitable, REQUEST_TIMEOUT)
    except asyncio.TimeoutError:
        log_event(logger, "slash.timeout", level=logging.WARNING, request=what, timeout=REQUEST_TIMEOUT)
        print_error(f"[{what}: no answer from agent after {REQUEST_TIMEOUT:g}s]")
        return None


@register_slash_command("/help", description="Show available slash commands.", hint="/help")
def _handle_help(session: QuestSession, _printer: TranscriptPrinter, _argument: str) -> bool:
    print_info("Available slash commands:")
    for entry in SLASH_HANDLERS.values():
        print_info(f"{entry.hint:<16} - {entry.description}")
    local = set(SLASH_HANDLERS)
    for command in session.state.commands:
        name = f"/{command.name}"
        if name in local:
            continue
        hint = command.input.hint if command.input and command.input.hint else ""
        print_info(f"{name:<16} - {command.description or hint or 'Handled by agent'}")
    return True


@register_slash_command("/new", description="Start a new quest (agent session).", hint="/new [cwd]")
async def _handle_new(session: QuestSession, _printer: TranscriptPrinter, argument: str) -> bool:
    try:
        await _bounded(session.create_quest(argument or None), "session/new")
    except RequestError as exc:
        print_error(f"[failed to start quest: {exc}]")
    return True


@register_slash_command("/quests", description="List open quests.", hint="/quests")
def _handle_quests(session: QuestSession, _printer: TranscriptPrinter, _argument: str) -> bool:
    print_quests(session.state)
    return True


def _resolve_quest_id(session: QuestSession, argument: str) -> str | None:
    quest_ids = list(session.state.quests)
    if argument in session.state.quests:
        return argument
    if argument.isdigit() and 1 <= int(argument) <= len(quest_ids):
        return quest_ids[int(argument) - 1]
    return None


@register_slash_command("/switch", description="Make another quest active.", hint="/switch <id|n>")
def _handle_switch(session: QuestSession, printer: TranscriptPrinter, argument: str) -> bool:
    quest_id = _resolve_quest_id(session, argument.strip())
    if quest_id is None:
        print_error(f"[unknown quest: {argument or '<missing>'}]")
        return True
    session.switch_quest(quest_id)
    quest = session.state.active_quest
    if quest is not None:
        printer.replay(quest)
    return True


@register_slash_command("/close", description="Close a quest (default: the active one).", hint="/close [id|n]")
def _handle_close(session: QuestSession, _printer: TranscriptPrinter, argument: str) -> bool:
    quest_id = _resolve_quest_id(session, argument.strip()) if argument else None
    if argument and quest_id is None:
        print_error(f"[unknown quest: {argument}]")
        return True
    if not session.close_quest(quest_id):
        print_error("[no quest to close]")
        return True
    active = session.state.active_quest
    print_info(f"[closed; active quest: {active.title if active else 'none'}]")
    return True


@register_slash_command("/model", description="Set the active quest's model.", hint="/model <id>")
async def _handle_model(session: QuestSession, _printer: TranscriptPrinter, argument: str) -> bool:
    if not argument:
        available = ", ".join(model.model_id for model in session.state.models) or "none advertised"
        print_info(f"Usage: /model <id> (available: {available})")
        return True
    selection = argument.split()[0]
    if session.state.active_quest is None:
        print_error("[no active quest]")
        return True
    accepted = await _bounded(session.set_model(selection), f"model {selection}")
    if accepted is not None:
        print_info(f"[model set to {selection}]" if accepted else f"[agent rejected model {selection}]")
    return True


@register_slash_command("/mode", description="Set the active quest's mode.", hint="/mode <id>")
async def _handle_mode(session: QuestSession, _printer: TranscriptPrinter, argument: str) -> bool:
    if not argument:
        available = ", ".join(mode.id for mode in session.state.modes) or "none advertised"
        print_info(f"Usage: /mode <id> (available: {available})")
        return True
    selection = argument.split()[0]
    if session.state.active_quest is None:
        print_error("[no active quest]")
        return True
    accepted = await _bounded(session.set_mode(selection), f"mode {selection}")
    if accepted is not None:
        print_info(f"[mode set to {selection}]" if accepted else f"[agent rejected mode {selection}]")
    return True


@register_slash_command("/allow", description="Answer the pending permission request.", hint="/allow <n|id>")
async def _handle_allow(session: QuestSession, _printer: TranscriptPrinter, argument: str) -> bool:
    pending = session.state.pending_permission
    if pending is None:
        print_error("[no permission request pending]")
        return True
    choice = argument.strip()
    option_id = choice
    if choice.isdigit() and 1 <= int(choice) <= len(pending.options):
        option_id = pending.options[int(choice) - 1].option_id
    if pending.option(option_id) is None:
        print_error(f"[unknown option: {choice or '<missing>'}]")
        return True
    await session.respond_permission(option_id)
    print_info(f"[permission: {option_id}]")
    return True


@register_slash_command("/cancel", description="Cancel the active quest's running prompt.", hint="/cancel")
async def _handle_cancel(session: QuestSession, _printer: TranscriptPrinter, _argument: str) -> bool:
    await session.cancel_prompt()
    print_info("[cancelled]")
    return True


@register_slash_command("/thinking", description="Toggle display of thought chunks.", hint="/thinking on|off")
def _handle_thinking(_session: QuestSession, printer: TranscriptPrinter, argument: str) -> bool:
    parts = argument.split()
    if len(parts) == 1 and parts[0] in {"on", "off"}:
        printer.show_thinking = parts[0] == "on"
        print_info("Thinking output enabled." if printer.show_thinking else "Thinking output disabled.")
    else:
        print_info("Usage: /thinking on|off")
    return True


@register_slash_command("/status", description="Show connection, agent and quest details.", hint="/status")
def _handle_status(session: QuestSession, _printer: TranscriptPrinter, _argument: str) -> bool:
    print_info(render_status(session.state, session.status, session.settings.url))
    return True


@register_slash_command("/exit", description="Exit the client.", hint="/exit")
def _handle_exit(_session: QuestSession, _printer: TranscriptPrinter, _argument: str) -> bool:
    print_info("[exiting]")
    raise SystemExit(0)


async def handle_slash_command(line: str, session: QuestSession, printer: TranscriptPrinter) -> bool:
    """Dispatch client-side slash commands, returning True if handled."""
    trimmed = line.strip()
    if not trimmed.startswith("/"):
        return False

    parts = trimmed.split(maxsplit=1)
    command = parts[0] if parts else ""
    argument = parts[1].strip() if len(parts) > 1 else ""

    entry = SLASH_HANDLERS.get(command)
    if entry is None:
        return False

    try:
        result = entry.handler(session, printer, argument)
        if asyncio.iscoroutine(result):
            return bool(await result)
        return bool(result)
    except SystemExit:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("Slash command failed (%s): %s", command, exc)
        return True
