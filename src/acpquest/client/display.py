"""Rich rendering of quest activity for the terminal client."""

from __future__ import annotations

import difflib
from io import StringIO
from threading import Lock
from typing import Any, Iterable

from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from acpquest.client import actions as act
from acpquest.client.session_state import (
    AgentItem,
    ClientState,
    PendingPermission,
    PlanItem,
    Quest,
    ThoughtItem,
    ToolCallItem,
    UserItem,
)
from acpquest.protocol import updates as upd

_render_buffer = StringIO()
_render_console = Console(
    file=_render_buffer,
    force_terminal=True,
    color_system="standard",
    markup=False,
    highlight=False,
)
_render_lock = Lock()


def _render_and_print(*args: Any, **kwargs: Any) -> bool:
    end = kwargs.get("end")
    if end is None:
        kwargs["end"] = "\n"
    with _render_lock:
        _render_buffer.seek(0)
        _render_buffer.truncate(0)
        _render_console.print(*args, **kwargs)
        output = _render_buffer.getvalue()
    if output:
        print_formatted_text(ANSI(output), end="")
        return output.endswith("\n")
    return False


def print_info(message: str) -> None:
    _render_and_print(Text(message, style="cyan"))


def print_error(message: str) -> None:
    _render_and_print(Text(message, style="red"))


def print_mode_update(mode: str) -> None:
    _render_and_print(Text(f"[mode -> {mode}]", style="magenta"))


def print_tool(status: str, message: str) -> None:
    normalized = status.lower()
    style = "green" if normalized == "completed" else "yellow" if normalized in {"pending", "in_progress"} else "red"
    _render_and_print(Text(f"🛠️ | Tool[{status}]: {message}", style=style))


def print_agent_text(text: str) -> None:
    _render_and_print(Text(text), end="")


def print_thought(text: str) -> None:
    _render_and_print(Text(text, style="#aaaaaa"), end="")


def print_diff(text: str) -> None:
    _render_and_print(Syntax(text, "diff", theme="ansi_dark", line_numbers=False))


def print_file_edit_diff(path: str, old_text: str | None, new_text: str) -> None:
    """Render a file edit as a unified diff."""
    diff = "".join(
        difflib.unified_diff(
            (old_text or "").splitlines(keepends=True),
            new_text.splitlines(keepends=True),
            fromfile=path or "before",
            tofile=path or "after",
            lineterm="",
        )
    )
    print_diff(diff if diff else f"No changes for {path or '<file>'}")


def print_plan(entries: Iterable[upd.PlanEntry]) -> None:
    table = Table(show_header=False, box=None, border_style="cyan")
    table.add_column("", width=2, style="cyan")
    table.add_column("Item", style="white")
    status_styles = {"completed": "green", "in_progress": "orange1", "pending": "orange1"}
    for entry in entries:
        table.add_row(Text("•", style=status_styles.get(entry.status, "orange1")), entry.content.strip())
    _render_and_print(table)


def print_quests(state: ClientState) -> None:
    if not state.quests:
        print_info("[no quests yet, use /new]")
        return
    table = Table(show_header=True, box=None, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Id")
    table.add_column("Title")
    table.add_column("Directory")
    table.add_column("State")
    for idx, quest in enumerate(state.quests.values(), start=1):
        marker = "*" if quest.id == state.active_quest_id else ""
        table.add_row(
            f"{marker}{idx}",
            quest.id,
            quest.title,
            quest.cwd,
            "busy" if quest.processing else "idle",
        )
    _render_and_print(table)


def _permission_command(raw_input: Any) -> str | None:
    if isinstance(raw_input, str):
        return raw_input or None
    if isinstance(raw_input, dict) and raw_input.get("command"):
        return str(raw_input["command"])
    return None


def print_permission_request(pending: PendingPermission) -> None:
    tool = pending.tool_call
    title = (tool.title or tool.tool_call_id) if tool is not None else "<tool>"
    _render_and_print(Text(f"[permission] {title}", style="bold yellow"))
    command = _permission_command(tool.raw_input if tool is not None else None)
    if command:
        _render_and_print(Text(f"  command: {command}", style="yellow"))
    for idx, option in enumerate(pending.options, start=1):
        _render_and_print(Text(f"  {idx}) {option.name or option.option_id} [{option.kind}]"))
    _render_and_print(Text("Answer with /allow <n>", style="dim"))


def _tool_call_text(content: Iterable[upd.ToolCallContent]) -> None:
    for block in content:
        if block.type == "diff" and block.new_text is not None:
            print_file_edit_diff(block.path or "", block.old_text, block.new_text)
        elif block.content is not None and block.content.text:
            print_agent_text(block.content.text.rstrip("\n") + "\n")


class TranscriptPrinter:
    """Store listener that prints activity of the active quest as it arrives.

    Updates for background quests only change state; switch to a quest to see
    its transcript with ``replay``.
    """

    def __init__(self, *, show_thinking: bool = False) -> None:
        self.show_thinking = show_thinking
        self._pending_newline = False
        self._connected = False

    def __call__(self, state: ClientState, action: object) -> None:
        if isinstance(action, act.SessionUpdateReceived):
            if action.session_id == state.active_quest_id:
                self._render_update(action.update)
        elif isinstance(action, act.PermissionRequested):
            if state.pending_permission is not None:
                self._break_line()
                print_permission_request(state.pending_permission)
        elif isinstance(action, act.PromptCompleted):
            self._break_line()
            if action.stop_reason not in {"end_turn", "unknown"}:
                print_info(f"[stopped: {action.stop_reason}]")
        elif isinstance(action, act.QuestCreated):
            quest = state.quests.get(action.session_id)
            if quest is not None:
                print_info(f"[{quest.title} started: {quest.id} in {quest.cwd}]")
        elif isinstance(action, act.Connected):
            self._connected = True
        elif isinstance(action, act.Disconnected) and self._connected:
            self._connected = False
            self._break_line()
            print_error("[disconnected, reconnecting]")

    def _break_line(self) -> None:
        if self._pending_newline:
            print_agent_text("\n")
            self._pending_newline = False

    def _render_update(self, update: upd.DecodedUpdate) -> None:
        if isinstance(update, upd.AgentMessageChunk):
            print_agent_text(update.text)
            self._pending_newline = True
        elif isinstance(update, upd.AgentThoughtChunk):
            if self.show_thinking:
                print_thought(update.text)
                self._pending_newline = True
        elif isinstance(update, upd.ToolCallStart):
            self._break_line()
            print_tool(update.status or "pending", update.title or update.tool_call_id)
        elif isinstance(update, upd.ToolCallProgress):
            self._break_line()
            if update.status is not None:
                print_tool(update.status, update.title or update.tool_call_id)
            if update.content:
                _tool_call_text(update.content)
        elif isinstance(update, upd.AgentPlanUpdate):
            self._break_line()
            print_plan(update.entries)
        elif isinstance(update, upd.CurrentModeUpdate):
            self._break_line()
            print_mode_update(update.current_mode_id)

    def replay(self, quest: Quest) -> None:
        """Print a quest's transcript from state, e.g. after switching to it."""
        self._break_line()
        print_info(f"── {quest.title} ({quest.id}) ──")
        for item in quest.items:
            if isinstance(item, UserItem):
                _render_and_print(Text(f"> {item.text}", style="bold"))
            elif isinstance(item, AgentItem):
                print_agent_text(item.text.rstrip("\n") + "\n")
            elif isinstance(item, ThoughtItem) and self.show_thinking:
                print_thought(item.text.rstrip("\n") + "\n")
            elif isinstance(item, ToolCallItem):
                print_tool(item.status, item.title or item.tool_call_id)
            elif isinstance(item, PlanItem):
                print_plan(item.entries)
