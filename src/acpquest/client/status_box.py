"""Status UI rendering for the terminal client."""

from __future__ import annotations

import os
from pathlib import Path

from prompt_toolkit.utils import get_cwidth  # type: ignore

from acpquest.client.connection import ConnectionStatus
from acpquest.client.session_state import ClientState
from acpquest.protocol.updates import Usage


def format_path(path: str | None) -> str:
    if not path:
        path = os.getcwd()
    resolved = Path(path).expanduser()
    try:
        resolved = resolved.resolve()
    except OSError:
        return str(resolved)
    try:
        rel = resolved.relative_to(Path.home())
    except ValueError:
        return str(resolved)
    return str(Path("~") / rel)


def format_usage(usage: Usage | None) -> str:
    if usage is None:
        return "n/a"
    text = f"{usage.used:,}/{usage.size:,}"
    if usage.size:
        text += f" ({usage.used * 100 // usage.size}%)"
    if usage.cost is not None:
        text += f" {usage.cost.amount:.2f} {usage.cost.currency}"
    return text


def _model_name(state: ClientState, model_id: str) -> str:
    for model in state.models:
        if model.model_id == model_id:
            return model.name or model_id
    return model_id or "unknown"


def build_status_toolbar(state: ClientState, status: ConnectionStatus) -> list[tuple[str, str]]:
    quest = state.active_quest
    gap = ("", "  ")
    parts: list[tuple[str, str]] = [
        ("class:toolbar.label", "Link: "),
        ("class:toolbar.value", status.value),
        gap,
        ("class:toolbar.label", "Quest: "),
        ("class:toolbar.value", quest.title if quest else "none"),
        gap,
    ]
    if quest is not None:
        parts.extend(
            [
                ("class:toolbar.label", "Mode: "),
                ("class:toolbar.value", quest.current_mode_id or "unknown"),
                gap,
                ("class:toolbar.label", "Model: "),
                ("class:toolbar.value", _model_name(state, quest.current_model_id)),
                gap,
            ]
        )
    parts.extend(
        [
            ("class:toolbar.label", "Usage: "),
            ("class:toolbar.value", format_usage(state.usage)),
            gap,
            ("class:toolbar.label", "Esc: "),
            ("class:toolbar.value", "cancel"),
        ]
    )
    if state.pending_permission is not None:
        parts.extend([gap, ("class:toolbar.alert", "permission pending: /allow <n>")])
    return parts


def render_status(state: ClientState, status: ConnectionStatus, url: str) -> str:
    quest = state.active_quest
    agent = state.agent_info or {}
    agent_name = agent.get("title") or agent.get("name") or "unknown"
    lines = [
        f"Server: {url} ({status.value})",
        f"Agent: {agent_name}" + (f" {agent['version']}" if agent.get("version") else ""),
        f"Protocol: {state.protocol_version if state.protocol_version is not None else 'n/a'}",
        f"Quests: {len(state.quests)}",
    ]
    if quest is not None:
        lines.extend(
            [
                f"Active: {quest.title} ({quest.id})",
                f"Directory: {format_path(quest.cwd)}",
                f"Mode: {quest.current_mode_id or 'unknown'}",
                f"Model: {_model_name(state, quest.current_model_id)}",
            ]
        )
    if state.modes:
        lines.append("Modes: " + ", ".join(mode.id for mode in state.modes))
    if state.models:
        lines.append("Models: " + ", ".join(model.model_id for model in state.models))
    lines.append(f"Usage: {format_usage(state.usage)}")
    return "\n".join(lines)


def build_welcome_banner(url: str, cwd: str) -> str:
    lines = [
        "⚔ Welcome to ACP Quest ⚔",
        "Send /help for help information.",
        "",
        f"Server: {url}",
        f"Directory: {format_path(cwd)}",
    ]
    content_width = max(_display_width(line) for line in lines)
    padded_lines: list[str] = []
    for idx, line in enumerate(lines):
        aligned = _center_to_width(line, content_width) if idx in {0, 1} else _pad_to_width(line, content_width)
        padded_lines.append(f" {aligned} ")

    width = content_width + 2
    green = "\x1b[32m"
    bold = "\x1b[1m"
    reset = "\x1b[0m"

    top = f"{green}┌{'─' * width}┐{reset}"
    body: list[str] = []
    for idx, line in enumerate(padded_lines):
        content = f"{bold}{line}{reset}" if idx == 0 else line
        body.append(f"{green}│{reset}{content}{green}│{reset}")
    bottom = f"{green}└{'─' * width}┘{reset}"
    return "\n".join([top, *body, bottom, ""])


def _display_width(text: str) -> int:
    return get_cwidth(text)


def _pad_to_width(text: str, width: int) -> str:
    padding = max(0, width - _display_width(text))
    return f"{text}{' ' * padding}" if padding else text


def _center_to_width(text: str, width: int) -> str:
    text_width = _display_width(text)
    if text_width >= width:
        return _pad_to_width(text, width)
    padding = width - text_width
    left = padding // 2
    return f"{' ' * left}{text}{' ' * (padding - left)}"
