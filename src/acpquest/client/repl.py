"""Interactive REPL loop for the quest client."""

from __future__ import annotations

import asyncio
import logging
import sys

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.key_binding import KeyBindings  # type: ignore
from prompt_toolkit.patch_stdout import patch_stdout  # type: ignore
from prompt_toolkit.styles import Style  # type: ignore

from acpquest.client.display import TranscriptPrinter, print_error, print_info
from acpquest.client.session import QuestSession
from acpquest.client.slash import handle_slash_command
from acpquest.client.status_box import build_status_toolbar

logger = logging.getLogger(__name__)

CANCEL_TOKEN = "__CANCEL__"

TOOLBAR_STYLE = Style.from_dict(
    {
        "toolbar.label": "bold",
        "toolbar.value": "",
        "toolbar.alert": "bold fg:ansiyellow",
    }
)


class PromptRunner:
    """Run prompts in the background so the REPL can answer permissions meanwhile."""

    def __init__(self, session: QuestSession) -> None:
        self._session = session
        self._tasks: dict[str, asyncio.Task[str | None]] = {}

    def busy(self, quest_id: str) -> bool:
        task = self._tasks.get(quest_id)
        return task is not None and not task.done()

    def submit(self, quest_id: str, text: str) -> asyncio.Task[str | None]:
        task = asyncio.get_running_loop().create_task(self._session.send_prompt(text))
        self._tasks[quest_id] = task
        task.add_done_callback(lambda done: self._finished(quest_id, done))
        return task

    def _finished(self, quest_id: str, task: asyncio.Task[str | None]) -> None:
        if self._tasks.get(quest_id) is task:
            del self._tasks[quest_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Prompt failed for %s: %s", quest_id, exc)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


async def interactive_loop(session: QuestSession, printer: TranscriptPrinter) -> None:
    """Read lines until EOF; slash commands run locally, anything else prompts the active quest."""
    kb = KeyBindings()

    @kb.add("escape")
    def _(event):  # type: ignore
        if not event.app.is_done:
            event.app.exit(result=CANCEL_TOKEN)

    prompt_session: PromptSession = PromptSession(
        key_bindings=kb,
        bottom_toolbar=lambda: build_status_toolbar(session.state, session.status),
        style=TOOLBAR_STYLE,
        refresh_interval=0.5,
    )
    runner = PromptRunner(session)

    try:
        with patch_stdout():
            while True:
                try:
                    quest = session.state.active_quest
                    label = quest.title if quest else "no quest"
                    line = await prompt_session.prompt_async(f"⚔ {label}> ")
                except EOFError:
                    break
                except KeyboardInterrupt:
                    print("", file=sys.stderr)
                    continue

                if line == CANCEL_TOKEN:
                    await session.cancel_prompt()
                    print_info("[cancelled]")
                    continue
                if not line.strip():
                    continue

                if line.startswith("/"):
                    handled = await handle_slash_command(line, session, printer)
                    if handled:
                        continue
                    # unknown slash commands go to the agent as ordinary prompts

                quest = session.state.active_quest
                if quest is None:
                    print_error("[no active quest, use /new]")
                    continue
                if runner.busy(quest.id):
                    print_error("[a prompt is still running, press Esc to cancel it]")
                    continue
                runner.submit(quest.id, line)
    finally:
        await runner.shutdown()
