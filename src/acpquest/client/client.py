"""Interactive ACP client that drives quests over a WebSocket."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from acp import RequestError
from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore

from acpquest import __version__
from acpquest.client.display import TranscriptPrinter, print_error
from acpquest.client.repl import interactive_loop
from acpquest.client.session import QuestSession
from acpquest.client.session_state import ClientState
from acpquest.client.status_box import build_welcome_banner
from acpquest.config import ClientSettings, load_settings
from acpquest.log_utils import LogConfig, configure_logging, log_event

logger = logging.getLogger(__name__)

INITIALIZE_TIMEOUT = 30.0


async def wait_until_initialized(session: QuestSession, timeout: float | None = INITIALIZE_TIMEOUT) -> bool:
    """Wait for the protocol handshake; False if it does not finish in time."""
    if session.state.initialized:
        return True
    ready = asyncio.Event()

    def _listener(state: ClientState, _action: object) -> None:
        if state.initialized:
            ready.set()

    unsubscribe = session.subscribe(_listener)
    try:
        await asyncio.wait_for(ready.wait(), timeout)
        return True
    except asyncio.TimeoutError:
        return False
    finally:
        unsubscribe()


async def run_client(settings: ClientSettings, *, show_thinking: bool = False) -> int:
    configure_logging(LogConfig.from_env())
    log_event(logger, "client.start", url=settings.url, version=__version__)

    cwd = settings.cwd or os.getcwd()
    session = QuestSession(settings)
    printer = TranscriptPrinter(show_thinking=show_thinking)
    session.subscribe(printer)
    print_formatted_text(ANSI(build_welcome_banner(settings.url, cwd)))

    session.start()
    try:
        if not await wait_until_initialized(session):
            print_error(f"Could not initialize an ACP session with {settings.url}")
            return 1
        try:
            await session.create_quest(cwd)
        except RequestError as exc:
            print_error(f"[failed to start quest: {exc}]")
        await interactive_loop(session, printer)
        return 0
    except KeyboardInterrupt:
        return 130
    finally:
        await session.disconnect()
        log_event(logger, "client.stop")


async def main(argv: list[str]) -> int:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Run an ACP quest client against a WebSocket agent bridge.")
    parser.add_argument("--url", type=str, help=f"WebSocket URL of the agent (default: {settings.url})")
    parser.add_argument("--cwd", type=str, help="Working directory for the first quest (default: current directory)")
    parser.add_argument(
        "--max-reconnect-attempts",
        type=int,
        help=f"Reconnect attempts after a dropped connection (default: {settings.max_reconnect_attempts})",
    )
    parser.add_argument("--thinking", action="store_true", help="Show agent thought chunks")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv[1:])

    settings = settings.with_overrides(
        url=args.url,
        cwd=args.cwd,
        max_reconnect_attempts=args.max_reconnect_attempts,
    )
    return await run_client(settings, show_thinking=args.thinking)


def run() -> None:
    """Console script entry point."""
    try:
        raise SystemExit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        raise SystemExit(130)
