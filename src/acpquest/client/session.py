"""Wire the connection, correlator, store and agent-request handler together.

``QuestSession`` is what a front end talks to: it turns user intents into
outbound frames and reducer actions, and routes every inbound frame to the
correlator, the store, or the agent-request handler.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Callable

from acp import RequestError

from acpquest.client.actions import (
    Connected,
    Disconnected,
    ModelSelected,
    ModeSelected,
    PermissionResolved,
    PromptCompleted,
    ProtocolInitialized,
    QuestClosed,
    QuestCreated,
    QuestRenamed,
    QuestSwitched,
    SessionUpdateReceived,
    ToolCallFocused,
    UserPromptSent,
)
from acpquest.client.agent_requests import AgentRequestHandler
from acpquest.client.connection import ConnectionManager, ConnectionStatus, Connector
from acpquest.client.correlator import RequestCorrelator
from acpquest.client.reducer import Listener, QuestStore
from acpquest.client.session_state import ClientState
from acpquest.config import ClientSettings
from acpquest.log_utils import log_context, log_event
from acpquest.protocol.builders import FrameBuilder, IdSequence
from acpquest.protocol.frames import (
    Frame,
    Methods,
    Notification,
    Request,
    Response,
    decode_frame,
    encode_frame,
)
from acpquest.protocol.updates import decode_models, decode_modes, decode_session_update

logger = logging.getLogger(__name__)

ERROR_STOP_REASON = "error"
UNKNOWN_STOP_REASON = "unknown"


class QuestSession:
    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        connector: Connector | None = None,
        store: QuestStore | None = None,
        ids: IdSequence | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.frames = FrameBuilder(ids)
        self.correlator = RequestCorrelator()
        self.store = store or QuestStore()
        self.agent_requests = AgentRequestHandler(self.store)
        self.connection = ConnectionManager(
            self.settings.url,
            self._on_raw_message,
            on_status=self._on_status,
            max_reconnect_attempts=self.settings.max_reconnect_attempts,
            base_delay=self.settings.reconnect_base_delay,
            max_delay=self.settings.reconnect_max_delay,
            connector=connector,
        )
        self._clock = clock
        self._init_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ClientState:
        return self.store.state

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def start(self) -> None:
        self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    # ---- outbound ----------------------------------------------------------

    async def request(self, request: Request) -> Any:
        """Send ``request`` and wait for its result; error responses raise ``RequestError``."""
        future = self.correlator.register(request.id)
        with log_context(request_id=request.id, method=request.method):
            await self.connection.send(encode_frame(request))
            try:
                return await future
            except asyncio.CancelledError:
                self.correlator.discard(request.id)
                logger.debug("request.abandoned")
                raise

    async def _send(self, frame: Frame) -> None:
        await self.connection.send(encode_frame(frame))

    async def create_quest(self, cwd: str | None = None) -> str:
        cwd = cwd or self.settings.cwd or os.getcwd()
        result = await self.request(self.frames.session_new(cwd))
        payload = result if isinstance(result, dict) else {}
        session_id = payload.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise RequestError.internal_error({"message": "session/new returned no sessionId"})
        models, current_model = decode_models(payload.get("models"))
        modes, current_mode = decode_modes(payload.get("modes"))
        self.store.dispatch(
            QuestCreated(
                session_id=session_id,
                cwd=cwd,
                models=models,
                modes=modes,
                current_model_id=current_model,
                current_mode_id=current_mode,
                created_at=self._clock(),
            )
        )
        log_event(logger, "quest.created", quest=session_id, cwd=cwd)
        return session_id

    async def send_prompt(self, text: str) -> str | None:
        """Prompt the active quest and wait for the turn to end.

        Returns the stop reason, ``"error"`` if the agent rejected the prompt,
        or None when there is no active quest.
        """
        quest_id = self.state.active_quest_id
        if quest_id is None:
            return None
        self.store.dispatch(UserPromptSent(text=text))
        with log_context(quest=quest_id):
            try:
                result = await self.request(self.frames.prompt(quest_id, text))
            except RequestError as exc:
                log_event(logger, "prompt.failed", level=logging.WARNING, code=exc.code, error=str(exc))
                stop_reason = ERROR_STOP_REASON
            else:
                reason = result.get("stopReason") if isinstance(result, dict) else None
                stop_reason = reason if isinstance(reason, str) and reason else UNKNOWN_STOP_REASON
            log_event(logger, "prompt.completed", stop_reason=stop_reason)
        self.store.dispatch(PromptCompleted(quest_id=quest_id, stop_reason=stop_reason))
        return stop_reason

    async def cancel_prompt(self) -> None:
        quest_id = self.state.active_quest_id
        if quest_id is None:
            return
        await self._send(self.frames.cancel(quest_id))
        pending = self.state.pending_permission
        if pending is not None and pending.quest_id == quest_id:
            await self._send(FrameBuilder.permission_cancelled(pending.request_id))
            self.store.dispatch(PermissionResolved())
        log_event(logger, "prompt.cancel", quest=quest_id)

    def switch_quest(self, quest_id: str) -> bool:
        self.store.dispatch(QuestSwitched(quest_id=quest_id))
        return self.state.active_quest_id == quest_id

    def close_quest(self, quest_id: str | None = None) -> bool:
        target = quest_id or self.state.active_quest_id
        if target is None or target not in self.state.quests:
            return False
        self.store.dispatch(QuestClosed(quest_id=target))
        return True

    def rename_quest(self, quest_id: str, title: str) -> None:
        self.store.dispatch(QuestRenamed(quest_id=quest_id, title=title))

    def focus_tool_call(self, tool_call_id: str | None) -> None:
        self.store.dispatch(ToolCallFocused(tool_call_id=tool_call_id))

    async def set_model(self, model_id: str) -> bool:
        quest_id = self.state.active_quest_id
        if quest_id is None:
            return False
        self.store.dispatch(ModelSelected(model_id=model_id))
        return await self._fire(self.frames.set_model(quest_id, model_id))

    async def set_mode(self, mode_id: str) -> bool:
        quest_id = self.state.active_quest_id
        if quest_id is None:
            return False
        self.store.dispatch(ModeSelected(mode_id=mode_id))
        return await self._fire(self.frames.set_mode(quest_id, mode_id))

    async def _fire(self, request: Request) -> bool:
        # the local selection stands even if the agent refuses it
        try:
            await self.request(request)
        except RequestError as exc:
            log_event(logger, "request.rejected", level=logging.WARNING, method=request.method, error=str(exc))
            return False
        return True

    async def respond_permission(self, option_id: str) -> bool:
        pending = self.state.pending_permission
        if pending is None:
            return False
        if pending.option(option_id) is None:
            raise ValueError(f"unknown permission option {option_id!r}")
        await self._send(FrameBuilder.permission_selected(pending.request_id, option_id))
        self.store.dispatch(PermissionResolved())
        log_event(logger, "permission.response", quest=pending.quest_id, option=option_id)
        return True

    # ---- inbound -----------------------------------------------------------

    def _on_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            self.store.dispatch(Connected())
            self._cancel_init()
            self._init_task = asyncio.get_running_loop().create_task(self._initialize())
        elif status is ConnectionStatus.DISCONNECTED:
            self._cancel_init()
            self.store.dispatch(Disconnected())

    def _cancel_init(self) -> None:
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._init_task = None

    async def _initialize(self) -> None:
        try:
            result = await self.request(self.frames.initialize())
        except RequestError as exc:
            log_event(logger, "protocol.initialize_failed", level=logging.WARNING, code=exc.code, error=str(exc))
            return
        payload = result if isinstance(result, dict) else {}
        models, _ = decode_models(payload.get("models"))
        modes, _ = decode_modes(payload.get("modes"))
        version = payload.get("protocolVersion")
        agent_info = payload.get("agentInfo")
        self.store.dispatch(
            ProtocolInitialized(
                models=models,
                modes=modes,
                protocol_version=version if isinstance(version, int) else None,
                agent_info=agent_info if isinstance(agent_info, dict) else None,
            )
        )
        log_event(logger, "protocol.initialized", protocol_version=version)

    async def _on_raw_message(self, raw: str | bytes) -> None:
        frame = decode_frame(raw)
        if isinstance(frame, Response):
            self.correlator.resolve(frame)
        elif isinstance(frame, Notification):
            self._on_notification(frame)
        elif isinstance(frame, Request):
            with log_context(request_id=frame.id, method=frame.method):
                response = await self.agent_requests.handle(frame)
                if response is not None:
                    await self._send(response)

    def _on_notification(self, notification: Notification) -> None:
        if notification.method != Methods.SESSION_UPDATE:
            logger.debug("notification.ignored method=%s", notification.method)
            return
        session_id = notification.params.get("sessionId")
        update = decode_session_update(notification.params.get("update"))
        self.store.dispatch(
            SessionUpdateReceived(
                session_id=session_id if isinstance(session_id, str) else "",
                update=update,
            )
        )
