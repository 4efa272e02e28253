"""Client-side session engine: connection, correlation, quest state, agent requests."""

from acpquest.client.connection import ConnectionManager, ConnectionStatus, reconnect_delay  # noqa: F401
from acpquest.client.correlator import RequestCorrelator  # noqa: F401
from acpquest.client.reducer import QuestStore, reduce  # noqa: F401
from acpquest.client.session import QuestSession  # noqa: F401
from acpquest.client.session_state import ClientState, Quest  # noqa: F401

__all__ = [
    "ClientState",
    "ConnectionManager",
    "ConnectionStatus",
    "Quest",
    "QuestSession",
    "QuestStore",
    "RequestCorrelator",
    "reconnect_delay",
    "reduce",
]
