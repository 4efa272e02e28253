"""ACP session engine: drive concurrent agent quests over one WebSocket."""

__version__ = "0.1.0"
