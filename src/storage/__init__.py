"""In-memory storage and transport for the progress sync engine."""

from src.storage.memory import InMemoryProgressStore, InMemoryRemoteTransport

__all__ = ["InMemoryProgressStore", "InMemoryRemoteTransport"]
