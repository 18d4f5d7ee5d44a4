"""
Session-scoped context shared by the stores of one pipeline.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from util.logging import logger as default_logger

from .config import DB_PATH, is_persistence_enabled
from .db import IDocumentStore, SqliteDocumentStore


@dataclass
class SessionContext:
    """Owned replacement for a process-wide store handle.

    Constructed once at the composition root and passed to OutputStore and
    EmbeddingIndex; its lifetime is the session, not the process.
    """

    document_store: Optional[IDocumentStore] = None
    """Write-through persistence, or None for purely in-memory stores"""

    sink: Any = None
    """Event sink with an ``emit(AgentEvent)`` method"""

    clock: Callable[[], datetime] = datetime.now

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.sink is None:
            self.sink = default_logger

    def now(self) -> datetime:
        return self.clock()

    @property
    def persistent(self) -> bool:
        return self.document_store is not None

    @classmethod
    def from_config(cls, sink: Any = None) -> "SessionContext":
        """Build a context, attaching SQLite storage when PERSIST_ENABLED is set."""
        store = SqliteDocumentStore(DB_PATH) if is_persistence_enabled() else None
        return cls(document_store=store, sink=sink)
