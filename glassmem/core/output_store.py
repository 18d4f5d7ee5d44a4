"""
Append-only session log of agent outputs.
"""

import threading
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from util.logging import emit_event, preview

from .context import SessionContext
from .models import AgentOutput, OutputKind

OUTPUT_COLLECTION = "agent_outputs"


def as_local(timestamp: datetime) -> datetime:
    """Naive local time, the form the session clock produces. Aware values are converted."""
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone().replace(tzinfo=None)


class OutputStore:
    """Thread-safe output log queryable by kind, recency and time range.

    Queries copy the list under the lock, so callers always see whole items.
    With a document store on the context every append is written through.
    """

    def __init__(self, context: SessionContext = None):
        self.context = context or SessionContext()
        self._outputs: List[AgentOutput] = []
        self._counts: Counter = Counter()
        self._lock = threading.RLock()

    @property
    def _documents(self):
        return self.context.document_store

    def append(self, output: AgentOutput) -> None:
        with self._lock:
            self._outputs.append(output)
            self._counts[output.kind] += 1

        if self._documents is not None:
            self._documents.put(OUTPUT_COLLECTION, output.id, output.to_dict())

        emit_event(self.context.sink, "output.appended", kind=output.kind.value,
                   output_id=output.id, text=preview(output.text),
                   confidence=round(output.confidence, 3),
                   correlated=len(output.correlated_timestamps))

    def _snapshot(self) -> List[AgentOutput]:
        with self._lock:
            return list(self._outputs)

    def recent(self, limit: int = 20) -> List[AgentOutput]:
        """Up to ``limit`` outputs, newest ``produced_at`` first.

        Outputs without a timestamp sort last.
        """
        if limit <= 0:
            return []
        outputs = self._snapshot()
        dated = [o for o in outputs if o.produced_at is not None]
        undated = [o for o in outputs if o.produced_at is None]
        dated.sort(key=lambda o: as_local(o.produced_at), reverse=True)
        return (dated + undated)[:limit]

    def by_kind(self, kind: OutputKind) -> List[AgentOutput]:
        kind = OutputKind(kind)
        return [o for o in self._snapshot() if o.kind == kind]

    def in_range(self, start: datetime, end: datetime) -> List[AgentOutput]:
        """Outputs with start <= produced_at < end, in insertion order.

        Offset-aware bounds and timestamps are compared in local time.
        """
        start, end = as_local(start), as_local(end)
        return [
            o for o in self._snapshot()
            if o.produced_at is not None and start <= as_local(o.produced_at) < end
        ]

    def all(self) -> List[AgentOutput]:
        return self._snapshot()

    def get(self, output_id: str) -> Optional[AgentOutput]:
        for output in self._snapshot():
            if output.id == output_id:
                return output
        return None

    def count(self) -> int:
        with self._lock:
            return len(self._outputs)

    def counts_by_kind(self) -> Dict[str, int]:
        with self._lock:
            return {kind.value: self._counts.get(kind, 0) for kind in OutputKind}

    def timestamps(self, kind: OutputKind) -> List[datetime]:
        """produced_at values of one kind in local time, for correlation reports."""
        return [as_local(o.produced_at) for o in self.by_kind(kind) if o.produced_at is not None]

    def clear(self) -> None:
        """Empty the log and reset counters. The embedding index is untouched."""
        with self._lock:
            removed = len(self._outputs)
            self._outputs.clear()
            self._counts.clear()

        if self._documents is not None:
            self._documents.clear(OUTPUT_COLLECTION)

        emit_event(self.context.sink, "output.cleared", removed=removed)

    def load(self) -> int:
        """Restore outputs from the document store. Returns the number loaded."""
        if self._documents is None:
            return 0

        loaded = []
        for body in self._documents.list(OUTPUT_COLLECTION):
            try:
                loaded.append(AgentOutput.from_dict(body))
            except (KeyError, ValueError) as e:
                emit_event(self.context.sink, "output.load_skipped", "failed", error=str(e))

        with self._lock:
            self._outputs = loaded
            self._counts = Counter(o.kind for o in loaded)

        emit_event(self.context.sink, "output.loaded", count=len(loaded))
        return len(loaded)
