"""
Agent memory operations over the embedding index and an embedding provider.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from util.logging import emit_event, logger as default_logger, preview

from ..core.config import SEARCH_THRESHOLD, SEARCH_TOP_K
from ..core.models import AgentOutput
from .embeddings import IEmbeddingProvider
from .index import IEmbeddingIndex
from .types import SearchHit

MEMORY_SOURCE = "agent_system"


class MemoryService:
    """Store and recall agent memories by text.

    Embedding runs off the event loop. Provider failures are logged and turn into
    soft results (None or an empty list); only a dimension mismatch between the
    provider and the index escapes, since that is a configuration error.
    """

    def __init__(self, index: IEmbeddingIndex, embedder: IEmbeddingProvider, sink: Any = None,
                 clock: Callable[[], datetime] = None):
        self.index = index
        self.embedder = embedder
        self.sink = sink if sink is not None else default_logger
        # Defaults to the session clock of the index
        context = getattr(index, "context", None)
        self.clock = clock or (context.now if context is not None else datetime.now)

    async def _embed(self, text: str):
        try:
            return await asyncio.to_thread(self.embedder.embed_text, text)
        except Exception as e:
            emit_event(self.sink, "memory.embed_failed", "failed", text=preview(text), error=str(e))
            return None

    async def store_memory(self, content: str, metadata: Dict[str, Any] = None) -> Optional[int]:
        """Embed and insert ``content``. Blank content is skipped."""
        if not content or not content.strip():
            return None

        vector = await self._embed(content)
        if vector is None:
            return None

        record_metadata = {"source": MEMORY_SOURCE, "timestamp": self.clock().isoformat()}
        record_metadata.update(metadata or {})
        record_id = self.index.insert(content, vector, record_metadata)
        emit_event(self.sink, "memory.stored", record_id=record_id, text=preview(content))
        return record_id

    async def retrieve_memory(self, query: str, limit: int = SEARCH_TOP_K,
                              threshold: float = SEARCH_THRESHOLD) -> List[SearchHit]:
        if not query or not query.strip():
            return []

        vector = await self._embed(query)
        if vector is None:
            return []

        hits = self.index.search(vector, top_k=limit, threshold=threshold)
        emit_event(self.sink, "memory.retrieved", query=preview(query), results=len(hits))
        return hits

    async def store_output(self, output: AgentOutput) -> Optional[int]:
        """Index a recognition output with its kind, confidence and correlation count."""
        return await self.store_memory(output.text, {
            "type": f"{output.kind.value}_output",
            "confidence": f"{output.confidence:.3f}",
            "timestamp": (output.produced_at or self.clock()).isoformat(),
            "associated_images": len(output.correlated_timestamps),
            "output_id": output.id,
        })

    async def find_similar_outputs(self, query: str, kind: str = None, limit: int = 5,
                                   threshold: float = SEARCH_THRESHOLD) -> List[SearchHit]:
        """Similar stored outputs, optionally only of one kind ('asr', 'ocr', 'llm')."""
        # Over-fetch so filtering by kind can still fill the limit
        hits = await self.retrieve_memory(query, limit=limit * 2, threshold=threshold)
        if kind is not None:
            kind = getattr(kind, "value", kind)
            hits = [hit for hit in hits if hit.metadata.get("type") == f"{kind}_output"]
        return hits[:limit]

    async def conversation_context(self, query: str, max_results: int = 3,
                                   threshold: float = 0.4) -> str:
        """Relevant memories rendered as a numbered block for a planner prompt."""
        hits = await self.retrieve_memory(query, limit=max_results, threshold=threshold)
        if not hits:
            return "No relevant memories found."

        lines = ["Relevant memories:"]
        for position, hit in enumerate(hits, start=1):
            lines.append(f"{position}. {hit.text} (similarity: {hit.score:.2f})")
        return "\n".join(lines)

    def search_by_time_range(self, start: datetime, end: datetime, limit: int = 10) -> List[SearchHit]:
        """Records whose metadata timestamp lies in [start, end), newest first.

        Records with a missing or unparsable timestamp are skipped.
        """
        dated = []
        for record in self.index.all():
            raw = record.metadata.get("timestamp")
            if not raw:
                continue
            try:
                timestamp = datetime.fromisoformat(raw)
            except ValueError:
                continue
            try:
                in_range = start <= timestamp < end
            except TypeError:
                # naive vs aware comparison
                continue
            if in_range:
                dated.append((timestamp, record))

        dated.sort(key=lambda pair: pair[0], reverse=True)
        return [
            SearchHit(id=record.id, text=record.text, score=1.0, metadata=dict(record.metadata))
            for _, record in dated[:limit]
        ]

    def memory_stats(self) -> Dict[str, Any]:
        records = self.index.all()
        by_type: Dict[str, int] = {}
        agent_records = 0
        for record in records:
            if record.metadata.get("source") == MEMORY_SOURCE:
                agent_records += 1
            record_type = record.metadata.get("type")
            if record_type:
                by_type[record_type] = by_type.get(record_type, 0) + 1

        return {
            "total_records": len(records),
            "agent_records": agent_records,
            "asr_outputs": by_type.get("asr_output", 0),
            "ocr_outputs": by_type.get("ocr_output", 0),
            "llm_analyses": by_type.get("llm_analysis", 0),
            "by_type": by_type,
        }
