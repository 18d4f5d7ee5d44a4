"""
Embedding index - text, vector and metadata records with top-K cosine search.
"""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

import numpy as np

from util.logging import emit_event, preview

from ..core.config import EMBED_DIM, SEARCH_THRESHOLD, SEARCH_TOP_K
from ..core.context import SessionContext
from ..core.errors import DimensionMismatch
from .types import EmbeddingRecord, SearchHit

VECTOR_COLLECTION = "embedding_records"


class IEmbeddingIndex(ABC):
    """Abstract interface for embedding storage and similarity search."""

    @abstractmethod
    def insert(self, text: str, vector: Sequence[float], metadata: Dict[str, str] = None) -> int:
        """Store a record and return its id."""
        pass

    @abstractmethod
    def search(self, query_vector: Sequence[float], top_k: int = None,
               threshold: float = None) -> List[SearchHit]:
        """Return up to top_k hits with score >= threshold, best first."""
        pass

    @abstractmethod
    def delete(self, record_id: int) -> bool:
        pass

    @abstractmethod
    def all(self) -> List[EmbeddingRecord]:
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the index."""
        pass


class EmbeddingIndex(IEmbeddingIndex):
    """In-memory index using an exact linear scan of cosine similarity.

    A full scan is a deliberate choice for on-device corpora (hundreds to low
    thousands of memories); no approximate structure is maintained. Vectors are
    stored as provided and search computes full cosine similarity, so callers
    need not pre-normalize.
    """

    def __init__(self, dimension: int = EMBED_DIM, context: SessionContext = None):
        self.dimension = dimension
        self.context = context or SessionContext()
        self._records: "OrderedDict[int, EmbeddingRecord]" = OrderedDict()
        self._next_id = 1
        self._matrix: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    @property
    def _documents(self):
        return self.context.document_store

    def _validate(self, vector: Sequence[float]) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1 or array.shape[0] != self.dimension:
            raise DimensionMismatch(self.dimension, int(array.size))
        return array

    def _invalidate(self) -> None:
        self._matrix = None

    def _matrix_locked(self) -> np.ndarray:
        if self._matrix is None:
            if self._records:
                self._matrix = np.vstack([r.vector for r in self._records.values()])
            else:
                self._matrix = np.zeros((0, self.dimension), dtype=np.float32)
        return self._matrix

    def insert(self, text: str, vector: Sequence[float], metadata: Dict[str, str] = None) -> int:
        """Add a record. Raises DimensionMismatch without touching the index."""
        array = self._validate(vector)
        metadata = {str(k): str(v) for k, v in (metadata or {}).items()}

        with self._lock:
            record_id = self._next_id
            self._next_id += 1
            record = EmbeddingRecord(id=record_id, text=text, vector=array.copy(),
                                     created_at=self.context.now(), metadata=metadata)
            self._records[record_id] = record
            self._invalidate()
            self._on_insert(record)

        if self._documents is not None:
            self._documents.put(VECTOR_COLLECTION, str(record_id), record.to_dict())

        emit_event(self.context.sink, "vector.insert", record_id=record_id,
                   text=preview(text), metadata_keys=sorted(metadata))
        return record_id

    def search(self, query_vector: Sequence[float], top_k: int = None,
               threshold: float = None) -> List[SearchHit]:
        """Top-K records by cosine similarity, filtered by ``score >= threshold``.

        Ties keep insertion order. A zero-norm vector on either side scores 0.0.
        """
        top_k = SEARCH_TOP_K if top_k is None else top_k
        threshold = SEARCH_THRESHOLD if threshold is None else threshold
        query = self._validate(query_vector)
        if top_k <= 0:
            return []

        with self._lock:
            records = list(self._records.values())
            if not records:
                return []
            scores = self._scores(query, self._matrix_locked())

        order = np.argsort(-scores, kind="stable")
        hits = []
        for position in order:
            score = float(scores[position])
            if score < threshold:
                break
            record = records[position]
            hits.append(SearchHit(id=record.id, text=record.text, score=score,
                                  metadata=dict(record.metadata)))
            if len(hits) >= top_k:
                break

        emit_event(self.context.sink, "vector.search", top_k=top_k, threshold=threshold,
                   candidates=len(records), results=len(hits))
        return hits

    def _scores(self, query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        """Cosine similarity of ``query`` against every row, in insertion order."""
        matrix = matrix.astype(np.float64)
        query = query.astype(np.float64)
        denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.zeros(len(dots), dtype=np.float64)
        nonzero = denominators > 0
        scores[nonzero] = dots[nonzero] / denominators[nonzero]
        return np.clip(scores, -1.0, 1.0)

    def _on_insert(self, record: EmbeddingRecord) -> None:
        """Hook for backends keeping their own structure; called under the lock."""

    def _on_rebuild(self) -> None:
        """Hook called under the lock after deletions or a clear."""

    def get(self, record_id: int) -> Optional[EmbeddingRecord]:
        with self._lock:
            return self._records.get(record_id)

    def delete(self, record_id: int) -> bool:
        with self._lock:
            removed = self._records.pop(record_id, None)
            if removed is not None:
                self._invalidate()
                self._on_rebuild()

        if removed is None:
            return False
        if self._documents is not None:
            self._documents.delete(VECTOR_COLLECTION, str(record_id))
        emit_event(self.context.sink, "vector.delete", record_id=record_id)
        return True

    def update(self, record_id: int, text: str, vector: Sequence[float],
               metadata: Dict[str, str] = None) -> Optional[int]:
        """Replace a record (delete + reinsert). Returns the new id, or None if absent."""
        self._validate(vector)
        if not self.delete(record_id):
            return None
        return self.insert(text, vector, metadata)

    def all(self) -> List[EmbeddingRecord]:
        with self._lock:
            return list(self._records.values())

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            removed = len(self._records)
            self._records.clear()
            self._invalidate()
            self._on_rebuild()

        if self._documents is not None:
            self._documents.clear(VECTOR_COLLECTION)
        emit_event(self.context.sink, "vector.cleared", removed=removed)

    def load(self) -> int:
        """Restore records from the document store. Returns the number loaded."""
        if self._documents is None:
            return 0

        restored = []
        for body in self._documents.list(VECTOR_COLLECTION):
            try:
                record = EmbeddingRecord.from_dict(body)
                self._validate(record.vector)
            except (KeyError, ValueError) as e:
                emit_event(self.context.sink, "vector.load_skipped", "failed", error=str(e))
                continue
            restored.append(record)

        with self._lock:
            self._records = OrderedDict((r.id, r) for r in sorted(restored, key=lambda r: r.id))
            self._next_id = max(self._records, default=0) + 1
            self._invalidate()
            self._on_rebuild()

        emit_event(self.context.sink, "vector.loaded", count=len(restored))
        return len(restored)
