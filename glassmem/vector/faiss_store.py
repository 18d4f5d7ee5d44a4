"""
FAISS-backed embedding index.
Scores through an exact IndexFlatIP over unit-length copies of the stored vectors.
"""

import numpy as np

from ..core.config import EMBED_DIM
from ..core.context import SessionContext
from .embeddings import l2_normalize
from .index import EmbeddingIndex
from .types import EmbeddingRecord


class FaissEmbeddingIndex(EmbeddingIndex):
    """EmbeddingIndex whose similarity scan runs inside FAISS.

    Inner product over normalized vectors equals cosine similarity; zero vectors
    stay zero and therefore score 0.0. Ranking, thresholds and tie-breaking are
    inherited unchanged.
    """

    def __init__(self, dimension: int = EMBED_DIM, context: SessionContext = None):
        """
        Initialize FAISS embedding index.

        Args:
            dimension: Dimension of the vectors (default: EMBED_DIM)
            context: Session context for events and write-through storage
        """
        try:
            import faiss
            self.faiss = faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install the glassmem[models] extra (faiss-cpu).")

        super().__init__(dimension=dimension, context=context)
        # Create a flat index (inner product metric for cosine similarity)
        self.index = faiss.IndexFlatIP(dimension)

    def _on_insert(self, record: EmbeddingRecord) -> None:
        self.index.add(l2_normalize(record.vector).reshape(1, -1))

    def _on_rebuild(self) -> None:
        # FAISS flat indexes do not support positional deletion; rebuild from the records
        self.index = self.faiss.IndexFlatIP(self.dimension)
        if self._records:
            rows = np.vstack([l2_normalize(r.vector) for r in self._records.values()])
            self.index.add(rows.astype(np.float32))

    def _scores(self, query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        total = self.index.ntotal
        scores = np.zeros(total, dtype=np.float64)
        query = l2_normalize(query)
        if total == 0 or not np.any(query):
            return scores

        distances, positions = self.index.search(query.reshape(1, -1), total)
        for distance, position in zip(distances[0], positions[0]):
            if position >= 0:
                scores[position] = float(distance)
        return np.clip(scores, -1.0, 1.0)
