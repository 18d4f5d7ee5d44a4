"""
Records held by the embedding index and the hits it returns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

import numpy as np


@dataclass(frozen=True)
class EmbeddingRecord:
    """A stored embedding. Never mutated; updates are delete + reinsert."""

    id: int
    """Monotonic record identifier, starting at 1"""

    text: str
    """Text the vector was derived from"""

    vector: np.ndarray
    """float32 vector of the index dimension, stored as provided"""

    created_at: datetime = field(default_factory=datetime.now)

    metadata: Dict[str, str] = field(default_factory=dict)
    """String metadata associated with the record"""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "vector": [float(x) for x in self.vector],
            "created_at": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmbeddingRecord":
        return cls(
            id=int(data["id"]),
            text=data.get("text", ""),
            vector=np.asarray(data["vector"], dtype=np.float32),
            created_at=datetime.fromisoformat(data["created_at"]),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
        )


@dataclass(frozen=True)
class SearchHit:
    """Represents a search result from the embedding index."""

    id: int
    """Identifier of the matching record"""

    text: str

    score: float
    """Cosine similarity of the match in [-1, 1]"""

    metadata: Dict[str, str]
    """Metadata associated with the matched record"""
