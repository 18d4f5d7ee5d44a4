"""
Embedding storage and similarity search for agent memories.
"""

# Package initialization for vector module
from .index import IEmbeddingIndex, EmbeddingIndex
from .types import EmbeddingRecord, SearchHit
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding
from .memory_service import MemoryService

__all__ = [
    'IEmbeddingIndex',
    'EmbeddingIndex',
    'EmbeddingRecord',
    'SearchHit',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'MemoryService',
]
