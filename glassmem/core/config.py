"""
Agent configuration - environment driven, read once at import.
Accessor functions re-read the environment where tests need to flip values at runtime.
"""

import os
from datetime import timedelta
from pathlib import Path

# Debug flag
DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Temporal correlation
CORRELATION_WINDOW_SEC = float(os.getenv("CORRELATION_WINDOW_SEC", "2.0"))
EXTENDED_CORRELATION_WINDOW_SEC = float(os.getenv("EXTENDED_CORRELATION_WINDOW_SEC", "5.0"))

# Stream channels and the pipeline photo ring
PHOTO_BUFFER_CAPACITY = int(os.getenv("PHOTO_BUFFER_CAPACITY", "50"))
CHANNEL_BUFFER_SIZE = int(os.getenv("CHANNEL_BUFFER_SIZE", "0"))  # 0 = unbounded per subscriber
CHANNEL_STATS_INTERVAL = int(os.getenv("CHANNEL_STATS_INTERVAL", "100"))

# Embedding index
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "sentence-transformers/all-MiniLM-L6-v2")
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "memory")  # memory|faiss
SEARCH_TOP_K = int(os.getenv("SEARCH_TOP_K", "5"))
SEARCH_THRESHOLD = float(os.getenv("SEARCH_THRESHOLD", "0.3"))

# Pipeline behaviour
AUTO_INDEX_OUTPUTS = os.getenv("AUTO_INDEX_OUTPUTS", "true").lower() == "true"
TOOL_DISPATCH_ENABLED = os.getenv("TOOL_DISPATCH_ENABLED", "true").lower() == "true"
PLANNER_PROVIDER = os.getenv("PLANNER_PROVIDER", "rule_based")  # rule_based|ollama
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
DISABLE_TIMEOUT_SEC = float(os.getenv("DISABLE_TIMEOUT_SEC", "5.0"))

# Persistence (write-through document store)
PERSIST_ENABLED = os.getenv("PERSIST_ENABLED", "false").lower() == "true"
DB_PATH = os.getenv("DB_PATH", "./data/glassmem.db")

# Version string
VERSION = "0.1.0"

VALID_EMBED_PROVIDERS = ("hash", "sentence")
VALID_VECTOR_PROVIDERS = ("memory", "faiss")
VALID_PLANNER_PROVIDERS = ("rule_based", "ollama")


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def get_correlation_window() -> timedelta:
    """Default correlation radius."""
    return timedelta(seconds=CORRELATION_WINDOW_SEC)


def get_extended_correlation_window() -> timedelta:
    """Wider radius callers may opt into explicitly."""
    return timedelta(seconds=EXTENDED_CORRELATION_WINDOW_SEC)


def is_persistence_enabled():
    """Check if write-through persistence is enabled."""
    return os.getenv("PERSIST_ENABLED", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_embedding_provider(dimension: int = None):
    """Get configured embedding provider implementation."""
    from glassmem.vector.embeddings import DeterministicHashEmbedding, SentenceTransformerEmbedding

    dimension = dimension or EMBED_DIM
    if EMBED_PROVIDER == "sentence":
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)
    return DeterministicHashEmbedding(dimension=dimension)


def get_embedding_index(dimension: int = None, context=None):
    """Get configured embedding index implementation."""
    from glassmem.vector.index import EmbeddingIndex

    dimension = dimension or EMBED_DIM
    if VECTOR_PROVIDER == "faiss":
        # Requires the "models" extra (faiss-cpu)
        from glassmem.vector.faiss_store import FaissEmbeddingIndex
        return FaissEmbeddingIndex(dimension=dimension, context=context)
    return EmbeddingIndex(dimension=dimension, context=context)


def get_tool_planner():
    """Get configured tool planner implementation."""
    if PLANNER_PROVIDER == "ollama":
        from glassmem.agents.planner import OllamaToolPlanner
        return OllamaToolPlanner(model_name=OLLAMA_MODEL, host=OLLAMA_HOST)
    from glassmem.agents.planner import RuleBasedPlanner
    return RuleBasedPlanner()


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if CORRELATION_WINDOW_SEC <= 0:
        issues.append("CORRELATION_WINDOW_SEC must be > 0")

    if EXTENDED_CORRELATION_WINDOW_SEC < CORRELATION_WINDOW_SEC:
        issues.append("EXTENDED_CORRELATION_WINDOW_SEC must be >= CORRELATION_WINDOW_SEC")

    if PHOTO_BUFFER_CAPACITY < 1:
        issues.append("PHOTO_BUFFER_CAPACITY must be >= 1")

    if CHANNEL_BUFFER_SIZE < 0:
        issues.append("CHANNEL_BUFFER_SIZE must be >= 0")

    if EMBED_DIM < 1:
        issues.append("EMBED_DIM must be >= 1")

    if not -1.0 <= SEARCH_THRESHOLD <= 1.0:
        issues.append(f"SEARCH_THRESHOLD must be within [-1, 1]: {SEARCH_THRESHOLD}")

    if EMBED_PROVIDER not in VALID_EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if VECTOR_PROVIDER not in VALID_VECTOR_PROVIDERS:
        issues.append(f"Invalid VECTOR_PROVIDER: {VECTOR_PROVIDER}")

    if PLANNER_PROVIDER not in VALID_PLANNER_PROVIDERS:
        issues.append(f"Invalid PLANNER_PROVIDER: {PLANNER_PROVIDER}")

    return issues
