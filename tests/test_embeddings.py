"""
Tests for embedding providers.
"""

import numpy as np
import pytest

from glassmem.vector.embeddings import (
    IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding, l2_normalize
)


def test_embedding_interface():
    """Test that the embedding provider implements the interface correctly."""
    embedder = DeterministicHashEmbedding(dimension=384)

    assert isinstance(embedder, IEmbeddingProvider)
    assert embedder.get_dimension() == 384


def test_deterministic_embedding():
    """Test that the same input always produces the same output."""
    embedder = DeterministicHashEmbedding(dimension=384)

    vector1 = embedder.embed_text("Hello, world!")
    vector2 = embedder.embed_text("Hello, world!")

    assert np.array_equal(vector1, vector2)
    assert vector1.shape == (384,)
    assert np.linalg.norm(vector1) == pytest.approx(1.0, abs=1e-6)


def test_shared_words_are_closer_than_unrelated_text():
    embedder = DeterministicHashEmbedding(dimension=384)

    base = embedder.embed_text("coffee meeting with Anna")
    related = embedder.embed_text("meeting Anna for coffee")
    unrelated = embedder.embed_text("quarterly tax report")

    assert float(base @ related) > float(base @ unrelated)


def test_case_and_punctuation_are_ignored():
    embedder = DeterministicHashEmbedding(dimension=64)
    assert np.array_equal(embedder.embed_text("Exit, NOW!"), embedder.embed_text("exit now"))


def test_empty_text_is_zero_vector():
    embedder = DeterministicHashEmbedding(dimension=32)
    assert not np.any(embedder.embed_text(""))
    assert not np.any(embedder.embed_text("!!!"))


def test_l2_normalize_keeps_zero_vector():
    assert np.array_equal(l2_normalize(np.zeros(4)), np.zeros(4, dtype=np.float32))
    assert np.linalg.norm(l2_normalize(np.array([3.0, 4.0]))) == pytest.approx(1.0)


def test_sentence_transformer_loads_lazily():
    embedder = SentenceTransformerEmbedding("some/model")
    assert embedder._model is None
    assert embedder.model_name == "some/model"
