"""
Test cases for the FAISS-backed embedding index.
"""

import pytest
import numpy as np

faiss = pytest.importorskip("faiss")

from glassmem.core.context import SessionContext
from glassmem.core.errors import DimensionMismatch
from glassmem.vector.faiss_store import FaissEmbeddingIndex
from glassmem.vector.index import EmbeddingIndex
from util.logging import RecordingEventSink

DIM = 16


def make_index(cls=FaissEmbeddingIndex):
    return cls(dimension=DIM, context=SessionContext(sink=RecordingEventSink()))


def test_faiss_index_initialization():
    """Test that FaissEmbeddingIndex can be initialized correctly."""
    index = make_index()

    assert index.index.ntotal == 0
    assert index.dimension == DIM


def test_faiss_scores_match_linear_scan():
    """FAISS and the numpy scan rank and score identically."""
    rng = np.random.default_rng(11)
    vectors = [rng.normal(size=DIM) for _ in range(12)]
    query = rng.normal(size=DIM)

    faiss_index = make_index()
    numpy_index = make_index(EmbeddingIndex)
    for position, vector in enumerate(vectors):
        faiss_index.insert(f"r{position}", vector)
        numpy_index.insert(f"r{position}", vector)

    faiss_hits = faiss_index.search(query, top_k=5, threshold=-1.0)
    numpy_hits = numpy_index.search(query, top_k=5, threshold=-1.0)

    assert [h.id for h in faiss_hits] == [h.id for h in numpy_hits]
    for left, right in zip(faiss_hits, numpy_hits):
        assert left.score == pytest.approx(right.score, abs=1e-5)


def test_faiss_zero_vector_scores_zero():
    index = make_index()
    index.insert("zero", np.zeros(DIM))
    hits = index.search(np.ones(DIM), top_k=1, threshold=-1.0)
    assert hits[0].score == 0.0


def test_faiss_delete_rebuilds_index():
    index = make_index()
    first = index.insert("a", np.eye(DIM)[0])
    index.insert("b", np.eye(DIM)[1])

    index.delete(first)

    assert index.index.ntotal == 1
    assert index.search(np.eye(DIM)[1], top_k=1)[0].text == "b"


def test_faiss_dimension_mismatch():
    index = make_index()
    with pytest.raises(DimensionMismatch):
        index.insert("bad", np.ones(DIM * 2))
    assert index.index.ntotal == 0
