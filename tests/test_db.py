"""
Tests for the document stores backing write-through persistence.
"""

import pytest

from glassmem.core.context import SessionContext
from glassmem.core.db import IDocumentStore, InMemoryDocumentStore, SqliteDocumentStore
from glassmem.core.models import AgentOutput, OutputKind
from glassmem.core.output_store import OutputStore
from util.logging import RecordingEventSink


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SqliteDocumentStore(str(tmp_path / "nested" / "glassmem.db"))
    return InMemoryDocumentStore()


def test_store_implements_interface(store):
    assert isinstance(store, IDocumentStore)
    assert store.health_check() is True


def test_put_get_and_upsert(store):
    store.put("notes", "a", {"text": "first"})
    store.put("notes", "a", {"text": "updated"})

    assert store.get("notes", "a") == {"text": "updated"}
    assert store.get("notes", "missing") is None
    assert store.count("notes") == 1


def test_list_keeps_insertion_order(store):
    for doc_id in ("c", "a", "b"):
        store.put("notes", doc_id, {"id": doc_id})
    store.put("notes", "c", {"id": "c", "v": 2})

    assert [body["id"] for body in store.list("notes")] == ["c", "a", "b"]


def test_collections_are_isolated(store):
    store.put("one", "x", {"n": 1})
    store.put("two", "x", {"n": 2})
    store.clear("one")

    assert store.count("one") == 0
    assert store.get("two", "x") == {"n": 2}


def test_delete(store):
    store.put("notes", "a", {})
    assert store.delete("notes", "a") is True
    assert store.delete("notes", "a") is False


def test_outputs_survive_a_new_sqlite_connection(tmp_path):
    path = str(tmp_path / "session.db")
    context = SessionContext(document_store=SqliteDocumentStore(path), sink=RecordingEventSink())
    OutputStore(context).append(AgentOutput.create(OutputKind.OCR, "Gate B12", 0.7))

    reopened = SessionContext(document_store=SqliteDocumentStore(path), sink=RecordingEventSink())
    restored = OutputStore(reopened)

    assert restored.load() == 1
    assert restored.all()[0].text == "Gate B12"
    assert reopened.persistent
