"""
Document store behind the session context.
Opaque collection -> document_id -> JSON body storage; the SQLite variant is write-through persistence.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from .config import DB_PATH, ensure_db_directory


class IDocumentStore(ABC):
    """Abstract interface for collection-scoped document storage."""

    @abstractmethod
    def put(self, collection: str, doc_id: str, body: Dict[str, Any]) -> None:
        """Insert or replace a document."""
        pass

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list(self, collection: str) -> List[Dict[str, Any]]:
        """All documents in a collection, in first-insertion order."""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        pass

    @abstractmethod
    def clear(self, collection: str) -> None:
        pass

    @abstractmethod
    def count(self, collection: str) -> int:
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass


class InMemoryDocumentStore(IDocumentStore):
    """Process-local document store."""

    def __init__(self):
        self._collections: Dict[str, "OrderedDict[str, Dict[str, Any]]"] = {}
        self._lock = threading.Lock()

    def put(self, collection: str, doc_id: str, body: Dict[str, Any]) -> None:
        with self._lock:
            # Round-trip through JSON so stored bodies never alias caller objects
            self._collections.setdefault(collection, OrderedDict())[doc_id] = json.loads(json.dumps(body))

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._collections.get(collection, {}).get(doc_id)

    def list(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._collections.get(collection, {}).values())

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(doc_id, None) is not None

    def clear(self, collection: str) -> None:
        with self._lock:
            self._collections.pop(collection, None)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))

    def health_check(self) -> bool:
        return True


class SqliteDocumentStore(IDocumentStore):
    """SQLite-backed document store. One connection per operation."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or DB_PATH
        ensure_db_directory(self.db_path)
        self.init_db()

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a SQLite database connection."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Initialize the database with required tables."""
        with self.get_db() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (collection, doc_id)
                )
            ''')

            conn.commit()

    def put(self, collection: str, doc_id: str, body: Dict[str, Any]) -> None:
        with self.get_db() as conn:
            # Upsert keeps the original rowid so list() order stays first-insertion order
            conn.execute('''
                INSERT INTO documents (collection, doc_id, body) VALUES (?, ?, ?)
                ON CONFLICT(collection, doc_id) DO UPDATE SET body = excluded.body
            ''', (collection, doc_id, json.dumps(body)))
            conn.commit()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self.get_db() as conn:
            row = conn.execute(
                'SELECT body FROM documents WHERE collection = ? AND doc_id = ?',
                (collection, doc_id)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def list(self, collection: str) -> List[Dict[str, Any]]:
        with self.get_db() as conn:
            rows = conn.execute(
                'SELECT body FROM documents WHERE collection = ? ORDER BY rowid',
                (collection,)
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def delete(self, collection: str, doc_id: str) -> bool:
        with self.get_db() as conn:
            cursor = conn.execute(
                'DELETE FROM documents WHERE collection = ? AND doc_id = ?',
                (collection, doc_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def clear(self, collection: str) -> None:
        with self.get_db() as conn:
            conn.execute('DELETE FROM documents WHERE collection = ?', (collection,))
            conn.commit()

    def count(self, collection: str) -> int:
        with self.get_db() as conn:
            row = conn.execute(
                'SELECT COUNT(*) FROM documents WHERE collection = ?', (collection,)
            ).fetchone()
        return row[0]

    def health_check(self) -> bool:
        """Check if database is accessible."""
        try:
            with self.get_db() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except Exception:
            return False
