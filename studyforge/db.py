"""Database access for StudyForge.

SQLite (through aiosqlite) stores:
- Documents ingested from PDFs
- Text chunks with their embedding vectors, in ingestion order
- Generated study artifacts (syllabus, quiz, flashcards) per document

All statements go through one connection guarded by an asyncio lock, so a
chunk batch written in one transaction is never visible half-written to other
requests.
"""
import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

import aiosqlite
import structlog

from studyforge.errors import StorageError

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    source_type TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    ordinal INTEGER NOT NULL,
    content TEXT NOT NULL,
    embedding BLOB NOT NULL,
    UNIQUE(document_id, ordinal)
);

CREATE INDEX IF NOT EXISTS idx_chunks_document
ON chunks(document_id, ordinal);

CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    artifact_type TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_artifacts_document
ON artifacts(document_id, created_at);
"""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Document:
    """An ingested source document. Never mutated after creation."""

    name: str
    source_type: str = "pdf"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=_utcnow)


class Database:
    """Async SQLite store for documents, chunks and artifacts."""

    def __init__(self, path: Union[str, Path]):
        """Initialize the database wrapper.

        Args:
            path: SQLite file path, or ":memory:"
        """
        self.path = str(path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the connection and enable foreign keys.

        Raises:
            StorageError: If the database cannot be opened
        """
        if self._conn is not None:
            return

        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self.path, isolation_level=None)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA foreign_keys = ON")
        except aiosqlite.Error as e:
            logger.error("database_connect_failed", path=self.path, error=str(e))
            raise StorageError("Failed to open database", detail=str(e)) from e

        logger.info("database_connected", path=self.path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed", path=self.path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("Database is not connected")
        return self._conn

    @asynccontextmanager
    async def _guard(self, operation: str, **context: Any) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize access and translate driver errors into StorageError."""
        async with self._lock:
            try:
                yield self.conn
            except aiosqlite.Error as e:
                logger.error(f"{operation}_failed", error=str(e), **context)
                raise StorageError(f"Database {operation} failed", detail=str(e)) from e

    @asynccontextmanager
    async def _transaction(
        self, operation: str, **context: Any
    ) -> AsyncIterator[aiosqlite.Connection]:
        """Run statements atomically; roll back on any error."""
        async with self._guard(operation, **context) as conn:
            await conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    async def init_schema(self) -> None:
        """Create tables if they don't exist."""
        async with self._guard("schema_init") as conn:
            await conn.executescript(SCHEMA)
            await conn.commit()
        logger.info("database_initialized", path=self.path)

    # Documents

    async def insert_document(self, document: Document) -> str:
        async with self._transaction("document_insert", document_id=document.id) as conn:
            await conn.execute(
                """
                INSERT INTO documents (id, name, source_type, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (document.id, document.name, document.source_type, document.created_at),
            )
        logger.info("document_inserted", document_id=document.id, name=document.name)
        return document.id

    async def get_document(self, document_id: str) -> Optional[Document]:
        async with self._guard("document_get", document_id=document_id) as conn:
            cursor = await conn.execute(
                "SELECT id, name, source_type, created_at FROM documents WHERE id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Document(
            id=row["id"],
            name=row["name"],
            source_type=row["source_type"],
            created_at=row["created_at"],
        )

    async def list_documents(self) -> List[Dict[str, Any]]:
        """Return all documents, newest first, with chunk counts."""
        async with self._guard("document_list") as conn:
            cursor = await conn.execute(
                """
                SELECT d.id, d.name, d.source_type, d.created_at,
                       COUNT(c.id) AS num_chunks
                FROM documents d
                LEFT JOIN chunks c ON c.document_id = d.id
                GROUP BY d.id
                ORDER BY d.created_at DESC
                """
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document; chunks and artifacts cascade.

        Returns:
            True if a document was deleted
        """
        async with self._transaction("document_delete", document_id=document_id) as conn:
            cursor = await conn.execute(
                "DELETE FROM documents WHERE id = ?", (document_id,)
            )
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("document_deleted", document_id=document_id)
        return deleted

    # Chunks

    async def insert_chunks(
        self, document_id: str, rows: Sequence[Tuple[str, bytes]]
    ) -> int:
        """Insert ``(content, embedding_blob)`` rows in one transaction.

        Ordinals continue from the document's last stored chunk, in the order
        given.

        Returns:
            Number of rows inserted

        Raises:
            StorageError: If any row fails; no row of the batch is kept
        """
        if not rows:
            return 0

        async with self._transaction(
            "chunk_insert", document_id=document_id, count=len(rows)
        ) as conn:
            cursor = await conn.execute(
                "SELECT COALESCE(MAX(ordinal) + 1, 0) FROM chunks WHERE document_id = ?",
                (document_id,),
            )
            (start,) = await cursor.fetchone()
            await conn.executemany(
                """
                INSERT INTO chunks (id, document_id, ordinal, content, embedding)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (uuid.uuid4().hex, document_id, start + offset, content, blob)
                    for offset, (content, blob) in enumerate(rows)
                ],
            )
        logger.info("chunks_inserted", document_id=document_id, count=len(rows))
        return len(rows)

    async def count_chunks(self, document_id: str) -> int:
        async with self._guard("chunk_count", document_id=document_id) as conn:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
            )
            (count,) = await cursor.fetchone()
        return count

    async def get_chunk_contents(
        self, document_id: str, limit: Optional[int] = None
    ) -> List[str]:
        """Chunk texts in ingestion order, optionally only the first ``limit``."""
        query = "SELECT content FROM chunks WHERE document_id = ? ORDER BY ordinal"
        params: Tuple[Any, ...] = (document_id,)
        if limit is not None:
            query += " LIMIT ?"
            params += (limit,)

        async with self._guard("chunk_contents", document_id=document_id) as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [row["content"] for row in rows]

    async def get_chunk_vectors(
        self, document_id: str
    ) -> List[Tuple[int, str, bytes]]:
        """``(ordinal, content, embedding_blob)`` for one document, by ordinal."""
        async with self._guard("chunk_vectors", document_id=document_id) as conn:
            cursor = await conn.execute(
                """
                SELECT ordinal, content, embedding
                FROM chunks
                WHERE document_id = ?
                ORDER BY ordinal
                """,
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [(row["ordinal"], row["content"], row["embedding"]) for row in rows]

    # Artifacts

    async def insert_artifact(
        self, document_id: str, artifact_type: str, payload: Dict[str, Any]
    ) -> str:
        """Record a generated artifact for auditability."""
        artifact_id = str(uuid.uuid4())
        async with self._transaction(
            "artifact_insert", document_id=document_id, artifact_type=artifact_type
        ) as conn:
            await conn.execute(
                """
                INSERT INTO artifacts (id, document_id, artifact_type, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (artifact_id, document_id, artifact_type, json.dumps(payload), _utcnow()),
            )
        logger.info(
            "artifact_inserted",
            artifact_id=artifact_id,
            document_id=document_id,
            artifact_type=artifact_type,
        )
        return artifact_id

    async def list_artifacts(self, document_id: str) -> List[Dict[str, Any]]:
        async with self._guard("artifact_list", document_id=document_id) as conn:
            cursor = await conn.execute(
                """
                SELECT id, artifact_type, payload_json, created_at
                FROM artifacts
                WHERE document_id = ?
                ORDER BY created_at
                """,
                (document_id,),
            )
            rows = await cursor.fetchall()

        artifacts = []
        for row in rows:
            artifact = dict(row)
            artifact["payload"] = json.loads(artifact.pop("payload_json"))
            artifacts.append(artifact)
        return artifacts
