"""Per-document vector storage and similarity search.

Handles:
- Atomic bulk persistence of chunk + embedding rows
- Cosine-distance ranking with a FAISS inner-product index
- Search result caching in the shared TTL cache
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import faiss
import numpy as np
import structlog

from studyforge import config
from studyforge.cache import TTLCache, make_key
from studyforge.db import Database
from studyforge.errors import ConfigurationError, StorageError
from studyforge.rag.vectors import Embedding, normalize_rows

logger = structlog.get_logger()

SEARCH_NAMESPACE = "search"


@dataclass(frozen=True)
class ChunkRecord:
    """A chunk ready for storage; it cannot exist without its embedding."""

    content: str
    embedding: Embedding


@dataclass(frozen=True)
class SearchHit:
    content: str
    ordinal: int
    distance: float


def search_cache_key(document_id: str, query: Embedding, limit: int) -> str:
    return make_key(SEARCH_NAMESPACE, document_id, query.digest(), limit)


class VectorStore:
    """Chunk vectors partitioned by document, searched by cosine distance."""

    def __init__(
        self,
        db: Database,
        cache: TTLCache,
        dimension: int = None,
        search_ttl: float = None,
    ):
        """Initialize the vector store.

        Args:
            db: Connected database
            cache: Shared process-wide cache
            dimension: Embedding dimension of the corpus (default from config)
            search_ttl: Seconds a search result stays cached (default from config)
        """
        self.db = db
        self.cache = cache
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.search_ttl = search_ttl or config.SEARCH_CACHE_TTL

        self.stats = {
            "searches": 0,
            "cache_hits": 0,
            "computations": 0,
            "chunks_persisted": 0,
        }

        logger.info(
            "vector_store_initialized",
            dimension=self.dimension,
            search_ttl=self.search_ttl,
        )

    async def persist(self, document_id: str, chunks: Sequence[ChunkRecord]) -> int:
        """Store all chunks of an ingestion batch, or none of them.

        Args:
            document_id: Owning document (must already exist)
            chunks: Records in document order; ordinals follow this order

        Returns:
            Number of chunks stored

        Raises:
            StorageError: If any record is invalid or the write fails
        """
        rows = []
        for index, chunk in enumerate(chunks):
            if not isinstance(chunk.embedding, Embedding):
                raise StorageError(f"Chunk {index} has no embedding")
            if chunk.embedding.dimension != self.dimension:
                raise StorageError(
                    f"Chunk {index} embedding dimension mismatch: expected "
                    f"{self.dimension}, got {chunk.embedding.dimension}"
                )
            rows.append((chunk.content, chunk.embedding.to_bytes()))

        count = await self.db.insert_chunks(document_id, rows)
        self.stats["chunks_persisted"] += count
        # Cached results for this document predate the new rows
        self.cache.delete_prefix(make_key(SEARCH_NAMESPACE, document_id, ""))
        return count

    async def search(
        self, document_id: str, query_embedding: Embedding, limit: int = None
    ) -> List[str]:
        """Return the contents of the ``limit`` chunks closest to the query.

        Only chunks of ``document_id`` are considered. Results are ordered by
        ascending cosine distance, ties by ingestion order. Identical
        requests within the cache TTL are served from the cache.

        Raises:
            ConfigurationError: If limit < 1
            StorageError: If the chunk rows cannot be read
        """
        limit = config.SEARCH_LIMIT if limit is None else limit
        if limit < 1:
            raise ConfigurationError(f"Search limit must be at least 1, got {limit}")

        self.stats["searches"] += 1
        key = search_cache_key(document_id, query_embedding, limit)

        cached = self.cache.get(key)
        if cached is not None:
            self.stats["cache_hits"] += 1
            logger.debug("search_cache_hit", document_id=document_id, limit=limit)
            return cached

        hits = await self.search_hits(document_id, query_embedding, limit)
        contents = [hit.content for hit in hits]
        self.cache.set(key, contents, self.search_ttl)

        logger.info(
            "vector_search_completed",
            document_id=document_id,
            limit=limit,
            results_found=len(contents),
        )
        return contents

    async def search_hits(
        self, document_id: str, query_embedding: Embedding, limit: int
    ) -> List[SearchHit]:
        """Uncached ranking with distances and ordinals."""
        if query_embedding.dimension != self.dimension:
            raise ValueError(
                f"Query dimension mismatch: expected {self.dimension}, "
                f"got {query_embedding.dimension}"
            )

        self.stats["computations"] += 1
        rows = await self.db.get_chunk_vectors(document_id)
        if not rows:
            return []

        ordinals = np.array([row[0] for row in rows], dtype=np.int64)
        try:
            matrix = np.stack(
                [Embedding.from_bytes(row[2], self.dimension).values for row in rows]
            )
        except ValueError as e:
            raise StorageError(
                "Stored embedding is corrupt", detail=str(e)
            ) from e

        distances = self._cosine_distances(matrix, query_embedding)

        # Stable tie-break: lower ordinal first among equal distances
        order = np.lexsort((ordinals, distances))[:limit]
        return [
            SearchHit(
                content=rows[i][1],
                ordinal=int(ordinals[i]),
                distance=float(distances[i]),
            )
            for i in order
        ]

    def _cosine_distances(self, matrix: np.ndarray, query: Embedding) -> np.ndarray:
        """Distance from the query to every row, in row order."""
        index = faiss.IndexFlatIP(self.dimension)
        index.add(normalize_rows(matrix))

        query_vector = query.normalized()[np.newaxis, :]
        similarities, positions = index.search(query_vector, index.ntotal)

        distances = np.empty(index.ntotal, dtype=np.float64)
        distances[positions[0]] = 1.0 - similarities[0].astype(np.float64)
        return distances

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document with its chunks and drop its cached searches."""
        deleted = await self.db.delete_document(document_id)
        dropped = self.cache.delete_prefix(make_key(SEARCH_NAMESPACE, document_id, ""))
        logger.info(
            "document_vectors_deleted",
            document_id=document_id,
            deleted=deleted,
            cache_entries_dropped=dropped,
        )
        return deleted

    def get_stats(self) -> Dict[str, Any]:
        return {"dimension": self.dimension, **self.stats}
