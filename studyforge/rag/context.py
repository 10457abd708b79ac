"""Context assembly for downstream generation.

Two strategies:
- FirstChunks: the opening chunks of a document, for tasks needing broad
  coverage (syllabus, quiz, flashcards)
- TopKByQuery: the chunks closest to a question, for chat
"""
from dataclasses import dataclass
from typing import List, Union

import structlog

from studyforge import config
from studyforge.db import Database
from studyforge.errors import ConfigurationError, NotFoundError
from studyforge.rag.embeddings import EmbeddingProvider
from studyforge.rag.vector_store import VectorStore

logger = structlog.get_logger()

SEPARATOR = "\n\n"


@dataclass(frozen=True)
class FirstChunks:
    n: int = 10


@dataclass(frozen=True)
class TopKByQuery:
    query: str
    k: int = 5


ContextStrategy = Union[FirstChunks, TopKByQuery]


class ContextAssembler:
    """Builds the context string handed to the generation layer."""

    def __init__(
        self,
        db: Database,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
    ):
        self.db = db
        self.vector_store = vector_store
        self.embedder = embedder

    def first_chunks(self, n: int = None) -> FirstChunks:
        return FirstChunks(n=config.CONTEXT_FIRST_N if n is None else n)

    def top_k(self, query: str, k: int = None) -> TopKByQuery:
        return TopKByQuery(query=query, k=config.SEARCH_LIMIT if k is None else k)

    async def get_context(self, document_id: str, strategy: ContextStrategy) -> str:
        """Assemble context for a document.

        Args:
            document_id: Document to draw chunks from
            strategy: FirstChunks or TopKByQuery

        Returns:
            Chunk texts joined by blank lines

        Raises:
            NotFoundError: If the document has no stored chunks
            ConfigurationError: If the strategy is invalid
            ProviderError: If the query cannot be embedded
        """
        if isinstance(strategy, FirstChunks):
            if strategy.n < 1:
                raise ConfigurationError(f"First-N must be at least 1, got {strategy.n}")
            chunks = await self.db.get_chunk_contents(document_id, limit=strategy.n)

        elif isinstance(strategy, TopKByQuery):
            if not strategy.query or not strategy.query.strip():
                raise ConfigurationError("Query text must not be empty")
            if await self.db.count_chunks(document_id) == 0:
                chunks = []
            else:
                query_embedding = await self.embedder.embed_one(strategy.query)
                chunks = await self.vector_store.search(
                    document_id, query_embedding, limit=strategy.k
                )

        else:
            raise ConfigurationError(f"Unknown context strategy: {strategy!r}")

        if not chunks:
            logger.warning(
                "context_not_found",
                document_id=document_id,
                strategy=type(strategy).__name__,
            )
            raise NotFoundError("Document content not found", detail=document_id)

        context = join_chunks(chunks)
        logger.debug(
            "context_assembled",
            document_id=document_id,
            strategy=type(strategy).__name__,
            num_chunks=len(chunks),
            total_chars=len(context),
        )
        return context


def join_chunks(chunks: List[str]) -> str:
    return SEPARATOR.join(chunks)
