"""Construction and lifecycle of the shared components.

Every component receives its collaborators explicitly. ``build_services``
creates one of each from ``config`` when the process starts; the same cache
instance is passed to everything that caches.
"""
from dataclasses import dataclass
from typing import Optional

import structlog

from studyforge import config
from studyforge.cache import TTLCache
from studyforge.db import Database
from studyforge.generation import ChatBackend, Generator, create_chat_backend
from studyforge.rag.chunker import TextChunker
from studyforge.rag.context import ContextAssembler
from studyforge.rag.embeddings import EmbeddingProvider, create_embedding_provider
from studyforge.rag.ingest import IngestPipeline
from studyforge.rag.vector_store import VectorStore

logger = structlog.get_logger()


@dataclass
class Services:
    db: Database
    cache: TTLCache
    embedder: EmbeddingProvider
    chat_backend: ChatBackend
    vector_store: VectorStore
    context: ContextAssembler
    ingest: IngestPipeline
    generator: Generator
    started: bool = False

    async def start(self) -> None:
        """Open the database, create the schema and start cache eviction."""
        if self.started:
            return
        await self.db.connect()
        await self.db.init_schema()
        self.cache.start()
        self.started = True
        logger.info("services_started", provider=self.embedder.name)

    async def stop(self) -> None:
        if not self.started:
            return
        await self.cache.stop()
        await self.db.close()
        self.started = False
        logger.info("services_stopped")


def build_services(
    db: Optional[Database] = None,
    cache: Optional[TTLCache] = None,
    embedder: Optional[EmbeddingProvider] = None,
    chat_backend: Optional[ChatBackend] = None,
    chunker: Optional[TextChunker] = None,
) -> Services:
    """Wire the components together; anything not given is built from config.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    db = db or Database(config.DB_PATH)
    cache = cache or TTLCache(
        default_ttl=config.API_CACHE_TTL,
        check_period=config.CACHE_CHECK_PERIOD,
        max_entries=config.CACHE_MAX_ENTRIES,
    )
    embedder = embedder or create_embedding_provider(config.AI_PROVIDER)
    chat_backend = chat_backend or create_chat_backend(config.AI_PROVIDER)

    vector_store = VectorStore(
        db,
        cache,
        dimension=embedder.dimension,
        search_ttl=config.SEARCH_CACHE_TTL,
    )

    return Services(
        db=db,
        cache=cache,
        embedder=embedder,
        chat_backend=chat_backend,
        vector_store=vector_store,
        context=ContextAssembler(db, vector_store, embedder),
        ingest=IngestPipeline(db, vector_store, embedder, chunker=chunker),
        generator=Generator(chat_backend),
    )
