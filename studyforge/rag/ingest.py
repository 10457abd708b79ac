"""Ingest pipeline for PDF study material.

Orchestrates, per document:
- Text extraction
- Text chunking
- Embedding generation for every chunk
- Document and chunk storage

Embeddings are generated before anything is written. If storing the chunks
fails, the document row is removed again, so a failed ingestion leaves
nothing queryable.
"""
from dataclasses import dataclass
from typing import Any, Dict

import structlog

from studyforge.db import Database, Document
from studyforge.errors import ParseError, StudyForgeError
from studyforge.rag.chunker import TextChunker
from studyforge.rag.embeddings import EmbeddingProvider
from studyforge.rag.pdf_parser import extract_pdf_text
from studyforge.rag.vector_store import ChunkRecord, VectorStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class IngestResult:
    document_id: str
    name: str
    chunk_count: int


class IngestPipeline:
    """Pipeline for ingesting documents into the retrieval core."""

    def __init__(
        self,
        db: Database,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        chunker: TextChunker = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            db: Connected database
            vector_store: Store receiving chunk vectors
            embedder: Provider used for every chunk
            chunker: Text chunker (default: configured chunk size and overlap)
        """
        self.db = db
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunker = chunker or TextChunker()

        self.stats = {
            "documents_ingested": 0,
            "documents_failed": 0,
            "chunks_created": 0,
        }

    async def ingest_pdf(self, data: bytes, name: str) -> IngestResult:
        """Ingest raw PDF bytes.

        Raises:
            ParseError: If no text can be extracted
            EmbeddingError: If any chunk fails to embed
            StorageError: If the write fails
        """
        try:
            text = extract_pdf_text(data)
        except ParseError:
            self.stats["documents_failed"] += 1
            raise
        return await self.ingest_text(text, name, source_type="pdf")

    async def ingest_text(
        self, text: str, name: str, source_type: str = "pdf"
    ) -> IngestResult:
        """Chunk, embed and store already-extracted text."""
        logger.info("ingesting_document", name=name, text_length=len(text))

        try:
            if not text or not text.strip():
                raise ParseError("Document contains no text", detail=name)

            chunks = self.chunker.chunk_text(text)
            embeddings = await self.embedder.embed_batch([c.content for c in chunks])
            records = [
                ChunkRecord(content=chunk.content, embedding=embedding)
                for chunk, embedding in zip(chunks, embeddings)
            ]

            document = Document(name=name, source_type=source_type)
            await self.db.insert_document(document)
            try:
                await self.vector_store.persist(document.id, records)
            except BaseException:
                await self.db.delete_document(document.id)
                raise

        except StudyForgeError as e:
            self.stats["documents_failed"] += 1
            logger.error(
                "document_ingestion_failed",
                name=name,
                error=e.message,
                error_type=type(e).__name__,
            )
            raise

        self.stats["documents_ingested"] += 1
        self.stats["chunks_created"] += len(records)

        logger.info(
            "document_ingested",
            document_id=document.id,
            name=name,
            chunks_created=len(records),
        )
        return IngestResult(
            document_id=document.id, name=name, chunk_count=len(records)
        )

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
