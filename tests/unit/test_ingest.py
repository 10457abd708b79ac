"""Tests for the ingest pipeline."""
import pytest

from fakes import FakeEmbeddingProvider
from studyforge.errors import EmbeddingError, ParseError, StorageError
from studyforge.rag.chunker import TextChunker
from studyforge.rag.ingest import IngestPipeline
from studyforge.rag.pdf_parser import extract_pdf_text


def pipeline(db, store, embedder, size=100, overlap=20) -> IngestPipeline:
    return IngestPipeline(db, store, embedder, TextChunker(size, overlap))


def text_of_chunks(count: int, size=100, overlap=20) -> str:
    """Text that splits into exactly ``count`` windows."""
    step = size - overlap
    return "".join(chr(ord("a") + i % 26) for i in range(step * (count - 1) + size))


class TestIngestText:
    @pytest.mark.asyncio
    async def test_stores_document_and_chunks(self, db, store, embedder):
        result = await pipeline(db, store, embedder).ingest_text(
            text_of_chunks(4), "biology.pdf"
        )

        assert result.chunk_count == 4
        assert result.name == "biology.pdf"
        assert await db.count_chunks(result.document_id) == 4
        assert (await db.get_document(result.document_id)).name == "biology.pdf"

    @pytest.mark.asyncio
    async def test_chunks_stored_in_text_order(self, db, store, embedder):
        text = text_of_chunks(3)
        result = await pipeline(db, store, embedder).ingest_text(text, "notes.pdf")

        contents = await db.get_chunk_contents(result.document_id)
        assert contents == [text[0:100], text[80:180], text[160:260]]

    @pytest.mark.asyncio
    async def test_embedding_failure_stores_nothing(self, db, store):
        text = text_of_chunks(5)
        chunks = TextChunker(100, 20).chunk_text(text)
        embedder = FakeEmbeddingProvider(fail_on={chunks[3].content})
        ingest = pipeline(db, store, embedder)

        with pytest.raises(EmbeddingError) as exc_info:
            await ingest.ingest_text(text, "broken.pdf")

        assert exc_info.value.index == 3
        assert await db.list_documents() == []
        assert ingest.stats["documents_failed"] == 1
        assert ingest.stats["chunks_created"] == 0

    @pytest.mark.asyncio
    async def test_storage_failure_removes_document(self, db, store, embedder, monkeypatch):
        async def failing_persist(document_id, chunks):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "persist", failing_persist)
        ingest = pipeline(db, store, embedder)

        with pytest.raises(StorageError):
            await ingest.ingest_text(text_of_chunks(2), "notes.pdf")

        assert await db.list_documents() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n\t  "])
    async def test_blank_text_rejected(self, db, store, embedder, text):
        ingest = pipeline(db, store, embedder)

        with pytest.raises(ParseError):
            await ingest.ingest_text(text, "empty.pdf")

        assert embedder.calls == []
        assert await db.list_documents() == []

    @pytest.mark.asyncio
    async def test_stats(self, db, store, embedder):
        ingest = pipeline(db, store, embedder)
        await ingest.ingest_text(text_of_chunks(2), "a.pdf")
        await ingest.ingest_text(text_of_chunks(3), "b.pdf")

        assert ingest.get_stats() == {
            "documents_ingested": 2,
            "documents_failed": 0,
            "chunks_created": 5,
        }

    @pytest.mark.asyncio
    async def test_documents_are_independent(self, db, store, embedder):
        ingest = pipeline(db, store, embedder)
        first = await ingest.ingest_text(text_of_chunks(2), "a.pdf")
        second = await ingest.ingest_text(text_of_chunks(2), "a.pdf")

        assert first.document_id != second.document_id
        assert len(await db.list_documents()) == 2


class TestIngestPdf:
    @pytest.mark.asyncio
    async def test_pdf_is_extracted_and_stored(self, db, store, embedder, pdf_bytes):
        data = pdf_bytes(["Cell biology", "Mitochondria produce ATP"])
        ingest = pipeline(db, store, embedder, size=1000, overlap=200)

        result = await ingest.ingest_pdf(data, "cells.pdf")

        contents = await db.get_chunk_contents(result.document_id)
        assert result.chunk_count == 1
        assert "Mitochondria" in contents[0]

    @pytest.mark.asyncio
    async def test_non_pdf_rejected(self, db, store, embedder):
        ingest = pipeline(db, store, embedder)

        with pytest.raises(ParseError):
            await ingest.ingest_pdf(b"plain text, not a pdf", "notes.txt")

        assert ingest.stats["documents_failed"] == 1
        assert await db.list_documents() == []


class TestExtractPdfText:
    def test_extracts_lines(self, pdf_bytes):
        text = extract_pdf_text(pdf_bytes(["Photosynthesis", "Chlorophyll"]))

        assert "Photosynthesis" in text
        assert "Chlorophyll" in text

    def test_empty_bytes(self):
        with pytest.raises(ParseError):
            extract_pdf_text(b"")

    def test_pdf_without_text(self, pdf_bytes):
        with pytest.raises(ParseError):
            extract_pdf_text(pdf_bytes([]))
