"""Tests for context assembly."""
import pytest

from fakes import DIM, FakeEmbeddingProvider, axis, vector_at_distance
from studyforge.errors import ConfigurationError, NotFoundError
from studyforge.rag.context import ContextAssembler, FirstChunks, TopKByQuery
from studyforge.rag.vector_store import ChunkRecord
from studyforge.rag.vectors import Embedding


async def seed(store, doc_id, items):
    await store.persist(
        doc_id,
        [ChunkRecord(content=c, embedding=Embedding(v, DIM)) for c, v in items],
    )


class TestFirstChunks:
    @pytest.mark.asyncio
    async def test_takes_first_n_in_order(self, db, store, embedder, make_document):
        doc_id = await make_document()
        await seed(store, doc_id, [(f"part {i}", axis(i % DIM)) for i in range(12)])
        assembler = ContextAssembler(db, store, embedder)

        context = await assembler.get_context(doc_id, FirstChunks(n=10))

        assert context == "\n\n".join(f"part {i}" for i in range(10))
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_fewer_chunks_than_n(self, db, store, embedder, make_document):
        doc_id = await make_document()
        await seed(store, doc_id, [("only", axis(0))])
        assembler = ContextAssembler(db, store, embedder)

        assert await assembler.get_context(doc_id, assembler.first_chunks()) == "only"

    @pytest.mark.asyncio
    async def test_empty_document(self, db, store, embedder, make_document):
        doc_id = await make_document()
        assembler = ContextAssembler(db, store, embedder)

        with pytest.raises(NotFoundError, match="Document content not found"):
            await assembler.get_context(doc_id, FirstChunks())

    @pytest.mark.asyncio
    async def test_unknown_document(self, db, store, embedder):
        assembler = ContextAssembler(db, store, embedder)

        with pytest.raises(NotFoundError):
            await assembler.get_context("missing", FirstChunks())

    @pytest.mark.asyncio
    async def test_invalid_n(self, db, store, embedder, make_document):
        doc_id = await make_document()
        assembler = ContextAssembler(db, store, embedder)

        with pytest.raises(ConfigurationError):
            await assembler.get_context(doc_id, FirstChunks(n=0))


class TestTopKByQuery:
    @pytest.mark.asyncio
    async def test_closest_chunks_joined(self, db, store, make_document):
        doc_id = await make_document()
        await seed(
            store,
            doc_id,
            [
                ("far", vector_at_distance(0.9)),
                ("near", vector_at_distance(0.1)),
                ("middle", vector_at_distance(0.5)),
            ],
        )
        embedder = FakeEmbeddingProvider(vectors={"what is ATP?": axis(0)})
        assembler = ContextAssembler(db, store, embedder)

        context = await assembler.get_context(doc_id, TopKByQuery("what is ATP?", k=2))

        assert context == "near\n\nmiddle"
        assert embedder.calls == ["what is ATP?"]

    @pytest.mark.asyncio
    async def test_empty_document_skips_embedding(self, db, store, embedder, make_document):
        doc_id = await make_document()
        assembler = ContextAssembler(db, store, embedder)

        with pytest.raises(NotFoundError):
            await assembler.get_context(doc_id, assembler.top_k("question"))

        assert embedder.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query(self, db, store, embedder, make_document, query):
        doc_id = await make_document()
        assembler = ContextAssembler(db, store, embedder)

        with pytest.raises(ConfigurationError):
            await assembler.get_context(doc_id, TopKByQuery(query))

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, db, store, embedder, make_document):
        doc_id = await make_document()
        assembler = ContextAssembler(db, store, embedder)

        with pytest.raises(ConfigurationError):
            await assembler.get_context(doc_id, "first")
