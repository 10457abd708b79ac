"""Tests for vector persistence and similarity search."""
import pytest

from fakes import DIM, axis, vector_at_distance
from studyforge.cache import make_key
from studyforge.errors import ConfigurationError, StorageError
from studyforge.rag.vector_store import (
    SEARCH_NAMESPACE,
    ChunkRecord,
    search_cache_key,
)
from studyforge.rag.vectors import Embedding


def record(content, values, dimension=DIM) -> ChunkRecord:
    return ChunkRecord(content=content, embedding=Embedding(values, dimension))


QUERY = Embedding(axis(0), DIM)


class TestPersist:
    @pytest.mark.asyncio
    async def test_persist_assigns_ordinals_in_order(self, store, db, make_document):
        doc_id = await make_document()

        count = await store.persist(
            doc_id, [record("first", axis(0)), record("second", axis(1))]
        )

        assert count == 2
        rows = await db.get_chunk_vectors(doc_id)
        assert [(ordinal, content) for ordinal, content, _ in rows] == [
            (0, "first"),
            (1, "second"),
        ]

    @pytest.mark.asyncio
    async def test_later_batches_continue_ordinals(self, store, db, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("a", axis(0))])
        await store.persist(doc_id, [record("b", axis(1)), record("c", axis(2))])

        rows = await db.get_chunk_vectors(doc_id)
        assert [ordinal for ordinal, _, _ in rows] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_missing_embedding_stores_nothing(self, store, db, make_document):
        doc_id = await make_document()
        batch = [
            record("ok", axis(0)),
            ChunkRecord(content="broken", embedding=None),
            record("ok too", axis(1)),
        ]

        with pytest.raises(StorageError):
            await store.persist(doc_id, batch)

        assert await db.count_chunks(doc_id) == 0

    @pytest.mark.asyncio
    async def test_wrong_dimension_stores_nothing(self, store, db, make_document):
        doc_id = await make_document()
        batch = [record("ok", axis(0)), record("short", [1.0, 0.0], dimension=2)]

        with pytest.raises(StorageError, match="dimension mismatch"):
            await store.persist(doc_id, batch)

        assert await db.count_chunks(doc_id) == 0

    @pytest.mark.asyncio
    async def test_unknown_document_rolls_back(self, store, db):
        with pytest.raises(StorageError):
            await store.persist("no-such-doc", [record("a", axis(0)), record("b", axis(1))])

        assert await db.count_chunks("no-such-doc") == 0

    @pytest.mark.asyncio
    async def test_empty_batch(self, store, make_document):
        doc_id = await make_document()
        assert await store.persist(doc_id, []) == 0


class TestSearch:
    @pytest.mark.asyncio
    async def test_results_ordered_by_distance(self, store, make_document):
        doc_id = await make_document()
        await store.persist(
            doc_id,
            [
                record("far", vector_at_distance(0.9)),
                record("near", vector_at_distance(0.1)),
                record("middle", vector_at_distance(0.5)),
            ],
        )

        assert await store.search(doc_id, QUERY, limit=3) == ["near", "middle", "far"]
        assert await store.search(doc_id, QUERY, limit=2) == ["near", "middle"]

    @pytest.mark.asyncio
    async def test_hits_report_distances(self, store, make_document):
        doc_id = await make_document()
        await store.persist(
            doc_id,
            [record("far", vector_at_distance(0.9)), record("near", vector_at_distance(0.1))],
        )

        hits = await store.search_hits(doc_id, QUERY, limit=5)

        assert [h.content for h in hits] == ["near", "far"]
        assert [h.ordinal for h in hits] == [1, 0]
        assert hits[0].distance == pytest.approx(0.1, abs=1e-5)
        assert hits[1].distance == pytest.approx(0.9, abs=1e-5)

    @pytest.mark.asyncio
    async def test_search_is_scoped_to_document(self, store, make_document):
        doc_a = await make_document("a.pdf")
        doc_b = await make_document("b.pdf")
        await store.persist(doc_a, [record("a-far", vector_at_distance(0.8))])
        await store.persist(doc_b, [record("b-exact", axis(0))])

        assert await store.search(doc_a, QUERY, limit=5) == ["a-far"]

    @pytest.mark.asyncio
    async def test_ties_keep_ingestion_order(self, store, make_document):
        doc_id = await make_document()
        await store.persist(
            doc_id,
            [record(f"tie {i}", vector_at_distance(0.3)) for i in range(6)],
        )

        assert await store.search(doc_id, QUERY, limit=4) == [
            "tie 0",
            "tie 1",
            "tie 2",
            "tie 3",
        ]

    @pytest.mark.asyncio
    async def test_limit_larger_than_corpus(self, store, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("only", axis(3))])

        assert await store.search(doc_id, QUERY, limit=10) == ["only"]

    @pytest.mark.asyncio
    async def test_document_without_chunks(self, store, make_document):
        doc_id = await make_document()
        assert await store.search(doc_id, QUERY, limit=5) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1])
    async def test_invalid_limit(self, store, make_document, limit):
        doc_id = await make_document()
        with pytest.raises(ConfigurationError):
            await store.search(doc_id, QUERY, limit=limit)

    @pytest.mark.asyncio
    async def test_query_dimension_mismatch(self, store, make_document):
        doc_id = await make_document()
        with pytest.raises(ValueError):
            await store.search(doc_id, Embedding([1.0, 0.0], 2), limit=5)

    @pytest.mark.asyncio
    async def test_zero_query_vector_ranks_by_ordinal(self, store, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("x", axis(1)), record("y", axis(2))])

        result = await store.search(doc_id, Embedding([0.0] * DIM, DIM), limit=2)
        assert result == ["x", "y"]


class TestSearchCache:
    @pytest.mark.asyncio
    async def test_repeat_search_served_from_cache(self, store, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("near", vector_at_distance(0.1))])

        first = await store.search(doc_id, QUERY, limit=5)
        second = await store.search(doc_id, QUERY, limit=5)

        assert first == second == ["near"]
        assert store.stats["computations"] == 1
        assert store.stats["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_cache_key_includes_limit(self, store, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("a", axis(0)), record("b", axis(1))])

        await store.search(doc_id, QUERY, limit=1)
        await store.search(doc_id, QUERY, limit=2)

        assert store.stats["computations"] == 2

    @pytest.mark.asyncio
    async def test_cache_expires_after_ttl(self, store, make_document, clock):
        doc_id = await make_document()
        await store.persist(doc_id, [record("a", axis(0))])

        await store.search(doc_id, QUERY, limit=5)
        clock.advance(1799)
        await store.search(doc_id, QUERY, limit=5)
        assert store.stats["computations"] == 1

        clock.advance(1)
        await store.search(doc_id, QUERY, limit=5)
        assert store.stats["computations"] == 2

    @pytest.mark.asyncio
    async def test_persist_invalidates_document_searches(self, store, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("far", vector_at_distance(0.9))])
        assert await store.search(doc_id, QUERY, limit=1) == ["far"]

        await store.persist(doc_id, [record("near", vector_at_distance(0.1))])

        assert await store.search(doc_id, QUERY, limit=1) == ["near"]

    @pytest.mark.asyncio
    async def test_delete_drops_rows_and_cache(self, store, db, cache, make_document):
        doc_id = await make_document()
        await store.persist(doc_id, [record("a", axis(0))])
        await store.search(doc_id, QUERY, limit=5)
        assert cache.get(search_cache_key(doc_id, QUERY, 5)) == ["a"]

        assert await store.delete_document(doc_id) is True

        assert await db.count_chunks(doc_id) == 0
        assert await db.get_document(doc_id) is None
        assert cache.delete_prefix(make_key(SEARCH_NAMESPACE, doc_id, "")) == 0
        assert await store.search(doc_id, QUERY, limit=5) == []

    @pytest.mark.asyncio
    async def test_delete_unknown_document(self, store):
        assert await store.delete_document("missing") is False

    def test_cache_key_is_stable_for_equal_vectors(self):
        a = Embedding(axis(1), DIM)
        b = Embedding(list(axis(1)), DIM)
        assert search_cache_key("doc", a, 5) == search_cache_key("doc", b, 5)
        assert search_cache_key("doc", a, 5) != search_cache_key("doc", a, 6)
