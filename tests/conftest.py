"""Shared test fixtures.

Provides: temporary database, fake clock, cache, vector store, document
factory and a PDF builder. Fakes live in ``fakes.py``.
"""
import pytest

from fakes import DIM, FakeClock, FakeEmbeddingProvider, build_pdf
from studyforge.cache import TTLCache
from studyforge.db import Database, Document
from studyforge.rag.vector_store import VectorStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(default_ttl=60, check_period=30, clock=clock)


@pytest.fixture
async def db(tmp_path):
    database = Database(tmp_path / "test.sqlite")
    await database.connect()
    await database.init_schema()
    yield database
    await database.close()


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def store(db, cache) -> VectorStore:
    return VectorStore(db, cache, dimension=DIM, search_ttl=1800)


@pytest.fixture
def make_document(db):
    async def _make(name: str = "notes.pdf") -> str:
        return await db.insert_document(Document(name=name))

    return _make


@pytest.fixture
def pdf_bytes():
    return build_pdf
