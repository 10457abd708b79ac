"""Fixtures for HTTP route tests: an app wired to fakes and a test client."""
import pytest

from fakes import FakeChatBackend, FakeEmbeddingProvider
from studyforge.cache import TTLCache
from studyforge.db import Database
from studyforge.main import create_app
from studyforge.rag.chunker import TextChunker
from studyforge.services import build_services


@pytest.fixture
def chat_backend() -> FakeChatBackend:
    return FakeChatBackend()


@pytest.fixture
def services(tmp_path, clock, chat_backend):
    return build_services(
        db=Database(tmp_path / "api.sqlite"),
        cache=TTLCache(default_ttl=3600, check_period=600, clock=clock),
        embedder=FakeEmbeddingProvider(),
        chat_backend=chat_backend,
        chunker=TextChunker(chunk_size=100, chunk_overlap=20),
    )


@pytest.fixture
async def app(services):
    app = create_app(services)
    async with app.test_app() as test_app:
        yield test_app


@pytest.fixture
def client(app):
    return app.test_client()
