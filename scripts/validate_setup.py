#!/usr/bin/env python
"""Validate a StudyForge installation.

Checks, in order: installed libraries, configuration values, the SQLite
store, and a live round trip against the configured AI provider.
"""
import asyncio
import importlib
import sys
from pathlib import Path
from typing import List

sys.path.insert(0, str(Path(__file__).parent.parent))

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

REQUIRED_MODULES = [
    ("quart", "Quart web framework"),
    ("hypercorn", "Hypercorn ASGI server"),
    ("httpx", "HTTP client"),
    ("faiss", "FAISS similarity search"),
    ("numpy", "Vector math"),
    ("pypdf", "PDF text extraction"),
    ("pydantic", "Output schemas"),
    ("aiosqlite", "Async SQLite"),
    ("tenacity", "Retry with backoff"),
    ("structlog", "Structured logging"),
]


def ok(msg):
    print(f"  {GREEN}✓{RESET} {msg}")


def fail(msg):
    print(f"  {RED}✗{RESET} {msg}")


def note(msg):
    print(f"  {BLUE}ℹ{RESET} {msg}")


def warn(msg):
    print(f"  {YELLOW}⚠{RESET} {msg}")


def heading(title):
    print(f"\n{BLUE}── {title} {'─' * (56 - len(title))}{RESET}")


def check_modules() -> List[str]:
    heading("Libraries")
    missing = []
    for module_name, description in REQUIRED_MODULES:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            fail(f"{description:28} {module_name}: {e}")
            missing.append(module_name)
            continue
        version = getattr(module, "__version__", "?")
        ok(f"{description:28} {module_name} {version}")
    return [f"Missing library: {name}" for name in missing]


def check_configuration() -> List[str]:
    from studyforge import config
    from studyforge.errors import StudyForgeError
    from studyforge.rag.chunker import validate_window

    heading("Configuration")
    note(f"Provider:            {config.AI_PROVIDER}")
    note(f"Embedding dimension: {config.EMBEDDING_DIMENSION}")
    note(f"Chunk size/overlap:  {config.CHUNK_SIZE}/{config.CHUNK_OVERLAP}")
    note(f"Search cache TTL:    {config.SEARCH_CACHE_TTL}s")
    note(f"Database:            {config.DB_PATH}")

    errors = []
    try:
        validate_window(config.CHUNK_SIZE, config.CHUNK_OVERLAP)
        ok("Chunk window is valid")
    except StudyForgeError as e:
        fail(e.message)
        errors.append("Invalid chunk window")

    if config.AI_PROVIDER not in ("ollama", "gemini"):
        fail(f"Unknown AI_PROVIDER '{config.AI_PROVIDER}'")
        errors.append("Unknown provider")
    elif config.AI_PROVIDER == "gemini" and not config.GEMINI_API_KEY:
        fail("GEMINI_API_KEY is not set")
        errors.append("Missing Gemini API key")
    else:
        ok(f"Provider '{config.AI_PROVIDER}' selected")

    return errors


async def check_storage() -> List[str]:
    from studyforge import config
    from studyforge.db import Database
    from studyforge.errors import StorageError

    heading("Storage")
    db = Database(config.DB_PATH)
    try:
        await db.connect()
        await db.init_schema()
        documents = await db.list_documents()
    except StorageError as e:
        fail(f"{e.message}: {e.detail}")
        return ["Database not usable"]
    finally:
        await db.close()

    ok(f"Database ready ({len(documents)} document(s))")
    return []


async def check_provider() -> List[str]:
    from studyforge import config
    from studyforge.errors import StudyForgeError
    from studyforge.generation import create_chat_backend
    from studyforge.rag.embeddings import create_embedding_provider

    heading(f"Provider ({config.AI_PROVIDER})")
    errors = []

    try:
        embedder = create_embedding_provider(config.AI_PROVIDER)
        chat_backend = create_chat_backend(config.AI_PROVIDER)
    except StudyForgeError as e:
        fail(e.message)
        return ["Provider not configured"]

    try:
        models = await chat_backend.list_models()
        ok(f"Provider reachable ({len(models)} model(s) listed)")
    except Exception as e:
        fail(f"Cannot list models: {e}")
        errors.append("Provider unreachable")
        return errors

    try:
        embedding = await embedder.embed_one("validate setup")
        ok(f"Embedding round trip (dimension {embedding.dimension})")
    except StudyForgeError as e:
        fail(f"Embedding failed: {e.message}")
        if e.detail:
            note(e.detail)
        errors.append("Embedding provider not usable")

    return errors


async def main() -> int:
    print(f"\n{BLUE}StudyForge setup validation{RESET}")
    note(f"Python {sys.version.split()[0]}")
    if sys.version_info < (3, 10):
        fail("Python 3.10 or newer is required")
        return 1

    errors = check_modules()
    if errors:
        # Nothing below imports without the libraries
        warn("Install the missing libraries and run again")
    else:
        errors += check_configuration()
        errors += await check_storage()
        if not errors:
            errors += await check_provider()

    heading("Summary")
    if not errors:
        ok("All checks passed")
        return 0

    for i, error in enumerate(errors, 1):
        fail(f"{i}. {error}")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
