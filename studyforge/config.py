"""Application configuration with sensible defaults.

Values are read from the environment once, at import time. Components receive
them as constructor arguments from ``studyforge.services``.
"""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("STUDYFORGE_DATA_DIR", str(BASE_DIR / "data")))
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "studyforge.sqlite")))

# Provider selection: "ollama" or "gemini"
AI_PROVIDER = os.getenv("AI_PROVIDER", "ollama").lower()

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")

# Gemini configuration
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_CHAT_MODEL = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.0-flash")
GEMINI_EMBEDDING_MODEL = os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004")

# Embeddings
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "5"))
EMBED_MAX_ATTEMPTS = int(os.getenv("EMBED_MAX_ATTEMPTS", "3"))
EMBED_BACKOFF_INITIAL = float(os.getenv("EMBED_BACKOFF_INITIAL", "0.5"))
EMBED_BACKOFF_MAX = float(os.getenv("EMBED_BACKOFF_MAX", "8.0"))
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "60.0"))

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "5"))
CONTEXT_FIRST_N = int(os.getenv("CONTEXT_FIRST_N", "10"))

# Cache
SEARCH_CACHE_TTL = int(os.getenv("SEARCH_CACHE_TTL", "1800"))    # 30 min
API_CACHE_TTL = int(os.getenv("API_CACHE_TTL", "3600"))          # 1 hour
CACHE_CHECK_PERIOD = float(os.getenv("CACHE_CHECK_PERIOD", "600"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "10000"))

# Request limits
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024)))
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "2000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
