"""Retrieval core.

This package contains modules for:
- Fixed-window text chunking with overlap
- Embedding generation against an external provider
- Per-document vector storage and cached similarity search
- Context assembly for downstream generation
"""
