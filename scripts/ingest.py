#!/usr/bin/env python
"""Ingest PDF study material into the StudyForge store.

Usage:
    python scripts/ingest.py notes.pdf               # Ingest one file
    python scripts/ingest.py course/*.pdf --verbose  # Show detailed progress
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import List

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from studyforge import config
from studyforge.errors import StudyForgeError
from studyforge.logging_config import setup_logging
from studyforge.services import build_services


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )
        if self.verbose:
            print()

    def finish(self, stats: dict, failures: List[str]):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Documents ingested: {stats['documents_ingested']}")
        print(f"  Documents failed:   {stats['documents_failed']}")
        print(f"  Chunks created:     {stats['chunks_created']}")
        print(f"  Time elapsed:       {elapsed_seconds:.1f}s")

        if stats["chunks_created"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_created"] / elapsed_seconds
            print(f"  Ingestion rate:     {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        for failure in failures:
            print(f"  ✗ {failure}")
        if failures:
            print()


async def main() -> int:
    """Main entry point for the ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF files into the StudyForge store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="+", type=Path, help="PDF files to ingest")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )
    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else "WARNING", json_logs=config.LOG_JSON)

    print("\n📋 Configuration:")
    print(f"   Provider:         {config.AI_PROVIDER}")
    print(f"   Database:         {config.DB_PATH}")
    print(f"   Embedding dim:    {config.EMBEDDING_DIMENSION}")
    print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
    print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

    try:
        services = build_services()
    except StudyForgeError as e:
        print(f"\n❌ Configuration error: {e.message}\n")
        return 1

    progress = ProgressReporter(verbose=args.verbose)
    failures: List[str] = []

    await services.start()
    try:
        progress.start(f"Ingesting {len(args.paths)} document(s)")

        for index, path in enumerate(args.paths, 1):
            progress.update(index, len(args.paths), path)
            try:
                data = path.read_bytes()
            except OSError as e:
                failures.append(f"{path}: {e}")
                continue

            try:
                result = await services.ingest.ingest_pdf(data, path.name)
            except StudyForgeError as e:
                failures.append(f"{path}: {e.message}")
                continue

            if args.verbose:
                print(f"    → {result.document_id} ({result.chunk_count} chunks)")

        progress.finish(services.ingest.get_stats(), failures)
    finally:
        await services.stop()

    return 1 if failures else 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)
