#!/usr/bin/env python
"""Run the StudyForge API under Hypercorn."""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from hypercorn.asyncio import serve
from hypercorn.config import Config

from studyforge.main import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the StudyForge API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    args = parser.parse_args()

    hypercorn_config = Config()
    hypercorn_config.bind = [f"{args.host}:{args.port}"]
    hypercorn_config.accesslog = "-"

    asyncio.run(serve(create_app(), hypercorn_config))


if __name__ == "__main__":
    main()
