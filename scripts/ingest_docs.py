#!/usr/bin/env python3
"""Ingest a local directory of markdown/text files into a knowledge base."""

import argparse
import asyncio
import sys
from pathlib import Path

from knowledge_engine.exceptions import KnowledgeEngineError
from knowledge_engine.logging_config import setup_logging
from knowledge_engine.services.knowledge_service import KnowledgeService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("knowledge_base_id", help="Knowledge base to ingest into")
    parser.add_argument("directory", type=Path, help="Directory with documents")
    parser.add_argument("--version", default="1", help="Corpus version label (default: 1)")
    parser.add_argument(
        "--ext",
        action="append",
        dest="extensions",
        help="File extension to include, repeatable (default: .md and .txt)",
    )
    parser.add_argument(
        "--keep-existing",
        action="store_true",
        help="Do not delete this version's chunks before ingesting",
    )
    return parser.parse_args()


async def main():
    """Ingest the directory and print a summary."""
    args = parse_args()
    setup_logging()

    if not args.directory.is_dir():
        print(f"Error: Directory {args.directory} does not exist")
        sys.exit(1)

    try:
        async with KnowledgeService() as service:
            result = await service.ingest_directory(
                args.knowledge_base_id,
                args.version,
                args.directory,
                extensions=args.extensions or (".md", ".txt"),
                replace_existing=not args.keep_existing,
            )
    except KnowledgeEngineError as e:
        print(f"✗ Ingestion failed: {e}")
        sys.exit(1)

    print(f"\n{'='*60}")
    print(f"✓ Ingested {result.documents_processed} documents into '{args.knowledge_base_id}'")
    print(f"  Chunks created: {result.chunks_created}")
    print(f"{'='*60}")


if __name__ == "__main__":
    asyncio.run(main())
