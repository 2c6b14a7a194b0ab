#!/usr/bin/env python3
"""Search a knowledge base, or research a topic, from the command line."""

import argparse
import asyncio
import sys

from knowledge_engine.exceptions import KnowledgeEngineError
from knowledge_engine.logging_config import setup_logging
from knowledge_engine.models.search import RetrievalResult
from knowledge_engine.services.knowledge_service import KnowledgeService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("knowledge_base_id", help="Knowledge base to search")
    parser.add_argument("query", help="Query, or topic with --research")
    parser.add_argument(
        "--thoroughness",
        choices=["fast", "balanced", "thorough"],
        default=None,
        help="Retrieval tier (default: from settings)",
    )
    parser.add_argument("--limit", type=int, default=5, help="Number of results (default: 5)")
    parser.add_argument("--min-score", type=float, default=0.0, help="Score floor")
    parser.add_argument(
        "--research",
        action="store_true",
        help="Run multi-step agentic research instead of a single search",
    )
    return parser.parse_args()


def print_result(i: int, result: RetrievalResult):
    section = " > ".join(result.section_path) if result.section_path else "-"
    print(f"\n  {i}. [{result.score:.4f}] {result.document_title or 'Untitled'} - {section}")
    print(f"     Source: {result.source_file}")
    print(f"     Content: {result.content[:200].replace(chr(10), ' ')}...")


async def main():
    """Run the search and print ranked results."""
    args = parse_args()
    setup_logging()

    try:
        async with KnowledgeService() as service:
            if args.research:
                research = await service.research_topic(args.knowledge_base_id, args.query)
                print(f"\n{'='*80}")
                print(f"Research: {research.topic}")
                print(
                    f"{research.searches_performed} searches, {research.iterations} iterations, "
                    f"{len(research.findings)} findings"
                )
                print(f"{'='*80}")
                for i, finding in enumerate(research.findings, 1):
                    print_result(i, finding)
                return

            response = await service.retrieve(
                args.knowledge_base_id,
                args.query,
                thoroughness=args.thoroughness,
                limit=args.limit,
                min_score=args.min_score,
            )
    except KnowledgeEngineError as e:
        print(f"✗ Search failed: {e}")
        sys.exit(1)

    print(f"\n{'='*80}")
    print(f"Query: {args.query}")
    print(
        f"{len(response.results)} results ({response.thoroughness.value} search, "
        f"{response.latency_ms}ms)"
    )
    print(f"{'='*80}")
    for i, result in enumerate(response.results, 1):
        print_result(i, result)


if __name__ == "__main__":
    asyncio.run(main())
