"""Retrieval entry point routing queries to a search strategy by thoroughness."""

import asyncio
import logging
import time

from knowledge_engine.models.search import RetrievalResponse, RetrievalResult, Thoroughness
from knowledge_engine.retrieval.hybrid_search import HybridSearchEngine
from knowledge_engine.retrieval.reranker import LLMReranker

logger = logging.getLogger(__name__)


class Retriever:
    """Routes a query to one of three strategies.

    - fast: vector search only, score = cosine similarity
    - balanced: hybrid vector + keyword search fused with RRF
    - thorough: hybrid search over a wider candidate pool, then LLM reranking

    Scores are only comparable within one tier.
    """

    def __init__(
        self,
        hybrid_engine: HybridSearchEngine,
        reranker: LLMReranker,
        rerank_candidate_floor: int = 20,
    ):
        self.hybrid_engine = hybrid_engine
        self.reranker = reranker
        self.rerank_candidate_floor = rerank_candidate_floor

    async def retrieve(
        self,
        knowledge_base_id: str,
        query: str,
        thoroughness: Thoroughness | str = Thoroughness.BALANCED,
        limit: int = 5,
        min_score: float = 0.0,
        timeout: float | None = None,
    ) -> RetrievalResponse:
        """Retrieve relevant chunks for a query.

        Args:
            knowledge_base_id: Knowledge base to search
            query: Free-text query
            thoroughness: Tier name or Thoroughness member
            limit: Maximum number of results
            min_score: Score floor, applied per sub-search in its native scale
            timeout: Deadline for the whole call in seconds

        Returns:
            RetrievalResponse with results, the tier used and latency in ms

        Raises:
            UnknownThoroughnessError: If thoroughness names no known tier
            KnowledgeBaseNotFoundError: If the knowledge base does not exist
            asyncio.TimeoutError: If the deadline passes
        """
        tier = Thoroughness.parse(thoroughness)
        start_time = time.perf_counter()

        results = await asyncio.wait_for(
            self._dispatch(tier, knowledge_base_id, query, limit, min_score, timeout),
            timeout=timeout,
        )

        latency_ms = round((time.perf_counter() - start_time) * 1000, 1)
        logger.info(
            f"[Retrieval] {tier.value} mode completed in {latency_ms}ms "
            f"({len(results)} results)"
        )

        return RetrievalResponse(results=results, thoroughness=tier, latency_ms=latency_ms)

    async def _dispatch(
        self,
        tier: Thoroughness,
        knowledge_base_id: str,
        query: str,
        limit: int,
        min_score: float,
        timeout: float | None,
    ) -> list[RetrievalResult]:
        if tier is Thoroughness.FAST:
            return await self.hybrid_engine.vector_search(
                knowledge_base_id, query, limit, min_score
            )

        if tier is Thoroughness.BALANCED:
            return await self.hybrid_engine.search(knowledge_base_id, query, limit, min_score)

        candidate_limit = max(limit * 3, self.rerank_candidate_floor)
        candidates = await self.hybrid_engine.search(
            knowledge_base_id, query, candidate_limit, min_score
        )
        return await self.reranker.rerank(query, candidates, limit, timeout=timeout)
