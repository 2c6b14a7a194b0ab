"""Agentic multi-step retrieval: break a topic into sub-queries and research it."""

import asyncio
import json
import logging

from pydantic import TypeAdapter, ValidationError

from knowledge_engine.clients.openai_client import OpenAIClient
from knowledge_engine.models.research import ResearchResult, SubQuery
from knowledge_engine.models.search import RetrievalResult, Thoroughness
from knowledge_engine.retrieval.hybrid_search import gather_fail_fast
from knowledge_engine.retrieval.orchestrator import Retriever

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_MESSAGE = (
    "You are a research assistant that breaks down complex topics into focused "
    "search queries. Always respond with valid JSON only."
)

MAX_SUB_QUERIES = 4


_sub_query_list = TypeAdapter(list[SubQuery])


class PlanningError(ValueError):
    """Planner reply could not be turned into sub-queries."""


class AgenticResearcher:
    """Researches a topic over several iterations of planned sub-queries.

    Each iteration asks an LLM for 2-4 focused sub-queries, runs them
    concurrently through the Retriever and merges the unique findings.
    Research stops once enough unique findings exist or the iteration
    budget is spent.
    """

    def __init__(
        self,
        retriever: Retriever,
        llm_client: OpenAIClient | None,
        planner_model: str | None = None,
        planner_timeout: float | None = None,
        sub_query_limit: int = 5,
        sub_query_min_score: float = 0.3,
        max_findings: int = 20,
    ):
        """Initialize the researcher.

        Args:
            retriever: Retriever used for every sub-query
            llm_client: Chat client for planning; None plans with the topic alone
            planner_model: Chat model override for planning
            planner_timeout: Deadline for one planning call in seconds
            sub_query_limit: Results requested per sub-query
            sub_query_min_score: Score floor per sub-query
            max_findings: Findings kept in the final result
        """
        self.retriever = retriever
        self.llm_client = llm_client
        self.planner_model = planner_model
        self.planner_timeout = planner_timeout
        self.sub_query_limit = sub_query_limit
        self.sub_query_min_score = sub_query_min_score
        self.max_findings = max_findings

    async def research_topic(
        self,
        knowledge_base_id: str,
        topic: str,
        max_iterations: int = 3,
        min_results: int = 10,
        thoroughness: Thoroughness | str = Thoroughness.THOROUGH,
        timeout: float | None = None,
    ) -> ResearchResult:
        """Research a topic with iterative query decomposition.

        Args:
            knowledge_base_id: Knowledge base to search
            topic: Complex topic or question
            max_iterations: Upper bound on plan/search rounds
            min_results: Unique findings that end research early
            thoroughness: Tier used for every sub-query
            timeout: Overall deadline in seconds, shared by all stages

        Returns:
            ResearchResult with findings sorted by score (at most max_findings)

        Raises:
            ValueError: If max_iterations is less than 1
            UnknownThoroughnessError: If thoroughness names no known tier
            asyncio.TimeoutError: If the deadline passes during a search round
            Exception: Any failing sub-query fails the research call
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        tier = Thoroughness.parse(thoroughness)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        def remaining() -> float | None:
            if deadline is None:
                return None
            return max(0.0, deadline - loop.time())

        findings: list[RetrievalResult] = []
        seen_content: set[str] = set()
        searches_performed = 0
        iterations = 0

        logger.info(f"→ Agentic Research START - topic: {topic}")

        while iterations < max_iterations:
            logger.info(f"  Iteration {iterations + 1}/{max_iterations}")

            sub_queries = await self.generate_sub_queries(topic, iterations, timeout=remaining())
            logger.info(
                f"  Generated {len(sub_queries)} sub-queries: {[sq.query for sq in sub_queries]}"
            )

            responses = await asyncio.wait_for(
                gather_fail_fast(
                    *(
                        self.retriever.retrieve(
                            knowledge_base_id,
                            sub_query.query,
                            thoroughness=tier,
                            limit=self.sub_query_limit,
                            min_score=self.sub_query_min_score,
                            timeout=remaining(),
                        )
                        for sub_query in sub_queries
                    )
                ),
                timeout=remaining(),
            )
            searches_performed += len(sub_queries)
            iterations += 1

            for response in responses:
                for result in response.results:
                    key = result.content.strip()
                    if key not in seen_content:
                        seen_content.add(key)
                        findings.append(result)

            logger.info(f"  After iteration {iterations}: {len(findings)} unique findings")

            if len(findings) >= min_results:
                logger.info(f"  Sufficient results found ({len(findings)} >= {min_results})")
                break
        else:
            logger.info(
                f"  Max iterations reached with {len(findings)} results (target: {min_results})"
            )

        findings.sort(key=lambda r: r.score, reverse=True)
        result = ResearchResult(
            topic=topic,
            searches_performed=searches_performed,
            iterations=iterations,
            findings=findings[: self.max_findings],
        )

        logger.info(
            f"✓ Agentic Research COMPLETE - {searches_performed} searches, "
            f"{iterations} iterations, {len(result.findings)} findings"
        )
        return result

    async def generate_sub_queries(
        self,
        topic: str,
        iteration: int,
        timeout: float | None = None,
    ) -> list[SubQuery]:
        """Plan sub-queries for one iteration.

        Any planner failure (missing client, transport error, timeout,
        empty or malformed reply) falls back to the topic itself.

        Returns:
            1 to 4 sub-queries
        """
        fallback = [SubQuery(query=topic, reasoning="Original topic query")]

        if self.llm_client is None:
            logger.warning("⚠ No LLM client configured for planning, searching the topic directly")
            return fallback

        deadline = self.planner_timeout
        if timeout is not None:
            deadline = timeout if deadline is None else min(deadline, timeout)

        try:
            reply = await asyncio.wait_for(
                self.llm_client.generate(
                    prompt=self.build_planner_prompt(topic, iteration),
                    system_message=PLANNER_SYSTEM_MESSAGE,
                    temperature=0.7,
                    max_tokens=800,
                    model=self.planner_model,
                    retry=False,
                ),
                timeout=deadline,
            )
            sub_queries = self.parse_sub_queries(reply)
        except Exception as e:
            logger.error(
                f"✗ Sub-query planning FAILED ({type(e).__name__}: {e}), "
                "using the original topic"
            )
            return fallback

        return sub_queries[:MAX_SUB_QUERIES]

    @staticmethod
    def build_planner_prompt(topic: str, iteration: int) -> str:
        refinement = (
            f"This is refinement iteration {iteration}. Generate different sub-queries "
            "to find missing information.\n\n"
            if iteration > 0
            else ""
        )
        return f"""You are a research assistant helping to break down a complex topic into focused search queries.

Topic: {topic}

{refinement}Generate 2-4 focused search queries that will help find comprehensive information about this topic.
Each query should target a specific aspect or related concept.

Respond in JSON format:
[
  {{
    "query": "specific search query",
    "reasoning": "why this query is relevant"
  }}
]"""

    @staticmethod
    def parse_sub_queries(reply: str) -> list[SubQuery]:
        """Parse a planner reply into sub-queries.

        The first JSON array in the reply is used; prose or code fences around
        it, including later bracketed text, are ignored.

        Raises:
            PlanningError: If the reply holds no non-empty JSON array of sub-queries
        """
        reply = reply or ""
        decoder = json.JSONDecoder()
        position = reply.find("[")
        while position != -1:
            try:
                candidate, _ = decoder.raw_decode(reply, position)
            except json.JSONDecodeError:
                candidate = None
            if isinstance(candidate, list):
                break
            position = reply.find("[", position + 1)
        else:
            raise PlanningError("No JSON array in planner reply")

        try:
            sub_queries = _sub_query_list.validate_python(candidate)
        except ValidationError as e:
            raise PlanningError(f"Invalid sub-queries format: {e}") from e

        if not sub_queries:
            raise PlanningError("Planner returned no sub-queries")
        return sub_queries
