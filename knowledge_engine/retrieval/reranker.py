"""LLM-based reranker for improving retrieval relevance."""

import asyncio
import dataclasses
import json
import logging
import re

from knowledge_engine.clients.openai_client import OpenAIClient
from knowledge_engine.exceptions import ConfigurationError
from knowledge_engine.models.search import RetrievalResult

logger = logging.getLogger(__name__)

RERANK_SYSTEM_MESSAGE = (
    "You are a relevance scoring assistant. Score how relevant each document "
    "is to the query on a scale of 0-10."
)

# First bracketed array of integers in the reply
SCORE_ARRAY_PATTERN = re.compile(r"\[[\d,\s]+\]")

NEUTRAL_SCORE = 0.5


class LLMReranker:
    """Reranks candidates by asking a fast chat model for 0-10 relevance scores.

    All candidates are scored in a single prompt. Reranking is an
    enhancement: transport errors and timeouts degrade to the incoming
    order, and unparseable replies score every candidate as neutral.
    """

    def __init__(
        self,
        llm_client: OpenAIClient | None,
        model: str | None = None,
        snippet_length: int = 300,
        timeout: float | None = None,
    ):
        """Initialize reranker.

        Args:
            llm_client: Chat client; None when no credentials are configured
            model: Chat model override for scoring
            snippet_length: Characters of each candidate shown to the model
            timeout: Default deadline for the scoring call in seconds
        """
        self.llm_client = llm_client
        self.model = model
        self.snippet_length = snippet_length
        self.timeout = timeout

    async def rerank(
        self,
        query: str,
        candidates: list[RetrievalResult],
        top_k: int = 5,
        timeout: float | None = None,
    ) -> list[RetrievalResult]:
        """Rerank candidates by LLM relevance.

        Args:
            query: Search query
            candidates: Results to rerank, in their incoming order
            top_k: Number of results to return
            timeout: Deadline override for the scoring call

        Returns:
            Up to top_k results, score = LLM relevance in [0, 1]. When
            there are at most top_k candidates the input list itself is
            returned and no LLM call is made.

        Raises:
            ConfigurationError: If reranking is needed but no LLM client is set
        """
        if not candidates:
            return []
        if len(candidates) <= top_k:
            return candidates

        if self.llm_client is None:
            raise ConfigurationError(
                "An LLM API key is required for reranking. "
                "Set OPENAI_API_KEY or use a thoroughness tier without reranking."
            )

        deadline = timeout if timeout is not None else self.timeout
        logger.info(f"→ LLM Reranking START - {len(candidates)} candidates → top {top_k}")

        try:
            reply = await asyncio.wait_for(
                self.llm_client.generate(
                    prompt=self.build_prompt(query, candidates),
                    system_message=RERANK_SYSTEM_MESSAGE,
                    temperature=0.0,
                    max_tokens=500,
                    model=self.model,
                    retry=False,
                ),
                timeout=deadline,
            )
        except Exception as e:
            logger.error(
                f"✗ LLM Reranking FAILED ({type(e).__name__}: {e}), keeping original order"
            )
            return candidates[:top_k]

        scores = self.parse_scores(reply, len(candidates))
        scored = [
            dataclasses.replace(candidate, score=score)
            for candidate, score in zip(candidates, scores)
        ]
        scored.sort(key=lambda r: r.score, reverse=True)

        logger.info(f"✓ LLM Reranking COMPLETE - top score {scored[0].score:.2f}")
        return scored[:top_k]

    def build_prompt(self, query: str, candidates: list[RetrievalResult]) -> str:
        """Build the scoring prompt from raw chunk content.

        ``content`` is used instead of ``content_with_context`` so that the
        shared title/section prefix does not bias the scores.
        """
        lines = [
            f'Query: "{query}"',
            "",
            "Rate the relevance of each document to the query "
            "(0-10, where 10 is most relevant):",
            "",
        ]
        for i, candidate in enumerate(candidates, 1):
            snippet = candidate.content[: self.snippet_length]
            ellipsis = "..." if len(candidate.content) > self.snippet_length else ""
            lines.append(f"Document {i}:\n{snippet}{ellipsis}\n")

        lines.append("Respond with ONLY a JSON array of scores, like: [8, 5, 9, 3, 7]")
        lines.append("Scores:")
        return "\n".join(lines)

    @staticmethod
    def parse_scores(reply: str, expected_count: int) -> list[float]:
        """Extract 0-10 scores from a reply and map them to [0, 1].

        Returns:
            One score per candidate; all NEUTRAL_SCORE when the reply has no
            integer array or an array of the wrong length
        """
        match = SCORE_ARRAY_PATTERN.search(reply or "")
        if not match:
            logger.warning("⚠ Could not parse scores from reranker reply, using neutral scores")
            return [NEUTRAL_SCORE] * expected_count

        try:
            raw_scores = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.warning(f"⚠ Malformed score array {match.group(0)!r}, using neutral scores")
            return [NEUTRAL_SCORE] * expected_count

        if len(raw_scores) != expected_count:
            logger.warning(
                f"⚠ Expected {expected_count} scores, got {len(raw_scores)}; "
                "using neutral scores"
            )
            return [NEUTRAL_SCORE] * expected_count

        return [max(0.0, min(10.0, float(s))) / 10.0 for s in raw_scores]
