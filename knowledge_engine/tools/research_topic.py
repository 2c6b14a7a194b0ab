"""researchTopic tool: multi-step agentic research for agents."""

import time
from typing import Any

from knowledge_engine.logging_config import clear_request_id, get_logger, set_request_id
from knowledge_engine.models.research import ResearchResult
from knowledge_engine.models.search import Thoroughness
from knowledge_engine.models.tool import ToolDefinition, ToolResult
from knowledge_engine.retrieval.agentic import AgenticResearcher

logger = get_logger(__name__)

MAX_ITERATIONS_RANGE = (1, 5)
MIN_RESULTS_RANGE = (5, 30)


def _clamp(value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


def format_research_report(result: ResearchResult, latency_ms: int) -> str:
    """Render research findings as a markdown report with source citations."""
    findings = []
    for idx, finding in enumerate(result.findings, 1):
        section_path = " > ".join(finding.section_path) if finding.section_path else "N/A"
        source = finding.metadata.source_file or "unknown"
        relevance = round(finding.score * 100)
        findings.append(
            f"{idx}. {finding.document_title or 'Untitled'} - {section_path}\n"
            f"   Source: {source}\n"
            f"   Relevance: {relevance}%\n"
            f"\n"
            f"   {finding.content}"
        )

    header = (
        f'# Research Results for: "{result.topic}"\n\n'
        f"Performed {result.searches_performed} searches across "
        f"{result.iterations} iteration(s).\n"
        f"Found {len(result.findings)} unique, relevant results in {latency_ms}ms."
    )
    summary = (
        "## Summary\n"
        f"- Topic: {result.topic}\n"
        f"- Searches performed: {result.searches_performed}\n"
        f"- Iterations: {result.iterations}\n"
        f"- Results found: {len(result.findings)}\n"
        f"- Total time: {latency_ms}ms"
    )
    return "\n\n---\n\n".join([header, *findings, summary])


def create_research_topic_tool(
    researcher: AgenticResearcher,
    knowledge_base_id: str,
    knowledge_base_name: str,
    description: str | None = None,
    max_iterations: int = 3,
    min_results: int = 10,
) -> ToolDefinition:
    """Create a researchTopic tool bound to one knowledge base.

    Args:
        researcher: AgenticResearcher that runs the research
        knowledge_base_id: Knowledge base to research
        knowledge_base_name: Human-readable name used in the description
        description: Tool description (defaults to a generic one)
        max_iterations: Default iteration budget
        min_results: Default unique-findings target

    Returns:
        ToolDefinition named ``researchTopic``
    """
    description = description or (
        f"Research complex topics in {knowledge_base_name} using multi-step agentic retrieval."
    )

    async def _research(args: dict[str, Any]) -> ToolResult:
        topic = args.get("topic")
        if not topic:
            return ToolResult(success=False, output={"error": "topic parameter is required"})

        try:
            max_iter = _clamp(int(args.get("maxIterations") or max_iterations), MAX_ITERATIONS_RANGE)
            min_res = _clamp(int(args.get("minResults") or min_results), MIN_RESULTS_RANGE)

            start_time = time.perf_counter()
            result = await researcher.research_topic(
                knowledge_base_id,
                topic,
                max_iterations=max_iter,
                min_results=min_res,
                thoroughness=Thoroughness.THOROUGH,
            )
            latency_ms = round((time.perf_counter() - start_time) * 1000)
        except Exception as e:
            logger.error(f"✗ researchTopic FAILED for '{knowledge_base_id}': {e}")
            return ToolResult(success=False, output={"error": f"Failed to research topic: {e}"})

        return ToolResult(success=True, output=format_research_report(result, latency_ms))

    async def execute(args: dict[str, Any]) -> ToolResult:
        set_request_id()
        try:
            return await _research(args)
        finally:
            clear_request_id()

    return ToolDefinition(
        name="researchTopic",
        description=f"""{description}

This tool breaks down complex topics into focused sub-queries, searches each in parallel, and combines results. Use this for:
- Complex questions requiring multiple perspectives
- Topics that span multiple documentation sections
- Comprehensive research needs

The tool will automatically:
1. Generate 2-4 focused sub-queries from your topic
2. Search each sub-query thoroughly in parallel
3. Deduplicate and rank results by relevance
4. Iterate if more results are needed (up to {max_iterations} iterations)

Returns comprehensive findings with source citations.""",
        parameters={
            "type": "object",
            "properties": {
                "topic": {
                    "type": "string",
                    "description": "The complex topic or question to research comprehensively",
                },
                "maxIterations": {
                    "type": "number",
                    "description": "Maximum refinement iterations (1-5, default: 3)",
                    "minimum": MAX_ITERATIONS_RANGE[0],
                    "maximum": MAX_ITERATIONS_RANGE[1],
                    "default": max_iterations,
                },
                "minResults": {
                    "type": "number",
                    "description": "Minimum unique results to find (default: 10)",
                    "minimum": MIN_RESULTS_RANGE[0],
                    "maximum": MIN_RESULTS_RANGE[1],
                    "default": min_results,
                },
            },
            "required": ["topic"],
        },
        execute=execute,
    )
