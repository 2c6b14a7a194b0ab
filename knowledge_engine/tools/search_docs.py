"""searchDocs tool: single-shot knowledge base search for agents."""

from typing import Any

from knowledge_engine.logging_config import clear_request_id, get_logger, set_request_id
from knowledge_engine.models.search import RetrievalResult, Thoroughness
from knowledge_engine.models.tool import ToolDefinition, ToolResult
from knowledge_engine.retrieval.orchestrator import Retriever

logger = get_logger(__name__)

THOROUGHNESS_HELP = (
    "Search thoroughness level:\n"
    "- fast: Quick vector search (<200ms)\n"
    "- balanced: Hybrid search with keyword matching (<500ms, recommended)\n"
    "- thorough: Hybrid search + LLM reranking (<2s, highest quality)"
)


def format_search_result(result: RetrievalResult) -> dict[str, Any]:
    """Shape a result for agent consumption: content, source, section, relevance."""
    if result.section_path:
        section = " > ".join(result.section_path)
    else:
        section = result.document_title
    return {
        "content": result.content,
        "source": result.metadata.source_file or "unknown",
        "section": section,
        "relevance": f"{round(result.score * 100)}%",
    }


def create_search_docs_tool(
    retriever: Retriever,
    knowledge_base_id: str,
    knowledge_base_name: str,
    description: str,
    default_thoroughness: Thoroughness | str = Thoroughness.BALANCED,
    min_score: float = 0.3,
) -> ToolDefinition:
    """Create a searchDocs tool bound to one knowledge base.

    Args:
        retriever: Retriever that serves the searches
        knowledge_base_id: Knowledge base to search
        knowledge_base_name: Human-readable name used in the description
        description: What the knowledge base contains
        default_thoroughness: Tier used when the agent does not pick one
        min_score: Score floor for every search

    Returns:
        ToolDefinition named ``searchDocs``

    Raises:
        UnknownThoroughnessError: If default_thoroughness names no known tier
    """
    default_tier = Thoroughness.parse(default_thoroughness)

    async def _search(args: dict[str, Any]) -> ToolResult:
        query = args.get("query")
        thoroughness = args.get("thoroughness") or default_tier
        limit = args.get("limit") or 5

        try:
            if not query:
                raise ValueError("query parameter is required")

            response = await retriever.retrieve(
                knowledge_base_id,
                query,
                thoroughness=thoroughness,
                limit=int(limit),
                min_score=min_score,
            )
        except Exception as e:
            logger.error(f"✗ searchDocs FAILED for '{knowledge_base_id}': {e}")
            return ToolResult(success=False, output={"error": f"Search failed: {e}"})

        if not response.results:
            return ToolResult(
                success=True,
                output={
                    "message": f"No relevant documentation found for: {query}",
                    "results": [],
                    "latencyMs": response.latency_ms,
                },
            )

        message = (
            f"Found {len(response.results)} sections "
            f"({response.thoroughness.value} search, {response.latency_ms}ms)"
        )
        return ToolResult(
            success=True,
            output={
                "message": message,
                "results": [format_search_result(r) for r in response.results],
                "latencyMs": response.latency_ms,
            },
        )

    async def execute(args: dict[str, Any]) -> ToolResult:
        set_request_id()
        try:
            return await _search(args)
        finally:
            clear_request_id()

    return ToolDefinition(
        name="searchDocs",
        description=f"Search the {knowledge_base_name}. {description}",
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query. Be specific about what you want to find.",
                },
                "thoroughness": {
                    "type": "string",
                    "enum": [t.value for t in Thoroughness],
                    "description": THOROUGHNESS_HELP,
                    "default": default_tier.value,
                },
                "limit": {
                    "type": "number",
                    "description": "Maximum number of results to return (default: 5)",
                    "minimum": 1,
                    "maximum": 20,
                    "default": 5,
                },
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        execute=execute,
    )
