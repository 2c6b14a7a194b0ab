"""Knowledge service wiring ingestion, retrieval, research and agent tools."""

from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from knowledge_engine.clients.openai_client import OpenAIClient
from knowledge_engine.config import Settings, get_settings
from knowledge_engine.exceptions import ConfigurationError
from knowledge_engine.logging_config import get_logger
from knowledge_engine.models.document import IngestResult, SourceDocument
from knowledge_engine.models.research import ResearchResult
from knowledge_engine.models.search import RetrievalResponse, Thoroughness
from knowledge_engine.models.tool import ToolDefinition
from knowledge_engine.processing.chunker import ContextualChunker
from knowledge_engine.retrieval.agentic import AgenticResearcher
from knowledge_engine.retrieval.bm25_index import KeywordStore
from knowledge_engine.retrieval.hybrid_search import HybridSearchEngine
from knowledge_engine.retrieval.orchestrator import Retriever
from knowledge_engine.retrieval.reranker import LLMReranker
from knowledge_engine.services.ingestion_service import (
    DEFAULT_INGEST_EXTENSIONS,
    IngestionService,
)
from knowledge_engine.storage.vector_store import VectorStore
from knowledge_engine.tools import create_research_topic_tool, create_search_docs_tool

logger = get_logger(__name__)


class KnowledgeService:
    """Facade over the knowledge engine.

    Builds every component from Settings unless it is injected. One
    OpenAIClient serves embeddings, reranking and planning.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        openai_client: OpenAIClient | None = None,
        llm_client: OpenAIClient | None = None,
        vector_store: VectorStore | None = None,
        keyword_store: KeywordStore | None = None,
        chunker: ContextualChunker | None = None,
    ):
        """Initialize the knowledge service.

        Args:
            settings: Engine settings (global settings if None)
            openai_client: Client used for embeddings (built from settings if None)
            llm_client: Chat client for reranking and planning (defaults to openai_client)
            vector_store: Vector store (built from settings if None)
            keyword_store: Keyword store (built from settings if None)
            chunker: Chunker (built from settings if None)

        Raises:
            ConfigurationError: If no client is injected and no API key is configured
        """
        self.settings = settings or get_settings()

        if openai_client is None:
            if not self.settings.has_llm_credentials:
                raise ConfigurationError(
                    "OPENAI_API_KEY is required for embeddings; set it or inject an OpenAIClient"
                )
            openai_client = OpenAIClient.from_settings(self.settings)
        self.openai_client = openai_client
        self.llm_client = llm_client or openai_client

        self.vector_store = vector_store or VectorStore(
            persist_directory=self.settings.vector_db_path,
            collection_prefix=self.settings.collection_prefix,
        )
        self.keyword_store = keyword_store or KeywordStore(
            index_directory=self.settings.keyword_index_path,
            k1=self.settings.bm25_k1,
            b=self.settings.bm25_b,
        )
        self.chunker = chunker or ContextualChunker(
            chunk_size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
            min_chunk_size=self.settings.min_chunk_size,
            markdown_extensions=self.settings.markdown_extensions,
        )

        self.ingestion = IngestionService(
            chunker=self.chunker,
            embedder=self.openai_client,
            vector_store=self.vector_store,
            keyword_store=self.keyword_store,
            embedding_batch_size=self.settings.embedding_batch_size,
        )
        self.hybrid_engine = HybridSearchEngine(
            vector_store=self.vector_store,
            keyword_store=self.keyword_store,
            embedder=self.openai_client,
            rrf_k=self.settings.rrf_k,
            candidate_floor=self.settings.hybrid_candidate_floor,
        )
        self.reranker = LLMReranker(
            llm_client=self.llm_client,
            model=self.settings.rerank_model,
            snippet_length=self.settings.rerank_snippet_length,
            timeout=self.settings.rerank_timeout,
        )
        self.retriever = Retriever(
            hybrid_engine=self.hybrid_engine,
            reranker=self.reranker,
            rerank_candidate_floor=self.settings.hybrid_candidate_floor,
        )
        self.researcher = AgenticResearcher(
            retriever=self.retriever,
            llm_client=self.llm_client,
            planner_model=self.settings.planner_model,
            planner_timeout=self.settings.planner_timeout,
            sub_query_limit=self.settings.sub_query_limit,
            sub_query_min_score=self.settings.sub_query_min_score,
            max_findings=self.settings.research_max_findings,
        )

        logger.info(
            f"KnowledgeService initialized: embedding_model={self.settings.embedding_model}, "
            f"default_thoroughness={self.settings.default_thoroughness}"
        )

    async def retrieve(
        self,
        knowledge_base_id: str,
        query: str,
        thoroughness: Thoroughness | str | None = None,
        limit: int | None = None,
        min_score: float = 0.0,
        timeout: float | None = None,
    ) -> RetrievalResponse:
        return await self.retriever.retrieve(
            knowledge_base_id,
            query,
            thoroughness=thoroughness or self.settings.default_thoroughness,
            limit=limit or self.settings.default_limit,
            min_score=min_score,
            timeout=timeout,
        )

    async def research_topic(
        self,
        knowledge_base_id: str,
        topic: str,
        max_iterations: int | None = None,
        min_results: int | None = None,
        thoroughness: Thoroughness | str = Thoroughness.THOROUGH,
        timeout: float | None = None,
    ) -> ResearchResult:
        return await self.researcher.research_topic(
            knowledge_base_id,
            topic,
            max_iterations=max_iterations or self.settings.research_max_iterations,
            min_results=min_results or self.settings.research_min_results,
            thoroughness=thoroughness,
            timeout=timeout,
        )

    async def ingest_documents(
        self,
        knowledge_base_id: str,
        version: str | int,
        files: Iterable[SourceDocument | Mapping[str, Any]],
        replace_existing: bool = True,
    ) -> IngestResult:
        return await self.ingestion.ingest_documents(
            knowledge_base_id, version, files, replace_existing=replace_existing
        )

    async def ingest_directory(
        self,
        knowledge_base_id: str,
        version: str | int,
        directory: str | Path,
        extensions: Sequence[str] = DEFAULT_INGEST_EXTENSIONS,
        replace_existing: bool = True,
    ) -> IngestResult:
        return await self.ingestion.ingest_directory(
            knowledge_base_id,
            version,
            directory,
            extensions=extensions,
            replace_existing=replace_existing,
        )

    async def remove_source_file(self, knowledge_base_id: str, source_file: str) -> int:
        return await self.ingestion.remove_source_file(knowledge_base_id, source_file)

    def list_knowledge_bases(self) -> list[str]:
        return self.vector_store.list_knowledge_bases()

    def create_tools(
        self,
        knowledge_base_id: str,
        knowledge_base_name: str,
        description: str,
    ) -> list[ToolDefinition]:
        """Build the searchDocs and researchTopic tools for one knowledge base."""
        return [
            create_search_docs_tool(
                self.retriever,
                knowledge_base_id,
                knowledge_base_name,
                description,
                default_thoroughness=self.settings.default_thoroughness,
                min_score=self.settings.tool_min_score,
            ),
            create_research_topic_tool(
                self.researcher,
                knowledge_base_id,
                knowledge_base_name,
                max_iterations=self.settings.research_max_iterations,
                min_results=self.settings.research_min_results,
            ),
        ]

    async def close(self) -> None:
        """Close HTTP clients."""
        await self.openai_client.close()
        if self.llm_client is not self.openai_client:
            await self.llm_client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
