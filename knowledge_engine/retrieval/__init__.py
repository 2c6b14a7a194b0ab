"""Retrieval components: keyword index, fusion, hybrid search, reranking and research."""

from knowledge_engine.retrieval.agentic import AgenticResearcher
from knowledge_engine.retrieval.bm25_index import BM25Index, KeywordStore
from knowledge_engine.retrieval.hybrid_search import HybridSearchEngine
from knowledge_engine.retrieval.orchestrator import Retriever
from knowledge_engine.retrieval.reranker import LLMReranker
from knowledge_engine.retrieval.rrf import fuse_ranked_lists, normalize_scores

__all__ = [
    "AgenticResearcher",
    "BM25Index",
    "HybridSearchEngine",
    "KeywordStore",
    "LLMReranker",
    "Retriever",
    "fuse_ranked_lists",
    "normalize_scores",
]
