"""Agent tools exposing knowledge base search and research."""

from knowledge_engine.tools.research_topic import create_research_topic_tool
from knowledge_engine.tools.search_docs import create_search_docs_tool

__all__ = [
    "create_research_topic_tool",
    "create_search_docs_tool",
]
