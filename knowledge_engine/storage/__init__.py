"""Vector database storage."""

from knowledge_engine.storage.vector_store import VectorStore

__all__ = [
    "VectorStore",
]
