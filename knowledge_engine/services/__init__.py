"""Service layer for ingestion and knowledge base access."""

from knowledge_engine.services.ingestion_service import IngestionService, IngestionStage
from knowledge_engine.services.knowledge_service import KnowledgeService

__all__ = [
    "IngestionService",
    "IngestionStage",
    "KnowledgeService",
]
