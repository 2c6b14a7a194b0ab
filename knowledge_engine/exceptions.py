"""Exception hierarchy for the knowledge engine."""


class KnowledgeEngineError(Exception):
    """Base class for all engine errors."""

    pass


class ConfigurationError(KnowledgeEngineError):
    """Raised for caller or deployment mistakes that retrying cannot fix.

    Examples: an unknown thoroughness tier, or reranking requested without
    LLM credentials.
    """

    pass


class UnknownThoroughnessError(ConfigurationError, ValueError):
    """Raised when a thoroughness tier is not one of fast/balanced/thorough."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Unknown thoroughness level: {value!r} "
            "(expected one of 'fast', 'balanced', 'thorough')"
        )


class KnowledgeBaseNotFoundError(KnowledgeEngineError, LookupError):
    """Raised when searching a knowledge base that has never been ingested."""

    def __init__(self, knowledge_base_id: str):
        self.knowledge_base_id = knowledge_base_id
        super().__init__(f"Knowledge base not found: '{knowledge_base_id}'")


class IngestionError(KnowledgeEngineError):
    """Raised when chunking, embedding or storing a document fails.

    Attributes:
        stage: Pipeline stage that failed (``None`` outside the per-document pipeline)
        source_file: Document being ingested when the failure happened
    """

    def __init__(self, message: str, stage: str | None = None, source_file: str | None = None):
        self.stage = stage
        self.source_file = source_file
        super().__init__(message)
