"""Engine configuration using Pydantic Settings."""

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables.

    All settings are validated at startup. Invalid values cause the
    engine to fail fast with clear error messages.
    """

    # LLM / Embedding Settings
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="API key for the OpenAI-compatible endpoint (OpenAI or OpenRouter)",
    )
    openai_base_url: str | None = Field(
        default=None,
        description="Base URL for an OpenAI-compatible endpoint, e.g. https://openrouter.ai/api/v1",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Model used for chunk and query embeddings",
    )
    embedding_dimensions: int | None = Field(
        default=1536,
        ge=1,
        description="Requested embedding dimensionality (None for model default)",
    )
    rerank_model: str = Field(
        default="gpt-4o-mini",
        description="Fast chat model used for LLM relevance reranking",
    )
    planner_model: str = Field(
        default="gpt-4o-mini",
        description="Chat model used to plan research sub-queries",
    )
    llm_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout for a single LLM/embedding request in seconds",
    )
    llm_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for embedding requests (reranker and planner never retry)",
    )

    # Chunking Settings
    chunk_size: int = Field(
        default=1000,
        ge=100,
        le=8000,
        description="Target chunk size in characters",
    )
    chunk_overlap: int = Field(
        default=200,
        ge=0,
        le=2000,
        description="Overlap between consecutive chunks in characters (soft target)",
    )
    min_chunk_size: int = Field(
        default=50,
        ge=0,
        description="Chunks shorter than this are discarded",
    )
    markdown_extensions: list[str] = Field(
        default=[".md", ".markdown", ".mdx"],
        description="File extensions treated as markdown for contextual chunking",
    )
    embedding_batch_size: int = Field(
        default=100,
        ge=1,
        le=2048,
        description="Number of chunks embedded per embedding request",
    )

    # Storage Settings
    vector_db_path: str = Field(
        default="./data/vectordb",
        description="Path to ChromaDB persistent storage",
    )
    keyword_index_path: str = Field(
        default="./data/keyword_index",
        description="Directory holding one BM25 index per knowledge base",
    )
    collection_prefix: str = Field(
        default="kb_",
        min_length=1,
        description="Prefix for per-knowledge-base ChromaDB collections",
    )
    bm25_k1: float = Field(
        default=1.5,
        ge=0.0,
        description="BM25 k1 parameter (term frequency saturation)",
    )
    bm25_b: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="BM25 b parameter (length normalization)",
    )

    # Retrieval Settings
    default_thoroughness: str = Field(
        default="balanced",
        description="Default retrieval tier (fast, balanced, thorough)",
    )
    default_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Default number of results returned by retrieve()",
    )
    rrf_k: int = Field(
        default=60,
        ge=1,
        description="Reciprocal Rank Fusion smoothing constant",
    )
    hybrid_candidate_floor: int = Field(
        default=20,
        ge=1,
        description="Minimum candidates fetched from each sub-search before fusion",
    )
    rerank_snippet_length: int = Field(
        default=300,
        ge=50,
        le=4000,
        description="Characters of each candidate shown to the reranking LLM",
    )
    rerank_timeout: float | None = Field(
        default=20.0,
        gt=0.0,
        description="Deadline for one reranking LLM call in seconds",
    )

    # Agentic Research Settings
    planner_timeout: float | None = Field(
        default=20.0,
        gt=0.0,
        description="Deadline for one sub-query planning LLM call in seconds",
    )
    research_max_iterations: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum research iterations",
    )
    research_min_results: int = Field(
        default=10,
        ge=1,
        description="Unique findings needed to stop researching early",
    )
    research_max_findings: int = Field(
        default=20,
        ge=1,
        description="Findings kept in a research result",
    )
    sub_query_limit: int = Field(
        default=5,
        ge=1,
        description="Results requested per research sub-query",
    )
    sub_query_min_score: float = Field(
        default=0.3,
        ge=0.0,
        description="Minimum score for research sub-query results",
    )
    tool_min_score: float = Field(
        default=0.3,
        ge=0.0,
        description="Minimum score used by the searchDocs agent tool",
    )

    # Logging Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_thoroughness")
    @classmethod
    def validate_default_thoroughness(cls, v: str) -> str:
        """Ensure the default tier is one of the known tiers."""
        valid_tiers = {"fast", "balanced", "thorough"}
        v_lower = v.lower()
        if v_lower not in valid_tiers:
            raise ValueError(
                f"default_thoroughness must be one of {valid_tiers}, got '{v}'"
            )
        return v_lower

    @field_validator("markdown_extensions")
    @classmethod
    def validate_markdown_extensions(cls, v: list[str]) -> list[str]:
        """Normalize extensions to lowercase with a leading dot."""
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                f"log_level must be one of {valid_levels}, got '{v}'"
            )
        return v_upper

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: SecretStr | None) -> SecretStr | None:
        """Ensure API key is not empty and has reasonable format if provided."""
        if v is None:
            return v
        value = v.get_secret_value()
        if value.strip() == "":
            raise ValueError("openai_api_key cannot be empty string")
        if value in {"your-openai-api-key-here", "your_openai_api_key_here"}:
            raise ValueError(
                "openai_api_key must be set to a valid API key, "
                "not the placeholder value"
            )
        # OpenAI and OpenRouter keys both start with 'sk-'
        if not value.startswith("sk-"):
            raise ValueError(
                "openai_api_key should start with 'sk-' "
                "(OpenAI / OpenRouter API key format)"
            )
        return v

    def model_post_init(self, __context) -> None:
        """Additional validation after model initialization."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )

        if self.min_chunk_size >= self.chunk_size:
            raise ValueError(
                f"min_chunk_size ({self.min_chunk_size}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )

    @property
    def has_llm_credentials(self) -> bool:
        """Whether an API key for the LLM endpoint is configured."""
        return self.openai_api_key is not None


# Global settings instance, created lazily and failing fast if invalid
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Settings: The engine settings

    Raises:
        ValueError: If settings validation fails
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing).

    Returns:
        Settings: The reloaded engine settings
    """
    global _settings
    _settings = Settings()
    return _settings
