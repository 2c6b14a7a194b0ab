"""Document-related Pydantic models."""

from pydantic import BaseModel, ConfigDict, Field


class Section(BaseModel):
    """A markdown section opened by an ATX heading."""

    model_config = ConfigDict(frozen=True)

    heading: str
    level: int = Field(ge=1, le=6, description="Heading level (1-6)")
    start_pos: int = Field(ge=0, description="Character offset of the heading")
    end_pos: int = Field(ge=0, description="Exclusive end offset of the section")
    path: list[str] = Field(
        default_factory=list, description="Ancestor headings, root first"
    )


class MarkdownStructure(BaseModel):
    """Title and heading hierarchy of a document."""

    title: str
    sections: list[Section] = Field(default_factory=list)


class SourceDocument(BaseModel):
    """Raw document handed to the chunker / ingestion pipeline."""

    path: str = Field(min_length=1, description="Source path, used as sourceFile metadata")
    content: str


class IngestResult(BaseModel):
    """Result of an ingestion operation."""

    documents_processed: int = Field(ge=0)
    chunks_created: int = Field(ge=0)
