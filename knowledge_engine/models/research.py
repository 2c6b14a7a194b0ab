"""Models for multi-step agentic research."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from knowledge_engine.models.search import RetrievalResult


class SubQuery(BaseModel):
    """A focused search query produced by the research planner."""

    query: str = Field(min_length=1)
    reasoning: str = ""


@dataclass
class ResearchResult:
    """Findings accumulated across research iterations.

    ``findings`` is ordered by score, highest first.
    """

    topic: str
    searches_performed: int
    iterations: int
    findings: list[RetrievalResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "searches_performed": self.searches_performed,
            "iterations": self.iterations,
            "findings": [f.to_dict() for f in self.findings],
        }
