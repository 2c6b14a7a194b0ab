"""Agent tool envelope models."""

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    """Structured tool outcome returned to the calling agent.

    Failures are reported with ``success=False`` instead of raising, so a
    tool-calling loop can recover conversationally.
    """

    success: bool
    output: Any = None


class ToolDefinition(BaseModel):
    """A tool an agent can invoke: name, JSON schema parameters and handler."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    execute: Callable[[dict[str, Any]], Awaitable[ToolResult]] = Field(exclude=True)
