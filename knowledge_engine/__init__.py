"""Hybrid retrieval and agentic research over document knowledge bases."""

__version__ = "0.1.0"
