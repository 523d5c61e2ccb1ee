"""Utility functions and helpers."""

from scout_engine.utils.parsing import AgentResponseError, extract_json_block, parse_structured
from scout_engine.utils.protocols import (
    EmbeddingClientProtocol,
    LLMClientProtocol,
    SearchClientProtocol,
)

__all__ = [
    "AgentResponseError",
    "extract_json_block",
    "parse_structured",
    "EmbeddingClientProtocol",
    "LLMClientProtocol",
    "SearchClientProtocol",
]
