"""
Scout Engine - Generation Backend Schemas

LLM responses and the structured outputs the agent loop requests.
"""

from typing import Optional

from pydantic import BaseModel, Field

from scout_engine.models.enums import AgentAction


class LLMResponse(BaseModel):
    """Response from an LLM call."""

    content: str = Field(..., description="Generated text content")
    model: str = Field(..., description="Model that generated the response")
    input_tokens: int = Field(default=0, description="Number of input tokens")
    output_tokens: int = Field(default=0, description="Number of output tokens")
    finish_reason: Optional[str] = Field(default="stop", description="Why generation stopped")


class AgentDecision(BaseModel):
    """Structured output of a think step."""

    action: AgentAction
    queries: list[str] = Field(default_factory=list)
    url: Optional[str] = None
    reasoning: str = ""


class SummaryUpdate(BaseModel):
    """Structured output of a summarize step."""

    summary: str
    done: bool = False
