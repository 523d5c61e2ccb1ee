"""
Shared parsing utilities for structured LLM output.

Models asked for JSON still wrap it in code fences or add a sentence
around it now and then; these helpers recover the JSON object.
"""

import json
from typing import TypeVar

from pydantic import BaseModel, ValidationError


T = TypeVar("T", bound=BaseModel)


class AgentResponseError(ValueError):
    """The generation backend returned output that does not fit the schema."""


def extract_json_block(content: str) -> str:
    """
    Extract a JSON object from LLM response text.

    Handles ```json fenced blocks, bare fences, and prose around a
    single top-level object.

    Args:
        content: Raw response text

    Returns:
        The JSON text (not yet parsed)
    """
    content = content.strip()

    if "```json" in content:
        content = content.split("```json")[1].split("```")[0].strip()
    elif "```" in content:
        content = content.split("```")[1].split("```")[0].strip()

    if not content.startswith("{"):
        json_start = content.find("{")
        json_end = content.rfind("}") + 1
        if json_start >= 0 and json_end > json_start:
            content = content[json_start:json_end]

    return content


def parse_structured(content: str, model: type[T]) -> T:
    """
    Parse LLM output into a pydantic model.

    Args:
        content: Raw response text
        model: Target pydantic model class

    Returns:
        Validated model instance

    Raises:
        AgentResponseError: If the text is not valid JSON for the model
    """
    text = extract_json_block(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AgentResponseError(
            f"Malformed {model.__name__} response: {e.msg}"
        ) from e

    if not isinstance(data, dict):
        raise AgentResponseError(f"Malformed {model.__name__} response: expected an object")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise AgentResponseError(
            f"Unusable {model.__name__} response: {e.error_count()} validation error(s)"
        ) from e
