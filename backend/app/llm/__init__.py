"""Text-generation client, prompts and response parsing."""

from app.llm.client import TextGenerationClient
from app.llm.parsing import (
    parse_coaching_sections,
    parse_llm_json_response,
    parse_milestone_suggestions,
)

__all__ = [
    "TextGenerationClient",
    "parse_llm_json_response",
    "parse_coaching_sections",
    "parse_milestone_suggestions",
]
