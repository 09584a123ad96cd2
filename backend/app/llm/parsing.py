"""Tolerant parsers for free-form model output."""

import json
import re
from typing import Any

from app.core.logging import get_logger
from app.schemas.coaching import MilestoneSuggestion

logger = get_logger(__name__)

DEFAULT_SUGGESTED_EFFORT_HOURS = 20

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CODE_BLOCK = re.compile(r"```(?:json|javascript|js|text)?\s*\n(.*?)\n\s*```", re.DOTALL | re.IGNORECASE)
_BULLET = re.compile(r"^[-*•]\s+")
_LEADING_MARK = re.compile(r"^[-*•]\s*")


# ============================================================================
# JSON
# ============================================================================


def _strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def _loads(text: str) -> Any | None:
    try:
        return json.loads(_strip_trailing_commas(text.strip()))
    except ValueError:
        return None


def _first_embedded_value(text: str) -> Any | None:
    """Decode the first object or array that starts somewhere inside ``text``."""
    decoder = json.JSONDecoder()
    cleaned = _strip_trailing_commas(text)
    for match in re.finditer(r"[\[{]", cleaned):
        try:
            value, _ = decoder.raw_decode(cleaned, match.start())
        except ValueError:
            continue
        return value
    return None


def parse_llm_json_response(content: str | None) -> dict[str, Any] | list[Any]:
    """Parse JSON out of a model reply.

    Tries, in order: the whole reply, the first fenced code block, then the
    first balanced object or array embedded in prose. Trailing commas are
    tolerated by every strategy.

    Raises:
        ValueError: If the content is empty or nothing parses.
    """
    if not content or not content.strip():
        raise ValueError("Empty LLM response")

    result = _loads(content)
    if isinstance(result, (dict, list)):
        return result

    block = _CODE_BLOCK.search(content)
    if block:
        result = _loads(block.group(1))
        if isinstance(result, (dict, list)):
            logger.debug("Parsed JSON from code block")
            return result

    result = _first_embedded_value(content)
    if isinstance(result, (dict, list)):
        logger.debug("Parsed JSON embedded in text")
        return result

    logger.warning("Failed to parse LLM JSON response", content_preview=content[:200])
    raise ValueError("Failed to parse LLM JSON response: no valid JSON found")


# ============================================================================
# Coaching sections
# ============================================================================

_SECTION_HEADERS = (
    ("highlights", re.compile(r"progress.*highlight|^#+.*highlight", re.IGNORECASE)),
    ("insights", re.compile(r"key.*insight|^#+.*insight", re.IGNORECASE)),
    ("recommendations", re.compile(r"recommendation", re.IGNORECASE)),
    ("motivation", re.compile(r"motivation", re.IGNORECASE)),
)


def _section_for(line: str) -> str | None:
    for name, pattern in _SECTION_HEADERS:
        if pattern.search(line):
            return name
    return None


def parse_coaching_sections(text: str) -> dict[str, Any]:
    """Split a coaching reply into highlights, insights, recommendations, motivation.

    Header lines switch the current section. Highlight and motivation lines
    are joined into one string; insight and recommendation bullets become
    list items and non-bullet lines there are ignored.
    """
    sections: dict[str, Any] = {
        "highlights": "",
        "insights": [],
        "recommendations": [],
        "motivation": "",
    }
    current: str | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        header = _section_for(line)
        if header:
            current = header
            continue
        if not line or current is None:
            continue

        if current in ("highlights", "motivation"):
            piece = _LEADING_MARK.sub("", line)
            if piece:
                sections[current] = f"{sections[current]} {piece}".strip()
        elif _BULLET.match(line):
            item = _LEADING_MARK.sub("", line)
            if item:
                sections[current].append(item)

    return sections


# ============================================================================
# Milestone suggestions
# ============================================================================

_MILESTONE_TITLE = re.compile(r"MILESTONE:\s*(.+)", re.IGNORECASE)
_MILESTONE_DESCRIPTION = re.compile(r"DESCRIPTION:\s*(.+?)(?=EFFORT:|$)", re.IGNORECASE | re.DOTALL)
_MILESTONE_EFFORT = re.compile(r"EFFORT:\s*(\d+)", re.IGNORECASE)


def parse_milestone_suggestions(text: str) -> list[MilestoneSuggestion]:
    """Read ``MILESTONE:`` / ``DESCRIPTION:`` / ``EFFORT:`` blocks separated by ``---``."""
    suggestions = []
    for block in text.split("---"):
        if not block.strip():
            continue
        title = _MILESTONE_TITLE.search(block)
        if not title:
            continue
        description = _MILESTONE_DESCRIPTION.search(block)
        effort = _MILESTONE_EFFORT.search(block)
        suggestions.append(
            MilestoneSuggestion(
                title=title.group(1).strip(),
                description=" ".join(description.group(1).split()) if description else "",
                estimated_effort_hours=(
                    int(effort.group(1)) if effort else DEFAULT_SUGGESTED_EFFORT_HOURS
                ),
            )
        )
    return suggestions
