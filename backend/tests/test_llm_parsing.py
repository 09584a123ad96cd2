"""Tests for parsing free-form model replies."""

import pytest

from app.llm.parsing import (
    DEFAULT_SUGGESTED_EFFORT_HOURS,
    parse_coaching_sections,
    parse_llm_json_response,
    parse_milestone_suggestions,
)


class TestDirectParsing:
    """Whole reply is JSON."""

    def test_parse_dict(self):
        assert parse_llm_json_response('{"tasks": []}') == {"tasks": []}

    def test_parse_list(self):
        result = parse_llm_json_response('[{"title": "Read chapter 1"}]')
        assert result == [{"title": "Read chapter 1"}]

    def test_parse_with_whitespace(self):
        assert parse_llm_json_response('  \n  {"a": 1}  \n ') == {"a": 1}

    def test_trailing_commas(self):
        """Trailing commas are tolerated at every depth."""
        result = parse_llm_json_response('{"items": [1, 2,], "count": 2,}')
        assert result == {"items": [1, 2], "count": 2}


class TestCodeBlockExtraction:
    def test_json_code_block(self):
        content = 'Here you go:\n```json\n{"key": "value"}\n```\nEnjoy.'
        assert parse_llm_json_response(content) == {"key": "value"}

    def test_plain_code_block(self):
        content = '```\n["a", "b"]\n```'
        assert parse_llm_json_response(content) == ["a", "b"]

    def test_code_block_case_insensitive(self):
        content = '```JSON\n{"ok": true,}\n```'
        assert parse_llm_json_response(content) == {"ok": True}


class TestEmbeddedJson:
    def test_object_inside_prose(self):
        content = 'Sure! {"tasks": [{"title": "Stretch"}]} Let me know.'
        assert parse_llm_json_response(content) == {"tasks": [{"title": "Stretch"}]}

    def test_skips_unbalanced_prefix(self):
        content = 'Notes [draft {"title": "Plan week"}'
        assert parse_llm_json_response(content) == {"title": "Plan week"}

    def test_brackets_inside_strings(self):
        content = 'Result: {"title": "Read [part 1]"}'
        assert parse_llm_json_response(content) == {"title": "Read [part 1]"}


class TestErrorCases:
    @pytest.mark.parametrize("content", [None, "", "   \n  "])
    def test_empty(self, content):
        with pytest.raises(ValueError, match="Empty LLM response"):
            parse_llm_json_response(content)

    def test_plain_text(self):
        with pytest.raises(ValueError, match="no valid JSON found"):
            parse_llm_json_response("I could not think of any tasks today.")

    def test_incomplete_json(self):
        with pytest.raises(ValueError):
            parse_llm_json_response('{"tasks": [')


class TestCoachingSections:
    def test_markdown_reply(self):
        text = """\
**Progress Highlights**
You finished 12 tasks this month.
Your streak is 4 days.

**Key Insights**
- Health tasks are lagging
- Mornings are your most productive time
This line is not a bullet and is ignored.

**Recommendations**
* Schedule workouts before work
• Break the finance milestone into smaller steps

**Motivation**
Keep going, you are closer than you think!
"""
        sections = parse_coaching_sections(text)

        assert sections["highlights"] == "You finished 12 tasks this month. Your streak is 4 days."
        assert sections["insights"] == [
            "Health tasks are lagging",
            "Mornings are your most productive time",
        ]
        assert sections["recommendations"] == [
            "Schedule workouts before work",
            "Break the finance milestone into smaller steps",
        ]
        assert sections["motivation"] == "Keep going, you are closer than you think!"

    def test_numbered_headers(self):
        text = "## 1. Progress highlights\nSolid week.\n## 3. Recommendations\n- Rest on Sunday"
        sections = parse_coaching_sections(text)

        assert sections["highlights"] == "Solid week."
        assert sections["recommendations"] == ["Rest on Sunday"]
        assert sections["insights"] == []
        assert sections["motivation"] == ""

    def test_text_without_headers_is_empty(self):
        sections = parse_coaching_sections("Just keep doing what you are doing.")
        assert not any(sections.values())


class TestMilestoneSuggestions:
    def test_blocks(self):
        text = """\
MILESTONE: Finish the beginner course
DESCRIPTION: Work through all twelve lessons.
Practice every evening.
EFFORT: 30
---
MILESTONE: Hold a ten minute conversation
DESCRIPTION: Find a language partner.
---
"""
        suggestions = parse_milestone_suggestions(text)

        assert [s.title for s in suggestions] == [
            "Finish the beginner course",
            "Hold a ten minute conversation",
        ]
        assert suggestions[0].description == "Work through all twelve lessons. Practice every evening."
        assert suggestions[0].estimated_effort_hours == 30
        assert suggestions[1].estimated_effort_hours == DEFAULT_SUGGESTED_EFFORT_HOURS

    def test_blocks_without_title_are_skipped(self):
        text = "DESCRIPTION: orphan\nEFFORT: 5\n---\nmilestone: Ship it\nEFFORT: 8"
        suggestions = parse_milestone_suggestions(text)

        assert len(suggestions) == 1
        assert suggestions[0].title == "Ship it"
        assert suggestions[0].description == ""
        assert suggestions[0].estimated_effort_hours == 8

    def test_no_blocks(self):
        assert parse_milestone_suggestions("Sorry, I can't help with that.") == []
