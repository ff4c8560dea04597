"""Tests for excluded-tool prompt guidance."""

from __future__ import annotations

from promptbandit.learning.guidance import build_excluded_tools_guidance


class TestExcludedToolsGuidance:
    def test_none_when_nothing_excluded(self):
        assert build_excluded_tools_guidance([]) is None
        assert build_excluded_tools_guidance(None) is None

    def test_none_when_only_non_tools_excluded(self):
        assert build_excluded_tools_guidance(
            ["skill:coding:main", "file:workspace:notes.md"]
        ) is None

    def test_lists_tool_names(self):
        text = build_excluded_tools_guidance(
            ["tool:web:WebFetch", "file:workspace:a.md", "tool:messaging:send_email"]
        )
        assert text.startswith(
            "Note: The following tools are currently unavailable: WebFetch, send_email."
        )
        assert "temporarily unavailable" in text
        assert "a.md" not in text

    def test_malformed_ids_ignored(self):
        assert build_excluded_tools_guidance(["bogus", "tool::"]) is None
