"""Tests for tools/prompt_builder.py."""

from __future__ import annotations

import pytest

from paper_planner.exceptions import UnknownSection
from paper_planner.models import ChatRole, Message
from paper_planner.tools.prompt_builder import (
    REVIEW_SYSTEM_PROMPT,
    TRUNCATION_MARKER,
    build_chat_prompt,
    build_document_import_prompt,
    build_paper_review_prompt,
    build_section_feedback_prompt,
    criteria_outline,
    format_answer,
    truncate,
)


class TestTruncate:
    def test_short_text_untouched(self):
        assert truncate("abc", 10) == "abc"

    def test_long_text_marked(self):
        out = truncate("a" * 50, 10)
        assert out.startswith("a" * 10)
        assert out.endswith(TRUNCATION_MARKER)
        assert "a" * 11 not in out


class TestCriteriaOutline:
    def test_every_section_and_subsection(self, catalog):
        outline = criteria_outline(catalog)
        for section in catalog.sections:
            assert f"## {section.title} Criteria [id: {section.id}]" in outline
            for sub in section.subsections:
                assert f"- {sub.title}: {sub.instruction}" in outline

    def test_deterministic(self, catalog):
        assert criteria_outline(catalog) == criteria_outline(catalog)


class TestSectionFeedbackPrompt:
    def test_contains_instructions_and_answer(self, catalog):
        pair = build_section_feedback_prompt(catalog, "question", "Research Question: X")
        assert "Research Question: X" in pair.user_prompt
        assert "Define your research question" in pair.user_prompt
        assert catalog.find("question").llm_instructions in pair.user_prompt
        assert "research mentor" in pair.system_prompt

    def test_transcript_included(self, catalog):
        transcript = [
            Message(role=ChatRole.USER, content="Is it too broad?"),
            Message(role=ChatRole.ASSISTANT, content="Narrow it to one brain region."),
        ]
        pair = build_section_feedback_prompt(catalog, "question", "RQ", transcript=transcript)
        assert "User: Is it too broad?" in pair.user_prompt
        assert "Assistant: Narrow it to one brain region." in pair.user_prompt

    def test_budget_truncates_with_marker(self, catalog):
        pair = build_section_feedback_prompt(catalog, "question", "word " * 5000, budget=2000)
        assert TRUNCATION_MARKER in pair.user_prompt
        assert len(pair.user_prompt) < 2000 + 1000

    def test_approach_title(self, catalog):
        pair = build_section_feedback_prompt(catalog, "hypothesis", "H1", approach="exploratoryresearch")
        assert "Exploratory Research" in pair.user_prompt

    def test_unknown_section(self, catalog):
        with pytest.raises(UnknownSection):
            build_section_feedback_prompt(catalog, "missing", "x")

    def test_checklist_answer_rendered_as_labels(self, catalog):
        spec = catalog.find("philosophy")
        assert format_answer(spec, {"build_tool"}) == "- Build a tool or method others will use"
        assert format_answer(spec, set()) == "(nothing selected)"


class TestChatPrompt:
    def test_question_last(self, catalog):
        pair = build_chat_prompt(catalog, "audience", "Neuroscientists", "Who else should I name?")
        assert pair.user_prompt.endswith("My question: Who else should I name?")

    def test_long_transcript_keeps_newest_messages(self, catalog):
        transcript = [
            Message(role=ChatRole.USER if i % 2 == 0 else ChatRole.ASSISTANT, content=f"message-{i} " + "x" * 400)
            for i in range(40)
        ]
        pair = build_chat_prompt(
            catalog, "question", "Research Question: X", "And now?", transcript=transcript, budget=12_000,
        )
        prompt = pair.user_prompt
        assert "message-38 " in prompt
        assert "message-39 " in prompt
        assert "message-0 " not in prompt
        assert "Define your research question" in prompt
        assert "Research Question: X" in prompt
        assert prompt.index(TRUNCATION_MARKER) < prompt.index("message-39 ")
        assert prompt.endswith("My question: And now?")
        assert len(prompt) < 12_000 + 500

    def test_oversized_last_message_keeps_its_end(self, catalog):
        transcript = [Message(role=ChatRole.ASSISTANT, content="start " + "y" * 5000 + " final-words")]
        pair = build_chat_prompt(catalog, "question", "RQ", "Thoughts?", transcript=transcript, budget=2000)
        assert "final-words" in pair.user_prompt
        assert "RQ" in pair.user_prompt
        assert TRUNCATION_MARKER in pair.user_prompt


class TestPaperReviewPrompt:
    def test_structure(self, catalog):
        pair = build_paper_review_prompt(catalog, "We show that X causes Y.", paper_name="xy.pdf")
        assert pair.system_prompt == REVIEW_SYSTEM_PROMPT
        assert "Ivy League" in pair.user_prompt
        assert criteria_outline(catalog) in pair.user_prompt
        assert "promise vs. delivery" in pair.user_prompt
        assert "hypothesis-based, needs-based, or" in pair.user_prompt
        assert pair.user_prompt.endswith("We show that X causes Y.")
        assert TRUNCATION_MARKER not in pair.user_prompt

    def test_document_capped(self, catalog):
        document = "z" * 60_000
        pair = build_paper_review_prompt(catalog, document, cap=50_000)
        assert pair.user_prompt.endswith(TRUNCATION_MARKER)
        assert "z" * 50_001 not in pair.user_prompt
        assert "z" * 50_000 in pair.user_prompt

    def test_cap_floor(self, catalog):
        with pytest.raises(ValueError):
            build_paper_review_prompt(catalog, "text", cap=5_000)


class TestDocumentImportPrompt:
    def test_asks_for_user_inputs_json(self, catalog):
        pair = build_document_import_prompt(catalog, "Paper body")
        assert '"userInputs"' in pair.user_prompt
        assert "EXACTLY ONE research approach" in pair.system_prompt
        assert "needsresearch (Needs-Based Research)" in pair.user_prompt
        assert "--- DOCUMENT TEXT START ---\nPaper body\n--- DOCUMENT TEXT END ---" in pair.user_prompt
