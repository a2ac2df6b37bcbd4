"""Deterministic helpers: document text extraction and prompt assembly."""

from .document_extractor import extract_text, validate_upload
from .prompt_builder import (
    build_chat_prompt,
    build_document_import_prompt,
    build_paper_review_prompt,
    build_section_feedback_prompt,
    criteria_outline,
    truncate,
)

__all__ = [
    "build_chat_prompt",
    "build_document_import_prompt",
    "build_paper_review_prompt",
    "build_section_feedback_prompt",
    "criteria_outline",
    "extract_text",
    "truncate",
    "validate_upload",
]
