"""Build a filled-in plan from an existing paper.

The model is asked for ``{"userInputs": {...}}``. Its reply goes through a
staged parse (strip fences, direct JSON, light repair) and is then fixed up
against the catalog: stray comments removed, exactly one approach kept,
missing free-text sections filled with their placeholders.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .exceptions import GenerationFailure
from .generation import TextGenerator
from .logging_config import NullCallbacks, ReviewCallbacks
from .models import (
    Approach,
    CriteriaCatalog,
    GenerationOptions,
    ImportPayload,
    ProjectConfig,
    ProjectState,
    SectionKind,
    UploadedFile,
)
from .project_io import normalize_user_inputs
from .tools.document_extractor import extract_text
from .tools.prompt_builder import build_document_import_prompt

logger = logging.getLogger(__name__)

IMPORT_CONFIRMATION = (
    "Creating an example from this document will replace your current work. Continue?"
)

_COMMENT_RE = re.compile(r"^\s*//\s*(?:Choose|Include)\b.*$", re.MULTILINE)


# ---------------------------------------------------------------------------
# Structured output parsing
# ---------------------------------------------------------------------------


def _strip_fences(raw: str) -> str:
    """Remove markdown fences."""
    return re.sub(r"```(?:json)?|```", "", raw).strip()


def _attempt_repair(raw: str) -> str | None:
    """Lightweight repair for common LLM JSON mistakes."""
    txt = raw.strip()
    if not txt:
        return None
    if "{" in txt and "}" in txt:
        txt = txt[txt.find("{"):txt.rfind("}") + 1]
    txt = txt.replace("\u201c", '"').replace("\u201d", '"').replace("\u2018", "'").replace("\u2019", "'")
    txt = re.sub(r",\s*([}\]])", r"\1", txt)
    txt = re.sub(r'\\(?!["\\/bfnrtu])', r"\\\\", txt)
    return txt


def parse_import_response(raw: str) -> dict[str, Any]:
    """3-stage parse fallback for importer output -> ``userInputs`` mapping.

    Raises:
        GenerationFailure: nothing usable could be parsed.
    """
    errors: list[str] = []
    stripped = _strip_fences(raw)

    # Stage 1: direct JSON parse
    if "{" in stripped and "}" in stripped:
        segment = stripped[stripped.find("{"):stripped.rfind("}") + 1]
        try:
            return ImportPayload.model_validate_json(segment).user_inputs
        except ValueError as e:
            errors.append(f"direct: {e}")

    # Stage 2: repair + parse
    repaired = _attempt_repair(stripped)
    if repaired:
        try:
            return ImportPayload.model_validate_json(repaired).user_inputs
        except ValueError as e:
            errors.append(f"repair: {e}")

        # Stage 3: a bare mapping without the userInputs wrapper
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and data and "userInputs" not in data:
            return data

    raise GenerationFailure("Could not parse the imported plan: " + ("; ".join(errors) or "empty reply"))


# ---------------------------------------------------------------------------
# Fix-up
# ---------------------------------------------------------------------------


def _coerce(kind: SectionKind, value: Any) -> Any:
    if kind == SectionKind.CHECKLIST:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        if isinstance(value, list):
            return [str(v) for v in value]
        return None
    if isinstance(value, str):
        return _COMMENT_RE.sub("", value).strip()
    if isinstance(value, list):
        return "\n".join(f"- {v}" for v in value if isinstance(v, str))
    return None


def complete_plan(catalog: CriteriaCatalog, user_inputs: dict[str, Any]) -> ProjectState:
    """Turn raw ``userInputs`` into a loadable ``ProjectState``."""
    approach_sections = {k: s.id for s in catalog.sections for k in s.approach_titles}
    coerced: dict[str, Any] = {}
    for key, value in user_inputs.items():
        spec = catalog.find(approach_sections.get(key, key))
        kind = spec.kind if spec else SectionKind.FREE_TEXT
        fixed = _coerce(kind, value)
        if fixed in (None, "", []):
            continue
        coerced[key] = fixed

    answers, approach = normalize_user_inputs(catalog, coerced)
    approach = approach or Approach.HYPOTHESIS.value

    filled: list[str] = []
    for spec in catalog.sections:
        if spec.kind == SectionKind.CHECKLIST:
            valid = set(spec.option_ids)
            if spec.id in answers:
                answers[spec.id] = {o for o in answers[spec.id] if o in valid}
            continue
        if spec.id not in answers:
            answers[spec.id] = spec.placeholder_for(approach)
            filled.append(spec.id)
    if filled:
        logger.warning("Imported plan was missing %s; placeholders inserted", ", ".join(filled))

    return ProjectState(
        answers={k: sorted(v) if isinstance(v, set) else v for k, v in answers.items()},
        current_section_id=catalog.sections[0].id,
        approach=approach,
    )


class DocumentImporter:
    """Extracts a paper and asks the model to fill in the plan from it."""

    def __init__(
        self,
        config: ProjectConfig,
        catalog: CriteriaCatalog,
        generator: TextGenerator,
        *,
        callbacks: ReviewCallbacks | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.generator = generator
        self.callbacks = callbacks or NullCallbacks()

    async def import_document(self, upload: UploadedFile) -> ProjectState:
        """Return a plan built from *upload*. Raises ``PlannerError`` subclasses."""
        self.callbacks.on_stage_start("import", f"Building a plan from {upload.name}")
        try:
            text = await extract_text(upload, timeout=self.config.extraction_timeout)
            prompt = build_document_import_prompt(self.catalog, text)
            raw = await self.generator.generate(
                prompt.user_prompt,
                prompt.system_prompt,
                GenerationOptions(
                    role="document_import",
                    temperature=self.config.import_temperature,
                    max_output_tokens=self.config.import_max_tokens,
                ),
            )
            state = complete_plan(self.catalog, parse_import_response(raw))
        except Exception:
            self.callbacks.on_stage_end("import", False)
            raise
        self.callbacks.on_stage_end("import", True)
        logger.info("Imported plan from %s (%s approach)", upload.name, state.approach)
        return state
