"""Export and import artifacts: plan Markdown, answers JSON, review text files."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Mapping

from .exceptions import InvalidAnswer
from .models import Approach, CriteriaCatalog, ReviewRecord, SectionKind
from .progression import Answer, is_user_modified

logger = logging.getLogger(__name__)

NOT_COMPLETED = "Not completed yet"
DEFAULT_PLAN_BASENAME = "scientific-paper-plan"
EXPORT_VERSION = "1.0"

# Older plans stored the data-acquisition method under its own key.
_SECTION_ALIASES = {
    "existingdata": "experiment",
    "theorysimulation": "experiment",
}


def _day(when: date | datetime | None) -> str:
    when = when or datetime.now()
    return when.isoformat()[:10]


# ---------------------------------------------------------------------------
# Plan export
# ---------------------------------------------------------------------------


def render_project_markdown(
    catalog: CriteriaCatalog,
    answers: Mapping[str, Answer | list[str]],
    approach: str | None = None,
) -> str:
    """Render every section under a numbered heading."""
    lines = ["# Scientific Paper Project Plan", ""]
    for i, spec in enumerate(catalog.sections, 1):
        lines.append(f"## {i}. {spec.title_for(approach)}")
        value = answers.get(spec.id)
        if spec.kind == SectionKind.CHECKLIST:
            selected = set(value or ())
            labels = [o.label for o in spec.options if o.id in selected]
            lines.extend(f"- {label}" for label in labels)
            if not labels:
                lines.append(NOT_COMPLETED)
        elif isinstance(value, str) and is_user_modified(value, spec.placeholder_for(approach)):
            lines.append(value.strip())
        else:
            lines.append(NOT_COMPLETED)
        lines.append("")
    return "\n".join(lines)


def project_export_filename(approach: str | None = None, when: date | datetime | None = None) -> str:
    base = f"{approach}-research-plan" if approach else DEFAULT_PLAN_BASENAME
    return f"{base}-{_day(when)}.md"


def write_project_export(
    catalog: CriteriaCatalog,
    answers: Mapping[str, Answer | list[str]],
    directory: str | Path,
    *,
    approach: str | None = None,
    when: date | datetime | None = None,
) -> Path:
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / project_export_filename(approach, when)
    path.write_text(render_project_markdown(catalog, answers, approach), encoding="utf-8")
    logger.info("Plan exported to %s", path)
    return path


# ---------------------------------------------------------------------------
# Answers JSON
# ---------------------------------------------------------------------------


def answers_to_json(answers: Mapping[str, Answer | list[str]], *, approach: str | None = None) -> str:
    """Serialize answers in the import shape. Checklist sets become sorted lists."""
    user_inputs = {
        k: sorted(v) if isinstance(v, (set, frozenset, list)) else v
        for k, v in answers.items()
    }
    payload: dict[str, Any] = {"userInputs": user_inputs, "version": EXPORT_VERSION}
    if approach:
        payload["approach"] = approach
    return json.dumps(payload, indent=2, ensure_ascii=False)


def normalize_user_inputs(
    catalog: CriteriaCatalog,
    raw: Mapping[str, Any],
) -> tuple[dict[str, Answer], str | None]:
    """Validate a ``userInputs`` mapping against *catalog*.

    Approach-specific keys (``needsresearch``...) land in the section that
    defines them and select that approach; the first one wins. Unknown keys
    are dropped with a warning.

    Raises:
        InvalidAnswer: a value does not match its section's kind.
    """
    approach_sections = {
        key: spec.id for spec in catalog.sections for key in spec.approach_titles
    }
    answers: dict[str, Answer] = {}
    approach: str | None = None

    for key, value in raw.items():
        target = key if catalog.find(key) is not None else (
            approach_sections.get(key) or _SECTION_ALIASES.get(key, "")
        )
        spec = catalog.find(target)
        if spec is None:
            logger.warning("Ignoring unknown section %r in imported answers", key)
            continue
        if target in answers:
            logger.warning("Ignoring %r: section %r already filled", key, target)
            continue

        if spec.kind == SectionKind.CHECKLIST:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise InvalidAnswer(f"Section {target!r} expects a list of option ids")
            answers[target] = set(value)
        else:
            if not isinstance(value, str):
                raise InvalidAnswer(f"Section {target!r} expects text, got {type(value).__name__}")
            answers[target] = value
        if key in approach_sections and approach is None:
            approach = key
    return answers, approach


def answers_from_json(catalog: CriteriaCatalog, text: str) -> tuple[dict[str, Answer], str | None]:
    """Parse an exported plan. A bare ``{sectionId: value}`` mapping is accepted too."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidAnswer(f"Import file is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidAnswer("Import file must contain a JSON object")

    raw = data["userInputs"] if "userInputs" in data else data
    if not isinstance(raw, dict):
        raise InvalidAnswer("'userInputs' must be an object")
    answers, approach = normalize_user_inputs(catalog, raw)

    declared = data.get("approach") if "userInputs" in data else None
    if isinstance(declared, str) and declared in {a.value for a in Approach}:
        approach = declared
    return answers, approach


# ---------------------------------------------------------------------------
# Review export
# ---------------------------------------------------------------------------


def review_export_filename(paper_name: str, when: date | datetime | None = None) -> str:
    base = re.sub(r"\.[^/.]+$", "", paper_name)
    base = re.sub(r"[^A-Za-z0-9._-]+", "-", base).strip("-.") or "paper"
    return f"{base}-review-{_day(when)}.txt"


def write_review_export(
    record: ReviewRecord,
    directory: str | Path,
    *,
    when: date | datetime | None = None,
) -> Path:
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / review_export_filename(record.paper_name, when)
    path.write_text(record.review_text, encoding="utf-8")
    logger.info("Review exported to %s", path)
    return path
