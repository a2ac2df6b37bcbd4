"""Turn the criteria catalog plus answers or paper text into prompt pairs.

Every builder here is pure: same inputs, same strings out. Content that does
not fit its character budget is cut and marked ``[truncated]``.
"""

from __future__ import annotations

import json
from typing import Sequence

from ..exceptions import UnknownSection
from ..models import CriteriaCatalog, Message, PromptPair, SectionKind, SectionSpec

TRUNCATION_MARKER = "[truncated]"
MIN_REVIEW_DOCUMENT_CAP = 10_000

SECTION_SYSTEM_PROMPT = """\
You are an experienced research mentor helping a student plan a scientific
project one section at a time. Give specific, actionable feedback on the
section the student is working on. Judge the text against the criteria listed
for that section, say what already works, and name the one or two changes that
would improve it most. Do not rewrite the whole section for the student.
"""

REVIEW_SYSTEM_PROMPT = """\
You are a critical but constructive reviewer, similar to an Ivy League professor
with a focus on scientific quality. You evaluate scientific papers on their
clarity, logic, methodology, and overall scientific rigor. Be thorough but fair
in your assessment.
"""

REVIEW_PROTOCOL = """\
Review the paper against the criteria above, following this protocol:

1. Paper Summary: one or two paragraphs on what the paper claims and how the
   argument is built.
2. Paper Type: decide whether this is an empirical research paper, a methods or
   tool paper, a review, or a position piece, and adapt the remaining steps
   to that type.
3. Research Approach: classify the work as hypothesis-based, needs-based, or
   exploratory, and check that the design actually follows that approach.
4. Section-by-Section Review: for each criteria section, list the major issues
   first, then strengths. Skip criteria that do not apply to this paper type.
5. Citations: check that the cited work supports the claims attached to it and
   that the closest related work is discussed, not just listed.
6. Logic (promise vs. delivery): compare what the abstract and introduction
   promise with what the methods and results deliver.
7. Conclusion and Recommendation: whether the paper meets scientific standards
   and the three changes that would improve it most.
"""

IMPORT_SYSTEM_PROMPT = """\
You are analyzing a scientific paper to extract its structure based on specific
grading criteria. Be methodical and accurate, and make the output a
high-quality educational example of how a good scientist plans a project.

Requirements:
1. Fill EVERY section id listed in the output template.
2. Choose EXACTLY ONE research approach key: hypothesis OR needsresearch OR
   exploratoryresearch.
3. All free-text values MUST be plain strings, not nested objects or arrays.
   Checklist values are arrays of option ids.
4. Do not copy placeholder brackets into your answers. Replace them with content.
5. Output ONLY a valid JSON object with "userInputs" as the top-level key.
"""


def truncate(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters and append the truncation marker."""
    if len(text) <= limit:
        return text
    return f"{text[:limit].rstrip()} ... {TRUNCATION_MARKER}"


def _require_section(catalog: CriteriaCatalog, section_id: str) -> SectionSpec:
    spec = catalog.find(section_id)
    if spec is None:
        raise UnknownSection(f"Unknown section: {section_id!r}")
    return spec


def criteria_outline(catalog: CriteriaCatalog) -> str:
    """Serialize the whole catalog as a criteria outline."""
    lines: list[str] = []
    for section in catalog.sections:
        lines.append(f"## {section.title} Criteria [id: {section.id}]")
        if section.intro_text:
            lines.append(section.intro_text.strip())
        for sub in section.subsections:
            lines.append(f"- {sub.title}: {sub.instruction}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def format_answer(spec: SectionSpec, value: str | Sequence[str] | None) -> str:
    """Human-readable rendering of a stored answer."""
    if spec.kind == SectionKind.CHECKLIST:
        selected = set(value or ())
        labels = [o.label for o in spec.options if o.id in selected]
        return "\n".join(f"- {label}" for label in labels) or "(nothing selected)"
    text = value if isinstance(value, str) else ""
    return text.strip() or "(empty)"


def _format_message(m: Message) -> str:
    return f"{m.role.value.capitalize()}: {m.content.strip()}"


def _recent_transcript(messages: Sequence[Message], limit: int) -> str:
    """Newest messages that fit in *limit* characters, oldest first.

    Dropped older messages are replaced by the truncation marker. The newest
    message is always kept, cut from its start if it alone is too long.
    """
    kept: list[str] = []
    used = 0
    for m in reversed(messages):
        entry = _format_message(m)
        if kept and used + len(entry) + 2 > limit:
            break
        kept.append(entry)
        used += len(entry) + 2
    kept.reverse()
    if len(kept) < len(messages):
        kept.insert(0, TRUNCATION_MARKER)
    if len(kept[-1]) > limit:
        kept[-1] = f"{TRUNCATION_MARKER} ... {kept[-1][-limit:].lstrip()}"
    return "\n\n".join(kept)


def _section_context(
    spec: SectionSpec,
    answer: str | Sequence[str] | None,
    transcript: Sequence[Message],
    approach: str | None,
    budget: int,
) -> str:
    """Section header, criteria and answer, then as much recent chat as fits.

    The header part is truncated from its end only when it alone exceeds
    *budget*; the transcript always gives way first, oldest messages first.
    """
    parts = [f"Section: {spec.title_for(approach)} [id: {spec.id}]"]
    parts.append(f"Instructions: {spec.instructions.title}\n{spec.instructions.body.strip()}")
    if spec.subsections:
        parts.append("Criteria:\n" + "\n".join(f"- {s.title}: {s.instruction}" for s in spec.subsections))
    parts.append(f"My current answer:\n{format_answer(spec, answer)}")
    head = truncate("\n\n".join(parts), budget)
    if not transcript:
        return head
    heading = "\n\nOur conversation so far:\n"
    room = max(budget - len(head) - len(heading), budget // 4)
    return f"{head}{heading}{_recent_transcript(transcript, room)}"


def build_section_feedback_prompt(
    catalog: CriteriaCatalog,
    section_id: str,
    answer: str | Sequence[str] | None,
    *,
    transcript: Sequence[Message] = (),
    approach: str | None = None,
    budget: int = 12_000,
) -> PromptPair:
    """Prompt asking for feedback on one section's current answer."""
    spec = _require_section(catalog, section_id)
    context = _section_context(spec, answer, transcript, approach, budget)
    request = spec.llm_instructions.strip() or (
        f"Please review my {spec.title.lower()} section and suggest specific improvements."
    )
    return PromptPair(system_prompt=SECTION_SYSTEM_PROMPT, user_prompt=f"{context}\n\n{request}")


def build_chat_prompt(
    catalog: CriteriaCatalog,
    section_id: str,
    answer: str | Sequence[str] | None,
    message: str,
    *,
    transcript: Sequence[Message] = (),
    approach: str | None = None,
    budget: int = 12_000,
) -> PromptPair:
    """Prompt answering a free-form chat *message* within a section's context.

    *transcript* holds the messages before *message*.
    """
    spec = _require_section(catalog, section_id)
    context = _section_context(spec, answer, transcript, approach, budget)
    question = truncate(message.strip(), budget)
    return PromptPair(
        system_prompt=SECTION_SYSTEM_PROMPT,
        user_prompt=f"{context}\n\nMy question: {question}",
    )


def build_paper_review_prompt(
    catalog: CriteriaCatalog,
    document_text: str,
    *,
    paper_name: str = "",
    cap: int = 50_000,
) -> PromptPair:
    """Prompt for a full critique of an extracted paper."""
    if cap < MIN_REVIEW_DOCUMENT_CAP:
        raise ValueError(f"Review document cap must be at least {MIN_REVIEW_DOCUMENT_CAP} characters")
    title_line = f"Paper file: {paper_name}\n\n" if paper_name else ""
    user_prompt = (
        "I want you to model a critical but constructive reviewer, similar to an Ivy League "
        "professor with a focus on scientific quality. You want the logic of papers to be "
        "clear and tight. Use the following criteria to review this paper:\n\n"
        f"{criteria_outline(catalog)}\n"
        f"{REVIEW_PROTOCOL}\n"
        f"{title_line}The paper for review:\n"
        f"{truncate(document_text, cap)}"
    )
    return PromptPair(system_prompt=REVIEW_SYSTEM_PROMPT, user_prompt=user_prompt)


def _import_template(catalog: CriteriaCatalog) -> str:
    template: dict[str, object] = {}
    for section in catalog.sections:
        if section.kind == SectionKind.CHECKLIST:
            template[section.id] = section.option_ids
        else:
            template[section.id] = section.placeholder
    return json.dumps({"userInputs": template}, indent=2, ensure_ascii=False)


def build_document_import_prompt(
    catalog: CriteriaCatalog,
    document_text: str,
    *,
    cap: int = 10_000,
) -> PromptPair:
    """Prompt asking the model to turn a paper into a filled-in plan as JSON."""
    approach_keys = ", ".join(
        f"{key} ({title})"
        for s in catalog.sections
        for key, title in s.approach_titles.items()
    )
    user_prompt = (
        "Extract the key components of the scientific paper below and fill in the "
        "research plan template. Read generously between the lines.\n\n"
        f"GRADING CRITERIA:\n{criteria_outline(catalog)}\n"
        "OUTPUT TEMPLATE (replace every placeholder; for checklists keep only the option "
        "ids that apply):\n"
        f"{_import_template(catalog)}\n\n"
    )
    if approach_keys:
        user_prompt += (
            "For the research approach, you may use one of these keys instead of the "
            f"template key: {approach_keys}.\n\n"
        )
    user_prompt += (
        "--- DOCUMENT TEXT START ---\n"
        f"{truncate(document_text, cap)}\n"
        "--- DOCUMENT TEXT END ---"
    )
    return PromptPair(system_prompt=IMPORT_SYSTEM_PROMPT, user_prompt=user_prompt)
