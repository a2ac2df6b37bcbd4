"""Section progression engine.

Owns the user's answers and per-section chat threads and derives completion
and lock state from the catalog order. Lock state is never stored: a section
is locked while any earlier section is incomplete.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Sequence

from .exceptions import (
    GenerationFailure,
    InvalidAnswer,
    SectionBusy,
    SectionLocked,
    SectionNotReady,
    UnknownSection,
)
from .generation import TextGenerator
from .models import (
    Approach,
    ChatRole,
    CriteriaCatalog,
    GenerationOptions,
    Message,
    ProjectConfig,
    ProjectState,
    SectionKind,
    SectionSpec,
    SectionState,
    SectionStatus,
)
from .tools.prompt_builder import build_chat_prompt, build_section_feedback_prompt

logger = logging.getLogger(__name__)

Answer = str | set[str]

_LIST_MARKER_RE = re.compile(r"^(?:[-*•]|\d+[.)])$")


# ---------------------------------------------------------------------------
# Completion predicate
# ---------------------------------------------------------------------------


def is_user_modified(content: str | None, placeholder: str | None) -> bool:
    """Return True when *content* is a genuine edit of its *placeholder*.

    Blank content and content equal to the placeholder (ignoring surrounding
    whitespace) never count. Beyond that, at least one line must be non-blank,
    differ from the placeholder line at the same position, and be more than a
    bare list marker such as ``-`` or ``2.``.
    """
    if not content or not content.strip():
        return False
    placeholder = placeholder or ""
    if content.strip() == placeholder.strip():
        return False

    placeholder_lines = placeholder.split("\n")
    for i, line in enumerate(content.split("\n")):
        stripped = line.strip()
        if not stripped:
            continue
        reference = placeholder_lines[i].strip() if i < len(placeholder_lines) else ""
        if stripped == reference or _LIST_MARKER_RE.match(stripped):
            continue
        return True
    return False


def word_count(text: str) -> int:
    return len(text.split())


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SectionProgressionEngine:
    """State machine over the catalog's sections.

    Generation calls suspend; every other method is synchronous. The busy set
    is only touched on the event loop, so checking and claiming a section
    before the first ``await`` is race-free.
    """

    def __init__(
        self,
        catalog: CriteriaCatalog,
        generator: TextGenerator,
        *,
        config: ProjectConfig | None = None,
        approach: str = Approach.HYPOTHESIS.value,
    ) -> None:
        self.catalog = catalog
        self.generator = generator
        self.config = config or ProjectConfig()
        self.approach = self._validate_approach(approach)
        self.answers: dict[str, Answer] = {}
        self.chats: dict[str, list[Message]] = {}
        self.current_section_id: str = catalog.sections[0].id
        self._busy: set[str] = set()
        # Bumped on reset/load so late replies from a previous session are dropped.
        self._epoch = 0

    # -- lookups ----------------------------------------------------------

    def _spec(self, section_id: str) -> SectionSpec:
        spec = self.catalog.find(section_id)
        if spec is None:
            raise UnknownSection(f"Unknown section: {section_id!r}")
        return spec

    def _require_unlocked(self, section_id: str) -> SectionSpec:
        spec = self._spec(section_id)
        if self.is_locked(section_id):
            raise SectionLocked(f"Section {section_id!r} is locked until earlier sections are complete")
        return spec

    @staticmethod
    def _validate_approach(approach: str) -> str:
        try:
            return Approach(approach).value
        except ValueError as e:
            valid = ", ".join(a.value for a in Approach)
            raise InvalidAnswer(f"Unknown approach {approach!r}. Choose from: {valid}") from e

    def answer(self, section_id: str) -> Answer | None:
        self._spec(section_id)
        value = self.answers.get(section_id)
        return set(value) if isinstance(value, set) else value

    def transcript(self, section_id: str) -> list[Message]:
        self._spec(section_id)
        return list(self.chats.get(section_id, []))

    def placeholder_for(self, section_id: str) -> str:
        return self._spec(section_id).placeholder_for(self.approach)

    # -- derived state ----------------------------------------------------

    def is_complete(self, section_id: str) -> bool:
        spec = self._spec(section_id)
        value = self.answers.get(section_id)
        if spec.kind == SectionKind.CHECKLIST:
            return bool(value)
        # An untouched template of any approach counts as unedited.
        return isinstance(value, str) and all(is_user_modified(value, p) for p in spec.all_placeholders)

    def is_locked(self, section_id: str) -> bool:
        index = self.catalog.index_of(section_id)
        if index < 0:
            raise UnknownSection(f"Unknown section: {section_id!r}")
        return any(not self.is_complete(s.id) for s in self.catalog.sections[:index])

    def is_busy(self, section_id: str) -> bool:
        return section_id in self._busy

    def _locked_ids(self) -> set[str]:
        locked: set[str] = set()
        blocked = False
        for s in self.catalog.sections:
            if blocked:
                locked.add(s.id)
            elif not self.is_complete(s.id):
                blocked = True
        return locked

    def _status(self, spec: SectionSpec, locked: bool, complete: bool) -> SectionStatus:
        if locked:
            return SectionStatus.LOCKED
        if complete:
            return SectionStatus.COMPLETE
        value = self.answers.get(spec.id)
        if spec.kind == SectionKind.CHECKLIST or not isinstance(value, str):
            return SectionStatus.EMPTY
        if not value.strip() or value.strip() in {p.strip() for p in spec.all_placeholders}:
            return SectionStatus.EMPTY
        return SectionStatus.IN_PROGRESS

    def section_states(self) -> list[SectionState]:
        locked_ids = self._locked_ids()
        states: list[SectionState] = []
        for spec in self.catalog.sections:
            complete = self.is_complete(spec.id)
            locked = spec.id in locked_ids
            value = self.answers.get(spec.id)
            text = value if isinstance(value, str) else ""
            states.append(SectionState(
                section_id=spec.id,
                title=spec.title_for(self.approach),
                status=self._status(spec, locked, complete),
                is_locked=locked,
                is_complete=complete,
                is_busy=self.is_busy(spec.id),
                word_count=word_count(text),
                char_count=len(text),
            ))
        return states

    def limit_violations(self, section_id: str) -> list[str]:
        """Exceeded word/character limits. Informational only."""
        spec = self._spec(section_id)
        value = self.answers.get(section_id)
        if not isinstance(value, str):
            return []
        violations: list[str] = []
        words = word_count(value)
        if spec.word_limit and words > spec.word_limit:
            violations.append(f"{words} words exceeds the {spec.word_limit}-word limit")
        if spec.char_limit and len(value) > spec.char_limit:
            violations.append(f"{len(value)} characters exceeds the {spec.char_limit}-character limit")
        return violations

    # -- mutation ---------------------------------------------------------

    def _log_unlocks(self, before: set[str]) -> None:
        after = self._locked_ids()
        if before != after:
            logger.debug("Lock state changed: unlocked=%s locked=%s",
                          sorted(before - after), sorted(after - before))

    def set_answer(self, section_id: str, value: str | Iterable[str]) -> None:
        """Replace the stored answer for *section_id*."""
        spec = self._require_unlocked(section_id)
        before = self._locked_ids()
        if spec.kind == SectionKind.CHECKLIST:
            if isinstance(value, str) or not isinstance(value, Iterable):
                raise InvalidAnswer(f"Section {section_id!r} expects a collection of option ids")
            options = set(value)
            if not all(isinstance(o, str) for o in options):
                raise InvalidAnswer(f"Section {section_id!r} option ids must be strings")
            self.answers[section_id] = options
        else:
            if not isinstance(value, str):
                raise InvalidAnswer(f"Section {section_id!r} expects text")
            self.answers[section_id] = value
        self._log_unlocks(before)

    def toggle_checklist_option(self, section_id: str, option_id: str) -> None:
        """Add or remove *option_id*. No-op for free-text sections."""
        spec = self._require_unlocked(section_id)
        if spec.kind != SectionKind.CHECKLIST:
            return
        before = self._locked_ids()
        current = self.answers.get(section_id)
        options = set(current) if isinstance(current, set) else set()
        options.symmetric_difference_update({option_id})
        self.answers[section_id] = options
        self._log_unlocks(before)

    def set_approach(self, approach: str) -> None:
        self.approach = self._validate_approach(approach)

    # -- navigation -------------------------------------------------------

    def advance(self) -> str:
        ids = self.catalog.ids
        index = ids.index(self.current_section_id)
        if index < len(ids) - 1:
            self.current_section_id = ids[index + 1]
        return self.current_section_id

    def retreat(self) -> str:
        ids = self.catalog.ids
        index = ids.index(self.current_section_id)
        if index > 0:
            self.current_section_id = ids[index - 1]
        return self.current_section_id

    def go_to(self, section_id: str) -> str:
        """Jump to any section, including locked ones (read-only there)."""
        self._spec(section_id)
        self.current_section_id = section_id
        return self.current_section_id

    # -- generation -------------------------------------------------------

    def _claim(self, section_id: str) -> None:
        if section_id in self._busy:
            raise SectionBusy(f"A reply for section {section_id!r} is still pending")
        self._busy.add(section_id)
        logger.debug("Section %s busy", section_id)

    def _release(self, section_id: str) -> None:
        self._busy.discard(section_id)
        logger.debug("Section %s idle", section_id)

    def _append(self, section_id: str, message: Message, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.debug("Dropping reply for %s from a previous session", section_id)
            return False
        self.chats.setdefault(section_id, []).append(message)
        return True

    def _options(self, role: str) -> GenerationOptions:
        return GenerationOptions(
            role=role,
            temperature=self.config.feedback_temperature,
            max_output_tokens=self.config.feedback_max_tokens,
        )

    async def mark_section_review_ready(self, section_id: str) -> Message | None:
        """Request feedback on a finished section and append it to its thread.

        Returns ``None`` for sections that do not ask for confirmation.

        Raises:
            SectionNotReady: the answer fails the completion predicate.
            SectionBusy: a reply for this section is already pending.
            GenerationFailure: the model call failed, timed out or came back empty.
        """
        spec = self._require_unlocked(section_id)
        if not spec.requires_confirmation_to_advance:
            return None
        if not self.is_complete(section_id):
            raise SectionNotReady(f"Section {section_id!r} has not been filled in yet")

        self._claim(section_id)
        epoch = self._epoch
        try:
            prompt = build_section_feedback_prompt(
                self.catalog,
                section_id,
                self.answers.get(section_id),
                transcript=self.chats.get(section_id, []),
                approach=self.approach,
                budget=self.config.section_context_budget,
            )
            text = await self.generator.generate(
                prompt.user_prompt, prompt.system_prompt, self._options("section_feedback"),
            )
        finally:
            self._release(section_id)

        if not text.strip():
            raise GenerationFailure(f"The model returned empty feedback for {section_id!r}")
        reply = Message(role=ChatRole.ASSISTANT, content=text)
        self._append(section_id, reply, epoch)
        return reply

    async def send_chat_message(self, section_id: str, text: str) -> Message:
        """Append a user message, ask the model, append and return its reply.

        The user message stays in the thread when generation fails.
        """
        self._require_unlocked(section_id)
        if not text or not text.strip():
            raise InvalidAnswer("Chat message is empty")

        self._claim(section_id)
        epoch = self._epoch
        try:
            history: Sequence[Message] = list(self.chats.get(section_id, []))
            self._append(section_id, Message(role=ChatRole.USER, content=text), epoch)
            prompt = build_chat_prompt(
                self.catalog,
                section_id,
                self.answers.get(section_id),
                text,
                transcript=history,
                approach=self.approach,
                budget=self.config.section_context_budget,
            )
            reply_text = await self.generator.generate(
                prompt.user_prompt, prompt.system_prompt, self._options("chat"),
            )
        finally:
            self._release(section_id)

        if not reply_text.strip():
            raise GenerationFailure(f"The model returned an empty reply for {section_id!r}")
        reply = Message(role=ChatRole.ASSISTANT, content=reply_text)
        self._append(section_id, reply, epoch)
        return reply

    # -- lifecycle --------------------------------------------------------

    def reset(self) -> None:
        """Clear answers and chats and return to the first section."""
        self.answers.clear()
        self.chats.clear()
        self.current_section_id = self.catalog.sections[0].id
        self._epoch += 1
        logger.info("Planner reset")

    def to_state(self) -> ProjectState:
        answers: dict[str, str | list[str]] = {
            k: sorted(v) if isinstance(v, set) else v for k, v in self.answers.items()
        }
        return ProjectState(
            answers=answers,
            current_section_id=self.current_section_id,
            approach=self.approach,
            chats={k: list(v) for k, v in self.chats.items()},
        )

    def load_state(self, state: ProjectState) -> None:
        """Replace engine state. Unknown sections and mistyped answers are dropped."""
        answers: dict[str, Answer] = {}
        for section_id, value in state.answers.items():
            spec = self.catalog.find(section_id)
            if spec is None:
                logger.warning("Dropping answer for unknown section %r", section_id)
                continue
            if spec.kind == SectionKind.CHECKLIST and isinstance(value, list):
                answers[section_id] = set(value)
            elif spec.kind == SectionKind.FREE_TEXT and isinstance(value, str):
                answers[section_id] = value
            else:
                logger.warning("Dropping answer for %r: wrong type for a %s section", section_id, spec.kind.value)

        self.answers = answers
        self.chats = {k: list(v) for k, v in state.chats.items() if self.catalog.find(k) is not None}
        if state.current_section_id and self.catalog.find(state.current_section_id):
            self.current_section_id = state.current_section_id
        else:
            self.current_section_id = self.catalog.sections[0].id
        try:
            self.approach = self._validate_approach(state.approach)
        except InvalidAnswer:
            logger.warning("Unknown approach %r in saved state; keeping %s", state.approach, self.approach)
        self._epoch += 1
