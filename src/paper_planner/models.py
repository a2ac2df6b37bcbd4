"""Pydantic models for the paper planner and review engine."""

from __future__ import annotations

import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SectionKind(str, Enum):
    FREE_TEXT = "freeText"
    CHECKLIST = "checklist"


class SectionStatus(str, Enum):
    LOCKED = "locked"
    EMPTY = "empty"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Approach(str, Enum):
    HYPOTHESIS = "hypothesis"
    NEEDS = "needsresearch"
    EXPLORATORY = "exploratoryresearch"


# ---------------------------------------------------------------------------
# Criteria Catalog
# ---------------------------------------------------------------------------

class Subsection(BaseModel):
    """One review criterion inside a section."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    instruction: str
    tooltip: str = ""


class SectionInstructions(BaseModel):
    """Instructional text shown next to a section."""
    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    work_step: str | None = Field(default=None, description="Optional concrete next step")


class ChecklistOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str


class SectionSpec(BaseModel):
    """Catalog definition of a single section. Never mutated after load."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique section identifier, e.g. 'question'")
    title: str
    kind: SectionKind = SectionKind.FREE_TEXT
    instructions: SectionInstructions
    intro_text: str = ""
    subsections: tuple[Subsection, ...] = ()
    placeholder: str = ""
    placeholders: dict[str, str] = Field(default_factory=dict, description="Approach-specific placeholders")
    options: tuple[ChecklistOption, ...] = ()
    word_limit: int | None = None
    char_limit: int | None = None
    requires_confirmation_to_advance: bool = False
    llm_instructions: str = ""
    approach_titles: dict[str, str] = Field(default_factory=dict, description="Approach-specific export headings")

    @model_validator(mode="after")
    def _check_kind(self) -> SectionSpec:
        if self.kind == SectionKind.CHECKLIST and not self.options:
            raise ValueError(f"Checklist section {self.id!r} has no options")
        if self.kind == SectionKind.FREE_TEXT and self.options:
            raise ValueError(f"Free-text section {self.id!r} must not define options")
        return self

    def placeholder_for(self, approach: str | None = None) -> str:
        """Return the approach-specific placeholder, falling back to the generic one."""
        if approach and approach in self.placeholders:
            return self.placeholders[approach]
        return self.placeholder

    def title_for(self, approach: str | None = None) -> str:
        if approach and approach in self.approach_titles:
            return self.approach_titles[approach]
        return self.title

    @property
    def all_placeholders(self) -> tuple[str, ...]:
        """The generic placeholder followed by every approach-specific one."""
        return tuple(dict.fromkeys([self.placeholder, *self.placeholders.values()]))

    @property
    def option_ids(self) -> list[str]:
        return [o.id for o in self.options]


class CriteriaCatalog(BaseModel):
    """Ordered, read-only set of sections."""
    model_config = ConfigDict(frozen=True)

    title: str = "Scientific Paper Planner Sections"
    version: str = "1.0"
    sections: tuple[SectionSpec, ...]

    @model_validator(mode="after")
    def _check_ids(self) -> CriteriaCatalog:
        if not self.sections:
            raise ValueError("Catalog must define at least one section")
        seen: set[str] = set()
        for s in self.sections:
            if s.id in seen:
                raise ValueError(f"Duplicate section id: {s.id!r}")
            seen.add(s.id)
        return self

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self.sections]

    def find(self, section_id: str) -> SectionSpec | None:
        for s in self.sections:
            if s.id == section_id:
                return s
        return None

    def index_of(self, section_id: str) -> int:
        for i, s in enumerate(self.sections):
            if s.id == section_id:
                return i
        return -1


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One entry of a section's chat thread."""
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=_utc_now)


class SectionState(BaseModel):
    """Derived per-section state for presentation. Never persisted."""
    section_id: str
    title: str
    status: SectionStatus
    is_locked: bool
    is_complete: bool
    is_busy: bool = False
    word_count: int = 0
    char_count: int = 0


class ProjectState(BaseModel):
    """Persisted planner state under the ``projectState`` key."""
    answers: dict[str, str | list[str]] = Field(default_factory=dict)
    current_section_id: str | None = None
    approach: str = Approach.HYPOTHESIS.value
    chats: dict[str, list[Message]] = Field(default_factory=dict)
    version: str = "1.0"


class PendingConfirmation(BaseModel):
    active: bool = False
    prompt_text: str = ""


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class PromptPair(BaseModel):
    """System/user prompt pair handed to the generation client."""
    system_prompt: str
    user_prompt: str


class GenerationOptions(BaseModel):
    role: str = Field(default="section_feedback", description="LLM role used to pick the model")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2048, gt=0)


# ---------------------------------------------------------------------------
# Review history
# ---------------------------------------------------------------------------

class ReviewResult(BaseModel):
    """Successful output of one full-paper review call."""
    paper_name: str
    timestamp: str = Field(..., description="ISO-8601 time the review was generated")
    review_text: str


class ReviewRecord(BaseModel):
    """Persisted review. Records are replaced, never edited in place."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="timestamp + normalized paper name")
    paper_name: str
    timestamp: str
    review_text: str
    preview: str = ""


class ReviewOutcome(BaseModel):
    """What the review pipeline hands back to its caller."""
    success: bool
    paper_name: str
    record: ReviewRecord | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Azure & Model Configuration
# ---------------------------------------------------------------------------

class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class ModelEndpointOverride(BaseModel):
    """Per-model endpoint settings that take precedence over ``AzureConfig``."""
    endpoint: str
    api_key: str | None = None
    api_version: str | None = None
    api_type: str | None = None


class ModelConfig(BaseModel):
    """LLM model configuration per role."""
    default: str = Field(default="gpt-4o", description="Default model")
    feedback: str | None = Field(default=None)
    chat: str | None = Field(default=None)
    reviewer: str | None = Field(default=None)
    importer: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class ProjectConfig(BaseModel):
    """Top-level settings, loaded from YAML or Hydra."""
    project_name: str = "paper-planner"
    storage_path: str = ".paper_planner/storage.json"
    catalog_path: str | None = Field(default=None, description="Alternative catalog YAML")
    export_dir: str = "exports/"
    default_approach: str = Approach.HYPOTHESIS.value

    azure: AzureConfig = Field(default_factory=AzureConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)

    timeout: int = Field(default=120, description="LLM transport timeout (s)")
    seed: int = 42
    generation_timeout: float = Field(default=60.0, gt=0, description="Per-call budget before GenerationTimeout")
    extraction_timeout: float = Field(default=30.0, gt=0)

    feedback_temperature: float = 0.7
    feedback_max_tokens: int = 2048
    review_temperature: float = 0.7
    review_max_tokens: int = 4000
    import_temperature: float = 0.2
    import_max_tokens: int = 4000

    section_context_budget: int = Field(default=12000, gt=0)
    review_document_cap: int = Field(default=50000, ge=10000)
    history_limit: int = Field(default=10, gt=0)


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

class UploadedFile(BaseModel):
    """A user-supplied document, held in memory."""
    name: str
    content: bytes = b""
    mime_type: str | None = None

    @classmethod
    def from_path(cls, path: str | Path) -> UploadedFile:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Document not found: {p}")
        mime_type, _ = mimetypes.guess_type(p.name)
        return cls(name=p.name, content=p.read_bytes(), mime_type=mime_type)


# ---------------------------------------------------------------------------
# Document import
# ---------------------------------------------------------------------------

class ImportPayload(BaseModel):
    """Model output for document-to-plan import."""
    model_config = ConfigDict(populate_by_name=True)

    user_inputs: dict[str, Any] = Field(..., alias="userInputs")
