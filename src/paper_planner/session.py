"""Planner session: engine, storage, confirmations and pipelines wired together."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .catalog import default_catalog, load_catalog
from .confirmation import ConfirmationBridge
from .document_import import IMPORT_CONFIRMATION, DocumentImporter
from .exceptions import StorageCorrupt
from .generation import GenerationClient, TextGenerator
from .logging_config import ReviewCallbacks
from .models import CriteriaCatalog, Message, ProjectConfig, ProjectState, ReviewOutcome, UploadedFile
from .progression import SectionProgressionEngine
from .project_io import answers_from_json, write_project_export
from .review_history import ReviewHistoryStore
from .review_pipeline import ReviewPipeline
from .storage import PROJECT_STATE_KEY, KeyValueStore, PreferenceFlags

logger = logging.getLogger(__name__)

RESET_CONFIRMATION = "Are you sure you want to start a new project? All current progress will be lost."
LOAD_CONFIRMATION = "Loading this project will replace your current work. Continue?"


class PlannerSession:
    """Everything one user works with, persisted to a single key-value store."""

    def __init__(
        self,
        config: ProjectConfig,
        *,
        catalog: CriteriaCatalog | None = None,
        generator: TextGenerator | None = None,
        store: KeyValueStore | None = None,
        bridge: ConfirmationBridge | None = None,
        callbacks: ReviewCallbacks | None = None,
    ) -> None:
        self.config = config
        if catalog is None:
            catalog = load_catalog(config.catalog_path) if config.catalog_path else default_catalog()
        self.catalog = catalog
        self.store = store or KeyValueStore(config.storage_path)
        self.generator = generator or GenerationClient(config)
        self.bridge = bridge or ConfirmationBridge()
        self.preferences = PreferenceFlags(self.store)

        approach = self.preferences.research_approach or config.default_approach
        self.engine = SectionProgressionEngine(
            self.catalog, self.generator, config=config, approach=approach,
        )
        self.history = ReviewHistoryStore(self.store, limit=config.history_limit)
        self.review_pipeline = ReviewPipeline(
            config, self.catalog, self.generator, self.history, callbacks=callbacks,
        )
        self.importer = DocumentImporter(config, self.catalog, self.generator, callbacks=callbacks)

    # -- persistence ------------------------------------------------------

    def load(self) -> bool:
        """Restore ``projectState``. Unreadable state leaves a fresh session."""
        try:
            raw = self.store.read_raw(PROJECT_STATE_KEY)
        except StorageCorrupt as e:
            logger.warning("%s; starting a new project", e)
            return False
        if raw is None:
            return False
        try:
            state = ProjectState.model_validate(raw)
        except ValidationError as e:
            logger.warning("Saved project is unreadable (%d errors); starting a new project", e.error_count())
            return False
        self.engine.load_state(state)
        return True

    def save(self) -> None:
        self.store.write(PROJECT_STATE_KEY, self.engine.to_state().model_dump(mode="json"))

    # -- editing ----------------------------------------------------------

    def set_answer(self, section_id: str, value: str | Iterable[str]) -> None:
        self.engine.set_answer(section_id, value)
        self.save()

    def toggle_checklist_option(self, section_id: str, option_id: str) -> None:
        self.engine.toggle_checklist_option(section_id, option_id)
        self.save()

    def set_approach(self, approach: str) -> None:
        self.engine.set_approach(approach)
        self.preferences.research_approach = self.engine.approach
        self.save()

    async def mark_section_review_ready(self, section_id: str) -> Message | None:
        try:
            return await self.engine.mark_section_review_ready(section_id)
        finally:
            self.save()

    async def send_chat_message(self, section_id: str, text: str) -> Message:
        try:
            return await self.engine.send_chat_message(section_id, text)
        finally:
            self.save()

    # -- destructive actions ----------------------------------------------

    async def request_reset(self) -> bool:
        """Ask before wiping answers and chats. Review history survives."""
        if not await self.bridge.request_confirmation(RESET_CONFIRMATION):
            return False
        self.engine.reset()
        self.save()
        return True

    def _replace_answers(self, state: ProjectState) -> None:
        state.chats = self.engine.to_state().chats
        self.engine.load_state(state)
        self.preferences.research_approach = self.engine.approach
        self.save()

    async def import_answers(self, payload: str) -> bool:
        """Load an exported plan after confirmation. Malformed payloads fail before asking."""
        answers, approach = answers_from_json(self.catalog, payload)
        if not await self.bridge.request_confirmation(LOAD_CONFIRMATION):
            return False
        self._replace_answers(ProjectState(
            answers={k: sorted(v) if isinstance(v, set) else v for k, v in answers.items()},
            current_section_id=self.catalog.sections[0].id,
            approach=approach or self.engine.approach,
        ))
        return True

    async def import_from_document(self, upload: UploadedFile) -> bool:
        """Replace current work with a plan generated from *upload*."""
        if not await self.bridge.request_confirmation(IMPORT_CONFIRMATION):
            return False
        state = await self.importer.import_document(upload)
        self._replace_answers(state)
        return True

    # -- review & export --------------------------------------------------

    async def review_paper(self, upload: UploadedFile) -> ReviewOutcome:
        return await self.review_pipeline.review_paper(upload)

    def export_plan(self, directory: str | Path | None = None) -> Path:
        return write_project_export(
            self.catalog,
            self.engine.answers,
            directory or self.config.export_dir,
            approach=self.engine.approach,
        )
