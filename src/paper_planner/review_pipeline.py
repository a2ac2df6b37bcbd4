"""Full-paper review: extract, prompt, generate, record.

Every ``PlannerError`` raised along the way becomes a failed
``ReviewOutcome``; nothing is recorded and the active review is left alone.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .exceptions import GenerationFailure, PlannerError
from .generation import TextGenerator
from .logging_config import NullCallbacks, ReviewCallbacks
from .models import (
    CriteriaCatalog,
    GenerationOptions,
    ProjectConfig,
    ReviewOutcome,
    ReviewResult,
    UploadedFile,
)
from .review_history import ReviewHistoryStore
from .tools.document_extractor import extract_text
from .tools.prompt_builder import build_paper_review_prompt

logger = logging.getLogger(__name__)


class ReviewPipeline:
    """Runs at most one review at a time."""

    def __init__(
        self,
        config: ProjectConfig,
        catalog: CriteriaCatalog,
        generator: TextGenerator,
        history: ReviewHistoryStore,
        *,
        callbacks: ReviewCallbacks | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.generator = generator
        self.history = history
        self.callbacks = callbacks or NullCallbacks()
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def review_paper(self, upload: UploadedFile) -> ReviewOutcome:
        if self._in_flight:
            return ReviewOutcome(
                success=False,
                paper_name=upload.name,
                error="A review is already in progress",
            )

        self._in_flight = True
        stage = "extract"
        try:
            self.callbacks.on_stage_start(stage, f"Reading {upload.name}")
            text = await extract_text(upload, timeout=self.config.extraction_timeout)
            self.callbacks.on_stage_end(stage, True)

            stage = "review"
            self.callbacks.on_stage_start(stage, f"Reviewing {len(text):,} characters")
            if len(text) > self.config.review_document_cap:
                self.callbacks.on_warning(
                    f"Paper truncated to the first {self.config.review_document_cap:,} characters"
                )
            prompt = build_paper_review_prompt(
                self.catalog, text, paper_name=upload.name, cap=self.config.review_document_cap,
            )
            review_text = await self.generator.generate(
                prompt.user_prompt,
                prompt.system_prompt,
                GenerationOptions(
                    role="paper_review",
                    temperature=self.config.review_temperature,
                    max_output_tokens=self.config.review_max_tokens,
                ),
            )
            if not review_text.strip():
                raise GenerationFailure("The model returned an empty review")
            self.callbacks.on_stage_end(stage, True)

            stage = "record"
            result = ReviewResult(
                paper_name=upload.name,
                timestamp=datetime.now(timezone.utc).isoformat(),
                review_text=review_text.strip(),
            )
            record = self.history.accept(result)
            logger.info("Review of %s recorded as %s", upload.name, record.id)
            return ReviewOutcome(success=True, paper_name=upload.name, record=record)
        except PlannerError as e:
            self.callbacks.on_stage_end(stage, False)
            self.callbacks.on_error(str(e))
            return ReviewOutcome(success=False, paper_name=upload.name, error=str(e))
        finally:
            self._in_flight = False
