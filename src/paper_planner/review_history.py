"""Persisted history of full-paper reviews.

Records live under the ``paperReviews`` key, newest first, capped at
``limit`` entries. The record id (timestamp plus normalised paper name) is
the dedupe key, so recording the same successful result twice is harmless.
"""

from __future__ import annotations

import logging
import re

from pydantic import ValidationError

from .models import ReviewRecord, ReviewResult
from .storage import PAPER_REVIEWS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 150


def normalize_paper_name(paper_name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", paper_name.lower()).strip("-") or "paper"


def review_id(timestamp: str, paper_name: str) -> str:
    return f"{timestamp}-{normalize_paper_name(paper_name)}"


def make_preview(review_text: str) -> str:
    if len(review_text) <= PREVIEW_LENGTH:
        return review_text
    return review_text[:PREVIEW_LENGTH] + "..."


class ReviewHistoryStore:
    """Review records plus the in-memory active review."""

    def __init__(self, store: KeyValueStore, *, limit: int = 10) -> None:
        self.store = store
        self.limit = limit
        self.active_review: ReviewRecord | None = None

    def _load(self) -> list[ReviewRecord]:
        raw = self.store.read(PAPER_REVIEWS_KEY, [])
        if not isinstance(raw, list):
            logger.warning("Review history is not a list; treating it as empty")
            return []
        records: list[ReviewRecord] = []
        for item in raw:
            try:
                records.append(ReviewRecord.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping unreadable review record: %s", e.errors()[0]["msg"])
        return records

    def _save(self, records: list[ReviewRecord]) -> None:
        self.store.write(PAPER_REVIEWS_KEY, [r.model_dump() for r in records])

    def record_review(self, result: ReviewResult) -> ReviewRecord:
        """Prepend *result* unless a record with the same id exists.

        Returns the stored record (the existing one on a duplicate).
        """
        rid = review_id(result.timestamp, result.paper_name)
        records = self._load()
        for existing in records:
            if existing.id == rid:
                logger.debug("Review %s already recorded", rid)
                return existing

        record = ReviewRecord(
            id=rid,
            paper_name=result.paper_name,
            timestamp=result.timestamp,
            review_text=result.review_text,
            preview=make_preview(result.review_text),
        )
        kept = [record, *records][: self.limit]
        evicted = len(records) + 1 - len(kept)
        if evicted:
            logger.debug("Evicted %d old review(s)", evicted)
        self._save(kept)
        return record

    def accept(self, result: ReviewResult) -> ReviewRecord:
        """Make *result* the active review and record it."""
        record = self.record_review(result)
        self.active_review = record
        return record

    def list_reviews(self) -> list[ReviewRecord]:
        return self._load()

    def get_review(self, record_id: str) -> ReviewRecord | None:
        for record in self._load():
            if record.id == record_id:
                return record
        return None

    def select_review(self, record_id: str) -> ReviewRecord | None:
        """Activate a past review; returns ``None`` if it no longer exists."""
        record = self.get_review(record_id)
        if record is not None:
            self.active_review = record
        return record

    def delete_review(self, record_id: str) -> None:
        records = self._load()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) != len(records):
            self._save(remaining)
        if self.active_review is not None and self.active_review.id == record_id:
            self.active_review = None
