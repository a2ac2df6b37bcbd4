"""Error taxonomy for the planner and review engine.

Everything derives from ``PlannerError`` so pipeline boundaries can catch one
type and turn it into a user-visible message.
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for recoverable planner errors."""


# ---------------------------------------------------------------------------
# Document extraction
# ---------------------------------------------------------------------------

class DocumentError(PlannerError):
    """Extraction problem; aborts only the current review or import attempt."""


class UnsupportedFormat(DocumentError):
    pass


class ExtractionFailure(DocumentError):
    pass


class EmptyDocument(DocumentError):
    pass


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerationFailure(PlannerError):
    """Network or provider error from the text-generation service."""


class GenerationTimeout(GenerationFailure):
    pass


# ---------------------------------------------------------------------------
# Confirmation / storage
# ---------------------------------------------------------------------------

class ConfirmationBusy(PlannerError):
    """A confirmation is already waiting for an answer."""


class StorageCorrupt(PlannerError):
    """A persisted key could not be parsed. Callers fall back to a default."""


class StorageUnavailable(PlannerError):
    """The store file could not be written."""


# ---------------------------------------------------------------------------
# Section progression
# ---------------------------------------------------------------------------

class UnknownSection(PlannerError):
    pass


class SectionLocked(PlannerError):
    pass


class SectionBusy(PlannerError):
    pass


class InvalidAnswer(PlannerError):
    pass


class SectionNotReady(PlannerError):
    pass
