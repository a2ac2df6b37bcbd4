"""Load the section catalog from YAML."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

import yaml

from .models import CriteriaCatalog, SectionKind

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "templates" / "sections.yaml"


def load_catalog(path: str | Path | None = None) -> CriteriaCatalog:
    """Load and validate a criteria catalog.

    Args:
        path: alternative catalog YAML; the packaged catalog is used when omitted.

    Raises:
        FileNotFoundError: the file does not exist.
        ValueError: the YAML is not a mapping or fails catalog validation.
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog not found: {catalog_path}")

    with open(catalog_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Catalog {catalog_path} has invalid format")

    # pydantic's ValidationError is a ValueError subclass
    catalog = CriteriaCatalog.model_validate(data)
    logger.debug("Loaded catalog %s with %d sections", catalog_path.name, len(catalog.sections))
    return catalog


@lru_cache(maxsize=1)
def default_catalog() -> CriteriaCatalog:
    """The packaged catalog, loaded once per process."""
    return load_catalog()


def summarize_catalog(catalog: CriteriaCatalog) -> str:
    """Return a human-readable listing of the catalog."""
    parts = [f"=== {catalog.title} (v{catalog.version}) ==="]
    for i, s in enumerate(catalog.sections, 1):
        limits = []
        if s.word_limit:
            limits.append(f"{s.word_limit} words")
        if s.char_limit:
            limits.append(f"{s.char_limit} chars")
        suffix = f" [{', '.join(limits)}]" if limits else ""
        kind = " (checklist)" if s.kind == SectionKind.CHECKLIST else ""
        parts.append(f"  {i}. {s.id}: {s.title}{kind}{suffix}")
        if s.instructions.work_step:
            parts.append(f"     Next step: {s.instructions.work_step}")
    return "\n".join(parts)
