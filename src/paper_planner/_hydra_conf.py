"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelConf:
    default: str = "gpt-4o"
    feedback: Optional[str] = None
    chat: Optional[str] = None
    reviewer: Optional[str] = None
    importer: Optional[str] = None


@dataclass
class PlannerConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "status"
    yes: bool = False
    verbose: bool = False
    quiet: bool = False
    section: Optional[str] = None
    message: Optional[str] = None
    value: Optional[str] = None
    file: Optional[str] = None
    review_id: Optional[str] = None
    approach: Optional[str] = None

    # --- ProjectConfig fields (1:1 mapping) ---
    project_name: str = "paper-planner"
    storage_path: str = ".paper_planner/storage.json"
    catalog_path: Optional[str] = None
    export_dir: str = "exports/"
    default_approach: str = "hypothesis"

    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    timeout: int = 120
    seed: int = 42
    generation_timeout: float = 60.0
    extraction_timeout: float = 30.0

    feedback_temperature: float = 0.7
    feedback_max_tokens: int = 2048
    review_temperature: float = 0.7
    review_max_tokens: int = 4000
    import_temperature: float = 0.2
    import_max_tokens: int = 4000

    section_context_budget: int = 12000
    review_document_cap: int = 50000
    history_limit: int = 10


# Keys present in PlannerConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "yes", "verbose", "quiet", "section", "message",
    "value", "file", "review_id", "approach",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="planner_schema", node=PlannerConf)
