"""Planner settings and per-role model selection.

Settings come from a YAML file (``${ENV_VAR}`` references are expanded) or
from Hydra; either way the result is a ``ProjectConfig``. Each generation
role maps onto one ``ModelConfig`` field and from there onto an AG2
``llm_config`` dict.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import AzureConfig, ModelEndpointOverride, ProjectConfig

load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PAPER_PLANNER_CONFIG"

# Generation role -> ModelConfig field. Roles not listed use ``models.default``.
ROLE_MODEL_FIELDS: dict[str, str] = {
    "section_feedback": "feedback",
    "feedback": "feedback",
    "chat": "chat",
    "paper_review": "reviewer",
    "reviewer": "reviewer",
    "document_import": "importer",
    "importer": "importer",
}

_AZURE_ENV = {
    "api_key": "AZURE_OPENAI_API_KEY",
    "api_version": "AZURE_OPENAI_API_VERSION",
    "endpoint": "AZURE_OPENAI_ENDPOINT",
}

_ENV_RE = re.compile(r"\$\{([^}]+)\}")
_AZURE_OPENAI_HOSTS = ("openai.azure.com", "cognitiveservices.azure.com")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _resolve_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` in every string of a YAML tree; unset vars become ``""``."""
    if isinstance(value, str):
        return _ENV_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def apply_azure_fallbacks(config: ProjectConfig) -> ProjectConfig:
    """Fill blank Azure settings from ``AZURE_OPENAI_*`` and drop a trailing slash."""
    for field_name, env_name in _AZURE_ENV.items():
        if not getattr(config.azure, field_name):
            setattr(config.azure, field_name, os.getenv(env_name, ""))
    config.azure.endpoint = config.azure.endpoint.rstrip("/")
    return config


def load_config(config_path: str | Path | None = None) -> ProjectConfig:
    """Load planner settings.

    Without *config_path* the file named by ``$PAPER_PLANNER_CONFIG`` is used,
    and with neither the built-in defaults apply.

    Raises:
        FileNotFoundError: an explicit or env-provided path does not exist.
    """
    source = config_path or os.getenv(CONFIG_ENV_VAR)
    if not source:
        return apply_azure_fallbacks(ProjectConfig())

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    config = ProjectConfig.model_validate(_resolve_env_vars(raw))
    logger.debug("Loaded settings from %s", path)
    return apply_azure_fallbacks(config)


# ---------------------------------------------------------------------------
# Model routing
# ---------------------------------------------------------------------------


def resolve_role_model(role: str, config: ProjectConfig) -> str:
    """Model name serving *role*: its dedicated field if set, else the default."""
    field_name = ROLE_MODEL_FIELDS.get(role.lower())
    chosen = getattr(config.models, field_name) if field_name else None
    return chosen or config.models.default


def _config_entry(
    model: str,
    azure: AzureConfig,
    override: ModelEndpointOverride | None = None,
) -> dict[str, Any]:
    """One AG2 ``config_list`` entry.

    An override's ``api_type`` wins and routes through ``base_url``. Otherwise
    Azure OpenAI hosts get deployment routing and anything else is treated as
    an OpenAI-compatible ``base_url``.
    """
    endpoint = azure.endpoint
    api_key = azure.api_key
    api_version = azure.api_version
    api_type = None
    if override is not None:
        endpoint = override.endpoint.rstrip("/")
        api_key = override.api_key or api_key
        api_version = override.api_version or api_version
        api_type = override.api_type

    entry: dict[str, Any] = {"model": model, "api_key": api_key}
    if api_type:
        entry.update(api_type=api_type, base_url=endpoint)
    elif endpoint and any(host in endpoint.lower() for host in _AZURE_OPENAI_HOSTS):
        entry.update(
            api_type="azure",
            azure_endpoint=endpoint,
            api_version=api_version,
            azure_deployment=model,
        )
    elif endpoint:
        entry["base_url"] = endpoint
    return entry


def build_role_llm_config(role: str, config: ProjectConfig) -> dict[str, Any]:
    """AG2 ``llm_config`` for a generation *role* (see ``ROLE_MODEL_FIELDS``)."""
    model = resolve_role_model(role, config)
    entry = _config_entry(model, config.azure, config.models.overrides.get(model))
    # Timed-out worker threads keep running until the transport gives up.
    return {
        "config_list": [entry],
        "timeout": min(config.timeout, config.generation_timeout),
        "seed": config.seed,
    }
