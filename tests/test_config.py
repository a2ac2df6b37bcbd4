"""Tests for config.py: YAML loading and LLM config building."""

from __future__ import annotations

import pytest
from omegaconf import OmegaConf

from paper_planner.cli import _to_project_config
from paper_planner.config import (
    CONFIG_ENV_VAR,
    _resolve_env_vars,
    build_role_llm_config,
    load_config,
    resolve_role_model,
)
from paper_planner.models import ProjectConfig

_AZURE = {"api_key": "k", "api_version": "v", "endpoint": "https://test.openai.azure.com"}


class TestResolveEnvVars:
    def test_string_replacement(self, monkeypatch):
        monkeypatch.setenv("TEST_VAR", "hello")
        assert _resolve_env_vars("${TEST_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch):
        monkeypatch.delenv("NONEXISTENT_VAR", raising=False)
        assert _resolve_env_vars("${NONEXISTENT_VAR}") == ""

    def test_nested(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "secret")
        result = _resolve_env_vars({"azure": {"api_key": "${MY_KEY}"}, "paths": ["${MY_KEY}", "x"]})
        assert result == {"azure": {"api_key": "secret"}, "paths": ["secret", "x"]}

    def test_non_string_passthrough(self):
        assert _resolve_env_vars(42) == 42
        assert _resolve_env_vars(None) is None


class TestLoadConfig:
    def test_load_sample_config(self, sample_config_path, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "test-key")
        monkeypatch.setenv("AZURE_OPENAI_API_VERSION", "2024-01-01")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://test.openai.azure.com/")
        config = load_config(sample_config_path)
        assert config.project_name == "Dopamine and Reward Prediction"
        assert config.models.reviewer == "gpt-4.1"
        assert config.generation_timeout == 45
        assert config.azure.api_key == "test-key"
        assert config.azure.endpoint == "https://test.openai.azure.com"

    def test_missing_config_raises(self):
        with pytest.raises(FileNotFoundError):
            load_config("nonexistent.yaml")

    def test_defaults_without_path(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://env.openai.azure.com/")
        config = load_config()
        assert config.project_name == "paper-planner"
        assert config.azure.endpoint == "https://env.openai.azure.com"

    def test_path_from_env(self, sample_config_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(sample_config_path))
        assert load_config().project_name == "Dopamine and Reward Prediction"


class TestResolveRoleModel:
    def test_dedicated_and_default(self):
        config = ProjectConfig(models={"default": "gpt-4o", "chat": "gpt-4o-mini"})
        assert resolve_role_model("chat", config) == "gpt-4o-mini"
        assert resolve_role_model("CHAT", config) == "gpt-4o-mini"
        assert resolve_role_model("section_feedback", config) == "gpt-4o"
        assert resolve_role_model("anything", config) == "gpt-4o"


class TestBuildRoleLlmConfig:
    def test_reviewer_role(self):
        config = ProjectConfig(models={"default": "gpt-4o", "reviewer": "gpt-4.1"}, azure=_AZURE)
        entry = build_role_llm_config("paper_review", config)["config_list"][0]
        assert entry["model"] == "gpt-4.1"
        assert entry["api_type"] == "azure"
        assert entry["azure_deployment"] == "gpt-4.1"

    def test_chat_falls_back_to_default(self):
        config = ProjectConfig(models={"default": "gpt-4o"}, azure=_AZURE)
        llm_config = build_role_llm_config("chat", config)
        assert llm_config["config_list"][0]["model"] == "gpt-4o"
        assert llm_config["timeout"] == config.generation_timeout

    def test_transport_timeout_capped_by_generation_timeout(self):
        assert build_role_llm_config("chat", ProjectConfig(timeout=120, generation_timeout=45))["timeout"] == 45
        assert build_role_llm_config("chat", ProjectConfig(timeout=20, generation_timeout=45))["timeout"] == 20

    def test_unknown_role_uses_default(self):
        config = ProjectConfig(models={"default": "gpt-4o", "importer": "gpt-4.1-mini"}, azure=_AZURE)
        assert build_role_llm_config("other", config)["config_list"][0]["model"] == "gpt-4o"
        assert build_role_llm_config("document_import", config)["config_list"][0]["model"] == "gpt-4.1-mini"

    def test_non_azure_endpoint(self):
        config = ProjectConfig(azure={**_AZURE, "endpoint": "https://custom-api.example.com"})
        entry = build_role_llm_config("chat", config)["config_list"][0]
        assert "api_type" not in entry
        assert entry["base_url"] == "https://custom-api.example.com"

    def test_override_api_type(self):
        config = ProjectConfig(
            models={
                "default": "claude-sonnet",
                "overrides": {"claude-sonnet": {
                    "endpoint": "https://models.example.com/",
                    "api_key": "override-key",
                    "api_type": "anthropic",
                }},
            },
            azure=_AZURE,
        )
        entry = build_role_llm_config("section_feedback", config)["config_list"][0]
        assert entry["api_type"] == "anthropic"
        assert entry["base_url"] == "https://models.example.com"
        assert entry["api_key"] == "override-key"


class TestToProjectConfig:
    def test_cli_only_fields_stripped(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "conv-key")
        cfg = OmegaConf.create({
            "mode": "status",
            "yes": True,
            "verbose": False,
            "quiet": False,
            "section": "question",
            "message": None,
            "value": None,
            "file": None,
            "review_id": None,
            "approach": None,
            "project_name": "Strip Test",
            "azure": {"api_key": "", "api_version": "", "endpoint": ""},
            "models": {"default": "gpt-4o", "reviewer": None},
            "history_limit": 5,
        })
        pc = _to_project_config(cfg)
        assert pc.project_name == "Strip Test"
        assert pc.history_limit == 5
        assert pc.azure.api_key == "conv-key"
        assert not hasattr(pc, "mode")
        assert not hasattr(pc, "section")
