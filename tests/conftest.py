"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
from docx import Document

from paper_planner.catalog import default_catalog
from paper_planner.models import CriteriaCatalog, GenerationOptions, ProjectConfig, UploadedFile
from paper_planner.progression import SectionProgressionEngine
from paper_planner.storage import KeyValueStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"

VALID_ANSWERS: dict[str, object] = {
    "question": "Research Question: Does dopamine encode reward prediction errors in mice?\n\n"
                "Significance/Impact: It links a cellular signal to learning theory.",
    "philosophy": {"test_prediction"},
    "hypothesis": "Hypothesis 1: Dopamine encodes prediction error.\n\n"
                  "Hypothesis 2: Dopamine encodes reward value only.",
    "audience": "Target Audience/Community:\n1. Systems neuroscience\n2. Reinforcement learning",
    "relatedpapers": "1. Schultz et al. 1997\n2. Eshel et al. 2015",
    "experiment": "Data source: fiber photometry in VTA during a cued reward task.",
    "analysis": "Primary analysis: regression of dF/F on model-derived prediction errors.",
    "process": "Timeline:\n1. Surgeries in month one\n2. Recordings in months two to four",
    "abstract": "Background: Dopamine neurons respond to rewards. We test what they encode.",
}


class FakeGenerator:
    """Scripted ``TextGenerator`` that records every call."""

    def __init__(self, replies: list[str] | None = None, *, error: Exception | None = None) -> None:
        self.replies = list(replies) if replies is not None else ["Looks good. Tighten the scope."]
        self.error = error
        self.calls: list[dict[str, object]] = []
        self.gate: asyncio.Event | None = None

    async def generate(
        self,
        user_prompt: str,
        system_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str:
        self.calls.append({"user": user_prompt, "system": system_prompt, "options": options})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def catalog() -> CriteriaCatalog:
    return default_catalog()


@pytest.fixture
def config(tmp_path: Path) -> ProjectConfig:
    return ProjectConfig(
        storage_path=str(tmp_path / "storage.json"),
        export_dir=str(tmp_path / "exports"),
    )


@pytest.fixture
def store(config: ProjectConfig) -> KeyValueStore:
    return KeyValueStore(config.storage_path)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def engine(catalog: CriteriaCatalog, fake_generator: FakeGenerator, config: ProjectConfig) -> SectionProgressionEngine:
    return SectionProgressionEngine(catalog, fake_generator, config=config)


@pytest.fixture
def valid_answers() -> dict[str, object]:
    return {k: set(v) if isinstance(v, set) else v for k, v in VALID_ANSWERS.items()}


def make_docx_bytes(*paragraphs: str) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def docx_upload() -> UploadedFile:
    content = make_docx_bytes(
        "Dopamine and reward prediction",
        "We recorded VTA dopamine neurons while mice learned a cued reward task.",
        "Responses scaled with reward prediction error.",
    )
    return UploadedFile(name="dopamine_study.docx", content=content)
