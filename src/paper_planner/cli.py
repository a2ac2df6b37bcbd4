"""CLI entry point using Hydra.

Usage examples:
  paper-planner mode=status
  paper-planner mode=set section=question file=question.md
  paper-planner mode=feedback section=question
  paper-planner mode=chat section=question message="Is my scope too broad?"
  paper-planner mode=review file=paper.pdf
  paper-planner mode=export_review review_id=<id>
  paper-planner mode=reset yes=true
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.markdown import Markdown
from rich.table import Table

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .catalog import summarize_catalog
from .config import apply_azure_fallbacks
from .confirmation import ConfirmationBridge
from .exceptions import PlannerError
from .logging_config import (
    RichCallbacks,
    RichConfirmationPresenter,
    console,
    create_progress,
    print_section_table,
    setup_logging,
)
from .models import ProjectConfig, SectionKind, UploadedFile
from .project_io import answers_to_json, write_review_export
from .session import PlannerSession

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic ProjectConfig bridge
# ---------------------------------------------------------------------------


def _to_project_config(cfg: DictConfig) -> ProjectConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``ProjectConfig``.

    CLI-only keys (``mode``, ``yes``, etc.) are stripped before validation.
    Azure credential env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    container.pop("hydra", None)
    config = ProjectConfig.model_validate(container)
    return apply_azure_fallbacks(config)


def _make_session(cfg: DictConfig) -> PlannerSession:
    config = _to_project_config(cfg)
    presenter = RichConfirmationPresenter(auto_answer=True if cfg.get("yes") else None)
    session = PlannerSession(
        config,
        bridge=ConfirmationBridge(presenter),
        callbacks=RichCallbacks(),
    )
    session.load()
    return session


def _require(cfg: DictConfig, key: str) -> str:
    value = cfg.get(key)
    if not value:
        console.print(f"[red]{key} is required for mode={cfg.get('mode')}[/]")
        sys.exit(1)
    return str(value)


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _status_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    engine = session.engine
    if cfg.get("verbose"):
        console.print(summarize_catalog(session.catalog))
    console.print(f"Approach: [cyan]{engine.approach}[/]")
    print_section_table(engine.section_states(), engine.current_section_id)
    for state in engine.section_states():
        for violation in engine.limit_violations(state.section_id):
            console.print(f"  [yellow]{state.section_id}:[/] {violation}")


def _set_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    if cfg.get("approach"):
        session.set_approach(cfg.approach)
        console.print(f"[green]Approach set to {session.engine.approach}[/]")
        if not cfg.get("section"):
            return

    section_id = _require(cfg, "section")
    if cfg.get("file"):
        value = Path(cfg.file).read_text(encoding="utf-8")
    else:
        value = _require(cfg, "value")

    spec = session.catalog.find(section_id)
    if spec is not None and spec.kind == SectionKind.CHECKLIST:
        session.set_answer(section_id, [v.strip() for v in value.split(",") if v.strip()])
    else:
        session.set_answer(section_id, value)
    session.engine.go_to(section_id)
    session.save()
    state = "complete" if session.engine.is_complete(section_id) else "not complete yet"
    console.print(f"[green]Saved {section_id}[/] ({state})")


def _feedback_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    section_id = _require(cfg, "section")
    with create_progress() as progress:
        progress.add_task(f"Requesting feedback on {section_id}...", total=None)
        reply = asyncio.run(session.mark_section_review_ready(section_id))
    if reply is None:
        console.print(f"[yellow]Section {section_id} does not ask for feedback.[/]")
        return
    console.print(Markdown(reply.content))


def _chat_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    section_id = _require(cfg, "section")
    message = _require(cfg, "message")
    with create_progress() as progress:
        progress.add_task("Waiting for reply...", total=None)
        reply = asyncio.run(session.send_chat_message(section_id, message))
    console.print(Markdown(reply.content))


def _export_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    if cfg.get("file"):
        out = Path(cfg.file)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(answers_to_json(session.engine.answers, approach=session.engine.approach), encoding="utf-8")
    else:
        out = session.export_plan()
    console.print(f"[green]Written to {out}[/]")


def _import_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    payload = Path(_require(cfg, "file")).read_text(encoding="utf-8")
    if asyncio.run(session.import_answers(payload)):
        console.print("[green]Project loaded.[/]")
    else:
        console.print("Import cancelled.")


def _import_document_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    upload = UploadedFile.from_path(_require(cfg, "file"))
    if asyncio.run(session.import_from_document(upload)):
        console.print(f"[green]Plan created from {upload.name}.[/]")
        print_section_table(session.engine.section_states(), session.engine.current_section_id)
    else:
        console.print("Import cancelled.")


def _reset_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    if asyncio.run(session.request_reset()):
        console.print("[green]Started a new project.[/]")
    else:
        console.print("Reset cancelled.")


def _review_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    upload = UploadedFile.from_path(_require(cfg, "file"))
    outcome = asyncio.run(session.review_paper(upload))
    if not outcome.success or outcome.record is None:
        console.print(f"\n[bold red]Review failed:[/] {outcome.error}")
        sys.exit(1)
    console.print(Markdown(outcome.record.review_text))
    console.print(f"\n[dim]Saved as {outcome.record.id}[/]")


def _history_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    records = session.history.list_reviews()
    if not records:
        console.print("No reviews yet.")
        return
    table = Table(title="Past Reviews")
    table.add_column("ID", style="cyan")
    table.add_column("Paper")
    table.add_column("Preview", style="dim")
    for r in records:
        table.add_row(r.id, r.paper_name, r.preview)
    console.print(table)


def _show_review_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    record = session.history.select_review(_require(cfg, "review_id"))
    if record is None:
        console.print(f"[red]No review with id {cfg.review_id!r}[/]")
        sys.exit(1)
    console.rule(f"{record.paper_name} ({record.timestamp})")
    console.print(Markdown(record.review_text))


def _delete_review_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    session.history.delete_review(_require(cfg, "review_id"))
    console.print("[green]Deleted.[/]")


def _export_review_mode(cfg: DictConfig) -> None:
    session = _make_session(cfg)
    record = session.history.get_review(_require(cfg, "review_id"))
    if record is None:
        console.print(f"[red]No review with id {cfg.review_id!r}[/]")
        sys.exit(1)
    out = write_review_export(record, session.config.export_dir)
    console.print(f"[green]Written to {out}[/]")


_MODE_DISPATCH: dict[str, Any] = {
    "status": _status_mode,
    "set": _set_mode,
    "feedback": _feedback_mode,
    "chat": _chat_mode,
    "export": _export_mode,
    "import": _import_mode,
    "import_document": _import_document_mode,
    "reset": _reset_mode,
    "review": _review_mode,
    "history": _history_mode,
    "show_review": _show_review_mode,
    "delete_review": _delete_review_mode,
    "export_review": _export_review_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "status")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    try:
        handler(cfg)
    except PlannerError as e:
        console.print(f"[bold red]{type(e).__name__}:[/] {e}")
        sys.exit(1)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
