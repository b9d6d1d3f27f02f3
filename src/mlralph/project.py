"""Project scaffolding — the ``.ml-ralph/`` state directory."""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

#: State directory, relative to the project root.
STATE_DIR = ".ml-ralph"

#: Marker file whose presence means the project is initialized.
RALPH_MD_NAME = "RALPH.md"

RALPH_MD = """\
# Ralph - Autonomous ML Agent

You are Ralph, an autonomous ML engineering agent. You think like an
experienced MLE: skeptical, methodical, evidence-driven.

## Files

```
.ml-ralph/
  prd.json      # The PRD - editable, your contract
  log.jsonl     # Event log - append-only, your memory
  kanban.json   # Current work board (optional)
```

## Log events

Append one JSON object per line to `.ml-ralph/log.jsonl`, never edit:

```jsonl
{"ts":"...","type":"phase","phase":"UNDERSTAND","summary":"..."}
{"ts":"...","type":"hypothesis","id":"H-001","hypothesis":"...","expected":"..."}
{"ts":"...","type":"experiment","hypothesis_id":"H-001","metrics":{"auc":0.72}}
{"ts":"...","type":"learning","insight":"..."}
{"ts":"...","type":"decision","hypothesis_id":"H-001","action":"iterate","reason":"..."}
```

## Each iteration

1. UNDERSTAND - read prd.json and the tail of log.jsonl
2. STRATEGIZE - pick exactly one hypothesis to test
3. EXECUTE - run the experiment, log the results
4. REFLECT - record learnings and a decision

Announce each phase by name as you enter it.

## Completion

When the success criteria in `prd.json` are met:
1. Log `{"type":"status","status":"complete","reason":"All criteria met"}`
2. Set `status` to `"complete"` in `prd.json`
3. Output: `<project_complete>`
"""

CLAUDE_MD = """\
# ML-Ralph Project

This project is driven by **Ralph**, an autonomous ML research agent.

| File | Purpose |
|------|---------|
| `.ml-ralph/prd.json` | PRD - the contract (editable) |
| `.ml-ralph/log.jsonl` | Event log - agent memory (append-only) |
| `.ml-ralph/RALPH.md` | Full agent instructions |

Run the loop with `mlralph run`. See `.ml-ralph/RALPH.md` for details.
"""


class ProjectError(Exception):
    """Raised when a project cannot be initialized."""


def state_dir(project_path: Path) -> Path:
    return Path(project_path) / STATE_DIR


def is_initialized(project_path: Path) -> bool:
    """True when ``.ml-ralph/RALPH.md`` exists under *project_path*."""
    return (state_dir(project_path) / RALPH_MD_NAME).is_file()


def default_prd(project_name: str) -> dict[str, object]:
    return {
        "project": project_name,
        "status": "draft",
        "problem": "",
        "goal": "",
        "success_criteria": [],
        "constraints": [],
        "scope": {"in": [], "out": []},
    }


def init_project(project_path: Path, force: bool = False) -> list[Path]:
    """Create the state directory and templates.

    Existing ``prd.json`` and ``log.jsonl`` are never overwritten, even with
    *force*; they hold the project's history.

    Returns:
        The files that were written.

    Raises:
        ProjectError: If ``CLAUDE.md`` exists and *force* is not set, or a
            file cannot be written.
    """
    root = Path(project_path).resolve()
    claude_md = root / "CLAUDE.md"
    if claude_md.exists() and not force:
        msg = "CLAUDE.md already exists. Use --force to overwrite."
        raise ProjectError(msg)

    ralph_dir = state_dir(root)
    created: list[Path] = []
    try:
        ralph_dir.mkdir(parents=True, exist_ok=True)

        ralph_md = ralph_dir / RALPH_MD_NAME
        ralph_md.write_text(RALPH_MD, encoding="utf-8")
        created.append(ralph_md)

        claude_md.write_text(CLAUDE_MD, encoding="utf-8")
        created.append(claude_md)

        log_path = ralph_dir / "log.jsonl"
        if not log_path.exists():
            log_path.write_text("", encoding="utf-8")
            created.append(log_path)

        prd_path = ralph_dir / "prd.json"
        if not prd_path.exists():
            prd = default_prd(root.name or "ml-project")
            prd_path.write_text(json.dumps(prd, indent=2) + "\n", encoding="utf-8")
            created.append(prd_path)
    except OSError as exc:
        msg = f"Cannot initialize {ralph_dir}: {exc}"
        raise ProjectError(msg) from exc

    logger.info("initialized %s (%d files)", ralph_dir, len(created))
    return created
