"""Load and validate the optional ``.ml-ralph/config.yaml``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from mlralph.config.models import RalphConfig
from mlralph.project import STATE_DIR

CONFIG_FILENAME = "config.yaml"


class ConfigError(Exception):
    """User-facing configuration error."""


def config_path(project_path: Path) -> Path:
    """Location of the config file inside *project_path*."""
    return Path(project_path) / STATE_DIR / CONFIG_FILENAME


def load_config(
    project_path: Path,
    overrides: dict[str, Any] | None = None,
) -> RalphConfig:
    """Load the project's config, falling back to defaults.

    Args:
        project_path: Project root containing ``.ml-ralph/``.
        overrides: Values (e.g. from CLI flags) applied on top of the file.
                   ``None`` values are ignored.

    Returns:
        A validated RalphConfig instance.

    Raises:
        ConfigError: On unreadable file, bad YAML, or validation failure.
    """
    project_path = Path(project_path)
    path = config_path(project_path)
    raw = _read_yaml(path) if path.is_file() else {}
    if overrides:
        raw.update({k: v for k, v in overrides.items() if v is not None})
    _load_env(project_path)
    return _validate(raw, path.name)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(project_path: Path) -> None:
    env_path = project_path / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _validate(raw: dict[str, Any], source: str) -> RalphConfig:
    try:
        return RalphConfig.model_validate(raw)
    except ValidationError as exc:
        parts: list[str] = []
        for err in exc.errors():
            loc = " → ".join(str(s) for s in err["loc"])
            msg = err["msg"]
            if "extra inputs are not permitted" in msg.lower():
                msg = "Unknown setting"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed ({source}):\n{joined}"
        raise ConfigError(msg) from exc
