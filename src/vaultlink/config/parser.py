"""Read ``vaultlink.yaml`` into a validated ``BridgeConfig``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from vaultlink.config.models import BridgeConfig

DEFAULT_CONFIG_NAME = "vaultlink.yaml"


class ConfigError(Exception):
    """Configuration problem, worded for the person running the CLI."""


def load_config(path: Path | None = None) -> BridgeConfig:
    """Locate, parse and validate the bridge configuration.

    *path* defaults to ``vaultlink.yaml`` in the working directory.  A
    ``.env`` beside the file is loaded into the environment so agent
    processes inherit it.  ``vault`` and agent ``working_directory``
    values are made absolute relative to the file's directory.
    """
    config_file = _find_config(path)
    base_dir = config_file.parent
    raw = _parse_yaml(config_file)
    env_file = base_dir / ".env"
    if env_file.is_file():
        load_dotenv(env_file)
    config = _build(raw)
    _absolutize(config, base_dir)
    return config


def _find_config(path: Path | None) -> Path:
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `vaultlink init` to create one."
        )
        raise ConfigError(msg)

    candidate = Path(path)
    if not candidate.is_file():
        msg = f"Config file not found: {candidate}"
        raise ConfigError(msg)
    return candidate


def _parse_yaml(config_file: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1}, column {mark.column + 1})" if mark else ""
        msg = f"Invalid YAML in {config_file.name}{where}"
        raise ConfigError(msg) from exc

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_file.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _describe(error: Any) -> str:
    location = " → ".join(str(part) for part in error["loc"])
    text = error["msg"]
    if error["type"] == "missing":
        text = "This field is required"
    elif text.lower().startswith("input should be"):
        text = f"Invalid value: {text}"
    return f"  {location}: {text}"


def _build(raw: dict[str, Any]) -> BridgeConfig:
    try:
        return BridgeConfig.model_validate(raw)
    except ValidationError as exc:
        lines = "\n".join(_describe(error) for error in exc.errors())
        msg = f"Config validation failed:\n{lines}"
        raise ConfigError(msg) from exc


def _absolutize(config: BridgeConfig, base_dir: Path) -> None:
    vault = (base_dir / config.vault).resolve()
    if vault.exists() and not vault.is_dir():
        msg = f"Vault path is not a directory: {vault}"
        raise ConfigError(msg)
    config.vault = str(vault)

    for agent in config.agents.values():
        if agent.working_directory is not None:
            agent.working_directory = str((base_dir / agent.working_directory).resolve())
