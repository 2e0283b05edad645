"""Configuration loader for the sitedeploy worker.

Builds a validated ``WorkerConfig`` from, in increasing precedence:

1. Built-in defaults (the pydantic model defaults)
2. An optional YAML file, with ``${VAR}`` / ``${VAR:-default}`` substitution
3. Environment variables (``AWS_REGION``, ``S3_BUCKET_NAME``, ...), including
   those loaded from a ``.env`` file
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from sitedeploy.config.defaults import ENV_VAR_MAP
from sitedeploy.lib.errors import ConfigError
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.config import WorkerConfig

logger = get_logger(__name__)

ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str, env: Mapping[str, str]) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references in text.

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = env.get(name)
        if value:
            return value
        if default is not None:
            return default
        raise ConfigError(name, f"Environment variable '{name}' is not set")

    return ENV_PATTERN.sub(_replace, text)


def _read_yaml(path: Path, env: Mapping[str, str]) -> dict[str, Any]:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            "config_file", f"Cannot read configuration file {path}: {e}"
        ) from e

    try:
        content = yaml.safe_load(substitute_env_vars(raw_text, env))
    except yaml.YAMLError as e:
        raise ConfigError(
            "yaml_parse", f"Failed to parse YAML file {path}: {e}"
        ) from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError("config_file", f"Expected a mapping at the top of {path}")
    return content


def _apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> None:
    """Set config values from environment variables (in-place)."""
    for var_name, path in ENV_VAR_MAP.items():
        value = env.get(var_name)
        if not value:
            continue
        target = data
        for key in path[:-1]:
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = {}
                target[key] = existing
            target = existing
        target[path[-1]] = value
        logger.debug(f"Config {'.'.join(path)} set from {var_name}")


def format_validation_errors(exc: PydanticValidationError) -> str:
    """Render pydantic errors as one readable line per field."""
    lines = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", ())) or "unknown"
        lines.append(f"  {loc}: {error.get('msg', 'invalid value')}")
    return "\n".join(lines)


def load_worker_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    *,
    use_dotenv: bool = True,
) -> WorkerConfig:
    """Load and validate the worker configuration.

    Args:
        path: Optional YAML configuration file
        env: Environment mapping (defaults to ``os.environ``)
        use_dotenv: Load a ``.env`` file into the process environment first

    Returns:
        Validated WorkerConfig

    Raises:
        ConfigError: If the file cannot be read or the result is invalid
    """
    if env is None:
        if use_dotenv:
            load_dotenv()
        env = os.environ

    data: dict[str, Any] = {}
    if path is not None:
        data = _read_yaml(Path(path), env)
        logger.debug(f"Loaded configuration file {path}")

    _apply_env_overrides(data, env)

    try:
        return WorkerConfig.model_validate(data)
    except PydanticValidationError as e:
        source = str(path) if path else "environment"
        raise ConfigError(
            "worker",
            f"Invalid worker configuration from {source}:\n"
            f"{format_validation_errors(e)}",
        ) from e
