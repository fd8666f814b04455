"""Find, merge and validate the configuration ``create_editor()`` starts from.

A config file is YAML with up to two sections, ``editor`` and ``logging``
(see ``config_schema``).  Files are read from the lowest precedence to the
highest:

1. ``~/.config/hierarchy_sync/config.yml`` (user defaults)
2. ``.hierarchy_sync/config.yml`` (or ``config.yaml``) in the working
   directory or the nearest parent directory that has one
3. the file named by ``HIERARCHY_SYNC_CONFIG``

Later files override earlier ones field by field within a section, so a
project file that only sets ``editor.theme`` keeps the user's
``editor.json_indent``.  String values may reference the environment as
``${VAR}`` or ``${VAR:-default}``; a ``.env`` file found from the working
directory upwards is loaded first, without overriding variables that are
already set.

Usage:
    from hierarchy_sync.config_loader import load_config

    config = load_config()
    config.editor.json_indent
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from .config_schema import UnifiedConfig, build_config
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "HIERARCHY_SYNC_CONFIG"
PROJECT_DIR = ".hierarchy_sync"
PROJECT_FILES = ("config.yml", "config.yaml")

# ${VAR} or ${VAR:-default}
_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>[^}]*))?\}")


def expand_env(value: Any) -> Any:
    """Substitute environment references in every string of *value*.

    An unset or empty variable becomes its default, or ``""`` without one.
    A ``${`` that is never closed is left alone.
    """
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_lookup, value)
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    return value


def _lookup(match: re.Match) -> str:
    found = os.environ.get(match.group("name"))
    if found:
        return found
    return match.group("default") or ""


def user_config_path() -> Path:
    return Path.home() / ".config" / "hierarchy_sync" / "config.yml"


def project_config_path(start: Path | None = None) -> Path | None:
    """Nearest ``.hierarchy_sync/config.y(a)ml`` from *start* upwards."""
    start = (start or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        for name in PROJECT_FILES:
            candidate = directory / PROJECT_DIR / name
            if candidate.is_file():
                return candidate
    return None


def config_paths(start: Path | None = None) -> list[Path]:
    """Existing config files, lowest precedence first."""
    paths = []
    user = user_config_path()
    if user.is_file():
        paths.append(user)
    project = project_config_path(start)
    if project is not None:
        paths.append(project)
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser().resolve()
        if path.is_file():
            paths.append(path)
        else:
            logger.warning("%s points to a missing file: %s", CONFIG_ENV_VAR, path)
    return paths


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse one config file into a ``{section: {field: value}}`` dict.

    Raises:
        ConfigError: The file is not valid YAML, or it (or one of its
            sections) is not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}", path) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a mapping of sections, got {type(data).__name__}", path
        )
    for section, fields in data.items():
        if fields is not None and not isinstance(fields, dict):
            raise ConfigError(f"Section {section!r} must be a mapping", path)
    return {section: dict(fields or {}) for section, fields in data.items()}


def merge_sections(
    base: dict[str, dict[str, Any]], override: dict[str, dict[str, Any]]
) -> dict[str, dict[str, Any]]:
    merged = {section: dict(fields) for section, fields in base.items()}
    for section, fields in override.items():
        merged.setdefault(section, {}).update(fields)
    return merged


def load_raw_config(start: Path | None = None) -> dict[str, dict[str, Any]]:
    """Read and merge every config file; ``{}`` when there are none."""
    merged: dict[str, dict[str, Any]] = {}
    for path in config_paths(start):
        logger.debug("Reading config %s", path)
        merged = merge_sections(merged, read_config_file(path))
    return expand_env(merged)


def load_config(dotenv: bool = True, start: Path | None = None) -> UnifiedConfig:
    """Load ``.env`` (when *dotenv*), then read, merge and validate config.

    Raises:
        ConfigError: A file is unreadable or a value fails validation.
    """
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True))
    raw = load_raw_config(start)
    try:
        return build_config(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
