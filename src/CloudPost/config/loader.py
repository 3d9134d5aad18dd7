# === NAVMAP v1 ===
# {
#   "module": "CloudPost.config.loader",
#   "purpose": "Build a PostConfig from a config file, CLOUDPOST_* variables and CLI options",
#   "sections": [
#     {"id": "read-file", "name": "_read_file", "anchor": "function-read-file", "kind": "function"},
#     {"id": "env-layer", "name": "_env_layer", "anchor": "function-env-layer", "kind": "function"},
#     {"id": "merge", "name": "_merge", "anchor": "function-merge", "kind": "function"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"},
#     {"id": "validate-config-file", "name": "validate_config_file", "anchor": "function-validate-config-file", "kind": "function"},
#     {"id": "export-config-schema", "name": "export_config_schema", "anchor": "function-export-config-schema", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Layered loading of :class:`~CloudPost.config.models.PostConfig`.

Three layers are merged into one mapping before validation, later layers
winning key by key:

1. a YAML or JSON file,
2. ``CLOUDPOST_*`` environment variables,
3. CLI options (``None`` means "not given" and is skipped).

Nested keys are spelled with a double underscore in the environment, e.g.
``CLOUDPOST_STORE__COLLECTION=articles`` sets ``store.collection``. Values that
parse as JSON (numbers, booleans, lists) are used as such; anything else is
passed to pydantic as a string.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import PostConfig

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "CLOUDPOST_"
# Read by the CLI itself, not part of PostConfig.
_RESERVED_ENV_KEYS = frozenset({"config"})

_PARSERS = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.loads,
}


def _read_file(path: str) -> dict[str, Any]:
    """Parse ``path`` by suffix; raise ValueError for anything unusable."""
    source = Path(path)
    parser = _PARSERS.get(source.suffix.lower())
    if parser is None:
        raise ValueError(f"Unsupported file format: {source.suffix or '(none)'}. Use .yaml or .json")
    if not source.is_file():
        raise ValueError(f"Config file not found: {path}")

    try:
        data = parser(source.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValueError(f"Cannot read {path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot parse {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _env_layer(env_prefix: str, environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(env_prefix):
            continue
        path = name[len(env_prefix) :].lower().split("__")
        if path[0] in _RESERVED_ENV_KEYS:
            continue
        try:
            value = json.loads(raw)
        except ValueError:
            value = raw

        node = layer
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = value
        _LOGGER.debug("%s sets %s", name, ".".join(path))
    return layer


def _merge(base: dict[str, Any], layer: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge ``layer`` into ``base`` recursively, skipping ``None`` values."""
    for key, value in (layer or {}).items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            current = base.get(key)
            base[key] = _merge(current if isinstance(current, dict) else {}, value)
        else:
            base[key] = value
    return base


def load_config(
    path: str | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PostConfig:
    """
    Build the effective run configuration.

    Args:
        path: Optional YAML/JSON config file
        env_prefix: Prefix of the environment variables to honour
        cli_overrides: Nested mapping of CLI values; ``None`` entries are ignored
        environ: Environment to read (defaults to ``os.environ``)

    Raises:
        ValueError: Unreadable file or invalid values (pydantic's
            ValidationError is a ValueError)
    """
    data = _read_file(path) if path else {}
    _merge(data, _env_layer(env_prefix, os.environ if environ is None else environ))
    _merge(data, cli_overrides)

    try:
        config = PostConfig.model_validate(data)
    except ValueError as e:
        _LOGGER.error("Invalid configuration: %s", e)
        raise
    _LOGGER.info(
        "Using configuration %s", config.config_hash()[:8], extra={"config_path": path}
    )
    return config


def validate_config_file(path: str) -> bool:
    """Check that ``path`` alone yields a valid configuration (environment ignored)."""
    load_config(path=path, environ={})
    return True


def export_config_schema() -> dict[str, Any]:
    return PostConfig.model_json_schema()
