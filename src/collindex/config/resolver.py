"""Merge configuration layers and translate them to and from the environment."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import CollindexConfig

ENV_PREFIX = "COLLINDEX__"


def resolve_with_precedence(
    *,
    defaults: CollindexConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> CollindexConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    Each override layer may use nested mappings, dotted keys
    (``"rebuild.batch_size"``), or a mix of both.

    Raises:
        ConfigError: If a layer is malformed or the merged result fails validation.
    """
    layers = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    merged = defaults.model_dump(mode="python")
    for source_name, layer in layers:
        if layer is not None:
            merged = _deep_merge(merged, expand_dotted(layer, source_name=source_name))

    try:
        return CollindexConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def parse_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``COLLINDEX__SECTION__KEY`` variables into a nested override mapping.

    Values are parsed as YAML so ``"250"`` becomes an int and ``"null"`` becomes
    ``None``; values YAML cannot parse are kept as plain strings.
    """
    overrides: dict[str, Any] = {}
    for name, raw in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not path:
            continue
        try:
            value: Any = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        assign_dotted(overrides, path, value, source_name="environment")
    return overrides


def flatten_for_env(config: CollindexConfig) -> Dict[str, str]:
    """Render every leaf of ``config`` as a ``COLLINDEX__SECTION__KEY`` variable."""
    flat: Dict[str, str] = {}
    pending: list[tuple[list[str], Any]] = [([], config.model_dump(mode="python"))]
    while pending:
        path, value = pending.pop()
        if isinstance(value, dict):
            pending.extend((path + [str(key)], child) for key, child in value.items())
        elif isinstance(value, list):
            flat[_env_name(path)] = yaml.safe_dump(value, default_flow_style=True).strip()
        else:
            flat[_env_name(path)] = "null" if value is None else str(value)
    return flat


def expand_dotted(source: Mapping[str, Any], *, source_name: str) -> dict[str, Any]:
    """Return ``source`` with dotted keys expanded into nested mappings.

    Raises:
        ConfigError: If ``source`` is not a mapping, has non-string keys, or two
            keys disagree on whether a path is a section or a value.
    """
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{source_name.capitalize()} overrides must be a mapping.")
    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source_name.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, source_name=source_name)
        assign_dotted(expanded, key.split("."), value, source_name=source_name)
    return expanded


def assign_dotted(
    target: dict[str, Any],
    path: Iterable[str],
    value: Any,
    *,
    source_name: str = "configuration",
) -> None:
    """Set ``value`` at ``path`` inside ``target``, creating sections as needed.

    Mapping values are merged into an existing section rather than replacing it.

    Raises:
        ConfigError: If a segment along ``path`` already holds a non-mapping value.
    """
    segments = list(path)
    node = target
    for depth, segment in enumerate(segments[:-1]):
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            joined = ".".join(segments[: depth + 1])
            raise ConfigError(
                f"{source_name.capitalize()} override for {'.'.join(segments)} "
                f"conflicts with the value at {joined}."
            )
        node = child
    leaf = segments[-1]
    if isinstance(value, MappingABC) and isinstance(node.get(leaf), dict):
        node[leaf] = _deep_merge(node[leaf], value)
    else:
        node[leaf] = deepcopy(value)


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _env_name(path: list[str]) -> str:
    return ENV_PREFIX + "__".join(part.upper() for part in path)


__all__ = [
    "ENV_PREFIX",
    "assign_dotted",
    "expand_dotted",
    "flatten_for_env",
    "parse_env_overrides",
    "resolve_with_precedence",
]
