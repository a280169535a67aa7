"""Merge configuration layers into a validated `BlockdropConfig`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import BlockdropConfig

ENV_PREFIX = "BLOCKDROP__"


def resolve_with_precedence(
    *,
    defaults: BlockdropConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> BlockdropConfig:
    """Layer overrides on top of defaults: file, then environment, then CLI.

    Keys may be nested mappings or dotted paths (``backup.enabled``).

    Raises:
        ConfigError: If an override is malformed or the merged result is invalid.
    """
    merged = defaults.model_dump(mode="python")
    layers = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    for label, layer in layers:
        if layer is None:
            continue
        merged = _deep_merge(merged, _expand_dotted(layer, label=label))

    try:
        return BlockdropConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: BlockdropConfig) -> Dict[str, str]:
    """Render the config as ``BLOCKDROP__SECTION__KEY`` environment assignments."""
    flat: Dict[str, str] = {}

    def _walk(segments: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _walk([*segments, str(key)], child)
            return
        name = ENV_PREFIX + "__".join(segment.upper() for segment in segments)
        if isinstance(value, list):
            flat[name] = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            flat[name] = "null"
        else:
            flat[name] = str(value)

    _walk([], config.model_dump(mode="python"))
    return flat


def parse_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``BLOCKDROP__`` variables into a nested override mapping.

    Values are parsed as YAML so ``false`` and ``8`` arrive typed.
    """
    overrides: dict[str, Any] = {}
    for key, raw in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            value: Any = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        if isinstance(value, dict):
            # Leaves only; "a: b" text stays a string.
            value = raw
        _set_path(overrides, segments, value, label="environment")
    return overrides


def _expand_dotted(layer: Mapping[str, Any], *, label: str) -> dict[str, Any]:
    if not isinstance(layer, MappingABC):
        raise ConfigError(f"{label.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in layer.items():
        if not isinstance(key, str):
            raise ConfigError(f"{label.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = _expand_dotted(value, label=label)
        _set_path(expanded, key.split("."), value, label=label)
    return expanded


def _set_path(target: dict[str, Any], segments: list[str], value: Any, *, label: str) -> None:
    node = target
    for segment in segments[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{label.capitalize()} override for {'.'.join(segments)} "
                "conflicts with existing value."
            )
        node = child
    leaf = segments[-1]
    if isinstance(value, dict) and isinstance(node.get(leaf), dict):
        node[leaf] = _deep_merge(node[leaf], value)
    else:
        node[leaf] = value


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["ENV_PREFIX", "resolve_with_precedence", "flatten_for_env", "parse_env"]
