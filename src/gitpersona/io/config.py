"""Configuration loading utilities for gitpersona."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from gitpersona.core.models import Config

HOME_ENV = "GITPERSONA_HOME"
CONFIG_FILENAME = "gitpersona.toml"


def default_home() -> Path:
    """Return the data directory, honouring ``GITPERSONA_HOME``."""
    return Path(os.environ.get(HOME_ENV, Path.home() / ".gitpersona"))


def load_config(
    *,
    path: Path | str | None = None,
    data: str | bytes | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Config:
    """Load and validate configuration from TOML data.

    Exactly one of ``path`` or ``data`` must be provided. ``overrides`` allows
    callers to patch specific sections before validation, which is useful for
    CLI flags or tests.
    """
    if (path is None and data is None) or (path is not None and data is not None):
        msg = "Provide exactly one of 'path' or 'data' when loading configuration."
        raise ValueError(msg)

    raw_content: dict[str, Any]
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)
        if not path.is_file():
            msg = f"Configuration path {path} is not a file."
            raise ValueError(msg)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            msg = f"Configuration file {path} could not be read: {exc}"
            raise ValueError(msg) from exc
        raw_content = _parse(text, source=str(path))
    else:
        if data is None:
            msg = "Configuration data must be provided when path is omitted."
            raise ValueError(msg)
        text = data if isinstance(data, str) else data.decode()
        raw_content = _parse(text, source="<data>")

    if overrides is not None:
        typed_overrides: dict[str, Any] = {str(key): value for key, value in overrides.items()}
        raw_content = _merge_dicts(dict(raw_content), typed_overrides)

    return Config.model_validate(_normalise(raw_content))


def _parse(text: str, *, source: str) -> dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Configuration {source} is not valid TOML: {exc}"
        raise ValueError(msg) from exc


def _merge_dicts(base: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        if key in base and isinstance(base[key], Mapping) and isinstance(value, Mapping):
            nested_base = cast("dict[str, Any]", dict(base[key]))
            nested_updates = cast("Mapping[str, Any]", value)
            base[key] = _merge_dicts(nested_base, nested_updates)
        else:
            base[key] = value
    return base


def _normalise(raw: Mapping[str, Any]) -> dict[str, Any]:
    store = raw.get("store", {})
    config_dict: dict[str, Any] = {
        "enforcement": raw.get("enforcement", {}),
        "scoring": raw.get("scoring", {}),
        "audit": raw.get("audit", {}),
        "store_dir": store.get("directory", raw.get("store_dir")),
    }
    return config_dict


__all__ = ["CONFIG_FILENAME", "HOME_ENV", "default_home", "load_config"]
