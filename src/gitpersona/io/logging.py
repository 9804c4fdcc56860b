"""JSON-lines or text logging with credential masking."""

from __future__ import annotations

import json
import re
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, TextIO

from pydantic import BaseModel, SecretStr, field_validator

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

_MASKS = (
    # userinfo in http(s) remote URLs
    (re.compile(r"(https?://)[^:/@\s]+:[^@\s]+@", re.IGNORECASE), r"\1***:***@"),
    (re.compile(r"token[=:]\s*\S+", re.IGNORECASE), "token=***"),
    # GitHub personal access and app tokens
    (re.compile(r"(gh[pousr]_)[A-Za-z0-9]{20,}"), r"\1***"),
)


class _MaskedText(BaseModel):
    """Log text with credentials replaced before it is stored."""

    text: SecretStr

    @field_validator("text", mode="before")
    @classmethod
    def _apply_masks(cls, value: Any) -> str:
        text = str(value)
        for pattern, replacement in _MASKS:
            text = pattern.sub(replacement, text)
        return text


def _mask(value: Any) -> Any:
    """Mask strings anywhere inside ``value``."""
    if isinstance(value, str):
        return _MaskedText(text=value).text.get_secret_value()
    if isinstance(value, Mapping):
        return {key: _mask(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(_mask(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    return value


def _render_json(record: dict[str, Any], fields: dict[str, Any]) -> str:
    return json.dumps({**record, **fields}, ensure_ascii=False, default=str)


def _render_text(record: dict[str, Any], fields: dict[str, Any]) -> str:
    line = f"[{record['timestamp']}] {record['level']:<7} {record['logger']}: {record['message']}"
    if not fields:
        return line
    extras = " ".join(f"{key}={json.dumps(value, ensure_ascii=False, default=str)}" for key, value in fields.items())
    return f"{line} | {extras}"


class StructuredLogger:
    """Writes one record per line to a stream, filtered by level."""

    def __init__(
        self,
        *,
        name: str,
        json_mode: bool = False,
        stream: TextIO | None = None,
        level: str = "INFO",
    ) -> None:
        """Create a logger; unknown level names fall back to INFO."""
        self._name = name
        self._json_mode = json_mode
        self._stream: TextIO = stream or sys.stderr
        self._level = level.upper() if level.upper() in _LEVELS else "INFO"

    @property
    def name(self) -> str:
        """Dotted logger name."""
        return self._name

    @property
    def json_mode(self) -> bool:
        """Whether records are written as JSON objects."""
        return self._json_mode

    def child(self, suffix: str) -> StructuredLogger:
        """Logger named ``<name>.<suffix>`` writing to the same stream at the same level."""
        return StructuredLogger(
            name=f"{self._name}.{suffix}",
            json_mode=self._json_mode,
            stream=self._stream,
            level=self._level,
        )

    def debug(self, message: str, **fields: Any) -> None:
        self._emit("DEBUG", message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit("INFO", message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit("WARNING", message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit("ERROR", message, fields)

    def _emit(self, level: str, message: str, fields: dict[str, Any]) -> None:
        if _LEVELS[level] < _LEVELS[self._level]:
            return
        record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "logger": self._name,
            "message": _mask(message),
        }
        render = _render_json if self._json_mode else _render_text
        self._stream.write(render(record, _mask(fields)) + "\n")
        self._stream.flush()


__all__ = ["StructuredLogger"]
