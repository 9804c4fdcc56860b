"""Audit event sinks; emission is fire-and-forget."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError

from gitpersona.core.models import AuditEvent

if TYPE_CHECKING:
    from gitpersona.io.logging import StructuredLogger


class AuditSink(Protocol):
    """Destination for audit events."""

    def emit(self, event: AuditEvent) -> None:
        """Record ``event``."""
        ...

    def read(self) -> list[AuditEvent]:
        """Return recorded events, oldest first."""
        ...


class MemoryAuditSink:
    """Keep events in a list."""

    def __init__(self) -> None:
        """Start with no events."""
        self.events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        """Append ``event``."""
        self.events.append(event)

    def read(self) -> list[AuditEvent]:
        """Return a copy of the recorded events."""
        return list(self.events)


class JsonlAuditSink:
    """Append events as JSON lines to a file."""

    def __init__(self, path: Path | str) -> None:
        """Bind the sink to ``path``."""
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Return the JSON lines file."""
        return self._path

    def emit(self, event: AuditEvent) -> None:
        """Append ``event`` to the file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as stream:
            stream.write(event.model_dump_json() + "\n")

    def read(self) -> list[AuditEvent]:
        """Parse the file, skipping lines that are not valid events."""
        if not self._path.exists():
            return []
        events: list[AuditEvent] = []
        with self._path.open("r", encoding="utf-8") as stream:
            for line in stream:
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    events.append(AuditEvent.model_validate_json(stripped))
                except ValidationError:
                    continue
        return events


class AuditTrail:
    """Front for an audit sink that never lets a sink failure reach the caller."""

    def __init__(self, sink: AuditSink | None, *, logger: StructuredLogger | None = None) -> None:
        """Wrap ``sink``; ``None`` discards every event."""
        self._sink = sink
        self._logger = logger

    def emit(self, event: AuditEvent) -> None:
        """Forward ``event`` to the sink, logging and swallowing sink errors."""
        if self._sink is None:
            return
        try:
            self._sink.emit(event)
        except (OSError, ValueError) as exc:
            if self._logger is not None:
                self._logger.warning("audit sink unavailable", event=event.type.value, error=str(exc))

    def history(self) -> list[AuditEvent]:
        """Return the sink's events, or an empty list when unavailable."""
        if self._sink is None:
            return []
        try:
            return self._sink.read()
        except (OSError, ValueError) as exc:
            if self._logger is not None:
                self._logger.warning("audit history unavailable", error=str(exc))
            return []


__all__ = ["AuditSink", "AuditTrail", "JsonlAuditSink", "MemoryAuditSink"]
