"""ConfigStore implementations: one independently persisted collection per record kind."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, TypeAdapter

from gitpersona.core.models import Account, BranchPolicy, Pattern, Project, RecordKind, RemoteMapping

if TYPE_CHECKING:
    from collections.abc import Sequence


RECORD_TYPES: dict[RecordKind, type[BaseModel]] = {
    RecordKind.accounts: Account,
    RecordKind.projects: Project,
    RecordKind.patterns: Pattern,
    RecordKind.policies: BranchPolicy,
    RecordKind.mappings: RemoteMapping,
}

_ADAPTERS: dict[RecordKind, TypeAdapter[list[Any]]] = {
    kind: TypeAdapter(list[model]) for kind, model in RECORD_TYPES.items()  # type: ignore[valid-type]
}


class ConfigStore(Protocol):
    """Persistence collaborator; ``save`` is atomic per kind."""

    def load(self, kind: RecordKind) -> list[Any]:
        """Return every record of ``kind``."""
        ...

    def save(self, kind: RecordKind, records: Sequence[BaseModel]) -> None:
        """Replace every record of ``kind`` with ``records``."""
        ...


class MemoryConfigStore:
    """Store keeping serialised records in memory; used by tests and dry runs."""

    def __init__(self) -> None:
        """Start with empty collections."""
        self._data: dict[RecordKind, str] = {}
        self.save_count: dict[RecordKind, int] = dict.fromkeys(RecordKind, 0)

    def load(self, kind: RecordKind) -> list[Any]:
        """Return a fresh copy of the records of ``kind``."""
        payload = self._data.get(kind)
        if payload is None:
            return []
        return _ADAPTERS[kind].validate_json(payload)

    def save(self, kind: RecordKind, records: Sequence[BaseModel]) -> None:
        """Replace the records of ``kind``."""
        self._data[kind] = _ADAPTERS[kind].dump_json(list(records)).decode()
        self.save_count[kind] += 1


class JsonConfigStore:
    """Store writing one ``<kind>.json`` file per record kind under ``directory``."""

    def __init__(self, directory: Path | str) -> None:
        """Bind the store to ``directory`` (created lazily on first save)."""
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        """Return the directory holding the record files."""
        return self._directory

    def path_for(self, kind: RecordKind) -> Path:
        """Return the file backing ``kind``."""
        return self._directory / f"{kind.value}.json"

    def load(self, kind: RecordKind) -> list[Any]:
        """Return every record of ``kind``; a missing file means no records."""
        path = self.path_for(kind)
        if not path.exists():
            return []
        return _ADAPTERS[kind].validate_json(path.read_bytes())

    def save(self, kind: RecordKind, records: Sequence[BaseModel]) -> None:
        """Write ``records`` to a temporary file and atomically replace the target."""
        self._directory.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            _ADAPTERS[kind].dump_python(list(records), mode="json"),
            indent=2,
            ensure_ascii=False,
        )
        target = self.path_for(kind)
        handle, temp_name = tempfile.mkstemp(prefix=f".{kind.value}.", suffix=".tmp", dir=self._directory)
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(payload + "\n")
                stream.flush()
                os.fsync(stream.fileno())
            Path(temp_name).replace(target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise


__all__ = ["RECORD_TYPES", "ConfigStore", "JsonConfigStore", "MemoryConfigStore"]
