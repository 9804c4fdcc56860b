"""Install and remove the managed pre-commit and pre-push hook scripts."""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, ValidationError

from gitpersona.core.models import Enforcement, EnforcementSettings
from gitpersona.core.suggest import utc_now

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gitpersona.io.logging import StructuredLogger

HOOK_MARKER = "# gitpersona managed hook"
BACKUP_SUFFIX = ".gitpersona-backup"
SETTINGS_FILENAME = "gitpersona-hooks.json"
MANAGED_HOOKS = ("pre-commit", "pre-push")

_SCRIPT_TEMPLATE = """#!/bin/sh
{marker}
# validation level: {level}
if ! command -v {command} >/dev/null 2>&1; then
  echo "{command}: command not found; skipping identity check" >&2
  exit 0
fi
exec {command} hook {hook}{arguments}
"""


class HookSettings(BaseModel):
    """Per-repository hook configuration stored next to the hooks."""

    validation_level: Enforcement = Enforcement.strict
    auto_fix: bool = False
    hooks: tuple[str, ...] = MANAGED_HOOKS
    installed_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    def apply(self, settings: EnforcementSettings) -> EnforcementSettings:
        """Return ``settings`` with this repository's level and auto-fix flag."""
        return settings.model_copy(update={"validation_level": self.validation_level, "auto_fix": self.auto_fix})


class HookInstaller:
    """Manage hook scripts under ``<git_dir>/hooks``."""

    def __init__(
        self,
        git_dir: Path,
        *,
        logger: StructuredLogger | None = None,
        command: str = "gitpersona",
    ) -> None:
        """Bind the installer to a repository's ``.git`` directory."""
        self._git_dir = Path(git_dir)
        self._logger = logger
        self._command = command

    @property
    def hooks_dir(self) -> Path:
        """Return the directory holding hook scripts."""
        return self._git_dir / "hooks"

    @property
    def settings_path(self) -> Path:
        """Return the JSON file storing :class:`HookSettings`."""
        return self._git_dir / SETTINGS_FILENAME

    def install(
        self,
        *,
        validation_level: Enforcement = Enforcement.strict,
        auto_fix: bool = False,
        hooks: Sequence[str] = MANAGED_HOOKS,
        now: datetime | None = None,
    ) -> list[Path]:
        """Write the hook scripts, backing up foreign hooks once."""
        unknown = sorted(set(hooks) - set(MANAGED_HOOKS))
        if unknown:
            msg = f"unsupported hooks: {', '.join(unknown)}"
            raise ValueError(msg)
        settings = HookSettings(
            validation_level=validation_level,
            auto_fix=auto_fix,
            hooks=tuple(hooks),
            installed_at=now or utc_now(),
        )
        self.hooks_dir.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        for hook in hooks:
            target = self.hooks_dir / hook
            if target.exists() and not _is_managed(target):
                backup = target.with_name(target.name + BACKUP_SUFFIX)
                shutil.copy2(target, backup)
                self._log("existing hook backed up", hook=hook, backup=str(backup))
            target.write_text(self._script(hook, validation_level), encoding="utf-8")
            target.chmod(0o755)
            written.append(target)
        self.settings_path.write_text(settings.model_dump_json(indent=2) + "\n", encoding="utf-8")
        self._log("hooks installed", hooks=list(hooks), validation_level=validation_level.value)
        return written

    def remove(self) -> list[Path]:
        """Delete managed scripts, restore backups, and drop the settings file."""
        removed: list[Path] = []
        for hook in MANAGED_HOOKS:
            target = self.hooks_dir / hook
            if not target.exists() or not _is_managed(target):
                continue
            target.unlink()
            removed.append(target)
            backup = target.with_name(target.name + BACKUP_SUFFIX)
            if backup.exists():
                backup.replace(target)
                self._log("hook backup restored", hook=hook)
        self.settings_path.unlink(missing_ok=True)
        self._log("hooks removed", removed=[path.name for path in removed])
        return removed

    def is_installed(self, hook: str = "pre-commit") -> bool:
        """Return whether ``hook`` is a managed script."""
        target = self.hooks_dir / hook
        return target.exists() and _is_managed(target)

    def load_settings(self) -> HookSettings | None:
        """Return the stored settings, or ``None`` when absent or unreadable."""
        if not self.settings_path.exists():
            return None
        try:
            return HookSettings.model_validate_json(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            self._log("hook settings unreadable", error=str(exc))
            return None

    def _script(self, hook: str, level: Enforcement) -> str:
        arguments = ' "$1" "$2"' if hook == "pre-push" else ""
        return _SCRIPT_TEMPLATE.format(
            marker=HOOK_MARKER,
            level=level.value,
            command=self._command,
            hook=hook,
            arguments=arguments,
        )

    def _log(self, message: str, **fields: object) -> None:
        if self._logger is not None:
            self._logger.info(message, git_dir=str(self._git_dir), **fields)


def _is_managed(path: Path) -> bool:
    try:
        return HOOK_MARKER in path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False


__all__ = ["BACKUP_SUFFIX", "HOOK_MARKER", "MANAGED_HOOKS", "HookInstaller", "HookSettings"]
