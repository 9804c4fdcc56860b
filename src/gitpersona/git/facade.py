"""Subprocess wrapper for the git commands gitpersona needs."""

from __future__ import annotations

import inspect
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from gitpersona.core.models import Account
    from gitpersona.io.logging import StructuredLogger

    Runner = Callable[..., subprocess.CompletedProcess[str]]


# ``git config --get`` exits with 1 when the key is not set.
_CONFIG_MISSING = 1


class GitCommandError(RuntimeError):
    """A git invocation exited non-zero."""

    def __init__(self, command: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        """Keep the command, exit status and both output streams."""
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"{' '.join(self.command)} exited with {returncode}: {detail}")

    @classmethod
    def from_completed(cls, completed: subprocess.CompletedProcess[str]) -> GitCommandError:
        """Build the error from a finished process."""
        return cls(completed.args, completed.returncode, completed.stdout or "", completed.stderr or "")


class GitFacade:
    """Run git inside one repository, honouring dry-run for writes."""

    def __init__(
        self,
        repo_path: Path,
        logger: StructuredLogger,
        *,
        dry_run: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Bind the facade to ``repo_path``."""
        self._repo_path = Path(repo_path)
        self._logger = logger
        self._dry_run = dry_run
        self._env = dict(env) if env else None
        self._history: list[dict[str, object]] = []
        self._subprocess_run: Runner = subprocess.run

    @property
    def repo_path(self) -> Path:
        """Repository the commands run in."""
        return self._repo_path

    @property
    def dry_run(self) -> bool:
        """Whether writes are only recorded."""
        return self._dry_run

    @property
    def command_history(self) -> Sequence[dict[str, object]]:
        """Commands issued so far, oldest first."""
        return tuple(self._history)

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        check: bool = True,
        read_only: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``args`` and return the finished process.

        Reads always execute. In dry-run mode a write is recorded with exit
        status 0 and never reaches git.
        """
        command = tuple(map(str, args))
        where = str(cwd or self._repo_path)
        simulated = self._dry_run and not read_only
        self._logger.debug("git", command=list(command), cwd=where, dry_run=simulated)

        if simulated:
            completed = subprocess.CompletedProcess(command, 0, stdout="", stderr="")
        else:
            options = _supported_options(
                self._subprocess_run,
                {"cwd": where, "capture_output": True, "text": True, "timeout": timeout, "check": False, "env": self._env},
            )
            completed = self._subprocess_run(command, **options)
        self._history.append(
            {"command": list(command), "cwd": where, "returncode": completed.returncode, "dry_run": simulated},
        )

        if completed.stderr:
            self._logger.debug("git stderr", stderr=completed.stderr)
        if check and completed.returncode != 0:
            raise GitCommandError.from_completed(completed)
        return completed

    def _config_query(self, *args: str) -> str | None:
        completed = self.run(["git", "config", *args], check=False, read_only=True)
        if completed.returncode == _CONFIG_MISSING:
            return None
        if completed.returncode != 0:
            raise GitCommandError.from_completed(completed)
        return completed.stdout or ""

    def get_config(self, key: str) -> str | None:
        """Effective value of ``key``; ``None`` when unset or empty."""
        output = self._config_query("--get", key)
        return (output or "").strip() or None

    def get_config_regexp(self, pattern: str) -> dict[str, str]:
        """Config entries whose key matches ``pattern``."""
        entries: dict[str, str] = {}
        for line in (self._config_query("--get-regexp", pattern) or "").splitlines():
            key, _, value = line.partition(" ")
            if key:
                entries[key] = value.strip()
        return entries

    def set_config(self, key: str, value: str) -> None:
        """Write ``key`` to the repository-local config."""
        self.run(["git", "config", "--local", key, value])

    def unset_config(self, key: str) -> None:
        """Drop ``key`` from the repository-local config; missing keys are fine."""
        self.run(["git", "config", "--local", "--unset", key], check=False)

    def current_branch(self) -> str | None:
        """Checked-out branch name, or ``None`` on a detached HEAD."""
        completed = self.run(["git", "symbolic-ref", "--quiet", "--short", "HEAD"], check=False, read_only=True)
        if completed.returncode != 0:
            return None
        return (completed.stdout or "").strip() or None

    def git_dir(self) -> Path:
        """Absolute path of the ``.git`` directory."""
        return self._rev_parse("--absolute-git-dir")

    def repository_root(self) -> Path:
        """Top of the working tree."""
        return self._rev_parse("--show-toplevel")

    def _rev_parse(self, flag: str) -> Path:
        completed = self.run(["git", "rev-parse", flag], read_only=True)
        return Path((completed.stdout or "").strip())

    def apply_identity(self, account: Account) -> None:
        """Point the local ``user.*`` keys at ``account``."""
        self._logger.info("applying git identity", account_id=account.id, email=account.email)
        values = {"user.name": account.git_user_name, "user.email": account.email}
        if account.signing_key_ref:
            values["user.signingkey"] = account.signing_key_ref
        for key, value in values.items():
            self.set_config(key, value)


def _supported_options(runner: Runner, options: dict[str, object]) -> dict[str, object]:
    """Drop keyword options that a substituted runner does not accept."""
    try:
        parameters = inspect.signature(runner).parameters.values()
    except (TypeError, ValueError):
        return options
    if any(item.kind is inspect.Parameter.VAR_KEYWORD for item in parameters):
        return options
    named = {item.name for item in parameters if item.kind is not inspect.Parameter.VAR_POSITIONAL}
    return {key: value for key, value in options.items() if key in named}


__all__ = ["GitCommandError", "GitFacade"]
