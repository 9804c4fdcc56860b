from __future__ import annotations

import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from gitpersona.core.models import Account
from gitpersona.git.facade import GitCommandError, GitFacade

if TYPE_CHECKING:
    from collections.abc import Callable

    from gitpersona.io.logging import StructuredLogger


@pytest.fixture
def facade(tmp_path: Path, logger: StructuredLogger) -> GitFacade:
    """Create a GitFacade bound to a temporary directory."""
    workspace = Path(tmp_path)
    return GitFacade(workspace, logger)


def _answer(
    returncode: int = 0,
    stdout: str = "",
    stderr: str = "",
) -> tuple[Callable[..., subprocess.CompletedProcess[str]], list[tuple[str, ...]]]:
    calls: list[tuple[str, ...]] = []

    def fake_run(command: tuple[str, ...], **_: object) -> subprocess.CompletedProcess[str]:
        calls.append(tuple(command))
        return subprocess.CompletedProcess(command, returncode, stdout=stdout, stderr=stderr)

    return fake_run, calls


def test_run_invokes_subprocess_and_logs(
    monkeypatch: pytest.MonkeyPatch, facade: GitFacade,
) -> None:
    """Ensure run() delegates to subprocess and records history."""
    captured: dict[str, object] = {}

    def fake_run(command: tuple[str, ...], **kwargs: object) -> subprocess.CompletedProcess[str]:
        captured["command"] = command
        captured["kwargs"] = kwargs
        return subprocess.CompletedProcess(command, 0, stdout="ok", stderr="")

    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    result = facade.run(["git", "status"])

    assert result.stdout == "ok"
    assert captured["command"] == ("git", "status")
    history = facade.command_history
    assert len(history) == 1
    assert history[0]["returncode"] == 0


def test_run_raises_on_nonzero_exit(
    monkeypatch: pytest.MonkeyPatch, facade: GitFacade,
) -> None:
    """Raise GitCommandError when the underlying command fails."""

    def fake_run(command: tuple[str, ...]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 128, stdout="", stderr="not a git repository")

    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    with pytest.raises(GitCommandError) as exc:
        facade.repository_root()
    assert exc.value.returncode == 128
    assert exc.value.stderr == "not a git repository"


def test_dry_run_skips_writes_but_runs_reads(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    logger: StructuredLogger,
) -> None:
    """Dry-run mode records writes without executing them while reads still run."""
    facade = GitFacade(Path(tmp_path), logger, dry_run=True)
    fake_run, calls = _answer(stdout="Wendy Work\n")
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)

    facade.set_config("user.name", "Pat Personal")
    assert facade.get_config("user.name") == "Wendy Work"

    assert calls == [("git", "config", "--get", "user.name")]
    assert [entry["dry_run"] for entry in facade.command_history] == [True, False]


def test_get_config_missing_key_is_none(monkeypatch: pytest.MonkeyPatch, facade: GitFacade) -> None:
    """Exit status 1 from ``git config --get`` means the key is unset."""
    fake_run, _ = _answer(returncode=1)
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    assert facade.get_config("user.signingkey") is None
    assert facade.get_config_regexp(r"^remote\..*\.url$") == {}


def test_get_config_other_failures_raise(monkeypatch: pytest.MonkeyPatch, facade: GitFacade) -> None:
    """Any other failure is an error."""
    fake_run, _ = _answer(returncode=3, stderr="invalid config file")
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    with pytest.raises(GitCommandError):
        facade.get_config("user.email")


def test_get_config_regexp_parses_entries(monkeypatch: pytest.MonkeyPatch, facade: GitFacade) -> None:
    """Each output line is a key followed by its value."""
    output = "remote.origin.url https://github.com/acme/api\nremote.fork.url git@github.com:pat/api.git\n"
    fake_run, _ = _answer(stdout=output)
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    assert facade.get_config_regexp(r"^remote\..*\.url$") == {
        "remote.origin.url": "https://github.com/acme/api",
        "remote.fork.url": "git@github.com:pat/api.git",
    }


def test_current_branch_detached_head(monkeypatch: pytest.MonkeyPatch, facade: GitFacade) -> None:
    """A detached HEAD has no branch name."""
    fake_run, _ = _answer(returncode=1)
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    assert facade.current_branch() is None


def test_apply_identity_writes_local_config(
    monkeypatch: pytest.MonkeyPatch,
    facade: GitFacade,
    work_account: Account,
    personal_account: Account,
) -> None:
    """Name, email and the signing key (when set) go to the local config."""
    fake_run, calls = _answer()
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)

    facade.apply_identity(work_account)
    facade.apply_identity(personal_account)

    assert calls == [
        ("git", "config", "--local", "user.name", "Wendy Work"),
        ("git", "config", "--local", "user.email", "wendy@acme.com"),
        ("git", "config", "--local", "user.signingkey", "ABCD1234"),
        ("git", "config", "--local", "user.name", "Pat Personal"),
        ("git", "config", "--local", "user.email", "pat@example.com"),
    ]


def test_unset_config_tolerates_missing_key(monkeypatch: pytest.MonkeyPatch, facade: GitFacade) -> None:
    """Unsetting a key that is not present is not an error."""
    fake_run, calls = _answer(returncode=5)
    monkeypatch.setattr(facade, "_subprocess_run", fake_run)
    facade.unset_config("user.signingkey")
    assert calls == [("git", "config", "--local", "--unset", "user.signingkey")]
