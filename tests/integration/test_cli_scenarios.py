"""End-to-end scenarios for the gitpersona CLI against real git repositories."""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest
from typer.testing import CliRunner

from gitpersona.cli.main import app
from gitpersona.io.config import HOME_ENV

runner = CliRunner()

WORK = {
    "id": "W",
    "display_name": "Work",
    "email": "wendy@acme.com",
    "git_user_name": "Wendy Work",
    "priority": 1,
    "is_default": True,
    "signing_key_ref": "ABCD1234",
}
PERSONAL = {
    "id": "P",
    "display_name": "Personal",
    "email": "pat@example.com",
    "git_user_name": "Pat Personal",
}


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Isolate git from the user's configuration and point gitpersona at a scratch home."""
    config_file = tmp_path / "gitconfig"
    config_file.write_text("[init]\n\tdefaultBranch = main\n", encoding="utf-8")
    env: dict[str, str] = {
        "GIT_CONFIG_GLOBAL": str(config_file),
        "GIT_CONFIG_NOSYSTEM": "1",
        HOME_ENV: str(tmp_path / "home"),
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture
def repo(tmp_path: Path, git_env: dict[str, str]) -> Path:
    """Initialise a repository with an acme origin and the personal identity."""
    _ = git_env
    root = tmp_path / "api"
    root.mkdir()
    _git(root, "init")
    _git(root, "remote", "add", "origin", "https://github.com/acme/api.git")
    _set_identity(root, "Pat Personal", "pat@example.com")
    return root


def _git(root: Path, *args: str) -> str:
    completed = subprocess.run(("git", *args), cwd=root, check=True, capture_output=True, text=True)
    return completed.stdout.strip()


def _set_identity(root: Path, name: str, email: str) -> None:
    _git(root, "config", "user.name", name)
    _git(root, "config", "user.email", email)


def _request(operation: str, payload: dict[str, object]) -> dict[str, object]:
    result = runner.invoke(app, ["request", operation, "--payload", json.dumps(payload)])
    response = json.loads(result.output)
    assert response["success"], response
    return response


def _register(repo: Path) -> str:
    _request("add-account", WORK)
    _request("add-account", PERSONAL)
    result = runner.invoke(app, ["project", "add", "--repo", str(repo), "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)["id"]


def test_strict_policy_blocks_until_identity_matches(repo: Path) -> None:
    """A strict main-branch policy blocks the personal identity and accepts the work one."""
    project_id = _register(repo)
    _request(
        "add-policy",
        {"id": "pol_main", "branch_pattern": "^main$", "required_account_id": "W", "enforcement": "strict"},
    )

    blocked = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo)])
    assert blocked.exit_code == 1
    assert "requires account 'W'" in blocked.output

    _set_identity(repo, "Wendy Work", "wendy@acme.com")
    allowed = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo), "--json"])
    assert allowed.exit_code == 0
    assert json.loads(allowed.output)["state"] == "Allowed"

    resolved = _request("resolve", {"project_id": project_id})
    assert resolved["data"]["suggested_account_id"] == "W"


def test_auto_fix_rewrites_local_identity(repo: Path) -> None:
    """Installed hooks with auto-fix correct the repository's git config."""
    project_id = _register(repo)
    _request("set-mapping", {"project_id": project_id, "remote_name": "origin", "account_id": "W", "is_default_push": True})

    installed = runner.invoke(app, ["install-hooks", "--repo", str(repo), "--auto-fix"])
    assert installed.exit_code == 0, installed.output
    assert (repo / ".git" / "hooks" / "pre-commit").exists()

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "local git identity corrected" in result.output
    assert _git(repo, "config", "--get", "user.email") == "wendy@acme.com"
    assert _git(repo, "config", "--get", "user.signingkey") == "ABCD1234"

    removed = runner.invoke(app, ["remove-hooks", "--repo", str(repo)])
    assert removed.exit_code == 0
    assert not (repo / ".git" / "hooks" / "pre-commit").exists()


def test_warning_level_lets_commit_proceed(repo: Path) -> None:
    """Under the warning level a confident mismatch only warns."""
    project_id = _register(repo)
    _request("set-mapping", {"project_id": project_id, "remote_name": "origin", "account_id": "W", "is_default_push": True})
    assert runner.invoke(app, ["install-hooks", "--repo", str(repo), "--level", "warning"]).exit_code == 0

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "expected account 'W'" in result.output
    assert _git(repo, "config", "--get", "user.email") == "pat@example.com"


@pytest.mark.skipif(shutil.which("gitpersona") is None, reason="gitpersona console script is not installed")
def test_installed_hook_runs_during_git_commit(repo: Path) -> None:
    """git itself runs the managed hook and refuses the commit."""
    _register(repo)
    _request(
        "add-policy",
        {"id": "pol_main", "branch_pattern": "^main$", "required_account_id": "W", "enforcement": "strict"},
    )
    assert runner.invoke(app, ["install-hooks", "--repo", str(repo)]).exit_code == 0
    (repo / "README.md").write_text("api\n", encoding="utf-8")
    _git(repo, "add", "README.md")

    commit = subprocess.run(
        ("git", "commit", "-m", "initial"),
        cwd=repo,
        capture_output=True,
        text=True,
        check=False,
    )

    assert commit.returncode != 0
    assert "blocked by identity policy" in commit.stderr
