from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from gitpersona.cli.main import app, main
from gitpersona.core.models import (
    Account,
    BranchPolicy,
    Enforcement,
    Pattern,
    PatternKind,
    Project,
    RecordKind,
    RemoteMapping,
)
from gitpersona.git.hooks import SETTINGS_FILENAME, HookSettings
from gitpersona.io.config import HOME_ENV
from gitpersona.io.store import JsonConfigStore
from tests.fakes import FIXED_NOW, GitResponse, REMOTE_URL_QUERY, ScriptQueue, identity_script

runner = CliRunner()

ORIGIN = "https://github.com/acme/api"
FORK = "https://github.com/pat/api"


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the data directory at a temporary location."""
    directory = tmp_path / "home"
    monkeypatch.setenv(HOME_ENV, str(directory))
    return directory


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Repository root with an empty ``.git`` directory."""
    root = tmp_path / "repo"
    (root / ".git").mkdir(parents=True)
    return root


@pytest.fixture
def seeded(home: Path, repo: Path, work_account: Account, personal_account: Account) -> JsonConfigStore:
    """Store holding both accounts and the repository registered as ``proj``."""
    store = JsonConfigStore(home)
    store.save(RecordKind.accounts, [work_account, personal_account])
    store.save(
        RecordKind.projects,
        [Project(id="proj", path=str(repo), name="api", remote_urls={"origin": ORIGIN, "fork": FORK})],
    )
    return store


def _strict_main_policy(store: JsonConfigStore) -> None:
    policy = BranchPolicy(id="pol_main", branch_pattern="^main$", required_account_id="W", enforcement=Enforcement.strict)
    store.save(RecordKind.policies, [policy])


def test_pre_commit_hook_blocks_wrong_account(
    configure_fake_git_facade: ScriptQueue,
    seeded: JsonConfigStore,
    repo: Path,
) -> None:
    """A strict branch policy blocks the commit with exit status 1."""
    _strict_main_policy(seeded)
    configure_fake_git_facade.push(
        identity_script(root=repo, name="Pat Personal", email="pat@example.com", remotes={"origin": ORIGIN}),
    )

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo)])

    assert result.exit_code == 1
    assert "requires account 'W' (Work <wendy@acme.com>)" in result.output
    assert "gitpersona: blocked by identity policy" in result.output


def test_pre_commit_hook_allows_and_reports_json(
    configure_fake_git_facade: ScriptQueue,
    seeded: JsonConfigStore,
    repo: Path,
) -> None:
    """A compliant identity passes; --json prints the enforcement result."""
    _strict_main_policy(seeded)
    configure_fake_git_facade.push(
        identity_script(root=repo, name="Wendy Work", email="wendy@acme.com", remotes={"origin": ORIGIN}),
    )

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo), "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["state"] == "Allowed"
    assert payload["decision"]["matched_policy_ids"] == ["pol_main"]


def test_pre_commit_hook_skips_unregistered_repository(
    configure_fake_git_facade: ScriptQueue,
    home: Path,
    repo: Path,
) -> None:
    """Unknown repositories are not checked."""
    _ = home
    configure_fake_git_facade.push(identity_script(root=repo))

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "repository is not registered" in result.output


def test_pre_commit_hook_outside_repository(configure_fake_git_facade: ScriptQueue, home: Path, tmp_path: Path) -> None:
    """Failing to locate the repository is a usage error."""
    _ = home
    configure_fake_git_facade.push(
        {("git", "rev-parse", "--show-toplevel"): GitResponse(returncode=128, stderr="fatal: not a git repository")},
    )

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(tmp_path)])

    assert result.exit_code == 2
    assert "not a git repository" in result.output


def test_pre_commit_hook_auto_fixes_identity(
    configure_fake_git_facade: ScriptQueue,
    seeded: JsonConfigStore,
    repo: Path,
) -> None:
    """With auto-fix installed the local identity is rewritten and the commit proceeds."""
    seeded.save(
        RecordKind.mappings,
        [RemoteMapping(project_id="proj", remote_name="origin", account_id="W", is_default_push=True)],
    )
    settings = HookSettings(validation_level=Enforcement.strict, auto_fix=True, installed_at=FIXED_NOW)
    (repo / ".git" / SETTINGS_FILENAME).write_text(settings.model_dump_json(), encoding="utf-8")
    script = identity_script(root=repo, name="Pat Personal", email="pat@example.com", remotes={"origin": ORIGIN})
    script[("git", "config", "--local", "user.name", "Wendy Work")] = GitResponse()
    script[("git", "config", "--local", "user.email", "wendy@acme.com")] = GitResponse()
    script[("git", "config", "--local", "user.signingkey", "ABCD1234")] = GitResponse()
    configure_fake_git_facade.push(script)

    result = runner.invoke(app, ["hook", "pre-commit", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "local git identity corrected from 'P' (Personal <pat@example.com>) to 'W'" in result.output


def test_pre_push_hook_uses_remote_mapping(
    configure_fake_git_facade: ScriptQueue,
    seeded: JsonConfigStore,
    repo: Path,
) -> None:
    """Pushing to the fork as the work account is blocked by the fork's mapping."""
    seeded.save(RecordKind.mappings, [RemoteMapping(project_id="proj", remote_name="fork", account_id="P")])
    configure_fake_git_facade.push(
        identity_script(
            root=repo,
            branch="feature/x",
            name="Wendy Work",
            email="wendy@acme.com",
            remotes={"origin": ORIGIN, "fork": FORK},
        ),
    )

    blocked = runner.invoke(app, ["hook", "pre-push", "fork", FORK, "--repo", str(repo)])

    assert blocked.exit_code == 1
    assert "expected account 'P' (Personal <pat@example.com>) (source explicit" in blocked.output


def test_install_and_remove_hooks(configure_fake_git_facade: ScriptQueue, home: Path, repo: Path) -> None:
    """Hooks are installed with the requested settings and removed again."""
    _ = home
    git_dir_script = {("git", "rev-parse", "--absolute-git-dir"): GitResponse(stdout=f"{repo / '.git'}\n")}
    configure_fake_git_facade.push(git_dir_script)
    configure_fake_git_facade.push(git_dir_script)

    installed = runner.invoke(
        app,
        ["install-hooks", "--repo", str(repo), "--level", "warning", "--auto-fix"],
    )
    assert installed.exit_code == 0
    assert "Installed pre-commit, pre-push (level=warning, auto_fix=True)" in installed.output
    assert (repo / ".git" / "hooks" / "pre-commit").exists()
    stored = json.loads((repo / ".git" / SETTINGS_FILENAME).read_text(encoding="utf-8"))
    assert stored["validation_level"] == "warning"

    removed = runner.invoke(app, ["remove-hooks", "--repo", str(repo)])
    assert removed.exit_code == 0
    assert "Removed pre-commit, pre-push" in removed.output
    assert not (repo / ".git" / "hooks" / "pre-commit").exists()


def test_install_hooks_rejects_advisory_level(home: Path, repo: Path) -> None:
    """Advisory is a policy level, not a validation level."""
    _ = home
    result = runner.invoke(app, ["install-hooks", "--repo", str(repo), "--level", "advisory"])
    assert result.exit_code == 2
    assert "strict, warning or off" in result.output


def test_project_add_registers_remotes(configure_fake_git_facade: ScriptQueue, home: Path, repo: Path) -> None:
    """The repository root and its remotes are registered once."""
    script = {
        ("git", "rev-parse", "--show-toplevel"): GitResponse(stdout=f"{repo}\n"),
        REMOTE_URL_QUERY: GitResponse(stdout=f"remote.origin.url {ORIGIN}\n"),
    }
    configure_fake_git_facade.push(script)
    configure_fake_git_facade.push(script)

    added = runner.invoke(app, ["project", "add", "--repo", str(repo), "--name", "api"])
    duplicate = runner.invoke(app, ["project", "add", "--repo", str(repo)])

    assert added.exit_code == 0
    assert "Registered project proj_" in added.output
    assert "organization: acme (github)" in added.output
    assert f"remote origin: {ORIGIN}" in added.output
    assert duplicate.exit_code == 1
    assert "DuplicateProject" in duplicate.output
    assert len(JsonConfigStore(home).load(RecordKind.projects)) == 1


def test_suggest_for_registered_project(
    configure_fake_git_facade: ScriptQueue,
    seeded: JsonConfigStore,
    repo: Path,
) -> None:
    """The suggestion for a registered repository uses its primary remote."""
    seeded.save(
        RecordKind.patterns,
        [Pattern(id="pat_w", expression="https://github.com/acme/*", kind=PatternKind.exact, account_id="W", confidence=0.9)],
    )
    configure_fake_git_facade.push({("git", "rev-parse", "--show-toplevel"): GitResponse(stdout=f"{repo}\n")})

    result = runner.invoke(app, ["suggest", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "Suggested account: W (confidence 0.95)" in result.output


def test_request_round_trip(seeded: JsonConfigStore) -> None:
    """Requests print the JSON response; failures exit with status 1."""
    _ = seeded
    listed = runner.invoke(app, ["request", "list-accounts"])
    assert listed.exit_code == 0
    response = json.loads(listed.output)
    assert response["success"] is True
    assert [account["id"] for account in response["data"]] == ["W", "P"]

    failed = runner.invoke(app, ["request", "remove-account", "--payload", '{"id": "ghost"}'])
    assert failed.exit_code == 1
    assert json.loads(failed.output)["error"]["kind"] == "UnknownAccount"


def test_request_rejects_invalid_json(home: Path) -> None:
    """The payload must be a JSON object."""
    _ = home
    assert runner.invoke(app, ["request", "resolve", "--payload", "{nope"]).exit_code == 2
    assert runner.invoke(app, ["request", "resolve", "--payload", "[]"]).exit_code == 2


def test_export_then_import_into_new_home(
    seeded: JsonConfigStore,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A bundle exported from one home can be imported into another."""
    _ = seeded
    bundle_path = tmp_path / "bundle.json"
    exported = runner.invoke(app, ["export", "--output", str(bundle_path)])
    assert exported.exit_code == 0

    monkeypatch.setenv(HOME_ENV, str(tmp_path / "other-home"))
    imported = runner.invoke(app, ["import", str(bundle_path)])

    assert imported.exit_code == 0
    assert "Imported 2 accounts, 1 projects" in imported.output
    assert [account.id for account in JsonConfigStore(tmp_path / "other-home").load(RecordKind.accounts)] == ["W", "P"]


def test_import_with_rejected_records_fails(home: Path, tmp_path: Path) -> None:
    """Rejected records are reported and make the command fail."""
    _ = home
    bundle_path = tmp_path / "bundle.json"
    bundle_path.write_text(
        json.dumps({"patterns": [{"id": "pat_ghost", "expression": "**", "account_id": "ghost"}]}),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["import", str(bundle_path), "--json"])

    assert result.exit_code == 1
    assert json.loads(result.output)["rejected"][0]["record_id"] == "pat_ghost"


def test_invalid_configuration_is_a_usage_error(home: Path, tmp_path: Path) -> None:
    """Configuration errors exit with status 2."""
    _ = home
    config_path = tmp_path / "gitpersona.toml"
    config_path.write_text('[enforcement]\nvalidation_level = "loud"\n', encoding="utf-8")
    result = runner.invoke(app, ["request", "list-accounts", "--config", str(config_path)])
    assert result.exit_code == 2


def test_main_returns_exit_status(seeded: JsonConfigStore, capsys: pytest.CaptureFixture[str]) -> None:
    """``main`` maps command outcomes to integer statuses."""
    _ = seeded
    assert main(["request", "list-accounts"]) == 0
    assert main(["request", "frobnicate"]) == 1
    assert '"InvalidRequest"' in capsys.readouterr().out
