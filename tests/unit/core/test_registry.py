from __future__ import annotations

import pytest

from gitpersona.core.errors import DuplicateProject, UnknownAccount, UnknownProject
from gitpersona.core.models import Account, GitIdentity, Project
from gitpersona.core.registry import AccountRegistry, ProjectRegistry


def test_accounts_sorted_by_priority(work_account: Account, personal_account: Account) -> None:
    """Lower priority numbers come first."""
    registry = AccountRegistry([personal_account, work_account])
    assert [account.id for account in registry.all()] == ["W", "P"]
    assert len(registry) == 2
    assert "W" in registry


def test_require_unknown_account_raises(work_account: Account) -> None:
    """Unknown ids surface as UnknownAccount."""
    registry = AccountRegistry([work_account])
    with pytest.raises(UnknownAccount):
        registry.require("missing")


def test_default_account_falls_back_to_priority(personal_account: Account) -> None:
    """Without a flagged default, the best priority wins."""
    other = Account(id="O", display_name="Other", email="o@x.y", git_user_name="O", priority=3)
    registry = AccountRegistry([personal_account, other])
    default = registry.default_account()
    assert default is not None
    assert default.id == "O"
    assert AccountRegistry().default_account() is None


def test_new_default_clears_previous(work_account: Account, personal_account: Account) -> None:
    """Only one account is flagged default at a time."""
    registry = AccountRegistry([work_account, personal_account])
    registry.upsert(personal_account.model_copy(update={"is_default": True}))
    flagged = [account.id for account in registry.all() if account.is_default]
    assert flagged == ["P"]


def test_find_by_identity_matches_email_case_insensitively(work_account: Account) -> None:
    """Identity lookup is keyed by email."""
    registry = AccountRegistry([work_account])
    found = registry.find_by_identity(GitIdentity(name="Someone", email="WENDY@acme.com"))
    assert found is not None
    assert found.id == "W"
    assert registry.find_by_identity(GitIdentity(name="Wendy Work")) is None


def test_find_by_identity_prefers_name_match() -> None:
    """Two accounts sharing an email are told apart by name."""
    first = Account(id="A", display_name="A", email="shared@x.y", git_user_name="Alpha")
    second = Account(id="B", display_name="B", email="shared@x.y", git_user_name="Beta")
    registry = AccountRegistry([first, second])
    found = registry.find_by_identity(GitIdentity(name="Beta", email="shared@x.y"))
    assert found is not None
    assert found.id == "B"


def test_label_mentions_display_name_and_email(work_account: Account) -> None:
    """Labels make reasons readable."""
    registry = AccountRegistry([work_account])
    assert registry.label("W") == "'W' (Work <wendy@acme.com>)"
    assert registry.label("gone") == "'gone'"


def test_project_paths_are_unique() -> None:
    """Registering a second project at the same path fails."""
    registry = ProjectRegistry([Project(id="one", path="/src/app/", name="app")])
    with pytest.raises(DuplicateProject):
        registry.add(Project(id="two", path="/src/app", name="copy"))
    found = registry.find_by_path("/src/app")
    assert found is not None
    assert found.id == "one"


def test_project_replace_and_remove() -> None:
    """Replacing keeps the path index in sync."""
    registry = ProjectRegistry([Project(id="one", path="/src/app", name="app")])
    registry.replace(Project(id="one", path="/src/moved", name="app"))
    assert registry.find_by_path("/src/app") is None
    assert registry.find_by_path("/src/moved") is not None
    registry.remove("one")
    with pytest.raises(UnknownProject):
        registry.require("one")
