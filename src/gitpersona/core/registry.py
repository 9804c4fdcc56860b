"""In-memory registries of accounts and projects."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .errors import DuplicateProject, UnknownAccount, UnknownProject

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import Account, GitIdentity, Project


class AccountRegistry:
    """Read-mostly view of configured accounts keyed by id."""

    def __init__(self, accounts: Iterable[Account] = ()) -> None:
        """Index ``accounts`` by id."""
        self._accounts: dict[str, Account] = {}
        for account in accounts:
            self._accounts[account.id] = account

    def __contains__(self, account_id: object) -> bool:
        """Return whether ``account_id`` is registered."""
        return account_id in self._accounts

    def __len__(self) -> int:
        """Return the number of registered accounts."""
        return len(self._accounts)

    def all(self) -> list[Account]:
        """Return every account ordered by priority then id."""
        return sorted(self._accounts.values(), key=lambda account: (account.priority, account.id))

    def get(self, account_id: str) -> Account | None:
        """Return the account for ``account_id`` or ``None``."""
        return self._accounts.get(account_id)

    def require(self, account_id: str) -> Account:
        """Return the account for ``account_id`` or raise :class:`UnknownAccount`."""
        account = self._accounts.get(account_id)
        if account is None:
            raise UnknownAccount(account_id)
        return account

    def default_account(self) -> Account | None:
        """Return the default account, falling back to the lowest priority number."""
        for account in self.all():
            if account.is_default:
                return account
        accounts = self.all()
        return accounts[0] if accounts else None

    def find_by_identity(self, identity: GitIdentity) -> Account | None:
        """Return the account whose email (and name, when both match) fits ``identity``."""
        if not identity.email:
            return None
        email = identity.email.strip().lower()
        by_email = [account for account in self.all() if account.email.lower() == email]
        for account in by_email:
            if identity.name and account.git_user_name == identity.name.strip():
                return account
        return by_email[0] if by_email else None

    def label(self, account_id: str) -> str:
        """Return a label such as ``'W' (Work <me@acme.com>)``."""
        account = self._accounts.get(account_id)
        if account is None:
            return f"'{account_id}'"
        return f"'{account_id}' ({account.display_name} <{account.email}>)"

    def upsert(self, account: Account) -> None:
        """Insert or replace ``account``; a new default clears the previous one."""
        if account.is_default:
            for other_id, other in list(self._accounts.items()):
                if other_id != account.id and other.is_default:
                    self._accounts[other_id] = other.model_copy(update={"is_default": False})
        self._accounts[account.id] = account

    def remove(self, account_id: str) -> Account:
        """Remove and return the account for ``account_id``."""
        account = self.require(account_id)
        del self._accounts[account_id]
        return account


class ProjectRegistry:
    """Known repositories keyed by id with a unique path index."""

    def __init__(self, projects: Iterable[Project] = ()) -> None:
        """Index ``projects`` by id and path."""
        self._projects: dict[str, Project] = {}
        self._by_path: dict[str, str] = {}
        for project in projects:
            self.add(project)

    def __contains__(self, project_id: object) -> bool:
        """Return whether ``project_id`` is registered."""
        return project_id in self._projects

    def all(self) -> list[Project]:
        """Return every project ordered by path."""
        return sorted(self._projects.values(), key=lambda project: project.path)

    def get(self, project_id: str) -> Project | None:
        """Return the project for ``project_id`` or ``None``."""
        return self._projects.get(project_id)

    def require(self, project_id: str) -> Project:
        """Return the project for ``project_id`` or raise :class:`UnknownProject`."""
        project = self._projects.get(project_id)
        if project is None:
            raise UnknownProject(project_id)
        return project

    def find_by_path(self, path: str | Path) -> Project | None:
        """Return the project registered at ``path`` if any."""
        project_id = self._by_path.get(_path_key(path))
        return self._projects.get(project_id) if project_id else None

    def add(self, project: Project) -> None:
        """Register ``project``; the path must not already be taken."""
        key = _path_key(project.path)
        owner = self._by_path.get(key)
        if owner is not None and owner != project.id:
            msg = f"project path '{project.path}' is already registered"
            raise DuplicateProject(msg, path=project.path, project_id=owner)
        previous = self._projects.get(project.id)
        if previous is not None:
            self._by_path.pop(_path_key(previous.path), None)
        self._projects[project.id] = project
        self._by_path[key] = project.id

    def replace(self, project: Project) -> None:
        """Replace an existing project record."""
        self.require(project.id)
        self.add(project)

    def remove(self, project_id: str) -> Project:
        """Remove and return the project for ``project_id``."""
        project = self.require(project_id)
        del self._projects[project_id]
        self._by_path.pop(_path_key(project.path), None)
        return project


def _path_key(path: str | Path) -> str:
    return Path(path).expanduser().as_posix().rstrip("/") or "/"


__all__ = ["AccountRegistry", "ProjectRegistry"]
