from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from gitpersona.core.models import GitIdentity

if TYPE_CHECKING:
    from gitpersona.git.facade import GitFacade

_REMOTE_URL_PATTERN = r"^remote\..*\.url$"
_TRUTHY = {"true", "yes", "on", "1"}


def _empty_remotes() -> dict[str, str]:
    """Return a new mapping for remote URLs."""
    return {}


@dataclass(frozen=True)
class RepoIdentity:
    """Identity-relevant state of a repository."""

    repo_path: Path
    branch: str | None
    identity: GitIdentity
    remotes: dict[str, str] = field(default_factory=_empty_remotes)

    @property
    def primary_remote_url(self) -> str | None:
        """Return ``origin`` when present, otherwise the first remote."""
        if "origin" in self.remotes:
            return self.remotes["origin"]
        return next(iter(self.remotes.values()), None)


class IdentityObserver:
    """Read the configured git identity, branch and remotes through the facade."""

    def __init__(self, facade: GitFacade) -> None:
        """Initialise the observer with a facade."""
        self._facade = facade

    def identity(self) -> GitIdentity:
        """Return the effective ``user.*`` and ``commit.gpgsign`` values."""
        gpg_sign = self._facade.get_config("commit.gpgsign")
        return GitIdentity(
            name=self._facade.get_config("user.name"),
            email=self._facade.get_config("user.email"),
            signing_key=self._facade.get_config("user.signingkey"),
            gpg_sign=(gpg_sign or "").lower() in _TRUTHY,
        )

    def remotes(self) -> dict[str, str]:
        """Return remote names mapped to their fetch URLs."""
        entries = self._facade.get_config_regexp(_REMOTE_URL_PATTERN)
        return _parse_remote_entries(entries)

    def observe(self) -> RepoIdentity:
        """Return a RepoIdentity for the facade's repository."""
        return RepoIdentity(
            repo_path=Path(self._facade.repo_path),
            branch=self._facade.current_branch(),
            identity=self.identity(),
            remotes=self.remotes(),
        )


def _parse_remote_entries(entries: dict[str, str]) -> dict[str, str]:
    remotes: dict[str, str] = {}
    for key, value in entries.items():
        # remote.<name>.url, where <name> may itself contain dots
        prefix, _, rest = key.partition(".")
        name, _, suffix = rest.rpartition(".")
        if prefix != "remote" or suffix != "url" or not name:
            continue
        remotes[name] = value
    return remotes


__all__ = ["IdentityObserver", "RepoIdentity"]
