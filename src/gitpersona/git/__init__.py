"""Git related helpers for gitpersona."""

from gitpersona.git.facade import GitCommandError, GitFacade
from gitpersona.git.hooks import HookInstaller, HookSettings
from gitpersona.git.observe import IdentityObserver, RepoIdentity

__all__ = [
    "GitCommandError",
    "GitFacade",
    "HookInstaller",
    "HookSettings",
    "IdentityObserver",
    "RepoIdentity",
]
