"""Helpers shared across CLI commands for wiring the identity service."""

from __future__ import annotations

import io
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from gitpersona.core.enforcer import PreCommitEvent
from gitpersona.core.models import Config, Direction, EnforcementSettings
from gitpersona.core.service import IdentityService
from gitpersona.git.facade import GitCommandError, GitFacade
from gitpersona.git.hooks import HookInstaller
from gitpersona.git.observe import IdentityObserver, RepoIdentity
from gitpersona.io import AuditTrail, JsonConfigStore, JsonlAuditSink, StructuredLogger, load_config
from gitpersona.io.config import CONFIG_FILENAME, default_home

if TYPE_CHECKING:
    from gitpersona.core.models import Project

AUDIT_FILENAME = "audit.jsonl"


@dataclass(slots=True)
class CliContext:
    """Container bundling CLI dependencies."""

    repo_path: Path
    home: Path
    config: Config
    logger: StructuredLogger
    facade: GitFacade
    observer: IdentityObserver
    service: IdentityService

    def hook_installer(self) -> HookInstaller:
        """Return an installer bound to the repository's ``.git`` directory."""
        return HookInstaller(self.facade.git_dir(), logger=self.logger)

    def enforcement_settings(self) -> EnforcementSettings:
        """Return configured settings overlaid with the repository's hook settings."""
        settings = self.config.enforcement
        try:
            stored = self.hook_installer().load_settings()
        except GitCommandError:
            return settings
        return stored.apply(settings) if stored is not None else settings

    def observe(self) -> RepoIdentity:
        """Return the identity state of the repository."""
        return self.observer.observe()

    def current_project(self) -> Project | None:
        """Return the registered project for the repository root, if any."""
        root = self.facade.repository_root()
        return self.service.project_for_path(str(root))

    def pre_commit_event(
        self,
        project: Project,
        state: RepoIdentity,
        *,
        remote_name: str | None = None,
        direction: Direction = Direction.push,
    ) -> PreCommitEvent:
        """Build the enforcer input from observed repository state."""
        return PreCommitEvent(
            project_id=project.id,
            branch_name=state.branch or "HEAD",
            current_git_config=state.identity,
            remote_name=remote_name,
            direction=direction,
        )


def load_cli_config(config_path: Path | None) -> Config:
    """Load ``config_path``, else ``<home>/gitpersona.toml`` when present, else defaults."""
    if config_path is not None:
        return load_config(path=config_path)
    candidate = default_home() / CONFIG_FILENAME
    if candidate.is_file():
        return load_config(path=candidate)
    return Config()


def build_cli_context(
    repo_path: Path,
    config: Config,
    *,
    json_logs: bool,
    silence_logs: bool,
    verbose: bool = False,
    dry_run: bool = False,
) -> CliContext:
    """Assemble the context required by CLI commands."""
    stream = io.StringIO() if silence_logs else sys.stderr
    logger = StructuredLogger(
        name="gitpersona.cli",
        json_mode=json_logs,
        stream=stream,
        level="DEBUG" if verbose else "WARNING",
    )
    home = Path(config.store_dir).expanduser() if config.store_dir else default_home()
    audit_path = Path(config.audit.path).expanduser() if config.audit.path else home / AUDIT_FILENAME
    audit = AuditTrail(JsonlAuditSink(audit_path), logger=logger.child("audit"))
    service = IdentityService(
        JsonConfigStore(home),
        config=config,
        audit=audit,
        logger=logger.child("service"),
    )
    facade = GitFacade(repo_path=repo_path, logger=logger.child("git"), dry_run=dry_run)
    return CliContext(
        repo_path=repo_path,
        home=home,
        config=config,
        logger=logger,
        facade=facade,
        observer=IdentityObserver(facade),
        service=service,
    )


__all__ = ["AUDIT_FILENAME", "CliContext", "build_cli_context", "load_cli_config"]
