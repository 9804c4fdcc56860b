"""Per-remote account bindings and remote-qualified resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import UnknownRemote
from .models import Direction, MatchContext, RemoteMapping, RemoteResolution

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import Project
    from .registry import AccountRegistry, ProjectRegistry
    from .suggest import SmartSuggestionEngine


class MultiRemoteManager:
    """Map each remote of a project to an account and signing preference."""

    def __init__(
        self,
        projects: ProjectRegistry,
        accounts: AccountRegistry,
        mappings: Iterable[RemoteMapping] = (),
        *,
        suggestions: SmartSuggestionEngine | None = None,
    ) -> None:
        """Create a manager over registry snapshots and stored mappings."""
        self._projects = projects
        self._accounts = accounts
        self._suggestions = suggestions
        self._mappings: dict[tuple[str, str], RemoteMapping] = {}
        for mapping in mappings:
            self._mappings[(mapping.project_id, mapping.remote_name)] = mapping

    @property
    def mappings(self) -> tuple[RemoteMapping, ...]:
        """Return every mapping in a stable order."""
        return tuple(self._mappings[key] for key in sorted(self._mappings))

    def mappings_for(self, project_id: str) -> tuple[RemoteMapping, ...]:
        """Return the mappings configured for ``project_id``."""
        return tuple(mapping for mapping in self.mappings if mapping.project_id == project_id)

    def check_mapping(self, mapping: RemoteMapping) -> None:
        """Raise when ``mapping`` references an unknown project, remote or account."""
        project = self._projects.require(mapping.project_id)
        if mapping.remote_name not in project.remote_urls:
            raise UnknownRemote(project.id, mapping.remote_name)
        self._accounts.require(mapping.account_id)

    def set_mapping(
        self,
        project_id: str,
        remote_name: str,
        account_id: str,
        *,
        sign_commits: bool = False,
        is_default_push: bool = False,
        is_default_pull: bool = False,
    ) -> RemoteMapping:
        """Bind ``remote_name`` of ``project_id`` to ``account_id``.

        Setting a default push or pull flag clears that flag on every other
        mapping of the same project.
        """
        mapping = RemoteMapping(
            project_id=project_id,
            remote_name=remote_name,
            account_id=account_id,
            sign_commits=sign_commits,
            is_default_push=is_default_push,
            is_default_pull=is_default_pull,
        )
        return self.put(mapping)

    def put(self, mapping: RemoteMapping) -> RemoteMapping:
        """Validate and store ``mapping``, enforcing single default flags."""
        self.check_mapping(mapping)
        updated = dict(self._mappings)
        for key, other in self._mappings.items():
            if other.project_id != mapping.project_id or other.remote_name == mapping.remote_name:
                continue
            changes: dict[str, bool] = {}
            if mapping.is_default_push and other.is_default_push:
                changes["is_default_push"] = False
            if mapping.is_default_pull and other.is_default_pull:
                changes["is_default_pull"] = False
            if changes:
                updated[key] = other.model_copy(update=changes)
        updated[(mapping.project_id, mapping.remote_name)] = mapping
        self._mappings = updated
        return mapping

    def remove_mapping(self, project_id: str, remote_name: str) -> RemoteMapping:
        """Delete the mapping for ``remote_name`` and return it."""
        mapping = self._mappings.pop((project_id, remote_name), None)
        if mapping is None:
            raise UnknownRemote(project_id, remote_name)
        return mapping

    def resolve_for_remote(
        self,
        project_id: str,
        remote_name: str,
        direction: Direction = Direction.push,
    ) -> RemoteResolution:
        """Return the account that applies to ``remote_name`` for ``direction``.

        Looks for an explicit mapping, then the project's default push/pull
        mapping, then a suggestion computed from the remote's URL.
        """
        project = self._projects.require(project_id)
        if remote_name not in project.remote_urls:
            raise UnknownRemote(project_id, remote_name)

        explicit = self._mappings.get((project_id, remote_name))
        if explicit is not None:
            return self._from_mapping(explicit, remote_name, direction, source="explicit")

        default = self._default_mapping(project_id, direction)
        if default is not None:
            return self._from_mapping(default, remote_name, direction, source=f"default_{_flag(direction)}")

        return self._from_suggestion(project, remote_name, direction, project.remote_urls[remote_name])

    def resolve_default(self, project_id: str, direction: Direction = Direction.push) -> RemoteResolution:
        """Resolve without a remote name: default mapping, then suggestion on the primary remote."""
        project = self._projects.require(project_id)
        default = self._default_mapping(project_id, direction)
        if default is not None:
            return self._from_mapping(default, default.remote_name, direction, source=f"default_{_flag(direction)}")
        return self._from_suggestion(project, None, direction, project.primary_remote_url)

    def _default_mapping(self, project_id: str, direction: Direction) -> RemoteMapping | None:
        for mapping in self.mappings_for(project_id):
            if direction is Direction.push and mapping.is_default_push:
                return mapping
            if direction is not Direction.push and mapping.is_default_pull:
                return mapping
        return None

    def _from_mapping(
        self,
        mapping: RemoteMapping,
        remote_name: str,
        direction: Direction,
        *,
        source: str,
    ) -> RemoteResolution:
        return RemoteResolution(
            project_id=mapping.project_id,
            remote_name=remote_name,
            direction=direction,
            account_id=mapping.account_id,
            source=source,
            sign_commits=mapping.sign_commits,
            confidence=1.0,
        )

    def _from_suggestion(
        self,
        project: Project,
        remote_name: str | None,
        direction: Direction,
        url: str | None,
    ) -> RemoteResolution:
        suggestion = None
        if self._suggestions is not None:
            suggestion = self._suggestions.suggest(MatchContext(path=project.path, remote_url=url))
        if suggestion is None:
            return RemoteResolution(
                project_id=project.id,
                remote_name=remote_name,
                direction=direction,
                account_id=None,
                source="none",
            )
        return RemoteResolution(
            project_id=project.id,
            remote_name=remote_name,
            direction=direction,
            account_id=suggestion.account_id,
            source="ambiguous_suggestion" if suggestion.ambiguous else "suggestion",
            confidence=suggestion.confidence,
            matched_pattern_ids=suggestion.matched_pattern_ids,
        )


def _flag(direction: Direction) -> str:
    return "push" if direction is Direction.push else "pull"


__all__ = ["MultiRemoteManager"]
