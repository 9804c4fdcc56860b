"""Request/response boundary owning the registries and the terminal write step."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .enforcer import EnforcementResult, HookEnforcer, IdentityWriter, PreCommitEvent
from .errors import DuplicateProject, ErrorKind, GitPersonaError, InvalidRequest, PolicyConflict, RecordInUse
from .matcher import PatternMatcher, validate_pattern
from .models import (
    Account,
    AuditEvent,
    BranchPolicy,
    Config,
    CurrentIdentity,
    Decision,
    Direction,
    EnforcementSettings,
    GitIdentity,
    MatchContext,
    Pattern,
    PolicyVerdict,
    Project,
    RecordKind,
    RemoteMapping,
    RemoteResolution,
    Verdict,
)
from .policy import BranchPolicyEngine, validate_policy
from .registry import AccountRegistry, ProjectRegistry
from .remotes import MultiRemoteManager
from .suggest import SmartSuggestionEngine, pattern_accuracy, utc_now
from .urls import detect_organization, detect_platform

if TYPE_CHECKING:
    from gitpersona.io.audit import AuditTrail
    from gitpersona.io.logging import StructuredLogger
    from gitpersona.io.store import ConfigStore


class Request(BaseModel):
    """Inbound request from the presentation or CLI layer."""

    operation: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ErrorInfo(BaseModel):
    """Plain-language error carried by a failed response."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class Response(BaseModel):
    """Outbound response for a :class:`Request`."""

    success: bool
    data: Any = None
    error: ErrorInfo | None = None
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ConfigBundle(BaseModel):
    """Exportable subset of the configuration."""

    version: int = 1
    accounts: list[Account] = Field(default_factory=list)
    projects: list[Project] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    policies: list[BranchPolicy] = Field(default_factory=list)
    mappings: list[RemoteMapping] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ImportIssue(BaseModel):
    """A record rejected during import."""

    kind: RecordKind
    record_id: str
    error: ErrorKind
    message: str


class ImportReport(BaseModel):
    """Summary of an import run."""

    imported: dict[str, int] = Field(default_factory=dict)
    skipped: dict[str, int] = Field(default_factory=dict)
    rejected: list[ImportIssue] = Field(default_factory=list)


@dataclass(slots=True)
class Snapshot:
    """Registries loaded from the store for the duration of one operation."""

    accounts: AccountRegistry
    projects: ProjectRegistry
    patterns: list[Pattern]
    policies: list[BranchPolicy]
    mappings: list[RemoteMapping]


@dataclass(slots=True)
class StagedWrites:
    """Writes collected during an operation and committed in one terminal step."""

    records: dict[RecordKind, list[BaseModel]] = field(default_factory=dict)
    events: list[AuditEvent] = field(default_factory=list)

    def stage(self, kind: RecordKind, records: Sequence[BaseModel]) -> None:
        """Stage the full replacement collection for ``kind``."""
        self.records[kind] = list(records)

    def commit(self, store: ConfigStore, audit: AuditTrail | None) -> None:
        """Persist staged collections, then emit staged audit events."""
        for kind in RecordKind:
            if kind in self.records:
                store.save(kind, self.records[kind])
        if audit is not None:
            for event in self.events:
                audit.emit(event)
        self.discard()

    def discard(self) -> None:
        """Drop everything staged."""
        self.records.clear()
        self.events.clear()


class ProjectLocks:
    """Per-project mutual exclusion for concurrent operations in one process."""

    def __init__(self) -> None:
        """Create an empty lock table."""
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, project_id: str | None) -> Iterator[None]:
        """Hold the lock for ``project_id``; ``None`` holds nothing."""
        if project_id is None:
            yield
            return
        with self._guard:
            lock = self._locks.setdefault(project_id, threading.Lock())
        with lock:
            yield


class IdentityService:
    """Entry point for every identity operation issued by the surrounding application."""

    def __init__(
        self,
        store: ConfigStore,
        *,
        config: Config | None = None,
        audit: AuditTrail | None = None,
        logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Bind the service to a store and optional audit trail and logger."""
        self._store = store
        self._config = config or Config()
        self._audit = audit
        self._logger = logger
        self._clock = clock or utc_now
        self._locks = ProjectLocks()
        self._write_lock = threading.Lock()

    @property
    def config(self) -> Config:
        """Return the active configuration."""
        return self._config

    # Loading and wiring

    def snapshot(self) -> Snapshot:
        """Load every registry from the store."""
        return Snapshot(
            accounts=AccountRegistry(self._store.load(RecordKind.accounts)),
            projects=ProjectRegistry(self._store.load(RecordKind.projects)),
            patterns=list(self._store.load(RecordKind.patterns)),
            policies=list(self._store.load(RecordKind.policies)),
            mappings=list(self._store.load(RecordKind.mappings)),
        )

    def _suggestions(self, snap: Snapshot) -> SmartSuggestionEngine:
        matcher = PatternMatcher(snap.patterns, weights=self._config.scoring)
        return SmartSuggestionEngine(snap.accounts, matcher, weights=self._config.scoring, clock=self._clock)

    def _remotes(self, snap: Snapshot) -> MultiRemoteManager:
        return MultiRemoteManager(snap.projects, snap.accounts, snap.mappings, suggestions=self._suggestions(snap))

    def _policy_engine(self, snap: Snapshot) -> BranchPolicyEngine:
        return BranchPolicyEngine(snap.policies, accounts=snap.accounts)

    @contextmanager
    def _transaction(self, project_id: str | None = None) -> Iterator[tuple[Snapshot, StagedWrites]]:
        """Load a snapshot and commit staged writes on success.

        Every store collection holds records of all projects, so writers are
        serialised service-wide from load to commit; the project lock is
        taken first.
        """
        with self._locks.hold(project_id), self._write_lock:
            snap = self.snapshot()
            staged = StagedWrites()
            try:
                yield snap, staged
            except BaseException:
                staged.discard()
                raise
            staged.commit(self._store, self._audit)

    # Resolution

    def project_for_path(self, path: str) -> Project | None:
        """Return the project registered at ``path``."""
        return self.snapshot().projects.find_by_path(path)

    def resolve(
        self,
        *,
        project_id: str | None = None,
        path: str | None = None,
        remote_url: str | None = None,
    ) -> Decision:
        """Decide which account should be active for a repository context.

        Resolving a registered project records the decision's confidence on
        the project; the store is only written when that value changes.
        """
        if project_id is None:
            return self._decide(self.snapshot(), None, path, remote_url)
        with self._transaction(project_id) as (snap, staged):
            project = snap.projects.require(project_id)
            decision = self._decide(snap, project_id, path or project.path, remote_url or project.primary_remote_url)
            if project.confidence != decision.confidence:
                snap.projects.replace(project.model_copy(update={"confidence": decision.confidence}))
                staged.stage(RecordKind.projects, snap.projects.all())
        return decision

    def _decide(self, snap: Snapshot, project_id: str | None, path: str | None, remote_url: str | None) -> Decision:
        context = {"project_id": project_id, "path": path, "remote_url": remote_url}
        suggestion = self._suggestions(snap).suggest(MatchContext(path=path, remote_url=remote_url))
        if suggestion is not None:
            return Decision(
                requested_context=context,
                suggested_account_id=suggestion.account_id,
                confidence=suggestion.confidence,
                matched_pattern_ids=suggestion.matched_pattern_ids,
                reasons=(suggestion.reason, *(f"skipped pattern {e.pattern_id}: {e.message}" for e in suggestion.errors)),
                ambiguous=suggestion.ambiguous,
            )
        fallback = snap.accounts.default_account()
        if fallback is None:
            return Decision(requested_context=context, reasons=("no accounts are configured",))
        return Decision(
            requested_context=context,
            suggested_account_id=fallback.id,
            confidence=0.0,
            reasons=(f"no pattern matched; falling back to default account {snap.accounts.label(fallback.id)}",),
        )

    def accept_suggestion(self, project_id: str, account_id: str, confidence: float) -> dict[str, Any]:
        """Record an explicit user confirmation of ``account_id`` for ``project_id``."""
        with self._transaction(project_id) as (snap, staged):
            project = snap.projects.require(project_id)
            outcome = self._suggestions(snap).accept(project, account_id, confidence)
            snap.accounts.upsert(outcome.account)
            snap.projects.replace(outcome.project)
            staged.stage(RecordKind.accounts, snap.accounts.all())
            staged.stage(RecordKind.projects, snap.projects.all())
            staged.events.append(outcome.event)
        return {
            "account": outcome.account.model_dump(mode="json"),
            "project": outcome.project.model_dump(mode="json"),
        }

    def reject_suggestion(self, project_id: str, account_id: str, confidence: float) -> AuditEvent:
        """Record a rejected suggestion; registries are untouched."""
        with self._transaction(project_id) as (snap, staged):
            project = snap.projects.require(project_id)
            snap.accounts.require(account_id)
            event = self._suggestions(snap).reject(project, account_id, confidence)
            staged.events.append(event)
        return event

    def pattern_accuracy(self, window: int | None = None) -> float | None:
        """Return the acceptance ratio over the configured sliding window."""
        events = self._audit.history() if self._audit is not None else []
        return pattern_accuracy(events, window=window or self._config.audit.accuracy_window)

    def validate(
        self,
        project_id: str,
        branch_name: str,
        *,
        account_id: str | None = None,
        identity: GitIdentity | None = None,
        has_valid_signature: bool = False,
        user_id: str | None = None,
    ) -> PolicyVerdict:
        """Validate a proposed commit against the branch policies of ``project_id``."""
        with self._locks.hold(project_id):
            snap = self.snapshot()
        snap.projects.require(project_id)
        if account_id is not None:
            account = snap.accounts.require(account_id)
            current = CurrentIdentity(account_id=account.id, name=account.git_user_name, email=account.email)
        else:
            identity = identity or GitIdentity()
            match = snap.accounts.find_by_identity(identity)
            current = CurrentIdentity(
                account_id=match.id if match else None,
                name=identity.name,
                email=identity.email,
            )
        return self._policy_engine(snap).validate(project_id, branch_name, current, has_valid_signature, user_id)

    def pre_commit(
        self,
        event: PreCommitEvent,
        *,
        settings: EnforcementSettings | None = None,
        writer: IdentityWriter | None = None,
    ) -> EnforcementResult:
        """Run the hook enforcer for ``event`` under the project lock."""
        with self._locks.hold(event.project_id):
            snap = self.snapshot()
            enforcer = HookEnforcer(
                snap.accounts,
                self._remotes(snap),
                self._policy_engine(snap),
                settings=settings or self._config.enforcement,
                writer=writer,
                audit=self._audit,
                logger=self._logger,
                clock=self._clock,
            )
            return enforcer.handle(event)

    def resolve_remote(self, project_id: str, remote_name: str, direction: Direction = Direction.push) -> RemoteResolution:
        """Return the account for a remote-qualified operation."""
        with self._locks.hold(project_id):
            snap = self.snapshot()
        return self._remotes(snap).resolve_for_remote(project_id, remote_name, direction)

    # Remote mappings

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
        """Bind a remote to an account; default flags stay single-writer."""
        with self._transaction(project_id) as (snap, staged):
            remotes = self._remotes(snap)
            mapping = remotes.set_mapping(
                project_id,
                remote_name,
                account_id,
                sign_commits=sign_commits,
                is_default_push=is_default_push,
                is_default_pull=is_default_pull,
            )
            staged.stage(RecordKind.mappings, remotes.mappings)
        return mapping

    def remove_mapping(self, project_id: str, remote_name: str) -> RemoteMapping:
        """Delete the mapping for ``remote_name``."""
        with self._transaction(project_id) as (snap, staged):
            remotes = self._remotes(snap)
            mapping = remotes.remove_mapping(project_id, remote_name)
            staged.stage(RecordKind.mappings, remotes.mappings)
        return mapping

    def list_mappings(self, project_id: str | None = None) -> list[RemoteMapping]:
        """Return mappings, optionally restricted to one project."""
        mappings = self.snapshot().mappings
        return [mapping for mapping in mappings if project_id is None or mapping.project_id == project_id]

    # Accounts

    def add_account(self, account: Account) -> Account:
        """Insert or replace ``account``."""
        with self._transaction() as (snap, staged):
            snap.accounts.upsert(account)
            staged.stage(RecordKind.accounts, snap.accounts.all())
        return account

    def update_account(self, account_id: str, changes: Mapping[str, Any]) -> Account:
        """Apply ``changes`` to an existing account after re-validating it."""
        with self._transaction() as (snap, staged):
            current = snap.accounts.require(account_id)
            merged = {**current.model_dump(), **dict(changes), "id": account_id}
            updated = Account.model_validate(merged)
            snap.accounts.upsert(updated)
            staged.stage(RecordKind.accounts, snap.accounts.all())
        return updated

    def remove_account(self, account_id: str) -> Account:
        """Delete an account no pattern, policy, mapping or project still references."""
        with self._transaction() as (snap, staged):
            snap.accounts.require(account_id)
            users = [
                *(f"pattern {item.id}" for item in snap.patterns if item.account_id == account_id),
                *(f"policy {item.id}" for item in snap.policies if item.required_account_id == account_id),
                *(
                    f"mapping {item.project_id}/{item.remote_name}"
                    for item in snap.mappings
                    if item.account_id == account_id
                ),
                *(f"project {item.id}" for item in snap.projects.all() if item.account_id == account_id),
            ]
            if users:
                msg = f"account '{account_id}' is still referenced by {', '.join(users)}"
                raise RecordInUse(msg, account_id=account_id, references=users)
            removed = snap.accounts.remove(account_id)
            staged.stage(RecordKind.accounts, snap.accounts.all())
        return removed

    def list_accounts(self) -> list[Account]:
        """Return every account ordered by priority."""
        return self.snapshot().accounts.all()

    # Projects

    def add_project(
        self,
        path: str,
        *,
        name: str | None = None,
        remote_urls: Mapping[str, str] | None = None,
        project_id: str | None = None,
    ) -> Project:
        """Register a repository; organisation and platform come from the primary remote."""
        remotes = dict(remote_urls or {})
        fields: dict[str, Any] = {
            "path": path,
            "name": name or path.rstrip("/").rsplit("/", 1)[-1] or path,
            "remote_urls": remotes,
        }
        if project_id is not None:
            fields["id"] = project_id
        project = Project(**fields)
        primary = project.primary_remote_url
        if primary:
            project = project.model_copy(
                update={"organization": detect_organization(primary), "platform": detect_platform(primary)},
            )
        with self._transaction() as (snap, staged):
            snap.projects.add(project)
            staged.stage(RecordKind.projects, snap.projects.all())
        return project

    def remove_project(self, project_id: str) -> Project:
        """Delete a project that has no mappings or project-scoped policies."""
        with self._transaction(project_id) as (snap, staged):
            users = [
                *(f"mapping {item.remote_name}" for item in snap.mappings if item.project_id == project_id),
                *(f"policy {item.id}" for item in snap.policies if item.project_id == project_id),
            ]
            if users:
                msg = f"project '{project_id}' is still referenced by {', '.join(users)}"
                raise RecordInUse(msg, project_id=project_id, references=users)
            removed = snap.projects.remove(project_id)
            staged.stage(RecordKind.projects, snap.projects.all())
        return removed

    def list_projects(self) -> list[Project]:
        """Return every project ordered by path."""
        return self.snapshot().projects.all()

    # Patterns and policies

    def add_pattern(self, pattern: Pattern) -> Pattern:
        """Validate and store ``pattern``."""
        with self._transaction() as (snap, staged):
            self._check_pattern(pattern, snap)
            snap.patterns = [item for item in snap.patterns if item.id != pattern.id] + [pattern]
            staged.stage(RecordKind.patterns, snap.patterns)
        return pattern

    def remove_pattern(self, pattern_id: str) -> Pattern:
        """Delete a pattern by id."""
        with self._transaction() as (snap, staged):
            removed = _pop_by_id(snap.patterns, pattern_id, "pattern")
            staged.stage(RecordKind.patterns, snap.patterns)
        return removed

    def list_patterns(self) -> list[Pattern]:
        """Return every stored pattern."""
        return self.snapshot().patterns

    def add_policy(self, policy: BranchPolicy) -> BranchPolicy:
        """Validate and store ``policy``."""
        with self._transaction(policy.project_id) as (snap, staged):
            self._check_policy(policy, snap)
            snap.policies = [item for item in snap.policies if item.id != policy.id] + [policy]
            staged.stage(RecordKind.policies, snap.policies)
        return policy

    def remove_policy(self, policy_id: str) -> BranchPolicy:
        """Delete a branch policy by id."""
        with self._transaction() as (snap, staged):
            removed = _pop_by_id(snap.policies, policy_id, "policy")
            staged.stage(RecordKind.policies, snap.policies)
        return removed

    def list_policies(self, project_id: str | None = None) -> list[BranchPolicy]:
        """Return policies, optionally those that apply to one project."""
        policies = self.snapshot().policies
        if project_id is None:
            return policies
        return [policy for policy in policies if policy.project_id in {None, project_id}]

    # Import / export

    def export_config(self, kinds: Sequence[RecordKind] | None = None) -> ConfigBundle:
        """Export the selected record kinds (all by default)."""
        selected = set(kinds or RecordKind)
        snap = self.snapshot()
        return ConfigBundle(
            accounts=snap.accounts.all() if RecordKind.accounts in selected else [],
            projects=snap.projects.all() if RecordKind.projects in selected else [],
            patterns=snap.patterns if RecordKind.patterns in selected else [],
            policies=snap.policies if RecordKind.policies in selected else [],
            mappings=snap.mappings if RecordKind.mappings in selected else [],
        )

    def import_config(self, bundle: ConfigBundle, *, overwrite: bool = False) -> ImportReport:
        """Validate each record with the interactive rules, then insert it.

        Records that fail validation, such as those referencing unknown
        accounts, are rejected individually and listed in the report.
        """
        report = ImportReport()
        with self._transaction() as (snap, staged):
            touched: set[RecordKind] = set()

            def admit(kind: RecordKind, record_id: str, exists: bool, check: Callable[[], None]) -> bool:
                if exists and not overwrite:
                    report.skipped[kind.value] = report.skipped.get(kind.value, 0) + 1
                    return False
                try:
                    check()
                except GitPersonaError as exc:
                    report.rejected.append(
                        ImportIssue(kind=kind, record_id=record_id, error=exc.kind, message=exc.message),
                    )
                    return False
                report.imported[kind.value] = report.imported.get(kind.value, 0) + 1
                touched.add(kind)
                return True

            for account in bundle.accounts:
                if admit(RecordKind.accounts, account.id, account.id in snap.accounts, lambda: None):
                    snap.accounts.upsert(account)
            for project in bundle.projects:
                if admit(
                    RecordKind.projects,
                    project.id,
                    project.id in snap.projects,
                    lambda project=project: _check_project_import(project, snap),
                ):
                    snap.projects.add(project)
            for pattern in bundle.patterns:
                exists = any(item.id == pattern.id for item in snap.patterns)
                if admit(RecordKind.patterns, pattern.id, exists, lambda pattern=pattern: self._check_pattern(pattern, snap)):
                    snap.patterns = [item for item in snap.patterns if item.id != pattern.id] + [pattern]
            for policy in bundle.policies:
                exists = any(item.id == policy.id for item in snap.policies)
                if admit(RecordKind.policies, policy.id, exists, lambda policy=policy: self._check_policy(policy, snap)):
                    snap.policies = [item for item in snap.policies if item.id != policy.id] + [policy]
            remotes = MultiRemoteManager(snap.projects, snap.accounts, snap.mappings)
            for mapping in bundle.mappings:
                record_id = f"{mapping.project_id}/{mapping.remote_name}"
                exists = any(
                    item.project_id == mapping.project_id and item.remote_name == mapping.remote_name
                    for item in remotes.mappings
                )
                if admit(RecordKind.mappings, record_id, exists, lambda mapping=mapping: remotes.check_mapping(mapping)):
                    remotes.put(mapping)
            snap.mappings = list(remotes.mappings)

            collections: dict[RecordKind, Sequence[BaseModel]] = {
                RecordKind.accounts: snap.accounts.all(),
                RecordKind.projects: snap.projects.all(),
                RecordKind.patterns: snap.patterns,
                RecordKind.policies: snap.policies,
                RecordKind.mappings: snap.mappings,
            }
            for kind in touched:
                staged.stage(kind, collections[kind])
        if self._logger is not None:
            self._logger.info(
                "configuration imported",
                imported=report.imported,
                skipped=report.skipped,
                rejected=len(report.rejected),
            )
        return report

    def _check_pattern(self, pattern: Pattern, snap: Snapshot) -> None:
        validate_pattern(pattern)
        snap.accounts.require(pattern.account_id)

    def _check_policy(self, policy: BranchPolicy, snap: Snapshot) -> None:
        validate_policy(policy, snap.accounts)
        if policy.project_id is not None:
            snap.projects.require(policy.project_id)

    # Request boundary

    def handle(self, request: Request | Mapping[str, Any]) -> Response:
        """Dispatch a request and convert every failure into an error response."""
        try:
            parsed = request if isinstance(request, Request) else Request.model_validate(request)
        except ValidationError as exc:
            return _error_response(ErrorKind.invalid_request, "malformed request", errors=_validation_errors(exc))

        handler = OPERATION_HANDLERS.get(parsed.operation)
        if handler is None:
            return _error_response(
                ErrorKind.invalid_request,
                f"unknown operation '{parsed.operation}'",
                operations=sorted(OPERATION_HANDLERS),
            )
        try:
            data, warnings = handler(self, parsed.payload)
        except GitPersonaError as exc:
            return _error_response(exc.kind, exc.message, **exc.details)
        except ValidationError as exc:
            return _error_response(ErrorKind.invalid_request, "invalid payload", errors=_validation_errors(exc))
        except Exception as exc:  # noqa: BLE001 - the boundary never raises
            if self._logger is not None:
                self._logger.error("operation failed", operation=parsed.operation, error=str(exc))
            return _error_response(ErrorKind.internal_error, f"unexpected failure: {exc}")
        return Response(success=True, data=data, warnings=warnings)


def _error_response(kind: ErrorKind, message: str, **details: Any) -> Response:
    return Response(success=False, error=ErrorInfo(kind=kind, message=message, details=details))


def _validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]


def _pop_by_id(records: list[Any], record_id: str, label: str) -> Any:
    for index, record in enumerate(records):
        if record.id == record_id:
            return records.pop(index)
    msg = f"unknown {label} '{record_id}'"
    raise InvalidRequest(msg, id=record_id)


def _check_project_import(project: Project, snap: Snapshot) -> None:
    if project.account_id is not None:
        snap.accounts.require(project.account_id)
    existing = snap.projects.find_by_path(project.path)
    if existing is not None and existing.id != project.id:
        msg = f"project path '{project.path}' is already registered"
        raise DuplicateProject(msg, path=project.path, project_id=existing.id)


# Operation payloads


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _ResolvePayload(_Payload):
    project_id: str | None = None
    path: str | None = None
    remote_url: str | None = None


class _FeedbackPayload(_Payload):
    project_id: str
    account_id: str
    confidence: float = Field(ge=0.0, le=1.0)


class _ValidatePayload(_Payload):
    project_id: str
    branch_name: str
    account_id: str | None = None
    identity: GitIdentity | None = None
    has_valid_signature: bool = False
    user_id: str | None = None


class _PreCommitPayload(_Payload):
    event: PreCommitEvent
    settings: EnforcementSettings | None = None


class _RemotePayload(_Payload):
    project_id: str
    remote_name: str
    direction: Direction = Direction.push


class _SetMappingPayload(_Payload):
    project_id: str
    remote_name: str
    account_id: str
    sign_commits: bool = False
    is_default_push: bool = False
    is_default_pull: bool = False


class _IdPayload(_Payload):
    id: str


class _UpdateAccountPayload(_Payload):
    id: str
    changes: dict[str, Any]


class _AddProjectPayload(_Payload):
    path: str
    name: str | None = None
    remote_urls: dict[str, str] = Field(default_factory=dict)
    id: str | None = None


class _ListPayload(_Payload):
    project_id: str | None = None


class _ExportPayload(_Payload):
    kinds: list[RecordKind] | None = None


class _ImportPayload(_Payload):
    bundle: ConfigBundle
    overwrite: bool = False


class _AccuracyPayload(_Payload):
    window: int | None = Field(default=None, gt=0)


_Result = tuple[Any, list[str]]
OperationHandler = Callable[[IdentityService, dict[str, Any]], _Result]


def _dump(value: BaseModel | Sequence[BaseModel]) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return [item.model_dump(mode="json") for item in value]


def _op_resolve(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _ResolvePayload.model_validate(payload)
    decision = service.resolve(project_id=args.project_id, path=args.path, remote_url=args.remote_url)
    warnings: list[str] = []
    if decision.ambiguous:
        warnings.append(
            f"{ErrorKind.ambiguous_suggestion.value}: top candidates are within the ambiguity threshold;"
            " confirm the account before applying it",
        )
    return _dump(decision), warnings


def _op_accept(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _FeedbackPayload.model_validate(payload)
    return service.accept_suggestion(args.project_id, args.account_id, args.confidence), []


def _op_reject(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _FeedbackPayload.model_validate(payload)
    return _dump(service.reject_suggestion(args.project_id, args.account_id, args.confidence)), []


def _op_validate(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _ValidatePayload.model_validate(payload)
    verdict = service.validate(
        args.project_id,
        args.branch_name,
        account_id=args.account_id,
        identity=args.identity,
        has_valid_signature=args.has_valid_signature,
        user_id=args.user_id,
    )
    conflicts = [PolicyConflict(item.policy_ids, item.required_account_ids) for item in verdict.conflicts]
    return _dump(verdict), [f"{error.kind.value}: {error.message}" for error in conflicts]


def _op_pre_commit(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _PreCommitPayload.model_validate(payload)
    result = service.pre_commit(args.event, settings=args.settings)
    data = {
        "state": result.state.value,
        "exit_code": result.exit_code,
        "decision": _dump(result.decision),
        "messages": result.messages,
        "transitions": [state.value for state in result.transitions],
    }
    warnings = list(result.messages) if result.decision.verdict is Verdict.warn else []
    return data, warnings


def _op_resolve_remote(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _RemotePayload.model_validate(payload)
    return _dump(service.resolve_remote(args.project_id, args.remote_name, args.direction)), []


def _op_set_mapping(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _SetMappingPayload.model_validate(payload)
    mapping = service.set_mapping(
        args.project_id,
        args.remote_name,
        args.account_id,
        sign_commits=args.sign_commits,
        is_default_push=args.is_default_push,
        is_default_pull=args.is_default_pull,
    )
    return _dump(mapping), []


def _op_remove_mapping(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _RemotePayload.model_validate(payload)
    return _dump(service.remove_mapping(args.project_id, args.remote_name)), []


def _op_list_mappings(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _ListPayload.model_validate(payload)
    return _dump(service.list_mappings(args.project_id)), []


def _op_add_account(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.add_account(Account.model_validate(payload))), []


def _op_update_account(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _UpdateAccountPayload.model_validate(payload)
    return _dump(service.update_account(args.id, args.changes)), []


def _op_remove_account(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.remove_account(_IdPayload.model_validate(payload).id)), []


def _op_list_accounts(service: IdentityService, payload: dict[str, Any]) -> _Result:
    _Payload.model_validate(payload)
    return _dump(service.list_accounts()), []


def _op_add_project(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _AddProjectPayload.model_validate(payload)
    project = service.add_project(args.path, name=args.name, remote_urls=args.remote_urls, project_id=args.id)
    return _dump(project), []


def _op_remove_project(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.remove_project(_IdPayload.model_validate(payload).id)), []


def _op_list_projects(service: IdentityService, payload: dict[str, Any]) -> _Result:
    _Payload.model_validate(payload)
    return _dump(service.list_projects()), []


def _op_add_pattern(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.add_pattern(Pattern.model_validate(payload))), []


def _op_remove_pattern(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.remove_pattern(_IdPayload.model_validate(payload).id)), []


def _op_list_patterns(service: IdentityService, payload: dict[str, Any]) -> _Result:
    _Payload.model_validate(payload)
    return _dump(service.list_patterns()), []


def _op_add_policy(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.add_policy(BranchPolicy.model_validate(payload))), []


def _op_remove_policy(service: IdentityService, payload: dict[str, Any]) -> _Result:
    return _dump(service.remove_policy(_IdPayload.model_validate(payload).id)), []


def _op_list_policies(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _ListPayload.model_validate(payload)
    return _dump(service.list_policies(args.project_id)), []


def _op_export(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _ExportPayload.model_validate(payload)
    return _dump(service.export_config(args.kinds)), []


def _op_import(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _ImportPayload.model_validate(payload)
    report = service.import_config(args.bundle, overwrite=args.overwrite)
    warnings = [f"{issue.error.value}: {issue.kind.value} {issue.record_id}: {issue.message}" for issue in report.rejected]
    return _dump(report), warnings


def _op_accuracy(service: IdentityService, payload: dict[str, Any]) -> _Result:
    args = _AccuracyPayload.model_validate(payload)
    return {"pattern_accuracy": service.pattern_accuracy(args.window)}, []


OPERATION_HANDLERS: dict[str, OperationHandler] = {
    "resolve": _op_resolve,
    "accept-suggestion": _op_accept,
    "reject-suggestion": _op_reject,
    "validate": _op_validate,
    "pre-commit": _op_pre_commit,
    "resolve-remote": _op_resolve_remote,
    "set-mapping": _op_set_mapping,
    "remove-mapping": _op_remove_mapping,
    "list-mappings": _op_list_mappings,
    "add-account": _op_add_account,
    "update-account": _op_update_account,
    "remove-account": _op_remove_account,
    "list-accounts": _op_list_accounts,
    "add-project": _op_add_project,
    "remove-project": _op_remove_project,
    "list-projects": _op_list_projects,
    "add-pattern": _op_add_pattern,
    "remove-pattern": _op_remove_pattern,
    "list-patterns": _op_list_patterns,
    "add-policy": _op_add_policy,
    "remove-policy": _op_remove_policy,
    "list-policies": _op_list_policies,
    "export-config": _op_export,
    "import-config": _op_import,
    "pattern-accuracy": _op_accuracy,
}


__all__ = [
    "OPERATION_HANDLERS",
    "ConfigBundle",
    "ErrorInfo",
    "IdentityService",
    "ImportIssue",
    "ImportReport",
    "ProjectLocks",
    "Request",
    "Response",
    "Snapshot",
    "StagedWrites",
]
