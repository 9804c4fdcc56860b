"""Pre-commit / pre-push identity enforcement state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ConfigDict

from .errors import GitPersonaError, InternalError
from .models import (
    AuditEvent,
    AuditEventType,
    CurrentIdentity,
    Decision,
    Direction,
    Enforcement,
    EnforcementSettings,
    GitIdentity,
    PolicyVerdict,
    RemoteResolution,
    Verdict,
)
from .suggest import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from gitpersona.io.audit import AuditTrail
    from gitpersona.io.logging import StructuredLogger

    from .models import Account
    from .policy import BranchPolicyEngine
    from .registry import AccountRegistry
    from .remotes import MultiRemoteManager


class EnforcerState(str, Enum):
    """States of the hook enforcer."""

    idle = "Idle"
    resolving = "Resolving"
    validating = "Validating"
    blocked = "Blocked"
    warned = "Warned"
    corrected = "Corrected"
    allowed = "Allowed"


_TERMINAL_FOR_VERDICT = {
    Verdict.block: EnforcerState.blocked,
    Verdict.warn: EnforcerState.warned,
    Verdict.allow: EnforcerState.allowed,
}


class IdentityWriter(Protocol):
    """Rewrites the repository-local git identity."""

    def apply_identity(self, account: Account) -> None:
        """Set local ``user.name``, ``user.email`` and signing key from ``account``."""
        ...


class PreCommitEvent(BaseModel):
    """Input of a pre-commit or pre-push check."""

    project_id: str
    branch_name: str
    current_git_config: GitIdentity
    has_valid_signature: bool | None = None
    user_id: str | None = None
    remote_name: str | None = None
    direction: Direction = Direction.push

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def signature_available(self) -> bool:
        """Return the explicit signature flag, or infer it from signing config."""
        if self.has_valid_signature is not None:
            return self.has_valid_signature
        config = self.current_git_config
        return bool(config.gpg_sign and config.signing_key)


@dataclass(slots=True)
class EnforcementResult:
    """Terminal outcome of one enforcer run."""

    state: EnforcerState
    decision: Decision
    exit_code: int
    messages: list[str] = field(default_factory=list)
    transitions: list[EnforcerState] = field(default_factory=list)
    policy_verdict: PolicyVerdict | None = None
    corrected_account_id: str | None = None
    events: list[AuditEvent] = field(default_factory=list)


@dataclass(slots=True)
class _Resolved:
    expected: RemoteResolution
    current: CurrentIdentity


class HookEnforcer:
    """Decide whether a commit proceeds, and optionally correct the identity.

    ``Idle -> Resolving -> Validating -> {Blocked, Warned, Corrected, Allowed} -> Idle``
    """

    def __init__(
        self,
        accounts: AccountRegistry,
        remotes: MultiRemoteManager,
        policies: BranchPolicyEngine,
        *,
        settings: EnforcementSettings | None = None,
        writer: IdentityWriter | None = None,
        audit: AuditTrail | None = None,
        logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Wire the enforcer to its collaborators."""
        self._accounts = accounts
        self._remotes = remotes
        self._policies = policies
        self._settings = settings or EnforcementSettings()
        self._writer = writer
        self._audit = audit
        self._logger = logger
        self._clock = clock or utc_now
        self._state = EnforcerState.idle
        self._transitions: list[EnforcerState] = []

    @property
    def state(self) -> EnforcerState:
        """Return the current state; ``Idle`` between runs."""
        return self._state

    @property
    def settings(self) -> EnforcementSettings:
        """Return the active enforcement settings."""
        return self._settings

    def handle(self, event: PreCommitEvent) -> EnforcementResult:
        """Run one pre-commit check for ``event`` and return to ``Idle``."""
        self._transitions = []
        try:
            return self._run(event)
        finally:
            self._state = EnforcerState.idle

    def _run(self, event: PreCommitEvent) -> EnforcementResult:
        context = {
            "project_id": event.project_id,
            "branch_name": event.branch_name,
            "remote_name": event.remote_name,
            "direction": event.direction.value,
        }
        if self._settings.validation_level is Enforcement.off:
            self._enter(EnforcerState.allowed)
            decision = Decision(requested_context=context, reasons=("identity validation is disabled",))
            return self._finish(EnforcerState.allowed, decision, messages=list(decision.reasons))

        self._enter(EnforcerState.resolving)
        try:
            resolved = self._resolve(event)
        except Exception as exc:  # noqa: BLE001 - any fault must fail closed or loudly open
            return self._internal_error(event, context, exc)

        self._enter(EnforcerState.validating)
        try:
            return self._validate(event, context, resolved)
        except Exception as exc:  # noqa: BLE001 - any fault must fail closed or loudly open
            return self._internal_error(event, context, exc)

    def _resolve(self, event: PreCommitEvent) -> _Resolved:
        if event.remote_name:
            expected = self._remotes.resolve_for_remote(event.project_id, event.remote_name, event.direction)
        else:
            expected = self._remotes.resolve_default(event.project_id, event.direction)
        account = self._accounts.find_by_identity(event.current_git_config)
        current = CurrentIdentity(
            account_id=account.id if account else None,
            name=event.current_git_config.name,
            email=event.current_git_config.email,
        )
        return _Resolved(expected=expected, current=current)

    def _validate(self, event: PreCommitEvent, context: dict[str, object], resolved: _Resolved) -> EnforcementResult:
        signed = event.signature_available
        verdict = self._policies.validate(
            event.project_id,
            event.branch_name,
            resolved.current,
            signed,
            _committer(event, resolved.current),
        )
        broken_strict = [
            error.pattern_id for error in verdict.errors if error.pattern_id in self._policies.strict_policy_ids()
        ]
        if broken_strict:
            msg = f"strict branch policies could not be evaluated: {', '.join(broken_strict)}"
            raise InternalError(msg, policy_ids=broken_strict)

        expected = resolved.expected
        expected_id = expected.account_id
        mismatch = expected_id is not None and resolved.current.account_id != expected_id
        confident = (
            expected_id is not None
            and expected.source != "ambiguous_suggestion"
            and expected.confidence >= self._settings.confidence_threshold
        )
        notes: list[str] = list(verdict.advisories)

        if mismatch and confident and self._settings.auto_fix and expected_id is not None:
            corrected = self._try_auto_fix(event, context, resolved, expected_id, signed, notes)
            if corrected is not None:
                return corrected

        overall = verdict.verdict
        reasons = list(verdict.reasons)
        if mismatch and expected_id is not None:
            description = (
                f"expected account {self._accounts.label(expected_id)}"
                f" (source {expected.source}, confidence {expected.confidence:.2f})"
                f" but the current identity is {_current_label(self._accounts, resolved.current)}"
            )
            if confident:
                local = Verdict.block if self._settings.validation_level is Enforcement.strict else Verdict.warn
                reasons.append(description)
                overall = overall.escalate(local)
            else:
                notes.append(f"possible identity mismatch (low confidence): {description}")

        decision = self._decision(context, expected, verdict, overall, reasons)
        state = _TERMINAL_FOR_VERDICT[overall]
        self._enter(state)
        events = self._verdict_events(event, verdict, overall, expected_id if mismatch and confident else None)
        return self._finish(
            state,
            decision,
            messages=[*reasons, *notes],
            policy_verdict=verdict,
            events=events,
        )

    def _try_auto_fix(
        self,
        event: PreCommitEvent,
        context: dict[str, object],
        resolved: _Resolved,
        expected_id: str,
        signed: bool,
        notes: list[str],
    ) -> EnforcementResult | None:
        account = self._accounts.require(expected_id)
        fixed_identity = CurrentIdentity(account_id=account.id, name=account.git_user_name, email=account.email)
        fixed = self._policies.validate(
            event.project_id,
            event.branch_name,
            fixed_identity,
            signed,
            _committer(event, fixed_identity),
        )
        if fixed.verdict is Verdict.block or self._writer is None:
            if self._writer is None:
                notes.append("auto-fix is enabled but no identity writer is available")
            return None

        self._writer.apply_identity(account)
        previous = _current_label(self._accounts, resolved.current)
        correction = f"local git identity corrected from {previous} to {self._accounts.label(account.id)}"
        reasons = [*fixed.reasons, correction]
        decision = self._decision(context, resolved.expected, fixed, fixed.verdict, reasons)
        state = EnforcerState.corrected if fixed.verdict is Verdict.allow else EnforcerState.warned
        self._enter(state)
        events = [
            self._event(
                AuditEventType.auto_fix_applied,
                event.project_id,
                account_id=account.id,
                details={"previous_email": resolved.current.email, "branch": event.branch_name},
            ),
            *self._verdict_events(event, fixed, fixed.verdict, None),
        ]
        return self._finish(
            state,
            decision,
            messages=[*reasons, *notes, *fixed.advisories],
            policy_verdict=fixed,
            corrected_account_id=account.id,
            events=events,
        )

    def _internal_error(self, event: PreCommitEvent, context: dict[str, object], exc: Exception) -> EnforcementResult:
        kind = exc.kind.value if isinstance(exc, GitPersonaError) else "InternalError"
        strict = self._settings.validation_level is Enforcement.strict
        if strict:
            reason = f"InternalError: {kind}: {exc}; blocking commit because enforcement is strict"
            overall, state = Verdict.block, EnforcerState.blocked
        else:
            reason = f"InternalError: {kind}: {exc}; allowing commit because enforcement is not strict"
            overall, state = Verdict.warn, EnforcerState.warned
        if self._logger is not None:
            self._logger.error(
                "identity enforcement failed",
                project_id=event.project_id,
                branch=event.branch_name,
                error=str(exc),
                fail_closed=strict,
            )
        self._enter(state)
        decision = Decision(requested_context=context, verdict=overall, reasons=(reason,))
        event_type = AuditEventType.policy_block if strict else AuditEventType.policy_warn
        events = [self._event(event_type, event.project_id, details={"internal_error": str(exc)})]
        return self._finish(state, decision, messages=[reason], events=events)

    def _verdict_events(
        self,
        event: PreCommitEvent,
        verdict: PolicyVerdict,
        overall: Verdict,
        mismatched_expected_id: str | None,
    ) -> list[AuditEvent]:
        if overall is Verdict.allow:
            return []
        event_type = AuditEventType.policy_block if overall is Verdict.block else AuditEventType.policy_warn
        events = [
            self._event(event_type, event.project_id, policy_id=policy_id, details={"branch": event.branch_name})
            for policy_id in verdict.triggered_policy_ids
        ]
        if mismatched_expected_id is not None:
            events.append(
                self._event(
                    event_type,
                    event.project_id,
                    account_id=mismatched_expected_id,
                    details={"branch": event.branch_name, "identity_mismatch": True},
                ),
            )
        return events

    def _decision(
        self,
        context: dict[str, object],
        expected: RemoteResolution,
        verdict: PolicyVerdict,
        overall: Verdict,
        reasons: list[str],
    ) -> Decision:
        return Decision(
            requested_context=context,
            suggested_account_id=expected.account_id,
            confidence=expected.confidence,
            matched_pattern_ids=expected.matched_pattern_ids,
            matched_policy_ids=verdict.matched_policy_ids,
            verdict=overall,
            reasons=tuple(reasons),
            ambiguous=expected.source == "ambiguous_suggestion",
        )

    def _event(
        self,
        event_type: AuditEventType,
        project_id: str,
        *,
        account_id: str | None = None,
        policy_id: str | None = None,
        details: dict[str, object] | None = None,
    ) -> AuditEvent:
        return AuditEvent(
            type=event_type,
            project_id=project_id,
            account_id=account_id,
            policy_id=policy_id,
            timestamp=self._clock(),
            details=dict(details or {}),
        )

    def _enter(self, state: EnforcerState) -> None:
        self._state = state
        self._transitions.append(state)
        if self._logger is not None:
            self._logger.debug("enforcer state", state=state.value)

    def _finish(
        self,
        state: EnforcerState,
        decision: Decision,
        *,
        messages: list[str],
        policy_verdict: PolicyVerdict | None = None,
        corrected_account_id: str | None = None,
        events: list[AuditEvent] | None = None,
    ) -> EnforcementResult:
        emitted = list(events or [])
        if self._audit is not None:
            for audit_event in emitted:
                self._audit.emit(audit_event)
        if self._logger is not None:
            self._logger.info(
                "identity decision",
                state=state.value,
                verdict=decision.verdict.value,
                suggested_account_id=decision.suggested_account_id,
                matched_policy_ids=list(decision.matched_policy_ids),
                reasons=list(decision.reasons),
            )
        return EnforcementResult(
            state=state,
            decision=decision,
            exit_code=1 if decision.verdict is Verdict.block else 0,
            messages=messages,
            transitions=list(self._transitions),
            policy_verdict=policy_verdict,
            corrected_account_id=corrected_account_id,
            events=emitted,
        )


def _current_label(accounts: AccountRegistry, identity: CurrentIdentity) -> str:
    if identity.account_id:
        return accounts.label(identity.account_id)
    if identity.email:
        return f"{identity.name or 'unknown'} <{identity.email}>"
    return "unset"


def _committer(event: PreCommitEvent, identity: CurrentIdentity) -> str | None:
    """User id checked against ``allowed_user_ids``: explicit, else matched account id, else email."""
    return event.user_id or identity.account_id or identity.email or None


__all__ = ["EnforcementResult", "EnforcerState", "HookEnforcer", "IdentityWriter", "PreCommitEvent"]
