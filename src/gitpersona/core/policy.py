"""Branch policy storage and commit validation."""

from __future__ import annotations

import logging
import re
from itertools import combinations
from typing import TYPE_CHECKING

from .errors import InvalidPolicyExpression
from .models import (
    BranchPolicy,
    CurrentIdentity,
    Enforcement,
    PatternError,
    PolicyConflictDetail,
    PolicyVerdict,
    Verdict,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .registry import AccountRegistry


LOGGER = logging.getLogger(__name__)

_LOCAL_VERDICT = {Enforcement.strict: Verdict.block, Enforcement.warning: Verdict.warn}


def validate_policy(policy: BranchPolicy, accounts: AccountRegistry | None = None) -> None:
    """Reject ``policy`` if its branch pattern does not compile or it references an unknown account."""
    try:
        re.compile(policy.branch_pattern)
    except re.error as exc:
        msg = f"branch pattern '{policy.branch_pattern}' is not a valid regex: {exc}"
        raise InvalidPolicyExpression(msg, policy_id=policy.id, branch_pattern=policy.branch_pattern) from exc
    if accounts is not None and policy.required_account_id is not None:
        accounts.require(policy.required_account_id)


class BranchPolicyEngine:
    """Validate a proposed commit against every matching branch policy."""

    def __init__(self, policies: Iterable[BranchPolicy], *, accounts: AccountRegistry | None = None) -> None:
        """Snapshot ``policies``; ``accounts`` is only used to render reasons."""
        self._policies = tuple(policies)
        self._accounts = accounts

    @property
    def policies(self) -> tuple[BranchPolicy, ...]:
        """Return the policies known to the engine."""
        return self._policies

    def matching(self, project_id: str | None, branch_name: str) -> tuple[list[BranchPolicy], list[PatternError]]:
        """Return policies whose pattern matches ``branch_name`` plus evaluation errors."""
        matched: list[BranchPolicy] = []
        errors: list[PatternError] = []
        for policy in self._policies:
            if policy.project_id is not None and policy.project_id != project_id:
                continue
            try:
                hit = re.search(policy.branch_pattern, branch_name)
            except re.error as exc:
                LOGGER.warning("skipping branch policy %s: %s", policy.id, exc)
                errors.append(PatternError(pattern_id=policy.id, message=str(exc)))
                continue
            if hit:
                matched.append(policy)
        return matched, errors

    def validate(
        self,
        project_id: str | None,
        branch_name: str,
        current_identity: CurrentIdentity,
        has_valid_signature: bool,
        user_id: str | None = None,
    ) -> PolicyVerdict:
        """Aggregate the local verdict of every matching policy.

        The overall verdict is the most severe local verdict; every triggering
        reason is kept so one block never hides another violation. Policies
        with enforcement ``off`` are inert and ``advisory`` ones only produce
        informational notes.
        """
        matched, errors = self.matching(project_id, branch_name)
        verdict = Verdict.allow
        reasons: list[str] = []
        advisories: list[str] = []
        matched_ids: list[str] = []
        triggered_ids: list[str] = []
        linear_ids: list[str] = []

        for policy in matched:
            if policy.enforcement is Enforcement.off:
                continue
            matched_ids.append(policy.id)
            if policy.require_linear_history:
                linear_ids.append(policy.id)
            violations = self._violations(policy, branch_name, current_identity, has_valid_signature, user_id)
            if not violations:
                continue
            prefix = f"[{policy.enforcement.value}] policy {policy.id} ({policy.branch_pattern})"
            messages = [f"{prefix}: {violation}" for violation in violations]
            local = _LOCAL_VERDICT.get(policy.enforcement)
            if local is None:
                advisories.extend(messages)
                continue
            triggered_ids.append(policy.id)
            reasons.extend(messages)
            verdict = verdict.escalate(local)

        conflicts = self._conflicts(matched)
        for conflict in conflicts:
            first, second = conflict.policy_ids
            reasons.append(
                f"policy conflict: strict policies {first} and {second} require different accounts"
                f" ({self._label(conflict.required_account_ids[0])} vs"
                f" {self._label(conflict.required_account_ids[1])}) on branch '{branch_name}'",
            )
            verdict = verdict.escalate(Verdict.block)

        return PolicyVerdict(
            verdict=verdict,
            reasons=tuple(reasons),
            matched_policy_ids=tuple(matched_ids),
            triggered_policy_ids=tuple(triggered_ids),
            advisories=tuple(advisories),
            conflicts=tuple(conflicts),
            require_linear_history=bool(linear_ids),
            linear_history_policy_ids=tuple(linear_ids),
            errors=tuple(errors),
        )

    def strict_policy_ids(self) -> frozenset[str]:
        """Return the ids of strict policies."""
        return frozenset(policy.id for policy in self._policies if policy.enforcement is Enforcement.strict)

    def _violations(
        self,
        policy: BranchPolicy,
        branch_name: str,
        identity: CurrentIdentity,
        has_valid_signature: bool,
        user_id: str | None,
    ) -> list[str]:
        violations: list[str] = []
        required = policy.required_account_id
        if required is not None and identity.account_id != required:
            current = self._label(identity.account_id) if identity.account_id else _describe(identity)
            violations.append(
                f"branch '{branch_name}' requires account {self._label(required)} but the current identity is {current}",
            )
        if policy.require_signed_commits and not has_valid_signature:
            violations.append(f"branch '{branch_name}' requires signed commits")
        if policy.allowed_user_ids and user_id not in policy.allowed_user_ids:
            allowed = ", ".join(sorted(policy.allowed_user_ids))
            violations.append(f"user '{user_id or 'unknown'}' may not commit to '{branch_name}' (allowed: {allowed})")
        return violations

    def _conflicts(self, matched: list[BranchPolicy]) -> list[PolicyConflictDetail]:
        strict = [
            policy
            for policy in matched
            if policy.enforcement is Enforcement.strict and policy.required_account_id is not None
        ]
        conflicts: list[PolicyConflictDetail] = []
        for first, second in combinations(strict, 2):
            if first.required_account_id != second.required_account_id:
                conflicts.append(
                    PolicyConflictDetail(
                        policy_ids=(first.id, second.id),
                        required_account_ids=(first.required_account_id or "", second.required_account_id or ""),
                    ),
                )
        return conflicts

    def _label(self, account_id: str) -> str:
        if self._accounts is None:
            return f"'{account_id}'"
        return self._accounts.label(account_id)


def _describe(identity: CurrentIdentity) -> str:
    if identity.email:
        return f"{identity.name or 'unknown'} <{identity.email}> (no matching account)"
    return "unset"


__all__ = ["BranchPolicyEngine", "validate_policy"]
