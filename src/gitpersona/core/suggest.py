"""Suggestion engine combining pattern matches with account-level signal."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .models import (
    AuditEvent,
    AuditEventType,
    Candidate,
    PatternError,
    ScoredAccount,
    ScoringWeights,
    Suggestion,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .matcher import PatternMatcher
    from .models import Account, MatchContext, Project
    from .registry import AccountRegistry


LOGGER = logging.getLogger(__name__)

_SCORE_PRECISION = 6


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class AcceptanceOutcome:
    """Staged side effects of accepting a suggestion."""

    account: Account
    project: Project
    event: AuditEvent


@dataclass(frozen=True, slots=True)
class _AccountScore:
    account: Account
    best: Candidate
    pattern_ids: tuple[str, ...]
    usage_bonus: float
    default_bonus: float
    score: float


class SmartSuggestionEngine:
    """Produce a single ranked account suggestion for a repository context."""

    def __init__(
        self,
        accounts: AccountRegistry,
        matcher: PatternMatcher,
        *,
        weights: ScoringWeights | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Bind the engine to a registry snapshot and a matcher."""
        self._accounts = accounts
        self._matcher = matcher
        self._weights = weights or ScoringWeights()
        self._clock = clock or utc_now

    def suggest(self, context: MatchContext) -> Suggestion | None:
        """Return the best suggestion for ``context`` or ``None`` when nothing matched.

        This is a pure read: calling it repeatedly with unchanged registries
        yields identical suggestions.
        """
        candidates = self._matcher.match(context)
        errors = list(candidates.errors)
        scored = self._score_accounts(candidates.candidates, errors)
        if not scored:
            return None

        ranked = sorted(scored, key=lambda item: (-item.score, item.account.priority, item.account.id))
        top = ranked[0]
        # gap is rounded to score precision; a gap equal to the threshold is not ambiguous
        gap = round(top.score - ranked[1].score, _SCORE_PRECISION) if len(ranked) > 1 else None
        ambiguous = gap is not None and gap < self._weights.ambiguity_threshold
        return Suggestion(
            account_id=top.account.id,
            confidence=top.score,
            ambiguous=ambiguous,
            reason=self._justify(top, ranked[1] if len(ranked) > 1 else None, ambiguous=ambiguous),
            matched_pattern_ids=top.pattern_ids,
            alternatives=tuple(
                ScoredAccount(account_id=item.account.id, score=item.score, pattern_id=item.best.pattern.id)
                for item in ranked
            ),
            errors=tuple(errors),
        )

    def accept(self, project: Project, account_id: str, confidence: float) -> AcceptanceOutcome:
        """Stage the updates that follow an explicit user confirmation."""
        account = self._accounts.require(account_id)
        now = self._clock()
        clamped = _clamp(confidence)
        updated_account = account.model_copy(
            update={"usage_count": account.usage_count + 1, "last_used_at": now},
        )
        updated_project = project.model_copy(update={"confidence": clamped, "account_id": account_id})
        event = AuditEvent(
            type=AuditEventType.suggestion_accepted,
            project_id=project.id,
            account_id=account_id,
            timestamp=now,
            details={"confidence": clamped},
        )
        return AcceptanceOutcome(account=updated_account, project=updated_project, event=event)

    def reject(self, project: Project, account_id: str, confidence: float) -> AuditEvent:
        """Return the audit event recording a rejected suggestion; nothing else changes."""
        return AuditEvent(
            type=AuditEventType.suggestion_rejected,
            project_id=project.id,
            account_id=account_id,
            timestamp=self._clock(),
            details={"confidence": _clamp(confidence)},
        )

    def _score_accounts(
        self,
        candidates: Iterable[Candidate],
        errors: list[PatternError],
    ) -> list[_AccountScore]:
        grouped: dict[str, list[Candidate]] = {}
        for candidate in candidates:
            grouped.setdefault(candidate.account_id, []).append(candidate)

        scored: list[_AccountScore] = []
        for account_id, hits in grouped.items():
            account = self._accounts.get(account_id)
            if account is None:
                LOGGER.warning("pattern references unknown account %s", account_id)
                errors.extend(
                    PatternError(pattern_id=hit.pattern.id, message=f"unknown account '{account_id}'")
                    for hit in hits
                )
                continue
            best = max(hits, key=lambda hit: hit.raw_score)
            saturation = min(account.usage_count / self._weights.usage_saturation, 1.0)
            usage_bonus = self._weights.usage_bonus * saturation
            default_bonus = self._weights.default_bonus if account.is_default else 0.0
            score = round(_clamp(best.raw_score + usage_bonus + default_bonus), _SCORE_PRECISION)
            scored.append(
                _AccountScore(
                    account=account,
                    best=best,
                    pattern_ids=tuple(hit.pattern.id for hit in hits),
                    usage_bonus=usage_bonus,
                    default_bonus=default_bonus,
                    score=score,
                ),
            )
        return scored

    def _justify(self, top: _AccountScore, runner_up: _AccountScore | None, *, ambiguous: bool) -> str:
        pattern = top.best.pattern
        parts = [
            f"{pattern.kind.value} pattern '{pattern.expression}' matched the {top.best.matched_on}"
            f" (declared confidence {pattern.confidence:.2f})",
        ]
        if top.usage_bonus:
            parts.append(f"usage bonus +{top.usage_bonus:.2f} ({top.account.usage_count} uses)")
        if top.default_bonus:
            parts.append(f"default account bonus +{top.default_bonus:.2f}")
        reason = f"{top.account.display_name}: " + "; ".join(parts)
        if ambiguous and runner_up is not None:
            reason += (
                f"; ambiguous with {runner_up.account.display_name}"
                f" ({top.score:.2f} vs {runner_up.score:.2f})"
            )
        return reason


def pattern_accuracy(events: Iterable[AuditEvent], *, window: int = 100) -> float | None:
    """Return accepted / (accepted + rejected) over the last ``window`` feedback events."""
    feedback = [
        event
        for event in events
        if event.type in {AuditEventType.suggestion_accepted, AuditEventType.suggestion_rejected}
    ]
    recent = feedback[-window:]
    if not recent:
        return None
    accepted = sum(1 for event in recent if event.type is AuditEventType.suggestion_accepted)
    return accepted / len(recent)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


__all__ = ["AcceptanceOutcome", "SmartSuggestionEngine", "pattern_accuracy", "utc_now"]
