"""Pattern evaluation against a repository's remote URL and path."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import TYPE_CHECKING

from .errors import InvalidPatternExpression
from .models import Candidate, CandidateList, MatchContext, Pattern, PatternError, PatternKind, ScoringWeights
from .urls import normalize_host

if TYPE_CHECKING:
    from collections.abc import Iterable


LOGGER = logging.getLogger(__name__)

_KIND_TIER = {PatternKind.exact: 0, PatternKind.regex: 1, PatternKind.glob: 2}
_OWNER_SCOPE_SUFFIX = "/*"


def glob_to_regex(expression: str) -> str:
    """Translate a ``*`` / ``**`` / ``?`` glob into an anchored regex."""
    parts: list[str] = []
    index = 0
    length = len(expression)
    while index < length:
        char = expression[index]
        if expression.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
        elif expression.startswith("**", index):
            parts.append(".*")
            index += 2
        elif char == "*":
            parts.append("[^/]*")
            index += 1
        elif char == "?":
            parts.append("[^/]")
            index += 1
        else:
            parts.append(re.escape(char))
            index += 1
    return "^" + "".join(parts) + "$"


@lru_cache(maxsize=512)
def _compile(kind: PatternKind, expression: str) -> re.Pattern[str] | None:
    if kind is PatternKind.glob:
        return re.compile(glob_to_regex(expression))
    if kind is PatternKind.regex:
        return re.compile(expression)
    return None


def validate_pattern(pattern: Pattern) -> None:
    """Raise :class:`InvalidPatternExpression` when ``pattern`` does not compile."""
    expression = pattern.expression
    if not expression.strip():
        msg = "pattern expression must not be blank"
        raise InvalidPatternExpression(msg, pattern_id=pattern.id)
    try:
        _compile(pattern.kind, expression)
    except re.error as exc:
        msg = f"pattern '{expression}' is not a valid {pattern.kind.value} expression: {exc}"
        raise InvalidPatternExpression(msg, pattern_id=pattern.id, expression=expression) from exc


def _exact_matches(expression: str, value: str, *, is_url: bool) -> bool:
    if is_url:
        expression = normalize_host(expression)
        value = normalize_host(value)
    if expression.endswith(_OWNER_SCOPE_SUFFIX):
        prefix = expression[:-1]
        if not value.startswith(prefix):
            return False
        remainder = value[len(prefix):]
        return bool(remainder) and "/" not in remainder
    return expression == value


class PatternMatcher:
    """Evaluate stored patterns and return ranked account candidates."""

    def __init__(self, patterns: Iterable[Pattern], *, weights: ScoringWeights | None = None) -> None:
        """Snapshot ``patterns`` for the lifetime of the matcher."""
        self._patterns = tuple(patterns)
        self._weights = weights or ScoringWeights()

    @property
    def patterns(self) -> tuple[Pattern, ...]:
        """Return the patterns evaluated by this matcher."""
        return self._patterns

    def match(self, context: MatchContext) -> CandidateList:
        """Return candidates for ``context`` ranked best first.

        Exact hits always rank ahead of regex and glob hits. Within a kind, the
        raw score (declared confidence times the kind's specificity) decides,
        then the pattern's usage count, then the more recently added id.
        Patterns that fail to compile are reported in ``errors`` and skipped.
        """
        hits: list[Candidate] = []
        errors: list[PatternError] = []
        for pattern in self._patterns:
            try:
                matched_on = self._evaluate(pattern, context)
            except re.error as exc:
                LOGGER.warning("skipping pattern %s: %s", pattern.id, exc)
                errors.append(PatternError(pattern_id=pattern.id, message=str(exc)))
                continue
            if matched_on is None:
                continue
            raw_score = pattern.confidence * self._weights.specificity(pattern.kind)
            hits.append(
                Candidate(
                    account_id=pattern.account_id,
                    pattern=pattern,
                    raw_score=raw_score,
                    matched_on=matched_on,
                ),
            )

        newest_first = sorted(hits, key=lambda hit: hit.pattern.id, reverse=True)
        ranked = sorted(
            newest_first,
            key=lambda hit: (_KIND_TIER[hit.pattern.kind], -hit.raw_score, -hit.pattern.usage_count),
        )
        return CandidateList(candidates=tuple(ranked), errors=tuple(errors))

    def _evaluate(self, pattern: Pattern, context: MatchContext) -> str | None:
        """Return ``"url"`` or ``"path"`` for the field that matched, else ``None``."""
        if pattern.kind is PatternKind.exact:
            if context.remote_url and _exact_matches(pattern.expression, context.remote_url, is_url=True):
                return "url"
            if context.path and _exact_matches(pattern.expression, context.path, is_url=False):
                return "path"
            return None

        compiled = _compile(pattern.kind, pattern.expression)
        if compiled is None:  # pragma: no cover - exact handled above
            return None
        if pattern.kind is PatternKind.regex:
            if context.remote_url and compiled.search(context.remote_url):
                return "url"
            return None
        if context.remote_url and compiled.match(context.remote_url):
            return "url"
        if context.path and compiled.match(context.path):
            return "path"
        return None


__all__ = ["PatternMatcher", "glob_to_regex", "validate_pattern"]
