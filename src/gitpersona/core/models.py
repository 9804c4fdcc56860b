"""Core data models for gitpersona."""

from __future__ import annotations

import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def new_id(prefix: str) -> str:
    """Return a time-ordered identifier; later ids sort after earlier ones."""
    return f"{prefix}_{time.time_ns():016x}{secrets.token_hex(3)}"


class PatternKind(str, Enum):
    """How a pattern expression is interpreted."""

    exact = "exact"
    glob = "glob"
    regex = "regex"


class PatternOrigin(str, Enum):
    """Who authored a pattern."""

    user = "user"
    system = "system"


class Enforcement(str, Enum):
    """Enforcement level of a branch policy or of the hook itself."""

    strict = "strict"
    warning = "warning"
    advisory = "advisory"
    off = "off"


class Verdict(str, Enum):
    """Outcome of a validation, ordered by severity."""

    allow = "allow"
    warn = "warn"
    block = "block"

    @property
    def severity(self) -> int:
        """Return a comparable severity rank (block is highest)."""
        return _VERDICT_SEVERITY[self]

    def escalate(self, other: Verdict) -> Verdict:
        """Return the more severe of ``self`` and ``other``."""
        return other if other.severity > self.severity else self


_VERDICT_SEVERITY = {Verdict.allow: 0, Verdict.warn: 1, Verdict.block: 2}


class Platform(str, Enum):
    """Hosting platform detected from a remote URL."""

    github = "github"
    gitlab = "gitlab"
    bitbucket = "bitbucket"
    other = "other"


class Direction(str, Enum):
    """Direction of a remote-qualified operation."""

    push = "push"
    pull = "pull"
    fetch = "fetch"


class RecordKind(str, Enum):
    """Record collections persisted independently by the config store."""

    accounts = "accounts"
    projects = "projects"
    patterns = "patterns"
    policies = "policies"
    mappings = "mappings"


class Account(BaseModel):
    """A reusable git identity."""

    id: str = Field(default_factory=lambda: new_id("acct"))
    display_name: str
    email: str
    git_user_name: str
    signing_key_ref: str | None = None
    ssh_key_path: str | None = None
    description: str | None = None
    priority: int = Field(default=5, ge=1, le=10)
    color: str = "#3b82f6"
    is_default: bool = False
    usage_count: int = Field(default=0, ge=0)
    last_used_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("email", "git_user_name")
    @classmethod
    def _require_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            msg = "must not be empty"
            raise ValueError(msg)
        return stripped


class Project(BaseModel):
    """A known repository."""

    id: str = Field(default_factory=lambda: new_id("proj"))
    path: str
    name: str
    remote_urls: dict[str, str] = Field(default_factory=dict)
    organization: str | None = None
    platform: Platform = Platform.other
    account_id: str | None = None
    last_commit_at: datetime | None = None
    commit_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def primary_remote_url(self) -> str | None:
        """Return the ``origin`` URL, or the first configured remote URL."""
        if "origin" in self.remote_urls:
            return self.remote_urls["origin"]
        for name in sorted(self.remote_urls):
            return self.remote_urls[name]
        return None


class Pattern(BaseModel):
    """A rule mapping a URL or path shape to an account."""

    id: str = Field(default_factory=lambda: new_id("pat"))
    expression: str = Field(min_length=1)
    kind: PatternKind = PatternKind.glob
    account_id: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    origin: PatternOrigin = PatternOrigin.user
    usage_count: int = Field(default=0, ge=0)
    name: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class RemoteMapping(BaseModel):
    """Per-remote account binding for one project."""

    project_id: str
    remote_name: str = Field(min_length=1)
    account_id: str
    sign_commits: bool = False
    is_default_push: bool = False
    is_default_pull: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


class BranchPolicy(BaseModel):
    """A rule constraining commits on matching branches."""

    id: str = Field(default_factory=lambda: new_id("pol"))
    branch_pattern: str = Field(min_length=1)
    project_id: str | None = None
    required_account_id: str | None = None
    require_signed_commits: bool = False
    require_linear_history: bool = False
    enforcement: Enforcement = Enforcement.warning
    allowed_user_ids: frozenset[str] | None = None
    description: str = ""
    created_by: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class MatchContext(BaseModel):
    """Repository context evaluated by the pattern matcher."""

    path: str | None = None
    remote_url: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class Candidate(BaseModel):
    """A single pattern hit produced by the matcher."""

    account_id: str
    pattern: Pattern
    raw_score: float
    matched_on: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class PatternError(BaseModel):
    """A pattern that could not be evaluated during matching."""

    pattern_id: str
    message: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class CandidateList(BaseModel):
    """Ranked matcher output; empty when nothing matched."""

    candidates: tuple[Candidate, ...] = ()
    errors: tuple[PatternError, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def top(self) -> Candidate | None:
        """Return the highest ranked candidate, if any."""
        return self.candidates[0] if self.candidates else None

    def __len__(self) -> int:
        """Return the number of candidates."""
        return len(self.candidates)


class ScoredAccount(BaseModel):
    """An account with its adjusted suggestion score."""

    account_id: str
    score: float
    pattern_id: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class Suggestion(BaseModel):
    """Single ranked account suggestion for a repository context."""

    account_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    ambiguous: bool = False
    reason: str
    matched_pattern_ids: tuple[str, ...] = ()
    alternatives: tuple[ScoredAccount, ...] = ()
    errors: tuple[PatternError, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class GitIdentity(BaseModel):
    """Identity configured in a repository's git config."""

    name: str | None = None
    email: str | None = None
    signing_key: str | None = None
    gpg_sign: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_complete(self) -> bool:
        """Return whether both name and email are set."""
        return bool(self.name and self.email)


class CurrentIdentity(BaseModel):
    """Identity in effect for a commit, resolved to an account when known."""

    account_id: str | None = None
    name: str | None = None
    email: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class PolicyConflictDetail(BaseModel):
    """Two strict policies that require different accounts."""

    policy_ids: tuple[str, str]
    required_account_ids: tuple[str, str]

    model_config = ConfigDict(frozen=True, extra="forbid")


class PolicyVerdict(BaseModel):
    """Aggregated result of validating a commit against branch policies."""

    verdict: Verdict = Verdict.allow
    reasons: tuple[str, ...] = ()
    matched_policy_ids: tuple[str, ...] = ()
    triggered_policy_ids: tuple[str, ...] = ()
    advisories: tuple[str, ...] = ()
    conflicts: tuple[PolicyConflictDetail, ...] = ()
    require_linear_history: bool = False
    linear_history_policy_ids: tuple[str, ...] = ()
    errors: tuple[PatternError, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class RemoteResolution(BaseModel):
    """Account resolved for a remote-qualified operation."""

    project_id: str
    remote_name: str | None
    direction: Direction
    account_id: str | None
    source: str
    sign_commits: bool = False
    confidence: float = 0.0
    matched_pattern_ids: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class Decision(BaseModel):
    """Output of a resolution; logged, never persisted as state."""

    requested_context: dict[str, Any] = Field(default_factory=dict)
    suggested_account_id: str | None = None
    confidence: float = 0.0
    matched_pattern_ids: tuple[str, ...] = ()
    matched_policy_ids: tuple[str, ...] = ()
    verdict: Verdict = Verdict.allow
    reasons: tuple[str, ...] = ()
    ambiguous: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")


class AuditEventType(str, Enum):
    """Audit and analytics events emitted by the core."""

    suggestion_accepted = "suggestion_accepted"
    suggestion_rejected = "suggestion_rejected"
    policy_block = "policy_block"
    policy_warn = "policy_warn"
    auto_fix_applied = "auto_fix_applied"


class AuditEvent(BaseModel):
    """A fire-and-forget audit record."""

    type: AuditEventType
    project_id: str
    account_id: str | None = None
    policy_id: str | None = None
    timestamp: datetime
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ScoringWeights(BaseModel):
    """Tunable constants used by matching and suggestion scoring."""

    exact_specificity: float = Field(default=1.0, ge=0.0)
    regex_specificity: float = Field(default=0.95, ge=0.0)
    glob_specificity: float = Field(default=0.9, ge=0.0)
    usage_bonus: float = Field(default=0.1, ge=0.0)
    usage_saturation: int = Field(default=50, gt=0)
    default_bonus: float = Field(default=0.05, ge=0.0)
    ambiguity_threshold: float = Field(default=0.05, ge=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def specificity(self, kind: PatternKind) -> float:
        """Return the multiplier applied to patterns of ``kind``."""
        return {
            PatternKind.exact: self.exact_specificity,
            PatternKind.regex: self.regex_specificity,
            PatternKind.glob: self.glob_specificity,
        }[kind]


class EnforcementSettings(BaseModel):
    """Hook behaviour for a repository or installation."""

    validation_level: Enforcement = Enforcement.strict
    auto_fix: bool = False
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _reject_advisory_level(self) -> EnforcementSettings:
        if self.validation_level is Enforcement.advisory:
            msg = "validation_level must be one of strict, warning or off"
            raise ValueError(msg)
        return self


class AuditSettings(BaseModel):
    """Where audit events go and how much history feeds accuracy."""

    path: str | None = None
    accuracy_window: int = Field(default=100, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class Config(BaseModel):
    """Top level configuration schema validated from TOML files."""

    enforcement: EnforcementSettings = Field(default_factory=EnforcementSettings)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    store_dir: str | None = None

    model_config = ConfigDict(extra="forbid")


__all__ = [
    "Account",
    "AuditEvent",
    "AuditEventType",
    "AuditSettings",
    "BranchPolicy",
    "Candidate",
    "CandidateList",
    "Config",
    "CurrentIdentity",
    "Decision",
    "Direction",
    "Enforcement",
    "EnforcementSettings",
    "GitIdentity",
    "MatchContext",
    "Pattern",
    "PatternError",
    "PatternKind",
    "PatternOrigin",
    "Platform",
    "PolicyConflictDetail",
    "PolicyVerdict",
    "Project",
    "RecordKind",
    "RemoteMapping",
    "RemoteResolution",
    "ScoredAccount",
    "ScoringWeights",
    "Suggestion",
    "Verdict",
    "new_id",
]
