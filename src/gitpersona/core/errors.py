"""Error hierarchy shared by the identity resolution core."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable error identifiers surfaced through the request boundary."""

    unknown_account = "UnknownAccount"
    unknown_project = "UnknownProject"
    unknown_remote = "UnknownRemote"
    invalid_pattern_expression = "InvalidPatternExpression"
    invalid_policy_expression = "InvalidPolicyExpression"
    ambiguous_suggestion = "AmbiguousSuggestion"
    policy_conflict = "PolicyConflict"
    duplicate_project = "DuplicateProject"
    record_in_use = "RecordInUse"
    invalid_request = "InvalidRequest"
    internal_error = "InternalError"


class GitPersonaError(RuntimeError):
    """Base class for every error raised by the core."""

    kind: ErrorKind = ErrorKind.internal_error

    def __init__(self, message: str, **details: Any) -> None:
        """Store a plain-language message and structured details."""
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details)


class UnknownAccount(GitPersonaError):
    """Raised when an account id does not exist in the registry."""

    kind = ErrorKind.unknown_account

    def __init__(self, account_id: str) -> None:
        """Build the error for ``account_id``."""
        super().__init__(f"unknown account '{account_id}'", account_id=account_id)


class UnknownProject(GitPersonaError):
    """Raised when a project id or path is not registered."""

    kind = ErrorKind.unknown_project

    def __init__(self, project_ref: str) -> None:
        """Build the error for ``project_ref``."""
        super().__init__(f"unknown project '{project_ref}'", project=project_ref)


class UnknownRemote(GitPersonaError):
    """Raised when a remote name is not configured for a project."""

    kind = ErrorKind.unknown_remote

    def __init__(self, project_id: str, remote_name: str) -> None:
        """Build the error for ``remote_name`` on ``project_id``."""
        super().__init__(
            f"remote '{remote_name}' is not configured for project '{project_id}'",
            project_id=project_id,
            remote_name=remote_name,
        )


class InvalidPatternExpression(GitPersonaError):
    """Raised when a pattern expression does not compile under its kind."""

    kind = ErrorKind.invalid_pattern_expression


class InvalidPolicyExpression(GitPersonaError):
    """Raised when a branch policy pattern is not a valid regex."""

    kind = ErrorKind.invalid_policy_expression


class PolicyConflict(GitPersonaError):
    """Two strict policies require different accounts on the same branch.

    Conflicts do not abort validation: the verdict escalates to block and the
    error is reported as a warning alongside it.
    """

    kind = ErrorKind.policy_conflict

    def __init__(self, policy_ids: tuple[str, str], required_account_ids: tuple[str, str]) -> None:
        """Build the error for the two conflicting policies."""
        first, second = policy_ids
        super().__init__(
            f"policies {first} and {second} require different accounts",
            policy_ids=list(policy_ids),
            required_account_ids=list(required_account_ids),
        )


class DuplicateProject(GitPersonaError):
    """Raised when a project path is already registered."""

    kind = ErrorKind.duplicate_project


class RecordInUse(GitPersonaError):
    """Raised when deleting a record that other records still reference."""

    kind = ErrorKind.record_in_use


class InvalidRequest(GitPersonaError):
    """Raised when a boundary request is malformed."""

    kind = ErrorKind.invalid_request


class InternalError(GitPersonaError):
    """Unexpected engine fault."""

    kind = ErrorKind.internal_error


__all__ = [
    "DuplicateProject",
    "ErrorKind",
    "GitPersonaError",
    "InternalError",
    "InvalidPatternExpression",
    "InvalidPolicyExpression",
    "InvalidRequest",
    "PolicyConflict",
    "RecordInUse",
    "UnknownAccount",
    "UnknownProject",
    "UnknownRemote",
]
