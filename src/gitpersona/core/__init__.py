"""Identity resolution and policy enforcement components for gitpersona."""

from .enforcer import EnforcementResult, EnforcerState, HookEnforcer, PreCommitEvent
from .errors import ErrorKind, GitPersonaError
from .matcher import PatternMatcher, validate_pattern
from .models import (
    Account,
    BranchPolicy,
    Config,
    Decision,
    Direction,
    Enforcement,
    GitIdentity,
    MatchContext,
    Pattern,
    PatternKind,
    PolicyVerdict,
    Project,
    RemoteMapping,
    Verdict,
)
from .policy import BranchPolicyEngine, validate_policy
from .registry import AccountRegistry, ProjectRegistry
from .remotes import MultiRemoteManager
from .service import IdentityService, Request, Response
from .suggest import SmartSuggestionEngine, pattern_accuracy

__all__ = [
    "Account",
    "AccountRegistry",
    "BranchPolicy",
    "BranchPolicyEngine",
    "Config",
    "Decision",
    "Direction",
    "EnforcementResult",
    "Enforcement",
    "EnforcerState",
    "ErrorKind",
    "GitIdentity",
    "GitPersonaError",
    "HookEnforcer",
    "IdentityService",
    "MatchContext",
    "MultiRemoteManager",
    "Pattern",
    "PatternKind",
    "PatternMatcher",
    "PolicyVerdict",
    "PreCommitEvent",
    "Project",
    "ProjectRegistry",
    "RemoteMapping",
    "Request",
    "Response",
    "SmartSuggestionEngine",
    "Verdict",
    "pattern_accuracy",
    "validate_pattern",
    "validate_policy",
]
