"""Remote URL helpers: host normalisation, platform and organisation detection."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from .models import Platform

_SCP_LIKE = re.compile(r"^(?P<user>[^@/:]+@)?(?P<host>[^/:]+):(?P<path>(?!//).*)$")


def normalize_host(url: str) -> str:
    """Lower-case the host component of ``url`` and leave the rest untouched.

    Handles both ``scheme://[user@]host[:port]/path`` URLs and scp-like
    ``user@host:path`` remotes. Strings that are neither are returned as-is.
    """
    if "://" in url:
        scheme, _, remainder = url.partition("://")
        authority, slash, path = remainder.partition("/")
        userinfo, at, hostport = authority.rpartition("@")
        return f"{scheme}://{userinfo}{at}{hostport.lower()}{slash}{path}"
    match = _SCP_LIKE.match(url)
    if match and not url.startswith(("/", ".")):
        user = match.group("user") or ""
        return f"{user}{match.group('host').lower()}:{match.group('path')}"
    return url


def to_https(url: str) -> str:
    """Convert scp-like SSH remotes to an ``https://`` form for parsing."""
    if "://" in url:
        return url
    match = _SCP_LIKE.match(url)
    if match:
        return f"https://{match.group('host')}/{match.group('path')}"
    return url


def detect_platform(url: str) -> Platform:
    """Guess the hosting platform of ``url``."""
    host = (urlsplit(to_https(url)).hostname or "").lower()
    if host == "github.com" or host.endswith(".github.com"):
        return Platform.github
    if host == "gitlab.com" or host.startswith("gitlab."):
        return Platform.gitlab
    if host == "bitbucket.org":
        return Platform.bitbucket
    return Platform.other


def detect_organization(url: str) -> str | None:
    """Return the first path segment of ``url`` (usually the owner)."""
    parts = [part for part in urlsplit(to_https(url)).path.split("/") if part]
    if not parts:
        return None
    return parts[0]


__all__ = ["detect_organization", "detect_platform", "normalize_host", "to_https"]
