"""Shared fixtures for the gitpersona test suite."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest

from gitpersona.core.models import Account, RecordKind
from gitpersona.core.service import IdentityService
from gitpersona.io.audit import AuditTrail, MemoryAuditSink
from gitpersona.io.logging import StructuredLogger
from gitpersona.io.store import MemoryConfigStore
from tests.fakes import FIXED_NOW, FakeGitFacade, ScriptQueue

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from datetime import datetime


@pytest.fixture
def configure_fake_git_facade(monkeypatch: pytest.MonkeyPatch) -> Iterator[ScriptQueue]:
    """Patch :class:`GitFacade` with a scripted fake for CLI tests."""
    queue = ScriptQueue()
    FakeGitFacade.script_queue = queue
    monkeypatch.setattr("gitpersona.cli.runtime.GitFacade", FakeGitFacade)
    yield queue
    queue.clear()
    FakeGitFacade.script_queue = None


@pytest.fixture
def logger() -> StructuredLogger:
    """Provide a structured logger backed by an in-memory stream."""
    return StructuredLogger(name="test", stream=io.StringIO(), level="DEBUG")


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Return a clock frozen at :data:`FIXED_NOW`."""
    return lambda: FIXED_NOW


@pytest.fixture
def work_account() -> Account:
    """Priority-1 default work account."""
    return Account(
        id="W",
        display_name="Work",
        email="wendy@acme.com",
        git_user_name="Wendy Work",
        priority=1,
        is_default=True,
        signing_key_ref="ABCD1234",
    )


@pytest.fixture
def personal_account() -> Account:
    """Priority-5 personal account."""
    return Account(
        id="P",
        display_name="Personal",
        email="pat@example.com",
        git_user_name="Pat Personal",
        priority=5,
    )


@pytest.fixture
def store(work_account: Account, personal_account: Account) -> MemoryConfigStore:
    """Memory store seeded with the work and personal accounts."""
    config_store = MemoryConfigStore()
    config_store.save(RecordKind.accounts, [work_account, personal_account])
    config_store.save_count[RecordKind.accounts] = 0
    return config_store


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    """In-memory audit sink."""
    return MemoryAuditSink()


@pytest.fixture
def service(
    store: MemoryConfigStore,
    audit_sink: MemoryAuditSink,
    logger: StructuredLogger,
    clock: Callable[[], datetime],
) -> IdentityService:
    """Identity service over the seeded memory store."""
    return IdentityService(
        store,
        audit=AuditTrail(audit_sink, logger=logger),
        logger=logger,
        clock=clock,
    )

