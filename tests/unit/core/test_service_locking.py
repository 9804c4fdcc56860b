from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

import pytest

from gitpersona.core.models import Account, RecordKind
from gitpersona.core.service import IdentityService, ProjectLocks
from gitpersona.io.store import MemoryConfigStore

if TYPE_CHECKING:
    from collections.abc import Callable


class SlowStore(MemoryConfigStore):
    """Memory store whose loads take long enough for threads to interleave."""

    def __init__(self, delay: float = 0.05) -> None:
        """Start empty with a per-load ``delay`` in seconds."""
        super().__init__()
        self.delay = delay

    def load(self, kind: RecordKind) -> list[Any]:
        """Sleep, then load."""
        time.sleep(self.delay)
        return super().load(kind)


@pytest.fixture
def slow_service(work_account: Account, personal_account: Account) -> IdentityService:
    """Service over a slow store with two registered projects."""
    slow = SlowStore(delay=0)
    slow.save(RecordKind.accounts, [work_account, personal_account])
    service = IdentityService(slow)
    service.add_project("/src/a", project_id="A", remote_urls={"origin": "https://github.com/acme/a"})
    service.add_project("/src/b", project_id="B", remote_urls={"origin": "https://github.com/acme/b"})
    slow.delay = 0.05
    return service


def _run_together(*calls: Callable[[], object]) -> None:
    failures: list[BaseException] = []

    def guarded(call: Callable[[], object]) -> None:
        try:
            call()
        except BaseException as exc:  # noqa: BLE001 - re-raised in the main thread
            failures.append(exc)

    threads = [threading.Thread(target=guarded, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    assert not any(thread.is_alive() for thread in threads)
    if failures:
        raise failures[0]


def test_concurrent_accepts_on_different_projects_both_count(slow_service: IdentityService) -> None:
    """Accepting the same account for two projects at once adds one use each."""
    _run_together(
        lambda: slow_service.accept_suggestion("A", "W", 0.9),
        lambda: slow_service.accept_suggestion("B", "W", 0.9),
    )

    accounts = {account.id: account for account in slow_service.list_accounts()}
    assert accounts["W"].usage_count == 2
    projects = {project.id: project for project in slow_service.list_projects()}
    assert projects["A"].account_id == "W"
    assert projects["B"].account_id == "W"


def test_concurrent_writes_to_shared_collections_are_kept(slow_service: IdentityService) -> None:
    """Mappings of different projects and global account edits do not overwrite each other."""
    extra = Account(id="X", display_name="Extra", email="x@example.com", git_user_name="Xavier")
    _run_together(
        lambda: slow_service.set_mapping("A", "origin", "W"),
        lambda: slow_service.set_mapping("B", "origin", "P"),
        lambda: slow_service.add_account(extra),
        lambda: slow_service.accept_suggestion("A", "P", 0.7),
    )

    assert {(item.project_id, item.account_id) for item in slow_service.list_mappings()} == {("A", "W"), ("B", "P")}
    accounts = {account.id: account for account in slow_service.list_accounts()}
    assert set(accounts) == {"W", "P", "X"}
    assert accounts["P"].usage_count == 1


def test_project_lock_serialises_same_project_only() -> None:
    """A held project lock blocks the same project and leaves others free."""
    locks = ProjectLocks()
    entered = {"A": threading.Event(), "B": threading.Event()}

    def enter(project_id: str) -> None:
        with locks.hold(project_id):
            entered[project_id].set()

    with locks.hold("A"):
        same = threading.Thread(target=enter, args=("A",))
        other = threading.Thread(target=enter, args=("B",))
        same.start()
        other.start()
        assert entered["B"].wait(timeout=2)
        assert not entered["A"].wait(timeout=0.1)
    same.join(timeout=2)
    other.join(timeout=2)

    assert entered["A"].is_set()


def test_none_project_holds_no_lock() -> None:
    """Operations without a project never wait on project locks."""
    locks = ProjectLocks()
    with locks.hold(None), locks.hold(None):
        pass
