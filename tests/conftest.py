"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
a controllable clock, an in-memory producer and in-memory local records.
"""
from __future__ import annotations

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from examhall.config import Settings
from examhall.core.errors import RemoteRejectedError, RemoteUnreachableError
from examhall.core.models import VariantKind
from examhall.storage.local import LocalRecords

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full session flows, fake producer)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


# =============================================================================
# Producer
# =============================================================================


def make_entry(
    entry_id: str,
    correct: str | None = "b",
    labels: str = "abcd",
    flag_correct: bool = True,
) -> dict[str, Any]:
    """Flat pool row with one option per label; `correct` is flagged."""
    return {
        "id": entry_id,
        "stem": f"Question {entry_id}?",
        "options": [
            {
                "id": f"{entry_id}-{label}",
                "label": label.upper(),
                "content": f"Option {label.upper()}",
                "is_correct": (label == correct) if flag_correct else None,
            }
            for label in labels
        ],
    }


def make_pool(size: int, prefix: str = "e") -> list[dict[str, Any]]:
    return [make_entry(f"{prefix}{i}") for i in range(1, size + 1)]


class FakeProducer:
    """
    In-memory Producer.

    Set `online = False` to make every call raise RemoteUnreachableError, or
    queue one-off failures per operation in `fail_next` (unreachable) or
    `reject_next` (HTTP 409).
    """

    def __init__(self):
        self.online = True
        self.policies: dict[tuple[VariantKind, str], dict[str, Any]] = {}
        self.pools: dict[tuple[VariantKind, str], list[dict[str, Any]]] = {}
        self.daily: dict[tuple[str, date], dict[str, Any]] = {}
        self.fail_next: dict[str, int] = {}
        self.reject_next: dict[str, int] = {}

        self.recorded: list[tuple[VariantKind, str, str, str]] = []
        self.finalized: list[tuple[VariantKind, str, dict[str, Any]]] = []
        self.calls: list[str] = []

    def add_session(
        self,
        kind: VariantKind,
        session_id: str,
        pool: list[dict[str, Any]],
        **policy: Any,
    ) -> dict[str, Any]:
        data = {"id": session_id, "pool_ref": f"pool-{session_id}", **policy}
        self.policies[(kind, session_id)] = data
        self.pools[(kind, data["pool_ref"])] = pool
        return data

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if not self.online:
            raise RemoteUnreachableError(f"{operation}: offline")
        if self.fail_next.get(operation, 0) > 0:
            self.fail_next[operation] -= 1
            raise RemoteUnreachableError(f"{operation}: injected failure")
        if self.reject_next.get(operation, 0) > 0:
            self.reject_next[operation] -= 1
            raise RemoteRejectedError(f"{operation}: refused", status_code=409)

    async def fetch_session_policy(self, variant: VariantKind, session_id: str) -> dict[str, Any] | None:
        self._check("fetch_session_policy")
        policy = self.policies.get((variant, session_id))
        return dict(policy) if policy is not None else None

    async def find_daily_session(self, user_id: str, on_date: date) -> dict[str, Any] | None:
        self._check("find_daily_session")
        return self.daily.get((user_id, on_date))

    async def fetch_question_pool(self, variant: VariantKind, pool_ref: str) -> list[dict[str, Any]]:
        self._check("fetch_question_pool")
        return list(self.pools.get((variant, pool_ref), []))

    async def record_answer(self, variant: VariantKind, session_id: str, entry_id: str, option_id: str) -> None:
        self._check("record_answer")
        self.recorded.append((variant, session_id, entry_id, option_id))

    async def finalize_session(self, variant: VariantKind, session_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        self._check("finalize_session")
        self.finalized.append((variant, session_id, payload))
        policy = self.policies.get((variant, session_id))
        if policy is not None:
            policy["status"] = "completed"
        return {"ok": True}

    async def health_check(self) -> bool:
        self.calls.append("health_check")
        return self.online


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    """Clock frozen at T0."""
    return FakeClock()


@pytest.fixture
def producer():
    """In-memory producer, online."""
    return FakeProducer()


@pytest.fixture
def records(clock):
    """In-memory local records sharing the fake clock."""
    return LocalRecords.in_memory(now=clock)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment, storing under tmp_path."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "examhall",
        countdown_tick_seconds=0.01,
        deadline_check_seconds=0.01,
        connectivity_poll_seconds=0.01,
    )


@pytest.fixture
def pool_rows():
    """Factory for a pool of N rows (e1..eN, option b correct)."""
    return make_pool
