"""Tests for the one-team-per-device conflict detector."""

from __future__ import annotations

import asyncio
import threading

import pytest

from teamlock.core.lock.conflicts import ConflictDetector
from teamlock.core.storage.memory import MemoryStore
from teamlock.core.storage.sqlite import SqliteStore

DAY = 86400


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(str(tmp_path / "locks.db"))


@pytest.fixture
def detector(backend, clock):
    return ConflictDetector(backend, clock=clock)


class TestCheckAndLock:
    def test_first_lock_succeeds(self, detector, clock):
        result = asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        assert result.ok
        assert result.expires_at == clock.now + DAY
        assert result.remaining_ttl == DAY

    def test_same_team_refreshes(self, detector, clock):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        clock.advance(3600)
        result = asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        assert result.ok
        assert result.expires_at == clock.now + DAY

    def test_other_team_conflicts(self, detector, clock):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        clock.advance(3600)
        result = asyncio.run(detector.check_and_lock("dev-1", "TEAM_beta", DAY))
        assert not result.ok
        assert result.conflicting_team_id == "TEAM_alpha"
        assert result.remaining_ttl == DAY - 3600

    def test_conflict_leaves_existing_lock(self, detector, clock):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_beta", DAY))
        current = asyncio.run(detector.current("dev-1"))
        assert current.team_id == "TEAM_alpha"

    def test_other_device_unaffected(self, detector):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        result = asyncio.run(detector.check_and_lock("dev-2", "TEAM_beta", DAY))
        assert result.ok

    def test_expired_lock_is_replaced(self, detector, clock):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", DAY))
        clock.advance(DAY)
        result = asyncio.run(detector.check_and_lock("dev-1", "TEAM_beta", DAY))
        assert result.ok
        assert asyncio.run(detector.current("dev-1")).team_id == "TEAM_beta"


class TestCurrentAndPurge:
    def test_current_none_when_absent(self, detector):
        assert asyncio.run(detector.current("dev-1")) is None

    def test_current_none_after_expiry(self, detector, clock):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", 60))
        clock.advance(60)
        assert asyncio.run(detector.current("dev-1")) is None

    def test_purge_removes_only_expired(self, detector, clock):
        asyncio.run(detector.check_and_lock("dev-1", "TEAM_alpha", 60))
        asyncio.run(detector.check_and_lock("dev-2", "TEAM_beta", DAY))
        clock.advance(120)
        assert asyncio.run(detector.purge_expired()) == 1
        assert asyncio.run(detector.current("dev-2")).team_id == "TEAM_beta"


class TestRaces:
    def test_gathered_calls_one_winner(self, detector):
        async def race():
            return await asyncio.gather(
                detector.check_and_lock("dev-1", "TEAM_alpha", DAY),
                detector.check_and_lock("dev-1", "TEAM_beta", DAY),
            )

        results = asyncio.run(race())
        assert sorted(r.ok for r in results) == [False, True]
        winner = next(r for r in results if r.ok)
        loser = next(r for r in results if not r.ok)
        assert loser.conflicting_team_id == winner.team_id

    def test_threaded_calls_one_winner_per_device(self, detector):
        teams = [f"TEAM_{i}" for i in range(8)]
        results = []
        results_lock = threading.Lock()
        barrier = threading.Barrier(len(teams))

        def worker(team_id):
            barrier.wait()
            result = asyncio.run(detector.check_and_lock("dev-1", team_id, DAY))
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=worker, args=(t,)) for t in teams]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [r for r in results if r.ok]
        assert len(winners) == 1
        assert all(r.conflicting_team_id == winners[0].team_id for r in results if not r.ok)
