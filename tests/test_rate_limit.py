"""Tests for the in-process sliding-window rate limiter."""

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from deferlink.middleware import rate_limit
from deferlink.middleware.rate_limit import check_rate_limit, reset_rate_limits


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def clock(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(rate_limit, "time", SimpleNamespace(time=lambda: now[0]))
    return now


class TestSlidingWindow:
    def test_blocks_after_limit(self, clock):
        assert check_rate_limit("click:1.2.3.4", 2) == 1
        assert check_rate_limit("click:1.2.3.4", 2) == 0
        with pytest.raises(HTTPException) as exc:
            check_rate_limit("click:1.2.3.4", 2)
        assert exc.value.status_code == 429

    def test_window_slides(self, clock):
        check_rate_limit("click:1.2.3.4", 1)
        clock[0] += 61
        assert check_rate_limit("click:1.2.3.4", 1) == 0


class TestCleanup:
    def test_many_one_off_clients_do_not_accumulate(self):
        for i in range(5000):
            check_rate_limit(f"click:10.0.{i // 256}.{i % 256}", 30, window=0)
        assert len(rate_limit._memory_store) < 5000

    def test_stale_clients_dropped_live_ones_kept(self, clock):
        check_rate_limit("click:old", 30)
        clock[0] = 1050.0
        check_rate_limit("click:recent", 30)
        clock[0] = 1070.0
        check_rate_limit("click:new", 30)

        assert set(rate_limit._memory_store) == {"click:recent", "click:new"}

    def test_size_cap_triggers_cleanup(self, clock, monkeypatch):
        monkeypatch.setattr(rate_limit, "MAX_TRACKED_KEYS", 10)
        monkeypatch.setattr(rate_limit, "_last_prune", clock[0])
        for i in range(11):
            rate_limit._memory_store[f"click:{i}"] = [clock[0] - 100]

        check_rate_limit("click:new", 30)

        assert set(rate_limit._memory_store) == {"click:new"}
