import threading

import pytest

from copilot import ratelimit
from copilot.ratelimit import (
    ConfigError,
    RateLimiter,
    check_rate_limit,
    get_client_identifier,
)


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


def test_three_calls_in_one_second(limiter, clock):
    results = []
    for _ in range(3):
        results.append(limiter.check("ip1", 2, 100))
        clock.advance(0.3)
    assert [r.allowed for r in results] == [True, True, False]
    assert results[2].window == "minute"
    assert results[0].window is None


def test_rejection_is_not_recorded(limiter, clock):
    for _ in range(3):
        assert limiter.check("ip1", 3, 100).allowed
    # repeated probes keep getting the same answer
    for _ in range(5):
        r = limiter.check("ip1", 3, 100)
        assert (r.allowed, r.window) == (False, "minute")


def test_rejected_minute_probe_does_not_consume_hour(limiter, clock):
    assert limiter.check("ip1", 2, 3).allowed
    assert limiter.check("ip1", 2, 3).allowed
    assert limiter.check("ip1", 2, 3).window == "minute"

    clock.advance(61)
    # hour holds 2 entries, so one more fits
    assert limiter.check("ip1", 2, 3).allowed

    clock.advance(61)
    r = limiter.check("ip1", 2, 3)
    assert (r.allowed, r.window) == (False, "hour")


def test_readmitted_after_minute_window(limiter, clock):
    for _ in range(2):
        limiter.check("ip1", 2, 100)
    assert not limiter.check("ip1", 2, 100).allowed

    clock.advance(60)
    # exactly at the boundary the old timestamps still count
    assert not limiter.check("ip1", 2, 100).allowed
    clock.advance(0.001)
    assert limiter.check("ip1", 2, 100).allowed


def test_retry_after_points_at_oldest_entry(limiter, clock):
    limiter.check("ip1", 1, 100)
    clock.advance(10)
    r = limiter.check("ip1", 1, 100)
    assert r.retry_after == pytest.approx(50)


def test_clients_are_independent(limiter):
    assert limiter.check("a", 1, 10).allowed
    assert not limiter.check("a", 1, 10).allowed
    assert limiter.check("b", 1, 10).allowed


def test_zero_limit_rejects_everything(limiter):
    r = limiter.check("ip1", 0, 10)
    assert (r.allowed, r.window) == (False, "minute")
    assert r.retry_after == pytest.approx(60)


@pytest.mark.parametrize("per_minute,per_hour", [(-1, 10), (5, -2), (1.5, 10), (True, 10)])
def test_bad_limits_raise_config_error(limiter, per_minute, per_hour):
    with pytest.raises(ConfigError):
        limiter.check("ip1", per_minute, per_hour)
    assert limiter.size() == 0


def test_sweep_drops_idle_buckets(limiter, clock):
    limiter.check("old", 5, 50)
    clock.advance(1800)
    limiter.check("fresh", 5, 50)
    assert limiter.size() == 2

    assert limiter.sweep() == 0  # "old" still inside the hour window
    clock.advance(1801)
    assert limiter.sweep() == 1
    assert limiter.size() == 1


def test_periodic_sweep_runs_during_checks(monkeypatch, limiter, clock):
    monkeypatch.setattr(ratelimit, "SWEEP_EVERY", 3)
    limiter.check("a", 5, 50)
    limiter.check("b", 5, 50)
    assert limiter.size() == 2

    clock.advance(3601)
    # third check triggers the sweep: a and b are idle, and c's brand-new
    # empty bucket goes too, so check has to fetch it again
    assert limiter.check("c", 1, 50).allowed
    assert limiter.size() == 1

    # c's admitted request landed in the live bucket
    r = limiter.check("c", 1, 50)
    assert (r.allowed, r.window) == (False, "minute")


def test_max_buckets_evicts_least_recently_seen(clock):
    lim = RateLimiter(clock=clock, max_buckets=2)
    lim.check("a", 1, 10)
    lim.check("b", 1, 10)
    lim.check("a", 1, 10)  # touch a, b becomes oldest
    lim.check("c", 1, 10)
    assert lim.size() == 2
    # b was evicted, so it starts fresh
    assert lim.check("b", 1, 10).allowed
    # and a is the one that went now
    assert lim.check("a", 1, 10).allowed


def test_concurrent_checks_never_exceed_limit():
    lim = RateLimiter()
    barrier = threading.Barrier(40)
    allowed = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        r = lim.check("same-client", 10, 100)
        with lock:
            allowed.append(r.allowed)

    threads = [threading.Thread(target=worker) for _ in range(40)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(allowed) == 10


def test_module_level_check_uses_given_limiter(limiter):
    assert check_rate_limit("x", 1, 5, limiter=limiter).allowed
    assert not check_rate_limit("x", 1, 5, limiter=limiter).allowed


def test_client_identifier_prefers_forwarded_for():
    assert get_client_identifier({"x-forwarded-for": " 1.2.3.4 , 10.0.0.1", "x-real-ip": "5.6.7.8"}) == "1.2.3.4"
    assert get_client_identifier({"X-Forwarded-For": "9.9.9.9"}) == "9.9.9.9"


def test_client_identifier_fallbacks():
    assert get_client_identifier({"x-forwarded-for": " , 1.1.1.1", "X-Real-IP": " 5.6.7.8 "}) == "5.6.7.8"
    assert get_client_identifier({}) == "unknown"
    assert get_client_identifier({"x-real-ip": "   "}) == "unknown"
