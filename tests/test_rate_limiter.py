"""Tests for the outbound Odesli rate limiter."""

from app.core.rate_limiter import FixedWindowRateLimiter


class Ticker:
    def __init__(self) -> None:
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


class TestFixedWindow:
    def test_allows_up_to_limit(self):
        limiter = FixedWindowRateLimiter(limit=3, window_seconds=60, clock=Ticker())
        decisions = [limiter.check() for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

    def test_denies_call_over_limit_with_positive_retry(self):
        ticker = Ticker()
        limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=ticker)
        limiter.check()
        limiter.check()

        ticker.t += 15
        denied = limiter.check()
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.retry_after_seconds == 45

    def test_window_reset_allows_again(self):
        ticker = Ticker()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=ticker)
        assert limiter.allow() is True
        assert limiter.allow() is False

        ticker.t += 61
        assert limiter.allow() is True

    def test_still_denied_exactly_at_window_edge(self):
        ticker = Ticker()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=ticker)
        limiter.check()

        ticker.t += 60
        decision = limiter.check()
        assert decision.allowed is False
        assert decision.retry_after_seconds >= 1

    def test_new_window_starts_at_reset_time(self):
        ticker = Ticker()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=10, clock=ticker)
        limiter.check()
        ticker.t += 25
        assert limiter.allow() is True
        assert limiter.reset_in == 10

    def test_zero_limit_denies_everything(self):
        limiter = FixedWindowRateLimiter(limit=0, window_seconds=60, clock=Ticker())
        assert limiter.allow() is False

    def test_instances_are_independent(self):
        ticker = Ticker()
        a = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=ticker)
        b = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=ticker)
        assert a.allow() is True
        assert a.allow() is False
        assert b.allow() is True
