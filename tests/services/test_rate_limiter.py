"""Sliding-window rate limiter keyed by (actor, operation)."""

import pytest

from rental_config.schema import RateLimitPolicy
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.exceptions import RateLimitExceededError
from rental_services.rate_limiter import SlidingWindowRateLimiter


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def limiter(clock):
    return SlidingWindowRateLimiter({"listing:create": RateLimitPolicy(3, 60)}, clock=clock)


class TestSlidingWindow:

    def test_admits_up_to_limit(self, limiter):
        remaining = [limiter.enforce("u1", "listing:create").remaining for _ in range(3)]
        assert remaining == [2, 1, 0]

    def test_refuses_over_limit(self, limiter, captured_logs):
        for _ in range(3):
            limiter.enforce("u1", "listing:create")
        with pytest.raises(RateLimitExceededError):
            limiter.enforce("u1", "listing:create")
        assert any(r["message"] == "rate_limit_exceeded" for r in captured_logs())

    def test_window_slides(self, limiter, clock):
        for _ in range(3):
            limiter.enforce("u1", "listing:create")
        clock.advance(60)
        assert limiter.check("u1", "listing:create").allowed

    def test_retry_after(self, limiter, clock):
        for _ in range(3):
            limiter.enforce("u1", "listing:create")
        clock.advance(20)
        decision = limiter.check("u1", "listing:create")
        assert not decision.allowed
        assert decision.retry_after_seconds == pytest.approx(40)

    def test_refused_request_not_recorded(self, limiter, clock):
        for _ in range(3):
            limiter.enforce("u1", "listing:create")
        clock.advance(30)
        limiter.check("u1", "listing:create")
        clock.advance(30)
        assert limiter.check("u1", "listing:create").allowed

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.enforce("u1", "listing:create")
        assert limiter.check("u2", "listing:create").allowed

    def test_unknown_operation_unlimited(self, limiter):
        for _ in range(100):
            assert limiter.check("u1", "listing:view").allowed

    def test_reset_actor(self, limiter):
        for _ in range(3):
            limiter.enforce("u1", "listing:create")
        limiter.reset("u1")
        assert limiter.check("u1", "listing:create").allowed

    def test_drained_keys_are_forgotten(self, limiter, clock):
        for actor in ("u1", "u2", "u3"):
            limiter.enforce(actor, "listing:create")
        clock.advance(60)
        limiter.check("u4", "listing:create")
        assert set(limiter._hits) == {("u4", "listing:create")}

    def test_unlimited_operation_keeps_no_state(self, limiter):
        limiter.check("u1", "listing:view")
        assert limiter._hits == {}
