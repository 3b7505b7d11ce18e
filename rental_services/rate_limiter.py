"""
rental_services.rate_limiter -- Sliding-window request limiting.

Responsibility:
    Gate entry into listing and payment operations per ``(actor, operation)``.
    Each key keeps the timestamps of its admitted requests; entries older
    than the policy window fall out independently of every other key.

Architecture position:
    Services layer.  State lives in the limiter instance that services
    receive at construction, never in module globals.

Failure modes:
    - ``enforce`` raises RateLimitExceededError when the window is full.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass

from rental_config.schema import RateLimitPolicy
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import RateLimitExceededError
from rental_kernel.logging_config import get_logger

logger = get_logger("services.rate_limiter")


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: float = 0.0


class SlidingWindowRateLimiter:
    """
    Per-(actor, operation) sliding window counter.

    Operations without a policy are unlimited.  An admitted request is
    recorded; a refused one is not, so hammering a full window does not
    extend it.
    """

    def __init__(
        self,
        policies: Mapping[str, RateLimitPolicy],
        clock: Clock | None = None,
    ) -> None:
        self._policies = dict(policies)
        self._clock = clock or SystemClock()
        self._hits: dict[tuple[str, str], deque] = {}

    def check(self, actor_id: str, operation: str) -> RateLimitDecision:
        policy = self._policies.get(operation)
        if policy is None:
            return RateLimitDecision(allowed=True, remaining=-1)

        now = self._clock.now().timestamp()
        key = (str(actor_id), operation)
        self._evict_idle(now)
        hits = self._hits.get(key) or deque()

        if len(hits) >= policy.max_requests:
            retry_after = policy.window_seconds - (now - hits[0])
            logger.warning(
                "rate_limit_exceeded",
                extra={
                    "actor_id": str(actor_id),
                    "operation": operation,
                    "retry_after_seconds": round(retry_after, 3),
                },
            )
            return RateLimitDecision(
                allowed=False, remaining=0, retry_after_seconds=retry_after
            )

        hits.append(now)
        self._hits[key] = hits
        return RateLimitDecision(allowed=True, remaining=policy.max_requests - len(hits))

    def _evict_idle(self, now: float) -> None:
        """Drop expired timestamps and forget keys whose window has drained."""
        for key in list(self._hits):
            window = self._policies[key[1]].window_seconds
            hits = self._hits[key]
            while hits and now - hits[0] >= window:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def enforce(self, actor_id: str, operation: str) -> RateLimitDecision:
        decision = self.check(actor_id, operation)
        if not decision.allowed:
            raise RateLimitExceededError(
                str(actor_id), operation, decision.retry_after_seconds
            )
        return decision

    def reset(self, actor_id: str | None = None) -> None:
        """Forget recorded hits for one actor, or for everyone."""
        if actor_id is None:
            self._hits.clear()
            return
        for key in [k for k in self._hits if k[0] == str(actor_id)]:
            del self._hits[key]
