"""Per-client request quotas backed by the ``limits`` library.

Each quota counts requests per key (the client address) in fixed windows.
Storage defaults to ``memory://``, which is per process: running several worker
processes multiplies the effective quota unless a shared backend such as
``redis://`` is configured through ``RATE_LIMIT_STORAGE_URI``.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass

from limits import parse
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .errors import RateLimitExceeded

DEFAULT_STORAGE_URI = 'memory://'


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of counting one request against a quota."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: int

    def headers(self) -> dict[str, str]:
        """Draft-standard ``RateLimit-*`` response headers."""
        return {
            'RateLimit-Limit': str(self.limit),
            'RateLimit-Remaining': str(self.remaining),
            'RateLimit-Reset': str(self.reset_after),
        }


class ClientQuota:
    """Allow ``max_requests`` per key in every ``window_seconds`` window."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        message: str | None = None,
        storage: Storage | None = None,
        namespace: str = 'keiko',
    ) -> None:
        if max_requests < 1 or window_seconds < 1:
            msg = 'Rate limits need a positive request count and window.'
            raise ValueError(msg)
        self.item = parse(f'{max_requests}/{window_seconds} seconds')
        self.storage = storage or storage_from_string(DEFAULT_STORAGE_URI)
        self.namespace = namespace
        self.message = message
        self._strategy = FixedWindowRateLimiter(self.storage)

    @property
    def max_requests(self) -> int:
        return self.item.amount

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for ``key`` and report whether it is admitted."""
        allowed = self._strategy.hit(self.item, self.namespace, key)
        reset_time, remaining = self._strategy.get_window_stats(self.item, self.namespace, key)
        return RateLimitDecision(
            allowed=allowed,
            limit=self.item.amount,
            remaining=max(0, remaining),
            reset_after=max(1, math.ceil(reset_time - time.time())),
        )

    def check(self, key: str) -> RateLimitDecision:
        """Like :meth:`hit`, but raise :class:`RateLimitExceeded` when over quota."""
        decision = self.hit(key)
        if not decision.allowed:
            raise RateLimitExceeded(decision.reset_after, self.message)
        return decision

    def reset(self) -> None:
        self.storage.reset()
