"""
Sliding-window rate limiting for Portfolio Guard.

Each RateLimiter instance counts requests per client key within the trailing
window and owns its state; route classes (general API, chat, visits) get
independent instances.
"""

from typing import Any, Dict, List, Optional

from ..logging_config import get_logger
from .clock import Clock, Scheduler, SystemClock, AsyncioScheduler, TimerHandle


class RateLimiter:
    """Fixed-capacity sliding-window counter per client key."""

    def __init__(
        self,
        max_requests: int = 100,
        window_ms: float = 60 * 1000,
        cleanup_interval_ms: float = 5 * 60 * 1000,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        name: str = "default"
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self.name = name
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self.logger = get_logger(__name__, 'rate_limiter')

        # client key -> request timestamps (ms), oldest first
        self.requests: Dict[str, List[float]] = {}
        self._cleanup_handle: Optional[TimerHandle] = None

        self.stats = {
            'requests_processed': 0,
            'requests_limited': 0,
            'clients_cleaned': 0
        }

    def _valid_requests(self, client_key: str, now: float) -> List[float]:
        return [ts for ts in self.requests.get(client_key, []) if now - ts < self.window_ms]

    def is_rate_limited(self, client_key: str) -> bool:
        """Record a request for the client unless it has exhausted the window."""
        self.stats['requests_processed'] += 1
        now = self.clock.now()

        valid_requests = self._valid_requests(client_key, now)
        self.requests[client_key] = valid_requests

        if len(valid_requests) >= self.max_requests:
            self.stats['requests_limited'] += 1
            return True

        valid_requests.append(now)
        return False

    def get_remaining_requests(self, client_key: str) -> int:
        """Requests left in the current window; does not record anything."""
        valid_requests = self._valid_requests(client_key, self.clock.now())
        return max(0, self.max_requests - len(valid_requests))

    def get_time_until_reset(self, client_key: str) -> float:
        """Milliseconds until the oldest stored request leaves the window."""
        client_requests = self.requests.get(client_key)
        if not client_requests:
            return 0
        reset_time = min(client_requests) + self.window_ms
        return max(0, reset_time - self.clock.now())

    def cleanup(self) -> int:
        """Drop clients whose requests are all older than twice the window."""
        cutoff = self.clock.now() - self.window_ms * 2
        expired_keys = []

        for client_key, timestamps in self.requests.items():
            remaining = [ts for ts in timestamps if ts > cutoff]
            if remaining:
                self.requests[client_key] = remaining
            else:
                expired_keys.append(client_key)

        for client_key in expired_keys:
            del self.requests[client_key]

        if expired_keys:
            self.stats['clients_cleaned'] += len(expired_keys)
            self.logger.debug(
                f"Cleaned up {len(expired_keys)} idle rate limit clients",
                operation="rate_limit_cleanup",
                limiter=self.name
            )

        return len(expired_keys)

    def start(self):
        """Start the periodic cleanup sweep."""
        if self._cleanup_handle is None:
            self._cleanup_handle = self.scheduler.call_repeating(self.cleanup_interval_ms, self.cleanup)

    def destroy(self):
        """Stop the cleanup sweep and drop all state."""
        if self._cleanup_handle is not None:
            self._cleanup_handle.cancel()
            self._cleanup_handle = None
        self.requests.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            **self.stats,
            'name': self.name,
            'max_requests': self.max_requests,
            'window_ms': self.window_ms,
            'active_clients': len(self.requests)
        }
