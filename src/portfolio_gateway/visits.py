"""
Portfolio Gateway - Visit Counter

In-memory page-visit counter. A visit counts once per client IP per hour
and never for bot user agents; the count resets on restart.
"""
from typing import Dict, Optional, Tuple

from ..shared.logging_config import get_logger
from ..shared.security.clock import Clock, SystemClock
from ..shared.security.request_guards import is_bot_user_agent

INITIAL_VISIT_COUNT = 12847
VISIT_DEDUPE_WINDOW_MS = 60 * 60 * 1000


class VisitCounter:
    """Deduplicating visit counter."""

    def __init__(
        self,
        initial_count: int = INITIAL_VISIT_COUNT,
        dedupe_window_ms: float = VISIT_DEDUPE_WINDOW_MS,
        clock: Optional[Clock] = None
    ):
        self.count = initial_count
        self.dedupe_window_ms = dedupe_window_ms
        self.clock = clock or SystemClock()
        self.logger = get_logger(__name__, 'visit_counter')

        # client IP -> time of last counted visit (ms)
        self.last_visits: Dict[str, float] = {}

    def record_visit(self, client_ip: str, user_agent: Optional[str]) -> Tuple[int, bool]:
        """Count a visit if eligible. Returns the current count and whether it moved."""
        if is_bot_user_agent(user_agent):
            return self.count, False

        now = self.clock.now()
        last_visit = self.last_visits.get(client_ip)
        if last_visit is not None and now - last_visit <= self.dedupe_window_ms:
            return self.count, False

        self.count += 1
        self.last_visits[client_ip] = now
        self._prune(now)

        self.logger.debug(
            "Visit recorded",
            operation="record_visit",
            count=self.count,
            tracked_clients=len(self.last_visits)
        )
        return self.count, True

    def _prune(self, now: float):
        expired = [ip for ip, seen in self.last_visits.items() if now - seen > self.dedupe_window_ms]
        for ip in expired:
            del self.last_visits[ip]
