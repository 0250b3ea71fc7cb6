"""
Suspicion scoring and IP blocking for Portfolio Guard.

Every reported activity adds a weight to the reporting IP's score. When the
score reaches the threshold the IP is blocked for a fixed duration, after
which both the block and the IP's history are forgotten.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..logging_config import get_logger
from .clock import Clock, Scheduler, SystemClock, AsyncioScheduler, TimerHandle


class SuspiciousActivityType(str, Enum):
    """Kinds of activity that raise an IP's suspicion score."""
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_INPUT = "INVALID_INPUT"
    CSRF_VIOLATION = "CSRF_VIOLATION"
    XSS_ATTEMPT = "XSS_ATTEMPT"
    SQL_INJECTION_ATTEMPT = "SQL_INJECTION_ATTEMPT"
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    SUSPICIOUS_USER_AGENT = "SUSPICIOUS_USER_AGENT"
    MULTIPLE_FAILED_REQUESTS = "MULTIPLE_FAILED_REQUESTS"


ACTIVITY_SCORES = {
    SuspiciousActivityType.RATE_LIMIT_EXCEEDED: 1,
    SuspiciousActivityType.INVALID_INPUT: 0.5,
    SuspiciousActivityType.CSRF_VIOLATION: 2,
    SuspiciousActivityType.XSS_ATTEMPT: 3,
    SuspiciousActivityType.SQL_INJECTION_ATTEMPT: 3,
    SuspiciousActivityType.MALFORMED_REQUEST: 1,
    SuspiciousActivityType.SUSPICIOUS_USER_AGENT: 0.5,
    SuspiciousActivityType.MULTIPLE_FAILED_REQUESTS: 1,
}

DEFAULT_ACTIVITY_SCORE = 1


class ResetNotAllowedError(RuntimeError):
    """Raised when reset_all() is called on a detector that forbids it."""


@dataclass
class ActivityRecord:
    """One reported activity."""
    activity_type: SuspiciousActivityType
    timestamp: float
    details: Optional[str] = None


@dataclass
class SuspiciousActivity:
    """Accumulated history for one IP."""
    first_seen: float
    last_seen: float
    score: float = 0
    activities: List[ActivityRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'first_seen': self.first_seen,
            'last_seen': self.last_seen,
            'activities': [
                {
                    'type': record.activity_type.value,
                    'timestamp': record.timestamp,
                    'details': record.details
                }
                for record in self.activities
            ]
        }


def get_activity_score(activity_type) -> float:
    """Weight of an activity type; unknown types count as 1."""
    try:
        return ACTIVITY_SCORES[SuspiciousActivityType(activity_type)]
    except ValueError:
        return DEFAULT_ACTIVITY_SCORE


class AttackDetector:
    """Per-IP suspicion accumulator that escalates to a timed block."""

    def __init__(
        self,
        suspicion_threshold: float = 8,
        block_duration_ms: float = 30 * 60 * 1000,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        allow_reset: bool = False
    ):
        self.suspicion_threshold = suspicion_threshold
        self.block_duration_ms = block_duration_ms
        self.allow_reset = allow_reset
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self.logger = get_logger(__name__, 'attack_detector')

        self.suspicious_ips: Dict[str, SuspiciousActivity] = {}
        self.blocked_ips: Set[str] = set()
        self._unblock_timers: Dict[str, TimerHandle] = {}

        self.stats = {
            'activities_reported': 0,
            'ips_blocked': 0,
            'ips_unblocked': 0
        }

    def report_suspicious_activity(self, client_ip: str, activity_type, details: Optional[str] = None) -> bool:
        """
        Record an activity for the IP.

        Returns True when this report pushed the IP over the threshold and
        started a new block.
        """
        now = self.clock.now()
        self.stats['activities_reported'] += 1

        activity = self.suspicious_ips.get(client_ip)
        if activity is None:
            activity = SuspiciousActivity(first_seen=now, last_seen=now)
            self.suspicious_ips[client_ip] = activity

        try:
            activity_type = SuspiciousActivityType(activity_type)
        except ValueError:
            self.logger.warning(
                f"Unknown suspicious activity type: {activity_type}",
                operation="report_activity",
                client_ip=client_ip
            )
            activity_type = SuspiciousActivityType.MALFORMED_REQUEST

        activity.activities.append(ActivityRecord(activity_type, now, details))
        activity.score += get_activity_score(activity_type)
        activity.last_seen = now

        if activity.score >= self.suspicion_threshold and client_ip not in self.blocked_ips:
            self._block_ip(client_ip, activity.score)
            return True

        return False

    def is_ip_blocked(self, client_ip: str) -> bool:
        return client_ip in self.blocked_ips

    def get_activity(self, client_ip: str) -> Optional[SuspiciousActivity]:
        return self.suspicious_ips.get(client_ip)

    def _block_ip(self, client_ip: str, score: float):
        self.blocked_ips.add(client_ip)
        self.stats['ips_blocked'] += 1
        self._unblock_timers[client_ip] = self.scheduler.call_later(
            self.block_duration_ms,
            lambda: self._unblock_ip(client_ip)
        )

        self.logger.warning(
            f"[SECURITY] Blocked IP {client_ip} due to suspicious activity",
            operation="ip_block",
            client_ip=client_ip,
            score=score,
            duration_ms=self.block_duration_ms
        )

    def _unblock_ip(self, client_ip: str):
        self._unblock_timers.pop(client_ip, None)
        self.blocked_ips.discard(client_ip)
        self.suspicious_ips.pop(client_ip, None)
        self.stats['ips_unblocked'] += 1

        self.logger.info(
            f"Block expired for IP {client_ip}",
            operation="ip_unblock",
            client_ip=client_ip
        )

    def reset_all(self):
        """Forget every block and score. Development use only."""
        if not self.allow_reset:
            raise ResetNotAllowedError("Attack detector reset is disabled in this environment")
        self._clear()
        self.logger.info("Attack detector state reset", operation="reset_all")

    def _clear(self):
        for handle in self._unblock_timers.values():
            handle.cancel()
        self._unblock_timers.clear()
        self.suspicious_ips.clear()
        self.blocked_ips.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get attack detector statistics."""
        return {
            **self.stats,
            'tracked_ips': len(self.suspicious_ips),
            'blocked_ips': len(self.blocked_ips),
            'suspicion_threshold': self.suspicion_threshold
        }

    def destroy(self):
        """Cancel pending unblock timers and drop all state."""
        self._clear()
