"""
Bounded in-memory security event log.

Entries are kept most-recent-first in a fixed-size buffer, mirrored to the
application logger at a level derived from their severity, and CRITICAL
events in production are handed to a pluggable alert hook.
"""

import copy
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Union
from uuid import uuid4

from ..logging_config import get_logger
from .clock import Clock, SystemClock
from .input_analyzer import Severity


class SecurityEventType(str, Enum):
    """Event types emitted by the request pipeline and routes."""
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    BLOCKED_IP_REQUEST = "BLOCKED_IP_REQUEST"
    IP_BLOCKED = "IP_BLOCKED"
    CSRF_VIOLATION = "CSRF_VIOLATION"
    CSRF_TOKEN_INVALID = "CSRF_TOKEN_INVALID"
    MALICIOUS_INPUT = "MALICIOUS_INPUT"
    SUSPICIOUS_INPUT = "SUSPICIOUS_INPUT"
    INVALID_REQUEST = "INVALID_REQUEST"
    BOT_DETECTED = "BOT_DETECTED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UNAUTHORIZED_LOG_ACCESS = "UNAUTHORIZED_LOG_ACCESS"


@dataclass(frozen=True)
class SecurityLogEntry:
    """Immutable record of one security event."""
    id: str
    timestamp: str
    type: str
    severity: Severity
    message: str
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'type': self.type,
            'severity': self.severity.value,
            'message': self.message,
            'clientIP': self.client_ip,
            'userAgent': self.user_agent,
            'endpoint': self.endpoint,
            'details': self.details
        }


AlertHook = Callable[[SecurityLogEntry], None]


class SecurityLogger:
    """Ring buffer of structured security events."""

    MAX_LOG_ENTRIES = 1000

    def __init__(
        self,
        max_entries: int = MAX_LOG_ENTRIES,
        is_production: bool = False,
        alert_hook: Optional[AlertHook] = None,
        clock: Optional[Clock] = None
    ):
        self.max_entries = max_entries
        self.is_production = is_production
        self.alert_hook = alert_hook or self._default_alert
        self.clock = clock or SystemClock()
        self.logger = get_logger(__name__, 'security_logger')
        self._entries: Deque[SecurityLogEntry] = deque(maxlen=max_entries)

    def log(
        self,
        type: Union[str, SecurityEventType],
        severity: Union[str, Severity],
        message: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> SecurityLogEntry:
        """Record an event and route it by severity."""
        severity = Severity(severity)
        event_type = type.value if isinstance(type, SecurityEventType) else str(type)
        timestamp = datetime.fromtimestamp(self.clock.now() / 1000, tz=timezone.utc)

        entry = SecurityLogEntry(
            id=str(uuid4()),
            timestamp=timestamp.isoformat(),
            type=event_type,
            severity=severity,
            message=message,
            client_ip=client_ip,
            user_agent=user_agent,
            endpoint=endpoint,
            details=copy.deepcopy(details) if details else None
        )

        self._entries.appendleft(entry)
        self._emit(entry)

        if severity == Severity.CRITICAL and self.is_production:
            try:
                self.alert_hook(entry)
            except Exception as e:
                self.logger.error(
                    f"Security alert hook failed: {e}",
                    operation="security_alert",
                    entry_id=entry.id
                )

        return entry

    def _emit(self, entry: SecurityLogEntry):
        if entry.severity == Severity.CRITICAL:
            emit = self.logger.error
        elif entry.severity == Severity.HIGH:
            emit = self.logger.warning
        else:
            emit = self.logger.info

        emit(
            f"[SECURITY][{entry.type}] {entry.message}",
            operation="security_event",
            client_ip=entry.client_ip,
            user_agent=entry.user_agent,
            endpoint=entry.endpoint,
            details=entry.details
        )

    def _default_alert(self, entry: SecurityLogEntry):
        # Real transports (mail, chat webhooks) plug in through alert_hook
        self.logger.critical(
            f"[CRITICAL SECURITY ALERT] {entry.message}",
            operation="security_alert",
            entry=entry.to_dict()
        )

    def get_recent_logs(self, limit: int = 100) -> List[SecurityLogEntry]:
        """The most recent entries, newest first."""
        if limit <= 0:
            return []
        return list(self._entries)[:limit]

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self):
        self._entries.clear()
