"""
CSRF token issuance and validation.

Tokens are bound to a pseudo-session identifier and expire after a fixed
time. Origin-header validation in the request middleware is the primary CSRF
defense; tokens are an additional layer on top of it.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from ..logging_config import get_logger
from .clock import Clock, SystemClock


@dataclass(frozen=True)
class CSRFToken:
    """Stored metadata for an issued token."""
    session_id: str
    created_at: float
    expires_at: float


def derive_session_id(client_ip: str, user_agent: str, issued_at_ms: float) -> str:
    """Pseudo-session id from client details and issue time."""
    raw = f"{client_ip}-{user_agent}-{int(issued_at_ms)}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


class CSRFTokenManager:
    """Session-bound, expiring token store."""

    def __init__(self, token_expiry_ms: float = 30 * 60 * 1000, clock: Optional[Clock] = None):
        self.token_expiry_ms = token_expiry_ms
        self.clock = clock or SystemClock()
        self.logger = get_logger(__name__, 'csrf_tokens')
        self.tokens: Dict[str, CSRFToken] = {}

    def generate_token(self, session_id: str) -> str:
        """Issue a new token bound to the session."""
        token = secrets.token_hex(32)
        now = self.clock.now()

        self.tokens[token] = CSRFToken(
            session_id=session_id,
            created_at=now,
            expires_at=now + self.token_expiry_ms
        )

        self.cleanup_expired_tokens()
        return token

    def validate_token(self, token: str, session_id: str) -> bool:
        """True only for a known, unexpired token issued to this session."""
        token_data = self.tokens.get(token)

        if token_data is None:
            return False

        if token_data.expires_at < self.clock.now():
            del self.tokens[token]
            return False

        return token_data.session_id == session_id

    def cleanup_expired_tokens(self) -> int:
        now = self.clock.now()
        expired = [token for token, data in self.tokens.items() if data.expires_at < now]

        for token in expired:
            del self.tokens[token]

        if expired:
            self.logger.debug(
                f"Removed {len(expired)} expired CSRF tokens",
                operation="csrf_cleanup"
            )

        return len(expired)

    def destroy(self):
        self.tokens.clear()
