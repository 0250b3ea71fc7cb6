"""
Request-boundary helpers: client identification, bot detection and CSRF
origin validation.

The helpers only need an object exposing ``headers.get``, ``method`` and
``cookies.get``, which Starlette requests provide.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

SAFE_METHODS = ("GET", "HEAD", "OPTIONS")

CSRF_HEADER = "x-csrf-token"
SESSION_COOKIE = "session-id"

BOT_USER_AGENT_PATTERN = re.compile(
    r"bot|crawler|spider|crawling|scraper|facebookexternalhit|twitterbot|linkedinbot",
    re.IGNORECASE
)

_LOCAL_ORIGIN_MARKERS = ("localhost", "127.0.0.1")


@dataclass(frozen=True)
class CSRFValidationResult:
    valid: bool
    reason: Optional[str] = None


def get_client_ip(request: Any) -> str:
    """Client IP from proxy headers, or "unknown"."""
    headers = request.headers

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    return headers.get("x-real-ip") or headers.get("x-client-ip") or "unknown"


def is_bot_user_agent(user_agent: Optional[str]) -> bool:
    return bool(user_agent) and BOT_USER_AGENT_PATTERN.search(user_agent) is not None


def detect_bot(request: Any) -> bool:
    """True if the request's user agent matches a known bot signature."""
    return is_bot_user_agent(request.headers.get("user-agent") or "")


def validate_csrf(request: Any, allow_localhost_origins: bool = False, csrf_manager=None) -> CSRFValidationResult:
    """
    Validate a state-changing request.

    A token in the x-csrf-token header bound to the session-id cookie is
    accepted when a token manager is supplied; otherwise the Origin header
    must name this host.
    """
    if request.method.upper() in SAFE_METHODS:
        return CSRFValidationResult(valid=True)

    if csrf_manager is not None:
        token = request.headers.get(CSRF_HEADER)
        session_id = request.cookies.get(SESSION_COOKIE)
        if token and session_id and csrf_manager.validate_token(token, session_id):
            return CSRFValidationResult(valid=True)

    origin = request.headers.get("origin")
    if not origin:
        return CSRFValidationResult(valid=False, reason="Missing Origin header and CSRF token")

    host = request.headers.get("host")
    if host and origin in (f"https://{host}", f"http://{host}"):
        return CSRFValidationResult(valid=True)

    if allow_localhost_origins and any(marker in origin for marker in _LOCAL_ORIGIN_MARKERS):
        return CSRFValidationResult(valid=True)

    return CSRFValidationResult(valid=False, reason="Origin mismatch and no valid CSRF token")
