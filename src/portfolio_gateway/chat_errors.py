"""
Portfolio Gateway - Upstream Error Classification

Maps failures of the upstream chat service to a category, a user-facing
message and the HTTP status returned to the browser.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .chat_client import UpstreamError


@dataclass(frozen=True)
class UpstreamErrorInfo:
    category: str
    message: str
    status_code: int


QUOTA_MESSAGE = (
    "Claude is experiencing high demand (success!). While my AI twin takes a "
    "power nap, the original human version is still online and ready to chat! "
    "Please use the contact form below."
)
NOT_CONFIGURED_MESSAGE = (
    "Chat service is not properly configured. Please contact me directly "
    "using the contact form."
)

# Anthropic error type -> (category, message, status)
ANTHROPIC_ERRORS: Dict[str, Tuple[str, str, int]] = {
    'authentication_error': (
        'authentication',
        "There's an authentication issue. Please contact me directly using the contact form.",
        401
    ),
    'permission_error': (
        'permission',
        "I don't have permission to process this request. Please try again or contact me directly.",
        403
    ),
    'not_found_error': (
        'unavailable',
        "The AI service is temporarily unavailable. Please try again later.",
        503
    ),
    'rate_limit_error': (
        'rate_limit',
        "I'm receiving too many requests right now. Please wait a moment and try again.",
        429
    ),
    'api_error': (
        'server',
        "I'm experiencing technical difficulties. Please try again in a few minutes.",
        500
    ),
    'overloaded_error': (
        'unavailable',
        "I'm a bit overloaded right now. Please try again in a moment.",
        503
    ),
    'configuration_error': (
        'configuration',
        NOT_CONFIGURED_MESSAGE,
        503
    ),
}

# Upstream HTTP status -> (category, message, status)
HTTP_ERRORS: Dict[int, Tuple[str, str, int]] = {
    400: ('bad_request', "There was an issue with your request. Please try rephrasing your question.", 400),
    401: ('authentication', "Authentication issue detected. Please contact me directly using the contact form.", 401),
    403: ('permission', "Access denied. Please contact me directly for assistance.", 403),
    404: ('unavailable', "Service not found. Please try again later.", 503),
    429: ('rate_limit', "Too many requests. Please wait a moment before trying again.", 429),
    500: ('server', "I'm experiencing server issues. Please try again in a few minutes.", 500),
    503: ('unavailable', "I'm temporarily unavailable for maintenance. Please try again shortly.", 503),
}

# Checked in order; first group with a matching marker wins
MESSAGE_PATTERNS: Tuple[Tuple[str, Tuple[str, ...], str, int], ...] = (
    (
        'quota',
        ('credit', 'quota', 'usage limit', 'insufficient funds', 'billing'),
        QUOTA_MESSAGE,
        503
    ),
    (
        'rate_limit',
        ('rate limit', 'too many requests', '429'),
        "I'm getting a lot of questions right now! Please wait a moment and try again.",
        429
    ),
    (
        'authentication',
        ('unauthorized', 'authentication', 'invalid api key', '401'),
        "There's a configuration issue on my end. Please use the contact form to reach out directly.",
        401
    ),
    (
        'network',
        ('network', 'connection', 'timeout', 'fetch'),
        "I'm having trouble connecting right now. Please check your internet connection and try again.",
        502
    ),
    (
        'server',
        ('500', 'server error', 'internal error'),
        "I'm experiencing some technical difficulties. Please try again in a few minutes.",
        500
    ),
    (
        'unavailable',
        ('503', 'service unavailable', 'temporarily unavailable'),
        "I'm temporarily down for maintenance. Please try again shortly.",
        503
    ),
)


def classify_message(message: str) -> UpstreamErrorInfo:
    """Classify an error by the text of its message."""
    lower_message = message.lower()

    for category, markers, user_message, status_code in MESSAGE_PATTERNS:
        if any(marker in lower_message for marker in markers):
            return UpstreamErrorInfo(category, user_message, status_code)

    shown = message[:100] + '...' if len(message) > 100 else message
    return UpstreamErrorInfo('unknown', f"Something went wrong: {shown}", 500)


def classify_anthropic_error(error_type: str, message: Optional[str] = None) -> UpstreamErrorInfo:
    if error_type == 'api_error' and message and 'credit' in message.lower():
        return UpstreamErrorInfo('quota', QUOTA_MESSAGE, 503)

    known = ANTHROPIC_ERRORS.get(error_type)
    if known:
        return UpstreamErrorInfo(*known)

    return classify_message(message or "An unexpected error occurred with the AI service.")


def classify_http_error(status_code: int, message: Optional[str] = None) -> UpstreamErrorInfo:
    known = HTTP_ERRORS.get(status_code)
    if known:
        return UpstreamErrorInfo(*known)

    return classify_message(message or f"Service error ({status_code})")


def classify_upstream_error(error: Any) -> UpstreamErrorInfo:
    """
    Classify an upstream failure.

    Structured details win over message text: an Anthropic error type is
    used first, then the upstream HTTP status, then the message. Plain
    dicts shaped like an Anthropic error body are accepted too.
    """
    if error is None:
        return UpstreamErrorInfo('unknown', "An unexpected error occurred. Please try again.", 500)

    if isinstance(error, str):
        return classify_message(error)

    if isinstance(error, UpstreamError):
        if error.error_type:
            return classify_anthropic_error(error.error_type, error.message)
        if error.status_code:
            return classify_http_error(error.status_code, error.message)
        return classify_message(error.message)

    if isinstance(error, dict):
        nested = error.get('error')
        if isinstance(nested, dict) and nested.get('type'):
            return classify_anthropic_error(nested['type'], nested.get('message'))
        if error.get('status'):
            return classify_http_error(int(error['status']), error.get('message') or error.get('statusText'))
        if error.get('message'):
            return classify_message(str(error['message']))
        return UpstreamErrorInfo('unknown', "A technical error occurred. Please try again in a moment.", 500)

    if isinstance(error, Exception):
        return classify_message(str(error))

    return UpstreamErrorInfo('unknown', "A technical error occurred. Please try again in a moment.", 500)
