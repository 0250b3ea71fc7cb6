"""
Request protection middleware for Portfolio Guard.

Provides security headers on every response and the request pipeline that
guards /api/* routes: rate limiting, blocked-IP rejection and CSRF checks,
in that order.
"""

from typing import Any, Dict, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..logging_config import get_logger, get_correlation_id, CorrelationContext
from .attack_detector import SuspiciousActivityType
from .input_analyzer import Severity
from .request_guards import get_client_ip, validate_csrf
from .security_logger import SecurityEventType
from .services import SecurityConfig, SecurityServices

RATE_LIMIT_MESSAGE = "Too many requests. Please slow down."
BLOCKED_MESSAGE = "Access denied"
CSRF_MESSAGE = "CSRF validation failed"


def create_error_response(
    message: str,
    status_code: int,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """Create standardized error response."""
    response_headers = {"Cache-Control": "no-store, max-age=0"}
    if headers:
        response_headers.update(headers)

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "status": status_code
        },
        headers=response_headers
    )


def create_success_response(
    data: Any = None,
    message: Optional[str] = None,
    status_code: int = status.HTTP_200_OK
) -> JSONResponse:
    """Create standardized success response."""
    content: Dict[str, Any] = {"success": True}
    if data is not None:
        content["data"] = data
    if message:
        content["message"] = message

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"Cache-Control": "no-store, max-age=0"}
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware for adding security headers."""

    def __init__(self, app: ASGIApp, config: SecurityConfig):
        super().__init__(app)
        self.config = config

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        for header, value in self.config.get_security_headers().items():
            response.headers[header] = value

        return response


class SecurityPipelineMiddleware(BaseHTTPMiddleware):
    """
    Guards /api/* requests before they reach a route handler.

    Checks run in a fixed order and the first failure short-circuits:
    route-class rate limit (429), blocked IP (403), then CSRF validation
    for state-changing methods outside the exempt paths (403). Rejections
    are written to the security log; rate-limit and CSRF failures also
    count against the client's suspicion score.
    """

    def __init__(self, app: ASGIApp, services: SecurityServices):
        super().__init__(app)
        self.services = services
        self.config = services.config
        self.logger = get_logger(__name__, 'security_pipeline')

        self.stats = {
            'requests_processed': 0,
            'rate_limited': 0,
            'blocked_ip_rejections': 0,
            'csrf_rejections': 0
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not path.startswith(self.config.api_prefix):
            return await call_next(request)

        client_ip = get_client_ip(request)

        with CorrelationContext(client_ip_value=client_ip):
            self.stats['requests_processed'] += 1

            rejection = (
                self._check_rate_limit(request, client_ip)
                or self._check_blocked_ip(request, client_ip)
                or self._check_csrf(request, client_ip)
            )
            if rejection is None:
                response = await call_next(request)
            else:
                response = rejection

            response.headers['X-Request-ID'] = get_correlation_id()
            return response

    def _check_rate_limit(self, request: Request, client_ip: str) -> Optional[Response]:
        path = request.url.path
        limiter = self.services.limiter_for_path(path)

        if not limiter.is_rate_limited(client_ip):
            return None

        self.stats['rate_limited'] += 1
        self._log_event(
            request,
            client_ip,
            SecurityEventType.RATE_LIMIT_EXCEEDED,
            Severity.MEDIUM,
            f"Rate limit exceeded for {limiter.name} routes",
            details={
                'limit': limiter.max_requests,
                'window_ms': limiter.window_ms,
                'reset_in_ms': limiter.get_time_until_reset(client_ip)
            }
        )
        self._report(request, client_ip, SuspiciousActivityType.RATE_LIMIT_EXCEEDED, f"Rate limited on {path}")

        return create_error_response(
            RATE_LIMIT_MESSAGE,
            status.HTTP_429_TOO_MANY_REQUESTS,
            headers={"Retry-After": str(self.config.retry_after_seconds)}
        )

    def _check_blocked_ip(self, request: Request, client_ip: str) -> Optional[Response]:
        if not self.services.attack_detector.is_ip_blocked(client_ip):
            return None

        self.stats['blocked_ip_rejections'] += 1
        self._log_event(
            request,
            client_ip,
            SecurityEventType.BLOCKED_IP_REQUEST,
            Severity.HIGH,
            "Request from blocked IP"
        )
        return create_error_response(BLOCKED_MESSAGE, status.HTTP_403_FORBIDDEN)

    def _check_csrf(self, request: Request, client_ip: str) -> Optional[Response]:
        path = request.url.path
        if request.method.upper() not in self.config.csrf_protected_methods:
            return None
        if any(path.startswith(exempt) for exempt in self.config.csrf_exempt_paths):
            return None

        result = validate_csrf(
            request,
            allow_localhost_origins=self.config.allow_localhost_origins,
            csrf_manager=self.services.csrf_manager
        )
        if result.valid:
            return None

        self.stats['csrf_rejections'] += 1
        self._log_event(
            request,
            client_ip,
            SecurityEventType.CSRF_VIOLATION,
            Severity.HIGH,
            "CSRF validation failed",
            details={
                'reason': result.reason,
                'origin': request.headers.get("origin"),
                'method': request.method
            }
        )
        self._report(request, client_ip, SuspiciousActivityType.CSRF_VIOLATION, result.reason)

        return create_error_response(CSRF_MESSAGE, status.HTTP_403_FORBIDDEN)

    def _log_event(
        self,
        request: Request,
        client_ip: str,
        event_type: SecurityEventType,
        severity: Severity,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.services.security_logger.log(
            event_type,
            severity,
            message,
            client_ip=client_ip,
            user_agent=request.headers.get("user-agent"),
            endpoint=request.url.path,
            details=details
        )

    def _report(self, request: Request, client_ip: str, activity_type: SuspiciousActivityType, details: Optional[str]):
        report_violation(self.services, request, client_ip, activity_type, details)

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        return {
            **self.stats,
            'rejection_rate': (
                (self.stats['rate_limited'] + self.stats['blocked_ip_rejections'] + self.stats['csrf_rejections'])
                / max(1, self.stats['requests_processed'])
            )
        }


def report_violation(
    services: SecurityServices,
    request: Request,
    client_ip: str,
    activity_type: SuspiciousActivityType,
    details: Optional[str] = None
) -> bool:
    """
    Report an activity to the attack detector.

    When the report starts a block, an IP_BLOCKED event is written to the
    security log at CRITICAL severity. Returns whether a block started.
    """
    blocked = services.attack_detector.report_suspicious_activity(client_ip, activity_type, details)

    if blocked:
        activity = services.attack_detector.get_activity(client_ip)
        services.security_logger.log(
            SecurityEventType.IP_BLOCKED,
            Severity.CRITICAL,
            f"IP {client_ip} blocked after repeated suspicious activity",
            client_ip=client_ip,
            user_agent=request.headers.get("user-agent"),
            endpoint=request.url.path,
            details={
                'score': activity.score if activity else None,
                'trigger': SuspiciousActivityType(activity_type).value,
                'block_duration_ms': services.attack_detector.block_duration_ms
            }
        )

    return blocked
