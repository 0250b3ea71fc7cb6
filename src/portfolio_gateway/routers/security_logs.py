"""
Portfolio Gateway - Security Log Router

Read access to the in-memory security event log. Production deployments
require the SECURITY_LOGS_TOKEN bearer token.
"""
import hmac
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ...shared.config import Settings
from ...shared.security import (
    SecurityEventType,
    SecurityServices,
    Severity,
    SuspiciousActivityType,
    create_success_response,
    get_client_ip,
    report_violation
)
from ..dependencies import get_app_settings, get_security_services

router = APIRouter()

DEFAULT_LOG_LIMIT = 100


def _has_valid_token(request: Request, expected_token: Optional[str]) -> bool:
    auth_header = request.headers.get("authorization")
    if not auth_header or not expected_token:
        return False
    return hmac.compare_digest(auth_header.encode(), f"Bearer {expected_token}".encode())


def _unauthorized(request: Request, services: SecurityServices) -> JSONResponse:
    client_ip = get_client_ip(request)
    services.security_logger.log(
        SecurityEventType.UNAUTHORIZED_LOG_ACCESS,
        Severity.HIGH,
        "Unauthorized security log access",
        client_ip=client_ip,
        user_agent=request.headers.get("user-agent"),
        endpoint=request.url.path,
        details={'method': request.method}
    )
    report_violation(
        services,
        request,
        client_ip,
        SuspiciousActivityType.MULTIPLE_FAILED_REQUESTS,
        f"Unauthorized {request.method} on security logs"
    )
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "Unauthorized"}
    )


def _parse_limit(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_LOG_LIMIT
    try:
        return max(0, int(raw))
    except ValueError:
        return DEFAULT_LOG_LIMIT


@router.get("")
async def get_security_logs(
    request: Request,
    limit: Optional[str] = None,
    settings: Settings = Depends(get_app_settings),
    services: SecurityServices = Depends(get_security_services)
) -> JSONResponse:
    """Most recent security events, newest first."""
    if services.config.is_production and not _has_valid_token(request, settings.security.security_logs_token):
        return _unauthorized(request, services)

    logs = services.security_logger.get_recent_logs(_parse_limit(limit))

    return create_success_response(data={
        'logs': [entry.to_dict() for entry in logs],
        'total': len(logs),
        'timestamp': datetime.now(timezone.utc).isoformat()
    })


@router.delete("")
async def clear_security_logs(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    services: SecurityServices = Depends(get_security_services)
) -> JSONResponse:
    """Log clearing is deliberately unavailable; authenticated callers get 501."""
    if not _has_valid_token(request, settings.security.security_logs_token):
        return _unauthorized(request, services)

    return JSONResponse(
        status_code=status.HTTP_501_NOT_IMPLEMENTED,
        content={
            "success": False,
            "message": "Log clearing not implemented for security reasons"
        }
    )
