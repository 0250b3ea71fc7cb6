"""
Portfolio Gateway - CSRF Token Router

Issues session-bound CSRF tokens and lets the browser check one it holds.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ...shared.schemas import CSRFValidateRequest
from ...shared.security import (
    SecurityEventType,
    SecurityServices,
    Severity,
    SuspiciousActivityType,
    create_success_response,
    derive_session_id,
    get_client_ip,
    report_violation
)
from ...shared.security.request_guards import SESSION_COOKIE
from ..dependencies import get_security_services

router = APIRouter()


@router.get("")
async def issue_token(
    request: Request,
    services: SecurityServices = Depends(get_security_services)
) -> JSONResponse:
    """Issue a token and bind it to a fresh session-id cookie."""
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent") or ""
    csrf_manager = services.csrf_manager

    session_id = derive_session_id(client_ip, user_agent, csrf_manager.clock.now())
    token = csrf_manager.generate_token(session_id)

    response = create_success_response(
        data={'token': token, 'sessionId': session_id},
        message="CSRF token generated"
    )
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=int(services.config.csrf_token_expiry_ms // 1000),
        httponly=True,
        secure=services.config.is_production,
        samesite="strict"
    )
    return response


@router.post("")
async def validate_token(
    request: Request,
    services: SecurityServices = Depends(get_security_services)
) -> JSONResponse:
    """Check a token against the caller's session-id cookie."""
    try:
        body = CSRFValidateRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        body = CSRFValidateRequest()

    session_id = request.cookies.get(SESSION_COOKIE)

    if not body.token or not session_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing token or session"}
        )

    is_valid = services.csrf_manager.validate_token(body.token, session_id)

    if not is_valid:
        client_ip = get_client_ip(request)
        services.security_logger.log(
            SecurityEventType.CSRF_TOKEN_INVALID,
            Severity.LOW,
            "CSRF token failed validation",
            client_ip=client_ip,
            user_agent=request.headers.get("user-agent"),
            endpoint=request.url.path
        )
        report_violation(
            services,
            request,
            client_ip,
            SuspiciousActivityType.MULTIPLE_FAILED_REQUESTS,
            "Invalid CSRF token presented"
        )

    return create_success_response(
        data={'valid': is_valid},
        message="Token is valid" if is_valid else "Token is invalid"
    )
