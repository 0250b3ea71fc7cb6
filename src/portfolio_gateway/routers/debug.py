"""
Portfolio Gateway - Security Debug Router

Development helpers for inspecting and resetting IP blocks. Every route
answers 404 in production.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ...shared.config import Settings
from ...shared.logging_config import get_logger
from ...shared.schemas import DebugActionRequest
from ...shared.security import (
    ResetNotAllowedError,
    SecurityServices,
    create_error_response,
    create_success_response,
    get_client_ip
)
from ..dependencies import get_app_settings, get_security_services

logger = get_logger(__name__, 'debug_router')

router = APIRouter()


def _not_available() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "Not available in production"}
    )


@router.get("")
async def security_status(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    services: SecurityServices = Depends(get_security_services)
) -> JSONResponse:
    if services.config.is_production:
        return _not_available()

    client_ip = get_client_ip(request)
    activity = services.attack_detector.get_activity(client_ip)

    return create_success_response(data={
        'clientIP': client_ip,
        'isBlocked': services.attack_detector.is_ip_blocked(client_ip),
        'environment': settings.environment.value,
        'activity': activity.to_dict() if activity else None,
        'detector': services.attack_detector.get_stats()
    })


@router.post("")
async def security_action(
    request: Request,
    services: SecurityServices = Depends(get_security_services)
) -> JSONResponse:
    """Run a debug action; only "reset" is supported."""
    if services.config.is_production:
        return _not_available()

    try:
        body = DebugActionRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        body = DebugActionRequest()

    if body.action != "reset":
        return JSONResponse(content={"success": False, "error": "Invalid action"})

    try:
        services.attack_detector.reset_all()
    except ResetNotAllowedError as e:
        logger.warning(f"Refused detector reset: {e}", operation="debug_reset")
        return create_error_response(str(e), status.HTTP_403_FORBIDDEN)

    return create_success_response(message="Blocked IPs cleared for development")
