"""
Portfolio Gateway - Chat Router

Screens chat transcripts for injection attempts before forwarding them to
the upstream model. Rate limiting, IP blocking and CSRF have already been
applied by the security pipeline when a request reaches this router.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ...shared.logging_config import get_logger
from ...shared.schemas import ChatMessage, ChatRequest, ChatRole
from ...shared.security import (
    SecurityAnalysisResult,
    SecurityEventType,
    SecurityServices,
    Severity,
    SuspiciousActivityType,
    ThreatType,
    create_error_response,
    create_success_response,
    detect_bot,
    get_client_ip,
    report_violation
)
from ..chat_client import ChatClient, UpstreamError
from ..chat_errors import NOT_CONFIGURED_MESSAGE, classify_upstream_error
from ..dependencies import get_chat_client, get_security_services

logger = get_logger(__name__, 'chat_router')

router = APIRouter()

INVALID_FORMAT_MESSAGE = "Invalid message format. Please refresh and try again."
REJECTED_INPUT_MESSAGE = "Your message cannot be processed for security reasons."
CRITICAL_RISK_SCORE = 15

THREAT_ACTIVITY = {
    ThreatType.XSS: SuspiciousActivityType.XSS_ATTEMPT,
    ThreatType.SQL_INJECTION: SuspiciousActivityType.SQL_INJECTION_ATTEMPT,
    ThreatType.COMMAND_INJECTION: SuspiciousActivityType.MALFORMED_REQUEST,
    ThreatType.OVERSIZED_INPUT: SuspiciousActivityType.INVALID_INPUT,
}


async def _parse_chat_request(request: Request) -> Optional[ChatRequest]:
    try:
        body = await request.json()
    except ValueError:
        return None

    try:
        return ChatRequest.model_validate(body)
    except ValidationError:
        return None


def _screen_messages(services: SecurityServices, messages: List[ChatMessage]) -> Optional[SecurityAnalysisResult]:
    """Worst analysis result among the user's messages, or None if all are safe."""
    worst = None
    for message in messages:
        if message.role != ChatRole.USER.value:
            continue
        result = services.input_analyzer.analyze_input(message.content)
        if not result.safe and (worst is None or result.risk_score > worst.risk_score):
            worst = result
    return worst


@router.post("")
async def chat(
    request: Request,
    services: SecurityServices = Depends(get_security_services),
    chat_client: ChatClient = Depends(get_chat_client)
) -> JSONResponse:
    """
    Answer a chat message.

    Returns:
        The assistant's reply and the model that produced it
    """
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent")
    endpoint = request.url.path
    security_logger = services.security_logger

    chat_request = await _parse_chat_request(request)
    if chat_request is None:
        security_logger.log(
            SecurityEventType.INVALID_REQUEST,
            Severity.LOW,
            "Invalid chat message format",
            client_ip=client_ip,
            user_agent=user_agent,
            endpoint=endpoint
        )
        report_violation(services, request, client_ip, SuspiciousActivityType.MALFORMED_REQUEST, "Invalid chat payload")
        return create_error_response(INVALID_FORMAT_MESSAGE, status.HTTP_400_BAD_REQUEST)

    if detect_bot(request):
        security_logger.log(
            SecurityEventType.BOT_DETECTED,
            Severity.LOW,
            "Bot user agent on chat endpoint",
            client_ip=client_ip,
            user_agent=user_agent,
            endpoint=endpoint
        )
        report_violation(services, request, client_ip, SuspiciousActivityType.SUSPICIOUS_USER_AGENT, user_agent)

    analysis = _screen_messages(services, chat_request.messages)
    if analysis is not None:
        details = {
            'risk_score': analysis.risk_score,
            'threats': [threat.to_dict() for threat in analysis.threats]
        }

        if analysis.risk_score >= services.config.block_risk_score:
            severity = Severity.CRITICAL if analysis.risk_score >= CRITICAL_RISK_SCORE else Severity.HIGH
            security_logger.log(
                SecurityEventType.MALICIOUS_INPUT,
                severity,
                "Malicious input rejected",
                client_ip=client_ip,
                user_agent=user_agent,
                endpoint=endpoint,
                details=details
            )
            for threat_type in analysis.threat_types:
                report_violation(
                    services,
                    request,
                    client_ip,
                    THREAT_ACTIVITY.get(threat_type, SuspiciousActivityType.INVALID_INPUT),
                    f"{threat_type.value} in chat message"
                )
            return create_error_response(REJECTED_INPUT_MESSAGE, status.HTTP_400_BAD_REQUEST)

        security_logger.log(
            SecurityEventType.SUSPICIOUS_INPUT,
            Severity.MEDIUM,
            "Suspicious input allowed below block threshold",
            client_ip=client_ip,
            user_agent=user_agent,
            endpoint=endpoint,
            details=details
        )

    if not chat_client.is_configured:
        logger.error("Missing ANTHROPIC_API_KEY; chat is disabled", operation="chat")
        return create_error_response(NOT_CONFIGURED_MESSAGE, status.HTTP_503_SERVICE_UNAVAILABLE)

    try:
        reply = await chat_client.complete(chat_request.messages)
    except UpstreamError as e:
        info = classify_upstream_error(e)
        security_logger.log(
            SecurityEventType.UPSTREAM_ERROR,
            Severity.HIGH if info.category in ('authentication', 'permission', 'configuration') else Severity.MEDIUM,
            f"Chat upstream failure: {info.category}",
            client_ip=client_ip,
            user_agent=user_agent,
            endpoint=endpoint,
            details={
                'category': info.category,
                'upstream_status': e.status_code,
                'upstream_type': e.error_type,
                'upstream_message': e.message[:200]
            }
        )
        report_violation(
            services,
            request,
            client_ip,
            SuspiciousActivityType.MULTIPLE_FAILED_REQUESTS,
            f"Chat upstream failure: {info.category}"
        )
        return create_error_response(info.message, info.status_code)

    return create_success_response(data={'reply': reply.reply, 'model': reply.model})
