"""
Portfolio Gateway - Upstream Chat Client

Async client for the Anthropic Messages API using httpx. Transport and HTTP
failures surface as UpstreamError so the chat route has a single failure
type to classify.
"""
from typing import Any, Dict, List, Optional

import httpx

from ..shared.config import ChatSettings
from ..shared.logging_config import get_logger
from ..shared.schemas import ChatMessage, ChatReply
from .prompt import SYSTEM_PROMPT


class UpstreamError(Exception):
    """Raised when the upstream chat service fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ChatClient:
    """
    Client for the Anthropic Messages API.

    The httpx client can be injected, which lets tests use a mock transport.
    """

    def __init__(
        self,
        settings: ChatSettings,
        client: Optional[httpx.AsyncClient] = None,
        system_prompt: str = SYSTEM_PROMPT
    ):
        self.settings = settings
        self.system_prompt = system_prompt
        self.logger = get_logger(__name__, 'chat_client')
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.chat_timeout_seconds),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=20)
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.anthropic_api_key)

    @property
    def model(self) -> str:
        return self.settings.chat_model

    def _get_headers(self) -> Dict[str, str]:
        return {
            'x-api-key': self.settings.anthropic_api_key or '',
            'anthropic-version': self.settings.anthropic_version,
            'content-type': 'application/json'
        }

    def _build_payload(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        return {
            'model': self.settings.chat_model,
            'max_tokens': self.settings.chat_max_tokens,
            'system': self.system_prompt,
            'messages': [
                {'role': message.role, 'content': message.content}
                for message in messages
            ]
        }

    async def complete(self, messages: List[ChatMessage]) -> ChatReply:
        """
        Send the conversation upstream and return the assistant's reply.

        Raises:
            UpstreamError: On transport failures, non-2xx responses or
                malformed response bodies.
        """
        if not self.is_configured:
            raise UpstreamError("Chat service is not configured", error_type="configuration_error")

        try:
            response = await self.client.post(
                self.settings.anthropic_api_url,
                headers=self._get_headers(),
                json=self._build_payload(messages)
            )
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Upstream request timeout: {e}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Network connection error: {e}") from e

        if response.is_error:
            raise self._error_from_response(response)

        try:
            body = response.json()
            text = "".join(
                block.get('text', '')
                for block in body.get('content', [])
                if block.get('type') == 'text'
            )
        except (ValueError, AttributeError, TypeError) as e:
            self.logger.warning(
                f"Malformed upstream response: {e}",
                operation="chat_complete",
                status_code=response.status_code
            )
            raise UpstreamError("Malformed upstream response", status_code=response.status_code) from e

        self.logger.debug(
            "Chat completion received",
            operation="chat_complete",
            model=body.get('model', self.model),
            stop_reason=body.get('stop_reason')
        )

        return ChatReply(
            reply=text,
            model=body.get('model', self.model),
            stop_reason=body.get('stop_reason')
        )

    def _error_from_response(self, response: httpx.Response) -> UpstreamError:
        error_type = None
        message = response.reason_phrase or f"HTTP {response.status_code}"

        try:
            error = response.json().get('error') or {}
            error_type = error.get('type')
            message = error.get('message') or message
        except (ValueError, AttributeError):
            pass

        return UpstreamError(message, status_code=response.status_code, error_type=error_type)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
