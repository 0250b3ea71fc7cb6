"""
Portfolio Gateway - Dependencies

Dependency providers for FastAPI endpoints. Components are created once by
create_app() and stored on app.state; endpoints reach them through these
functions so tests can swap them with app.dependency_overrides.
"""
from fastapi import Request

from ..shared.config import Settings
from ..shared.security.services import SecurityServices
from .chat_client import ChatClient
from .visits import VisitCounter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_security_services(request: Request) -> SecurityServices:
    return request.app.state.security


def get_chat_client(request: Request) -> ChatClient:
    return request.app.state.chat_client


def get_visit_counter(request: Request) -> VisitCounter:
    return request.app.state.visit_counter
