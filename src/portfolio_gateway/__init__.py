"""
Portfolio Gateway - API Host

This module hosts the portfolio's API behind the Portfolio Guard security
layer.

The gateway provides:
- FastAPI application wiring for the security middleware
- Chat endpoint with input screening and upstream error classification
- CSRF token, security log, visit counter and debug endpoints
"""

from .app import create_app, run_server

__all__ = [
    'create_app',
    'run_server'
]
