"""
Logging configuration for Portfolio Guard.

Provides structured logging with correlation IDs and two output formats:
JSON lines for production and a colored console format for development.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, Union
from uuid import uuid4


# Context variables for correlation tracking
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
client_ip: ContextVar[Optional[str]] = ContextVar('client_ip', default=None)

# LogRecord attributes that must not be copied into the JSON payload
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None)).keys()) | {'message', 'asctime'}


class CorrelationFilter(logging.Filter):
    """Add correlation IDs and context to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id.get() or 'unknown'
        record.request_ip = client_ip.get() or 'unknown'
        record.component = getattr(record, 'component', 'unknown')
        record.operation = getattr(record, 'operation', 'unknown')
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, include_extra=True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'unknown'),
            'request_ip': getattr(record, 'request_ip', 'unknown'),
            'component': getattr(record, 'component', 'unknown'),
            'operation': getattr(record, 'operation', 'unknown'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key in log_entry or key in _RESERVED_ATTRS or key.startswith('_'):
                    continue
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        return json.dumps(log_entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        formatted = super().format(record)
        correlation_id_value = getattr(record, 'correlation_id', 'unknown')
        request_ip = getattr(record, 'request_ip', 'unknown')
        correlation_info = f"[{correlation_id_value[:8]} {request_ip}]"
        return f"{color}{formatted}{self.RESET} {correlation_info}"


class GuardLogger:
    """Component-aware logger that accepts structured keyword fields."""

    def __init__(self, name: str, component: str = None):
        self.logger = logging.getLogger(name)
        self.component = component or name.split('.')[-1]

    def _log(self, log_level: int, message: str, operation: str = None, **kwargs):
        extra = {
            'component': self.component,
            'operation': operation or 'unknown',
            **kwargs
        }
        self.logger.log(log_level, message, extra=extra)

    def debug(self, message: str, operation: str = None, **kwargs):
        self._log(logging.DEBUG, message, operation, **kwargs)

    def info(self, message: str, operation: str = None, **kwargs):
        self._log(logging.INFO, message, operation, **kwargs)

    def warning(self, message: str, operation: str = None, **kwargs):
        self._log(logging.WARNING, message, operation, **kwargs)

    def error(self, message: str, operation: str = None, **kwargs):
        self._log(logging.ERROR, message, operation, **kwargs)

    def critical(self, message: str, operation: str = None, **kwargs):
        self._log(logging.CRITICAL, message, operation, **kwargs)

    def exception(self, message: str, operation: str = None, **kwargs):
        """Log exception with traceback."""
        extra = {
            'component': self.component,
            'operation': operation or 'exception',
            **kwargs
        }
        self.logger.exception(message, extra=extra)


class LoggingConfig:
    """Centralized logging configuration."""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @classmethod
    def setup_logging(
        cls,
        level: Union[str, int] = logging.INFO,
        format_type: str = 'json',
        correlation_tracking: bool = True
    ):
        """
        Setup logging for the application.

        Args:
            level: Logging level
            format_type: 'json', 'colored', or 'standard'
            correlation_tracking: Enable correlation ID tracking
        """
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        if format_type == 'json':
            console_handler.setFormatter(JSONFormatter())
        elif format_type == 'colored':
            console_handler.setFormatter(ColoredFormatter(cls.DEFAULT_FORMAT))
        else:
            console_handler.setFormatter(logging.Formatter(cls.DEFAULT_FORMAT))

        if correlation_tracking:
            console_handler.addFilter(CorrelationFilter())

        root_logger.addHandler(console_handler)

        # Third-party loggers (reduce noise)
        for logger_name in ('uvicorn', 'fastapi', 'httpx', 'httpcore'):
            logging.getLogger(logger_name).setLevel(logging.WARNING)

        GuardLogger(__name__, 'logging_config').info(
            "Logging system initialized",
            operation="setup_logging",
            level=level,
            format_type=format_type
        )


class CorrelationContext:
    """Context manager for correlation tracking."""

    def __init__(self, correlation_id_value: str = None, client_ip_value: str = None):
        self.correlation_id_value = correlation_id_value or uuid4().hex[:16]
        self.client_ip_value = client_ip_value
        self.correlation_token = None
        self.client_ip_token = None

    def __enter__(self):
        self.correlation_token = correlation_id.set(self.correlation_id_value)
        if self.client_ip_value:
            self.client_ip_token = client_ip.set(self.client_ip_value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.correlation_token:
            correlation_id.reset(self.correlation_token)
        if self.client_ip_token:
            client_ip.reset(self.client_ip_token)


def get_logger(name: str, component: str = None) -> GuardLogger:
    """Get a Portfolio Guard logger instance."""
    return GuardLogger(name, component)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id.get()


def initialize_logging(is_production: bool, log_level: str = 'INFO'):
    """Initialize logging for the given environment."""
    LoggingConfig.setup_logging(
        level=log_level,
        format_type='json' if is_production else 'colored',
        correlation_tracking=True
    )
