"""
Security module for Portfolio Guard.

Provides rate limiting, attack detection and IP blocking, input threat
analysis, CSRF tokens, the security event log and the request middleware
that ties them together.
"""

from .clock import (
    Clock,
    Scheduler,
    TimerHandle,
    SystemClock,
    AsyncioScheduler,
    ManualClock
)

from .rate_limiter import RateLimiter

from .input_analyzer import (
    ThreatType,
    Severity,
    SecurityThreat,
    SecurityAnalysisResult,
    ThreatRule,
    THREAT_RULES,
    InputSecurityAnalyzer,
    calculate_risk_score
)

from .attack_detector import (
    AttackDetector,
    SuspiciousActivityType,
    SuspiciousActivity,
    ResetNotAllowedError,
    get_activity_score
)

from .csrf import (
    CSRFToken,
    CSRFTokenManager,
    derive_session_id
)

from .security_logger import (
    SecurityEventType,
    SecurityLogEntry,
    SecurityLogger
)

from .request_guards import (
    CSRFValidationResult,
    get_client_ip,
    detect_bot,
    is_bot_user_agent,
    validate_csrf
)

from .services import (
    SecurityConfig,
    SecurityServices,
    create_security_config,
    create_security_services
)

from .protection_middleware import (
    SecurityHeadersMiddleware,
    SecurityPipelineMiddleware,
    create_error_response,
    create_success_response,
    report_violation
)

__all__ = [
    # Time
    'Clock',
    'Scheduler',
    'TimerHandle',
    'SystemClock',
    'AsyncioScheduler',
    'ManualClock',

    # Rate limiting
    'RateLimiter',

    # Input analysis
    'ThreatType',
    'Severity',
    'SecurityThreat',
    'SecurityAnalysisResult',
    'ThreatRule',
    'THREAT_RULES',
    'InputSecurityAnalyzer',
    'calculate_risk_score',

    # Attack detection
    'AttackDetector',
    'SuspiciousActivityType',
    'SuspiciousActivity',
    'ResetNotAllowedError',
    'get_activity_score',

    # CSRF
    'CSRFToken',
    'CSRFTokenManager',
    'derive_session_id',

    # Security log
    'SecurityEventType',
    'SecurityLogEntry',
    'SecurityLogger',

    # Request guards
    'CSRFValidationResult',
    'get_client_ip',
    'detect_bot',
    'is_bot_user_agent',
    'validate_csrf',

    # Services
    'SecurityConfig',
    'SecurityServices',
    'create_security_config',
    'create_security_services',

    # Middleware
    'SecurityHeadersMiddleware',
    'SecurityPipelineMiddleware',
    'create_error_response',
    'create_success_response',
    'report_violation'
]
