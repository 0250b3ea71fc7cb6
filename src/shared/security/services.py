"""
Security configuration and the service container.

SecurityConfig carries every policy knob the security layer needs, so no
component reads the environment itself. SecurityServices groups the
process-wide component instances; the host application creates one at
startup and destroys it at shutdown.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import Settings
from ..logging_config import get_logger
from .attack_detector import AttackDetector
from .clock import Clock, Scheduler, SystemClock, AsyncioScheduler
from .csrf import CSRFTokenManager
from .input_analyzer import InputSecurityAnalyzer
from .rate_limiter import RateLimiter
from .security_logger import SecurityLogger, AlertHook


class SecurityConfig:
    """Security configuration settings."""

    def __init__(self, is_production: bool = False, allow_localhost_origins: bool = False):
        self.is_production = is_production
        self.allow_localhost_origins = allow_localhost_origins

        # Route classes: path prefix -> max requests per window; first match wins
        self.api_prefix = "/api/"
        self.rate_limit_window_ms = 60 * 1000
        self.rate_limit_cleanup_interval_ms = 5 * 60 * 1000
        self.route_limits: Dict[str, int] = {
            "/api/chat": 10,
            "/api/visits": 5,
        }
        self.default_api_limit = 30
        self.retry_after_seconds = 60

        # CSRF
        self.csrf_protected_methods = ("POST", "PUT", "PATCH", "DELETE")
        self.csrf_exempt_paths: List[str] = ["/api/csrf/token", "/api/visits"]
        self.csrf_token_expiry_ms = 30 * 60 * 1000

        # Attack detection and input screening
        self.suspicion_threshold: float = 8
        self.block_duration_ms = 30 * 60 * 1000
        self.block_risk_score = 10

        self.security_log_max_entries = 1000

        # Security headers
        self.csp_policy = "; ".join([
            "default-src 'self'",
            "script-src 'self' 'unsafe-eval' 'unsafe-inline' https://vercel.live https://va.vercel-scripts.com",
            "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
            "font-src 'self' https://fonts.gstatic.com",
            "img-src 'self' data: https: blob:",
            "media-src 'self' data: https:",
            "connect-src 'self' https://api.github.com https://api.anthropic.com wss:",
            "frame-ancestors 'none'",
            "base-uri 'self'",
            "form-action 'self'",
            "upgrade-insecure-requests"
        ])
        self.frame_options = "DENY"
        self.xss_protection = "1; mode=block"
        self.referrer_policy = "strict-origin-when-cross-origin"
        self.hsts_value = "max-age=31536000; includeSubDomains; preload"
        self.permissions_policy = ", ".join([
            "camera=()",
            "microphone=()",
            "geolocation=()",
            "payment=()",
            "usb=()",
            "magnetometer=()",
            "accelerometer=()",
            "gyroscope=()"
        ])
        self.cache_control = "no-store, max-age=0"

    def get_security_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Security-Policy": self.csp_policy,
            "X-Frame-Options": self.frame_options,
            "X-Content-Type-Options": "nosniff",
            "X-XSS-Protection": self.xss_protection,
            "Referrer-Policy": self.referrer_policy,
            "Permissions-Policy": self.permissions_policy,
            "Cache-Control": self.cache_control,
        }
        if self.is_production:
            headers["Strict-Transport-Security"] = self.hsts_value
        return headers


def create_security_config(settings: Settings) -> SecurityConfig:
    """Build the security configuration from application settings."""
    security = settings.security
    config = SecurityConfig(
        is_production=settings.is_production(),
        allow_localhost_origins=settings.is_development()
    )

    config.rate_limit_window_ms = security.rate_limit_window_ms
    config.rate_limit_cleanup_interval_ms = security.rate_limit_cleanup_interval_ms
    config.route_limits = {
        "/api/chat": security.chat_rate_limit,
        "/api/visits": security.visit_rate_limit,
    }
    config.default_api_limit = security.api_rate_limit
    config.csrf_token_expiry_ms = security.csrf_token_expiry_ms
    config.suspicion_threshold = security.suspicion_threshold
    config.block_duration_ms = security.block_duration_ms
    config.block_risk_score = security.block_risk_score
    config.security_log_max_entries = security.security_log_max_entries

    return config


@dataclass
class SecurityServices:
    """Process-wide security components."""
    config: SecurityConfig
    api_limiter: RateLimiter
    route_limiters: Dict[str, RateLimiter]
    attack_detector: AttackDetector
    input_analyzer: InputSecurityAnalyzer
    csrf_manager: CSRFTokenManager
    security_logger: SecurityLogger

    def limiter_for_path(self, path: str) -> RateLimiter:
        """Rate limiter for the route class the path belongs to."""
        for prefix, limiter in self.route_limiters.items():
            if path.startswith(prefix):
                return limiter
        return self.api_limiter

    @property
    def limiters(self) -> List[RateLimiter]:
        return [self.api_limiter, *self.route_limiters.values()]

    def start(self):
        """Start background sweeps; needs a running event loop for the default scheduler."""
        for limiter in self.limiters:
            limiter.start()
        get_logger(__name__, 'security_services').info(
            "Security services started",
            operation="security_start",
            limiters=[limiter.name for limiter in self.limiters]
        )

    def destroy(self):
        """Cancel every timer and drop in-memory state."""
        for limiter in self.limiters:
            limiter.destroy()
        self.attack_detector.destroy()
        self.csrf_manager.destroy()


def create_security_services(
    config: SecurityConfig,
    clock: Optional[Clock] = None,
    scheduler: Optional[Scheduler] = None,
    alert_hook: Optional[AlertHook] = None
) -> SecurityServices:
    """Wire the security components around a shared clock and scheduler."""
    clock = clock or SystemClock()
    scheduler = scheduler or AsyncioScheduler()

    def make_limiter(name: str, max_requests: int) -> RateLimiter:
        return RateLimiter(
            max_requests=max_requests,
            window_ms=config.rate_limit_window_ms,
            cleanup_interval_ms=config.rate_limit_cleanup_interval_ms,
            clock=clock,
            scheduler=scheduler,
            name=name
        )

    return SecurityServices(
        config=config,
        api_limiter=make_limiter("api", config.default_api_limit),
        route_limiters={
            prefix: make_limiter(prefix.rsplit("/", 1)[-1], limit)
            for prefix, limit in config.route_limits.items()
        },
        attack_detector=AttackDetector(
            suspicion_threshold=config.suspicion_threshold,
            block_duration_ms=config.block_duration_ms,
            clock=clock,
            scheduler=scheduler,
            allow_reset=not config.is_production
        ),
        input_analyzer=InputSecurityAnalyzer(),
        csrf_manager=CSRFTokenManager(token_expiry_ms=config.csrf_token_expiry_ms, clock=clock),
        security_logger=SecurityLogger(
            max_entries=config.security_log_max_entries,
            is_production=config.is_production,
            alert_hook=alert_hook,
            clock=clock
        )
    )
