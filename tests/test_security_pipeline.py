"""
End-to-end tests for the security pipeline through the FastAPI application.
"""

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from src.portfolio_gateway.app import create_app
from src.portfolio_gateway.chat_client import UpstreamError
from src.portfolio_gateway.visits import VisitCounter
from src.shared.config import Environment, SecuritySettings, Settings
from src.shared.schemas import ChatMessage, ChatReply
from src.shared.security import (
    ManualClock,
    SuspiciousActivityType,
    create_security_config,
    create_security_services
)

ORIGIN = {"Origin": "http://testserver"}
LOGS_TOKEN = "s3cret-logs-token"
SCRIPT_PAYLOAD = "<script>alert(1)</script>"


class FakeChatClient:
    """Stands in for the upstream model."""

    def __init__(self, configured: bool = True, error: Optional[Exception] = None):
        self.configured = configured
        self.error = error
        self.calls: List[List[ChatMessage]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def complete(self, messages: List[ChatMessage]) -> ChatReply:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return ChatReply(reply="Hi! Ask me about data engineering.", model="test-model")

    async def close(self):
        pass


def chat_body(content: str = "What do you work on?"):
    return {"messages": [{"role": "user", "content": content}]}


def build(environment: Environment = Environment.TESTING, chat_client: Optional[FakeChatClient] = None):
    settings = Settings(
        environment=environment,
        security=SecuritySettings(security_logs_token=LOGS_TOKEN)
    )
    clock = ManualClock()
    services = create_security_services(create_security_config(settings), clock=clock, scheduler=clock)
    app = create_app(
        settings=settings,
        services=services,
        chat_client=chat_client or FakeChatClient(),
        visit_counter=VisitCounter(clock=clock)
    )
    return app, services, clock


@pytest.fixture
def gateway():
    app, services, clock = build()
    return TestClient(app), services, clock


class TestRateLimiting:
    """Route-class quotas enforced before any handler runs."""

    def test_chat_quota(self, gateway):
        client, services, _ = gateway

        statuses = [
            client.post("/api/chat", json=chat_body(), headers=ORIGIN).status_code
            for _ in range(12)
        ]

        assert statuses[:10] == [200] * 10
        assert statuses[10:] == [429, 429]

    def test_rejection_shape(self, gateway):
        client, services, _ = gateway
        for _ in range(10):
            client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        response = client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {
            "success": False,
            "error": "Too many requests. Please slow down.",
            "status": 429
        }

        entry = services.security_logger.get_recent_logs(1)[0]
        assert entry.type == "RATE_LIMIT_EXCEEDED"
        assert entry.endpoint == "/api/chat"
        assert services.attack_detector.get_activity("unknown").score == 1

    def test_route_classes_are_independent(self, gateway):
        client, _, _ = gateway
        for _ in range(11):
            client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        assert client.get("/api/security/logs").status_code == 200
        assert client.get("/api/visits").status_code == 200

    def test_window_recovers(self, gateway):
        client, _, clock = gateway
        for _ in range(11):
            client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        clock.advance(60 * 1000)

        assert client.post("/api/chat", json=chat_body(), headers=ORIGIN).status_code == 200

    def test_clients_are_keyed_by_ip(self, gateway):
        client, _, _ = gateway
        for _ in range(6):
            client.post("/api/visits", headers={"X-Forwarded-For": "203.0.113.1"})

        assert client.post("/api/visits", headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 429
        assert client.post("/api/visits", headers={"X-Forwarded-For": "203.0.113.2"}).status_code == 200


class TestCSRFProtection:
    """State-changing requests need a same-origin Origin or a bound token."""

    def test_missing_origin_rejected(self, gateway):
        client, services, _ = gateway

        response = client.post("/api/chat", json=chat_body())

        assert response.status_code == 403
        assert response.json()["error"] == "CSRF validation failed"

        entry = services.security_logger.get_recent_logs(1)[0]
        assert entry.type == "CSRF_VIOLATION"
        assert entry.severity.value == "HIGH"
        assert services.attack_detector.get_activity("unknown").score == 2

    def test_cross_origin_rejected(self, gateway):
        client, _, _ = gateway

        response = client.post("/api/chat", json=chat_body(), headers={"Origin": "https://evil.example"})

        assert response.status_code == 403

    def test_localhost_rejected_outside_development(self, gateway):
        client, _, _ = gateway

        response = client.post("/api/chat", json=chat_body(), headers={"Origin": "http://localhost:3000"})

        assert response.status_code == 403

    def test_localhost_allowed_in_development(self):
        app, _, _ = build(Environment.DEVELOPMENT)
        client = TestClient(app)

        response = client.post("/api/chat", json=chat_body(), headers={"Origin": "http://localhost:3000"})

        assert response.status_code == 200

    def test_exempt_paths(self, gateway):
        client, _, _ = gateway

        assert client.post("/api/visits").status_code == 200
        assert client.post("/api/csrf/token", json={"token": "x"}).status_code == 400

    def test_token_flow(self, gateway):
        client, _, _ = gateway

        issued = client.get("/api/csrf/token")
        assert issued.status_code == 200
        data = issued.json()["data"]
        assert issued.json()["message"] == "CSRF token generated"
        assert set(data) == {"token", "sessionId"}
        assert client.cookies.get("session-id") == data["sessionId"]

        set_cookie = issued.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=strict" in set_cookie
        assert "max-age=1800" in set_cookie
        assert "secure" not in set_cookie

        checked = client.post("/api/csrf/token", json={"token": data["token"]})
        assert checked.json()["data"] == {"valid": True}

        # A bound token satisfies CSRF without an Origin header
        response = client.post("/api/chat", json=chat_body(), headers={"X-CSRF-Token": data["token"]})
        assert response.status_code == 200

    def test_invalid_token_reported_invalid(self, gateway):
        client, services, _ = gateway
        client.get("/api/csrf/token")

        checked = client.post("/api/csrf/token", json={"token": "forged"})

        assert checked.status_code == 200
        assert checked.json()["data"] == {"valid": False}
        assert services.security_logger.get_recent_logs(1)[0].type == "CSRF_TOKEN_INVALID"

        activity = services.attack_detector.get_activity("unknown")
        assert activity.score == 1
        assert activity.activities[0].activity_type == SuspiciousActivityType.MULTIPLE_FAILED_REQUESTS

    def test_missing_session_cookie(self, gateway):
        client, _, _ = gateway

        response = client.post("/api/csrf/token", json={"token": "abc"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing token or session"}


class TestChatScreening:
    """Input analysis in the chat handler."""

    def test_benign_message(self, gateway):
        client, _, _ = gateway

        response = client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {"reply": "Hi! Ask me about data engineering.", "model": "test-model"}
        }

    def test_script_payload_rejected(self, gateway):
        client, services, _ = gateway

        response = client.post("/api/chat", json=chat_body(SCRIPT_PAYLOAD), headers=ORIGIN)

        assert response.status_code == 400
        assert response.json()["error"] == "Your message cannot be processed for security reasons."

        entry = services.security_logger.get_recent_logs(1)[0]
        assert entry.type == "MALICIOUS_INPUT"
        assert entry.severity.value in ("HIGH", "CRITICAL")
        assert entry.details["risk_score"] >= 10

        activity = services.attack_detector.get_activity("unknown")
        reported = {record.activity_type for record in activity.activities}
        assert SuspiciousActivityType.XSS_ATTEMPT in reported

    def test_low_risk_input_is_logged_and_allowed(self, gateway):
        client, services, _ = gateway

        response = client.post("/api/chat", json=chat_body("What is your approach (in general)?"), headers=ORIGIN)

        assert response.status_code == 200
        assert services.security_logger.get_recent_logs(1)[0].type == "SUSPICIOUS_INPUT"

    def test_assistant_turns_are_not_screened(self, gateway):
        client, _, _ = gateway
        body = {"messages": [
            {"role": "user", "content": "Show me some HTML"},
            {"role": "assistant", "content": SCRIPT_PAYLOAD},
            {"role": "user", "content": "Thanks!"}
        ]}

        assert client.post("/api/chat", json=body, headers=ORIGIN).status_code == 200

    @pytest.mark.parametrize("body", [
        {},
        {"messages": []},
        {"messages": "hello"},
        {"messages": [{"role": "wizard", "content": "hi"}]},
    ])
    def test_invalid_payload(self, gateway, body):
        client, services, _ = gateway

        response = client.post("/api/chat", json=body, headers=ORIGIN)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid message format. Please refresh and try again."
        assert services.attack_detector.get_activity("unknown").score == 1

    def test_bot_user_agent_is_reported(self, gateway):
        client, services, _ = gateway

        response = client.post(
            "/api/chat",
            json=chat_body(),
            headers={**ORIGIN, "User-Agent": "Googlebot/2.1"}
        )

        assert response.status_code == 200
        types = [entry.type for entry in services.security_logger.get_recent_logs()]
        assert "BOT_DETECTED" in types
        assert services.attack_detector.get_activity("unknown").score == 0.5

    def test_unconfigured_upstream(self):
        app, _, _ = build(chat_client=FakeChatClient(configured=False))
        client = TestClient(app)

        response = client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        assert response.status_code == 503

    def test_upstream_error_is_classified(self):
        error = UpstreamError("Overloaded", status_code=529, error_type="overloaded_error")
        app, services, _ = build(chat_client=FakeChatClient(error=error))
        client = TestClient(app)

        response = client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        assert response.status_code == 503
        assert response.json()["error"] == "I'm a bit overloaded right now. Please try again in a moment."
        assert services.security_logger.get_recent_logs(1)[0].type == "UPSTREAM_ERROR"

    def test_repeated_upstream_failures_block_client(self):
        error = UpstreamError("boom", status_code=500)
        app, services, _ = build(chat_client=FakeChatClient(error=error))
        client = TestClient(app)
        detector = services.attack_detector

        for _ in range(3):
            assert client.post("/api/chat", json=chat_body(), headers=ORIGIN).status_code == 500

        activity = detector.get_activity("unknown")
        assert activity.score == 3
        assert {record.activity_type for record in activity.activities} == {
            SuspiciousActivityType.MULTIPLE_FAILED_REQUESTS
        }

        for _ in range(5):
            client.post("/api/chat", json=chat_body(), headers=ORIGIN)

        assert detector.is_ip_blocked("unknown")
        assert services.security_logger.get_recent_logs(1)[0].type == "IP_BLOCKED"
        assert client.post("/api/chat", json=chat_body(), headers=ORIGIN).status_code == 403


class TestIPBlocking:
    """Repeated violations block the client on every API route."""

    def block_client(self, client):
        # Each rejected script payload scores 4 (XSS 3 + command 1)
        for _ in range(2):
            client.post("/api/chat", json=chat_body(SCRIPT_PAYLOAD), headers=ORIGIN)

    def test_blocked_ip_gets_403_everywhere(self, gateway):
        client, services, _ = gateway

        self.block_client(client)

        assert services.attack_detector.is_ip_blocked("unknown")
        for response in (
            client.post("/api/chat", json=chat_body(), headers=ORIGIN),
            client.get("/api/visits"),
            client.get("/api/csrf/token"),
        ):
            assert response.status_code == 403
            assert response.json()["success"] is False

        types = [entry.type for entry in services.security_logger.get_recent_logs()]
        assert "IP_BLOCKED" in types
        assert "BLOCKED_IP_REQUEST" in types

    def test_block_entry_is_critical(self, gateway):
        client, services, _ = gateway

        self.block_client(client)

        blocked = [entry for entry in services.security_logger.get_recent_logs() if entry.type == "IP_BLOCKED"]
        assert len(blocked) == 1
        assert blocked[0].severity.value == "CRITICAL"

    def test_other_clients_unaffected(self, gateway):
        client, _, _ = gateway

        self.block_client(client)

        response = client.get("/api/visits", headers={"X-Forwarded-For": "203.0.113.9"})
        assert response.status_code == 200

    def test_block_expires(self, gateway):
        client, services, clock = gateway
        self.block_client(client)

        clock.advance(30 * 60 * 1000)

        assert client.get("/api/visits").status_code == 200
        assert services.attack_detector.get_activity("unknown") is None

    def test_debug_reset(self, gateway):
        client, services, _ = gateway
        self.block_client(client)

        response = client.post(
            "/api/debug/security",
            json={"action": "reset"},
            headers={**ORIGIN, "X-Forwarded-For": "203.0.113.9"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert services.attack_detector.is_ip_blocked("unknown") is False


class TestOperationalEndpoints:
    """Security logs, visits, debug and response headers."""

    def test_security_headers(self, gateway):
        client, _, _ = gateway

        response = client.get("/api/visits")

        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-xss-protection"] == "1; mode=block"
        assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"
        assert response.headers["cache-control"] == "no-store, max-age=0"
        assert "frame-ancestors 'none'" in response.headers["content-security-policy"]
        assert "camera=()" in response.headers["permissions-policy"]
        assert "strict-transport-security" not in response.headers

    def test_hsts_in_production(self):
        app, _, _ = build(Environment.PRODUCTION)
        client = TestClient(app)

        response = client.get("/api/visits")

        assert response.headers["strict-transport-security"] == "max-age=31536000; includeSubDomains; preload"

    def test_rejections_carry_security_headers(self, gateway):
        client, _, _ = gateway

        response = client.post("/api/chat", json=chat_body())

        assert response.status_code == 403
        assert response.headers["x-frame-options"] == "DENY"

    def test_api_responses_carry_request_id(self, gateway):
        client, _, _ = gateway

        first = client.get("/api/visits")
        second = client.post("/api/chat", json=chat_body())

        assert len(first.headers["x-request-id"]) == 16
        assert len(second.headers["x-request-id"]) == 16
        assert first.headers["x-request-id"] != second.headers["x-request-id"]
        assert "x-request-id" not in client.post("/not-an-api-route").headers

    def test_visit_counter(self, gateway):
        client, _, clock = gateway
        browser = {"User-Agent": "Mozilla/5.0"}

        assert client.get("/api/visits").json()["data"] == {"count": 12847}

        first = client.post("/api/visits", headers=browser).json()
        assert first["data"] == {"count": 12848, "incremented": True}

        repeat = client.post("/api/visits", headers=browser).json()
        assert repeat["data"] == {"count": 12848, "incremented": False}

        bot = client.post("/api/visits", headers={"User-Agent": "Twitterbot/1.0", "X-Forwarded-For": "203.0.113.4"})
        assert bot.json()["data"]["incremented"] is False

        clock.advance(60 * 60 * 1000 + 1)
        later = client.post("/api/visits", headers=browser).json()
        assert later["data"] == {"count": 12849, "incremented": True}

    def test_security_logs_open_outside_production(self, gateway):
        client, _, _ = gateway
        client.post("/api/chat", json=chat_body())

        response = client.get("/api/security/logs", params={"limit": "5"})

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["total"] == 1
        assert body["data"]["logs"][0]["type"] == "CSRF_VIOLATION"
        assert "timestamp" in body["data"]

    def test_security_logs_require_token_in_production(self):
        app, services, _ = build(Environment.PRODUCTION)
        client = TestClient(app)

        unauthorized = client.get("/api/security/logs")
        assert unauthorized.status_code == 401
        assert unauthorized.json() == {"error": "Unauthorized"}

        wrong = client.get("/api/security/logs", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

        authorized = client.get("/api/security/logs", headers={"Authorization": f"Bearer {LOGS_TOKEN}"})
        assert authorized.status_code == 200
        latest = authorized.json()["data"]["logs"][0]
        assert latest["type"] == "UNAUTHORIZED_LOG_ACCESS"
        assert latest["clientIP"] == "unknown"
        assert "userAgent" in latest
        assert "client_ip" not in latest

        # Each failed attempt counts toward a block
        assert services.attack_detector.get_activity("unknown").score == 2

    def test_clearing_logs(self, gateway):
        client, _, _ = gateway

        assert client.delete("/api/security/logs", headers=ORIGIN).status_code == 401

        response = client.delete(
            "/api/security/logs",
            headers={**ORIGIN, "Authorization": f"Bearer {LOGS_TOKEN}"}
        )
        assert response.status_code == 501

    def test_debug_status(self, gateway):
        client, _, _ = gateway

        data = client.get("/api/debug/security").json()["data"]

        assert data["clientIP"] == "unknown"
        assert data["isBlocked"] is False
        assert data["environment"] == "testing"

    def test_debug_invalid_action(self, gateway):
        client, _, _ = gateway

        response = client.post("/api/debug/security", json={"action": "explode"}, headers=ORIGIN)

        assert response.json() == {"success": False, "error": "Invalid action"}

    def test_debug_hidden_in_production(self):
        app, _, _ = build(Environment.PRODUCTION)
        client = TestClient(app)

        assert client.get("/api/debug/security").status_code == 404
        assert client.post("/api/debug/security", json={"action": "reset"}, headers=ORIGIN).status_code == 404

    def test_non_api_paths_bypass_pipeline(self, gateway):
        client, services, _ = gateway

        response = client.post("/not-an-api-route")

        assert response.status_code == 404
        assert len(services.security_logger) == 0

    def test_lifespan_starts_and_stops_sweeps(self):
        app, services, clock = build()

        with TestClient(app) as client:
            assert client.get("/api/visits").status_code == 200
            assert clock.pending == len(services.limiters)

        assert clock.pending == 0
