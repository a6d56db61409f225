"""
DocGuard Backend - Gatekeeper Middleware Tests
================================================

What:  Admission, header hardening and access auditing on a minimal app.
How:   A bare FastAPI app with counting handlers, wrapped in
       GatekeeperMiddleware with a budget of 2 requests per window.
"""

import asyncio
from collections import Counter

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from docguard.middleware.gatekeeper import INTERNAL_ERROR_MESSAGE, GatekeeperMiddleware
from docguard.middleware.request_id import RequestIDMiddleware
from docguard.security.audit import AuditLogger, AuditSink
from docguard.security.headers import STATIC_HEADERS
from docguard.security.identity import client_identity, extract_identity


CLIENT_IP = "203.0.113.7"
LIMIT = 2


class BlockingSink(AuditSink):
    def __init__(self):
        self.release = asyncio.Event()

    async def write(self, record):
        await self.release.wait()


class BrokenAuditLogger:
    def log(self, **kwargs):
        raise RuntimeError("audit offline")


class BrokenHeaderPolicy:
    def apply(self, headers, rate_limit=None):
        raise RuntimeError("policy offline")


def build_app(limiter, audit_logger, max_requests=LIMIT, with_request_id=False, **overrides):
    app = FastAPI()
    app.state.calls = Counter()

    @app.get("/api/items")
    async def list_items(request: Request):
        app.state.calls["list"] += 1
        identity = client_identity(request)
        return {"source_ip": identity.source_ip, "user_agent": identity.user_agent}

    @app.post("/api/items")
    async def create_item():
        app.state.calls["create"] += 1
        return {"ok": True}

    @app.get("/api/other")
    async def other():
        return {"ok": True}

    @app.get("/public")
    async def public_page():
        return {"ok": True}

    @app.post("/public/feedback")
    async def feedback():
        return {"ok": True}

    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("disk on fire")

    @app.post("/public/crash")
    async def crash():
        raise ValueError()

    @app.get("/leaky")
    async def leaky():
        return JSONResponse({"ok": True}, headers={"Server": "nginx/1.25", "X-Powered-By": "PHP/8.2"})

    if with_request_id:
        app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        GatekeeperMiddleware,
        rate_limiter=limiter,
        audit_logger=audit_logger,
        max_requests=max_requests,
        window_ms=60_000,
        **overrides,
    )
    return app


def make_client(app, ip=CLIENT_IP):
    return AsyncClient(transport=ASGITransport(app=app, client=(ip, 40000)), base_url="http://test")


@pytest_asyncio.fixture
async def gated(limiter, audit_logger):
    app = build_app(limiter, audit_logger)
    async with make_client(app) as client:
        yield app, client


class TestAdmission:

    @pytest.mark.asyncio
    async def test_over_budget_request_is_rejected(self, gated, audit_logger, sink, limiter):
        app, client = gated
        for _ in range(LIMIT):
            assert (await client.get("/api/items")).status_code == 200

        response = await client.get("/api/items")
        await audit_logger.flush()

        assert response.status_code == 429
        assert response.text == "Rate limit exceeded"
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-frame-options"] == "DENY"
        assert "content-security-policy" in response.headers
        assert int(response.headers["retry-after"]) >= 1
        assert "x-ratelimit-remaining" not in response.headers
        assert app.state.calls["list"] == LIMIT

        record = sink.find("rate_limit_exceeded")
        assert record["risk_level"] == "medium"
        assert record["details"] == {"path": "/api/items"}
        assert record["source_ip"] == CLIENT_IP

        assert limiter.snapshot(f"{CLIENT_IP}:/api/items").count == LIMIT

    @pytest.mark.asyncio
    async def test_rate_limit_headers_count_down(self, gated):
        _, client = gated
        first = await client.get("/api/items")
        second = await client.get("/api/items")

        assert first.headers["x-ratelimit-limit"] == str(LIMIT)
        assert first.headers["x-ratelimit-remaining"] == "1"
        assert second.headers["x-ratelimit-remaining"] == "0"

    @pytest.mark.asyncio
    async def test_budget_is_per_path(self, gated):
        _, client = gated
        for _ in range(LIMIT):
            await client.get("/api/items")
        assert (await client.get("/api/items")).status_code == 429
        assert (await client.get("/api/other")).status_code == 200

    @pytest.mark.asyncio
    async def test_methods_share_a_path_budget(self, gated):
        _, client = gated
        await client.get("/api/items")
        await client.post("/api/items")
        assert (await client.post("/api/items")).status_code == 429

    @pytest.mark.asyncio
    async def test_budget_is_per_client(self, limiter, audit_logger):
        app = build_app(limiter, audit_logger)
        async with make_client(app, "198.51.100.1") as first, make_client(app, "198.51.100.2") as second:
            for _ in range(LIMIT):
                await first.get("/api/items")
            assert (await first.get("/api/items")).status_code == 429
            assert (await second.get("/api/items")).status_code == 200

    @pytest.mark.asyncio
    async def test_non_api_routes_are_never_limited(self, gated):
        _, client = gated
        responses = [await client.get("/public") for _ in range(LIMIT * 3)]
        assert {r.status_code for r in responses} == {200}
        assert "x-ratelimit-limit" not in responses[0].headers

    @pytest.mark.asyncio
    async def test_window_expiry_readmits(self, gated, clock):
        _, client = gated
        for _ in range(LIMIT + 1):
            await client.get("/api/items")
        clock.advance(60_000)
        response = await client.get("/api/items")
        assert response.status_code == 200
        assert response.headers["x-ratelimit-remaining"] == "1"

    @pytest.mark.asyncio
    async def test_concurrent_burst_admits_exactly_limit(self, limiter, audit_logger):
        app = build_app(limiter, audit_logger, max_requests=5)
        async with make_client(app) as client:
            responses = await asyncio.gather(*(client.get("/api/items") for _ in range(20)))

        codes = Counter(r.status_code for r in responses)
        assert codes == {200: 5, 429: 15}
        assert app.state.calls["list"] == 5


class TestHeaders:

    @pytest.mark.asyncio
    async def test_security_headers_on_every_response(self, gated):
        _, client = gated
        for path in ("/api/items", "/public"):
            response = await client.get(path)
            assert response.headers["strict-transport-security"] == "max-age=31536000; includeSubDomains"
            assert response.headers["x-content-type-options"] == "nosniff"
            assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"
            assert response.headers["permissions-policy"] == "camera=(), microphone=(), geolocation=()"

    @pytest.mark.asyncio
    async def test_server_identity_is_stripped(self, gated):
        _, client = gated
        response = await client.get("/leaky")
        assert "server" not in response.headers
        assert "x-powered-by" not in response.headers

    @pytest.mark.asyncio
    async def test_unknown_route_still_hardened(self, gated):
        _, client = gated
        response = await client.get("/missing")
        assert response.status_code == 404
        assert response.headers["x-frame-options"] == "DENY"


class TestAccessAudit:

    @pytest.mark.asyncio
    async def test_api_get_is_audited(self, gated, audit_logger, sink):
        _, client = gated
        await client.get("/api/items", headers={"User-Agent": "pytest-agent"})
        await audit_logger.flush()

        record = sink.find("GET_/api/items")
        assert record["risk_level"] == "low"
        assert record["user_agent"] == "pytest-agent"
        assert record["details"] is None

    @pytest.mark.asyncio
    async def test_non_api_get_is_not_audited(self, gated, audit_logger, sink):
        _, client = gated
        await client.get("/public")
        await audit_logger.flush()
        assert sink.records == []

    @pytest.mark.asyncio
    async def test_non_api_post_is_audited(self, gated, audit_logger, sink):
        _, client = gated
        await client.post("/public/feedback")
        await audit_logger.flush()
        assert sink.actions() == ["POST_/public/feedback"]

    @pytest.mark.asyncio
    async def test_rejected_request_has_no_access_record(self, gated, audit_logger, sink):
        _, client = gated
        for _ in range(LIMIT + 1):
            await client.post("/api/items")
        await audit_logger.flush()
        assert sink.actions().count("POST_/api/items") == LIMIT
        assert sink.actions().count("rate_limit_exceeded") == 1

    @pytest.mark.asyncio
    async def test_identity_is_shared_with_handlers(self, gated):
        _, client = gated
        body = (await client.get("/api/items", headers={"User-Agent": "agent/1.0"})).json()
        assert body == {"source_ip": CLIENT_IP, "user_agent": "agent/1.0"}


class TestServerErrors:

    @pytest.mark.asyncio
    async def test_route_exception_becomes_hardened_500(self, gated):
        _, client = gated
        response = await client.get("/api/boom")

        assert response.status_code == 500
        assert response.json() == {
            "error": "internal_server_error",
            "message": INTERNAL_ERROR_MESSAGE,
            "details": None,
            "request_id": "",
        }
        assert "disk on fire" not in response.text
        for name, value in STATIC_HEADERS.items():
            assert response.headers[name] == value
        assert response.headers["x-ratelimit-limit"] == str(LIMIT)
        assert response.headers["x-ratelimit-remaining"] == "1"

    @pytest.mark.asyncio
    async def test_route_exception_is_audited(self, gated, audit_logger, sink):
        _, client = gated
        await client.get("/api/boom", headers={"User-Agent": "pytest-agent"})
        await audit_logger.flush()

        assert sink.actions() == ["boom_error", "GET_/api/boom"]
        record = sink.find("boom_error")
        assert record["risk_level"] == "medium"
        assert record["details"] == {"error": "disk on fire"}
        assert record["source_ip"] == CLIENT_IP
        assert record["user_agent"] == "pytest-agent"

    @pytest.mark.asyncio
    async def test_non_api_exception_uses_type_name(self, gated, audit_logger, sink):
        _, client = gated
        response = await client.post("/public/crash")
        await audit_logger.flush()

        assert response.status_code == 500
        assert response.headers["x-frame-options"] == "DENY"
        assert "x-ratelimit-limit" not in response.headers
        assert sink.find("server_error")["details"] == {"error": "ValueError"}
        assert "POST_/public/crash" in sink.actions()

    @pytest.mark.asyncio
    async def test_failed_request_still_counts_against_budget(self, gated):
        _, client = gated
        for _ in range(LIMIT):
            assert (await client.get("/api/boom")).status_code == 500
        assert (await client.get("/api/boom")).status_code == 429

    @pytest.mark.asyncio
    async def test_request_id_survives_the_exception(self, limiter, audit_logger):
        app = build_app(limiter, audit_logger, with_request_id=True)
        async with make_client(app) as client:
            response = await client.get("/api/boom", headers={"X-Request-ID": "trace-500"})

        assert response.status_code == 500
        assert response.headers["x-request-id"] == "trace-500"
        assert response.json()["request_id"] == "trace-500"

    def test_error_action_names(self, limiter, audit_logger):
        gatekeeper = GatekeeperMiddleware(FastAPI(), limiter, audit_logger)
        assert gatekeeper.error_action("/api/upload") == "upload_error"
        assert gatekeeper.error_action("/api/qa/follow-up") == "qa_error"
        assert gatekeeper.error_action("/api/") == "server_error"
        assert gatekeeper.error_action("/health") == "server_error"


class TestResilience:

    @pytest.mark.asyncio
    async def test_blocked_sink_does_not_delay_responses(self, limiter):
        sink = BlockingSink()
        audit = AuditLogger(sink, alert_hook=lambda r: None)
        app = build_app(limiter, audit, max_requests=100)
        try:
            async with make_client(app) as client:
                for _ in range(5):
                    response = await asyncio.wait_for(client.post("/api/items"), timeout=2)
                    assert response.status_code == 200
            assert audit.stats()["pending"] >= 1
        finally:
            sink.release.set()
            await audit.shutdown()

    @pytest.mark.asyncio
    async def test_broken_audit_logger_does_not_fail_requests(self, limiter):
        app = build_app(limiter, BrokenAuditLogger())
        async with make_client(app) as client:
            assert (await client.post("/api/items")).status_code == 200
            await client.post("/api/items")
            assert (await client.post("/api/items")).status_code == 429

    @pytest.mark.asyncio
    async def test_broken_header_policy_does_not_fail_requests(self, limiter, audit_logger):
        app = build_app(limiter, audit_logger, header_policy=BrokenHeaderPolicy())
        async with make_client(app) as client:
            assert (await client.get("/api/items")).status_code == 200


def _request(headers=None, client=None):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/items",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestIdentity:

    def test_connection_address_wins(self):
        identity = extract_identity(
            _request({"X-Forwarded-For": "10.0.0.1", "User-Agent": "ua"}, client=("192.0.2.5", 1234))
        )
        assert identity.source_ip == "192.0.2.5"
        assert identity.user_agent == "ua"

    def test_first_forwarded_hop_without_connection(self):
        identity = extract_identity(_request({"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}))
        assert identity.source_ip == "10.0.0.1"

    def test_missing_values_become_unknown(self):
        identity = extract_identity(_request())
        assert identity.source_ip == "unknown"
        assert identity.user_agent == "unknown"
