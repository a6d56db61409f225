"""
DocGuard Backend - Test Configuration (conftest.py)
=====================================================

Shared pytest fixtures.

Fixture Hierarchy:
    Function-scoped:
    ├── clock:         FakeClock driving the rate limiter (milliseconds)
    ├── limiter:       RateLimiter on the fake clock
    ├── sink / alerts: RecordingSink and a list collecting security alerts
    ├── audit_logger:  AuditLogger wired to both, shut down after the test
    ├── app_settings:  Settings with a temp storage root and a limit of 5
    ├── app:           create_app() with the components above injected
    ├── client:        HTTPX AsyncClient talking to `app` as 203.0.113.7
    └── png_bytes / encrypted_pdf: sample upload payloads
"""

import os
import tempfile

# Must run before docguard is imported: docguard.main builds a module-level
# app (and its storage directory) from the process settings
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="docguard_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("AUDIT_LOG_PATH", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from docguard.config import Settings
from docguard.main import create_app
from docguard.security.audit import AuditLogger, AuditSink
from docguard.security.rate_limiter import RateLimiter

CLIENT_IP = "203.0.113.7"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSink(AuditSink):
    def __init__(self):
        self.records = []

    async def write(self, record):
        self.records.append(record)

    def actions(self):
        return [r["action"] for r in self.records]

    def find(self, action):
        matches = [r for r in self.records if r["action"] == action]
        assert matches, f"no audit record {action!r} in {self.actions()}"
        return matches[-1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def alerts():
    return []


@pytest_asyncio.fixture
async def audit_logger(sink, alerts):
    audit = AuditLogger(sink, alert_hook=alerts.append)
    yield audit
    await audit.shutdown()


@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        storage_root=str(tmp_path / "storage"),
        rate_limit_requests=5,
        rate_limit_window_ms=60_000,
        max_file_size=4096,
        log_level="WARNING",
    )


@pytest.fixture
def app(app_settings, limiter, audit_logger):
    return create_app(config=app_settings, rate_limiter=limiter, audit_logger=audit_logger)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app, client=(CLIENT_IP, 50000))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ── Sample documents ────────────────────────────────────────────────────

@pytest.fixture
def png_bytes():
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def encrypted_pdf():
    """Minimal PDF with an /Encrypt dictionary and user/owner password entries."""
    return (
        b"%PDF-1.7\n"
        b"1 0 obj\n<< /Filter /FlateDecode /Length 42 >>\nstream\n\x8f\x02\x11\nendstream\nendobj\n"
        b"5 0 obj\n<< /Filter /Standard /V 2 /O (owner-hash) /U (user-hash) /P -44 >>\nendobj\n"
        b"trailer\n<< /Root 2 0 R /Encrypt 5 0 R >>\n%%EOF"
    )
