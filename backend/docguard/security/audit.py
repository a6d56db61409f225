"""
DocGuard Backend - Audit Trail
================================

What:  Structured, timestamped records of security-relevant actions, with
       high-risk events escalated to a separate alert path.
Why:   Rejections, failed validations and server errors need a record that
       outlives the request log and names the client behind them.
How:   log() builds an immutable AuditEvent, serialises it to a JSON-safe
       record and puts it on an asyncio.Queue. A background task drains the
       queue into an AuditSink. The request path never awaits the sink.
Who:   GatekeeperMiddleware (admission and access records), the global
       exception handlers and the route handlers (domain outcomes).

Failure Policy:
    Auditing is best-effort. A failing sink, a failing alert hook, a full
    queue or a malformed event is logged and counted, never raised to the
    caller. The protected service stays available when the audit trail
    does not.

Record Format (one per event):
    {
        "id": "0b6f1c52-...",
        "action": "rate_limit_exceeded",
        "source_ip": "203.0.113.7",
        "user_agent": "curl/8.4.0",
        "timestamp": "2024-01-15T12:00:00.000Z",
        "details": {"path": "/api/upload"},
        "risk_level": "medium"
    }
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiofiles
from pydantic import BaseModel, Field, field_serializer
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docguard.exceptions import AuditSinkError

logger = logging.getLogger(__name__)
audit_stream = logging.getLogger("docguard.audit")
security_stream = logging.getLogger("docguard.security")

AuditRecord = Dict[str, Any]
AlertHook = Callable[[AuditRecord], None]


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def format_timestamp(value: datetime) -> str:
    """Canonical form: ISO-8601 in UTC, millisecond precision, `Z` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """One logged occurrence. Immutable once created."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    action: str
    source_ip: str
    user_agent: str
    timestamp: datetime
    details: Optional[Dict[str, Any]] = None
    risk_level: RiskLevel = RiskLevel.LOW

    model_config = {"frozen": True}

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    def to_record(self) -> AuditRecord:
        return self.model_dump(mode="json")


# ══════════════════════════════════════════════════════════════════════════
# Sinks
# ══════════════════════════════════════════════════════════════════════════

class AuditSink(ABC):
    """
    Destination for audit records.

    Implementations may raise on failure; AuditLogger absorbs it.
    """

    @abstractmethod
    async def write(self, record: AuditRecord) -> None:
        ...

    async def close(self) -> None:
        """Release resources. Called once by AuditLogger.shutdown()."""


class LoggingAuditSink(AuditSink):
    """Writes `[AUDIT] <json>` lines to the `docguard.audit` logger."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def write(self, record: AuditRecord) -> None:
        audit_stream.log(self.level, "[AUDIT] %s", json.dumps(record, sort_keys=True))


class JsonLinesAuditSink(AuditSink):
    """
    Appends one JSON document per line to a file.

    What:    Durable-ish local audit trail for single-node deployments.
    How:     aiofiles append per record; OSError is retried with exponential
             backoff (tenacity) before giving up with AuditSinkError.
    """

    def __init__(
        self,
        path: str,
        attempts: int = 3,
        min_wait: float = 0.05,
        max_wait: float = 1.0,
    ):
        self.path = Path(path)
        self.attempts = attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def _append(self, line: str) -> None:
        async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
            await f.write(line)

    async def write(self, record: AuditRecord) -> None:
        line = json.dumps(record, sort_keys=True) + "\n"
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=self.min_wait, max=self.max_wait),
                retry=retry_if_exception_type(OSError),
            ):
                with attempt:
                    await self._append(line)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise AuditSinkError(
                message="Audit record could not be appended",
                context={"path": str(self.path), "os_error": str(last)},
            ) from last


def log_security_alert(record: AuditRecord) -> None:
    """Default alert path: WARNING on the `docguard.security` logger."""
    security_stream.warning("[SECURITY ALERT] %s", json.dumps(record, sort_keys=True))


# ══════════════════════════════════════════════════════════════════════════
# Audit Logger
# ══════════════════════════════════════════════════════════════════════════

class AuditLogger:
    """
    Non-blocking audit dispatcher.

    Args:
        sink:        Where records end up.
        alert_hook:  Called synchronously with the record of every HIGH risk
                     event. Defaults to log_security_alert.
        queue_size:  Records buffered while the sink catches up. When full,
                     new records are dropped (and counted).
        now:         Clock for events logged without an explicit timestamp.

    Threading:
        log() must run on the event loop thread (asyncio.Queue is not
        thread-safe). The drain task starts on the first log() made inside a
        running loop, or explicitly via start().
    """

    def __init__(
        self,
        sink: AuditSink,
        alert_hook: Optional[AlertHook] = None,
        queue_size: int = 1000,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.sink = sink
        self._alert_hook = alert_hook or log_security_alert
        self._now = now or utc_now
        self._queue: "asyncio.Queue[AuditRecord]" = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None
        self._counters = {"logged": 0, "written": 0, "failed": 0, "dropped": 0, "alerts": 0}

    # ── Public API ────────────────────────────────────────────────────────

    def log(
        self,
        action: str,
        source_ip: str,
        user_agent: str,
        risk_level: RiskLevel = RiskLevel.LOW,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[AuditEvent]:
        """
        Record one event. Returns the event, or None if it could not be built.

        Never raises and never waits for the sink.
        """
        try:
            event = AuditEvent(
                action=action,
                source_ip=source_ip,
                user_agent=user_agent,
                timestamp=timestamp or self._now(),
                details=details,
                risk_level=risk_level,
            )
            record = event.to_record()
        except Exception:
            logger.exception("Dropping malformed audit event %r", action)
            self._counters["dropped"] += 1
            return None

        self._counters["logged"] += 1
        self._enqueue(record)

        if event.risk_level is RiskLevel.HIGH:
            self._alert_security(record)

        return event

    def start(self) -> None:
        """Start the drain task on the running loop (no-op if running)."""
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.get_running_loop().create_task(self._drain(), name="audit-drain")

    async def flush(self) -> None:
        """Wait until every queued record has been handed to the sink."""
        if self._worker is None or self._worker.done():
            while not self._queue.empty():
                record = self._queue.get_nowait()
                try:
                    await self._deliver(record)
                finally:
                    self._queue.task_done()
            return
        await self._queue.join()

    async def shutdown(self) -> None:
        """Flush pending records, stop the drain task and close the sink."""
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        try:
            await self.sink.close()
        except Exception:
            logger.warning("Audit sink close failed", exc_info=True)

    def stats(self) -> Dict[str, int]:
        return {**self._counters, "pending": self._queue.qsize()}

    # ── Internals ─────────────────────────────────────────────────────────

    def _enqueue(self, record: AuditRecord) -> None:
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self._counters["dropped"] += 1
            logger.warning("Audit queue full; dropped record %s (%s)", record["id"], record["action"])
            return

        try:
            self.start()
        except RuntimeError:
            # No running loop: the record waits for start() or flush()
            pass

    def _alert_security(self, record: AuditRecord) -> None:
        self._counters["alerts"] += 1
        try:
            self._alert_hook(record)
        except Exception:
            logger.exception("Security alert hook failed for %s", record["id"])

    async def _deliver(self, record: AuditRecord) -> None:
        try:
            await self.sink.write(record)
        except Exception as e:
            self._counters["failed"] += 1
            logger.warning("Audit sink rejected record %s: %s", record["id"], e)
        else:
            self._counters["written"] += 1

    async def _drain(self) -> None:
        while True:
            record = await self._queue.get()
            try:
                await self._deliver(record)
            finally:
                self._queue.task_done()
