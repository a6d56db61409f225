"""
DocGuard Backend - Fixed-Window Rate Limiter
==============================================

What:  Per-identifier admission control over a fixed time window.
Why:   Bounds how fast one client can hammer one endpoint without any shared
       store; a fixed counter per window is enough for that and costs O(1).
How:   Each identifier (client address + route) owns a slot holding a request
       count and the instant its window resets. The first request after the
       reset instant starts a new window with count 1.
Who:   GatekeeperMiddleware calls it for every API request; RateLimitSweeper
       prunes it on a timer.

Algorithm: Fixed Window Counter
    1. No slot, or now >= window_reset_at  -> count = 1, reset = now + window
    2. count >= max_requests                -> limited (count unchanged)
    3. otherwise                            -> count += 1, admitted

    A window is not a sliding log of timestamps: a client can spend its whole
    budget at the end of one window and again at the start of the next.

Concurrency:
    The slot table is shared by every in-flight request and may be touched
    from several threads (sync endpoints run in a thread pool) as well as the
    event loop. Each slot has its own threading.Lock and the whole
    check-and-increment runs under it, so two requests for one identifier
    can never both see `count < max_requests` and both increment. There is
    no table-wide lock: requests for different identifiers never wait on
    each other.

    cleanup() goes through the same slot locks. It marks an expired slot as
    retired before unlinking it; a request that was already holding a
    reference to that slot sees the flag once it gets the lock and looks the
    identifier up again, so a sweep never loses a count.

Time:
    All instants are milliseconds from an injectable clock (monotonic by
    default), which keeps window math immune to wall-clock jumps and lets
    tests drive time explicitly.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Default clock: monotonic time in milliseconds."""
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class RateWindow:
    """Read-only copy of one identifier's window state."""

    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitStatus:
    """What the gatekeeper discloses to the client about its budget."""

    limit: int
    remaining: int
    reset_after_ms: float

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the window resets, at least 1."""
        return max(1, math.ceil(self.reset_after_ms / 1000))


class _Slot:
    __slots__ = ("lock", "count", "window_reset_at", "retired")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.count = 0
        self.window_reset_at = 0.0
        # Set by cleanup() once the slot is unlinked from the table
        self.retired = False


class RateLimiter:
    """
    In-memory fixed-window rate limiter keyed by arbitrary identifiers.

    Args:
        clock: Callable returning the current time in milliseconds.
               Defaults to the monotonic clock.

    The limiter owns its table exclusively; callers only go through the
    public methods below.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or monotonic_ms
        self._slots: Dict[str, _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def _slot_for(self, identifier: str) -> _Slot:
        slot = self._slots.get(identifier)
        if slot is None:
            # setdefault is atomic: racing creators all end up with one slot
            slot = self._slots.setdefault(identifier, _Slot())
        return slot

    def is_rate_limited(self, identifier: str, max_requests: int, window_ms: int) -> bool:
        """
        Count one request for `identifier` and decide whether to reject it.

        Returns:
            True when the request must be rejected, False when it is admitted
            (and counted).

        Raises:
            ValueError if window_ms is not positive.
        """
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")
        if max_requests <= 0:
            return True

        while True:
            slot = self._slot_for(identifier)
            with slot.lock:
                if slot.retired:
                    continue

                now = self._clock()
                if slot.count == 0 or now >= slot.window_reset_at:
                    slot.count = 1
                    slot.window_reset_at = now + window_ms
                    return False

                if slot.count >= max_requests:
                    return True

                slot.count += 1
                return False

    def get_remaining_requests(self, identifier: str, max_requests: int) -> int:
        """
        Requests left in the identifier's current window, in [0, max_requests].

        An identifier with no slot, or whose window has already expired, has
        its full budget. Never mutates state.
        """
        limit = max(0, max_requests)
        slot = self._slots.get(identifier)
        if slot is None:
            return limit

        with slot.lock:
            if slot.retired or slot.count == 0 or self._clock() >= slot.window_reset_at:
                return limit
            return max(0, min(limit, limit - slot.count))

    def status(self, identifier: str, max_requests: int) -> RateLimitStatus:
        """Remaining budget plus time until the window resets."""
        remaining = self.get_remaining_requests(identifier, max_requests)
        window = self.snapshot(identifier)
        reset_after = 0.0
        if window is not None:
            reset_after = max(0.0, window.window_reset_at - self._clock())
        return RateLimitStatus(
            limit=max(0, max_requests),
            remaining=remaining,
            reset_after_ms=reset_after,
        )

    def snapshot(self, identifier: str) -> Optional[RateWindow]:
        """Copy of the stored window for `identifier`, expired or not."""
        slot = self._slots.get(identifier)
        if slot is None:
            return None
        with slot.lock:
            if slot.retired:
                return None
            return RateWindow(count=slot.count, window_reset_at=slot.window_reset_at)

    def cleanup(self) -> int:
        """
        Remove every slot whose window has expired as of now.

        Returns:
            Number of slots removed. Slots with an active window are left
            untouched.
        """
        now = self._clock()
        removed = 0
        # Iterate over a copy: request threads may add slots meanwhile
        for identifier, slot in self._slots.copy().items():
            with slot.lock:
                if slot.retired or now < slot.window_reset_at:
                    continue
                slot.retired = True
                self._slots.pop(identifier, None)
                removed += 1

        if removed:
            logger.debug("Rate limiter cleanup removed %d expired windows", removed)
        return removed


class RateLimitSweeper:
    """
    Background task that calls RateLimiter.cleanup() every `interval_seconds`.

    Started and stopped by the application lifespan. A failing sweep is
    logged and the loop keeps running.
    """

    def __init__(self, limiter: RateLimiter, interval_seconds: float = 60.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.limiter = limiter
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")
        logger.debug("Rate limit sweeper started (every %.1fs)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Rate limit sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.limiter.cleanup()
            except Exception:
                logger.exception("Rate limiter cleanup failed")
