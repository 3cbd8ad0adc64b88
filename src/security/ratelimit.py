"""Admission control for the shared-key path using fixed-window counters.

Each client identity gets one window of ``limit`` admissions that lasts
``window_ms`` from its first request. When the window expires, the next
request opens a fresh one. Denied requests do not consume the window.

Fixed windows allow a burst of up to 2x the limit across a window
boundary. That is acceptable for coarse abuse protection and keeps every
check O(1).

Returns the metadata used for response headers:
- X-RateLimit-Limit
- X-RateLimit-Remaining
"""

import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from src.config.settings import get_settings
from src.security.windows import ClientWindowState, InMemoryWindowStore, WindowStore

UNKNOWN_IDENTITY = "unknown"


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int | None = None  # epoch ms, set on denial


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def derive_identity(headers: Mapping[str, str]) -> str:
    """Best-effort client identity from proxy headers.

    Prefers the first hop of X-Forwarded-For, then X-Real-IP. Clients
    without either share the "unknown" window.
    """
    forwarded = headers.get("x-forwarded-for") or ""
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return UNKNOWN_IDENTITY


class AdmissionController:
    """Per-identity fixed-window rate limiter."""

    def __init__(
        self,
        limit: int = 10,
        window_ms: int = 60 * 60 * 1000,
        clock: Callable[[], int] = wall_clock_ms,
        store: WindowStore | None = None,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be positive")
        self.limit = limit
        self.window_ms = window_ms
        self._clock = clock
        self._store = store if store is not None else InMemoryWindowStore()
        self._lock = threading.Lock()

    def check(self, key: str, now: int | None = None) -> RateLimitDecision:
        """Admit or deny one request for ``key``.

        Args:
            key: Client identity from derive_identity().
            now: Epoch milliseconds. Defaults to the injected clock.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            window = self._store.get(key)

            if window is None or window.expired(now):
                self._store.put(key, ClientWindowState(count=1, reset_at=now + self.window_ms))
                return RateLimitDecision(allowed=True, limit=self.limit, remaining=self.limit - 1)

            if window.count >= self.limit:
                return RateLimitDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=window.reset_at,
                )

            window.count += 1
            self._store.put(key, window)
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - window.count,
            )

    def reset_in_minutes(self, decision: RateLimitDecision, now: int | None = None) -> int:
        """Whole minutes (rounded up) until a denied caller may retry."""
        if decision.reset_at is None:
            return 0
        if now is None:
            now = self._clock()
        return max(0, math.ceil((decision.reset_at - now) / 60000))

    def reset(self, key: str | None = None) -> None:
        """Clear one identity's window, or every window when key is None."""
        with self._lock:
            if key is None:
                self._store.clear()
            else:
                self._store.delete(key)

    def sweep_expired(self, now: int | None = None) -> int:
        """Drop expired windows. Returns the number removed."""
        if now is None:
            now = self._clock()
        removed = 0
        with self._lock:
            for key, window in self._store.items():
                if window.expired(now):
                    self._store.delete(key)
                    removed += 1
        return removed

    def window_for(self, key: str) -> ClientWindowState | None:
        with self._lock:
            return self._store.get(key)


_controller: AdmissionController | None = None


def get_admission_controller() -> AdmissionController:
    """Get the process-wide controller, built from settings on first use."""
    global _controller
    if _controller is not None:
        return _controller

    settings = get_settings()
    _controller = AdmissionController(
        limit=settings.rate_limit,
        window_ms=settings.rate_limit_window_ms,
    )
    return _controller


def reset_admission_controller() -> None:
    """Forget the process-wide controller. Useful for testing."""
    global _controller
    _controller = None
