"""Per-caller request windows.

The gate owns the admission decision; the window store owns the state. The
in-memory store serializes updates per caller identity, so two requests from
the same caller never lose an increment while different callers never wait
on each other. A shared store (Redis and the like) can replace it by
implementing the same ``update`` contract.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import threading
import time
from typing import Callable, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitWindow:
    window_start: float
    request_count: int


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    remaining: int
    retry_after: float = 0.0

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds for a Retry-After header."""
        return max(1, math.ceil(self.retry_after)) if not self.admitted else 0


class WindowStore(Protocol):
    def update(
        self,
        key: str,
        fn: Callable[[Optional[RateLimitWindow]], tuple[RateLimitWindow, T]],
    ) -> T:
        """Atomically replace the window for ``key`` with ``fn(current)[0]``."""
        ...

    def remove_expired(self, is_expired: Callable[[RateLimitWindow], bool]) -> int:
        ...


class InMemoryWindowStore:
    """Process-local window map with one lock per key."""

    def __init__(self) -> None:
        self._windows: dict[str, RateLimitWindow] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def update(
        self,
        key: str,
        fn: Callable[[Optional[RateLimitWindow]], tuple[RateLimitWindow, T]],
    ) -> T:
        while True:
            lock = self._lock_for(key)
            with lock:
                # remove_expired may have retired this lock while we waited
                if self._locks.get(key) is not lock:
                    continue
                window, result = fn(self._windows.get(key))
                self._windows[key] = window
                return result

    def get(self, key: str) -> Optional[RateLimitWindow]:
        return self._windows.get(key)

    def remove_expired(self, is_expired: Callable[[RateLimitWindow], bool]) -> int:
        removed = 0
        with self._registry_lock:
            for key, lock in list(self._locks.items()):
                if not lock.acquire(blocking=False):
                    continue
                try:
                    window = self._windows.get(key)
                    if window is None or is_expired(window):
                        self._windows.pop(key, None)
                        del self._locks[key]
                        removed += 1
                finally:
                    lock.release()
        return removed

    def __len__(self) -> int:
        return len(self._windows)


class AdmissionGate:
    """Fixed-window request counter keyed by caller identity."""

    def __init__(
        self,
        store: Optional[WindowStore] = None,
        window_seconds: float = 60.0,
        max_requests: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.store = store if store is not None else InMemoryWindowStore()
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.clock = clock
        self._last_prune = clock()
        self._prune_lock = threading.Lock()

    def _expired(self, window: RateLimitWindow, now: float) -> bool:
        return now > window.window_start + self.window_seconds

    def check(self, caller_identity: str) -> AdmissionDecision:
        now = self.clock()
        self._prune_if_due(now)

        def step(current: Optional[RateLimitWindow]) -> tuple[RateLimitWindow, AdmissionDecision]:
            if current is None or self._expired(current, now):
                window = RateLimitWindow(window_start=now, request_count=1)
                return window, AdmissionDecision(True, self.max_requests - 1)
            if current.request_count < self.max_requests:
                window = RateLimitWindow(current.window_start, current.request_count + 1)
                return window, AdmissionDecision(True, self.max_requests - window.request_count)
            retry_after = current.window_start + self.window_seconds - now
            return current, AdmissionDecision(False, 0, max(retry_after, 0.0))

        decision = self.store.update(caller_identity, step)
        if not decision.admitted:
            logger.debug(f"Rate limit hit for {caller_identity}, retry in {decision.retry_after:.1f}s")
        return decision

    def prune(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self.clock()
        return self.store.remove_expired(lambda window: self._expired(window, now))

    def _prune_if_due(self, now: float) -> None:
        # sweep at most once per window
        if now - self._last_prune <= self.window_seconds:
            return
        if not self._prune_lock.acquire(blocking=False):
            return
        try:
            self._last_prune = now
            removed = self.store.remove_expired(lambda window: self._expired(window, now))
        finally:
            self._prune_lock.release()
        if removed:
            logger.debug(f"Pruned {removed} expired rate limit windows")
