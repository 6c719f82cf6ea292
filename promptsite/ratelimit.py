from __future__ import annotations

import logging
import math
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

log = logging.getLogger(__name__)

MINUTE_SECONDS: int = 60
DAY_SECONDS: int = 24 * 60 * 60


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)) or default)
    except ValueError:
        return default


# Upstream free tier: 15/min, 1500/day
MAX_REQUESTS_PER_MINUTE: int = _int_env("RATE_MAX_PER_MINUTE", 14)
MAX_REQUESTS_PER_DAY: int = _int_env("RATE_MAX_PER_DAY", 1400)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    wait_seconds: Optional[int] = None
    reason: Optional[str] = None


class AdmissionController:
    """
    Sliding-window admission over the timestamps of admitted upstream calls.
    Single process, in memory; one instance per API credential.
    """

    def __init__(
        self,
        max_requests_per_minute: Optional[int] = None,
        max_requests_per_day: Optional[int] = None,
    ) -> None:
        self.max_requests_per_minute = int(
            MAX_REQUESTS_PER_MINUTE if max_requests_per_minute is None else max_requests_per_minute
        )
        self.max_requests_per_day = int(MAX_REQUESTS_PER_DAY if max_requests_per_day is None else max_requests_per_day)
        self._timestamps: Deque[float] = deque()
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        cutoff = now - DAY_SECONDS
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _per_minute(self, now: float) -> int:
        cutoff = now - MINUTE_SECONDS
        return sum(1 for ts in self._timestamps if ts > cutoff)

    def _oldest_in_minute(self, now: float) -> Optional[float]:
        cutoff = now - MINUTE_SECONDS
        for ts in self._timestamps:
            if ts > cutoff:
                return ts
        return None

    def _decide(self, now: float) -> AdmissionDecision:
        self._purge(now)
        if self._per_minute(now) >= self.max_requests_per_minute:
            oldest = self._oldest_in_minute(now)
            wait = MINUTE_SECONDS if oldest is None else math.ceil(oldest + MINUTE_SECONDS - now)
            return AdmissionDecision(False, max(1, wait), "per_minute")
        if len(self._timestamps) >= self.max_requests_per_day:
            # No countdown for the day window
            return AdmissionDecision(False, None, "per_day")
        return AdmissionDecision(True)

    def check_admission(self, now: Optional[float] = None) -> AdmissionDecision:
        current = time.time() if now is None else now
        with self._lock:
            return self._decide(current)

    def record_request(self, now: Optional[float] = None) -> None:
        current = time.time() if now is None else now
        with self._lock:
            self._timestamps.append(current)

    def acquire(self, now: Optional[float] = None) -> AdmissionDecision:
        """Check and, when allowed, record in one step so racing callers cannot both slip in."""
        current = time.time() if now is None else now
        with self._lock:
            decision = self._decide(current)
            if decision.allowed:
                self._timestamps.append(current)
        if not decision.allowed:
            log.info("admission denied reason=%s wait=%s", decision.reason, decision.wait_seconds)
        return decision

    def snapshot(self, now: Optional[float] = None) -> Dict[str, Any]:
        current = time.time() if now is None else now
        with self._lock:
            self._purge(current)
            return {
                "per_minute": self._per_minute(current),
                "per_day": len(self._timestamps),
                "max_per_minute": self.max_requests_per_minute,
                "max_per_day": self.max_requests_per_day,
            }

    def reset(self) -> None:
        with self._lock:
            self._timestamps.clear()


# One process-wide instance, built at import
_default_controller = AdmissionController()


def get_default_controller() -> AdmissionController:
    return _default_controller


def _reset() -> None:
    """Used by tests to clear state."""
    get_default_controller().reset()
