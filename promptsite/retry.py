from __future__ import annotations

import logging
import os
import time
from typing import Callable, Optional, TypeVar

from promptsite.errors import UpstreamRateLimited

log = logging.getLogger(__name__)

T = TypeVar("T")

try:
    MAX_RETRIES = int(os.getenv("UPSTREAM_MAX_RETRIES", "2") or 2)
except ValueError:
    MAX_RETRIES = 2
try:
    RETRY_BASE_DELAY = float(os.getenv("UPSTREAM_RETRY_BASE_DELAY", "2.0") or 2.0)
except ValueError:
    RETRY_BASE_DELAY = 2.0
try:
    RETRY_MAX_DELAY = float(os.getenv("UPSTREAM_RETRY_MAX_DELAY", "5.0") or 5.0)
except ValueError:
    RETRY_MAX_DELAY = 5.0

_RATE_LIMIT_MARKERS = ("rate limit", "rate-limit", "ratelimit", "quota", "resource_exhausted", "too many requests")


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, UpstreamRateLimited):
        return True
    for attr in ("status", "status_code", "code"):
        if getattr(exc, attr, None) == 429:
            return True
    message = str(exc).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def _backoff_delay(exc: BaseException, attempt_no: int, base_delay: float, max_delay: float) -> float:
    hinted = getattr(exc, "retry_after", None)
    if isinstance(hinted, (int, float)) and hinted > 0:
        return min(float(hinted), max_delay)
    return min(base_delay * attempt_no, max_delay)


def call_with_retry(
    attempt: Callable[[], T],
    *,
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``attempt`` and retry it only when the upstream says we are rate limited.

    Admission is settled by the caller before this runs; retries here do not
    count as new requests.
    """
    retries = MAX_RETRIES if max_retries is None else max(0, int(max_retries))
    base = RETRY_BASE_DELAY if base_delay is None else float(base_delay)
    cap = RETRY_MAX_DELAY if max_delay is None else float(max_delay)

    attempt_no = 0
    while True:
        attempt_no += 1
        try:
            return attempt()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            if attempt_no > retries:
                log.warning("upstream still rate limited after %d attempts; giving up", attempt_no)
                raise
            delay = _backoff_delay(exc, attempt_no, base, cap)
            log.warning("upstream rate limited (attempt %d); retrying in %.2fs", attempt_no, delay)
            sleep(delay)
