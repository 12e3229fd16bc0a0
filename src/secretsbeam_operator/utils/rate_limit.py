"""Rate limiting utilities for API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from .. import metrics
from ..constants import RETRY_MAX_DELAY

_F = TypeVar("_F", bound=Callable[..., Any])

# Rate limit configuration
_K8S_RATE_LIMIT_PER_SECOND = float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0"))
_BACKEND_RATE_LIMIT_PER_SECOND = float(os.getenv("BACKEND_RATE_LIMIT_PER_SECOND", "10.0"))
_BACKEND_RATE_LIMIT_BURST = int(os.getenv("BACKEND_RATE_LIMIT_BURST", "100"))


class TokenBucket:
    """Thread-safe token bucket shared by every reconciliation.

    Tokens refill continuously at ``rate`` per second up to ``capacity``.
    ``acquire`` blocks until a token is available.
    """

    def __init__(self, rate: float, capacity: int, api_type: str = "backend") -> None:
        if rate <= 0 or capacity < 1:
            raise ValueError("rate must be positive and capacity at least 1")
        self.rate = rate
        self.capacity = capacity
        self.api_type = api_type
        self._tokens = float(capacity)
        self._updated = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    def try_acquire(self) -> float:
        """Take a token if one is available.

        Returns:
            0.0 on success, otherwise the seconds to wait before retrying
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0
            return (1 - self._tokens) / self.rate

    def acquire(self) -> None:
        """Block until a token has been taken."""
        waited = False
        while True:
            wait = self.try_acquire()
            if wait == 0.0:
                return
            if not waited:
                metrics.rate_limit_hits_total.labels(api_type=self.api_type).inc()
                waited = True
            time.sleep(wait)


backend_bucket = TokenBucket(_BACKEND_RATE_LIMIT_PER_SECOND, _BACKEND_RATE_LIMIT_BURST)

_k8s_bucket = TokenBucket(_K8S_RATE_LIMIT_PER_SECOND, max(1, int(_K8S_RATE_LIMIT_PER_SECOND)), api_type="k8s")


def rate_limit_k8s(func: _F) -> _F:
    """Decorator to rate limit Kubernetes API calls."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _k8s_bucket.acquire()
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def retry_delay(retry: int, base: float, cap: float = RETRY_MAX_DELAY) -> float:
    """Exponential per-resource backoff: base, 2*base, 4*base, ... up to cap.

    Args:
        retry: Number of previous failed attempts for this resource
        base: Delay after the first failure
        cap: Maximum delay
    """
    return min(base * (2 ** max(retry, 0)), cap)
