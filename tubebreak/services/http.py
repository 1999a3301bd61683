"""Retry and throttling primitives for outbound API calls."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import requests
import structlog

from ..logging import get_logger


class FetchError(RuntimeError):
    """A single request attempt failed (transport error or error status)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class FetchExhaustedError(FetchError):
    """Raised once every allowed attempt has failed."""

    def __init__(self, attempts: int, last_error: FetchError) -> None:
        super().__init__(
            f"Request failed after {attempts} attempt(s): {last_error}",
            status=last_error.status,
        )
        self.attempts = attempts
        self.last_error = last_error


def check_response(response: requests.Response) -> requests.Response:
    """Turn an HTTP error status into :class:`FetchError`."""

    if response.status_code >= 400:
        reason = getattr(response, "reason", "") or ""
        raise FetchError(f"HTTP {response.status_code} {reason}".strip(), status=response.status_code)
    return response


class BackoffFetcher:
    """Run a request with bounded retries and exponential delays.

    The delay before retry ``n`` (0-based) is ``base_delay * 2 ** n``; there
    is no jitter. ``sleep`` is injectable so tests never wait in real time.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self._logger = logger or get_logger("tubebreak.http")

    def fetch(
        self,
        request: Callable[[], requests.Response],
        max_attempts: Optional[int] = None,
    ) -> requests.Response:
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        last_error: Optional[FetchError] = None
        for attempt in range(attempts):
            try:
                return check_response(request())
            except FetchError as exc:
                last_error = exc
            except requests.RequestException as exc:
                last_error = FetchError(f"{type(exc).__name__}: {exc}")

            if attempt + 1 < attempts:
                delay = self.base_delay * (2 ** attempt)
                self._logger.warning(
                    "http.retry",
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    delay=delay,
                    status=last_error.status,
                    error=str(last_error),
                )
                self._sleep(delay)

        assert last_error is not None
        self._logger.error("http.exhausted", attempts=attempts, error=str(last_error))
        raise FetchExhaustedError(attempts, last_error) from last_error


class RateLimiter:
    """Allow at most one outbound call per ``min_interval`` seconds.

    One instance is shared by every caller. Waiting callers are serialized
    by a lock but are not guaranteed FIFO order.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.last_call: Optional[float] = None
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

    def throttle(self) -> float:
        """Block until the caller may proceed; return the proceed timestamp."""

        with self._lock:
            if self.last_call is not None:
                wait = max(0.0, self.min_interval - (self._clock() - self.last_call))
                if wait > 0:
                    self._sleep(wait)
            self.last_call = self._clock()
            return self.last_call
