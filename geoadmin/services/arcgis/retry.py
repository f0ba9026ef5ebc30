"""
@file retry.py
@brief Bounded retry with exponential backoff for outbound feature-service calls

@details
Only gateway/availability statuses are retried (502, 503, 504 and, when
enabled, 429). Every other non-2xx status, ArcGIS error envelopes and parse
problems are left to the caller: retrying them would only repeat the same
answer.

Backoff for attempt k (1-indexed): base * 3^(k-1) + jitter, jitter uniform in
[0, jitter_max). Exhausting the attempts raises RetriesExhausted, which the
caller treats as an ordinary non-retryable failure.

Cancellation is checked before every attempt, while waiting and while a
request is in flight; it raises ImportCancelled immediately and does not
count as an attempt. With a cancellation token the request runs on a daemon
worker thread, so a cancelled call returns at once and the abandoned request
is left to finish or time out on its own.

@author GeoAdmin Project
@date 2026-10-02
@version 1.0
@license AGPL-3.0
"""

import logging
import random
import threading
import time
from typing import Callable, Optional

from geoadmin.services.arcgis.errors import (
    HttpStatusError,
    ImportCancelled,
    RetriesExhausted,
    TransientHttpError,
    parse_error_envelope,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({502, 503, 504})

## @brief Seconds between cancellation checks while a request is in flight
CANCEL_POLL_INTERVAL = 0.05


def backoff_delay(attempt: int, base_seconds: float, jitter_seconds: float,
                  rng: Optional[random.Random] = None) -> float:
    """
    @brief Seconds to wait after failed attempt `attempt` (1-indexed)
    """
    if attempt < 1:
        raise ValueError("attempt is 1-indexed")
    rng = rng or random
    return base_seconds * (3 ** (attempt - 1)) + rng.random() * jitter_seconds


class RetryExecutor:
    """
    @brief Runs one outbound request with transient-failure retries

    @param max_attempts Total attempts, including the first
    @param base_delay Base backoff in seconds
    @param jitter Upper bound (exclusive) of the random jitter in seconds
    @param retry_on_429 Treat 429 Too Many Requests as transient
    @param sleep Sleep function used when no cancellation token is given
    """

    def __init__(
        self,
        max_attempts: int = 4,
        base_delay: float = 0.3,
        jitter: float = 0.15,
        retry_on_429: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.jitter = jitter
        self.transient_statuses = TRANSIENT_STATUSES | ({429} if retry_on_429 else set())
        self._sleep = sleep
        self._rng = rng

    @classmethod
    def from_settings(cls, settings) -> "RetryExecutor":
        return cls(
            max_attempts=settings.import_max_retries,
            base_delay=settings.import_backoff_base_ms / 1000.0,
            jitter=settings.import_backoff_jitter_ms / 1000.0,
            retry_on_429=settings.import_retry_on_429,
        )

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.jitter, self._rng)

    def execute(
        self,
        request_fn: Callable[[], object],
        on_transient_failure: Optional[Callable[[TransientHttpError], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        @brief Call `request_fn` until it succeeds, fails permanently or runs out of attempts

        @param request_fn Zero-argument callable returning a requests-style response
                          (status_code, reason, text)
        @param on_transient_failure Hook invoked for every transient failure, including
                                    the last one; it may raise to abort the loop
        @param cancel_event Cancellation token
        @return Response body of the first 2xx response
        @throws HttpStatusError Non-retryable status
        @throws RetriesExhausted Every attempt hit a transient status
        @throws ImportCancelled Cancellation requested
        """
        last: Optional[TransientHttpError] = None

        for attempt in range(1, self.max_attempts + 1):
            _raise_if_cancelled(cancel_event)

            response = self._call(request_fn, cancel_event)
            status = int(response.status_code)
            body = response.text or ""

            if status in self.transient_statuses:
                last = TransientHttpError(status, response.reason, body)
                logger.warning(f"Transient {last.message} (attempt {attempt}/{self.max_attempts})")
                if on_transient_failure is not None:
                    on_transient_failure(last)
                if attempt < self.max_attempts:
                    self._wait(self.delay_for(attempt), cancel_event)
                continue

            if not 200 <= status < 300:
                raise HttpStatusError(status, response.reason, body, parse_error_envelope(body))

            return body

        raise RetriesExhausted(last, self.max_attempts)

    def _call(self, request_fn: Callable[[], object], cancel_event: Optional[threading.Event]):
        if cancel_event is None:
            return request_fn()

        done = threading.Event()
        outcome = {}

        def run():
            try:
                outcome["response"] = request_fn()
            except Exception as e:
                outcome["error"] = e
            finally:
                done.set()

        threading.Thread(target=run, name="feature-service-request", daemon=True).start()
        while not done.wait(CANCEL_POLL_INTERVAL):
            if cancel_event.is_set():
                raise ImportCancelled("Cancelled during request")

        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _wait(self, seconds: float, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            self._sleep(seconds)
            return
        if cancel_event.wait(seconds):
            raise ImportCancelled("Cancelled during backoff")


def _raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ImportCancelled("Cancelled before request")
