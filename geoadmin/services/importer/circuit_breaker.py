"""
@file circuit_breaker.py
@brief Per-country circuit breaker for the boundary import

@details
Deep levels (many small, heavy polygons) are where a struggling upstream
burns most time, so the breaker only trips at or beyond a configured level.
Shallow levels may fail any number of times without opening it.

State machine:
- Closed: failures are counted per level; work continues
- Open:   terminal for this country's run; every check returns BreakerOpen

The failure streak belongs to the level currently being evaluated. It resets
when the level changes and on every success at that level.

One instance is created per country per import run and handed explicitly to
each step of that country, so countries never share breaker state.

@author GeoAdmin Project
@date 2026-10-03
@version 1.0
@license AGPL-3.0
"""

import logging
from typing import Optional

from geoadmin.services.importer.errors import BreakerOpen

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    """Carries a BreakerOpen signal out of a retry loop."""

    def __init__(self, signal: BreakerOpen):
        super().__init__(signal.message)
        self.signal = signal


class CountryCircuitBreaker:
    """
    @brief Failure-streak tracker that can veto further work for one country

    @param iso3 Country the breaker guards
    @param level_threshold Minimum level at which the breaker may open
    @param failure_threshold Consecutive failures (per level) that open it
    """

    def __init__(self, iso3: str, level_threshold: int = 4, failure_threshold: int = 3):
        self.iso3 = iso3
        self.level_threshold = level_threshold
        self.failure_threshold = failure_threshold
        self.is_open = False
        self.opened_at_level: Optional[int] = None
        self._current_level = -1
        self._failure_streak = 0
        self._last_signal: Optional[BreakerOpen] = None

    @property
    def failure_streak(self) -> int:
        return self._failure_streak

    def enter_level(self, level: int) -> None:
        """Reset the streak if `level` differs from the level being tracked."""
        if self._current_level != level:
            self._current_level = level
            self._failure_streak = 0

    def record_success(self, level: int) -> None:
        self.enter_level(level)
        self._failure_streak = 0

    def record_failure(self, level: int) -> None:
        self.enter_level(level)
        self._failure_streak += 1

    def check(self, level: int, reason: str, payload: str = "") -> Optional[BreakerOpen]:
        """
        @brief Evaluate the breaker after a failure

        @return BreakerOpen if the breaker is (or just became) open, else None
        """
        if self.is_open:
            return BreakerOpen(self.iso3, level, self._last_signal.message, payload or self._last_signal.payload)

        if level < self.level_threshold:
            return None

        if self._failure_streak >= self.failure_threshold:
            self.is_open = True
            self.opened_at_level = level
            self._last_signal = BreakerOpen(
                iso3=self.iso3,
                level=level,
                message=f"Circuit breaker OPEN after {self._failure_streak} consecutive failures. Last: {reason}",
                payload=payload,
            )
            logger.warning(f"[{self.iso3}] {self._last_signal.message}")
            return self._last_signal

        return None

    def fail(self, level: int, reason: str, payload: str = "") -> Optional[BreakerOpen]:
        """Record a failure and evaluate the breaker in one step."""
        self.record_failure(level)
        return self.check(level, reason, payload)
