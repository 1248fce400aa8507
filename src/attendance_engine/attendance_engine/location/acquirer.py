from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..core.constants import (
    DEFAULT_LOCATION_ATTEMPT_TIMEOUT_SEC,
    DEFAULT_LOCATION_BACKOFF_SEC,
    DEFAULT_LOCATION_MAX_ATTEMPTS,
    DEFAULT_LOCATION_TOTAL_BUDGET_SEC,
)
from ..core.enums import Accuracy
from ..core.exceptions import LocationUnavailable, PermissionDenied
from .platform import LocationPlatform, PositionFix

logger = logging.getLogger(__name__)


class LocationAcquirer:
    """Obtain a trustworthy position fix for a lifecycle transition.

    Policy: up to ``max_attempts`` high-accuracy reads with a growing pause
    between them, then a single low-accuracy read, all within
    ``total_budget`` seconds. Implausible fixes count as failed attempts.

    The permission prompt is shown at most once per acquirer (one acquirer
    lives for one user session). A denial fails the call immediately.
    """

    def __init__(
        self,
        platform: LocationPlatform,
        *,
        max_attempts: int = DEFAULT_LOCATION_MAX_ATTEMPTS,
        attempt_timeout: float = DEFAULT_LOCATION_ATTEMPT_TIMEOUT_SEC,
        backoff: float = DEFAULT_LOCATION_BACKOFF_SEC,
        total_budget: float = DEFAULT_LOCATION_TOTAL_BUDGET_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._platform = platform
        self._max_attempts = int(max_attempts)
        self._attempt_timeout = float(attempt_timeout)
        self._backoff = float(backoff)
        self._total_budget = float(total_budget)
        self._sleep = sleep
        self._prompted = False

    async def acquire(self) -> PositionFix:
        await self._ensure_permission()
        try:
            return await asyncio.wait_for(self._acquire_with_retries(), timeout=self._total_budget)
        except asyncio.TimeoutError as e:
            logger.warning("Location budget of %.1fs exhausted", self._total_budget)
            raise LocationUnavailable() from e

    async def _ensure_permission(self) -> None:
        if await self._platform.has_permission():
            return
        if self._prompted:
            raise PermissionDenied()

        self._prompted = True
        if not await self._platform.request_permission():
            logger.warning("Location permission denied by user")
            raise PermissionDenied()

    async def _acquire_with_retries(self) -> PositionFix:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._read(Accuracy.HIGHEST)
            except PermissionDenied:
                raise
            except Exception as e:
                logger.warning("Location attempt %d/%d failed: %s", attempt, self._max_attempts, e)

            if attempt < self._max_attempts:
                await self._sleep(self._backoff * attempt)

        try:
            fix = await self._read(Accuracy.LOWEST)
        except PermissionDenied:
            raise
        except Exception as e:
            logger.warning("Low-accuracy fallback failed: %s", e)
            raise LocationUnavailable() from e

        logger.info("Using low-accuracy fallback fix (accuracy=%s m)", fix.accuracy_m)
        return fix

    async def _read(self, accuracy: Accuracy) -> PositionFix:
        fix = await asyncio.wait_for(
            self._platform.get_position(accuracy=accuracy, timeout=self._attempt_timeout),
            timeout=self._attempt_timeout,
        )
        if not fix.is_plausible():
            raise LocationUnavailable(f"Invalid GPS coordinates received: {fix.latitude}, {fix.longitude}")
        return fix
