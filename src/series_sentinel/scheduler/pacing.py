"""Per-source pacing between consecutive series in a batch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping

from series_sentinel.core.config import DEFAULT_PACING_DELAYS, SchedulerConfig

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class PacingPolicy:
    """Delay table keyed by source type.

    Configured delays override the built-in defaults; types in neither
    table get ``default_delay``. The sleep function is injectable so
    tests can record pauses instead of waiting.
    """

    def __init__(
        self,
        delays: Mapping[str, float] | None = None,
        default_delay: float = 0.5,
        sleep: SleepFn | None = None,
    ) -> None:
        self._delays = {str(k): float(v) for k, v in DEFAULT_PACING_DELAYS.items()}
        self._delays.update({str(k): float(v) for k, v in (delays or {}).items()})
        self._default = default_delay
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(cls, config: SchedulerConfig, sleep: SleepFn | None = None) -> PacingPolicy:
        return cls(config.pacing_delays, config.default_delay, sleep=sleep)

    def delay_for(self, source_type: str) -> float:
        return self._delays.get(str(source_type), self._default)

    async def pause(self, source_type: str) -> None:
        delay = self.delay_for(source_type)
        if delay > 0:
            logger.debug("Pacing %.2fs after %s", delay, source_type)
            await self._sleep(delay)
