"""Wait-event profiling of a running statement, used by ``explain`` and ``exec``."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from joebot.assistant.commands import querier
from joebot.assistant.commands.base import TIMING_ESTIMATOR_DOC_LINK
from joebot.assistant.services.estimator import Profiler, Timing

if TYPE_CHECKING:
    from joebot.assistant.config import EstimatorConfig

logger = logging.getLogger(__name__)

ESTIMATION_DESCRIPTION = (
    f"\n⠀* Estimated timing for production (experimental). <{TIMING_ESTIMATOR_DOC_LINK}|How it works>"
)


@dataclass
class ProfileResult:
    is_enough_stat: bool = False
    rendered_stat: str = ""
    total_time: float = 0.0
    est_time: str = ""


class Profiling:
    """Holds the profiler of one statement and turns its samples into a result."""

    def __init__(self, cfg: EstimatorConfig | None) -> None:
        self._cfg = cfg
        self._profiler: Profiler | None = None

    def result(self) -> ProfileResult:
        profiler, cfg = self._profiler, self._cfg
        if profiler is None or cfg is None or profiler.count_samples() < cfg.sample_threshold:
            return ProfileResult()

        total = profiler.total_time()
        timing = Timing(profiler.wait_events_ratio(), cfg.read_ratio, cfg.write_ratio)
        return ProfileResult(
            is_enough_stat=True,
            rendered_stat=profiler.render_stat(),
            total_time=total,
            est_time=timing.est_time(total),
        )

    @asynccontextmanager
    async def watch(self, pool: Any, pid: int) -> AsyncIterator[None]:
        """Sample backend ``pid`` on a second pooled connection while the body runs."""
        if self._cfg is None:
            yield
            return

        async with querier.connection(pool) as conn:
            self._profiler = Profiler(conn, pid, self._cfg.profiling_interval / 1000)
            task = asyncio.create_task(self._profiler.run())
            try:
                yield
            finally:
                self._profiler.stop()
                try:
                    await task
                except Exception:
                    logger.exception("Profiling of backend %d failed", pid)
