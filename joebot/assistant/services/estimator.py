"""Production timing estimator.

A clone runs on thin-provisioned storage, so its I/O is not representative
of the production server.  While ``EXPLAIN ANALYZE`` runs, ``Profiler``
samples ``pg_stat_activity`` for the backend and accumulates how long the
query spent in each wait event.  ``Timing`` then rescales the read and write
shares by the configured ratios to estimate the production timing.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from psycopg import AsyncConnection

RUNNING_EVENT = "Running"
ESTIMATE_DELTA = 0.05

READ_EVENTS = frozenset({
    "IO.BufFileRead",
    "IO.ControlFileRead",
    "IO.CopyFileRead",
    "IO.DataFilePrefetch",
    "IO.DataFileRead",
    "IO.LockFileAddToDataDirRead",
    "IO.LockFileCreateRead",
    "IO.LockFileReCheckDataDirRead",
    "IO.RelationMapRead",
    "IO.ReorderBufferRead",
    "IO.ReorderLogicalMappingRead",
    "IO.ReplicationSlotRead",
    "IO.SLRURead",
    "IO.SnapbuildRead",
    "IO.TimelineHistoryRead",
    "IO.TwophaseFileRead",
    "IO.WALCopyRead",
    "IO.WALRead",
    "IO.WALSenderTimelineHistoryRead",
})

WRITE_EVENTS = frozenset({
    "IO.BufFileWrite",
    "IO.ControlFileSync",
    "IO.ControlFileSyncUpdate",
    "IO.ControlFileWrite",
    "IO.ControlFileWriteUpdate",
    "IO.CopyFileWrite",
    "IO.DSMFillZeroWrite",
    "IO.DataFileExtend",
    "IO.DataFileFlush",
    "IO.DataFileImmediateSync",
    "IO.DataFileSync",
    "IO.DataFileTruncate",
    "IO.DataFileWrite",
    "IO.LockFileAddToDataDirSync",
    "IO.LockFileAddToDataDirWrite",
    "IO.LockFileCreateSync",
    "IO.LockFileCreateWrite",
    "IO.LogicalRewriteCheckpointSync",
    "IO.LogicalRewriteMappingSync",
    "IO.LogicalRewriteMappingWrite",
    "IO.LogicalRewriteSync",
    "IO.LogicalRewriteTruncate",
    "IO.LogicalRewriteWrite",
    "IO.RelationMapSync",
    "IO.RelationMapWrite",
    "IO.ReorderBufferWrite",
    "IO.ReplicationSlotRestoreSync",
    "IO.ReplicationSlotSync",
    "IO.ReplicationSlotWrite",
    "IO.SLRUFlushSync",
    "IO.SLRUSync",
    "IO.SLRUWrite",
    "IO.SnapbuildSync",
    "IO.SnapbuildWrite",
    "IO.TimelineHistoryFileSync",
    "IO.TimelineHistoryFileWrite",
    "IO.TimelineHistorySync",
    "IO.TimelineHistoryWrite",
    "IO.TwophaseFileSync",
    "IO.TwophaseFileWrite",
    "IO.WALBootstrapSync",
    "IO.WALBootstrapWrite",
    "IO.WALCopySync",
    "IO.WALCopyWrite",
    "IO.WALInitSync",
    "IO.WALInitWrite",
    "IO.WALSync",
    "IO.WALSyncMethodAssign",
    "IO.WALWrite",
})


# -- Timing ------------------------------------------------------------------


class Timing:
    """Splits wait-event percentages into normal, read and write shares."""

    def __init__(self, wait_events: dict[str, float], read_ratio: float, write_ratio: float) -> None:
        self.read_ratio = read_ratio
        self.write_ratio = write_ratio
        self.read_percentage = 0.0
        self.write_percentage = 0.0
        self.normal = 0.0

        for event, percent in wait_events.items():
            if event in READ_EVENTS:
                self.read_percentage += percent
            elif event in WRITE_EVENTS:
                self.write_percentage += percent
            else:
                self.normal += percent

    def calc_min(self, elapsed: float) -> float:
        """Lower bound: reads are assumed to be served from the cache."""
        return (self.normal + self.write_percentage / self.write_ratio) / 100 * elapsed

    def calc_max(self, elapsed: float) -> float:
        return (
            (self.normal + self.read_percentage / self.read_ratio + self.write_percentage / self.write_ratio)
            / 100
            * elapsed
        )

    def est_time(self, elapsed: float) -> str:
        min_timing = self.calc_min(elapsed)
        max_timing = self.calc_max(elapsed)

        est = f"{min_timing:.3f}...{max_timing:.3f}"
        if max_timing - min_timing <= ESTIMATE_DELTA:
            est = f"{max_timing:.3f}"

        return f" (estimated* for prod: {est} s)"


# -- Profiler ----------------------------------------------------------------

_PROFILE_QUERY = """SELECT
    extract(epoch from clock_timestamp() - query_start)::float8 AS query_duration,
    date_trunc('milliseconds', state_change)::text AS state_change_time,
    state,
    wait_event_type || '.' || wait_event AS wait_entry
FROM pg_stat_activity WHERE pid = %s /* joe profile */"""

_WAIT_BACKEND_ACTIVITY = 0.002
_SEPARATOR = "------ ------------ -----------------------------\n"


class _Sample:
    __slots__ = ("duration", "state", "state_change", "wait_entry")

    def __init__(
        self,
        duration: float | None = None,
        state_change: str | None = None,
        state: str | None = None,
        wait_entry: str | None = None,
    ) -> None:
        self.duration = duration or 0.0
        self.state_change = state_change
        self.state = state or ""
        self.wait_entry = wait_entry or ""


class Profiler:
    """Samples the wait events of one backend until it goes away or ``stop`` is called."""

    def __init__(self, conn: AsyncConnection, pid: int, interval: float) -> None:
        self._conn = conn
        self._pid = pid
        self._interval = interval
        self._durations: dict[str, float] = {}
        self._percents: dict[str, float] = {}
        self._samples = 0
        self._reported: dict[str, float] = {}
        self._reported_total = 0.0
        self._out: list[str] = []
        self._stopped = asyncio.Event()

    # -- Results ---------------------------------------------------------------

    def count_samples(self) -> int:
        return self._samples

    def total_time(self) -> float:
        """Seconds accounted for in the last reported activity period."""
        return self._reported_total or sum(self._durations.values())

    def wait_events_ratio(self) -> dict[str, float]:
        return dict(self._reported or self._percents)

    def render_stat(self) -> str:
        return "".join(self._out)

    # -- Sampling --------------------------------------------------------------

    def stop(self) -> None:
        self._stopped.set()

    async def run(self) -> None:
        logger.debug("Profiling backend {} with {}s sampling", self._pid, self._interval)
        prev = _Sample()
        startup = True

        while not self._stopped.is_set():
            curr = await self._sample()
            if curr is None:
                logger.debug("Backend {} is gone, profiling stopped", self._pid)
                break

            if startup:
                startup = False
                if curr.state == "active":
                    self._print_header()
                    self._count(curr, prev)
                else:
                    await asyncio.sleep(_WAIT_BACKEND_ACTIVITY)
                prev = curr
                continue

            if curr.state_change != prev.state_change:
                if curr.state == "active":
                    self._reset()
                    self._print_header()
                if prev.state == "active":
                    self._print_stat()
                    self._reset()
            else:
                self._count(curr, prev)
                await asyncio.sleep(self._interval)

            prev = curr

        self._print_stat()

    async def _sample(self) -> _Sample | None:
        cur = await self._conn.execute(_PROFILE_QUERY, (self._pid,))
        row = await cur.fetchone()
        if row is None:
            return None
        return _Sample(*row)

    def _count(self, curr: _Sample, prev: _Sample) -> None:
        event = curr.wait_entry or RUNNING_EVENT
        self._durations[event] = self._durations.get(event, 0.0) + (curr.duration - prev.duration)

        if curr.duration > 0:
            for name, value in self._durations.items():
                self._percents[name] = 100 * value / curr.duration
        self._samples += 1

    def _reset(self) -> None:
        self._durations = {}
        self._percents = {}

    def _print_header(self) -> None:
        self._out.append("% time      seconds wait_event\n")
        self._out.append(_SEPARATOR)

    def _print_stat(self) -> None:
        if not self._durations:
            return

        self._reported = dict(self._percents)
        self._reported_total = sum(self._durations.values())

        total_pct = total_time = 0.0
        for name, value in sorted(self._durations.items(), key=lambda item: item[1], reverse=True):
            pct = self._percents.get(name, 0.0)
            self._out.append(f"{pct:<6.2f} {value:12.6f} {name}\n")
            total_pct += pct
            total_time += value

        self._out.append(_SEPARATOR)
        self._out.append(f"{total_pct:<6.2f} {total_time:12.6f}\n")
