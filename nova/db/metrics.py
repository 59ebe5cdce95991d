"""Latency metrics and the pool sampler for the SQLite adapter."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from nova.observability.metrics import set_connections_in_use, track_db_operation

logger = logging.getLogger(__name__)

OP_EXEC = "exec"
OP_QUERY = "query"


@dataclass(frozen=True)
class DBMetrics:
    """Point-in-time copy of the adapter metrics."""

    query_count: int = 0
    write_count: int = 0
    avg_query_time: float = 0.0
    max_query_time: float = 0.0
    last_error: BaseException | None = None
    last_error_time: datetime | None = None
    in_use_connections: int = 0


class MetricsRecorder:
    """Counters for exec/query calls, guarded by a single lock.

    Recording is a no-op unless ``enabled``. The lock only brackets the
    arithmetic, never a driver call. One mutex guards both recording and
    snapshots.
    """

    def __init__(self, enabled: bool):
        self.enabled = enabled
        self._lock = threading.Lock()
        self._query_count = 0
        self._write_count = 0
        self._avg = 0.0
        self._max = 0.0
        self._last_error: BaseException | None = None
        self._last_error_time: datetime | None = None
        self._in_use = 0

    def record(self, start: float, err: BaseException | None, op: str) -> None:
        """Record one completed operation.

        Args:
            start: ``time.perf_counter()`` value taken before the call.
            err: The error raised by the call, if any.
            op: ``"exec"`` or ``"query"``.
        """
        if not self.enabled:
            return

        duration = time.perf_counter() - start
        with self._lock:
            self._query_count += 1
            if op == OP_EXEC:
                self._write_count += 1
            n = self._query_count
            self._avg = (self._avg * (n - 1) + duration) / n
            if duration > self._max:
                self._max = duration
            if err is not None:
                self._last_error = err
                self._last_error_time = datetime.now(timezone.utc)

        track_db_operation(op, duration, err is None)

    def set_in_use(self, count: int) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._in_use = count
        set_connections_in_use(count)

    def snapshot(self) -> DBMetrics:
        with self._lock:
            return DBMetrics(
                query_count=self._query_count,
                write_count=self._write_count,
                avg_query_time=self._avg,
                max_query_time=self._max,
                last_error=self._last_error,
                last_error_time=self._last_error_time,
                in_use_connections=self._in_use,
            )


class PoolSampler:
    """Background task publishing the pool's in-use gauge every tick.

    Holds only the stats callable and the recorder, so it keeps nothing
    of the adapter alive once stopped.
    """

    def __init__(
        self,
        read_in_use: Callable[[], int],
        recorder: MetricsRecorder,
        interval: float,
    ):
        self._read_in_use = read_in_use
        self._recorder = recorder
        self._interval = interval
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="nova-db-sampler")

    async def _run(self) -> None:
        logger.debug(f"DB pool sampler started (interval={self._interval}s)")
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                self._recorder.set_in_use(self._read_in_use())
        logger.debug("DB pool sampler stopped")

    async def stop(self) -> None:
        """Signal the task and wait for it to exit."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
