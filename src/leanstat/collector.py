"""Memory-budget-aware telemetry collector for leanstat."""

import threading
import time
from collections.abc import Callable
from typing import TypeVar

from leanstat import governor
from leanstat.config import settings
from leanstat.models import (
    HistoryBuffer,
    ResourceLevel,
    Snapshot,
    clamp_percent,
    percent_of,
    within_bounds,
)
from leanstat.reclaim import MemoryTrimmer, default_trimmer
from leanstat.scheduler import SampleScheduler
from leanstat.source import MetricGroup, MetricSource, PsutilSource, groups_for_level
from leanstat.utils import format_bytes, get_logger

logger = get_logger("collector")

T = TypeVar("T")

RETRY_AFTER_FAILURE = 1.0  # Seconds to wait after a skipped cycle


class Collector:
    """
    Samples host telemetry in a background thread within a memory budget.

    All mutable state (source handle, current snapshot, history, counters,
    resource level) is guarded by a single lock. The worker holds it for a
    whole refresh pass; query callers hold it while they copy the snapshot
    out. A refresh pass (snapshot, histories, cycle and rescan counters) is
    committed only once every query has finished, so a failure part-way
    leaves the previous snapshot exposed. Reclamation is the exception: a
    trim and a recreated source stand even if the rest of the pass fails.
    """

    def __init__(
        self,
        min_bytes: int | None = None,
        max_bytes: int | None = None,
        update_interval: float | None = None,
        *,
        history_capacity: int | None = None,
        source_factory: Callable[[MetricGroup], MetricSource] = PsutilSource,
        trimmer: MemoryTrimmer | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        initial_delay: float | None = None,
        reclaim_pause: float | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        """
        Initialize the Collector.

        Args:
            min_bytes: Lower bound of the memory budget. Defaults to settings.
            max_bytes: Upper bound of the memory budget. Defaults to settings.
            update_interval: Minimum seconds between two refresh passes.
            history_capacity: Points kept in each history buffer.
            source_factory: Builds a MetricSource scoped to the given groups.
            trimmer: Memory-release hint. Defaults to the platform's best.
            clock: Monotonic clock used for interval bookkeeping.
            sleep: Blocking sleep used for the post-reclamation pause.
            initial_delay: Delay before the worker's first cycle.
            reclaim_pause: Pause after a reclamation pass.
            lock_timeout: How long the worker waits for the state lock.
        """
        self._min_bytes = settings.min_bytes if min_bytes is None else min_bytes
        self._max_bytes = settings.max_bytes if max_bytes is None else max_bytes
        self._update_interval = (
            settings.update_interval if update_interval is None else update_interval
        )
        if self._min_bytes < 0 or self._max_bytes < 0:
            raise ValueError("memory bounds must be non-negative")
        if self._min_bytes > self._max_bytes:
            raise ValueError("min_bytes must not exceed max_bytes")
        if self._update_interval <= 0:
            raise ValueError("update_interval must be positive")

        capacity = settings.history_capacity if history_capacity is None else history_capacity
        self._initial_delay = settings.initial_delay if initial_delay is None else initial_delay
        self._reclaim_pause = settings.reclaim_pause if reclaim_pause is None else reclaim_pause
        self._lock_timeout = settings.lock_timeout if lock_timeout is None else lock_timeout

        self._clock = clock
        self._sleep = sleep
        self._source_factory = source_factory
        self._trimmer = trimmer if trimmer is not None else default_trimmer()

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        self._active = True
        self._resource_level = ResourceLevel.LOW
        self._source = source_factory(groups_for_level(self._resource_level))
        self._scheduler = SampleScheduler()
        self._snapshot = Snapshot.default(self._min_bytes, self._max_bytes)
        self._cpu_history: HistoryBuffer = HistoryBuffer(capacity)
        self._memory_history: HistoryBuffer = HistoryBuffer(capacity)
        self._cycle_count = 0
        self._last_update: float | None = None
        self._last_cleanup = clock()
        self._next_sleep = self._update_interval
        self._reclaim_count = 0
        self._failed_cycles = 0

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def min_bytes(self) -> int:
        return self._min_bytes

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def update_interval(self) -> float:
        return self._update_interval

    @property
    def resource_level(self) -> ResourceLevel:
        return self._resource_level

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def next_sleep(self) -> float:
        """Seconds the worker will wait before its next cycle."""
        return self._next_sleep

    @property
    def reclaim_count(self) -> int:
        return self._reclaim_count

    @property
    def failed_cycles(self) -> int:
        return self._failed_cycles

    @property
    def is_running(self) -> bool:
        """Check if the worker thread is running."""
        return self._thread is not None and self._thread.is_alive()

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the background worker."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="LeanstatCollector",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Signal the worker to stop and join it.

        Args:
            timeout: How long to wait for the thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def pause(self) -> None:
        """Stop querying the OS; callers keep getting the cached snapshot."""
        with self._lock:
            self._active = False

    def resume(self) -> None:
        with self._lock:
            self._active = True

    def _run(self) -> None:
        """Main loop running in the background thread."""
        logger.info(
            "collector_started",
            min_bytes=self._min_bytes,
            max_bytes=self._max_bytes,
            update_interval=self._update_interval,
        )
        wait = self._initial_delay
        while not self._stop_event.wait(timeout=wait):
            wait = self.run_cycle()
        logger.info("collector_stopped", cycles=self._cycle_count)

    def run_cycle(self) -> float:
        """
        Run one worker iteration and return the seconds to wait before the next.

        A lock that cannot be acquired, or a refresh pass that raises, skips
        the cycle and shortens the next wait to RETRY_AFTER_FAILURE.
        """
        if not self._lock.acquire(timeout=self._lock_timeout):
            logger.warning("lock_unavailable", timeout=self._lock_timeout)
            return RETRY_AFTER_FAILURE

        try:
            if not self._refresh_locked():
                return self._next_sleep
            return self._govern_locked()
        except Exception:
            self._failed_cycles += 1
            logger.exception("refresh_failed", retry_in=RETRY_AFTER_FAILURE)
            return RETRY_AFTER_FAILURE
        finally:
            self._lock.release()

    # ── Query interface ─────────────────────────────────────────────────────

    def snapshot(self) -> Snapshot:
        """
        Return the current snapshot, refreshing first if the interval elapsed.

        Calls made faster than `update_interval` get the identical cached
        snapshot. A refresh run from here goes through the same cadence step
        as the worker's. A failing refresh is logged and the last good
        snapshot is returned.
        """
        with self._lock:
            try:
                if self._refresh_locked():
                    self._govern_locked()
            except Exception:
                self._failed_cycles += 1
                logger.exception("refresh_failed", caller="query")
            return self._snapshot

    def memory_report(self) -> str:
        """Human-readable memory summary built from the cached snapshot."""
        with self._lock:
            snap = self._snapshot
            level = self._resource_level
            min_bytes = self._min_bytes
            max_bytes = self._max_bytes

        return "\n".join(
            [
                f"Memory used: {format_bytes(snap.memory_used)} of "
                f"{format_bytes(snap.memory_total)} ({snap.memory_usage_percent:.1f}%)",
                f"Resource level: {level.name} ({int(level)})",
                f"Target range: {format_bytes(min_bytes)} - {format_bytes(max_bytes)}",
                f"Within bounds: {'yes' if snap.memory_within_bounds else 'no'}",
            ]
        )

    def cpu_history(self) -> list[float]:
        """CPU usage history, oldest first."""
        with self._lock:
            return self._cpu_history.values()

    def memory_history(self) -> list[int]:
        """Memory-used history, oldest first."""
        with self._lock:
            return self._memory_history.values()

    # ── Refresh pass (lock held) ────────────────────────────────────────────

    def _query(self, metric: str, func: Callable[..., T], fallback: T, *args) -> T:
        """Run one source query, falling back to the cached value on failure."""
        try:
            return func(*args)
        except Exception as e:
            logger.warning("metric_query_failed", metric=metric, error=str(e))
            return fallback

    def _refresh_locked(self) -> bool:
        """Refresh the snapshot if the update interval elapsed. Returns True if it did."""
        if not self._active:
            return False

        now = self._clock()
        if self._last_update is not None and now - self._last_update < self._update_interval:
            return False

        prev = self._snapshot
        source = self._source

        cpu_usage = self._query("cpu", source.cpu_percent, prev.cpu_usage)
        memory_total, memory_used = self._query(
            "memory", source.memory, (prev.memory_total, prev.memory_used)
        )

        level = governor.breadth_level(memory_used, self._min_bytes, self._max_bytes)
        if level == ResourceLevel.MINIMAL:
            logger.warning("memory_pressure_severe", memory_used=memory_used, level=level.name)
        elif level == ResourceLevel.LOW:
            logger.warning("memory_pressure_high", memory_used=memory_used, level=level.name)

        plan = self._scheduler.plan(level, self._cycle_count, have_hostname=bool(prev.hostname))

        if governor.should_reclaim(now, self._last_cleanup, memory_used, self._max_bytes):
            self._reclaim_locked(now, memory_used, level)
            source = self._source

        if plan.rescan:
            self._query("inventory", source.rescan, None)

        if plan.disk:
            disk_total, disk_free = self._query(
                "disk", source.disk_space, (prev.disk_total, prev.disk_free), plan.disk_limit
            )
            disk_usage_percent = percent_of(disk_total - disk_free, disk_total)
        else:
            disk_total, disk_free = prev.disk_total, prev.disk_free
            disk_usage_percent = prev.disk_usage_percent

        if plan.network:
            network_received, network_transmitted = self._query(
                "network",
                source.network_counters,
                (prev.network_received, prev.network_transmitted),
                plan.network_limit,
            )
        else:
            network_received, network_transmitted = prev.network_received, prev.network_transmitted

        uptime = self._query("uptime", source.uptime, prev.uptime)
        system_load = self._query("load", source.load_average, prev.system_load)

        if plan.temperature:
            cpu_temp = self._query("temperature", source.cpu_temperature, prev.cpu_temp)
        else:
            cpu_temp = prev.cpu_temp

        if plan.processes:
            processes_count = self._query("processes", source.process_count, prev.processes_count)
        else:
            processes_count = prev.processes_count

        if plan.hostname:
            hostname = self._query("hostname", source.hostname, "")
            if hostname is None:
                hostname = "Unknown"
        else:
            hostname = prev.hostname

        snapshot = Snapshot(
            timestamp=int(time.time()),
            cpu_usage=clamp_percent(cpu_usage),
            memory_total=memory_total,
            memory_used=memory_used,
            memory_usage_percent=percent_of(memory_used, memory_total),
            disk_total=disk_total,
            disk_free=disk_free,
            disk_usage_percent=clamp_percent(disk_usage_percent),
            network_received=network_received,
            network_transmitted=network_transmitted,
            uptime=uptime,
            system_load=tuple(system_load),
            cpu_temp=cpu_temp,
            processes_count=processes_count,
            hostname=hostname,
            memory_within_bounds=within_bounds(memory_used, self._min_bytes, self._max_bytes),
        )

        # Commit
        self._snapshot = snapshot
        self._resource_level = level
        self._cpu_history.push(snapshot.cpu_usage)
        self._memory_history.push(snapshot.memory_used)
        self._last_update = now
        self._cycle_count += 1
        self._scheduler.advance()

        if snapshot.memory_within_bounds and not prev.memory_within_bounds:
            logger.info("memory_back_in_bounds", memory_used=memory_used)
        return True

    def _reclaim_locked(self, now: float, memory_used: int, level: ResourceLevel) -> None:
        """Release memory toward the OS and recreate the source handle."""
        self._last_cleanup = now
        self._trim()

        try:
            self._source = self._source_factory(groups_for_level(level))
        except Exception as e:
            logger.warning("reclaim_failed", stage="source", error=str(e))

        if self._reclaim_pause > 0:
            self._sleep(self._reclaim_pause)
        self._reclaim_count += 1
        logger.info("memory_reclaimed", memory_used=memory_used, level=level.name)

    def _trim(self) -> None:
        try:
            self._trimmer.trim()
        except Exception as e:
            logger.warning("reclaim_failed", stage="trim", error=str(e))

    def _govern_locked(self) -> float:
        """Apply the loop-cadence policy to the fresh snapshot."""
        used = self._snapshot.memory_used
        decision = governor.cadence(used, self._min_bytes, self._max_bytes)

        if decision.level == ResourceLevel.MINIMAL:
            logger.warning(
                "memory_pressure_severe",
                memory_used=used,
                target_min=self._min_bytes,
                target_max=self._max_bytes,
            )
        elif decision.trim_hint:
            logger.warning("memory_pressure_high", memory_used=used, max_bytes=self._max_bytes)
            self._trim()

        self._resource_level = decision.level
        self._next_sleep = decision.sleep
        return decision.sleep


# ── Process-wide handle ─────────────────────────────────────────────────────

_collector: Collector | None = None
_collector_lock = threading.Lock()


def init_collector(
    min_bytes: int | None = None,
    max_bytes: int | None = None,
    update_interval: float | None = None,
    **kwargs,
) -> Collector:
    """
    Create and start the process-wide collector.

    The worker is spawned exactly once; later calls return the running
    collector and ignore their arguments.
    """
    global _collector
    with _collector_lock:
        if _collector is not None:
            logger.info(
                "collector_already_initialized",
                ignored_min_bytes=min_bytes,
                ignored_max_bytes=max_bytes,
                ignored_update_interval=update_interval,
            )
            return _collector

        collector = Collector(min_bytes, max_bytes, update_interval, **kwargs)
        collector.start()
        _collector = collector
        return collector


def _resolve(collector: Collector | None) -> Collector:
    handle = collector if collector is not None else _collector
    if handle is None:
        raise RuntimeError("collector is not initialized; call init_collector() first")
    return handle


def get_snapshot(collector: Collector | None = None) -> Snapshot:
    """Return the latest snapshot of the given (or process-wide) collector."""
    return _resolve(collector).snapshot()


def get_memory_report(collector: Collector | None = None) -> str:
    """Return the memory report of the given (or process-wide) collector."""
    return _resolve(collector).memory_report()


def reset_collector(timeout: float | None = 5.0) -> None:
    """Stop and forget the process-wide collector."""
    global _collector
    with _collector_lock:
        if _collector is not None:
            _collector.stop(timeout=timeout)
            _collector = None
