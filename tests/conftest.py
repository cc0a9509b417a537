"""Shared fixtures: a scriptable MetricSource, a manual clock and a collector builder."""

from collections import Counter

import pytest

from leanstat.collector import Collector, reset_collector
from leanstat.source import MetricGroup

MIB = 1024 * 1024
GIB = 1024 * MIB


class FakeSource:
    """
    Scriptable stand-in for PsutilSource.

    Every query is counted in `calls`; metric names listed in `fail` raise
    OSError instead of answering.
    """

    def __init__(self) -> None:
        self.cpu = 12.5
        self.memory_total = 8 * GIB
        self.memory_used = 100 * MIB
        self.disk = (500 * GIB, 200 * GIB)
        self.network = (1_000, 2_000)
        self.load = (0.5, 0.25, 0.1)
        self.temperature: float | None = 45.0
        self.processes = 123
        self.hostnames: list[str | None] = ["alpha"]
        self.uptime_seconds = 3600
        self.calls: Counter[str] = Counter()
        self.fail: set[str] = set()
        self.disk_limits: list[int | None] = []
        self.network_limits: list[int | None] = []

    def _call(self, name: str) -> None:
        self.calls[name] += 1
        if name in self.fail:
            raise OSError(f"{name} unavailable")

    def rescan(self) -> None:
        self._call("rescan")

    def cpu_percent(self) -> float:
        self._call("cpu")
        return self.cpu

    def memory(self) -> tuple[int, int]:
        self._call("memory")
        return self.memory_total, self.memory_used

    def disk_space(self, limit: int | None = None) -> tuple[int, int]:
        self._call("disk")
        self.disk_limits.append(limit)
        return self.disk

    def network_counters(self, limit: int | None = None) -> tuple[int, int]:
        self._call("network")
        self.network_limits.append(limit)
        return self.network

    def load_average(self) -> tuple[float, float, float]:
        self._call("load")
        return self.load

    def cpu_temperature(self) -> float | None:
        self._call("temperature")
        return self.temperature

    def process_count(self) -> int:
        self._call("processes")
        return self.processes

    def hostname(self) -> str | None:
        self._call("hostname")
        index = min(self.calls["hostname"] - 1, len(self.hostnames) - 1)
        return self.hostnames[index]

    def uptime(self) -> int:
        self._call("uptime")
        return self.uptime_seconds


class FakeSourceFactory:
    """Hands out the same FakeSource and records every (re)creation."""

    def __init__(self, source: FakeSource) -> None:
        self.source = source
        self.created: list[MetricGroup] = []
        self.raises: Exception | None = None

    def __call__(self, groups: MetricGroup) -> FakeSource:
        if self.raises is not None:
            raise self.raises
        self.created.append(groups)
        return self.source


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTrimmer:
    """MemoryTrimmer that counts calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls = 0
        self.raises: Exception | None = None

    def trim(self) -> bool:
        self.calls += 1
        if self.raises is not None:
            raise self.raises
        return True


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def factory(source: FakeSource) -> FakeSourceFactory:
    return FakeSourceFactory(source)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def trimmer() -> RecordingTrimmer:
    return RecordingTrimmer()


@pytest.fixture
def make_collector(factory, clock, trimmer):
    """Build a Collector wired to the fakes (min=50MiB, max=200MiB, interval=5s)."""
    created: list[Collector] = []

    def _make(**kwargs) -> Collector:
        options = {
            "min_bytes": 50 * MIB,
            "max_bytes": 200 * MIB,
            "update_interval": 5.0,
            "source_factory": factory,
            "trimmer": trimmer,
            "clock": clock,
            "sleep": lambda seconds: None,
            "initial_delay": 0.0,
            "reclaim_pause": 0.0,
            "lock_timeout": 0.05,
        }
        options.update(kwargs)
        collector = Collector(**options)
        created.append(collector)
        return collector

    yield _make

    for collector in created:
        collector.stop(timeout=2.0)


@pytest.fixture
def fresh_collector_handle():
    """Make sure the process-wide collector is torn down around a test."""
    reset_collector()
    yield
    reset_collector()
