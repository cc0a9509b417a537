"""Data models for leanstat."""

import json
import time
from collections import deque
from dataclasses import asdict, dataclass
from enum import IntEnum


class ResourceLevel(IntEnum):
    """Sampling-breadth tier, ordered from cheapest to broadest."""

    MINIMAL = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


def clamp_percent(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    return max(0.0, min(100.0, float(value)))


def percent_of(part: int, whole: int) -> float:
    """Return part/whole as a clamped percentage, 0.0 when whole is empty."""
    if whole <= 0:
        return 0.0
    return clamp_percent(part / whole * 100.0)


def within_bounds(used: int, min_bytes: int, max_bytes: int) -> bool:
    """Check whether used memory sits inside the configured budget."""
    return min_bytes <= used <= max_bytes


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable telemetry reading, replaced wholesale each cycle."""

    timestamp: int  # Epoch seconds
    cpu_usage: float  # 0.0 - 100.0
    memory_total: int  # Bytes
    memory_used: int  # Bytes
    memory_usage_percent: float
    disk_total: int
    disk_free: int
    disk_usage_percent: float
    network_received: int  # Cumulative bytes
    network_transmitted: int
    uptime: int  # Seconds
    system_load: tuple[float, float, float]
    cpu_temp: float | None
    processes_count: int
    hostname: str
    memory_within_bounds: bool

    @classmethod
    def default(cls, min_bytes: int = 0, max_bytes: int = 0) -> "Snapshot":
        """Zero snapshot used before the first refresh."""
        return cls(
            timestamp=int(time.time()),
            cpu_usage=0.0,
            memory_total=0,
            memory_used=0,
            memory_usage_percent=0.0,
            disk_total=0,
            disk_free=0,
            disk_usage_percent=0.0,
            network_received=0,
            network_transmitted=0,
            uptime=0,
            system_load=(0.0, 0.0, 0.0),
            cpu_temp=None,
            processes_count=0,
            hostname="",
            memory_within_bounds=within_bounds(0, min_bytes, max_bytes),
        )

    def to_dict(self) -> dict:
        """Wire representation consumed by dashboards."""
        data = asdict(self)
        data["system_load"] = list(self.system_load)
        return data

    def to_json(self) -> str:
        """Serialize the snapshot as a JSON object."""
        return json.dumps(self.to_dict())


class HistoryBuffer:
    """
    Fixed-capacity FIFO of recent samples.

    Pushing onto a full buffer evicts the oldest entry, so the length is
    always min(capacity, total pushes).
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._items: deque = deque(maxlen=capacity)
        self._pushes = 0

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    @property
    def total_pushes(self) -> int:
        return self._pushes

    def push(self, value) -> None:
        self._items.append(value)
        self._pushes += 1

    def values(self) -> list:
        """Return the buffered values, oldest first."""
        return list(self._items)

    def latest(self):
        return self._items[-1] if self._items else None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))
