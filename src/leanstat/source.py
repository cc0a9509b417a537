"""OS telemetry provider backed by psutil."""

import socket
import time
from enum import Flag, auto
from typing import Protocol

import psutil

from leanstat.models import ResourceLevel

# Chip names / labels that identify a CPU temperature sensor
CPU_SENSOR_HINTS = ("cpu", "core", "coretemp", "k10temp", "package")


class MetricGroup(Flag):
    """
    Groups of metrics a source handle is scoped to.

    The scope only decides what a new handle enumerates up front. Process
    counts need no inventory, so they have no group.
    """

    CPU = auto()
    MEMORY = auto()
    DISK = auto()
    NETWORK = auto()
    SENSORS = auto()

    @classmethod
    def all(cls) -> "MetricGroup":
        return cls.CPU | cls.MEMORY | cls.DISK | cls.NETWORK | cls.SENSORS


def groups_for_level(level: ResourceLevel) -> MetricGroup:
    """Metric groups a freshly created source needs at the given level."""
    groups = MetricGroup.CPU | MetricGroup.MEMORY
    if level >= ResourceLevel.LOW:
        groups |= MetricGroup.DISK
    if level >= ResourceLevel.MEDIUM:
        groups |= MetricGroup.NETWORK | MetricGroup.SENSORS
    return groups


class MetricSource(Protocol):
    """Capability interface over the platform's telemetry provider."""

    def rescan(self) -> None:
        """Re-enumerate disks, network interfaces and sensors."""
        ...

    def cpu_percent(self) -> float: ...

    def memory(self) -> tuple[int, int]:
        """Return (total, used) bytes."""
        ...

    def disk_space(self, limit: int | None = None) -> tuple[int, int]:
        """Return (total, free) bytes summed over the first `limit` disks."""
        ...

    def network_counters(self, limit: int | None = None) -> tuple[int, int]:
        """Return cumulative (received, transmitted) bytes over the first `limit` interfaces."""
        ...

    def load_average(self) -> tuple[float, float, float]: ...

    def cpu_temperature(self) -> float | None: ...

    def process_count(self) -> int: ...

    def hostname(self) -> str | None: ...

    def uptime(self) -> int: ...


class PsutilSource:
    """
    MetricSource implemented with psutil.

    Keeps a small inventory (mount points, interface names, the CPU sensor
    location) that is only rebuilt by `rescan()`. `groups` picks which part
    of it is enumerated at construction; `rescan()` and the value queries
    ignore it, enumerating lazily whatever is still missing.
    """

    def __init__(self, groups: MetricGroup | None = None) -> None:
        self.groups = groups if groups is not None else MetricGroup.all()
        self._mountpoints: list[str] | None = None
        self._interfaces: list[str] | None = None
        self._sensor: tuple[str, int] | None = None
        self._sensor_scanned = False
        # First call returns 0.0, prime it
        psutil.cpu_percent(interval=None)
        if self.groups & MetricGroup.DISK:
            self._mountpoints = self._scan_disks()
        if self.groups & MetricGroup.NETWORK:
            self._interfaces = self._scan_interfaces()
        if self.groups & MetricGroup.SENSORS:
            self._sensor = self._scan_sensor()
            self._sensor_scanned = True

    def rescan(self) -> None:
        """Rebuild the full inventory, whatever the handle's scope."""
        self._mountpoints = self._scan_disks()
        self._interfaces = self._scan_interfaces()
        self._sensor = self._scan_sensor()
        self._sensor_scanned = True

    def _scan_disks(self) -> list[str]:
        mountpoints: list[str] = []
        seen: set[str] = set()
        for part in psutil.disk_partitions(all=False):
            # Same device mounted twice counts once
            if part.device in seen:
                continue
            seen.add(part.device)
            mountpoints.append(part.mountpoint)
        return mountpoints

    def _scan_interfaces(self) -> list[str]:
        return list(psutil.net_io_counters(pernic=True).keys())

    def _scan_sensor(self) -> tuple[str, int] | None:
        if not hasattr(psutil, "sensors_temperatures"):
            return None
        temps = psutil.sensors_temperatures()
        for chip, entries in temps.items():
            for index, entry in enumerate(entries):
                name = f"{chip} {entry.label}".lower()
                if any(hint in name for hint in CPU_SENSOR_HINTS):
                    return chip, index
        return None

    def cpu_percent(self) -> float:
        return float(psutil.cpu_percent(interval=None))

    def memory(self) -> tuple[int, int]:
        mem = psutil.virtual_memory()
        return int(mem.total), int(mem.used)

    def disk_space(self, limit: int | None = None) -> tuple[int, int]:
        if self._mountpoints is None:
            self._mountpoints = self._scan_disks()

        mountpoints = self._mountpoints if limit is None else self._mountpoints[:limit]
        total = 0
        free = 0
        for mountpoint in mountpoints:
            try:
                usage = psutil.disk_usage(mountpoint)
            except (PermissionError, FileNotFoundError, OSError):
                # Unmounted or unreadable since the last rescan
                continue
            total += usage.total
            free += usage.free
        return total, free

    def network_counters(self, limit: int | None = None) -> tuple[int, int]:
        counters = psutil.net_io_counters(pernic=True)
        if self._interfaces is None:
            self._interfaces = list(counters.keys())

        names = self._interfaces if limit is None else self._interfaces[:limit]
        received = 0
        transmitted = 0
        for name in names:
            nic = counters.get(name)
            if nic is None:
                continue  # Interface vanished
            received += nic.bytes_recv
            transmitted += nic.bytes_sent
        return received, transmitted

    def load_average(self) -> tuple[float, float, float]:
        one, five, fifteen = psutil.getloadavg()
        return float(one), float(five), float(fifteen)

    def cpu_temperature(self) -> float | None:
        if not self._sensor_scanned:
            self._sensor = self._scan_sensor()
            self._sensor_scanned = True
        if self._sensor is None:
            return None

        chip, index = self._sensor
        entries = psutil.sensors_temperatures().get(chip) or []
        if index >= len(entries):
            return None
        return float(entries[index].current)

    def process_count(self) -> int:
        return len(psutil.pids())

    def hostname(self) -> str | None:
        return socket.gethostname() or None

    def uptime(self) -> int:
        return max(0, int(time.time() - psutil.boot_time()))
