"""Per-cycle decision of which metric groups to query and which to cache-hold."""

from dataclasses import dataclass

from leanstat.models import ResourceLevel

RESCAN_EVERY = 3  # Inventory rescan period, in cycles
BOUNDED_DISKS = 2  # Disks summed below MEDIUM
BOUNDED_INTERFACES = 2  # Interfaces summed below HIGH


@dataclass(slots=True, frozen=True)
class RefreshPlan:
    """What one refresh pass should query. Anything not planned is reused."""

    rescan: bool
    disk: bool
    disk_limit: int | None  # None means every discovered disk
    network: bool
    network_limit: int | None
    temperature: bool
    processes: bool
    hostname: bool


class SampleScheduler:
    """
    Two-layer sampling cadence.

    Layer 1 rescans the disk, interface and sensor inventory every third
    committed pass, starting with the first one. `plan()` only reads the
    rescan counter; the collector calls `advance()` once the pass commits.
    Layer 2 gates each metric's value refresh on the resource level and the
    collector's cycle counter. CPU, memory, load and uptime are always
    queried and are not part of the plan.
    """

    def __init__(self) -> None:
        self._rescan_counter = 0

    @property
    def rescan_counter(self) -> int:
        return self._rescan_counter

    def plan(self, level: ResourceLevel, cycle: int, have_hostname: bool) -> RefreshPlan:
        """Decide the refresh scope for one cycle."""
        rescan = self._rescan_counter == 0

        return RefreshPlan(
            rescan=rescan,
            disk=self.disk_due(level, cycle),
            disk_limit=None if level >= ResourceLevel.MEDIUM else BOUNDED_DISKS,
            network=self.network_due(level, cycle),
            network_limit=None if level >= ResourceLevel.HIGH else BOUNDED_INTERFACES,
            temperature=self.temperature_due(level, cycle),
            processes=rescan,
            hostname=not have_hostname,
        )

    def advance(self) -> None:
        self._rescan_counter = (self._rescan_counter + 1) % RESCAN_EVERY

    @staticmethod
    def disk_due(level: ResourceLevel, cycle: int) -> bool:
        # Never at MINIMAL: the cached value holds until the level rises
        if level >= ResourceLevel.MEDIUM:
            return cycle % 5 == 0
        if level == ResourceLevel.LOW:
            return cycle % 10 == 0
        return False

    @staticmethod
    def network_due(level: ResourceLevel, cycle: int) -> bool:
        if level >= ResourceLevel.HIGH:
            return cycle % 3 == 0
        if level == ResourceLevel.MEDIUM:
            return cycle % 8 == 0
        return False

    @staticmethod
    def temperature_due(level: ResourceLevel, cycle: int) -> bool:
        return level >= ResourceLevel.MEDIUM and cycle % 10 == 0
