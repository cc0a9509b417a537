"""
Resource governor: maps a memory measurement onto a sampling tier.

Every function here is pure. Levels are recomputed from the latest
measurement on each call; there is no hysteresis beyond the bands.

Sampling-breadth bands (used mid-refresh to scope the metric queries):

    used > max          -> MINIMAL
    used > 0.8 * max    -> LOW
    otherwise           -> MEDIUM

Loop-cadence bands (used after a refresh to pick the next sleep):

    used > max                  -> MINIMAL, 20s
    used > 0.9 * max            -> LOW,     10s
    used < min                  -> MEDIUM,   3s
    used <= min + (max - min)/2 -> MEDIUM,   5s
    otherwise                   -> LOW,      8s
"""

from dataclasses import dataclass

from leanstat.models import ResourceLevel

CLEANUP_INTERVAL_NORMAL = 30.0
CLEANUP_INTERVAL_PRESSURE = 10.0


@dataclass(slots=True, frozen=True)
class Cadence:
    """Outcome of the loop-cadence policy."""

    level: ResourceLevel
    sleep: float  # Seconds until the next cycle
    trim_hint: bool = False  # Release memory proactively


def breadth_level(used: int, min_bytes: int, max_bytes: int) -> ResourceLevel:
    """Pick the sampling-breadth level for the current refresh."""
    if used > max_bytes:
        return ResourceLevel.MINIMAL
    if used > max_bytes * 0.8:
        return ResourceLevel.LOW
    # Below min and inside the band both sample at medium breadth
    return ResourceLevel.MEDIUM


def cadence(used: int, min_bytes: int, max_bytes: int) -> Cadence:
    """Pick the level and sleep duration for the next loop iteration."""
    if used > max_bytes:
        return Cadence(ResourceLevel.MINIMAL, 20.0)
    if used > max_bytes * 0.9:
        return Cadence(ResourceLevel.LOW, 10.0, trim_hint=True)
    if used < min_bytes:
        return Cadence(ResourceLevel.MEDIUM, 3.0)
    if used <= min_bytes + (max_bytes - min_bytes) / 2:
        return Cadence(ResourceLevel.MEDIUM, 5.0)
    return Cadence(ResourceLevel.LOW, 8.0)


def cleanup_interval(used: int, max_bytes: int) -> float:
    """Seconds between two reclamation passes."""
    if used > max_bytes:
        return CLEANUP_INTERVAL_PRESSURE
    return CLEANUP_INTERVAL_NORMAL


def should_reclaim(now: float, last_cleanup: float, used: int, max_bytes: int) -> bool:
    """Decide whether a reclamation pass is due."""
    if used > max_bytes:
        return True
    return now - last_cleanup > cleanup_interval(used, max_bytes)
