"""Platform memory-release hints."""

import ctypes
import ctypes.util
import gc
import platform
import sys
from typing import Protocol

from leanstat.utils import get_logger

logger = get_logger("reclaim")


class MemoryTrimmer(Protocol):
    """Capability that asks the allocator to hand free pages back to the OS."""

    def trim(self) -> bool:
        """Release what can be released. Returns True if the platform acted."""
        ...


class NullTrimmer:
    """No-op trimmer for platforms without an allocator trim call."""

    def trim(self) -> bool:
        gc.collect()
        return False


class LibcTrimmer:
    """glibc ``malloc_trim(0)`` via ctypes."""

    def __init__(self, libc: ctypes.CDLL) -> None:
        self._malloc_trim = libc.malloc_trim
        self._malloc_trim.argtypes = [ctypes.c_size_t]
        self._malloc_trim.restype = ctypes.c_int

    def trim(self) -> bool:
        gc.collect()
        return bool(self._malloc_trim(0))


def default_trimmer() -> MemoryTrimmer:
    """Return the best trimmer available on this host."""
    if not sys.platform.startswith("linux") or platform.libc_ver()[0] != "glibc":
        return NullTrimmer()

    try:
        libc = ctypes.CDLL(ctypes.util.find_library("c") or "libc.so.6")
        return LibcTrimmer(libc)
    except (OSError, AttributeError) as e:
        logger.debug("malloc_trim_unavailable", error=str(e))
        return NullTrimmer()
