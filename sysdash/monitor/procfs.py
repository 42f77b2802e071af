"""
Snapshot Reader for sysdash

Point-in-time parsers for the kernel pseudo-files that back every report
section: /proc/stat, /proc/loadavg, /proc/diskstats, /proc/net/dev and
/proc/meminfo.

Important Notes:
    - Every reader performs exactly one read of its pseudo-file
    - A missing or malformed file raises MissingSourceError; callers turn
      that into an "unavailable" section instead of aborting the report
    - proc_root is injectable so tests can point readers at a fake tree

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from sysdash.errors import MissingSourceError

logger = logging.getLogger(__name__)

PROC_ROOT = Path("/proc")

T = TypeVar("T")


@dataclass(frozen=True)
class CpuTicks:
    """Aggregate CPU time-in-state counters from the first line of /proc/stat."""

    user: int
    nice: int
    system: int
    idle: int
    iowait: int
    irq: int
    softirq: int

    @property
    def total(self) -> int:
        return (
            self.user + self.nice + self.system + self.idle + self.iowait + self.irq + self.softirq
        )


@dataclass(frozen=True)
class LoadAvg:
    """Load averages plus the running/total scheduling entity counts."""

    load1: float
    load5: float
    load15: float
    running: int
    total: int


@dataclass(frozen=True)
class DiskCounters:
    """Cumulative block device counters. Sectors are 512 bytes."""

    reads: int
    read_sectors: int
    writes: int
    write_sectors: int
    io_ms: int = 0  # time spent doing I/O


@dataclass(frozen=True)
class NetCounters:
    """Cumulative interface byte counters."""

    rx_bytes: int
    tx_bytes: int


@dataclass(frozen=True)
class MemInfo:
    """Memory figures from /proc/meminfo, all in KiB."""

    total_kb: int
    available_kb: int
    buffers_kb: int
    cached_kb: int
    swap_total_kb: int
    swap_free_kb: int


@dataclass(frozen=True)
class CounterSnapshot(Generic[T]):
    """A set of counters stamped with the monotonic time they were read."""

    taken_at: float
    counters: T


def _read_source(proc_root: Path | str, name: str) -> str:
    """Read a whole pseudo-file in one call."""
    path = Path(proc_root) / name
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise MissingSourceError(str(path), e.strerror or str(e)) from e


def read_cpu_ticks(proc_root: Path | str = PROC_ROOT) -> CpuTicks:
    """Parse the aggregate ``cpu`` line of /proc/stat."""
    content = _read_source(proc_root, "stat")
    for line in content.splitlines():
        parts = line.split()
        if not parts or parts[0] != "cpu":
            continue
        try:
            values = [int(p) for p in parts[1:8]]
        except ValueError as e:
            raise MissingSourceError("stat", f"non-numeric cpu field: {e}") from e
        if len(values) < 7:
            raise MissingSourceError("stat", f"expected 7 cpu fields, got {len(values)}")
        return CpuTicks(*values)

    raise MissingSourceError("stat", "no aggregate cpu line")


def read_load_avg(proc_root: Path | str = PROC_ROOT) -> LoadAvg:
    """Parse /proc/loadavg, e.g. ``0.52 0.58 0.59 2/1234 5678``."""
    parts = _read_source(proc_root, "loadavg").split()
    if len(parts) < 4 or "/" not in parts[3]:
        raise MissingSourceError("loadavg", "unexpected format")
    try:
        running, total = parts[3].split("/", 1)
        return LoadAvg(
            load1=float(parts[0]),
            load5=float(parts[1]),
            load15=float(parts[2]),
            running=int(running),
            total=int(total),
        )
    except ValueError as e:
        raise MissingSourceError("loadavg", str(e)) from e


def read_disk_counters(proc_root: Path | str = PROC_ROOT) -> dict[str, DiskCounters]:
    """
    Parse /proc/diskstats into device name -> counters.

    Lines with the short legacy partition format are skipped.
    """
    counters: dict[str, DiskCounters] = {}
    for line in _read_source(proc_root, "diskstats").splitlines():
        parts = line.split()
        if len(parts) < 14:
            continue
        try:
            counters[parts[2]] = DiskCounters(
                reads=int(parts[3]),
                read_sectors=int(parts[5]),
                writes=int(parts[7]),
                write_sectors=int(parts[9]),
                io_ms=int(parts[12]),
            )
        except ValueError:
            logger.debug(f"Skipping malformed diskstats line: {line!r}")

    if not counters:
        raise MissingSourceError("diskstats", "no device lines")
    return counters


def read_net_counters(proc_root: Path | str = PROC_ROOT) -> dict[str, NetCounters]:
    """Parse /proc/net/dev into interface name -> RX/TX byte counters."""
    counters: dict[str, NetCounters] = {}
    for line in _read_source(proc_root, "net/dev").splitlines():
        if ":" not in line:
            continue  # header
        name, _, data = line.partition(":")
        fields = data.split()
        if len(fields) < 9:
            continue
        try:
            counters[name.strip()] = NetCounters(rx_bytes=int(fields[0]), tx_bytes=int(fields[8]))
        except ValueError:
            logger.debug(f"Skipping malformed net/dev line: {line!r}")

    if not counters:
        raise MissingSourceError("net/dev", "no interface lines")
    return counters


def read_mem_info(proc_root: Path | str = PROC_ROOT) -> MemInfo:
    """
    Parse /proc/meminfo.

    Kernels older than 3.14 have no MemAvailable; it is then estimated as
    MemFree + Buffers + Cached.
    """
    fields: dict[str, int] = {}
    for line in _read_source(proc_root, "meminfo").splitlines():
        key, _, rest = line.partition(":")
        value = rest.split()
        if not value:
            continue
        try:
            fields[key.strip()] = int(value[0])
        except ValueError:
            continue

    if "MemTotal" not in fields:
        raise MissingSourceError("meminfo", "no MemTotal entry")

    buffers = fields.get("Buffers", 0)
    cached = fields.get("Cached", 0)
    available = fields.get("MemAvailable")
    if available is None:
        available = fields.get("MemFree", 0) + buffers + cached

    return MemInfo(
        total_kb=fields["MemTotal"],
        available_kb=available,
        buffers_kb=buffers,
        cached_kb=cached,
        swap_total_kb=fields.get("SwapTotal", 0),
        swap_free_kb=fields.get("SwapFree", 0),
    )


def take_snapshot(
    reader: Callable[[], T],
    clock: Callable[[], float] = time.monotonic,
) -> CounterSnapshot[T]:
    """Read counters and stamp them with the current monotonic time."""
    counters = reader()
    return CounterSnapshot(taken_at=clock(), counters=counters)
