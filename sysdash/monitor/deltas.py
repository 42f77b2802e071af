"""
Delta Calculator for sysdash

Turns pairs of CounterSnapshots into percentages and per-second rates.

Important Notes:
    - CPU percentages use integer division, so the parts may sum to less
      than 100; the remainder is not redistributed
    - Rates are normalized by the actual elapsed time between snapshots
    - A counter that goes backwards (reboot, wrap) yields a delta of 0 and
      sets counter_reset on the result

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
from dataclasses import dataclass

from sysdash.monitor.procfs import (
    CounterSnapshot,
    CpuTicks,
    DiskCounters,
    LoadAvg,
    MemInfo,
    NetCounters,
)

logger = logging.getLogger(__name__)

SECTOR_BYTES = 512
EXCLUDED_DEVICE_PREFIXES = ("loop", "ram")


@dataclass
class CpuUsage:
    """CPU utilization over one sample window, whole percentages."""

    used_pct: int
    user_pct: int  # user + nice
    system_pct: int
    iowait_pct: int
    idle_pct: int
    total_ticks: int
    counter_reset: bool = False


@dataclass
class DiskActivity:
    """Per-device I/O over one sample window."""

    device: str
    reads: int
    writes: int
    read_kb: float
    write_kb: float
    reads_per_sec: float
    writes_per_sec: float
    read_kb_per_sec: float
    write_kb_per_sec: float
    util_pct: float | None = None
    counter_reset: bool = False


@dataclass
class NetRates:
    """RX/TX bytes for one interface over one sample window."""

    interface: str
    rx_bytes: int
    tx_bytes: int
    rx_per_sec: float
    tx_per_sec: float
    elapsed: float
    counter_reset: bool = False


@dataclass
class LoadRatios:
    """Load averages scaled to the core count, as percentages."""

    load1: float
    load5: float
    load15: float
    cores: int
    ratio1: float
    ratio5: float
    ratio15: float


@dataclass
class MemoryUsage:
    """Memory and swap usage derived from MemInfo, KiB and percentages."""

    total_kb: int
    used_kb: int
    available_kb: int
    buffers_kb: int
    cached_kb: int
    used_pct: float
    swap_total_kb: int
    swap_used_kb: int
    swap_pct: float


def counter_delta(before: int, after: int) -> tuple[int, bool]:
    """Return (delta, reset). A negative delta is clamped to zero."""
    delta = after - before
    if delta < 0:
        return 0, True
    return delta, False


def is_excluded_device(name: str) -> bool:
    return name.startswith(EXCLUDED_DEVICE_PREFIXES)


def _elapsed(before: CounterSnapshot, after: CounterSnapshot) -> float:
    elapsed = after.taken_at - before.taken_at
    return elapsed if elapsed > 0 else 1.0


def cpu_usage(
    before: CounterSnapshot[CpuTicks], after: CounterSnapshot[CpuTicks]
) -> CpuUsage:
    """
    Compute CPU utilization from two tick snapshots.

    used_pct = ((dtotal - didle) * 100) // dtotal, where dtotal sums all seven
    tick deltas. A zero dtotal is replaced by 1, which makes every part 0.
    """
    a, b = before.counters, after.counters
    deltas = {}
    reset = False
    for name in ("user", "nice", "system", "idle", "iowait", "irq", "softirq"):
        deltas[name], was_reset = counter_delta(getattr(a, name), getattr(b, name))
        reset = reset or was_reset

    total = sum(deltas.values())
    divisor = total or 1
    idle = deltas["idle"]

    return CpuUsage(
        used_pct=((total - idle) * 100) // divisor,
        user_pct=((deltas["user"] + deltas["nice"]) * 100) // divisor,
        system_pct=(deltas["system"] * 100) // divisor,
        iowait_pct=(deltas["iowait"] * 100) // divisor,
        idle_pct=(idle * 100) // divisor,
        total_ticks=total,
        counter_reset=reset,
    )


def disk_activity(
    before: CounterSnapshot[dict[str, DiskCounters]],
    after: CounterSnapshot[dict[str, DiskCounters]],
    include_idle: bool = False,
) -> list[DiskActivity]:
    """
    Compute per-device I/O between two diskstats snapshots.

    Devices with no reads and no writes in the window are omitted unless
    include_idle is set. Loop and ram devices are always skipped, as are
    devices that only appear in one snapshot.
    """
    elapsed = _elapsed(before, after)
    results = []

    for device, new in after.counters.items():
        old = before.counters.get(device)
        if old is None or is_excluded_device(device):
            continue

        reads, r1 = counter_delta(old.reads, new.reads)
        writes, r2 = counter_delta(old.writes, new.writes)
        read_sectors, r3 = counter_delta(old.read_sectors, new.read_sectors)
        write_sectors, r4 = counter_delta(old.write_sectors, new.write_sectors)
        io_ms, r5 = counter_delta(old.io_ms, new.io_ms)

        if reads + writes == 0 and not include_idle:
            continue

        read_kb = read_sectors * SECTOR_BYTES / 1024
        write_kb = write_sectors * SECTOR_BYTES / 1024
        results.append(
            DiskActivity(
                device=device,
                reads=reads,
                writes=writes,
                read_kb=read_kb,
                write_kb=write_kb,
                reads_per_sec=reads / elapsed,
                writes_per_sec=writes / elapsed,
                read_kb_per_sec=read_kb / elapsed,
                write_kb_per_sec=write_kb / elapsed,
                util_pct=min(100.0, io_ms * 100 / (elapsed * 1000)),
                counter_reset=r1 or r2 or r3 or r4 or r5,
            )
        )

    return results


def net_rates(
    before: CounterSnapshot[dict[str, NetCounters]],
    after: CounterSnapshot[dict[str, NetCounters]],
    interface: str,
) -> NetRates:
    """
    Compute RX/TX rates for one interface.

    Raises:
        KeyError: If the interface is missing from either snapshot
    """
    old = before.counters[interface]
    new = after.counters[interface]
    elapsed = _elapsed(before, after)

    rx, rx_reset = counter_delta(old.rx_bytes, new.rx_bytes)
    tx, tx_reset = counter_delta(old.tx_bytes, new.tx_bytes)

    return NetRates(
        interface=interface,
        rx_bytes=rx,
        tx_bytes=tx,
        rx_per_sec=rx / elapsed,
        tx_per_sec=tx / elapsed,
        elapsed=elapsed,
        counter_reset=rx_reset or tx_reset,
    )


def load_ratios(load: LoadAvg, cores: int) -> LoadRatios:
    """Scale load averages by core count: ratio = load / cores * 100."""
    cores = max(1, cores)
    return LoadRatios(
        load1=load.load1,
        load5=load.load5,
        load15=load.load15,
        cores=cores,
        ratio1=load.load1 / cores * 100,
        ratio5=load.load5 / cores * 100,
        ratio15=load.load15 / cores * 100,
    )


def memory_usage(info: MemInfo) -> MemoryUsage:
    """
    Derive memory usage. Used memory is total - available, not total - free,
    because page cache and buffers are reclaimable.
    """
    used = max(0, info.total_kb - info.available_kb)
    used_pct = used * 100 / info.total_kb if info.total_kb > 0 else 0.0

    swap_used = max(0, info.swap_total_kb - info.swap_free_kb)
    swap_pct = swap_used * 100 / info.swap_total_kb if info.swap_total_kb > 0 else 0.0

    return MemoryUsage(
        total_kb=info.total_kb,
        used_kb=used,
        available_kb=info.available_kb,
        buffers_kb=info.buffers_kb,
        cached_kb=info.cached_kb,
        used_pct=used_pct,
        swap_total_kb=info.swap_total_kb,
        swap_used_kb=swap_used,
        swap_pct=swap_pct,
    )
