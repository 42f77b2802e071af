"""
Optional-Tool Adapter for sysdash

Wraps external diagnostic tools (iostat, mpstat, ifstat, ss, iotop) behind
small typed interfaces. Every tool is opportunistic: a missing binary, a
non-zero exit, a timeout or output that does not parse all mean "feature
unavailable" and are only logged at DEBUG level.

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
import os
import re
import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from sysdash.errors import ToolParseError
from sysdash.monitor.deltas import DiskActivity, disk_activity, is_excluded_device
from sysdash.monitor.procfs import PROC_ROOT, read_disk_counters, take_snapshot

logger = logging.getLogger(__name__)

ToolRunner = Callable[[Sequence[str], float], "str | None"]


@dataclass
class DiskReport:
    """Per-device disk activity and which backend produced it."""

    source: str
    devices: list[DiskActivity] = field(default_factory=list)
    has_utilization: bool = False


@dataclass
class CoreUsage:
    """Utilization of a single core, as reported by mpstat."""

    cpu: int
    user_pct: float
    system_pct: float
    iowait_pct: float
    idle_pct: float

    @property
    def used_pct(self) -> float:
        return max(0.0, 100.0 - self.idle_pct)


@dataclass
class SocketSummary:
    """Socket counts from ss -s."""

    total: int
    tcp_total: int
    tcp_established: int
    udp: int


@dataclass
class IoProcess:
    """A process doing I/O, as reported by iotop."""

    pid: int
    user: str
    read_kb_per_sec: float
    write_kb_per_sec: float
    command: str


def tool_available(name: str) -> bool:
    """Capability probe: is the binary on PATH?"""
    return shutil.which(name) is not None


def run_tool(argv: Sequence[str], timeout: float = 10.0) -> str | None:
    """
    Run an external tool and return its stdout, or None if it is unusable.

    The C locale is forced so numbers always use a decimal point.
    """
    if not tool_available(argv[0]):
        logger.debug(f"{argv[0]} not found on PATH")
        return None

    env = {**os.environ, "LC_ALL": "C"}
    try:
        result = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"{argv[0]} failed to run: {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"{argv[0]} exited with {result.returncode}: {result.stderr.strip()}")
        return None
    return result.stdout


def _whole_seconds(duration: float) -> int:
    """iostat and mpstat only accept integer intervals."""
    return max(1, round(duration))


def _tool_timeout(duration: float) -> float:
    return duration * 2 + 5


# =============================================================================
# Disk statistics sources
# =============================================================================


class DiskStatSource(Protocol):
    """Anything that can produce a DiskReport over a sample window."""

    name: str

    def sample(self, duration: float) -> DiskReport:
        ...


class ProcFallbackSource:
    """
    Disk activity from two /proc/diskstats snapshots.

    Idle devices are omitted. Utilization is estimated from the kernel's
    io-ticks counter.

    Raises:
        MissingSourceError: From sample() if diskstats cannot be read
    """

    name = "diskstats"

    def __init__(
        self,
        proc_root: Path | str = PROC_ROOT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.proc_root = proc_root
        self._sleep = sleep
        self._clock = clock

    def _read(self):
        return read_disk_counters(self.proc_root)

    def sample(self, duration: float) -> DiskReport:
        before = take_snapshot(self._read, self._clock)
        self._sleep(duration)
        after = take_snapshot(self._read, self._clock)
        devices = disk_activity(before, after, include_idle=False)
        return DiskReport(source=self.name, devices=devices, has_utilization=True)


class ExternalToolSource:
    """
    Disk activity from ``iostat -d -x -k``.

    Every non-loop device is reported, idle or not, with iostat's own %util.
    When iostat fails or its output does not parse, the fallback source is
    sampled instead.
    """

    name = "iostat"

    def __init__(self, fallback: DiskStatSource, runner: ToolRunner = run_tool):
        self.fallback = fallback
        self._runner = runner

    def sample(self, duration: float) -> DiskReport:
        interval = _whole_seconds(duration)
        output = self._runner(
            ["iostat", "-d", "-x", "-k", str(interval), "2"], _tool_timeout(interval)
        )
        if output is not None:
            try:
                devices = parse_iostat(output, interval)
                return DiskReport(source=self.name, devices=devices, has_utilization=True)
            except ToolParseError as e:
                logger.debug(f"iostat output not understood: {e}")

        return self.fallback.sample(duration)


def select_disk_source(
    use_tools: bool,
    proc_root: Path | str = PROC_ROOT,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> DiskStatSource:
    """Pick the disk backend once, at startup."""
    fallback = ProcFallbackSource(proc_root, sleep=sleep, clock=clock)
    if use_tools and tool_available("iostat"):
        logger.debug("Using iostat for disk statistics")
        return ExternalToolSource(fallback)
    logger.debug("Using /proc/diskstats for disk statistics")
    return fallback


def parse_iostat(output: str, interval: float) -> list[DiskActivity]:
    """
    Parse the last report block of ``iostat -d -x -k``.

    Columns are located by header name, which covers both the old
    (``Device:  rrqm/s wrqm/s r/s w/s ...``) and new sysstat layouts.

    Raises:
        ToolParseError: If no block with the expected columns is found
    """
    blocks: list[list[list[str]]] = []
    for line in output.splitlines():
        tokens = line.split()
        if not tokens:
            continue
        if tokens[0] in ("Device", "Device:"):
            blocks.append([tokens])
        elif blocks:
            blocks[-1].append(tokens)

    if not blocks:
        raise ToolParseError("no Device header in iostat output")

    header, *rows = blocks[-1]
    wanted = ("r/s", "w/s", "rkB/s", "wkB/s", "%util")
    try:
        idx = {name: header.index(name) for name in wanted}
    except ValueError as e:
        raise ToolParseError(f"missing iostat column: {e}") from e

    devices = []
    for tokens in rows:
        if len(tokens) != len(header):
            raise ToolParseError(f"unexpected iostat row: {' '.join(tokens)}")
        device = tokens[0]
        if is_excluded_device(device):
            continue
        try:
            rps, wps, rkb, wkb, util = (float(tokens[idx[name]]) for name in wanted)
        except ValueError as e:
            raise ToolParseError(f"non-numeric iostat value: {e}") from e

        devices.append(
            DiskActivity(
                device=device,
                reads=round(rps * interval),
                writes=round(wps * interval),
                read_kb=rkb * interval,
                write_kb=wkb * interval,
                reads_per_sec=rps,
                writes_per_sec=wps,
                read_kb_per_sec=rkb,
                write_kb_per_sec=wkb,
                util_pct=util,
            )
        )
    return devices


# =============================================================================
# Per-core CPU (mpstat)
# =============================================================================


def parse_mpstat(output: str) -> list[CoreUsage]:
    """
    Parse the ``Average:`` rows of ``mpstat -P ALL``.

    Raises:
        ToolParseError: If the header or the core rows are missing
    """
    header: list[str] | None = None
    cores = []
    for line in output.splitlines():
        tokens = line.split()
        if not tokens or tokens[0] != "Average:":
            continue
        if "CPU" in tokens:
            header = tokens
            continue
        if header is None or len(tokens) != len(header):
            continue
        cpu_id = tokens[header.index("CPU")]
        if not cpu_id.isdigit():
            continue  # the "all" row
        try:
            row = {name: float(tokens[i]) for i, name in enumerate(header) if name.startswith("%")}
            cores.append(
                CoreUsage(
                    cpu=int(cpu_id),
                    user_pct=row["%usr"] + row.get("%nice", 0.0),
                    system_pct=row["%sys"],
                    iowait_pct=row.get("%iowait", 0.0),
                    idle_pct=row["%idle"],
                )
            )
        except (KeyError, ValueError) as e:
            raise ToolParseError(f"unexpected mpstat row: {e}") from e

    if not cores:
        raise ToolParseError("no per-core rows in mpstat output")
    return cores


def sample_per_core(duration: float, runner: ToolRunner = run_tool) -> list[CoreUsage] | None:
    """Per-core breakdown via mpstat, or None when unavailable."""
    interval = _whole_seconds(duration)
    output = runner(["mpstat", "-P", "ALL", str(interval), "1"], _tool_timeout(interval))
    if output is None:
        return None
    try:
        return parse_mpstat(output)
    except ToolParseError as e:
        logger.debug(f"mpstat output not understood: {e}")
        return None


# =============================================================================
# Bandwidth confirmation (ifstat) and socket summary (ss)
# =============================================================================


def parse_ifstat(output: str) -> tuple[float, float]:
    """
    Parse the last data row of ``ifstat -q``: (KB/s in, KB/s out).

    Raises:
        ToolParseError: If the last row is not two numbers
    """
    lines = [line.split() for line in output.splitlines() if line.strip()]
    if len(lines) < 3:
        raise ToolParseError("ifstat output too short")
    last = lines[-1]
    if len(last) != 2:
        raise ToolParseError(f"unexpected ifstat row: {' '.join(last)}")
    try:
        return float(last[0]), float(last[1])
    except ValueError as e:
        raise ToolParseError(f"non-numeric ifstat value: {e}") from e


def confirm_bandwidth(
    interface: str, duration: float, runner: ToolRunner = run_tool
) -> tuple[float, float] | None:
    """Second opinion on bandwidth in KB/s, or None when unavailable."""
    output = runner(
        ["ifstat", "-i", interface, "-q", f"{duration:g}", "1"], _tool_timeout(duration)
    )
    if output is None:
        return None
    try:
        return parse_ifstat(output)
    except ToolParseError as e:
        logger.debug(f"ifstat output not understood: {e}")
        return None


_SS_TOTAL = re.compile(r"^Total:\s+(\d+)", re.MULTILINE)
_SS_TCP = re.compile(r"^TCP:\s+(\d+)\s+\(estab\s+(\d+)", re.MULTILINE)
_SS_UDP = re.compile(r"^UDP\s+(\d+)", re.MULTILINE)


def parse_ss_summary(output: str) -> SocketSummary:
    """
    Parse ``ss -s``.

    Raises:
        ToolParseError: If the Total or TCP lines are missing
    """
    total = _SS_TOTAL.search(output)
    tcp = _SS_TCP.search(output)
    if not total or not tcp:
        raise ToolParseError("missing Total/TCP lines in ss output")
    udp = _SS_UDP.search(output)
    return SocketSummary(
        total=int(total.group(1)),
        tcp_total=int(tcp.group(1)),
        tcp_established=int(tcp.group(2)),
        udp=int(udp.group(1)) if udp else 0,
    )


def socket_summary(runner: ToolRunner = run_tool) -> SocketSummary | None:
    output = runner(["ss", "-s"], 5.0)
    if output is None:
        return None
    try:
        return parse_ss_summary(output)
    except ToolParseError as e:
        logger.debug(f"ss output not understood: {e}")
        return None


# =============================================================================
# Top I/O processes (iotop)
# =============================================================================

_IOTOP_ROW = re.compile(
    r"^\s*(?P<pid>\d+)\s+\S+\s+(?P<user>\S+)\s+"
    r"(?P<read>[\d.]+)\s+K/s\s+(?P<write>[\d.]+)\s+K/s\s+(?P<rest>.*)$"
)


def parse_iotop(output: str, limit: int = 5) -> list[IoProcess]:
    """
    Parse the last iteration of ``iotop -b -o -k``.

    Raises:
        ToolParseError: If the output has no iteration marker
    """
    batches: list[list[str]] = []
    for line in output.splitlines():
        if line.startswith("Total DISK READ"):
            batches.append([])
        elif batches:
            batches[-1].append(line)

    if not batches:
        raise ToolParseError("no 'Total DISK READ' line in iotop output")

    processes = []
    for line in batches[-1]:
        match = _IOTOP_ROW.match(line)
        if not match:
            continue
        rest = match.group("rest")
        # SWAPIN and IO columns end in '%', or read '?unavailable?'
        if "%" in rest:
            command = rest.rsplit("%", 1)[1].strip()
        else:
            command = rest.replace("?unavailable?", "").strip()
        processes.append(
            IoProcess(
                pid=int(match.group("pid")),
                user=match.group("user"),
                read_kb_per_sec=float(match.group("read")),
                write_kb_per_sec=float(match.group("write")),
                command=command,
            )
        )

    processes.sort(key=lambda p: p.read_kb_per_sec + p.write_kb_per_sec, reverse=True)
    return processes[:limit]


def top_io_processes(
    duration: float, limit: int = 5, runner: ToolRunner = run_tool
) -> list[IoProcess] | None:
    """Busiest I/O processes via iotop (normally root only), or None."""
    output = runner(
        ["iotop", "-b", "-o", "-k", "-n", "2", "-d", f"{duration:g}"], _tool_timeout(duration)
    )
    if output is None:
        return None
    try:
        return parse_iotop(output, limit)
    except ToolParseError as e:
        logger.debug(f"iotop output not understood: {e}")
        return None
