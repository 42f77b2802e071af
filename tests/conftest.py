"""Shared fixtures: a fake /proc tree and a controllable clock."""

from collections.abc import Callable
from pathlib import Path

import pytest

PROC_STAT = """\
cpu  100 0 50 800 50 0 0 0 0 0
cpu0 50 0 25 400 25 0 0 0 0 0
cpu1 50 0 25 400 25 0 0 0 0 0
intr 12345
ctxt 67890
"""

PROC_LOADAVG = "2.50 1.80 1.20 3/456 7890\n"

PROC_DISKSTATS = """\
   7       0 loop0 10 0 20 5 0 0 0 0 0 4 5 0 0 0 0
   8       0 sda 1000 10 8000 300 500 20 4000 200 0 400 500 0 0 0 0
   8       1 sda1 900 10 7000 280 400 20 3000 180 0 350 460 0 0 0 0
 259       0 nvme0n1 2000 0 16000 100 1000 0 9000 50 0 120 150 0 0 0 0
"""

PROC_NET_DEV = """\
Inter-|   Receive                                                |  Transmit
 face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed
    lo:  123456     100    0    0    0     0          0         0   123456     100    0    0    0     0       0          0
  eth0: 1000000    5000    0    0    0     0          0         0   500000    4000    0    0    0     0       0          0
"""

PROC_NET_ROUTE = """\
Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT
eth0\t0000A8C0\t00000000\t0001\t0\t0\t100\t00FFFFFF\t0\t0\t0
eth0\t00000000\t0100A8C0\t0003\t0\t0\t100\t00000000\t0\t0\t0
"""

PROC_MEMINFO = """\
MemTotal:       16000000 kB
MemFree:         2000000 kB
MemAvailable:    8000000 kB
Buffers:          500000 kB
Cached:          4000000 kB
SwapCached:            0 kB
SwapTotal:       4000000 kB
SwapFree:        3000000 kB
"""

DEFAULT_FILES = {
    "stat": PROC_STAT,
    "loadavg": PROC_LOADAVG,
    "diskstats": PROC_DISKSTATS,
    "net/dev": PROC_NET_DEV,
    "net/route": PROC_NET_ROUTE,
    "meminfo": PROC_MEMINFO,
}


def write_proc(root: Path, name: str, content: str) -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def fake_proc(tmp_path: Path) -> Path:
    """A /proc lookalike with every file the readers need."""
    root = tmp_path / "proc"
    for name, content in DEFAULT_FILES.items():
        write_proc(root, name, content)
    return root


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[float], None] | None = None

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
