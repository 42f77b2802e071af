"""
Host introspection for sysdash

Header facts (hostname, OS, kernel, uptime, users, cores), default network
interface detection and mounted filesystem usage.

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
import os
import platform
import socket
import time
from dataclasses import dataclass
from pathlib import Path

import psutil

from sysdash.errors import MissingSourceError
from sysdash.monitor.procfs import PROC_ROOT, read_net_counters

logger = logging.getLogger(__name__)

EXCLUDED_FILESYSTEMS = ("tmpfs", "devtmpfs", "udev")
LOOPBACK = "lo"


@dataclass
class HostInfo:
    """Static-ish facts shown in the report header."""

    hostname: str
    os_name: str
    kernel: str
    cores: int
    uptime_seconds: float | None = None
    users: int | None = None


@dataclass
class FilesystemUsage:
    """Usage of one mounted filesystem."""

    device: str
    mountpoint: str
    fstype: str
    total_bytes: int
    used_bytes: int
    percent: float


def cpu_cores() -> int:
    """Logical core count, never less than 1."""
    try:
        return psutil.cpu_count() or os.cpu_count() or 1
    except Exception as e:
        logger.debug(f"cpu_count failed: {e}")
        return os.cpu_count() or 1


def _os_name() -> str:
    try:
        release = platform.freedesktop_os_release()
    except OSError:
        return platform.system() or "unknown"
    return release.get("PRETTY_NAME") or release.get("NAME") or "unknown"


def _uptime() -> float | None:
    try:
        return max(0.0, time.time() - psutil.boot_time())
    except Exception as e:
        logger.debug(f"boot_time failed: {e}")
        return None


def _user_count() -> int | None:
    try:
        return len(psutil.users())
    except Exception as e:
        logger.debug(f"users failed: {e}")
        return None


def collect_host_info() -> HostInfo:
    """Gather header facts. Each field degrades independently."""
    return HostInfo(
        hostname=socket.gethostname() or "unknown",
        os_name=_os_name(),
        kernel=platform.release() or "unknown",
        cores=cpu_cores(),
        uptime_seconds=_uptime(),
        users=_user_count(),
    )


def format_uptime(seconds: float | None) -> str:
    """Format uptime like ``3d 4h 12m``."""
    if seconds is None:
        return "unknown"
    minutes = int(seconds // 60)
    days, minutes = divmod(minutes, 24 * 60)
    hours, minutes = divmod(minutes, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _default_route_interface(proc_root: Path | str) -> str | None:
    """Interface carrying the 0.0.0.0 destination in net/route."""
    try:
        content = (Path(proc_root) / "net" / "route").read_text(encoding="utf-8")
    except OSError:
        return None

    for line in content.splitlines()[1:]:
        fields = line.split()
        if len(fields) >= 2 and fields[1] == "00000000":
            return fields[0]
    return None


def detect_default_interface(proc_root: Path | str = PROC_ROOT) -> str | None:
    """
    Guess the interface to report bandwidth for.

    Prefers the default-route interface, then the first non-loopback entry
    in net/dev.
    """
    iface = _default_route_interface(proc_root)
    if iface:
        return iface

    try:
        interfaces = read_net_counters(proc_root)
    except MissingSourceError as e:
        logger.debug(f"Interface detection failed: {e}")
        return None

    for name in interfaces:
        if name != LOOPBACK:
            return name
    return None


def filesystem_usage() -> list[FilesystemUsage]:
    """Usage of mounted filesystems, minus tmpfs/devtmpfs/udev."""
    results = []
    seen: set[str] = set()
    for part in psutil.disk_partitions(all=False):
        if part.fstype in EXCLUDED_FILESYSTEMS or part.device in EXCLUDED_FILESYSTEMS:
            continue
        if part.device in seen:
            continue  # bind mounts
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except OSError as e:
            logger.debug(f"disk_usage({part.mountpoint}) failed: {e}")
            continue
        seen.add(part.device)
        results.append(
            FilesystemUsage(
                device=part.device,
                mountpoint=part.mountpoint,
                fstype=part.fstype,
                total_bytes=usage.total,
                used_bytes=usage.used,
                percent=usage.percent,
            )
        )
    return results
