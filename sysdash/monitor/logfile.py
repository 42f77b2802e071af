"""
Report Log for sysdash

Appends one ``YYYY-MM-DD HH:MM:SS section=<name> key=value ...`` line per
section per report cycle.

Important Notes:
    - Each line is written with a single write() on a file opened in append
      mode and closed immediately, so an interrupt never leaves half a record
    - Write failures are logged and never abort the report

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
import re
from datetime import datetime
from pathlib import Path

from sysdash.monitor.sampler import (
    CpuSection,
    DiskSection,
    LoadSection,
    MemorySection,
    NetworkSection,
    Report,
    Section,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
_UNSAFE_KEY_CHARS = re.compile(r"[\s=\"]")


def _format_key(key: str) -> str:
    """Keys are never quoted, so whitespace, '=' and quotes become '_'."""
    return _UNSAFE_KEY_CHARS.sub("_", key)


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        return f"{value:.1f}"
    text = str(value)
    if not text or any(c.isspace() for c in text) or '"' in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


def format_line(timestamp: datetime, fields: dict[str, object]) -> str:
    """Render ``TIMESTAMP key=value ...`` without a trailing newline."""
    pairs = " ".join(f"{_format_key(key)}={_format_value(value)}" for key, value in fields.items())
    return f"{timestamp.strftime(TIMESTAMP_FORMAT)} {pairs}"


def _section_fields(section: Section) -> dict[str, object]:
    fields: dict[str, object] = {"section": section.name}
    if not section.available:
        fields["status"] = "UNAVAILABLE"
        fields["error"] = section.error
        return fields

    if isinstance(section, CpuSection) and section.usage:
        u = section.usage
        fields.update(
            used=u.used_pct,
            user=u.user_pct,
            system=u.system_pct,
            iowait=u.iowait_pct,
            idle=u.idle_pct,
        )
    elif isinstance(section, LoadSection) and section.ratios:
        r = section.ratios
        fields.update(
            load1=r.load1,
            load5=r.load5,
            load15=r.load15,
            cores=r.cores,
            ratio1=r.ratio1,
            ratio5=r.ratio5,
            ratio15=r.ratio15,
        )
    elif isinstance(section, DiskSection):
        devices = section.report.devices if section.report else []
        fields["source"] = section.report.source if section.report else "none"
        fields["devices"] = len(devices)
        for d in devices:
            fields[f"{d.device}_rkbs"] = d.read_kb_per_sec
            fields[f"{d.device}_wkbs"] = d.write_kb_per_sec
            if d.util_pct is not None:
                fields[f"{d.device}_util"] = d.util_pct
        for fs in section.filesystems:
            fields[f"fs{fs.mountpoint}"] = fs.percent
    elif isinstance(section, NetworkSection) and section.rates:
        r = section.rates
        fields.update(iface=r.interface, rx_bps=r.rx_per_sec, tx_bps=r.tx_per_sec)
    elif isinstance(section, MemorySection) and section.usage:
        u = section.usage
        fields.update(
            total_kb=u.total_kb,
            used_kb=u.used_kb,
            used_pct=u.used_pct,
            swap_used_kb=u.swap_used_kb,
            swap_pct=u.swap_pct,
        )

    if section.counter_reset:
        fields["reset"] = True
    fields["status"] = section.severity.label
    return fields


def report_lines(report: Report) -> list[str]:
    """One log line per section, all stamped with the report's time."""
    return [format_line(report.generated_at, _section_fields(s)) for s in report.sections()]


class ReportLog:
    """Append-only log file of report cycles."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def append(self, line: str) -> bool:
        """Append a single line. Returns False if the write failed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning(f"Could not write to log file {self.path}: {e}")
            return False
        return True

    def write_report(self, report: Report) -> int:
        """Append every section of a report. Returns lines written."""
        written = 0
        for line in report_lines(report):
            if not self.append(line):
                break
            written += 1
        logger.debug(f"Logged {written} lines to {self.path}")
        return written
