"""
Monitor UI for sysdash

Renders Reports with rich and drives the one-shot and watch ("-w") loops.

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
import signal
import time
from collections.abc import Callable

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sysdash.monitor.hostinfo import format_uptime
from sysdash.monitor.logfile import ReportLog
from sysdash.monitor.sampler import (
    CpuSection,
    DiskSection,
    LoadSection,
    MemorySection,
    Metric,
    NetworkSection,
    Report,
    ReportSampler,
    Section,
)
from sysdash.monitor.thresholds import Severity
from sysdash.ui.theme import PANEL_STYLES, SYMBOLS, SYSDASH_THEME, severity_style

logger = logging.getLogger(__name__)

# UI Constants
BAR_WIDTH = 30


def format_bytes_rate(bytes_per_sec: float) -> str:
    """Format bytes/sec as human-readable string."""
    if bytes_per_sec >= 1024**3:
        return f"{bytes_per_sec / 1024**3:.1f} GiB/s"
    elif bytes_per_sec >= 1024**2:
        return f"{bytes_per_sec / 1024**2:.1f} MiB/s"
    elif bytes_per_sec >= 1024:
        return f"{bytes_per_sec / 1024:.1f} KiB/s"
    else:
        return f"{bytes_per_sec:.0f} B/s"


def format_kb(kb: float) -> str:
    """Format a KiB amount as human-readable string."""
    for unit in ("KiB", "MiB", "GiB"):
        if kb < 1024:
            return f"{kb:.1f} {unit}"
        kb /= 1024
    return f"{kb:.1f} TiB"


def create_bar(label: str, percent: float, severity: Severity, suffix: str = "") -> Text:
    """Create a progress bar with label, colored by severity."""
    # Clamp percent to [0, 100] to prevent bar overflow
    shown = max(0.0, min(100.0, percent))
    filled = min(int((shown / 100) * BAR_WIDTH), BAR_WIDTH)
    bar = SYMBOLS["bar_full"] * filled + SYMBOLS["bar_empty"] * (BAR_WIDTH - filled)
    style = severity_style(severity)

    result = Text()
    result.append(f"{label:>8}: ", style="bold")
    result.append(bar, style=style)
    result.append(f" {percent:5.1f}%", style=style)
    if suffix:
        result.append(f" ({suffix})", style="secondary")
    return result


def _severity_text(severity: Severity) -> Text:
    style = severity_style(severity)
    return Text(f"{SYMBOLS[style]} {severity.label}", style=style)


def _panel(title: str, body, severity: Severity = Severity.OK) -> Panel:
    style = PANEL_STYLES.get(severity_style(severity), PANEL_STYLES["default"])
    return Panel(body, title=f"[bold]{title}[/bold]", **style)


def _unavailable(section: Section) -> Text:
    return Text(f"{SYMBOLS['unavailable']} unavailable: {section.error}", style="muted")


def _reset_note() -> Text:
    return Text("counter reset detected; affected deltas clamped to 0", style="warn")


def render_header(report: Report) -> Panel:
    host = report.host
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="secondary")
    table.add_column("Value")
    table.add_column("Key", style="secondary")
    table.add_column("Value")
    table.add_row("Host", host.hostname, "Time", report.generated_at.strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row("OS", host.os_name, "Kernel", host.kernel)
    table.add_row(
        "Uptime",
        format_uptime(host.uptime_seconds),
        "Users",
        str(host.users) if host.users is not None else "unknown",
    )
    table.add_row("Cores", str(host.cores), "Interface", report.interface or "none")
    return Panel(table, title="[accent]System Health Report[/accent]", **PANEL_STYLES["header"])


def render_cpu(section: CpuSection) -> Panel:
    if not section.available or section.usage is None:
        return _panel("CPU", _unavailable(section))

    u = section.usage
    parts = [
        create_bar("CPU", u.used_pct, section.severity),
        Text(
            f"          user {u.user_pct}%  system {u.system_pct}%  "
            f"iowait {u.iowait_pct}%  idle {u.idle_pct}%",
            style="secondary",
        ),
    ]
    if section.core_metrics:
        parts.append(Text())
        for metric in section.core_metrics:
            parts.append(create_bar(metric.name, metric.value, metric.severity))
    if section.counter_reset:
        parts.append(_reset_note())
    return _panel("CPU", Group(*parts), section.severity)


def render_load(section: LoadSection) -> Panel:
    if not section.available or section.ratios is None:
        return _panel("Load Average", _unavailable(section))

    r = section.ratios
    table = Table(box=None, padding=(0, 2))
    table.add_column("Window", style="secondary")
    table.add_column("Load", justify="right")
    table.add_column(f"Per core ({r.cores})", justify="right")
    table.add_column("Status")
    for label, load, metric in zip(
        ("1 min", "5 min", "15 min"), (r.load1, r.load5, r.load15), section.metrics
    ):
        style = severity_style(metric.severity)
        table.add_row(
            label,
            f"{load:.2f}",
            Text(f"{metric.value:.1f}%", style=style),
            _severity_text(metric.severity),
        )
    footer = Text(
        f"Processes: {section.running} running / {section.total} total", style="secondary"
    )
    return _panel("Load Average", Group(table, footer), section.severity)


def render_disk(section: DiskSection) -> Panel:
    parts = []
    if not section.available or section.report is None:
        parts.append(_unavailable(section))
    elif not section.report.devices:
        parts.append(Text("No disk activity during the sample window", style="muted"))
    else:
        table = Table(box=None, padding=(0, 2))
        table.add_column("Device", style="bold")
        table.add_column("Reads/s", justify="right")
        table.add_column("Writes/s", justify="right")
        table.add_column("Read", justify="right", style="info")
        table.add_column("Write", justify="right", style="info")
        table.add_column("%util", justify="right")
        util = {m.name: m for m in section.metrics}
        for d in section.report.devices:
            metric = util.get(d.device)
            util_text = (
                Text(f"{metric.value:.1f}", style=severity_style(metric.severity))
                if metric
                else Text("n/a", style="muted")
            )
            table.add_row(
                d.device,
                f"{d.reads_per_sec:.1f}",
                f"{d.writes_per_sec:.1f}",
                format_bytes_rate(d.read_kb_per_sec * 1024),
                format_bytes_rate(d.write_kb_per_sec * 1024),
                util_text,
            )
        parts.append(table)
        parts.append(Text(f"source: {section.report.source}", style="secondary"))

    if section.filesystem_metrics:
        parts.append(Text())
        sizes = {fs.mountpoint: fs for fs in section.filesystems}
        for metric in section.filesystem_metrics:
            fs = sizes[metric.name]
            suffix = f"{fs.used_bytes / 1024**3:.1f}/{fs.total_bytes / 1024**3:.1f} GiB"
            parts.append(create_bar(metric.name[-8:], metric.value, metric.severity, suffix))

    if section.io_processes:
        parts.append(Text())
        parts.append(Text("Top I/O processes:", style="bold"))
        for p in section.io_processes:
            parts.append(
                Text(
                    f"  {p.pid:>7} {p.user:<10} {SYMBOLS['rx']} {p.read_kb_per_sec:.1f} KiB/s "
                    f"{SYMBOLS['tx']} {p.write_kb_per_sec:.1f} KiB/s  {p.command}",
                    style="secondary",
                )
            )

    if section.counter_reset:
        parts.append(_reset_note())
    return _panel("Disk I/O", Group(*parts), section.severity)


def render_network(section: NetworkSection) -> Panel:
    title = f"Bandwidth ({section.interface})" if section.interface else "Bandwidth"
    if not section.available or section.rates is None:
        return _panel(title, _unavailable(section))

    rx, tx = section.metrics
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Direction", style="secondary")
    table.add_column("Rate", justify="right")
    table.add_column("Total", justify="right", style="secondary")
    table.add_column("Status")
    table.add_row(
        f"{SYMBOLS['rx']} RX",
        Text(format_bytes_rate(rx.value), style=severity_style(rx.severity)),
        format_kb(section.rates.rx_bytes / 1024),
        _severity_text(rx.severity),
    )
    table.add_row(
        f"{SYMBOLS['tx']} TX",
        Text(format_bytes_rate(tx.value), style=severity_style(tx.severity)),
        format_kb(section.rates.tx_bytes / 1024),
        _severity_text(tx.severity),
    )
    parts = [table]

    if section.confirmation is not None:
        kb_in, kb_out = section.confirmation
        parts.append(Text(f"ifstat: in {kb_in:.2f} KB/s, out {kb_out:.2f} KB/s", style="secondary"))
    if section.sockets is not None:
        s = section.sockets
        parts.append(
            Text(
                f"Sockets: {s.total} total, TCP {s.tcp_total} ({s.tcp_established} established), "
                f"UDP {s.udp}",
                style="secondary",
            )
        )
    if section.counter_reset:
        parts.append(_reset_note())
    return _panel(title, Group(*parts), section.severity)


def render_memory(section: MemorySection) -> Panel:
    if not section.available or section.usage is None:
        return _panel("Memory", _unavailable(section))

    u = section.usage
    parts = [
        create_bar(
            "RAM",
            u.used_pct,
            section.metrics[0].severity,
            f"{format_kb(u.used_kb)} / {format_kb(u.total_kb)}",
        ),
        Text(
            f"          available {format_kb(u.available_kb)}  buffers {format_kb(u.buffers_kb)}  "
            f"cached {format_kb(u.cached_kb)}",
            style="secondary",
        ),
    ]
    if len(section.metrics) > 1:
        swap = section.metrics[1]
        parts.append(
            create_bar(
                "Swap",
                swap.value,
                swap.severity,
                f"{format_kb(u.swap_used_kb)} / {format_kb(u.swap_total_kb)}",
            )
        )
    else:
        parts.append(Text("    Swap: not configured", style="muted"))
    return _panel("Memory", Group(*parts), section.severity)


def _alert_line(section: str, metric: Metric) -> Text:
    style = severity_style(metric.severity)
    value = format_bytes_rate(metric.value) if metric.unit == "B/s" else f"{metric.value:.1f}%"
    return Text(
        f"{SYMBOLS[style]}  {metric.severity.label}: {section} {metric.name} at {value}",
        style=style,
    )


def render_footer(report: Report) -> Text:
    footer = Text()
    footer.append("Overall: ", style="bold")
    footer.append_text(_severity_text(report.severity))
    footer.append(f"   sample window {report.sample_duration:g}s   ", style="secondary")
    for severity in Severity:
        style = severity_style(severity)
        footer.append(f"{SYMBOLS[style]} {severity.label.lower()}  ", style=style)
    return footer


def render_report(report: Report) -> Group:
    """Render a full report: header, sections, alerts, footer."""
    parts = [
        render_header(report),
        render_cpu(report.cpu),
        render_load(report.load),
        render_disk(report.disk),
        render_network(report.network),
        render_memory(report.memory),
    ]
    alerts = report.alerts()
    if alerts:
        parts.extend(_alert_line(section, metric) for section, metric in alerts)
    parts.append(render_footer(report))
    return Group(*parts)


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt


class MonitorUI:
    """
    Prints reports once or continuously.

    Example:
        ui = MonitorUI(ReportSampler(config), report_log=ReportLog(config.log_file))
        ui.run_watch(interval=5)
    """

    def __init__(
        self,
        sampler: ReportSampler,
        console: Console | None = None,
        report_log: ReportLog | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            sampler: Produces one Report per cycle
            console: Optional rich Console (creates new one if None)
            report_log: Optional append-only log, written after each render
            sleep: Used for the refresh interval between cycles
        """
        self.sampler = sampler
        self.console = console or Console(theme=SYSDASH_THEME)
        self.report_log = report_log
        self._sleep = sleep
        self._running = False

    def show(self, report: Report) -> None:
        """Render one report and append it to the log, if enabled."""
        self.console.print(render_report(report))
        if self.report_log is not None:
            self.report_log.write_report(report)

    def run_once(self) -> int:
        """Collect and print a single report."""
        self.show(self.sampler.collect())
        return 0

    def run_watch(self, interval: float) -> int:
        """
        Collect, print, sleep, repeat until Ctrl+C or SIGTERM.

        Returns:
            Exit code (0 after a clean stop)
        """
        self._running = True
        previous = signal.signal(signal.SIGTERM, _raise_interrupt)
        try:
            while self._running:
                report = self.sampler.collect()
                if self.console.is_terminal:
                    self.console.clear()
                self.show(report)
                self.console.print(
                    f"[secondary]Refreshing every {interval:g}s - press Ctrl+C to stop[/secondary]"
                )
                self._sleep(interval)
        except KeyboardInterrupt:
            self.console.print("\n[secondary]Monitoring stopped[/secondary]")
        finally:
            signal.signal(signal.SIGTERM, previous)
            self._running = False
        return 0

    def stop(self) -> None:
        """Stop the watch loop after the current cycle."""
        self._running = False
