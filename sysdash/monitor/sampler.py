"""
Report Sampler for sysdash

Assembles one report cycle: interface detection, header facts, then the CPU,
load, disk, bandwidth and memory sections, strictly one after another.

Important Notes:
    - Sections that need two snapshots block for sample_duration each, so a
      report takes at least (number of two-point sections) * sample_duration
    - A section that cannot read its source carries an error string and no
      metrics; the other sections are unaffected
    - Every metric is classified here; the renderer only reads severities

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sysdash.errors import MissingSourceError
from sysdash.monitor.deltas import (
    CpuUsage,
    LoadRatios,
    MemoryUsage,
    NetRates,
    cpu_usage,
    load_ratios,
    memory_usage,
    net_rates,
)
from sysdash.monitor.hostinfo import (
    FilesystemUsage,
    HostInfo,
    collect_host_info,
    detect_default_interface,
    filesystem_usage,
)
from sysdash.monitor.procfs import (
    read_cpu_ticks,
    read_load_avg,
    read_mem_info,
    read_net_counters,
    take_snapshot,
)
from sysdash.monitor.thresholds import Severity, ThresholdPolicy, worst
from sysdash.monitor.tools import (
    CoreUsage,
    DiskReport,
    DiskStatSource,
    IoProcess,
    SocketSummary,
    ToolRunner,
    confirm_bandwidth,
    run_tool,
    sample_per_core,
    select_disk_source,
    socket_summary,
    top_io_processes,
)

if TYPE_CHECKING:
    from sysdash.config import MonitorConfig

logger = logging.getLogger(__name__)


@dataclass
class Metric:
    """A named, classified value. Units: '%', 'B/s'."""

    name: str
    value: float
    unit: str
    severity: Severity = Severity.OK

    @classmethod
    def classified(cls, name: str, value: float, unit: str, policy: ThresholdPolicy) -> "Metric":
        return cls(name=name, value=value, unit=unit, severity=policy.classify(value))


@dataclass
class Section:
    """Common shape of every report section."""

    name: str
    metrics: list[Metric] = field(default_factory=list)
    error: str | None = None
    counter_reset: bool = False

    @property
    def available(self) -> bool:
        return self.error is None

    @property
    def severity(self) -> Severity:
        return worst(*(m.severity for m in self.metrics))


@dataclass
class CpuSection(Section):
    usage: CpuUsage | None = None
    cores: list[CoreUsage] | None = None
    core_metrics: list[Metric] = field(default_factory=list)


@dataclass
class LoadSection(Section):
    ratios: LoadRatios | None = None
    running: int = 0
    total: int = 0


@dataclass
class DiskSection(Section):
    report: DiskReport | None = None
    filesystems: list[FilesystemUsage] = field(default_factory=list)
    filesystem_metrics: list[Metric] = field(default_factory=list)
    io_processes: list[IoProcess] | None = None

    @property
    def severity(self) -> Severity:
        return worst(*(m.severity for m in self.metrics + self.filesystem_metrics))


@dataclass
class NetworkSection(Section):
    interface: str | None = None
    rates: NetRates | None = None
    confirmation: tuple[float, float] | None = None  # KB/s in, out
    sockets: SocketSummary | None = None


@dataclass
class MemorySection(Section):
    usage: MemoryUsage | None = None


@dataclass
class Report:
    """One complete report cycle."""

    generated_at: datetime
    host: HostInfo
    interface: str | None
    sample_duration: float
    cpu: CpuSection
    load: LoadSection
    disk: DiskSection
    network: NetworkSection
    memory: MemorySection

    def sections(self) -> Iterator[Section]:
        yield from (self.cpu, self.load, self.disk, self.network, self.memory)

    @property
    def severity(self) -> Severity:
        return worst(*(s.severity for s in self.sections()))

    def alerts(self) -> list[tuple[str, Metric]]:
        """(section name, metric) for every metric at WARN or above."""
        found = []
        for section in self.sections():
            metrics = list(section.metrics)
            if isinstance(section, DiskSection):
                metrics += section.filesystem_metrics
            found.extend((section.name, m) for m in metrics if m.severity >= Severity.WARN)
        return found


class ReportSampler:
    """
    Builds Reports from the kernel counters and any optional tools.

    Example:
        config = load_config(args)
        sampler = ReportSampler(config)
        report = sampler.collect()
    """

    def __init__(
        self,
        config: "MonitorConfig",
        disk_source: DiskStatSource | None = None,
        runner: ToolRunner = run_tool,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            config: Immutable configuration for every cycle
            disk_source: Disk backend (default: probed once here)
            runner: Executes optional external tools
            sleep: Blocks for the sample window
            clock: Monotonic clock used to stamp snapshots
            now: Wall clock used for the report timestamp
        """
        self.config = config
        self._runner = runner
        self._sleep = sleep
        self._clock = clock
        self._now = now
        self.disk_source = disk_source or select_disk_source(
            config.use_tools, config.proc_root, sleep=sleep, clock=clock
        )

    @property
    def _proc(self):
        return self.config.proc_root

    def _two_point(self, reader):
        before = take_snapshot(reader, self._clock)
        self._sleep(self.config.sample_duration)
        after = take_snapshot(reader, self._clock)
        return before, after

    def collect(self) -> Report:
        """Run one full cycle, section by section."""
        interface = self.config.interface or detect_default_interface(self._proc)
        generated_at = self._now()
        host = collect_host_info()

        return Report(
            generated_at=generated_at,
            host=host,
            interface=interface,
            sample_duration=self.config.sample_duration,
            cpu=self.collect_cpu(),
            load=self.collect_load(host.cores),
            disk=self.collect_disk(),
            network=self.collect_network(interface),
            memory=self.collect_memory(),
        )

    def collect_cpu(self) -> CpuSection:
        try:
            before, after = self._two_point(lambda: read_cpu_ticks(self._proc))
        except MissingSourceError as e:
            logger.debug(f"CPU statistics unavailable: {e}")
            return CpuSection(name="cpu", error=str(e))

        usage = cpu_usage(before, after)
        policy = self.config.thresholds.cpu
        section = CpuSection(
            name="cpu",
            usage=usage,
            metrics=[Metric.classified("used", usage.used_pct, "%", policy)],
            counter_reset=usage.counter_reset,
        )

        if self.config.use_tools and self.config.per_core:
            section.cores = sample_per_core(self.config.sample_duration, self._runner)
            if section.cores:
                section.core_metrics = [
                    Metric.classified(f"cpu{core.cpu}", core.used_pct, "%", policy)
                    for core in section.cores
                ]
        return section

    def collect_load(self, cores: int) -> LoadSection:
        try:
            load = read_load_avg(self._proc)
        except MissingSourceError as e:
            logger.debug(f"Load average unavailable: {e}")
            return LoadSection(name="load", error=str(e))

        ratios = load_ratios(load, cores)
        policy = self.config.thresholds.load
        return LoadSection(
            name="load",
            ratios=ratios,
            running=load.running,
            total=load.total,
            metrics=[
                Metric.classified("load1", ratios.ratio1, "%", policy),
                Metric.classified("load5", ratios.ratio5, "%", policy),
                Metric.classified("load15", ratios.ratio15, "%", policy),
            ],
        )

    def collect_disk(self) -> DiskSection:
        thresholds = self.config.thresholds
        section = DiskSection(name="disk")

        try:
            section.report = self.disk_source.sample(self.config.sample_duration)
        except MissingSourceError as e:
            logger.debug(f"Disk statistics unavailable: {e}")
            section.error = str(e)
        else:
            section.metrics = [
                Metric.classified(d.device, d.util_pct, "%", thresholds.disk_util)
                for d in section.report.devices
                if d.util_pct is not None
            ]
            section.counter_reset = any(d.counter_reset for d in section.report.devices)

        try:
            section.filesystems = filesystem_usage()
        except OSError as e:
            logger.debug(f"Filesystem usage unavailable: {e}")
        section.filesystem_metrics = [
            Metric.classified(fs.mountpoint, fs.percent, "%", thresholds.filesystem)
            for fs in section.filesystems
        ]

        if self.config.use_tools:
            section.io_processes = top_io_processes(
                self.config.sample_duration, runner=self._runner
            )
        return section

    def collect_network(self, interface: str | None) -> NetworkSection:
        if interface is None:
            return NetworkSection(name="network", error="no network interface detected")

        try:
            before, after = self._two_point(lambda: read_net_counters(self._proc))
            rates = net_rates(before, after, interface)
        except MissingSourceError as e:
            logger.debug(f"Network statistics unavailable: {e}")
            return NetworkSection(name="network", interface=interface, error=str(e))
        except KeyError:
            return NetworkSection(
                name="network", interface=interface, error=f"interface {interface} not found"
            )

        policy = self.config.thresholds.network
        section = NetworkSection(
            name="network",
            interface=interface,
            rates=rates,
            metrics=[
                Metric.classified("rx", rates.rx_per_sec, "B/s", policy),
                Metric.classified("tx", rates.tx_per_sec, "B/s", policy),
            ],
            counter_reset=rates.counter_reset,
        )

        if self.config.use_tools:
            section.confirmation = confirm_bandwidth(
                interface, self.config.sample_duration, self._runner
            )
            section.sockets = socket_summary(self._runner)
        return section

    def collect_memory(self) -> MemorySection:
        try:
            usage = memory_usage(read_mem_info(self._proc))
        except MissingSourceError as e:
            logger.debug(f"Memory statistics unavailable: {e}")
            return MemorySection(name="memory", error=str(e))

        thresholds = self.config.thresholds
        metrics = [Metric.classified("memory", usage.used_pct, "%", thresholds.memory)]
        if usage.swap_total_kb > 0:
            metrics.append(Metric.classified("swap", usage.swap_pct, "%", thresholds.swap))
        return MemorySection(name="memory", usage=usage, metrics=metrics)
