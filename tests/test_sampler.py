"""Tests for report assembly."""

import pytest

from sysdash.config import MonitorConfig
from sysdash.monitor import sampler as sampler_module
from sysdash.monitor.hostinfo import FilesystemUsage, HostInfo
from sysdash.monitor.sampler import Metric, ReportSampler
from sysdash.monitor.thresholds import MIB, Severity, ThresholdPolicy
from sysdash.monitor.tools import ProcFallbackSource
from tests.conftest import write_proc
from tests.test_tools import MPSTAT

NET_DEV_HEADER = (
    "Inter-|   Receive |  Transmit\n"
    " face |bytes    packets errs drop fifo frame compressed multicast|bytes\n"
)


def net_dev(rx: int, tx: int) -> str:
    return NET_DEV_HEADER + f"  eth0: {rx} 0 0 0 0 0 0 0 {tx} 0 0 0 0 0 0 0\n"


@pytest.fixture
def host(monkeypatch):
    info = HostInfo(hostname="web01", os_name="Linux", kernel="6.1.0", cores=4)
    monkeypatch.setattr(sampler_module, "collect_host_info", lambda: info)
    monkeypatch.setattr(sampler_module, "filesystem_usage", lambda: [])
    return info


@pytest.fixture
def make_sampler(fake_proc, clock, host):
    def factory(runner=lambda argv, timeout: None, **overrides):
        config = MonitorConfig(proc_root=fake_proc, use_tools=False, **overrides)
        disk_source = ProcFallbackSource(fake_proc, sleep=clock.sleep, clock=clock)
        return ReportSampler(
            config, disk_source=disk_source, runner=runner, sleep=clock.sleep, clock=clock
        )

    return factory


class TestCollect:
    def test_quiet_host_is_all_ok(self, make_sampler, clock):
        report = make_sampler().collect()

        assert report.interface == "eth0"
        assert report.host.hostname == "web01"
        assert all(s.available for s in report.sections())
        assert report.severity == Severity.OK
        assert report.alerts() == []

    def test_sections_sample_one_after_another(self, make_sampler, clock):
        make_sampler(sample_duration=2.0).collect()
        # cpu, disk, network
        assert clock.sleeps == [2.0, 2.0, 2.0]

    def test_load_scaled_by_cores(self, make_sampler):
        section = make_sampler().collect().load
        assert [m.value for m in section.metrics] == pytest.approx([62.5, 45.0, 30.0])
        assert section.severity == Severity.OK
        assert (section.running, section.total) == (3, 456)

    def test_memory_and_swap(self, make_sampler):
        section = make_sampler().collect().memory
        assert [m.name for m in section.metrics] == ["memory", "swap"]
        assert section.metrics[0].value == 50.0
        assert section.metrics[1].value == 25.0

    def test_no_swap_metric_without_swap(self, make_sampler, fake_proc):
        write_proc(fake_proc, "meminfo", "MemTotal: 1000 kB\nMemAvailable: 100 kB\n")
        section = make_sampler().collect().memory
        assert [m.name for m in section.metrics] == ["memory"]
        assert section.severity == Severity.CRITICAL


class TestUnavailable:
    def test_missing_stat_only_affects_cpu(self, make_sampler, fake_proc):
        (fake_proc / "stat").unlink()
        report = make_sampler().collect()

        assert not report.cpu.available
        assert "stat" in report.cpu.error
        assert report.cpu.metrics == []
        assert report.memory.available
        assert report.load.available

    def test_unknown_interface(self, make_sampler):
        section = make_sampler(interface="wlan9").collect().network
        assert section.error == "interface wlan9 not found"

    def test_no_interface(self, make_sampler, fake_proc):
        (fake_proc / "net" / "route").unlink()
        (fake_proc / "net" / "dev").unlink()
        report = make_sampler().collect()
        assert report.interface is None
        assert report.network.error == "no network interface detected"

    def test_missing_diskstats(self, make_sampler, fake_proc):
        (fake_proc / "diskstats").unlink()
        section = make_sampler().collect().disk
        assert not section.available
        assert section.report is None


class TestThresholdScenarios:
    def test_cpu_critical(self, make_sampler, fake_proc, clock):
        clock.on_sleep = lambda _: write_proc(fake_proc, "stat", "cpu  400 0 50 800 50 0 0\n")
        section = make_sampler().collect_cpu()
        assert section.usage.used_pct == 100
        assert section.severity == Severity.CRITICAL

    def test_lowered_cpu_critical(self, make_sampler, fake_proc, clock):
        # 75 ticks busy out of 100
        clock.on_sleep = lambda _: write_proc(fake_proc, "stat", "cpu  160 0 65 825 50 0 0\n")
        config_sampler = make_sampler()
        assert config_sampler.collect_cpu().severity == Severity.WARN

        write_proc(fake_proc, "stat", "cpu  100 0 50 800 50 0 0\n")
        thresholds = config_sampler.config.thresholds.with_cpu_critical(75)
        lowered = make_sampler(thresholds=thresholds)
        assert lowered.collect_cpu().severity == Severity.CRITICAL

    def test_network_burst(self, make_sampler, fake_proc, clock):
        clock.on_sleep = lambda _: write_proc(
            fake_proc, "net/dev", net_dev(1000000 + 150 * MIB, 500000)
        )
        section = make_sampler().collect_network("eth0")

        rx, tx = section.metrics
        assert rx.value == 150 * MIB
        assert rx.severity == Severity.CRITICAL
        assert tx.severity == Severity.OK
        assert section.severity == Severity.CRITICAL

    def test_counter_reset_is_flagged(self, make_sampler, fake_proc, clock):
        clock.on_sleep = lambda _: write_proc(fake_proc, "net/dev", net_dev(10, 500000))
        section = make_sampler().collect_network("eth0")
        assert section.counter_reset
        assert section.rates.rx_bytes == 0

    def test_filesystem_metrics(self, make_sampler, monkeypatch):
        fs = FilesystemUsage("/dev/sda1", "/", "ext4", 100, 95, 95.0)
        monkeypatch.setattr(sampler_module, "filesystem_usage", lambda: [fs])
        report = make_sampler().collect()
        assert report.disk.severity == Severity.CRITICAL
        assert ("disk", report.disk.filesystem_metrics[0]) in report.alerts()


class TestOptionalTools:
    def test_per_core_from_mpstat(self, make_sampler):
        def runner(argv, timeout):
            return MPSTAT if argv[0] == "mpstat" else None

        s = make_sampler(runner=runner)
        s.config = MonitorConfig(proc_root=s.config.proc_root, use_tools=True)
        section = s.collect_cpu()
        assert [m.name for m in section.core_metrics] == ["cpu0", "cpu1"]
        assert section.core_metrics[0].value == 32.0

    def test_tools_failing_leaves_sections_intact(self, make_sampler):
        s = make_sampler()
        s.config = MonitorConfig(proc_root=s.config.proc_root, use_tools=True)
        report = s.collect()
        assert report.cpu.cores is None
        assert report.network.sockets is None
        assert report.network.confirmation is None
        assert report.disk.io_processes is None
        assert report.network.available


def test_metric_classified():
    metric = Metric.classified("used", 91.0, "%", ThresholdPolicy(70, 90))
    assert metric.severity == Severity.CRITICAL
