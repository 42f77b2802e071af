"""Tests for the optional-tool adapter."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from sysdash.errors import ToolParseError
from sysdash.monitor import tools
from sysdash.monitor.tools import (
    DiskReport,
    ExternalToolSource,
    ProcFallbackSource,
    confirm_bandwidth,
    parse_ifstat,
    parse_iostat,
    parse_iotop,
    parse_mpstat,
    parse_ss_summary,
    run_tool,
    sample_per_core,
    select_disk_source,
    socket_summary,
    top_io_processes,
)
from tests.conftest import write_proc

IOSTAT_NEW = """\
Linux 6.1.0 (host) \t10/18/2026 \t_x86_64_\t(4 CPU)

Device            r/s     rkB/s   rrqm/s  %rrqm r_await rareq-sz     w/s     wkB/s   wrqm/s  %wrqm w_await wareq-sz  aqu-sz  %util
loop0            0.01      0.10     0.00   0.00    0.20    10.00    0.00      0.00     0.00   0.00    0.00     0.00    0.00   0.00
sda              5.00    100.00     0.00   0.00    0.50    20.00    2.00     40.00     1.00  33.33    1.00    20.00    0.01   3.00

Device            r/s     rkB/s   rrqm/s  %rrqm r_await rareq-sz     w/s     wkB/s   wrqm/s  %wrqm w_await wareq-sz  aqu-sz  %util
loop0            0.00      0.00     0.00   0.00    0.00     0.00    0.00      0.00     0.00   0.00    0.00     0.00    0.00   0.00
sda             10.00    200.00     0.00   0.00    0.50    20.00    4.00     80.00     1.00  20.00    1.00    20.00    0.02  12.50
nvme0n1          0.00      0.00     0.00   0.00    0.00     0.00    0.00      0.00     0.00   0.00    0.00     0.00    0.00   0.00
"""

IOSTAT_OLD = """\
Linux 3.10.0 (host) \t10/18/2026 \t_x86_64_\t(2 CPU)

Device:         rrqm/s   wrqm/s     r/s     w/s    rkB/s    wkB/s avgrq-sz avgqu-sz   await  svctm  %util
sda               0.00     1.00    3.00    1.00    48.00    16.00    32.00     0.01    1.00   0.50  95.00
"""

MPSTAT = """\
Linux 6.1.0 (host) \t10/18/2026 \t_x86_64_\t(2 CPU)

12:00:01 PM  CPU    %usr   %nice    %sys %iowait    %irq   %soft  %steal  %guest  %gnice   %idle
12:00:02 PM  all   10.00    0.00    5.00    1.00    0.00    0.00    0.00    0.00    0.00   84.00
12:00:02 PM    0   20.00    0.00   10.00    2.00    0.00    0.00    0.00    0.00    0.00   68.00
12:00:02 PM    1    0.00    0.00    0.00    0.00    0.00    0.00    0.00    0.00    0.00  100.00
Average:     CPU    %usr   %nice    %sys %iowait    %irq   %soft  %steal  %guest  %gnice   %idle
Average:     all   10.00    0.00    5.00    1.00    0.00    0.00    0.00    0.00    0.00   84.00
Average:       0   15.00    5.00   10.00    2.00    0.00    0.00    0.00    0.00    0.00   68.00
Average:       1    0.00    0.00    0.00    0.00    0.00    0.00    0.00    0.00    0.00  100.00
"""

IFSTAT = """\
       eth0
 KB/s in  KB/s out
   12.50      3.25
"""

SS_SUMMARY = """\
Total: 182
TCP:   12 (estab 5, closed 2, orphaned 0, timewait 2)

Transport Total     IP        IPv6
RAW\t  0         0         0
UDP\t  7         5         2
TCP\t  10        8         2
INET\t  17        13        4
FRAG\t  0         0         0
"""

IOTOP = """\
Total DISK READ:         0.00 K/s | Total DISK WRITE:         0.00 K/s
Actual DISK READ:        0.00 K/s | Actual DISK WRITE:        0.00 K/s
    TID  PRIO  USER     DISK READ  DISK WRITE  SWAPIN      IO    COMMAND
Total DISK READ:       120.00 K/s | Total DISK WRITE:        64.00 K/s
Actual DISK READ:      120.00 K/s | Actual DISK WRITE:       64.00 K/s
    TID  PRIO  USER     DISK READ  DISK WRITE  SWAPIN      IO    COMMAND
    812 be/4 root        0.00 K/s   60.00 K/s  0.00 %  1.20 % [jbd2/sda1-8]
   4242 be/4 alice     120.00 K/s    4.00 K/s ?unavailable?  postgres: checkpointer
"""


class TestRunTool:
    def test_missing_binary(self):
        with patch("sysdash.monitor.tools.shutil.which", return_value=None):
            assert run_tool(["iostat"]) is None

    def test_forces_c_locale(self):
        completed = subprocess.CompletedProcess(["ss"], 0, stdout="out", stderr="")
        with patch("sysdash.monitor.tools.shutil.which", return_value="/usr/bin/ss"), patch(
            "sysdash.monitor.tools.subprocess.run", return_value=completed
        ) as run:
            assert run_tool(["ss", "-s"], 5.0) == "out"
        assert run.call_args.kwargs["env"]["LC_ALL"] == "C"
        assert run.call_args.kwargs["timeout"] == 5.0

    def test_non_zero_exit(self):
        completed = subprocess.CompletedProcess(["iotop"], 1, stdout="", stderr="Permission denied")
        with patch("sysdash.monitor.tools.shutil.which", return_value="/usr/sbin/iotop"), patch(
            "sysdash.monitor.tools.subprocess.run", return_value=completed
        ):
            assert run_tool(["iotop"]) is None

    def test_timeout(self):
        with patch("sysdash.monitor.tools.shutil.which", return_value="/usr/bin/ifstat"), patch(
            "sysdash.monitor.tools.subprocess.run",
            side_effect=subprocess.TimeoutExpired("ifstat", 1),
        ):
            assert run_tool(["ifstat"]) is None


class TestParseIostat:
    def test_uses_last_block_and_skips_loop(self):
        devices = parse_iostat(IOSTAT_NEW, 1)
        assert [d.device for d in devices] == ["sda", "nvme0n1"]
        sda = devices[0]
        assert sda.reads_per_sec == 10.0
        assert sda.write_kb_per_sec == 80.0
        assert sda.util_pct == 12.5

    def test_idle_devices_are_kept(self):
        devices = parse_iostat(IOSTAT_NEW, 1)
        assert devices[1].util_pct == 0.0

    def test_counts_scale_with_interval(self):
        sda = parse_iostat(IOSTAT_NEW, 2)[0]
        assert sda.reads == 20
        assert sda.read_kb == 400.0

    def test_old_header_layout(self):
        devices = parse_iostat(IOSTAT_OLD, 1)
        assert len(devices) == 1
        assert devices[0].reads_per_sec == 3.0
        assert devices[0].read_kb_per_sec == 48.0
        assert devices[0].util_pct == 95.0

    def test_no_header(self):
        with pytest.raises(ToolParseError):
            parse_iostat("garbage\n", 1)

    def test_missing_column(self):
        with pytest.raises(ToolParseError):
            parse_iostat("Device r/s w/s\nsda 1.0 2.0\n", 1)


class TestParseMpstat:
    def test_average_rows(self):
        cores = parse_mpstat(MPSTAT)
        assert [c.cpu for c in cores] == [0, 1]
        assert cores[0].user_pct == 20.0
        assert cores[0].system_pct == 10.0
        assert cores[0].used_pct == 32.0
        assert cores[1].used_pct == 0.0

    def test_no_rows(self):
        with pytest.raises(ToolParseError):
            parse_mpstat("Linux 6.1.0\n")


class TestParseIfstat:
    def test_last_row(self):
        assert parse_ifstat(IFSTAT) == (12.5, 3.25)

    def test_too_short(self):
        with pytest.raises(ToolParseError):
            parse_ifstat("eth0\n")

    def test_non_numeric(self):
        with pytest.raises(ToolParseError):
            parse_ifstat("eth0\nKB/s in KB/s out\nn/a n/a\n")


class TestParseSs:
    def test_summary(self):
        summary = parse_ss_summary(SS_SUMMARY)
        assert summary.total == 182
        assert summary.tcp_total == 12
        assert summary.tcp_established == 5
        assert summary.udp == 7

    def test_missing_lines(self):
        with pytest.raises(ToolParseError):
            parse_ss_summary("nothing here\n")


class TestParseIotop:
    def test_last_iteration_sorted(self):
        processes = parse_iotop(IOTOP)
        assert [p.pid for p in processes] == [4242, 812]
        assert processes[0].user == "alice"
        assert processes[0].command == "postgres: checkpointer"
        assert processes[1].command == "[jbd2/sda1-8]"
        assert processes[1].write_kb_per_sec == 60.0

    def test_limit(self):
        assert len(parse_iotop(IOTOP, limit=1)) == 1

    def test_no_marker(self):
        with pytest.raises(ToolParseError):
            parse_iotop("iotop: permission denied\n")


class TestOptionalFeatures:
    """Every optional feature degrades to None."""

    def test_runner_failure(self):
        runner = MagicMock(return_value=None)
        assert sample_per_core(1.0, runner) is None
        assert confirm_bandwidth("eth0", 1.0, runner) is None
        assert socket_summary(runner) is None
        assert top_io_processes(1.0, runner=runner) is None

    def test_unparseable_output(self):
        runner = MagicMock(return_value="??")
        assert sample_per_core(1.0, runner) is None
        assert confirm_bandwidth("eth0", 1.0, runner) is None
        assert socket_summary(runner) is None
        assert top_io_processes(1.0, runner=runner) is None

    def test_commands(self):
        runner = MagicMock(return_value=MPSTAT)
        sample_per_core(0.4, runner)
        assert runner.call_args.args[0] == ["mpstat", "-P", "ALL", "1", "1"]

        runner = MagicMock(return_value=IFSTAT)
        assert confirm_bandwidth("wlan0", 2.0, runner) == (12.5, 3.25)
        assert runner.call_args.args[0] == ["ifstat", "-i", "wlan0", "-q", "2", "1"]


class TestDiskSources:
    def test_fallback_omits_idle(self, fake_proc, clock):
        def grow(_seconds):
            write_proc(
                fake_proc,
                "diskstats",
                "   8       0 sda 1100 10 8800 300 550 20 4400 200 0 900 500 0 0 0 0\n"
                " 259       0 nvme0n1 2000 0 16000 100 1000 0 9000 50 0 120 150 0 0 0 0\n",
            )

        clock.on_sleep = grow
        source = ProcFallbackSource(fake_proc, sleep=clock.sleep, clock=clock)
        report = source.sample(1.0)

        assert report.source == "diskstats"
        assert [d.device for d in report.devices] == ["sda"]
        sda = report.devices[0]
        assert sda.reads == 100
        assert sda.read_kb == 400.0
        assert sda.util_pct == 50.0
        assert clock.sleeps == [1.0]

    def test_external_tool_parses(self):
        fallback = MagicMock()
        source = ExternalToolSource(fallback, runner=MagicMock(return_value=IOSTAT_NEW))
        report = source.sample(1.0)
        assert report.source == "iostat"
        assert len(report.devices) == 2
        fallback.sample.assert_not_called()

    def test_external_tool_falls_back(self):
        fallback = MagicMock()
        fallback.sample.return_value = DiskReport(source="diskstats")
        source = ExternalToolSource(fallback, runner=MagicMock(return_value=None))
        assert source.sample(1.0).source == "diskstats"
        fallback.sample.assert_called_once_with(1.0)

    def test_external_tool_bad_output_falls_back(self):
        fallback = MagicMock()
        fallback.sample.return_value = DiskReport(source="diskstats")
        source = ExternalToolSource(fallback, runner=MagicMock(return_value="nonsense"))
        assert source.sample(1.0).source == "diskstats"

    def test_select_without_tools(self, fake_proc):
        assert isinstance(select_disk_source(False, fake_proc), ProcFallbackSource)

    def test_select_with_iostat(self, fake_proc, monkeypatch):
        monkeypatch.setattr(tools, "tool_available", lambda name: True)
        assert isinstance(select_disk_source(True, fake_proc), ExternalToolSource)

    def test_select_without_iostat(self, fake_proc, monkeypatch):
        monkeypatch.setattr(tools, "tool_available", lambda name: False)
        assert isinstance(select_disk_source(True, fake_proc), ProcFallbackSource)
