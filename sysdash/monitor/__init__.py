"""
sysdash Monitor Module

Delta sampling, classification and rendering of Linux kernel counters.
"""

from sysdash.monitor.deltas import CpuUsage, DiskActivity, LoadRatios, MemoryUsage, NetRates
from sysdash.monitor.procfs import CounterSnapshot, CpuTicks, DiskCounters, LoadAvg, MemInfo
from sysdash.monitor.sampler import Metric, Report, ReportSampler
from sysdash.monitor.thresholds import Severity, ThresholdPolicy, Thresholds, classify

__all__ = [
    "CounterSnapshot",
    "CpuTicks",
    "CpuUsage",
    "DiskActivity",
    "DiskCounters",
    "LoadAvg",
    "LoadRatios",
    "MemInfo",
    "MemoryUsage",
    "Metric",
    "NetRates",
    "Report",
    "ReportSampler",
    "Severity",
    "ThresholdPolicy",
    "Thresholds",
    "classify",
]
