"""
Severity classification for sysdash

Maps a numeric value and a (warn, critical) pair onto OK / WARN / CRITICAL.
Thresholds are always passed in explicitly; nothing here reads configuration.

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum

MIB = 1024**2


class Severity(IntEnum):
    """Severity band. Ordered so that max() picks the worst."""

    OK = 0
    WARN = 1
    CRITICAL = 2

    @property
    def label(self) -> str:
        return self.name


def classify(value: float, warn: float, critical: float) -> Severity:
    """Classify value against thresholds. Both comparisons are inclusive."""
    if value >= critical:
        return Severity.CRITICAL
    if value >= warn:
        return Severity.WARN
    return Severity.OK


def worst(*severities: Severity) -> Severity:
    """Return the most severe band, OK for an empty argument list."""
    return max(severities, default=Severity.OK)


@dataclass(frozen=True)
class ThresholdPolicy:
    """A (warn, critical) pair for one metric kind."""

    warn: float
    critical: float

    def classify(self, value: float) -> Severity:
        return classify(value, self.warn, self.critical)


@dataclass(frozen=True)
class Thresholds:
    """Threshold policy per metric kind."""

    cpu: ThresholdPolicy = field(default_factory=lambda: ThresholdPolicy(70.0, 90.0))
    load: ThresholdPolicy = field(default_factory=lambda: ThresholdPolicy(75.0, 100.0))
    disk_util: ThresholdPolicy = field(default_factory=lambda: ThresholdPolicy(70.0, 90.0))
    filesystem: ThresholdPolicy = field(default_factory=lambda: ThresholdPolicy(75.0, 90.0))
    memory: ThresholdPolicy = field(default_factory=lambda: ThresholdPolicy(75.0, 90.0))
    swap: ThresholdPolicy = field(default_factory=lambda: ThresholdPolicy(50.0, 80.0))
    # bytes per second
    network: ThresholdPolicy = field(
        default_factory=lambda: ThresholdPolicy(10.0 * MIB, 100.0 * MIB)
    )

    def with_cpu_critical(self, critical: float) -> "Thresholds":
        """Return a copy with a different CPU critical level."""
        return replace(self, cpu=ThresholdPolicy(self.cpu.warn, critical))

    def with_overrides(self, overrides: dict[str, ThresholdPolicy]) -> "Thresholds":
        """Return a copy with whole policies replaced by name."""
        return replace(self, **overrides)

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return ("cpu", "load", "disk_util", "filesystem", "memory", "swap", "network")
