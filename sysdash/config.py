"""
Configuration for sysdash

Builds one immutable MonitorConfig per process. Sources, lowest priority
first: built-in defaults, a YAML file, SYSDASH_* environment variables
(optionally from a .env file), command-line flags.

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""

import argparse
import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from sysdash.errors import ConfigError
from sysdash.monitor.procfs import PROC_ROOT
from sysdash.monitor.thresholds import ThresholdPolicy, Thresholds

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/sysdash/config.yaml")
DEFAULT_LOG_FILE = Path("~/.local/state/sysdash/sysdash.log")
DEFAULT_INTERVAL = 5.0
DEFAULT_SAMPLE_DURATION = 1.0


@dataclass(frozen=True)
class MonitorConfig:
    """Everything a report cycle needs to know. Built once, never mutated."""

    watch: bool = False
    interval: float = DEFAULT_INTERVAL
    sample_duration: float = DEFAULT_SAMPLE_DURATION
    log_enabled: bool = False
    log_file: Path = DEFAULT_LOG_FILE
    interface: str | None = None
    use_tools: bool = True
    per_core: bool = True
    thresholds: Thresholds = field(default_factory=Thresholds)
    proc_root: Path = PROC_ROOT
    verbose: bool = False


def load_env() -> None:
    """Load a .env file from the working directory without overriding the environment."""
    load_dotenv(override=False)


def _positive(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise ConfigError(f"{name} must be a finite number, got {value!r}")
    if number <= 0:
        raise ConfigError(f"{name} must be greater than 0, got {number:g}")
    return number


def _percent(name: str, value: Any) -> float:
    number = _positive(name, value)
    if number > 100:
        raise ConfigError(f"{name} must be at most 100, got {number:g}")
    return number


def _bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _parse_thresholds(raw: Any) -> dict[str, ThresholdPolicy]:
    if not isinstance(raw, Mapping):
        raise ConfigError("thresholds must be a mapping")

    policies = {}
    for name, spec in raw.items():
        if name not in Thresholds.names():
            raise ConfigError(
                f"unknown threshold '{name}', expected one of: {', '.join(Thresholds.names())}"
            )
        if not isinstance(spec, Mapping) or "warn" not in spec or "critical" not in spec:
            raise ConfigError(f"threshold '{name}' needs 'warn' and 'critical'")
        warn = _positive(f"thresholds.{name}.warn", spec["warn"])
        critical = _positive(f"thresholds.{name}.critical", spec["critical"])
        if warn > critical:
            raise ConfigError(
                f"threshold '{name}': warn ({warn:g}) exceeds critical ({critical:g})"
            )
        policies[name] = ThresholdPolicy(warn, critical)
    return policies


def read_config_file(path: Path) -> dict[str, Any]:
    """
    Read a YAML config file.

    Raises:
        ConfigError: If the file cannot be read or is not a mapping
    """
    try:
        with open(path.expanduser(), encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _config_path(args: argparse.Namespace | None, environ: Mapping[str, str]) -> Path | None:
    explicit = getattr(args, "config", None) or environ.get("SYSDASH_CONFIG")
    if explicit:
        return Path(explicit)
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def _from_file(data: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "interval" in data:
        values["interval"] = _positive("interval", data["interval"])
    if "sample_duration" in data:
        values["sample_duration"] = _positive("sample_duration", data["sample_duration"])
    if data.get("interface"):
        values["interface"] = str(data["interface"])
    if data.get("log_file"):
        values["log_file"] = Path(str(data["log_file"]))
    if "log" in data:
        values["log_enabled"] = _bool("log", data["log"])
    if "use_tools" in data:
        values["use_tools"] = _bool("use_tools", data["use_tools"])
    if "per_core" in data:
        values["per_core"] = _bool("per_core", data["per_core"])
    if "thresholds" in data:
        values["threshold_overrides"] = _parse_thresholds(data["thresholds"])
    return values


def _from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if environ.get("SYSDASH_INTERVAL"):
        values["interval"] = _positive("SYSDASH_INTERVAL", environ["SYSDASH_INTERVAL"])
    if environ.get("SYSDASH_SAMPLE_DURATION"):
        values["sample_duration"] = _positive(
            "SYSDASH_SAMPLE_DURATION", environ["SYSDASH_SAMPLE_DURATION"]
        )
    if environ.get("SYSDASH_INTERFACE"):
        values["interface"] = environ["SYSDASH_INTERFACE"]
    if environ.get("SYSDASH_LOG_FILE"):
        values["log_file"] = Path(environ["SYSDASH_LOG_FILE"])
    if environ.get("SYSDASH_CPU_CRITICAL"):
        values["cpu_critical"] = _percent("SYSDASH_CPU_CRITICAL", environ["SYSDASH_CPU_CRITICAL"])
    if environ.get("SYSDASH_NO_TOOLS"):
        values["use_tools"] = not _bool("SYSDASH_NO_TOOLS", environ["SYSDASH_NO_TOOLS"])
    return values


def _from_args(args: argparse.Namespace) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if getattr(args, "watch", False):
        values["watch"] = True
    if getattr(args, "interval", None) is not None:
        values["interval"] = _positive("interval", args.interval)
    if getattr(args, "sample", None) is not None:
        values["sample_duration"] = _positive("sample duration", args.sample)
    if getattr(args, "log", False):
        values["log_enabled"] = True
    if getattr(args, "log_file", None):
        values["log_file"] = Path(args.log_file)
    if getattr(args, "threshold", None) is not None:
        values["cpu_critical"] = _percent("CPU threshold", args.threshold)
    if getattr(args, "interface", None):
        values["interface"] = args.interface
    if getattr(args, "no_tools", False):
        values["use_tools"] = False
    if getattr(args, "verbose", False):
        values["verbose"] = True
    return values


def load_config(
    args: argparse.Namespace | None = None,
    environ: Mapping[str, str] | None = None,
) -> MonitorConfig:
    """
    Build the MonitorConfig from every source.

    Args:
        args: Parsed command-line arguments (None = no flags)
        environ: Environment mapping (default: os.environ)

    Raises:
        ConfigError: On any invalid value, before anything is sampled
    """
    environ = os.environ if environ is None else environ

    values: dict[str, Any] = {}
    path = _config_path(args, environ)
    if path is not None:
        logger.debug(f"Loading config file {path}")
        values.update(_from_file(read_config_file(path)))
    values.update(_from_env(environ))
    if args is not None:
        values.update(_from_args(args))

    thresholds = Thresholds().with_overrides(values.pop("threshold_overrides", {}))
    cpu_critical = values.pop("cpu_critical", None)
    if cpu_critical is not None:
        thresholds = thresholds.with_cpu_critical(cpu_critical)

    log_file = values.pop("log_file", DEFAULT_LOG_FILE)
    return MonitorConfig(thresholds=thresholds, log_file=log_file.expanduser(), **values)
