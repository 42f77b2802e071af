"""
Exception types for sysdash.

Author: sysdash developers
SPDX-License-Identifier: BUSL-1.1
"""


class SysdashError(Exception):
    """Base class for all sysdash errors."""


class MissingSourceError(SysdashError):
    """A kernel pseudo-file is missing, unreadable or malformed."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class ToolParseError(SysdashError):
    """Output of an optional diagnostic tool did not have the expected shape."""


class ConfigError(SysdashError, ValueError):
    """Invalid configuration value."""
