"""sysdash - single-host Linux health dashboard."""

__version__ = "0.1.0"
