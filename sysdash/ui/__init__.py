"""sysdash UI - terminal theme and styling."""

from .theme import COLORS, PANEL_STYLES, SEVERITY_STYLES, SYMBOLS, SYSDASH_THEME, severity_style

__all__ = [
    "COLORS",
    "PANEL_STYLES",
    "SEVERITY_STYLES",
    "SYMBOLS",
    "SYSDASH_THEME",
    "severity_style",
]
