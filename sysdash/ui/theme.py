"""
sysdash UI Theme - Color constants and styling definitions.
Severity bands map onto the ok / warn / critical styles.
"""

from rich.style import Style
from rich.theme import Theme

from sysdash.monitor.thresholds import Severity

COLORS = {
    "ok": "#22c55e",
    "warn": "#eab308",
    "critical": "#ef4444",
    "info": "#3b82f6",
    "secondary": "#6b7280",
    "primary": "#ffffff",
    "accent": "#06b6d4",
    "panel_border": "#4b5563",
    "muted": "#9ca3af",
}

SYMBOLS = {
    "ok": "✓",
    "warn": "⚠",
    "critical": "✗",
    "unavailable": "–",
    "rx": "↓",
    "tx": "↑",
    "bar_full": "█",
    "bar_empty": "░",
}

SYSDASH_THEME = Theme({
    "ok": Style(color=COLORS["ok"]),
    "warn": Style(color=COLORS["warn"], bold=True),
    "critical": Style(color=COLORS["critical"], bold=True),
    "info": Style(color=COLORS["info"]),
    "secondary": Style(color=COLORS["secondary"], dim=True),
    "primary": Style(color=COLORS["primary"]),
    "accent": Style(color=COLORS["accent"], bold=True),
    "muted": Style(color=COLORS["muted"]),
    "panel_border": Style(color=COLORS["panel_border"]),
})

SEVERITY_STYLES = {
    Severity.OK: "ok",
    Severity.WARN: "warn",
    Severity.CRITICAL: "critical",
}

PANEL_STYLES = {
    "default": {"border_style": "panel_border", "title_align": "left", "padding": (0, 1)},
    "header": {"border_style": "accent", "title_align": "left", "padding": (0, 1)},
    "warn": {"border_style": "warn", "title_align": "left", "padding": (0, 1)},
    "critical": {"border_style": "critical", "title_align": "left", "padding": (0, 1)},
}


def severity_style(severity: Severity) -> str:
    return SEVERITY_STYLES[severity]
