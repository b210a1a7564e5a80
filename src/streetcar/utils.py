"""Utility helpers for the streetcar package."""

from __future__ import annotations

import logging
import math

import rich.console
import rich.logging

# ── Verbosity → logging level ────────────────────────────────────────────────
_LEVELS: dict[int, int] = {
    0: logging.WARNING,
    1: logging.INFO,
}

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def setup_logging(verbosity: int = 1) -> None:
    """Install a rich console handler; 0 = quiet, 1 = normal, 2+ = debug."""
    log_format = r"\[[bold]%(name)s[/bold]] %(message)s"
    logging.basicConfig(
        level=_LEVELS.get(verbosity, logging.DEBUG),
        format=log_format,
        datefmt="[%X]",
        handlers=[
            rich.logging.RichHandler(
                console=rich.console.Console(color_system="auto", stderr=True),
                show_level=True,
                show_path=False,
                enable_link_path=False,
                rich_tracebacks=True,
                tracebacks_show_locals=False,
                markup=True,
            )
        ],
        force=True,
    )


def format_duration(seconds: float) -> str:
    """Convert *seconds* to a compact duration string.

    Examples: ``"1d 2h 3m 4s"``, ``"12m 5s"``, ``"0s"``. Zero components are
    left out.
    """
    total = max(int(math.floor(seconds)), 0)
    d, remainder = divmod(total, 86400)
    h, remainder = divmod(remainder, 3600)
    m, s = divmod(remainder, 60)

    parts = [f"{v}{unit}" for v, unit in ((d, "d"), (h, "h"), (m, "m"), (s, "s")) if v]
    return " ".join(parts) if parts else "0s"


def format_bytes(num_bytes: int) -> str:
    """``1536`` → ``'1.5 KB'`` (binary multiples, two decimals at most)."""
    value = float(num_bytes)
    for unit in _BYTE_UNITS:
        if abs(value) < 1024 or unit == _BYTE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"
