"""
Rich Output Utilities
=====================

Terminal output for TodoForge using the Rich library: one themed console,
message helpers, tables, panels and logging setup.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.theme import Theme


# =============================================================================
# Color Scheme & Theme
# =============================================================================

@dataclass(frozen=True)
class ForgeColors:
    """TodoForge color palette (hex for truecolor terminals)."""
    ink: str = "#E6E6E6"       # primary text
    dim: str = "#9AA4B2"       # muted text
    accent: str = "#F59E0B"    # warm accent
    cool: str = "#22D3EE"      # cool accent
    steel: str = "#94A3B8"     # secondary accent
    ok: str = "#22C55E"
    warn: str = "#FBBF24"
    err: str = "#EF4444"


def forge_theme(colors: ForgeColors = ForgeColors()) -> Theme:
    """
    Rich Theme for the TodoForge CLI.

    Style names are semantic:
      console.print("...", style="tf.ok")
    """
    return Theme(
        {
            "tf.border": f"{colors.cool}",
            "tf.accent": f"bold {colors.accent}",
            "tf.muted": f"{colors.dim}",
            "tf.text": f"{colors.ink}",

            "tf.ok": f"bold {colors.ok}",
            "tf.warn": f"bold {colors.warn}",
            "tf.err": f"bold {colors.err}",
            "tf.info": f"{colors.cool}",

            "tf.key": f"{colors.steel}",
            "tf.value": f"{colors.ink}",
            "tf.number": f"bold {colors.accent}",
            "tf.path": f"{colors.cool}",

            "tf.table.header": f"bold {colors.cool}",

            # Risk levels
            "tf.risk.low": f"{colors.ok}",
            "tf.risk.medium": f"{colors.warn}",
            "tf.risk.high": f"bold {colors.err}",
        }
    )


# =============================================================================
# Icons
# =============================================================================

# name -> (glyph, ASCII stand-in)
ICON_GLYPHS = {
    "check": ("✓", "[OK]"),
    "cross": ("✗", "[X]"),
    "warning": ("⚠️", "[!]"),
    "info": ("ℹ", "[i]"),
    "bullet": ("•", "-"),
}


def supports_glyphs(encoding: Optional[str]) -> bool:
    """True if every icon glyph can be written in ``encoding``."""
    try:
        "".join(glyph for glyph, _ in ICON_GLYPHS.values()).encode(encoding or "utf-8")
    except (UnicodeEncodeError, LookupError):
        return False
    return True


_USE_GLYPHS = supports_glyphs(getattr(sys.stdout, "encoding", None))
_ICONS = {name: glyph if _USE_GLYPHS else ascii_ for name, (glyph, ascii_) in ICON_GLYPHS.items()}


def icon(name: str) -> str:
    """Icon by name, in ASCII when stdout cannot encode the glyph."""
    return _ICONS.get(name, "")


# =============================================================================
# Global Console Instance
# =============================================================================

console = Console(theme=forge_theme())


# =============================================================================
# Basic Message Functions
# =============================================================================

def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[tf.ok]{icon('check')} {message}[/]")


def print_error(message: str) -> None:
    """Print an error message with X."""
    console.print(f"[tf.err]{icon('cross')} {message}[/]")


def print_warning(message: str) -> None:
    console.print(f"[tf.warn]{icon('warning')} {message}[/]")


def print_info(message: str) -> None:
    console.print(f"[tf.info]{icon('info')} {message}[/]")


def print_muted(message: str) -> None:
    console.print(f"[tf.muted]{message}[/]")


# =============================================================================
# Headers & Data Display
# =============================================================================

def print_header(title: str, style: str = "tf.accent") -> None:
    """Print a prominent section header with rule lines."""
    console.print()
    console.print(Rule(f"[{style}]{title}[/]", style=style))
    console.print()


def print_key_value_table(data: Dict[str, Any], *, title: Optional[str] = None) -> None:
    """Print multiple key-value pairs in a borderless table."""
    table = Table(show_header=False, box=None, padding=(0, 2), title=title, title_style="tf.accent")
    table.add_column("Key", style="tf.key")
    table.add_column("Value", style="tf.value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


def print_code(code: str, language: str = "typescript", *, line_numbers: bool = True) -> None:
    """Print syntax-highlighted source."""
    console.print(Syntax(code, language, line_numbers=line_numbers, word_wrap=False))


# =============================================================================
# Tables & Panels
# =============================================================================

def create_table(
    *,
    title: Optional[str] = None,
    columns: Optional[List[str]] = None,
    show_header: bool = True,
) -> Table:
    """Create a styled Rich Table."""
    table = Table(
        title=title,
        show_header=show_header,
        header_style="tf.table.header",
        border_style="tf.border",
        title_style="tf.accent",
    )
    for col in columns or []:
        table.add_column(col)
    return table


def print_table(table: Table) -> None:
    console.print(table)


def print_panel(
    content: Union[str, Text],
    *,
    title: Optional[str] = None,
    border_style: str = "tf.border",
    padding: tuple = (1, 2),
) -> None:
    """Print content in a styled panel."""
    console.print(Panel(
        content,
        title=f"[bold]{title}[/]" if title else None,
        border_style=border_style,
        padding=padding,
    ))


def risk_style(risk_level: str) -> str:
    return f"tf.risk.{risk_level}"


# =============================================================================
# Logging
# =============================================================================

def setup_rich_logging(level: int = logging.INFO) -> None:
    """
    Configure Python logging to render through the shared Rich console.

    Usage:
        setup_rich_logging()
        logging.getLogger(__name__).info("Scanning workspace")
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )],
        force=True,
    )
