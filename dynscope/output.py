"""Terminal-safe rendering of diagnostic check results."""

from __future__ import annotations

import sys
from typing import Iterable

from rich.console import Console
from rich.markup import escape

from .services.system_service import DoctorCheckResult

# Unicode marker, ASCII fallback and style for each outcome.
_MARKERS: dict[bool, tuple[str, str, str]] = {
    True: ("✓", "OK", "green"),
    False: ("✗", "X", "red"),
}


def can_encode(text: str, encoding: str | None) -> bool:
    if not encoding:
        return False
    try:
        text.encode(encoding)
    except (LookupError, UnicodeError):
        return False
    return True


def supports_unicode_output(console: Console | None = None) -> bool:
    sample = "".join(marker for marker, _, _ in _MARKERS.values())
    encodings = (console.encoding if console is not None else None, sys.stdout.encoding)
    return any(can_encode(sample, encoding) for encoding in encodings)


def format_status_icon(passed: bool, console: Console | None = None) -> str:
    unicode_marker, ascii_marker, style = _MARKERS[passed]
    marker = unicode_marker if supports_unicode_output(console) else ascii_marker
    return f"[{style}]{marker}[/{style}]"


def render_check_results(results: Iterable[DoctorCheckResult], console: Console) -> bool:
    """Print one line per check (plus its detail) and report whether all passed."""
    all_passed = True
    for result in results:
        all_passed = all_passed and result.passed
        icon = format_status_icon(result.passed, console=console)
        console.print(f"  {icon} [bold]{escape(result.name)}:[/bold] {escape(result.message)}")
        if result.detail:
            console.print(f"      [dim]{escape(result.detail)}[/dim]")
    return all_passed
