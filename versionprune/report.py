"""Human-readable status reporting for a cleanup run."""

from __future__ import annotations

import html
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.text import Text


class ReportOutcome(str, Enum):
    NEUTRAL = "neutral"
    SUCCESS = "success"
    FAILURE = "failure"


@runtime_checkable
class ReportSink(Protocol):
    """Receives status lines from the scanner and pruner."""

    def notify(
        self,
        message: str,
        *,
        inline: bool = False,
        outcome: ReportOutcome = ReportOutcome.NEUTRAL,
    ) -> None: ...


class NullReportSink:
    """Discards every notification."""

    def notify(
        self,
        message: str,
        *,
        inline: bool = False,
        outcome: ReportOutcome = ReportOutcome.NEUTRAL,
    ) -> None:
        return None


@dataclass(frozen=True, slots=True)
class ReportEntry:
    message: str
    inline: bool
    outcome: ReportOutcome


_STYLES = {
    ReportOutcome.NEUTRAL: "",
    ReportOutcome.SUCCESS: "green",
    ReportOutcome.FAILURE: "red",
}


class ReportLog:
    """Collects notifications while enabled and renders them as text or HTML."""

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = enabled
        self._entries: list[ReportEntry] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def entries(self) -> tuple[ReportEntry, ...]:
        return tuple(self._entries)

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def notify(
        self,
        message: str,
        *,
        inline: bool = False,
        outcome: ReportOutcome = ReportOutcome.NEUTRAL,
    ) -> None:
        if self._enabled:
            self._entries.append(ReportEntry(message=message, inline=inline, outcome=outcome))

    def render_text(self, console: Console | None = None) -> None:
        """Print the collected entries, inline entries indented under their heading."""

        console = console or Console()
        for entry in self._entries:
            prefix = "  " if entry.inline else ""
            console.print(Text(prefix + entry.message, style=_STYLES[entry.outcome]))

    def render_html(self) -> str:
        lines: list[str] = []
        for entry in self._entries:
            tag, suffix = ("span", "<br />") if entry.inline else ("p", "")
            color = _STYLES[entry.outcome]
            style = f' style="color:{color};"' if color else ""
            lines.append(f"  <{tag}{style}>{html.escape(entry.message)}</{tag}>{suffix}")
        return "\n".join(lines)


__all__ = [
    "NullReportSink",
    "ReportEntry",
    "ReportLog",
    "ReportOutcome",
    "ReportSink",
]
