"""
Progress bars for the sync phases, rendered with Rich.

Each phase shows one bar with a running count per outcome:

    Tracks      ✓ 4512  ✗ 38  = 10240   ━━━━━━━━━━━━━━━━━━━━━━━━━   47%  0:01:12
    Albums      ✓ 312  = 1894           ━━━━━━━━━━━━━━━━━━━━━━━━━   64%  0:00:03

In verbose mode every item is logged instead, and the synchronizer uses
NullProgressBar so the calling code stays the same.

Usage:
    from mbnd_sync.core.progress import TrackProgressBar

    with TrackProgressBar(total=100) as progress:
        for record in records:
            progress.update(updated=True)
"""

from collections import Counter
from typing import Optional

from rich import get_console
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})

# Outcome -> (symbol, Rich style)
OUTCOME_MARKERS = {
    "updated": ("✓", "green"),
    "not_found": ("✗", "red"),
    "unchanged": ("=", "white"),
}


class PhaseProgressBar:
    """
    Progress bar counting the outcome of every processed item.

    Attributes:
        total: Number of items the phase will process.
        description: Label on the left ("Tracks", "Albums", "Artists").
        outcomes: Outcome names shown in the status, in display order.
        counts: Items seen per outcome.
        completed: Items processed so far.
    """

    outcomes: tuple[str, ...] = ("updated", "unchanged")
    # Always shown, even at zero; other outcomes appear once they occur
    pinned_outcomes: tuple[str, ...] = ("updated",)

    def __init__(
        self,
        total: int,
        description: str,
        console: Optional[Console] = None
    ) -> None:
        self.total = total
        self.description = description
        self.counts: Counter[str] = Counter()
        self.completed = 0

        self.console = console or get_console()
        self.progress = Progress(
            TextColumn("[white]{task.description:<10}"),
            TextColumn("{task.fields[status]:<30}"),
            BarColumn(bar_width=40, finished_style="green"),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeRemainingColumn(),
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )
        self.task_id: Optional[TaskID] = None
        self._theme_pushed = False

    def __enter__(self) -> "PhaseProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if self.task_id is not None:
            return
        self.console.push_theme(PROGRESS_THEME)
        self._theme_pushed = True
        self.progress.start()
        self.task_id = self.progress.add_task(
            self.description,
            total=self.total,
            status=self.status_text,
        )

    def stop(self) -> None:
        if self.task_id is None:
            return
        self.progress.stop()
        self.task_id = None
        if self._theme_pushed:
            self.console.pop_theme()
            self._theme_pushed = False

    @property
    def status_text(self) -> str:
        """Outcome counters with Rich markup, e.g. "[green]✓ 3[/green]  [white]= 5[/white]"."""
        parts = []
        for outcome in self.outcomes:
            count = self.counts[outcome]
            if count == 0 and outcome not in self.pinned_outcomes:
                continue
            symbol, style = OUTCOME_MARKERS[outcome]
            parts.append(f"[{style}]{symbol} {count}[/{style}]")
        return "  ".join(parts)

    def advance(self, outcome: str) -> None:
        """Count one processed item."""
        self.counts[outcome] += 1
        self.completed += 1
        if self.task_id is not None:
            self.progress.update(self.task_id, completed=self.completed, status=self.status_text)


class TrackProgressBar(PhaseProgressBar):
    """Tracks phase: updated, not found in Navidrome, already up to date."""

    outcomes = ("updated", "not_found", "unchanged")
    pinned_outcomes = ("updated", "not_found")

    def __init__(self, total: int, description: str = "Tracks", console: Optional[Console] = None) -> None:
        super().__init__(total, description, console)

    @property
    def updated(self) -> int:
        return self.counts["updated"]

    @property
    def not_found(self) -> int:
        return self.counts["not_found"]

    @property
    def unchanged(self) -> int:
        return self.counts["unchanged"]

    def update(self, updated: bool = False, not_found: bool = False) -> None:
        """
        Record one processed CSV track.

        Args:
            updated: An annotation was written for the track.
            not_found: The track has no match in Navidrome.
        """
        if not_found:
            self.advance("not_found")
        elif updated:
            self.advance("updated")
        else:
            self.advance("unchanged")


class AggregateProgressBar(PhaseProgressBar):
    """Albums and artists phases: updated or already up to date."""

    def __init__(self, total: int, description: str = "Albums", console: Optional[Console] = None) -> None:
        super().__init__(total, description, console)

    @property
    def updated(self) -> int:
        return self.counts["updated"]

    @property
    def unchanged(self) -> int:
        return self.counts["unchanged"]

    def update(self, updated: bool) -> None:
        self.advance("updated" if updated else "unchanged")


class NullProgressBar:
    """Verbose-mode stand-in: same interface, renders nothing."""

    def __init__(self, total: int = 0, description: str = "") -> None:
        self.total = total
        self.description = description
        self.completed = 0

    def __enter__(self) -> "NullProgressBar":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    def update(self, *args, **kwargs) -> None:
        self.completed += 1


__all__ = [
    "PROGRESS_THEME",
    "PhaseProgressBar",
    "TrackProgressBar",
    "AggregateProgressBar",
    "NullProgressBar",
]
