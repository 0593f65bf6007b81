"""A Rich-powered console overview of imported content and learning paths."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ..services.storage import (
    CONTENT_STATUSES,
    ContentRecord,
    ContentRepository,
    LearningPathRecord,
)


STATUS_STYLES: Dict[str, str] = {
    "pending": "yellow",
    "processing": "cyan",
    "completed": "green",
    "failed": "red",
}


@dataclass
class OverviewSnapshot:
    content: List[ContentRecord]
    learning_paths: List[LearningPathRecord]
    status_totals: Dict[str, int]


class ContentOverview:
    """Render stored content records and learning paths using Rich widgets."""

    def __init__(self, repository: ContentRepository, *, console: Optional[Console] = None) -> None:
        self._repository = repository
        self._console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self, *, status: Optional[str] = None) -> None:
        snapshot = self._collect_snapshot(status)
        console = self._console

        console.rule("[bold magenta]Educational Content")

        if not snapshot.content and not snapshot.learning_paths:
            console.print(
                Panel(
                    "Nothing has been imported yet.\n"
                    "Use [bold]edu-content import-video URL[/bold] to add a video.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        content_panel = Panel(
            self._build_content_table(snapshot.content),
            title="Imports",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([content_panel, self._build_stats_panel(snapshot)], expand=True))

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_content_table(records: List[ContentRecord]) -> Table:
        table = Table(box=box.SIMPLE_HEAD, expand=True)
        table.add_column("ID", style="dim", overflow="fold")
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Progress", justify="right")

        if not records:
            table.add_row("[dim]-", "[dim]No imports match", "", "")
            return table

        for record in records:
            status_label = Text(record.status, style=STATUS_STYLES.get(record.status, "white"))
            if record.error_details:
                status_label.append(f"\n{record.error_details}", style="dim")
            table.add_row(record.id, record.title or "", status_label, f"{record.progress}%")
        return table

    @staticmethod
    def _build_stats_panel(snapshot: OverviewSnapshot) -> Panel:
        totals = Table.grid(expand=True, padding=(0, 1))
        totals.add_column(style="dim")
        totals.add_column(justify="right", style="bold")
        for status in CONTENT_STATUSES:
            totals.add_row(status.capitalize(), str(snapshot.status_totals.get(status, 0)))

        paths = Table.grid(expand=True, padding=(0, 1))
        paths.add_column(style="dim")
        paths.add_column(justify="right", style="bold")
        paths.add_row("Learning paths", str(len(snapshot.learning_paths)))

        body = Group(totals, Rule(style="magenta"), paths)
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)

    # ------------------------------------------------------------------
    # Data aggregation
    # ------------------------------------------------------------------
    def _collect_snapshot(self, status: Optional[str]) -> OverviewSnapshot:
        content = self._repository.list_content(status=status)
        status_totals = {key: 0 for key in CONTENT_STATUSES}
        for record in content:
            status_totals[record.status] = status_totals.get(record.status, 0) + 1

        return OverviewSnapshot(
            content=content,
            learning_paths=self._repository.list_learning_paths(),
            status_totals=status_totals,
        )


__all__ = ["ContentOverview"]
