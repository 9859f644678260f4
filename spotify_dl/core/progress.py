"""
Progress bar for spotify-dl using the Rich library.

Usage:
    from spotify_dl.core.progress import DownloadProgressBar

    with DownloadProgressBar(total=100) as progress:
        for result in results:
            progress.update(result.status)
"""

from typing import Optional

from rich import get_console
from rich.console import JustifyMethod, OverflowMethod
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    Task,
    TaskID,
    TimeElapsedColumn,
)
from rich.style import StyleType
from rich.text import Text
from rich.theme import Theme

from spotify_dl.download.results import JobStatus


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(30,215,96)",  # Spotify green
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(30,215,96)",
    "progress.percentage": "white",
})


class SizedTextColumn(ProgressColumn):
    """
    Text column with a fixed width.

    Text longer than the width is truncated with the given overflow method.
    """

    def __init__(
        self,
        text_format: str,
        style: StyleType = "none",
        justify: JustifyMethod = "left",
        overflow: Optional[OverflowMethod] = None,
        width: int = 20,
    ) -> None:
        self.text_format = text_format
        self.justify: JustifyMethod = justify
        self.style = style
        self.overflow: Optional[OverflowMethod] = overflow
        self.width = width
        super().__init__()

    def render(self, task: Task) -> Text:
        text = Text.from_markup(
            self.text_format.format(task=task), style=self.style, justify=self.justify
        )
        text.truncate(max_width=self.width, overflow=self.overflow, pad=True)
        return text


class DownloadProgressBar:
    """
    Progress bar for a download batch.

    Displays:
    - Description (e.g., "Downloading")
    - Status: ✓ completed, ✗ failed, ⊘ already present, ∅ unavailable
    - Progress bar
    - Percentage and elapsed time

    Example:
        Downloading     ✓ 120  ✗ 3  ⊘ 5  ∅ 1    ━━━━━━━━━━━━━━━━━  64% 0:03:12
    """

    def __init__(self, total: int, description: str = "Downloading", status_width: int = 35):
        """
        Initialize the download progress bar.

        Args:
            total: Total number of tracks in the batch.
            description: Description to show on the left.
            status_width: Width of the status column.
        """
        self.total = total
        self.description = description
        self.completed = 0
        self.counts = {status: 0 for status in JobStatus}

        self.console = get_console()
        self.console.push_theme(PROGRESS_THEME)

        self.progress = Progress(
            SizedTextColumn("[white]{task.description}", overflow="ellipsis", width=15),
            SizedTextColumn("{task.fields[status]}", width=status_width, style="white"),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: Optional[TaskID] = None
        self._started = False

    def __enter__(self) -> "DownloadProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if not self._started:
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                status=self._get_status_text(),
            )
            self._started = True

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def _get_status_text(self) -> str:
        parts = [
            f"[green]✓ {self.counts[JobStatus.COMPLETED]}[/green]",
            f"[red]✗ {self.counts[JobStatus.FAILED]}[/red]",
        ]
        if self.counts[JobStatus.SKIPPED_ALREADY_PRESENT] > 0:
            parts.append(f"[yellow]⊘ {self.counts[JobStatus.SKIPPED_ALREADY_PRESENT]}[/yellow]")
        if self.counts[JobStatus.SKIPPED_UNAVAILABLE] > 0:
            parts.append(f"[magenta]∅ {self.counts[JobStatus.SKIPPED_UNAVAILABLE]}[/magenta]")
        return "  ".join(parts)

    def update(self, status: JobStatus) -> None:
        """
        Count one finished track.

        Args:
            status: Outcome of the track.
        """
        self.completed += 1
        self.counts[status] += 1
        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )
