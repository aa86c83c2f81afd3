"""Terminal progress rendering for scans and refreshes."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text

from ..engine import ProbeOutcome, ProbeResult


@dataclass
class ProgressState:
    total: int | None
    active: int = 0
    inactive: int = 0
    missing: int = 0
    failed: int = 0
    last_id: int | None = None

    @property
    def checked(self) -> int:
        return self.active + self.inactive + self.missing


class RateColumn(ProgressColumn):
    """Render probes per second."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} id/s", style="progress.percentage")


class ProgressReporter:
    """Render progress and keep counters; usable as a probe listener."""

    def __init__(self, enabled: bool = True, label: str = "scan") -> None:
        self.enabled = enabled
        self.label = label
        self.state: ProgressState | None = None
        self._console: Console | None = None
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()

    def start(self, total: int | None = None) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        self._console = Console()
        if not self._console.is_terminal:
            self._console = None
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<12}"),
            BarColumn(bar_width=None),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[active]:>5}"),
            TextColumn("[yellow]○{task.fields[inactive]:>5}"),
            TextColumn("[red]✗{task.fields[failed]:>4}"),
            TextColumn("[dim]#{task.fields[last_id]}"),
            transient=True,
            console=self._console,
        )
        try:
            self._progress.start()
        except LiveError:
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            self.label, total=total, label=self.label, active=0, inactive=0, failed=0, last_id="-"
        )

    def __call__(self, result: ProbeResult) -> None:
        self.advance(result)

    def advance(self, result: ProbeResult) -> None:
        if self.state is None:
            raise RuntimeError("ProgressReporter.start must be called before advance")
        with self._lock:
            if result.outcome is ProbeOutcome.ACTIVE:
                self.state.active += 1
            elif result.outcome is ProbeOutcome.INACTIVE:
                self.state.inactive += 1
            else:
                self.state.missing += 1
            if result.failed:
                self.state.failed += 1
            self.state.last_id = result.item_id
            if self._progress is not None and self._task_id is not None:
                self._progress.update(
                    self._task_id,
                    advance=1,
                    active=self.state.active,
                    inactive=self.state.inactive,
                    failed=self.state.failed,
                    last_id=result.item_id,
                )

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if self.state is None:
            return {"checked": 0, "active": 0, "inactive": 0, "failed": 0}
        return {
            "checked": self.state.checked,
            "active": self.state.active,
            "inactive": self.state.inactive,
            "failed": self.state.failed,
        }


__all__ = ["ProgressReporter", "ProgressState"]
