"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    filesize,
)
from rich.text import Text

from ..engine.counters import CountersSnapshot


class RateColumn(ProgressColumn):
    """Render records per second, e.g. "12.3K rec/s"."""

    def render(self, task: Task) -> Text:
        speed = task.fields.get("rate")
        if not speed:
            return Text("", style="progress.percentage")
        if speed < 1000:
            return Text(f"{speed:.1f} rec/s", style="progress.percentage")
        unit, suffix = filesize.pick_unit_and_suffix(
            int(speed),
            ["", "K", "M", "G", "T"],
            1000,
        )
        return Text(f"{speed / unit:.1f}{suffix} rec/s", style="progress.percentage")


class ThroughputColumn(ProgressColumn):
    """Render bytes per second using Rich's decimal file-size units."""

    def render(self, task: Task) -> Text:
        speed = task.fields.get("byte_rate")
        if not speed:
            return Text("", style="progress.data.speed")
        return Text(f"{filesize.decimal(int(speed))}/s", style="progress.data.speed")


class ProgressReporter:
    """Render RunCounters snapshots as a live progress row.

    The reporter is fed from the timer thread, so updates are serialised
    through a lock. Outside a terminal it stays silent and only keeps the
    last snapshot.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None, label: str = "refinery") -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()
        self._label = label
        self.last: CountersSnapshot | None = None

    def start(self) -> None:
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console(stderr=True)
        if not self._console.is_terminal:
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<10}", justify="left"),
            TimeElapsedColumn(),
            TextColumn("{task.fields[total]:>12,} rec", justify="right"),
            RateColumn(),
            ThroughputColumn(),
            TextColumn("[green]✓{task.fields[kept]:>9,}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>8,}", justify="right"),
            TextColumn("[yellow]dust {task.fields[dust]:>8,}", justify="right"),
            TextColumn("[magenta]bad {task.fields[malformed]:>8,}", justify="right"),
            TextColumn("[cyan]dup {task.fields[duplicate]:>8,}", justify="right"),
            refresh_per_second=4,
            expand=False,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.start()
        except LiveError:
            # another live display owns the console
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task("refine", total=None, **self._fields(CountersSnapshot()))

    def _fields(self, snapshot: CountersSnapshot) -> dict[str, object]:
        return {
            "label": self._label,
            "total": snapshot.total,
            "kept": snapshot.kept,
            "failed": snapshot.dropped_failed,
            "dust": snapshot.dropped_dust,
            "malformed": snapshot.dropped_malformed,
            "duplicate": snapshot.dropped_duplicate,
            "rate": snapshot.records_per_second,
            "byte_rate": snapshot.bytes_per_second,
        }

    def update(self, snapshot: CountersSnapshot) -> None:
        with self._lock:
            self.last = snapshot
            if self._progress is not None and self._task_id is not None:
                self._progress.update(self._task_id, completed=snapshot.total, **self._fields(snapshot))

    __call__ = update

    def close(self) -> None:
        with self._lock:
            if self._progress is not None:
                self._progress.stop()
                self._progress = None
            self._task_id = None


class ProgressActivity:
    """Indeterminate activity indicator using Rich Status spinner."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console or Console(stderr=True)
        self._status = None

    def start(self, message: str) -> None:
        if not self.enabled or self._status is not None or not self.console.is_terminal:
            return
        self._status = self.console.status(message)
        self._status.start()

    def update(self, message: str) -> None:
        if self._status is not None:
            self._status.update(message)

    def close(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None


__all__ = ["ProgressActivity", "ProgressReporter", "RateColumn", "ThroughputColumn"]
