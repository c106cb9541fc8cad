"""Console output for batch parsing: archive and parse-stage bars, summaries."""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)

from metarecord.core.models import Record


class ProgressHandler:
    """
    reports batch progress on stderr.

    with ``show_progress`` two bars are drawn: one counting archives and one
    following the parse stages of the archive being processed.
    """

    def __init__(self, quiet: bool = False, show_progress: bool = False) -> None:
        self.quiet = quiet
        self.show_progress = show_progress
        self._console = Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._archives: Optional[TaskID] = None
        self._stage: Optional[TaskID] = None

    def __enter__(self) -> "ProgressHandler":
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self._stop()

    def _stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

    def start(self, total: int) -> None:
        """draws the archive and stage bars for total archives."""
        if not self.show_progress or total == 0:
            return

        self._progress = Progress(
            TextColumn("{task.description:<8}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.fields[detail]}"),
            console=self._console,
            transient=True,
        )
        self._progress.start()
        self._archives = self._progress.add_task("Archives", total=total, detail="")
        self._stage = self._progress.add_task("Stage", total=100, detail="")

    def stage(self, archive: str, step: str, percent: int) -> None:
        """moves the stage bar to the parse step reached for archive."""
        if self._progress is None or self._stage is None:
            return

        self._progress.update(
            self._stage, completed=percent, detail=f"{archive}: {step}"
        )

    def advance(self, archive: str, ok: bool = True) -> None:
        """counts archive as processed and clears the stage bar."""
        if self._progress is None or self._archives is None or self._stage is None:
            return

        detail = archive if ok else f"{archive} (failed)"
        self._progress.update(self._archives, advance=1, detail=detail)
        self._progress.reset(self._stage, total=100, detail="")

    def summarize(self, record: Record) -> None:
        """prints what was parsed from one archive, then its diagnostics."""
        if self.quiet:
            return

        empty = len(record.empty_sections)
        self._console.print(
            f"{record.source_name}: {len(record.conversations)} conversation(s), "
            f"{len(record.sections_found)} section(s) found ({empty} empty)"
        )
        for note in record.diagnostics:
            self._console.print(f"[yellow]  {note}[/yellow]")

    def log_error(self, message: str) -> None:
        """prints an error, quiet or not."""
        self._console.print(f"[red]ERROR:[/red] {message}")

    def log_info(self, message: str) -> None:
        if self.quiet:
            return

        self._console.print(message)

    def finish(self, processed: int, failed: int) -> None:
        """removes the bars and prints the batch summary unless quiet."""
        self._stop()

        if self.quiet:
            return

        total = processed + failed
        self._console.print(
            f"Parsed {total} archive(s): {processed} exported, {failed} failed"
        )
