"""Rich-powered listings of the reading history and available voices."""

from __future__ import annotations

from typing import Iterable, Optional

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..services.storage import DocumentRecord, ReadingRepository
from ..speech.voices import Voice


def _progress_percent(record: DocumentRecord) -> int:
    if not record.character_count:
        return 0
    return int(round(100 * record.char_offset / record.character_count))


class HistoryView:
    """Render the reading history with the position reached in each document."""

    def __init__(self, repository: ReadingRepository, *, console: Optional[Console] = None) -> None:
        self._repository = repository
        self._console = console or Console()

    def run(self) -> None:
        documents = self._repository.iter_documents()
        console = self._console

        if not documents:
            console.print(
                Panel(
                    "Reading history is empty.\n"
                    "Use [bold]python run.py read FILE[/bold] or the web reader to add text.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        console.print(Group(self._build_table(documents), self._build_summary(documents)))

    def _build_table(self, documents: Iterable[DocumentRecord]) -> Table:
        table = Table(title="Reading history", box=box.SIMPLE_HEAVY, expand=True)
        table.add_column("#", justify="right", style="dim", no_wrap=True)
        table.add_column("Lang", style="cyan", no_wrap=True)
        table.add_column("Read", justify="right", style="bold", no_wrap=True)
        table.add_column("Title", ratio=1)
        table.add_column("Last played", style="dim", no_wrap=True)

        for record in documents:
            percent = _progress_percent(record)
            style = "green" if record.char_offset else "white"
            table.add_row(
                str(record.id),
                record.language,
                Text(f"{percent}%", style=style),
                record.title,
                record.last_played_at[:16].replace("T", " "),
            )
        return table

    def _build_summary(self, documents: Iterable[DocumentRecord]) -> Text:
        items = list(documents)
        in_progress = sum(1 for record in items if record.char_offset)
        return Text(
            f"{len(items)} of {self._repository.history_limit} slots used, "
            f"{in_progress} in progress",
            style="dim",
        )


def render_voices(voices: Iterable[Voice], *, console: Optional[Console] = None) -> None:
    console = console or Console()
    items = list(voices)
    if not items:
        console.print("[yellow]No voices found.")
        return

    table = Table(box=box.SIMPLE, expand=True)
    table.add_column("Language", style="cyan", no_wrap=True)
    table.add_column("Gender", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Id", style="dim", overflow="fold")
    for voice in items:
        table.add_row(voice.lang or "?", voice.gender, voice.name, voice.id)
    console.print(table)


__all__ = ["HistoryView", "render_voices"]
