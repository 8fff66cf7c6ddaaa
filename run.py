"""Entry-point for the Text to Loud application."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import webbrowser
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn

from text_to_loud.bootstrap import initialize_app
from text_to_loud.config import AppConfig
from text_to_loud.logging_utils import build_handlers, configure_logging, parse_log_level
from text_to_loud.services.events import emit_db_event
from text_to_loud.services.reader import ReaderError, ReaderSession
from text_to_loud.services.settings import SettingsStore, VoiceSettings
from text_to_loud.services.storage import ReadingRepository
from text_to_loud.speech.controller import PlaybackState
from text_to_loud.speech.engine import EngineUnavailableError, SpeechEngine
from text_to_loud.speech.language import detect_language, normalize_language
from text_to_loud.speech.pyttsx3_engine import Pyttsx3Engine
from text_to_loud.speech.scheduling import Scheduler
from text_to_loud.speech.voices import RATE_OPTIONS, Voice, normalize_rate, voices_for_language
from text_to_loud.ui import HistoryView, render_voices
from text_to_loud.web import create_app


LOGGER = logging.getLogger("text_to_loud.cli")


cli = typer.Typer(add_completion=False, help="Text to Loud commands")


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
_STATE_POLL_SECONDS = 0.1


class GenderChoice(str, Enum):
    FEMALE = "female"
    MALE = "male"


def _prepare_logging(storage_root: Path, level: int = logging.INFO) -> None:
    configure_logging(level, handlers=build_handlers(storage_root))


def _build_engine(scheduler: Scheduler) -> SpeechEngine:
    return Pyttsx3Engine(scheduler)


def _open_repository(config: AppConfig) -> ReadingRepository:
    repository = ReadingRepository(config)
    repository.configure_event_emitter(emit_db_event)
    return repository


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, open_browser=True, log_level="info")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    open_browser: bool = typer.Option(True, "--open-browser/--no-browser", help="Open the reader page"),
    log_level: str = typer.Option("info", "--log-level", help="Logging level (debug, info, warning...)"),
) -> None:
    """Run the FastAPI-powered reader."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root, parse_log_level(log_level))

    repository = _open_repository(app_config)
    app = create_app(repository, config=app_config, engine_factory=_build_engine)

    server_config = uvicorn.Config(app, host=host, port=port, log_config=None)
    server = uvicorn.Server(server_config)
    app.state.server = server

    browser_host = host
    if not browser_host or browser_host in {"0.0.0.0", "::"}:
        browser_host = "127.0.0.1"
    url = f"http://{browser_host}:{port}/"

    def _open_browser_later() -> None:
        time.sleep(1.0)
        try:
            webbrowser.open(url, new=2, autoraise=True)
        except Exception:  # noqa: BLE001 - a missing browser must not stop the server
            LOGGER.debug("Could not open a browser for %s", url)

    if open_browser:
        threading.Thread(target=_open_browser_later, daemon=True).start()

    server.run()


async def _read_aloud(
    repository: ReadingRepository,
    document_id: int,
    *,
    settings: VoiceSettings,
    config: AppConfig,
    from_start: bool,
) -> int:
    """Play *document_id* until it finishes or fails; return the saved offset."""

    loop = asyncio.get_running_loop()
    engine = _build_engine(loop)
    session = ReaderSession(repository, engine, loop, settings=settings, timing=config.speech)
    try:
        record = session.open_document(document_id, from_start=from_start)
        if record.char_offset:
            typer.echo(f"Resuming at character {record.char_offset} of {record.character_count}")
        session.play()
        while session.state is not PlaybackState.IDLE:
            await asyncio.sleep(_STATE_POLL_SECONDS)
    finally:
        document = session.document
        session.close()
        shutdown = getattr(engine, "shutdown", None)
        if callable(shutdown):
            shutdown()
    return document.char_offset if document is not None else 0


@cli.command()
def read(
    path: Path = typer.Argument(..., help="UTF-8 text file to read aloud"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Voice language code"),
    gender: Optional[GenderChoice] = typer.Option(None, "--gender", "-g", help="Preferred voice gender"),
    rate: Optional[float] = typer.Option(None, "--rate", "-r", help="Speed multiplier"),
    restart: bool = typer.Option(False, "--restart", help="Ignore the saved position"),
    log_level: str = typer.Option("info", "--log-level", help="Logging level (debug, info, warning...)"),
) -> None:
    """Read *path* aloud, resuming where the previous reading stopped."""

    path = path.expanduser()
    if not path.exists() or not path.is_file():
        raise typer.BadParameter(f"File '{path}' does not exist or is not a file.", param_hint="PATH")
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise typer.BadParameter(f"File '{path}' contains no text.", param_hint="PATH")

    if rate is not None:
        try:
            rate = normalize_rate(rate)
        except ValueError as error:
            raise typer.BadParameter(str(error), param_hint="--rate") from error

    config = initialize_app()
    _prepare_logging(config.storage_root, parse_log_level(log_level))
    repository = _open_repository(config)

    detected = detect_language(content)
    stored = SettingsStore(config).load()
    settings = VoiceSettings(
        language=normalize_language(language, detected) if language else detected,
        gender=gender.value if gender is not None else stored.gender,
        rate=rate if rate is not None else stored.rate,
    )

    record = repository.find_document_by_content(content)
    if record is None:
        document_id = repository.add_document(content, settings.language)
    else:
        document_id = record.id
        if language and record.language != settings.language:
            repository.update_language(document_id, settings.language)
    typer.echo(f"Reading '{path.name}' ({len(content)} characters, language={settings.language})")

    try:
        offset = asyncio.run(
            _read_aloud(
                repository,
                document_id,
                settings=settings,
                config=config,
                from_start=restart,
            )
        )
    except KeyboardInterrupt:
        saved = repository.get_document(document_id)
        position = saved.char_offset if saved is not None else 0
        typer.echo(f"Stopped at character {position}; run again to resume.")
        return
    except (EngineUnavailableError, ReaderError) as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error

    if offset:
        typer.echo(f"Playback stopped at character {offset}; run again to resume.")
    else:
        typer.echo("Finished reading.")


@cli.command()
def voices(
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Only list voices for this language"),
) -> None:
    """List the voices offered by the speech engine."""

    async def _collect() -> List[Voice]:
        engine = _build_engine(asyncio.get_running_loop())
        return engine.get_voices()

    try:
        available = asyncio.run(_collect())
    except EngineUnavailableError as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error

    if language:
        available = voices_for_language(available, language)
    render_voices(available)


@cli.command()
def history(
    clear: bool = typer.Option(False, "--clear", help="Remove every document from the history"),
) -> None:
    """Show recently read documents and the position reached in each."""

    config = initialize_app()
    repository = _open_repository(config)
    if clear:
        removed = repository.clear()
        typer.echo(f"Removed {removed} document(s) from the history.")
        return
    HistoryView(repository).run()


@cli.command()
def rates() -> None:
    """List the supported speed multipliers."""

    typer.echo(", ".join(f"{option:g}x" for option in RATE_OPTIONS))


if __name__ == "__main__":
    cli()
