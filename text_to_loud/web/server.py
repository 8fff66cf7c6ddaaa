"""FastAPI application exposing the reading history and playback controls."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import html
import logging
import uuid
from dataclasses import asdict
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel, Field
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.events import emit_app_event, emit_db_event
from ..services.reader import ReaderError, ReaderSession
from ..services.settings import SettingsStore, VoiceSettings
from ..services.storage import DocumentRecord, ReadingRepository
from ..speech.controller import split_highlight
from ..speech.engine import EngineUnavailableError, SpeechEngine
from ..speech.language import SUPPORTED_LANGUAGES, detect_language, normalize_language
from ..speech.scheduling import Scheduler
from ..speech.voices import RATE_OPTIONS, normalize_rate


EngineFactory = Callable[[Scheduler], SpeechEngine]


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "text_to_loud_request_id",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    request_id = _REQUEST_ID_VAR.get()
    return {"request_id": request_id} if request_id else {}


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        token = _REQUEST_ID_VAR.set(_new_correlation_id())
        try:
            await self.app(scope, receive, send)
        finally:
            _REQUEST_ID_VAR.reset(token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request correlation id into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("text_to_loud.events"), {})


def _log_event(message: str, **context: Any) -> None:
    emit_app_event(
        message,
        payload=context,
        correlation=_collect_correlation_context(),
        logger=EVENT_LOGGER,
    )


def _emit_db_event(action: str, **kwargs: Any) -> None:
    emit_db_event(action, correlation=_collect_correlation_context(), logger=EVENT_LOGGER, **kwargs)


def _default_engine_factory(scheduler: Scheduler) -> SpeechEngine:
    from ..speech.pyttsx3_engine import Pyttsx3Engine

    return Pyttsx3Engine(scheduler)


class DocumentCreatePayload(BaseModel):
    content: str
    language: Optional[str] = None


class SettingsPayload(BaseModel):
    language: Optional[str] = None
    gender: Optional[str] = None
    rate: Optional[float] = None
    voice_id: Optional[str] = None


class OpenPayload(BaseModel):
    from_start: bool = Field(default=False)


def _serialize_document(record: DocumentRecord, *, include_content: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "language": record.language,
        "char_offset": record.char_offset,
        "character_count": record.character_count,
        "created_at": record.created_at,
        "last_played_at": record.last_played_at,
    }
    if include_content:
        payload["content"] = record.content
    return payload


_INDEX_TEMPLATE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Text to Loud</title>
<style>
body {{ font-family: sans-serif; max-width: 48rem; margin: 2rem auto; }}
#reader {{ white-space: pre-wrap; line-height: 1.6; }}
#reader .read {{ color: #888; }}
#reader mark {{ background: #2563eb; color: #fff; border-radius: 3px; }}
</style></head>
<body>
<h1>{title}</h1>
<p><button data-action="play">Play</button> <button data-action="pause">Pause</button>
<button data-action="stop">Stop</button> <span id="state">{state}</span></p>
<div id="reader"><span class="read">{before}</span><mark>{word}</mark><span>{after}</span></div>
<script>
document.querySelectorAll("button[data-action]").forEach((button) => {{
  button.addEventListener("click", () => fetch("api/playback/" + button.dataset.action, {{method: "POST"}}));
}});
setInterval(() => fetch("api/playback").then((r) => r.json()).then((data) => {{
  document.getElementById("state").textContent = data.playback.state;
  const reader = document.getElementById("reader");
  reader.children[0].textContent = data.highlight.before;
  reader.children[1].textContent = data.highlight.word;
  reader.children[2].textContent = data.highlight.after;
}}), 500);
</script>
</body>
</html>
"""


def create_app(
    repository: ReadingRepository,
    *,
    config: AppConfig,
    engine_factory: Optional[EngineFactory] = None,
) -> FastAPI:
    """Return a configured FastAPI application.

    The reading session is created on startup so that the speech engine and
    every playback timer live on the server's event loop.
    """

    settings_store = SettingsStore(config)
    factory = engine_factory or _default_engine_factory

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        try:
            engine = factory(loop)
        except EngineUnavailableError as error:
            LOGGER.error("Speech engine unavailable: %s", error)
            engine = None
        app.state.engine = engine
        app.state.reader = None
        if engine is not None:
            app.state.reader = ReaderSession(
                repository,
                engine,
                loop,
                settings=settings_store.load(),
                timing=config.speech,
            )
        _log_event("Server started", engine=type(engine).__name__ if engine else None)
        try:
            yield
        finally:
            reader: Optional[ReaderSession] = app.state.reader
            if reader is not None:
                reader.close()
            shutdown = getattr(engine, "shutdown", None)
            if callable(shutdown):
                shutdown()
            _log_event("Server stopped")

    app = FastAPI(
        title="Text to Loud",
        description="Read pasted text aloud with live word highlighting",
        lifespan=lifespan,
    )
    repository.configure_event_emitter(_emit_db_event)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _require_reader() -> ReaderSession:
        reader: Optional[ReaderSession] = getattr(app.state, "reader", None)
        if reader is None:
            raise HTTPException(status_code=503, detail="Speech engine is not available")
        return reader

    def _playback_payload(reader: ReaderSession) -> Dict[str, Any]:
        snapshot = reader.snapshot()
        controller = reader.controller
        before, word, after = split_highlight(
            controller.text if controller else "",
            controller.char_offset if controller else 0,
        )
        return {
            "playback": snapshot,
            "highlight": {"before": before, "word": word, "after": after},
        }

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        reader: Optional[ReaderSession] = getattr(app.state, "reader", None)
        controller = reader.controller if reader else None
        document = reader.document if reader else None
        before, word, after = split_highlight(
            controller.text if controller else "",
            controller.char_offset if controller else 0,
        )
        page = _INDEX_TEMPLATE.format(
            title=html.escape(document.title if document else "Text to Loud"),
            state=html.escape(reader.state.value if reader else "unavailable"),
            before=html.escape(before),
            word=html.escape(word),
            after=html.escape(after),
        )
        return HTMLResponse(page)

    @app.get("/api/documents")
    async def list_documents() -> Dict[str, Any]:
        documents = [_serialize_document(record) for record in repository.iter_documents()]
        count = repository.count_documents()
        _log_event("Listed documents", count=count)
        return {"documents": documents, "count": count, "history_limit": repository.history_limit}

    @app.delete("/api/documents")
    async def clear_documents() -> Dict[str, Any]:
        reader: Optional[ReaderSession] = getattr(app.state, "reader", None)
        if reader is not None:
            reader.close()
        removed = repository.clear()
        _log_event("Cleared history", removed=removed)
        return {"removed": removed}

    @app.post("/api/documents", status_code=status.HTTP_201_CREATED)
    async def create_document(payload: DocumentCreatePayload) -> Dict[str, Any]:
        content = payload.content
        if not content.strip():
            raise HTTPException(status_code=400, detail="Document content is required")
        if payload.language:
            language = normalize_language(payload.language)
        else:
            language = detect_language(content)
        document_id = repository.add_document(content, language)
        record = repository.get_document(document_id)
        if record is None:
            raise HTTPException(status_code=500, detail="Document creation failed")
        _log_event("Created document", document_id=document_id, language=language)
        return {"document": _serialize_document(record, include_content=True)}

    @app.get("/api/documents/{document_id}")
    async def get_document(document_id: int) -> Dict[str, Any]:
        record = repository.get_document(document_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return {"document": _serialize_document(record, include_content=True)}

    @app.delete(
        "/api/documents/{document_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def delete_document(document_id: int) -> Response:
        reader: Optional[ReaderSession] = getattr(app.state, "reader", None)
        if reader is not None and reader.document is not None and reader.document.id == document_id:
            reader.close()
        if not repository.remove_document(document_id):
            raise HTTPException(status_code=404, detail="Document not found")
        _log_event("Deleted document", document_id=document_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/voices")
    async def list_voices(language: Optional[str] = None) -> Dict[str, Any]:
        reader = _require_reader()
        voices = [asdict(voice) for voice in reader.voices(language)]
        return {"voices": voices, "count": len(voices)}

    @app.get("/api/settings")
    async def get_settings() -> Dict[str, Any]:
        reader: Optional[ReaderSession] = getattr(app.state, "reader", None)
        settings = reader.settings if reader else settings_store.load()
        return {
            "settings": asdict(settings),
            "rates": list(RATE_OPTIONS),
            "languages": [asdict(option) for option in SUPPORTED_LANGUAGES],
        }

    @app.put("/api/settings")
    async def update_settings(payload: SettingsPayload) -> Dict[str, Any]:
        reader = _require_reader()
        current = reader.settings
        rate = current.rate
        if payload.rate is not None:
            try:
                rate = normalize_rate(payload.rate)
            except ValueError as error:
                raise HTTPException(status_code=400, detail=str(error)) from error
        requested = VoiceSettings(
            language=payload.language if payload.language is not None else current.language,
            gender=payload.gender if payload.gender is not None else current.gender,
            rate=rate,
        )
        try:
            applied = reader.update_settings(requested, voice_id=payload.voice_id)
        except ReaderError as error:
            code = 409 if reader.is_playing else 400
            raise HTTPException(status_code=code, detail=str(error)) from error
        settings_store.save(applied)
        return {"settings": asdict(applied)}

    @app.get("/api/playback")
    async def get_playback() -> Dict[str, Any]:
        return _playback_payload(_require_reader())

    @app.post("/api/playback/open/{document_id}")
    async def open_document(document_id: int, payload: Optional[OpenPayload] = None) -> Dict[str, Any]:
        reader = _require_reader()
        try:
            reader.open_document(document_id, from_start=bool(payload and payload.from_start))
        except ReaderError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error
        return _playback_payload(reader)

    def _playback_action(action: str) -> Callable[[], Any]:
        async def handler() -> Dict[str, Any]:
            reader = _require_reader()
            try:
                getattr(reader, action)()
            except ReaderError as error:
                raise HTTPException(status_code=409, detail=str(error)) from error
            _log_event("Playback action", action=action, state=reader.state)
            return _playback_payload(reader)

        handler.__name__ = f"playback_{action}"
        return handler

    for action in ("play", "pause", "stop"):
        app.add_api_route(f"/api/playback/{action}", _playback_action(action), methods=["POST"])

    return app


__all__ = ["create_app"]
