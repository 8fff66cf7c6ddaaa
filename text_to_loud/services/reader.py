"""Reading session: one speech controller per opened document.

The session is the host of :class:`~text_to_loud.speech.controller.SpeechController`.
It creates a fresh controller whenever a document is opened (seeded with the
saved position), applies the voice settings, and writes the reading position
back to the history. Highlight changes are saved after ``save_delay`` seconds
of quiet; pause, stop, completion and close save immediately.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ..config import SpeechTiming
from ..speech.controller import PlaybackState, SpeechController
from ..speech.engine import SpeechEngine
from ..speech.scheduling import Scheduler, TimerHandle, TimerSet
from ..speech.voices import Voice, find_voice, select_default_voice, voices_for_language
from .events import emit_app_event
from .settings import VoiceSettings
from .storage import DocumentRecord, ReadingRepository


LOGGER = logging.getLogger(__name__)


class ReaderError(RuntimeError):
    """Raised when a reading operation is not possible in the current state."""


class ReaderSession:
    """Open documents, drive playback and remember where the listener stopped."""

    def __init__(
        self,
        repository: ReadingRepository,
        engine: SpeechEngine,
        scheduler: Scheduler,
        *,
        settings: Optional[VoiceSettings] = None,
        timing: Optional[SpeechTiming] = None,
        save_delay: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._engine = engine
        self._scheduler = scheduler
        self._timers = TimerSet(scheduler)
        self._settings = (settings or VoiceSettings()).normalized()
        self._timing = timing or SpeechTiming()
        self._save_delay = save_delay
        self._clock = clock

        self._controller: Optional[SpeechController] = None
        self._document: Optional[DocumentRecord] = None
        self._voice_id: Optional[str] = None
        self._save_handle: Optional[TimerHandle] = None
        self._pending_offset: Optional[int] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def document(self) -> Optional[DocumentRecord]:
        return self._document

    @property
    def controller(self) -> Optional[SpeechController]:
        return self._controller

    @property
    def settings(self) -> VoiceSettings:
        return self._settings

    @property
    def state(self) -> PlaybackState:
        if self._controller is None:
            return PlaybackState.IDLE
        return self._controller.state

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    # ------------------------------------------------------------------
    # Voices and settings
    # ------------------------------------------------------------------
    def voices(self, language: Optional[str] = None) -> List[Voice]:
        voices = self._engine.get_voices()
        if language:
            return voices_for_language(voices, language)
        return voices

    def resolve_voice(self) -> Optional[Voice]:
        voices = self._engine.get_voices()
        if self._voice_id:
            chosen = find_voice(voices, self._voice_id)
            if chosen is not None:
                return chosen
            LOGGER.warning("Selected voice '%s' is no longer available", self._voice_id)
            self._voice_id = None
        return select_default_voice(voices, self._settings.language, self._settings.gender)

    def update_settings(
        self, settings: VoiceSettings, *, voice_id: Optional[str] = None
    ) -> VoiceSettings:
        """Apply new voice settings; they take effect on the next ``play()``.

        When *voice_id* is given it is checked before anything changes, so an
        unknown voice leaves the session untouched.
        """

        if self.is_playing:
            raise ReaderError("Voice settings cannot change while playing")
        voice: Optional[Voice] = None
        if voice_id:
            voice = find_voice(self._engine.get_voices(), voice_id)
            if voice is None:
                raise ReaderError(f"Unknown voice '{voice_id}'")
        normalized = settings.normalized()
        language_changed = normalized.language != self._settings.language
        gender_changed = normalized.gender != self._settings.gender
        self._settings = normalized
        if voice is not None:
            self._voice_id = voice.id
        elif language_changed or gender_changed:
            self._voice_id = None
        if self._controller is not None:
            self._controller.rate = normalized.rate
            self._controller.voice = self.resolve_voice()
        emit_app_event(
            "Voice settings updated",
            payload={
                "language": normalized.language,
                "gender": normalized.gender,
                "rate": normalized.rate,
            },
        )
        return normalized

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def open_document(self, document_id: int, *, from_start: bool = False) -> DocumentRecord:
        """Replace the current session with one over *document_id*."""

        record = self._repository.get_document(document_id)
        if record is None:
            raise ReaderError(f"Document {document_id} not found")

        self.close()
        if from_start and record.char_offset:
            self._repository.update_position(record.id, 0)
            record.char_offset = 0

        self._document = record
        self._controller = SpeechController(
            self._engine,
            self._scheduler,
            text=record.content,
            voice=self.resolve_voice(),
            rate=self._settings.rate,
            initial_offset=record.char_offset,
            timing=self._timing,
            on_play=self._handle_play,
            on_pause=self._handle_pause,
            on_stop=self._handle_stop,
            on_highlight_change=self._handle_highlight,
            on_complete=self._handle_complete,
            clock=self._clock,
        )
        self._repository.touch(record.id)
        emit_app_event(
            "Opened document",
            payload={
                "document_id": record.id,
                "offset": record.char_offset,
                "length": record.character_count,
            },
        )
        return record

    def close(self) -> None:
        """Destroy the current controller, saving the position it reached."""

        controller = self._controller
        if controller is None:
            return
        if controller.state is not PlaybackState.IDLE:
            self._save_now(controller.char_offset)
        else:
            self._flush_position()
        controller.close()
        self._timers.clear()
        self._save_handle = None
        self._controller = None
        self._document = None

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    def play(self) -> None:
        self._require_controller().play()

    def pause(self) -> None:
        self._require_controller().pause()

    def stop(self) -> None:
        self._require_controller().stop()

    def snapshot(self) -> Dict[str, Any]:
        controller = self._controller
        voice = controller.voice if controller is not None else None
        return {
            "document_id": self._document.id if self._document else None,
            "title": self._document.title if self._document else None,
            "state": self.state.value,
            "char_offset": controller.char_offset if controller else 0,
            "current_word": controller.current_word if controller else "",
            "length": len(controller.text) if controller else 0,
            "rate": self._settings.rate,
            "language": self._settings.language,
            "gender": self._settings.gender,
            "voice": voice.name if voice else None,
            "pause_budget_exceeded": controller.pause_budget_exceeded if controller else False,
        }

    def _require_controller(self) -> SpeechController:
        if self._controller is None:
            raise ReaderError("No document is open")
        return self._controller

    # ------------------------------------------------------------------
    # Controller notifications
    # ------------------------------------------------------------------
    def _handle_play(self) -> None:
        if self._document is not None:
            self._repository.touch(self._document.id)

    def _handle_pause(self) -> None:
        if self._controller is not None:
            self._save_now(self._controller.char_offset)

    def _handle_stop(self) -> None:
        self._save_now(0)

    def _handle_complete(self) -> None:
        self._save_now(0)

    def _handle_highlight(self, offset: int) -> None:
        self._pending_offset = offset
        self._timers.cancel(self._save_handle)
        self._save_handle = self._timers.call_later(self._save_delay, self._flush_position)

    def _flush_position(self) -> None:
        self._save_handle = None
        if self._pending_offset is not None:
            self._save_now(self._pending_offset)

    def _save_now(self, offset: int) -> None:
        self._timers.cancel(self._save_handle)
        self._save_handle = None
        self._pending_offset = None
        document = self._document
        if document is None:
            return
        try:
            document.char_offset = self._repository.update_position(document.id, offset)
        except KeyError:
            LOGGER.warning("Document %s disappeared before its position was saved", document.id)


__all__ = ["ReaderError", "ReaderSession"]
