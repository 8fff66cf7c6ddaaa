"""Speech playback controller with word highlighting and resume recovery.

The controller owns one playback session over a block of text. It drives a
single :class:`~text_to_loud.speech.engine.Utterance` at a time, keeps
``char_offset`` in step with the word boundaries the engine reports and hides
the engine's pause/resume defects from callers:

* every new utterance is preceded by ``engine.cancel()`` and submitted after
  ``SpeechTiming.pre_speak_delay`` so the cancel has settled;
* a native resume is verified after ``SpeechTiming.resume_check_delay`` and,
  when the engine is not speaking, playback restarts from ``char_offset``;
* events are tagged with the utterance that produced them and anything from an
  utterance other than the current one is ignored.

All transitions run on the scheduler's thread; nothing here is thread-safe.
"""

from __future__ import annotations

import logging
import re
import time
from enum import Enum
from typing import Callable, Optional, Tuple

from ..config import SpeechTiming
from ..services.events import emit_playback_event
from .engine import (
    ERROR_INTERRUPTED,
    SpeechEngine,
    SpeechEvent,
    Utterance,
    UtteranceEnded,
    UtteranceFailed,
    UtteranceStarted,
    WordBoundary,
)
from .scheduling import Scheduler, TimerHandle, TimerSet
from .voices import Voice, normalize_rate


LOGGER = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


def word_at(text: str, offset: int) -> str:
    """Return the word starting at *offset*, up to the next whitespace character."""

    if offset < 0 or offset >= len(text):
        return ""
    match = _WHITESPACE.search(text, offset)
    end = match.start() if match else len(text)
    return text[offset:end]


def split_highlight(text: str, offset: int) -> Tuple[str, str, str]:
    """Split *text* into the part already read, the current word and the rest."""

    offset = min(max(offset, 0), len(text))
    word = word_at(text, offset)
    end = offset + len(word)
    return text[:offset], word, text[end:]


class SpeechController:
    """Drive a speech engine over ``text`` with pause/resume recovery."""

    def __init__(
        self,
        engine: SpeechEngine,
        scheduler: Scheduler,
        *,
        text: str = "",
        voice: Optional[Voice] = None,
        rate: float = 1.0,
        initial_offset: int = 0,
        timing: Optional[SpeechTiming] = None,
        on_play: Optional[Callable[[], None]] = None,
        on_pause: Optional[Callable[[], None]] = None,
        on_stop: Optional[Callable[[], None]] = None,
        on_highlight_change: Optional[Callable[[int], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._timers = TimerSet(scheduler)
        self._text = text or ""
        self._voice = voice
        self._rate = normalize_rate(rate)
        self._timing = timing or SpeechTiming()
        self._clock = clock

        self._on_play = on_play
        self._on_pause = on_pause
        self._on_stop = on_stop
        self._on_highlight_change = on_highlight_change
        self._on_complete = on_complete

        self._initial_offset = int(initial_offset or 0)
        self._state = PlaybackState.IDLE
        self._char_offset = min(max(self._initial_offset, 0), len(self._text))
        self._current_word = word_at(self._text, self._char_offset) if self._char_offset else ""
        self._has_ever_played = False

        self._utterance: Optional[Utterance] = None
        self._utterance_offset = 0
        self._speak_handle: Optional[TimerHandle] = None
        self._resume_handle: Optional[TimerHandle] = None
        self._pause_budget_handle: Optional[TimerHandle] = None
        self._paused_at: Optional[float] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only session state
    # ------------------------------------------------------------------
    @property
    def text(self) -> str:
        return self._text

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is PlaybackState.PLAYING

    @property
    def is_paused(self) -> bool:
        return self._state is PlaybackState.PAUSED

    @property
    def char_offset(self) -> int:
        """Absolute index into :attr:`text` of the word being spoken."""

        return self._char_offset

    @property
    def current_word(self) -> str:
        return self._current_word

    @property
    def has_ever_played(self) -> bool:
        return self._has_ever_played

    @property
    def current_utterance(self) -> Optional[Utterance]:
        return self._utterance

    @property
    def pause_elapsed(self) -> float:
        """Seconds spent in the current pause, ``0.0`` when not paused."""

        if self._paused_at is None:
            return 0.0
        return max(0.0, self._clock() - self._paused_at)

    @property
    def pause_budget_exceeded(self) -> bool:
        return self._paused_at is not None and self.pause_elapsed > self._timing.pause_budget

    # ------------------------------------------------------------------
    # Settings applied to the next utterance
    # ------------------------------------------------------------------
    @property
    def voice(self) -> Optional[Voice]:
        return self._voice

    @voice.setter
    def voice(self, voice: Optional[Voice]) -> None:
        self._voice = voice

    @property
    def rate(self) -> float:
        return self._rate

    @rate.setter
    def rate(self, value: float) -> None:
        self._rate = normalize_rate(value)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def play(self) -> None:
        """Start, restart or resume playback."""

        if self._closed:
            LOGGER.debug("Ignoring play() on a closed session")
            return
        if not self._text.strip():
            LOGGER.debug("Ignoring play() for empty text")
            return

        if self._state is PlaybackState.PAUSED:
            self._request_resume()
            return

        start_offset = 0
        if not self._has_ever_played and 0 < self._initial_offset < len(self._text):
            start_offset = self._initial_offset
        self._has_ever_played = True

        self._state = PlaybackState.PLAYING
        self._move_to(start_offset)
        if not self._speak_from(start_offset):
            self._finish()
            return

        emit_playback_event(
            "play",
            payload={"offset": start_offset, "length": len(self._text), "rate": self._rate},
        )
        if self._on_play is not None:
            self._on_play()

    def pause(self) -> None:
        """Pause playback; the offset is kept so a dropped utterance can be restarted."""

        if self._state is not PlaybackState.PLAYING:
            return

        self._engine.pause()
        if self._speak_handle is not None:
            # The utterance never reached the engine; resume verification restarts it.
            self._timers.cancel(self._speak_handle)
            self._speak_handle = None
        self._state = PlaybackState.PAUSED
        self._paused_at = self._clock()
        self._timers.cancel(self._pause_budget_handle)
        self._pause_budget_handle = self._timers.call_later(
            self._timing.pause_budget, self._pause_budget_elapsed
        )

        emit_playback_event("pause", payload={"offset": self._char_offset})
        if self._on_pause is not None:
            self._on_pause()

    def stop(self) -> None:
        """Cancel speech and reset the position. Safe to call in any state."""

        self._teardown()
        self._state = PlaybackState.IDLE
        self._reset_position()

        emit_playback_event("stop")
        if self._on_stop is not None:
            self._on_stop()

    def close(self) -> None:
        """Destroy the session; later engine events and timers are ignored."""

        if self._closed:
            return
        self._teardown()
        self._state = PlaybackState.IDLE
        self._closed = True
        LOGGER.debug("Closed playback session at offset %s", self._char_offset)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _teardown(self) -> None:
        self._timers.clear()
        self._speak_handle = None
        self._resume_handle = None
        self._pause_budget_handle = None
        self._paused_at = None
        self._utterance = None
        self._engine.cancel()

    def _request_resume(self) -> None:
        if self._resume_handle is not None:
            LOGGER.debug("Resume already pending; ignoring play()")
            return

        self._timers.cancel(self._pause_budget_handle)
        self._pause_budget_handle = None
        self._engine.resume()
        self._resume_handle = self._timers.call_later(
            self._timing.resume_check_delay, self._verify_resume
        )

    def _verify_resume(self) -> None:
        self._resume_handle = None
        if self._state is not PlaybackState.PAUSED:
            return

        paused_for = self.pause_elapsed
        self._paused_at = None
        self._state = PlaybackState.PLAYING
        if self._engine.speaking:
            emit_playback_event("resume", payload={"offset": self._char_offset})
            return

        LOGGER.warning(
            "Native resume failed after %.1fs pause; restarting from offset %s",
            paused_for,
            self._char_offset,
        )
        emit_playback_event(
            "restart",
            payload={"offset": self._char_offset, "paused_seconds": round(paused_for, 3)},
            level=logging.WARNING,
        )
        if not self._speak_from(self._char_offset):
            self._finish()

    def _pause_budget_elapsed(self) -> None:
        self._pause_budget_handle = None
        LOGGER.info(
            "Paused for more than %ss; the engine may drop the utterance at offset %s",
            self._timing.pause_budget,
            self._char_offset,
        )

    def _speak_from(self, offset: int) -> bool:
        """Replace any current utterance with one covering ``text[offset:]``."""

        self._timers.cancel(self._speak_handle)
        self._speak_handle = None
        self._utterance = None
        self._engine.cancel()

        remaining = self._text[offset:]
        if not remaining.strip():
            return False

        utterance = Utterance(
            text=remaining,
            voice=self._voice,
            rate=self._rate,
            listener=self._dispatch,
        )
        self._utterance = utterance
        self._utterance_offset = offset
        self._speak_handle = self._timers.call_later(
            self._timing.pre_speak_delay, lambda: self._submit(utterance)
        )
        LOGGER.debug(
            "Prepared %s from offset %s (%s chars)", utterance.id, offset, len(remaining)
        )
        return True

    def _submit(self, utterance: Utterance) -> None:
        self._speak_handle = None
        if utterance is not self._utterance:
            return
        self._engine.speak(utterance)

    def _dispatch(self, event: SpeechEvent) -> None:
        """Apply one engine event to the session."""

        if self._closed or event.utterance is not self._utterance:
            LOGGER.debug(
                "Ignoring %s from stale %s", type(event).__name__, event.utterance.id
            )
            return

        if isinstance(event, WordBoundary):
            self._handle_boundary(event)
        elif isinstance(event, UtteranceStarted):
            LOGGER.debug("Engine started %s", event.utterance.id)
        elif isinstance(event, UtteranceEnded):
            if self._state is PlaybackState.PAUSED and self._resume_handle is None:
                # Ended under a pause: the engine dropped it, resume restarts from the offset.
                LOGGER.debug(
                    "Paused %s ended; keeping offset %s", event.utterance.id, self._char_offset
                )
                self._utterance = None
                return
            self._finish()
        elif isinstance(event, UtteranceFailed):
            self._handle_failure(event)

    def _handle_boundary(self, event: WordBoundary) -> None:
        if event.name != "word":
            return
        absolute = min(self._utterance_offset + max(int(event.char_index), 0), len(self._text))
        if absolute < self._char_offset:
            LOGGER.debug("Ignoring backwards boundary %s < %s", absolute, self._char_offset)
            return
        self._move_to(absolute)

    def _handle_failure(self, event: UtteranceFailed) -> None:
        if event.error == ERROR_INTERRUPTED:
            LOGGER.debug("Utterance %s interrupted", event.utterance.id)
            return

        LOGGER.error(
            "Speech engine error '%s' at offset %s; playback stopped",
            event.error,
            self._char_offset,
        )
        emit_playback_event(
            "error",
            payload={"error": event.error, "offset": self._char_offset},
            level=logging.ERROR,
        )
        self._teardown()
        self._state = PlaybackState.IDLE
        self._reset_position()

    def _finish(self) -> None:
        self._timers.clear()
        self._speak_handle = None
        self._resume_handle = None
        self._pause_budget_handle = None
        self._paused_at = None
        self._utterance = None
        self._state = PlaybackState.IDLE
        self._reset_position()

        emit_playback_event("complete", payload={"length": len(self._text)})
        if self._on_complete is not None:
            self._on_complete()

    def _move_to(self, offset: int) -> None:
        changed = offset != self._char_offset
        self._char_offset = offset
        self._current_word = word_at(self._text, offset)
        if changed and self._on_highlight_change is not None:
            self._on_highlight_change(offset)

    def _reset_position(self) -> None:
        changed = self._char_offset != 0
        self._char_offset = 0
        self._current_word = ""
        if changed and self._on_highlight_change is not None:
            self._on_highlight_change(0)


__all__ = ["PlaybackState", "SpeechController", "split_highlight", "word_at"]
