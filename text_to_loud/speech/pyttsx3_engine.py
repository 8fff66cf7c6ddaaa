"""Speech engine backed by ``pyttsx3``.

pyttsx3 runs its driver through an external loop here: ``startLoop(False)``
once, then ``iterate()`` pumped from the scheduler, so driver callbacks arrive
on the same thread as the controller's timers.

The drivers have no pause primitive. :meth:`Pyttsx3Engine.pause` stops the
driver and :meth:`Pyttsx3Engine.resume` cannot bring the utterance back, so
``speaking`` stays ``False`` and the controller restarts from its last offset.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .engine import (
    ERROR_INTERRUPTED,
    EngineUnavailableError,
    Utterance,
    UtteranceEnded,
    UtteranceFailed,
    UtteranceStarted,
    WordBoundary,
)
from .scheduling import Scheduler, TimerHandle
from .voices import Voice, detect_voice_gender


LOGGER = logging.getLogger(__name__)

DEFAULT_WORDS_PER_MINUTE = 200


def _normalize_language_tag(raw: Any) -> str:
    # espeak reports languages as bytes prefixed with a priority byte, e.g. b"\x05en-gb".
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    text = "".join(ch for ch in str(raw or "") if ch.isprintable()).strip()
    return text.replace("_", "-")


def _voice_from_driver(driver_voice: Any) -> Voice:
    name = str(getattr(driver_voice, "name", "") or "")
    languages = list(getattr(driver_voice, "languages", None) or [])
    lang = _normalize_language_tag(languages[0]) if languages else ""
    driver_gender = str(getattr(driver_voice, "gender", "") or "").lower()
    if driver_gender in {"male", "female"}:
        gender = driver_gender
    else:
        gender = detect_voice_gender(name)
    return Voice(
        id=str(getattr(driver_voice, "id", name)),
        name=name,
        lang=lang,
        gender=gender,  # type: ignore[arg-type]
    )


class Pyttsx3Engine:
    """Adapt a pyttsx3 engine to the :class:`~text_to_loud.speech.engine.SpeechEngine` protocol."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        engine: Optional[Any] = None,
        poll_interval: float = 0.02,
    ) -> None:
        if engine is None:
            try:
                import pyttsx3

                engine = pyttsx3.init()
            except Exception as error:  # noqa: BLE001 - driver failures vary per platform
                raise EngineUnavailableError(f"Could not initialise pyttsx3: {error}") from error
        self._engine = engine
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._utterances: Dict[str, Utterance] = {}
        self._current: Optional[Utterance] = None
        self._paused = False
        self._loop_started = False
        self._pump_handle: Optional[TimerHandle] = None

        try:
            base_rate = int(self._engine.getProperty("rate") or DEFAULT_WORDS_PER_MINUTE)
        except (TypeError, ValueError):
            base_rate = DEFAULT_WORDS_PER_MINUTE
        self._base_rate = base_rate

        self._engine.connect("started-utterance", self._on_started)
        self._engine.connect("started-word", self._on_word)
        self._engine.connect("finished-utterance", self._on_finished)
        self._engine.connect("error", self._on_error)

    @property
    def speaking(self) -> bool:
        return self._current is not None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def base_rate(self) -> int:
        return self._base_rate

    def get_voices(self) -> List[Voice]:
        return [_voice_from_driver(item) for item in self._engine.getProperty("voices") or []]

    def speak(self, utterance: Utterance) -> None:
        self._ensure_loop()
        if utterance.voice is not None:
            self._engine.setProperty("voice", utterance.voice.id)
        self._engine.setProperty("rate", max(1, int(round(self._base_rate * utterance.rate))))
        self._utterances[utterance.id] = utterance
        self._current = utterance
        self._paused = False
        LOGGER.debug("Queued %s with pyttsx3 (%s chars)", utterance.id, len(utterance.text))
        self._engine.say(utterance.text, utterance.id)

    def pause(self) -> None:
        if self._current is None:
            return
        self._paused = True
        self._engine.stop()

    def resume(self) -> None:
        self._paused = False

    def cancel(self) -> None:
        self._paused = False
        if self._current is None and not self._utterances:
            return
        self._engine.stop()

    def shutdown(self) -> None:
        """Stop pumping the driver loop and release it."""

        if self._pump_handle is not None:
            self._pump_handle.cancel()
            self._pump_handle = None
        if self._loop_started:
            self._loop_started = False
            self._engine.endLoop()

    # ------------------------------------------------------------------
    # Driver loop
    # ------------------------------------------------------------------
    def _ensure_loop(self) -> None:
        if self._loop_started:
            return
        self._engine.startLoop(False)
        self._loop_started = True
        self._schedule_pump()

    def _schedule_pump(self) -> None:
        self._pump_handle = self._scheduler.call_later(self._poll_interval, self._pump)

    def _pump(self) -> None:
        self._pump_handle = None
        if not self._loop_started:
            return
        try:
            self._engine.iterate()
        except Exception:  # noqa: BLE001 - keep the loop alive; the driver reports errors itself
            LOGGER.exception("pyttsx3 driver iteration failed")
        self._schedule_pump()

    # ------------------------------------------------------------------
    # Driver callbacks
    # ------------------------------------------------------------------
    def _lookup(self, name: Optional[str]) -> Optional[Utterance]:
        if name is None:
            return None
        return self._utterances.get(str(name))

    def _on_started(self, name: Optional[str]) -> None:
        utterance = self._lookup(name)
        if utterance is not None:
            utterance.emit(UtteranceStarted(utterance))

    def _on_word(self, name: Optional[str], location: int, length: int) -> None:
        utterance = self._lookup(name)
        if utterance is not None:
            utterance.emit(WordBoundary(utterance, char_index=int(location)))

    def _on_finished(self, name: Optional[str], completed: bool) -> None:
        utterance = self._utterances.pop(str(name), None) if name is not None else None
        if utterance is None:
            return
        if utterance is self._current:
            self._current = None
        if completed:
            utterance.emit(UtteranceEnded(utterance))
        else:
            utterance.emit(UtteranceFailed(utterance, ERROR_INTERRUPTED))

    def _on_error(self, name: Optional[str], exception: BaseException) -> None:
        utterance = self._utterances.pop(str(name), None) if name is not None else None
        if utterance is None:
            LOGGER.warning("pyttsx3 reported an error outside an utterance: %s", exception)
            return
        if utterance is self._current:
            self._current = None
        utterance.emit(UtteranceFailed(utterance, str(exception) or exception.__class__.__name__))


__all__ = ["DEFAULT_WORDS_PER_MINUTE", "Pyttsx3Engine"]
