"""Speech engine capability and the typed events it reports."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Union

from .voices import Voice


ERROR_INTERRUPTED = "interrupted"

_UTTERANCE_IDS = itertools.count(1)


class EngineUnavailableError(RuntimeError):
    """Raised when no speech synthesis backend can be initialised."""


@dataclass(eq=False)
class Utterance:
    """One discrete speech request submitted to an engine.

    Utterances compare by identity so that a late event can be matched against
    the utterance the controller currently owns.
    """

    text: str
    voice: Optional[Voice] = None
    rate: float = 1.0
    listener: Optional[Callable[["SpeechEvent"], None]] = None
    id: str = field(default_factory=lambda: f"utterance-{next(_UTTERANCE_IDS)}")

    def emit(self, event: "SpeechEvent") -> None:
        if self.listener is not None:
            self.listener(event)


@dataclass(frozen=True)
class UtteranceStarted:
    utterance: Utterance


@dataclass(frozen=True)
class WordBoundary:
    """Synthesis reached a new word; ``char_index`` is relative to the utterance text."""

    utterance: Utterance
    char_index: int
    name: str = "word"


@dataclass(frozen=True)
class UtteranceEnded:
    utterance: Utterance


@dataclass(frozen=True)
class UtteranceFailed:
    utterance: Utterance
    error: str


SpeechEvent = Union[UtteranceStarted, WordBoundary, UtteranceEnded, UtteranceFailed]


class SpeechEngine(Protocol):
    """Protocol describing a process-wide speech synthesis backend."""

    @property
    def speaking(self) -> bool:
        """``True`` while an utterance is being spoken (paused counts as speaking)."""

    @property
    def paused(self) -> bool:
        """``True`` while the engine is paused."""

    def speak(self, utterance: Utterance) -> None:
        """Queue *utterance* and report its lifecycle through ``utterance.emit``."""

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...

    def cancel(self) -> None:
        """Drop the current utterance; it reports ``UtteranceFailed(interrupted)``."""

    def get_voices(self) -> List[Voice]:
        ...


__all__ = [
    "ERROR_INTERRUPTED",
    "EngineUnavailableError",
    "SpeechEngine",
    "SpeechEvent",
    "Utterance",
    "UtteranceEnded",
    "UtteranceFailed",
    "UtteranceStarted",
    "WordBoundary",
]
