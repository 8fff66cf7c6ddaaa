"""Speech playback: engine protocol, controller and voice helpers."""

from .controller import PlaybackState, SpeechController, word_at
from .engine import (
    ERROR_INTERRUPTED,
    EngineUnavailableError,
    SpeechEngine,
    SpeechEvent,
    Utterance,
    UtteranceEnded,
    UtteranceFailed,
    UtteranceStarted,
    WordBoundary,
)
from .language import SUPPORTED_LANGUAGES, LanguageOption, detect_language
from .scheduling import Scheduler, TimerSet
from .voices import RATE_OPTIONS, Voice, detect_voice_gender, normalize_rate, select_default_voice

__all__ = [
    "ERROR_INTERRUPTED",
    "EngineUnavailableError",
    "LanguageOption",
    "PlaybackState",
    "RATE_OPTIONS",
    "SUPPORTED_LANGUAGES",
    "Scheduler",
    "SpeechController",
    "SpeechEngine",
    "SpeechEvent",
    "TimerSet",
    "Utterance",
    "UtteranceEnded",
    "UtteranceFailed",
    "UtteranceStarted",
    "Voice",
    "WordBoundary",
    "detect_language",
    "detect_voice_gender",
    "normalize_rate",
    "select_default_voice",
    "word_at",
]
