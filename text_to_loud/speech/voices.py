"""Voice catalogue helpers: gender detection, default selection and speed options."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional, Sequence, Tuple


Gender = Literal["male", "female", "unknown"]

DEFAULT_LANGUAGE = "en"
DEFAULT_GENDER: Gender = "female"

RATE_OPTIONS: Tuple[float, ...] = (0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0)

_FEMALE_PATTERNS: Tuple[str, ...] = (
    "female",
    "woman",
    "girl",
    "zira",
    "hazel",
    "susan",
    "karen",
    "samantha",
    "victoria",
    "fiona",
    "moira",
    "tessa",
    "veena",
    "kanya",
    "hongying",
    "sinji",
    "yuna",
    "kyoko",
    "o-ren",
    "ting-ting",
    "mei-jia",
    "sin-ji",
    "onuma",
)
_MALE_PATTERNS: Tuple[str, ...] = (
    "male",
    "man",
    "boy",
    "david",
    "mark",
    "james",
    "daniel",
    "alex",
    "tom",
    "fred",
    "ralph",
    "albert",
    "bruce",
    "junior",
    "aaron",
    "neel",
    "prem",
    "george",
)


@dataclass(frozen=True)
class Voice:
    """A synthesis voice as reported by the speech engine."""

    id: str
    name: str
    lang: str
    gender: Gender = "unknown"


def detect_voice_gender(name: str) -> Gender:
    """Guess the gender of a voice from its display name.

    Female patterns are checked first because ``"female"`` contains
    ``"male"``.
    """

    lowered = (name or "").lower()
    if any(pattern in lowered for pattern in _FEMALE_PATTERNS):
        return "female"
    if any(pattern in lowered for pattern in _MALE_PATTERNS):
        return "male"
    return "unknown"


def normalize_gender(value: object) -> Gender:
    candidate = str(value or "").strip().lower()
    if candidate in {"male", "female"}:
        return candidate  # type: ignore[return-value]
    return DEFAULT_GENDER


def normalize_rate(value: object) -> float:
    """Return *value* as one of :data:`RATE_OPTIONS` or raise ``ValueError``."""

    try:
        rate = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid speech rate: {value!r}") from error
    for option in RATE_OPTIONS:
        if abs(option - rate) < 1e-9:
            return option
    allowed = ", ".join(f"{option:g}" for option in RATE_OPTIONS)
    raise ValueError(f"Unsupported speech rate {rate:g}; expected one of {allowed}")


def voices_for_language(voices: Iterable[Voice], language: str) -> List[Voice]:
    """Return the voices whose language tag starts with *language*."""

    prefix = (language or "").strip().lower()
    if not prefix:
        return []
    return [voice for voice in voices if voice.lang.lower().startswith(prefix)]


def select_default_voice(
    voices: Sequence[Voice],
    language: str,
    gender: str = DEFAULT_GENDER,
    *,
    fallback_language: str = DEFAULT_LANGUAGE,
) -> Optional[Voice]:
    """Pick the voice used when the listener has not chosen one explicitly.

    A voice of the requested gender for *language* wins, then the first voice
    for *language*. When the language has no voices at all the same rules are
    applied to *fallback_language*.
    """

    candidates = voices_for_language(voices, language)
    if not candidates and fallback_language and fallback_language != language:
        candidates = voices_for_language(voices, fallback_language)
    if not candidates:
        return None

    preferred = next((voice for voice in candidates if voice.gender == gender), None)
    return preferred or candidates[0]


def find_voice(voices: Iterable[Voice], voice_id: str) -> Optional[Voice]:
    for voice in voices:
        if voice.id == voice_id or voice.name == voice_id:
            return voice
    return None


__all__ = [
    "DEFAULT_GENDER",
    "DEFAULT_LANGUAGE",
    "Gender",
    "RATE_OPTIONS",
    "Voice",
    "detect_voice_gender",
    "find_voice",
    "normalize_gender",
    "normalize_rate",
    "select_default_voice",
    "voices_for_language",
]
