"""Lightweight script-based language detection for pasted text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple


@dataclass(frozen=True)
class LanguageOption:
    code: str
    name: str


SUPPORTED_LANGUAGES: Tuple[LanguageOption, ...] = (
    LanguageOption("th", "ไทย"),
    LanguageOption("en", "English"),
    LanguageOption("zh", "中文"),
    LanguageOption("ja", "日本語"),
    LanguageOption("ko", "한국어"),
    LanguageOption("es", "Español"),
    LanguageOption("fr", "Français"),
    LanguageOption("de", "Deutsch"),
    LanguageOption("pt", "Português"),
    LanguageOption("ru", "Русский"),
    LanguageOption("vi", "Tiếng Việt"),
    LanguageOption("id", "Bahasa Indonesia"),
)

_SAMPLE_LENGTH = 200

# Order matters: kana must win over the shared CJK ideographs, and the
# Vietnamese class only holds letters that French or Portuguese never use.
_SCRIPT_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("th", re.compile(r"[\u0E00-\u0E7F]")),
    ("ja", re.compile(r"[\u3040-\u309F\u30A0-\u30FF]")),
    ("ko", re.compile(r"[\uAC00-\uD7AF\u1100-\u11FF]")),
    ("zh", re.compile(r"[\u4E00-\u9FFF\u3400-\u4DBF]")),
    ("ru", re.compile(r"[\u0400-\u04FF]")),
    (
        "vi",
        re.compile(
            r"[ạảầấậẩẫăằắặẳẵẹẻẽềếệểễịỉĩọỏồốộổỗơờớợởỡụủũưừứựửữỳỵỷỹđ]",
            re.IGNORECASE,
        ),
    ),
)

_LATIN_MARK_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("es", re.compile(r"[ñ¿¡]", re.IGNORECASE)),
    ("de", re.compile(r"[äöüß]", re.IGNORECASE)),
    ("pt", re.compile(r"[ãõ]", re.IGNORECASE)),
    ("fr", re.compile(r"[œæçéèêëàâùûïîôÿ]", re.IGNORECASE)),
)


def detect_language(text: str, default: str = "en") -> str:
    """Return a language code for *text* based on the scripts it uses."""

    if not text or not text.strip():
        return default

    sample = text[:_SAMPLE_LENGTH]
    for code, pattern in _SCRIPT_PATTERNS + _LATIN_MARK_PATTERNS:
        if pattern.search(sample):
            return code
    return default


def find_language(code: str) -> Optional[LanguageOption]:
    lowered = (code or "").strip().lower()
    return next((option for option in SUPPORTED_LANGUAGES if option.code == lowered), None)


def normalize_language(code: object, default: str = "en") -> str:
    option = find_language(str(code or ""))
    return option.code if option is not None else default


__all__ = [
    "LanguageOption",
    "SUPPORTED_LANGUAGES",
    "detect_language",
    "find_language",
    "normalize_language",
]
