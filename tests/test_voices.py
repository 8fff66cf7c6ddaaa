from __future__ import annotations

import pytest

from text_to_loud.speech.voices import (
    RATE_OPTIONS,
    Voice,
    detect_voice_gender,
    find_voice,
    normalize_gender,
    normalize_rate,
    select_default_voice,
    voices_for_language,
)


VOICES = [
    Voice(id="1", name="Microsoft David", lang="en-US", gender="male"),
    Voice(id="2", name="Microsoft Zira", lang="en-US", gender="female"),
    Voice(id="3", name="Kanya", lang="th-TH", gender="female"),
    Voice(id="4", name="Kyoko", lang="ja-JP", gender="female"),
]


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Microsoft Zira Desktop", "female"),
        ("Google UK English Female", "female"),
        ("Google UK English Male", "male"),
        ("Daniel", "male"),
        ("Kanya", "female"),
        ("espeak-ng default", "unknown"),
    ],
)
def test_detect_voice_gender_from_name(name: str, expected: str) -> None:
    assert detect_voice_gender(name) == expected


def test_normalize_gender_defaults_to_female() -> None:
    assert normalize_gender("MALE") == "male"
    assert normalize_gender("robot") == "female"
    assert normalize_gender(None) == "female"


def test_normalize_rate_accepts_only_listed_options() -> None:
    assert normalize_rate("1.25") == 1.25
    assert normalize_rate(2) == 2.0
    assert list(RATE_OPTIONS) == [0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0]
    with pytest.raises(ValueError):
        normalize_rate(1.1)
    with pytest.raises(ValueError):
        normalize_rate("fast")


def test_voices_for_language_matches_prefix() -> None:
    assert [voice.id for voice in voices_for_language(VOICES, "en")] == ["1", "2"]
    assert [voice.id for voice in voices_for_language(VOICES, "TH")] == ["3"]
    assert voices_for_language(VOICES, "") == []


def test_select_default_voice_prefers_requested_gender() -> None:
    assert select_default_voice(VOICES, "en", "female").id == "2"
    assert select_default_voice(VOICES, "en", "male").id == "1"


def test_select_default_voice_falls_back_to_first_in_language() -> None:
    assert select_default_voice(VOICES, "ja", "male").id == "4"


def test_select_default_voice_falls_back_to_english() -> None:
    assert select_default_voice(VOICES, "ko", "male").id == "1"
    assert select_default_voice(VOICES[2:], "ko", "male") is None


def test_find_voice_by_id_or_name() -> None:
    assert find_voice(VOICES, "3").name == "Kanya"
    assert find_voice(VOICES, "Kyoko").id == "4"
    assert find_voice(VOICES, "missing") is None
