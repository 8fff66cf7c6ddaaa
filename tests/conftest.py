from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from text_to_loud.bootstrap import Bootstrapper
from text_to_loud.config import AppConfig
from text_to_loud.speech.engine import (
    ERROR_INTERRUPTED,
    Utterance,
    UtteranceEnded,
    UtteranceFailed,
    UtteranceStarted,
    WordBoundary,
)
from text_to_loud.speech.voices import Voice


class ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """``call_later`` implementation driven by :meth:`advance` instead of a clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: List[ManualHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback, args)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._handles if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda item: item.when)
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self.now = target
        self._handles = [h for h in self._handles if not h.cancelled]


DEFAULT_VOICES = [
    Voice(id="en-samantha", name="Samantha", lang="en-US", gender="female"),
    Voice(id="en-daniel", name="Daniel", lang="en-GB", gender="male"),
    Voice(id="th-kanya", name="Kanya", lang="th-TH", gender="female"),
]


class FakeSpeechEngine:
    """In-memory engine that synthesises events only when a test asks for them."""

    def __init__(self, voices: Optional[List[Voice]] = None) -> None:
        self.voices = list(DEFAULT_VOICES if voices is None else voices)
        self.spoken: List[Utterance] = []
        self.calls: List[str] = []
        self.current: Optional[Utterance] = None
        self.speaking = False
        self.paused = False
        self.resume_works = True
        self.shutdown_called = False

    # SpeechEngine -----------------------------------------------------
    def speak(self, utterance: Utterance) -> None:
        self.calls.append("speak")
        self.spoken.append(utterance)
        self.current = utterance
        self.speaking = True
        self.paused = False
        utterance.emit(UtteranceStarted(utterance))

    def pause(self) -> None:
        self.calls.append("pause")
        if self.speaking:
            self.paused = True

    def resume(self) -> None:
        self.calls.append("resume")
        self.paused = False
        if not self.resume_works:
            self.speaking = False

    def cancel(self) -> None:
        self.calls.append("cancel")
        utterance = self.current
        self.current = None
        self.speaking = False
        self.paused = False
        if utterance is not None:
            utterance.emit(UtteranceFailed(utterance, ERROR_INTERRUPTED))

    def get_voices(self) -> List[Voice]:
        return list(self.voices)

    def shutdown(self) -> None:
        self.shutdown_called = True

    # Test helpers -----------------------------------------------------
    def boundary(self, char_index: int, utterance: Optional[Utterance] = None, name: str = "word") -> None:
        target = utterance or self.current
        assert target is not None
        target.emit(WordBoundary(target, char_index=char_index, name=name))

    def finish(self, utterance: Optional[Utterance] = None) -> None:
        target = utterance or self.current
        assert target is not None
        if target is self.current:
            self.current = None
            self.speaking = False
        target.emit(UtteranceEnded(target))

    def fail(self, error: str, utterance: Optional[Utterance] = None) -> None:
        target = utterance or self.current
        assert target is not None
        if target is self.current:
            self.current = None
            self.speaking = False
        target.emit(UtteranceFailed(target, error))


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def engine() -> FakeSpeechEngine:
    return FakeSpeechEngine()


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_file = config_dir / "default.json"
    config_file.write_text(
        """
        {
            \"storage_root\": \"storage\",
            \"database_file\": \"storage/reading.db\"
        }
        """,
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/reading.db",
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config
