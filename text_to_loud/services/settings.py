"""Persistence helpers for voice settings."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from ..config import AppConfig
from ..speech.language import normalize_language
from ..speech.voices import DEFAULT_GENDER, DEFAULT_LANGUAGE, normalize_gender, normalize_rate


LOGGER = logging.getLogger(__name__)


@dataclass
class VoiceSettings:
    """Voice options applied to the next playback."""

    language: str = DEFAULT_LANGUAGE
    gender: str = DEFAULT_GENDER
    rate: float = 1.0

    def normalized(self) -> "VoiceSettings":
        try:
            rate = normalize_rate(self.rate)
        except ValueError:
            rate = 1.0
        return VoiceSettings(
            language=normalize_language(self.language, DEFAULT_LANGUAGE),
            gender=normalize_gender(self.gender),
            rate=rate,
        )


class SettingsStore:
    """Load and store :class:`VoiceSettings` next to the reading history."""

    def __init__(self, config: AppConfig) -> None:
        self._path = config.settings_file

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> VoiceSettings:
        if not self._path.exists():
            return VoiceSettings()

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as error:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, error)
            return VoiceSettings()
        if not isinstance(payload, dict):
            return VoiceSettings()

        settings = VoiceSettings()
        for field, value in payload.items():
            if hasattr(settings, field):
                setattr(settings, field, value)
        return settings.normalized()

    def save(self, settings: VoiceSettings) -> VoiceSettings:
        normalized = settings.normalized()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(normalized), indent=2), encoding="utf-8")
        return normalized


__all__ = ["SettingsStore", "VoiceSettings"]
