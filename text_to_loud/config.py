"""Configuration loading utilities for the Text to Loud application."""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".text_to_loud_write_check"


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins and the flag reports whether a fallback
    was used. When nothing can be prepared the original ``preferred`` path is
    returned so that later steps surface a meaningful error.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _coerce_positive(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number < 0:
        return default
    return number


@dataclass(frozen=True)
class SpeechTiming:
    """Delays used to work around speech engine races.

    ``pre_speak_delay`` separates a cancel from the following speak call and
    ``resume_check_delay`` is how long to wait before checking whether a
    native resume actually restarted speech. ``pause_budget`` is the pause
    length after which engines are known to drop the paused utterance.
    """

    pre_speak_delay: float = 0.05
    resume_check_delay: float = 0.1
    pause_budget: float = 10.0

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "SpeechTiming":
        if not mapping:
            return cls()
        defaults = cls()
        return cls(
            pre_speak_delay=_coerce_positive(
                mapping.get("pre_speak_delay_ms"), defaults.pre_speak_delay * 1000.0
            )
            / 1000.0,
            resume_check_delay=_coerce_positive(
                mapping.get("resume_check_delay_ms"), defaults.resume_check_delay * 1000.0
            )
            / 1000.0,
            pause_budget=_coerce_positive(
                mapping.get("pause_budget_seconds"), defaults.pause_budget
            ),
        )


DEFAULT_HISTORY_LIMIT = 10


@dataclass(frozen=True)
class AppConfig:
    """Container describing runtime paths and speech tuning for the application."""

    storage_root: Path
    database_file: Path
    speech: SpeechTiming = field(default_factory=SpeechTiming)
    history_limit: int = DEFAULT_HISTORY_LIMIT

    @property
    def settings_file(self) -> Path:
        """Location of the persisted voice settings."""

        return (self.storage_root / "settings.json").resolve()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".text_to_loud" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()
        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        if not _ensure_writable_directory(database_file.parent):
            fallback_database = (storage_root / database_file.name).resolve()
            if fallback_database != database_file and _ensure_writable_directory(
                fallback_database.parent
            ):
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database
            else:
                LOGGER.warning(
                    "Database location '%s' is not writable and no fallback is available.",
                    database_file,
                )

        speech_section = mapping.get("speech") or {}
        speech = SpeechTiming.from_mapping(speech_section)
        try:
            history_limit = int(mapping.get("history_limit", DEFAULT_HISTORY_LIMIT))
        except (TypeError, ValueError):
            history_limit = DEFAULT_HISTORY_LIMIT
        if history_limit < 1:
            history_limit = DEFAULT_HISTORY_LIMIT

        return cls(
            storage_root=storage_root,
            database_file=database_file,
            speech=speech,
            history_limit=history_limit,
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "DEFAULT_HISTORY_LIMIT", "SpeechTiming", "load_config"]
