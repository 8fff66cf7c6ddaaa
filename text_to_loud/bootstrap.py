"""Bootstrap logic that prepares runtime directories and the SQLite database."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        self._ensure_database()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        for label, path in (
            ("storage", self._config.storage_root),
            ("database", self._config.database_file.parent),
        ):
            if not config_module._ensure_writable_directory(path):
                raise BootstrapError(f"The {label} directory '{path}' is not writable")
            LOGGER.debug("Ensured directory exists: %s", path)

    def _ensure_database(self) -> None:
        LOGGER.debug("Ensuring database schema at %s", self._config.database_file)
        try:
            connection = sqlite3.connect(self._config.database_file)
        except sqlite3.Error as error:
            raise BootstrapError(
                f"Could not open database '{self._config.database_file}': {error}"
            ) from error
        try:
            cursor = connection.cursor()
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    language TEXT NOT NULL DEFAULT 'en',
                    char_offset INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    last_played_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_documents_last_played
                    ON documents(last_played_at DESC);
                """
            )
            connection.commit()
        finally:
            connection.close()


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "initialize_app"]
