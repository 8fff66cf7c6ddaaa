"""Web interface for Text to Loud."""

from .server import create_app

__all__ = ["create_app"]
