"""Terminal views for the Text to Loud command line."""

from .history import HistoryView, render_voices

__all__ = ["HistoryView", "render_voices"]
