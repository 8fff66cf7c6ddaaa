"""Text to Loud: read text aloud with synchronized word highlighting."""

__version__ = "0.1.0"
