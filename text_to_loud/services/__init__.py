"""Application services: storage, settings, events and the reading session."""
