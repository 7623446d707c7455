"""Chat room coordinator: presence tracking and a shared message log."""

__version__ = "1.0.0"
