"""Continuous-playback controller: queue, session state machine and error recovery."""

__version__ = "1.0.0"
