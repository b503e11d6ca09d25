"""
Application Layer

Orchestrates domain objects and the external collaborators to keep a
session playing.

Structure:
- services/: The playback session, its timers, prefetch and persistence helpers
- interfaces/: Port interfaces for the resolver, transport and recommendation generator
"""
