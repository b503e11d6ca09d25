"""
Infrastructure Layer

Concrete adapters for the ports declared by the domain and application layers.
- persistence/: aiosqlite database helper and queue snapshot stores
"""
