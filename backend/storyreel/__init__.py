"""storyreel - shot-to-shot transition video generation."""

__version__ = "0.1.0"
