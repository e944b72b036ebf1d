"""
Connection status tracking for player sessions.

Connection lifecycle is tracked separately from playback phase:
a session may be IDLE or SPEAKING_WORD with any ConnectionStatus.

This is pure data owned by PlaybackGateway, not by playback state.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """Connection lifecycle status."""
    DOWN = "DOWN"  # Not connected, or session ended
    UP = "UP"      # Active WebSocket connection
