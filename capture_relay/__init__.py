"""
Capture Relay - camera capture notifications over WebSocket.
"""

__version__ = "0.1.0"
