"""
lobby - Signaling server for duet

Pairs anonymous WebSocket peers and relays their WebRTC negotiation
messages. The server never touches media; it just pairs people and
passes notes between them.
"""

from .server import app, create_app

__all__ = ["app", "create_app"]
