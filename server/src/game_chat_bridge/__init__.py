"""Game Chat Bridge - Relay between game servers and chat channels.

An async bridge that:
- Listens on one TCP port per configured game server
- Authenticates each connection with a shared secret
- Reassembles messages the game server had to split into chunks
- Renders GAME_STATUS payloads as rich messages and forwards plain text
"""

__version__ = "0.1.0"
