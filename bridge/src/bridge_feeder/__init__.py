"""Bridge Feeder - Game-server side client for the Game Chat Bridge.

A thin async client that:
- Connects to the bridge port assigned to a game server
- Authenticates with the shared secret (PASS line)
- Splits messages longer than the sender's size limit into SPLIT_MSG chunks
- Relays lines read from stdin until EOF
"""

__version__ = "0.1.0"
