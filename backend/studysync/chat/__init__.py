"""Realtime room multiplexer.

Modules:
    - session: live connection sessions and the process-wide session index
    - manager: room registry (join, leave, broadcast)
    - events: inbound frame routing and room operations
    - lifecycle: handshake and teardown
    - router: websocket and message history endpoints
"""
