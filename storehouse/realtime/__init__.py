"""
Real-time hubs of the storehouse service.

Connection registry, group routing, the chat and notification hubs and
the WebSocket session glue that drives them.
"""
