"""HTTP and WebSocket routes of the storehouse real-time service."""
