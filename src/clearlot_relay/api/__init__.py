"""HTTP and WebSocket surface of the relay."""
