"""Chat transports.  Each one adapts a chat platform to the processing services."""
