"""Network interception and event-stream decoding for the conversation endpoint."""
