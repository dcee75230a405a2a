"""Exchange engine, per-attempt correlation state and cancellation."""
