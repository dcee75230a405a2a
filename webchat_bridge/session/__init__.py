"""Session lifecycle and conversation thread state."""
